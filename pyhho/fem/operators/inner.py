"""pyhho.fem.operators.inner"""
import numpy as np


def scalar_product(a, b):
    """
    Scalar product of values sampled at quadrature nodes.

    Scalars are multiplied; vectors (last axis of length 3) are dotted with
    the vector ``b``. With ``a`` of shape (n, nq, 3) this projects a whole
    vector-valued family on one direction, giving an (n, nq) scalar family.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.ndim == 0 or b.ndim == 0:
        return a * b
    if b.ndim != 1 or a.shape[-1] != b.shape[0]:
        raise ValueError(f"shape mismatch: {a.shape} . {b.shape}")
    return a @ b


def vector_product(a, b):
    """Cross product of every vector sample in ``a`` (..., 3) with the vector ``b``."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape[-1] != 3 or b.shape != (3,):
        raise ValueError(f"shape mismatch: {a.shape} x {b.shape}")
    return np.cross(a, b)
