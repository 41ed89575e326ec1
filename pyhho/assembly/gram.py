"""pyhho.assembly.gram
Matrices of L2 products between two families of functions sampled at the
nodes of one quadrature rule.

Families are arrays whose first axis indexes the functions and second axis
the quadrature nodes: (n, nq) for scalar families, (n, nq, 3) for vector
families.
"""
import numpy as np

__all__ = ["compute_gram_matrix"]


def _weights(qr) -> np.ndarray:
    w = getattr(qr, "weights", qr)
    return np.asarray(w, dtype=float)


def compute_gram_matrix(B1, B2, qr, nrows=None, ncols=None, sym=False) -> np.ndarray:
    """
    Matrix ``M[i, j] = sum_q w_q <B1_i(x_q), B2_j(x_q)>``.

    * scalar × scalar and vector × vector families: an ``(nrows, ncols)``
      matrix, restricted to the first ``nrows`` members of `B1` and the first
      ``ncols`` members of `B2` (defaults: whole families).
    * vector × scalar families: each component of `B1` is paired with the
      scalar family `B2`, giving ``(n1, 3 * n2)`` with one block of
      columns per axis, ``M[i, k*n2 + j] = sum_q w_q B1_i(x_q)[k] B2_j(x_q)``.

    With ``sym=True`` only the entries ``j >= i`` are integrated and the
    others are copied from their transpose, so the result is exactly
    symmetric. The caller guarantees that `B1` and `B2` hold the same
    functions (at least for the first `nrows` members); this is not checked,
    and a wrong claim silently produces a symmetrised matrix.

    Parameters
    ----------
    B1, B2 : ndarray
        Sampled families, see module docstring.
    qr : QuadratureRule or array_like
        Quadrature rule (or directly its weights) used to sample the families.
    nrows, ncols : int, optional
        Number of members of `B1` / `B2` to use.
    sym : bool
        Use the symmetric fast path.

    Raises
    ------
    ValueError
        If the node counts differ from the size of the quadrature rule, if
        more members are requested than available, or if the families have
        incompatible kinds.
    """
    B1 = np.asarray(B1, dtype=float)
    B2 = np.asarray(B2, dtype=float)
    w = _weights(qr)
    nq = w.shape[0]

    if B1.shape[1] != nq or B2.shape[1] != nq:
        raise ValueError(f"Families sampled at {B1.shape[1]} and {B2.shape[1]} nodes "
                         f"but the quadrature rule has {nq} nodes")

    if B1.ndim == 3 and B2.ndim == 2:
        if nrows is not None or ncols is not None or sym:
            raise ValueError("The vector × scalar Gram matrix always uses the whole families")
        n1, n2 = B1.shape[0], B2.shape[0]
        M = np.einsum("q,iqk,jq->ikj", w, B1, B2)
        return M.reshape(n1, B1.shape[2] * n2)

    if B1.ndim != B2.ndim or B1.ndim not in (2, 3):
        raise ValueError(f"Incompatible families of shapes {B1.shape} and {B2.shape}")
    if B1.ndim == 3 and B1.shape[2] != B2.shape[2]:
        raise ValueError(f"Vector families of dimensions {B1.shape[2]} and {B2.shape[2]}")

    nrows = B1.shape[0] if nrows is None else int(nrows)
    ncols = B2.shape[0] if ncols is None else int(ncols)
    if nrows < 0 or ncols < 0:
        raise ValueError(f"nrows and ncols must be non-negative, got nrows={nrows}, ncols={ncols}")
    if nrows > B1.shape[0] or ncols > B2.shape[0]:
        raise ValueError(f"Requested a {nrows}x{ncols} matrix from families of sizes "
                         f"{B1.shape[0]} and {B2.shape[0]}")
    if sym and nrows > ncols:
        raise ValueError(f"Symmetric Gram matrix needs nrows <= ncols, got {nrows}x{ncols}")

    # weights folded into the first family, then a plain Euclidean product
    W1 = B1[:nrows] * (w[None, :] if B1.ndim == 2 else w[None, :, None])
    F1 = W1.reshape(nrows, -1)
    F2 = B2[:ncols].reshape(ncols, -1)

    if not sym:
        return F1 @ F2.T

    M = np.zeros((nrows, ncols))
    for i in range(nrows):
        M[i, :i] = M[:i, i]
        M[i, i:] = F2[i:] @ F1[i]
    return M
