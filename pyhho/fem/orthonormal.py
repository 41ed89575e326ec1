"""pyhho.fem.orthonormal
L2-orthonormalisation of a basis family on one mesh entity.

With ``M = L L^T`` the Cholesky factorisation of the mass matrix of the
family (phi_j), the functions ``psi_i = sum_j C[i, j] phi_j`` with
``C = L^{-1}`` satisfy ``C M C^T = I``. Since `C` is lower triangular,
``psi_i`` only involves ``phi_0 .. phi_i``: every prefix of the new family
spans the same space as the same prefix of the old one, and ``psi_0`` is
still a constant.
"""
from __future__ import annotations

import logging

import numpy as np
from scipy.linalg import cholesky, solve_triangular, LinAlgError

from pyhho.assembly.gram import compute_gram_matrix
from pyhho.fem.basis import evaluate_quad_function

logger = logging.getLogger(__name__)


def orthonormalise(basis, quad, label: str = "entity") -> np.ndarray:
    """
    Change-of-basis matrix turning `basis` into an L2-orthonormal family for
    the discrete inner product defined by `quad`.

    Raises
    ------
    RuntimeError
        If the mass matrix is not numerically positive definite, which means
        the quadrature rule is not exact enough for the degree of the basis
        or the entity is degenerate.
    """
    phi_quad = evaluate_quad_function(basis, quad)
    M = compute_gram_matrix(phi_quad, phi_quad, quad, sym=True)
    try:
        Lfac = cholesky(M, lower=True)
    except LinAlgError as e:
        raise RuntimeError(f"Mass matrix of the degree {basis.max_degree()} basis on {label} "
                           f"is not positive definite (quadrature with {len(quad)} nodes)") from e
    C = solve_triangular(Lfac, np.eye(M.shape[0]), lower=True)
    logger.debug(f"Orthonormalised {M.shape[0]} functions on {label}")
    return C


class OrthonormalisedBasis:
    """A basis family expressed through a change of basis on another family."""

    def __init__(self, ancestor, matrix: np.ndarray):
        matrix = np.asarray(matrix, dtype=float)
        if matrix.shape != (ancestor.dimension(), ancestor.dimension()):
            raise ValueError(f"Change of basis of shape {matrix.shape} does not match "
                             f"an ancestor of dimension {ancestor.dimension()}")
        self._ancestor = ancestor
        self._matrix = matrix

    @classmethod
    def from_quadrature(cls, ancestor, quad, label: str = "entity") -> OrthonormalisedBasis:
        return cls(ancestor, orthonormalise(ancestor, quad, label))

    @property
    def ancestor(self):
        return self._ancestor

    @property
    def matrix(self) -> np.ndarray:
        return self._matrix

    def dimension(self) -> int:
        return self._ancestor.dimension()

    def max_degree(self) -> int:
        return self._ancestor.max_degree()

    def values(self, X) -> np.ndarray:
        return self._matrix @ self._ancestor.values(X)

    def gradients(self, X) -> np.ndarray:
        return np.einsum("ij,jqd->iqd", self._matrix, self._ancestor.gradients(X))

    def curls(self, X) -> np.ndarray:
        return np.einsum("ij,jqd->iqd", self._matrix, self._ancestor.curls(X))

    def function(self, i: int, x) -> float:
        return float(self._matrix[i] @ self._ancestor.values(x)[:, 0])

    def gradient(self, i: int, x) -> np.ndarray:
        return self._matrix[i] @ self._ancestor.gradients(x)[:, 0, :]
