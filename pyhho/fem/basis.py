"""pyhho.fem.basis
Scaled monomial bases on cells, faces and edges.

Every basis shares the same index convention: slot ``i`` of the value, the
gradient (and, on faces, the curl) refers to the same exponent tuple, and
slot 0 is always the constant function 1. Exponents are ordered by total
degree first, see :func:`cell_powers` and :func:`face_powers`.

Evaluations come in two flavours: pointwise (``function(i, x)``,
``gradient(i, x)``) and tabulated over an array of points (``values(X)``,
``gradients(X)``), the latter backed by small numba kernels.
"""
from __future__ import annotations

from typing import Protocol

import numba
import numpy as np

from pyhho.core.topology import Cell, Face, Edge
from pyhho.fem.operators.inner import vector_product


# -----------------------------------------------------------------------------
#  Dimensions and exponents
# -----------------------------------------------------------------------------
def _check_degree(m: int) -> int:
    m = int(m)
    if m < 0:
        raise ValueError(f"Polynomial degree must be non-negative, got {m}")
    return m


def dim_Pcell(m: int) -> int:
    """Number of 3-variate monomials of total degree ≤ m."""
    m = _check_degree(m)
    return (m + 1) * (m + 2) * (m + 3) // 6


def dim_Pface(m: int) -> int:
    """Number of 2-variate monomials of total degree ≤ m."""
    m = _check_degree(m)
    return (m + 1) * (m + 2) // 2


def dim_Pedge(m: int) -> int:
    """Number of 1-variate monomials of degree ≤ m."""
    return _check_degree(m) + 1


def cell_powers(m: int) -> np.ndarray:
    """Exponent tuples (i, j, l-i-j) for total degrees l = 0..m, shape (dim_Pcell(m), 3)."""
    m = _check_degree(m)
    powers = [(i, j, l - i - j)
              for l in range(m + 1)
              for i in range(l + 1)
              for j in range(l - i + 1)]
    return np.array(powers, dtype=np.int64).reshape(-1, 3)


def face_powers(m: int) -> np.ndarray:
    """Exponent tuples (i, l-i) for total degrees l = 0..m, shape (dim_Pface(m), 2)."""
    m = _check_degree(m)
    powers = [(i, l - i) for l in range(m + 1) for i in range(l + 1)]
    return np.array(powers, dtype=np.int64).reshape(-1, 2)


def edge_powers(m: int) -> np.ndarray:
    """Exponents 0..m, shape (dim_Pedge(m), 1)."""
    m = _check_degree(m)
    return np.arange(m + 1, dtype=np.int64).reshape(-1, 1)


# -----------------------------------------------------------------------------
#  numba kernels
# -----------------------------------------------------------------------------
@numba.njit(cache=True)
def _monomial_values(y, powers):
    """values[i, q] = prod_k y[q, k] ** powers[i, k]"""
    n, d = powers.shape
    nq = y.shape[0]
    out = np.ones((n, nq))
    for i in range(n):
        for q in range(nq):
            v = 1.0
            for k in range(d):
                if powers[i, k] > 0:
                    v *= y[q, k] ** powers[i, k]
            out[i, q] = v
    return out


@numba.njit(cache=True)
def _monomial_local_gradients(y, powers):
    """Derivatives with respect to the local coordinates, shape (n, nq, d)."""
    n, d = powers.shape
    nq = y.shape[0]
    out = np.zeros((n, nq, d))
    for i in range(n):
        for q in range(nq):
            for k in range(d):
                pk = powers[i, k]
                if pk == 0:
                    continue
                v = pk * y[q, k] ** (pk - 1)
                for l in range(d):
                    if l != k and powers[i, l] > 0:
                        v *= y[q, l] ** powers[i, l]
                out[i, q, k] = v
    return out


def _as_points(x) -> np.ndarray:
    X = np.asarray(x, dtype=float)
    if X.ndim == 1:
        X = X[None, :]
    if X.ndim != 2 or X.shape[1] != 3:
        raise ValueError(f"Points must have shape (3,) or (n, 3), got {np.shape(x)}")
    return X


# -----------------------------------------------------------------------------
#  Common interface
# -----------------------------------------------------------------------------
class ScalarBasis(Protocol):
    """What every scalar basis family offers (monomial or orthonormalised)."""

    def dimension(self) -> int: ...

    def max_degree(self) -> int: ...

    def function(self, i: int, x) -> float: ...

    def gradient(self, i: int, x) -> np.ndarray: ...

    def values(self, X) -> np.ndarray: ...

    def gradients(self, X) -> np.ndarray: ...


class MonomialScalarBasisCell:
    """Monomials of (x - x_T) / h_T on a cell T, up to total degree `degree`."""

    def __init__(self, cell: Cell, degree: int):
        self._degree = _check_degree(degree)
        self._xT = np.asarray(cell.center_mass, dtype=float)
        self._hT = float(cell.diam)
        self._powers = cell_powers(self._degree)

    def dimension(self) -> int:
        return dim_Pcell(self._degree)

    def max_degree(self) -> int:
        return self._degree

    @property
    def powers(self) -> np.ndarray:
        return self._powers

    def _coordinate_transform(self, X: np.ndarray) -> np.ndarray:
        return (X - self._xT) / self._hT

    def values(self, X) -> np.ndarray:
        """(dimension, n_points) table of monomial values."""
        return _monomial_values(self._coordinate_transform(_as_points(X)), self._powers)

    def gradients(self, X) -> np.ndarray:
        """(dimension, n_points, 3) table of gradients."""
        y = self._coordinate_transform(_as_points(X))
        return _monomial_local_gradients(y, self._powers) / self._hT

    def function(self, i: int, x) -> float:
        y = self._coordinate_transform(np.asarray(x, dtype=float))
        return float(np.prod(y ** self._powers[i]))

    def gradient(self, i: int, x) -> np.ndarray:
        return self.gradients(x)[i, 0]


class MonomialScalarBasisFace:
    """
    Monomials on a face F, in the coordinates obtained by projecting
    (x - x_F) / h_F on the in-plane frame (tangent of the first edge,
    in-plane normal to that edge). Gradients are tangential vectors of R^3.
    """

    def __init__(self, face: Face, degree: int):
        self._degree = _check_degree(degree)
        self._xF = np.asarray(face.center_mass, dtype=float)
        self._hF = float(face.diam)
        self._nF = np.asarray(face.normal, dtype=float)
        # rows: local axes, scaled by 1/h_F
        self._jacobian = np.vstack([face.edge_tangent(0), face.edge_normal(0)]) / self._hF
        self._powers = face_powers(self._degree)

    def dimension(self) -> int:
        return dim_Pface(self._degree)

    def max_degree(self) -> int:
        return self._degree

    @property
    def powers(self) -> np.ndarray:
        return self._powers

    @property
    def jacobian(self) -> np.ndarray:
        return self._jacobian

    def _coordinate_transform(self, X: np.ndarray) -> np.ndarray:
        return (X - self._xF) @ self._jacobian.T

    def values(self, X) -> np.ndarray:
        return _monomial_values(self._coordinate_transform(_as_points(X)), self._powers)

    def gradients(self, X) -> np.ndarray:
        y = self._coordinate_transform(_as_points(X))
        return _monomial_local_gradients(y, self._powers) @ self._jacobian

    def curls(self, X) -> np.ndarray:
        """Tangential curls grad(phi) x n_F, shape (dimension, n_points, 3)."""
        return vector_product(self.gradients(X), self._nF)

    def function(self, i: int, x) -> float:
        y = self._coordinate_transform(np.asarray(x, dtype=float))
        return float(np.prod(y ** self._powers[i]))

    def gradient(self, i: int, x) -> np.ndarray:
        return self.gradients(x)[i, 0]

    def curl(self, i: int, x) -> np.ndarray:
        return vector_product(self.gradient(i, x), self._nF)


class MonomialScalarBasisEdge:
    """Powers of (x - x_E) . t_E / h_E on an edge E."""

    def __init__(self, edge: Edge, degree: int):
        self._degree = _check_degree(degree)
        self._xE = np.asarray(edge.center_mass, dtype=float)
        self._hE = float(edge.diam)
        self._tE = np.asarray(edge.tangent, dtype=float)
        self._powers = edge_powers(self._degree)

    def dimension(self) -> int:
        return dim_Pedge(self._degree)

    def max_degree(self) -> int:
        return self._degree

    @property
    def powers(self) -> np.ndarray:
        return self._powers

    def _coordinate_transform(self, X: np.ndarray) -> np.ndarray:
        return ((X - self._xE) @ self._tE / self._hE).reshape(-1, 1)

    def values(self, X) -> np.ndarray:
        return _monomial_values(self._coordinate_transform(_as_points(X)), self._powers)

    def gradients(self, X) -> np.ndarray:
        y = self._coordinate_transform(_as_points(X))
        dy = _monomial_local_gradients(y, self._powers)[:, :, 0] / self._hE
        return dy[:, :, None] * self._tE

    def _check_index(self, i: int) -> None:
        if not 0 <= i <= self._degree:
            raise IndexError(f"Edge basis index {i} out of range [0, {self._degree}]")

    def function(self, i: int, x) -> float:
        self._check_index(i)
        y = float(np.dot(np.asarray(x, dtype=float) - self._xE, self._tE)) / self._hE
        return y ** i

    def gradient(self, i: int, x) -> np.ndarray:
        self._check_index(i)
        if i == 0:
            return np.zeros(3)
        y = float(np.dot(np.asarray(x, dtype=float) - self._xE, self._tE)) / self._hE
        return (i * y ** (i - 1) / self._hE) * self._tE


# -----------------------------------------------------------------------------
#  Tabulation at quadrature nodes
# -----------------------------------------------------------------------------
def evaluate_quad_function(basis: ScalarBasis, quad, ndofs: int | None = None) -> np.ndarray:
    """Basis values at the quadrature nodes, shape (ndofs, len(quad))."""
    table = basis.values(quad.points)
    return table if ndofs is None else table[:ndofs]


def evaluate_quad_gradient(basis: ScalarBasis, quad, ndofs: int | None = None) -> np.ndarray:
    """Basis gradients at the quadrature nodes, shape (ndofs, len(quad), 3)."""
    table = basis.gradients(quad.points)
    return table if ndofs is None else table[:ndofs]


def evaluate_quad_curl(basis, quad, ndofs: int | None = None) -> np.ndarray:
    """Face basis curls at the quadrature nodes, shape (ndofs, len(quad), 3)."""
    table = basis.curls(quad.points)
    return table if ndofs is None else table[:ndofs]
