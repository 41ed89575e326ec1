"""pyhho.integration.quadrature
Quadrature rules on edges, polygonal faces and polyhedral cells.

Reference rules on the segment, triangle and tetrahedron are Gauss–Legendre
tensor rules collapsed onto the simplex (Duffy map). Faces and cells are
integrated through the simplicial decompositions stored on the mesh.
"""
import numpy as np
from dataclasses import dataclass
from functools import lru_cache
from numpy.polynomial.legendre import leggauss

from pyhho.core.topology import Edge, Face, Cell


@dataclass(frozen=True)
class QuadratureRule:
    """Ordered quadrature nodes `points` (nq, 3) with their `weights` (nq,)."""
    points: np.ndarray
    weights: np.ndarray

    def __len__(self):
        return len(self.weights)

    def __iter__(self):
        return zip(self.points, self.weights)

    def measure(self) -> float:
        return float(self.weights.sum())


# -------------------------------------------------------------------------
# 1‑D Gauss–Legendre
# -------------------------------------------------------------------------
def gauss_legendre(order: int):
    if order < 1:
        raise ValueError(order)
    return leggauss(order)  # (points, weights)


def _gl01(order: int):
    """Gauss–Legendre nodes and weights mapped to [0,1]."""
    xi, w = gauss_legendre(int(order))
    lam = 0.5*(xi + 1.0)
    wl  = 0.5*w
    return lam, wl


def _check_doe(doe: int) -> int:
    doe = int(doe)
    if doe < 0:
        raise ValueError(f"Degree of exactness must be non-negative, got {doe}")
    return doe


# -------------------------------------------------------------------------
# Reference simplices
# -------------------------------------------------------------------------
@lru_cache(maxsize=None)
def line_rule(doe: int):
    """Rule on [0,1], exact for polynomials of degree ≤ doe."""
    doe = _check_doe(doe)
    return _gl01(doe // 2 + 1)


@lru_cache(maxsize=None)
def tri_rule(doe: int):
    """Degree‑exact rule built from square → reference triangle mapping.

    Reference triangle (0,0)-(1,0)-(0,1), area 1/2.
    """
    doe = _check_doe(doe)
    # the collapse adds one power of (1-u)
    u, w_u = _gl01((doe + 3) // 2)
    pts = []
    wts = []
    for i, ui in enumerate(u):
        for j, vj in enumerate(u):
            r = ui
            s = vj * (1.0 - ui)
            weight = w_u[i] * w_u[j] * (1.0 - ui)
            pts.append([r, s])
            wts.append(weight)
    return np.array(pts), np.array(wts)


@lru_cache(maxsize=None)
def tet_rule(doe: int):
    """Degree‑exact rule built from cube → reference tetrahedron mapping.

    Reference tetrahedron (0,0,0)-(1,0,0)-(0,1,0)-(0,0,1), volume 1/6.
    """
    doe = _check_doe(doe)
    # the collapse adds (1-u)^2 (1-v)
    u, w_u = _gl01((doe + 4) // 2)
    U, V, W = np.meshgrid(u, u, u, indexing="ij")
    WU, WV, WW = np.meshgrid(w_u, w_u, w_u, indexing="ij")
    x = U
    y = V * (1.0 - U)
    z = W * (1.0 - U) * (1.0 - V)
    wts = WU * WV * WW * (1.0 - U) ** 2 * (1.0 - V)
    pts = np.column_stack([x.ravel(), y.ravel(), z.ravel()])
    return pts, wts.ravel()


# -------------------------------------------------------------------------
# Physical entities
# -------------------------------------------------------------------------
def edge_quadrature(p0: np.ndarray, p1: np.ndarray, doe: int) -> QuadratureRule:
    t, w_ref = line_rule(doe)
    p0 = np.asarray(p0, float); p1 = np.asarray(p1, float)
    pts = p0[None, :] + np.outer(t, p1 - p0)
    wts = w_ref * np.linalg.norm(p1 - p0)
    return QuadratureRule(pts, wts)


def triangles_quadrature(triangles: np.ndarray, doe: int) -> QuadratureRule:
    """Rule on a union of triangles given as an (nt, 3, 3) coordinate array."""
    ref_pts, ref_wts = tri_rule(doe)
    A = triangles[:, 0, :]                           # (nt,3)
    E1 = triangles[:, 1, :] - A
    E2 = triangles[:, 2, :] - A
    jac = np.linalg.norm(np.cross(E1, E2), axis=1)  # twice the area
    pts = (A[:, None, :]
           + ref_pts[None, :, 0:1] * E1[:, None, :]
           + ref_pts[None, :, 1:2] * E2[:, None, :])
    wts = jac[:, None] * ref_wts[None, :]
    return QuadratureRule(pts.reshape(-1, 3), wts.reshape(-1))


def tetrahedra_quadrature(tetrahedra: np.ndarray, doe: int) -> QuadratureRule:
    """Rule on a union of tetrahedra given as an (nt, 4, 3) coordinate array."""
    ref_pts, ref_wts = tet_rule(doe)
    A = tetrahedra[:, 0, :]
    J = tetrahedra[:, 1:, :] - A[:, None, :]        # rows are the edge vectors
    detJ = np.abs(np.linalg.det(J))
    pts = A[:, None, :] + np.einsum("qk,tkd->tqd", ref_pts, J)
    wts = detJ[:, None] * ref_wts[None, :]
    return QuadratureRule(pts.reshape(-1, 3), wts.reshape(-1))


def generate_quadrature_rule(entity, doe: int, mesh=None) -> QuadratureRule:
    """
    Quadrature rule on a mesh entity, exact for polynomials of total degree
    ≤ `doe`. The weights sum to the measure of the entity.

    Edges only store vertex indices, so `mesh` is required for them.
    """
    if isinstance(entity, Cell):
        return tetrahedra_quadrature(entity.tetrahedra, doe)
    if isinstance(entity, Face):
        return triangles_quadrature(entity.triangles, doe)
    if isinstance(entity, Edge):
        if mesh is None:
            raise ValueError("Edge quadrature needs the mesh to locate the edge vertices.")
        v0, v1 = entity.vertices
        return edge_quadrature(mesh.vertices[v0], mesh.vertices[v1], doe)
    raise TypeError(f"Cannot build a quadrature rule on {type(entity).__name__}")
