"""pyhho.utils.meshgen
Mesh generators for quick tests.
"""
from itertools import permutations
from typing import Sequence

import numpy as np
from scipy.spatial import Delaunay

from pyhho.core.mesh import Mesh

__all__ = ["unit_cube", "single_tetrahedron", "prism", "structured_hexahedra",
           "structured_tetrahedra", "delaunay_tetrahedra"]

# local vertex numbering of a hexahedron: bit k of the index is the k-th coordinate
_HEX_CORNERS = np.array([[(i >> 0) & 1, (i >> 1) & 1, (i >> 2) & 1] for i in range(8)], dtype=float)
_HEX_FACES = [(0, 2, 3, 1), (4, 5, 7, 6),    # z = 0, z = 1
              (0, 1, 5, 4), (2, 6, 7, 3),    # y = 0, y = 1
              (0, 4, 6, 2), (1, 3, 7, 5)]    # x = 0, x = 1


def _tet_faces(tet: Sequence[int]):
    a, b, c, d = tet
    return [(a, b, c), (a, b, d), (a, c, d), (b, c, d)]


def unit_cube(length: float = 1.0) -> Mesh:
    """A single hexahedral cell [0, length]^3."""
    return Mesh(length * _HEX_CORNERS, [_HEX_FACES])


def single_tetrahedron(vertices=None) -> Mesh:
    """A single tetrahedral cell, the reference one by default."""
    if vertices is None:
        vertices = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]
    vertices = np.asarray(vertices, dtype=float)
    if vertices.shape != (4, 3):
        raise ValueError(f"A tetrahedron needs 4 vertices in 3D, got shape {vertices.shape}")
    return Mesh(vertices, [_tet_faces((0, 1, 2, 3))])


def prism(height: float = 1.0) -> Mesh:
    """A single right prism over the triangle (0,0)-(1,0)-(0,1)."""
    base = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
    vertices = np.vstack([np.column_stack([base, np.zeros(3)]),
                          np.column_stack([base, np.full(3, height)])])
    faces = [(0, 2, 1), (3, 4, 5), (0, 1, 4, 3), (1, 2, 5, 4), (2, 0, 3, 5)]
    return Mesh(vertices, [faces])


def _grid_points(lx, ly, lz, nx, ny, nz):
    if min(nx, ny, nz) < 1:
        raise ValueError(f"Need at least one cell per direction, got ({nx}, {ny}, {nz})")
    x = np.linspace(0.0, lx, nx + 1)
    y = np.linspace(0.0, ly, ny + 1)
    z = np.linspace(0.0, lz, nz + 1)
    Z, Y, X = np.meshgrid(z, y, x, indexing="ij")
    pts = np.column_stack([X.ravel(), Y.ravel(), Z.ravel()])

    def vid(i, j, k):
        return (k * (ny + 1) + j) * (nx + 1) + i

    return pts, vid


def structured_hexahedra(nx: int, ny: int, nz: int,
                         lx: float = 1.0, ly: float = 1.0, lz: float = 1.0) -> Mesh:
    """Box [0,lx]x[0,ly]x[0,lz] split into nx*ny*nz hexahedra."""
    pts, vid = _grid_points(lx, ly, lz, nx, ny, nz)
    cells = []
    for k in range(nz):
        for j in range(ny):
            for i in range(nx):
                corners = [vid(i + a, j + b, k + c) for a, b, c in _HEX_CORNERS.astype(int)]
                cells.append([tuple(corners[v] for v in f) for f in _HEX_FACES])
    return Mesh(pts, cells)


def structured_tetrahedra(nx: int, ny: int, nz: int,
                          lx: float = 1.0, ly: float = 1.0, lz: float = 1.0) -> Mesh:
    """Box split into hexahedra, each cut into 6 tetrahedra along its main diagonal."""
    pts, vid = _grid_points(lx, ly, lz, nx, ny, nz)
    cells = []
    for k in range(nz):
        for j in range(ny):
            for i in range(nx):
                for perm in permutations(range(3)):
                    corner = np.zeros(3, dtype=int)
                    tet = [vid(i, j, k)]
                    for axis in perm:
                        corner[axis] = 1
                        tet.append(vid(i + corner[0], j + corner[1], k + corner[2]))
                    cells.append(_tet_faces(tet))
    return Mesh(pts, cells)


def delaunay_tetrahedra(points) -> Mesh:
    """Delaunay tetrahedralisation of a point cloud in general position."""
    pts = np.asarray(points, dtype=float)
    tri = Delaunay(pts)
    cells = [_tet_faces(tuple(int(v) for v in tet)) for tet in tri.simplices]
    return Mesh(pts, cells)
