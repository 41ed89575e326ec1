import numpy as np
from dataclasses import dataclass, field
from typing import Tuple, List


@dataclass(slots=True)
class Edge:
    gid: int
    vertices: Tuple[int, int]       # Global vertex indices of the endpoints
    center_mass: np.ndarray
    measure: float
    tangent: np.ndarray             # Unit tangent, from vertices[0] to vertices[1]
    faces: List[int] = field(default_factory=list)

    @property
    def diam(self) -> float:
        return self.measure

    def global_index(self) -> int:
        return self.gid


@dataclass(slots=True)
class Face:
    gid: int
    vertices: Tuple[int, ...]       # Polygon vertex ids, in boundary order
    edges: Tuple[int, ...]          # Edge gids, edges[i] joins vertices[i] and vertices[i+1]
    center_mass: np.ndarray
    measure: float
    diam: float
    normal: np.ndarray              # Unit normal (Newell); orientation relative to cells in Cell.face_orientations
    edge_tangents: np.ndarray       # (n_edges, 3) unit tangents of the edges, as stored on Edge
    edge_normals: np.ndarray        # (n_edges, 3) in-plane unit normals to each edge
    triangles: np.ndarray           # (nt, 3, 3) coordinates of a triangulation of the face
    cells: List[int] = field(default_factory=list)

    def n_edges(self) -> int:
        return len(self.edges)

    def edge_tangent(self, i: int) -> np.ndarray:
        return self.edge_tangents[i]

    def edge_normal(self, i: int) -> np.ndarray:
        return self.edge_normals[i]

    def is_boundary(self) -> bool:
        return len(self.cells) == 1

    def global_index(self) -> int:
        return self.gid


@dataclass(slots=True)
class Cell:
    gid: int
    faces: Tuple[int, ...]          # Face gids, in the local face order
    face_orientations: np.ndarray   # +1 if Face.normal points out of the cell, -1 otherwise
    vertices: Tuple[int, ...]
    center_mass: np.ndarray
    measure: float
    diam: float
    tetrahedra: np.ndarray          # (nt, 4, 3) coordinates of a tetrahedral decomposition

    def n_faces(self) -> int:
        return len(self.faces)

    def global_index(self) -> int:
        return self.gid
