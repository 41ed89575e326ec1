import logging
import numpy as np
from typing import Tuple, List, Dict, Sequence
from scipy.spatial.distance import pdist

from pyhho.core.topology import Edge, Face, Cell

logger = logging.getLogger(__name__)


def _diameter(coords: np.ndarray) -> float:
    """Largest distance between two of the given points."""
    if coords.shape[0] < 2:
        return 0.0
    return float(pdist(coords).max())


class Mesh:
    """
    Three-dimensional polytopal mesh.

    The mesh is built from vertex coordinates and, for each cell, the list of
    its polygonal faces (each face a list of vertex indices in boundary order).
    Faces shared by two cells and edges shared by several faces are detected
    from their vertex sets and stored once, so every entity has a unique
    global index.

    Besides topology, the mesh pre-computes everything the polynomial bases
    and quadrature rules need: centers of mass, diameters, measures, face
    normals and in-plane edge normals, edge tangents, and simplicial
    decompositions of faces (triangles) and cells (tetrahedra). Cells are
    assumed star-shaped with respect to the average of their vertices.
    """

    def __init__(self,
                 vertices: np.ndarray,
                 cells: Sequence[Sequence[Sequence[int]]]):
        self.vertices = np.asarray(vertices, dtype=float)
        if self.vertices.ndim != 2 or self.vertices.shape[1] != 3:
            raise ValueError(f"vertices must have shape (n, 3), got {self.vertices.shape}")
        self.cells_connectivity = [[tuple(int(v) for v in f) for f in cell] for cell in cells]
        self.cells_list: List[Cell] = []
        self.faces_list: List[Face] = []
        self.edges_list: List[Edge] = []
        self._face_dict: Dict[Tuple[int, ...], Face] = {}
        self._edge_dict: Dict[Tuple[int, int], Edge] = {}
        self._vertex_cells: List[List[int]] = [[] for _ in range(len(self.vertices))]
        self._vertex_faces: List[List[int]] = [[] for _ in range(len(self.vertices))]
        self._build_topology()
        logger.debug(f"Mesh built: {self!r}")

    def _build_topology(self):
        """
        Builds cells, faces and edges together with their geometry.
        """
        for cid, cell_faces in enumerate(self.cells_connectivity):
            face_gids = []
            for face_vertices in cell_faces:
                face = self._get_or_create_face(face_vertices)
                if len(face.cells) == 2:
                    raise ValueError(f"Face {face.vertices} is shared by more than two cells.")
                face.cells.append(cid)
                face_gids.append(face.gid)
            self.cells_list.append(self._create_cell(cid, tuple(face_gids)))

        for face in self.faces_list:
            for vid in face.vertices:
                self._vertex_faces[vid].append(face.gid)
        for cell in self.cells_list:
            for vid in cell.vertices:
                self._vertex_cells[vid].append(cell.gid)

    def _get_or_create_edge(self, v0: int, v1: int) -> Edge:
        key = (min(v0, v1), max(v0, v1))
        edge = self._edge_dict.get(key)
        if edge is not None:
            return edge
        p0, p1 = self.vertices[v0], self.vertices[v1]
        length = float(np.linalg.norm(p1 - p0))
        if length <= 0.0:
            raise ValueError(f"Zero-length edge between vertices {v0} and {v1}.")
        edge = Edge(gid=len(self.edges_list), vertices=(v0, v1),
                    center_mass=0.5 * (p0 + p1), measure=length,
                    tangent=(p1 - p0) / length)
        self.edges_list.append(edge)
        self._edge_dict[key] = edge
        return edge

    def _get_or_create_face(self, face_vertices: Tuple[int, ...]) -> Face:
        if len(face_vertices) < 3:
            raise ValueError(f"A face needs at least 3 vertices, got {face_vertices}.")
        key = tuple(sorted(face_vertices))
        face = self._face_dict.get(key)
        if face is not None:
            return face

        P = self.vertices[list(face_vertices)]
        nv = len(face_vertices)
        # Newell normal, its norm is twice the polygon area
        newell = np.zeros(3)
        for i in range(nv):
            newell += np.cross(P[i], P[(i + 1) % nv])
        twice_area = float(np.linalg.norm(newell))
        if twice_area <= 1e-14 * max(_diameter(P), 1.0) ** 2:
            raise ValueError(f"Degenerate face {face_vertices}: zero area.")
        normal = newell / twice_area

        if nv == 3:
            triangles = P[None, :, :]
        else:
            xbar = P.mean(axis=0)
            triangles = np.array([[xbar, P[i], P[(i + 1) % nv]] for i in range(nv)])
        tri_areas = 0.5 * np.linalg.norm(
            np.cross(triangles[:, 1] - triangles[:, 0], triangles[:, 2] - triangles[:, 0]), axis=1)
        area = float(tri_areas.sum())
        center = (tri_areas[:, None] * triangles.mean(axis=1)).sum(axis=0) / area

        gid = len(self.faces_list)
        edge_gids = []
        edge_tangents = np.zeros((nv, 3))
        edge_normals = np.zeros((nv, 3))
        for i in range(nv):
            edge = self._get_or_create_edge(face_vertices[i], face_vertices[(i + 1) % nv])
            edge.faces.append(gid)
            edge_gids.append(edge.gid)
            edge_tangents[i] = edge.tangent
            en = np.cross(edge.tangent, normal)
            edge_normals[i] = en / np.linalg.norm(en)

        face = Face(gid=gid, vertices=tuple(face_vertices), edges=tuple(edge_gids),
                    center_mass=center, measure=area, diam=_diameter(P),
                    normal=normal, edge_tangents=edge_tangents, edge_normals=edge_normals, triangles=triangles)
        self.faces_list.append(face)
        self._face_dict[key] = face
        return face

    def _create_cell(self, cid: int, face_gids: Tuple[int, ...]) -> Cell:
        vids = sorted({v for f in face_gids for v in self.faces_list[f].vertices})
        coords = self.vertices[vids]
        xV = coords.mean(axis=0)

        orientations = np.zeros(len(face_gids))
        tets = []
        for ilF, fid in enumerate(face_gids):
            face = self.faces_list[fid]
            height = float(np.dot(face.center_mass - xV, face.normal))
            if abs(height) <= 1e-14 * face.diam:
                raise ValueError(f"Cell {cid} is not star-shaped with respect to its vertex average "
                                 f"(face {fid} is coplanar with it).")
            orientations[ilF] = 1.0 if height > 0 else -1.0
            for tri in face.triangles:
                tets.append(np.vstack([xV[None, :], tri]))
        tets = np.array(tets)

        J = tets[:, 1:, :] - tets[:, 0:1, :]
        tet_volumes = np.abs(np.linalg.det(J)) / 6.0
        volume = float(tet_volumes.sum())
        if volume <= 0.0:
            raise ValueError(f"Cell {cid} has non-positive volume.")
        center = (tet_volumes[:, None] * tets.mean(axis=1)).sum(axis=0) / volume

        return Cell(gid=cid, faces=face_gids, face_orientations=orientations,
                    vertices=tuple(vids), center_mass=center, measure=volume,
                    diam=_diameter(coords), tetrahedra=tets)

    # --- Public API ---
    def n_cells(self) -> int:
        return len(self.cells_list)

    def n_faces(self) -> int:
        return len(self.faces_list)

    def n_edges(self) -> int:
        return len(self.edges_list)

    def n_vertices(self) -> int:
        return len(self.vertices)

    def cell(self, cell_id: int) -> Cell:
        """Return the Cell object corresponding to a global `cell_id`."""
        if not 0 <= cell_id < len(self.cells_list):
            raise IndexError(f"Cell ID {cell_id} out of range.")
        return self.cells_list[cell_id]

    def face(self, face_id: int) -> Face:
        """Return the Face object corresponding to a global `face_id`."""
        if not 0 <= face_id < len(self.faces_list):
            raise IndexError(f"Face ID {face_id} out of range.")
        return self.faces_list[face_id]

    def edge(self, edge_id: int) -> Edge:
        """Return the Edge object corresponding to a global `edge_id`."""
        if not 0 <= edge_id < len(self.edges_list):
            raise IndexError(f"Edge ID {edge_id} out of range.")
        return self.edges_list[edge_id]

    @property
    def boundary_faces(self) -> List[Face]:
        return [f for f in self.faces_list if f.is_boundary()]

    @property
    def internal_faces(self) -> List[Face]:
        return [f for f in self.faces_list if not f.is_boundary()]

    def vertex_cells(self, vertex_id: int) -> List[int]:
        return self._vertex_cells[vertex_id]

    def vertex_faces(self, vertex_id: int) -> List[int]:
        return self._vertex_faces[vertex_id]

    def cell_face_normal(self, cell_id: int, local_face: int) -> np.ndarray:
        """Unit normal to the local face `local_face` of a cell, pointing out of the cell."""
        cell = self.cell(cell_id)
        return cell.face_orientations[local_face] * self.faces_list[cell.faces[local_face]].normal

    def volumes(self) -> np.ndarray:
        """Volume of each cell."""
        return np.array([c.measure for c in self.cells_list])

    def h_max(self) -> float:
        return max(c.diam for c in self.cells_list)

    def __repr__(self):
        return (f"<Mesh n_vertices={self.n_vertices()}, "
                f"n_cells={self.n_cells()}, "
                f"n_faces={self.n_faces()}, "
                f"n_edges={self.n_edges()}>")
