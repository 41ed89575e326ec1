from .mesh import Mesh
from .topology import Cell, Face, Edge
from .hybridspace import HybridSpace
__all__ = ['Mesh', 'Cell', 'Face', 'Edge', 'HybridSpace']
