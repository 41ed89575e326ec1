from .core.mesh import Mesh
from .core.hybridspace import HybridSpace
__all__ = ['Mesh', 'HybridSpace']
