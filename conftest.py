# conftest.py
import pytest

from pyhho.utils.meshgen import unit_cube, single_tetrahedron, prism, structured_hexahedra


@pytest.fixture
def cube_mesh():
    return unit_cube()


@pytest.fixture
def tet_mesh():
    return single_tetrahedron()


@pytest.fixture
def prism_mesh():
    return prism(height=2.0)


@pytest.fixture
def hex_mesh():
    """Two unit hexahedra side by side along x."""
    return structured_hexahedra(2, 1, 1, lx=2.0)
