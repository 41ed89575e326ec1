import numpy as np
import pytest

from pyhho.assembly.gram import compute_gram_matrix
from pyhho.fem.basis import MonomialScalarBasisCell, MonomialScalarBasisFace
from pyhho.fem.orthonormal import OrthonormalisedBasis, orthonormalise
from pyhho.integration.quadrature import QuadratureRule, generate_quadrature_rule


@pytest.mark.parametrize("degree", [0, 1, 2, 3])
def test_cell_basis_is_orthonormal(prism_mesh, degree):
    cell = prism_mesh.cell(0)
    quad = generate_quadrature_rule(cell, 2 * degree)
    basis = OrthonormalisedBasis.from_quadrature(MonomialScalarBasisCell(cell, degree), quad)
    psi = basis.values(quad.points)
    M = compute_gram_matrix(psi, psi, quad, sym=True)
    assert np.allclose(M, np.eye(basis.dimension()), atol=1e-10)
    # the first function stays constant
    assert np.allclose(psi[0], psi[0, 0])


def test_face_basis_is_orthonormal(prism_mesh):
    face = max(prism_mesh.faces_list, key=lambda f: len(f.vertices))
    quad = generate_quadrature_rule(face, 6)
    basis = OrthonormalisedBasis.from_quadrature(MonomialScalarBasisFace(face, 3), quad)
    psi = basis.values(quad.points)
    assert np.allclose(compute_gram_matrix(psi, psi, quad), np.eye(10), atol=1e-10)
    assert np.allclose(basis.curls(quad.points) @ face.normal, 0.0)


def test_change_of_basis_is_lower_triangular(tet_mesh):
    cell = tet_mesh.cell(0)
    monomials = MonomialScalarBasisCell(cell, 2)
    C = orthonormalise(monomials, generate_quadrature_rule(cell, 4))
    assert np.allclose(np.triu(C, 1), 0.0)
    assert np.all(np.diag(C) > 0)


def test_pointwise_matches_tabulated(tet_mesh):
    cell = tet_mesh.cell(0)
    basis = OrthonormalisedBasis.from_quadrature(MonomialScalarBasisCell(cell, 2),
                                                 generate_quadrature_rule(cell, 4))
    x = np.array([0.1, 0.2, 0.3])
    assert np.allclose(basis.values(x)[:, 0], [basis.function(i, x) for i in range(10)])
    assert np.allclose(basis.gradients(x)[:, 0], [basis.gradient(i, x) for i in range(10)])
    assert np.allclose(basis.gradient(0, x), 0.0)


def test_insufficient_quadrature(cube_mesh):
    cell = cube_mesh.cell(0)
    # a single node at the center cannot see the linear monomials
    quad = QuadratureRule(cell.center_mass[None, :], np.array([1.0]))
    with pytest.raises(RuntimeError):
        orthonormalise(MonomialScalarBasisCell(cell, 1), quad, "cell 0")


def test_shape_check(cube_mesh):
    with pytest.raises(ValueError):
        OrthonormalisedBasis(MonomialScalarBasisCell(cube_mesh.cell(0), 1), np.eye(3))
