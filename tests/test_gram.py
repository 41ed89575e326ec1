import numpy as np
import pytest

from pyhho.assembly.gram import compute_gram_matrix
from pyhho.fem.basis import MonomialScalarBasisCell, MonomialScalarBasisFace
from pyhho.fem.operators.inner import scalar_product, vector_product
from pyhho.integration.quadrature import generate_quadrature_rule


@pytest.fixture
def cell_family(prism_mesh):
    cell = prism_mesh.cell(0)
    basis = MonomialScalarBasisCell(cell, 2)
    quad = generate_quadrature_rule(cell, 4)
    return basis, quad


def test_symmetric_path_is_exactly_symmetric(cell_family):
    basis, quad = cell_family
    phi = basis.values(quad.points)
    M = compute_gram_matrix(phi, phi, quad, sym=True)
    assert M.shape == (10, 10)
    assert np.array_equal(M, M.T)
    assert np.allclose(M, compute_gram_matrix(phi, phi, quad))
    dphi = basis.gradients(quad.points)
    S = compute_gram_matrix(dphi, dphi, quad, sym=True)
    assert np.array_equal(S, S.T)


def test_mass_matrix_entries(cube_mesh):
    cell = cube_mesh.cell(0)
    basis = MonomialScalarBasisCell(cell, 1)
    quad = generate_quadrature_rule(cell, 2)
    phi = basis.values(quad.points)
    M = compute_gram_matrix(phi, phi, quad, sym=True)
    h2 = cell.diam ** 2
    # (x - 1/2)^2 integrates to 1/12 over the unit cube
    assert np.allclose(M, np.diag([1.0, 1 / (12 * h2), 1 / (12 * h2), 1 / (12 * h2)]), atol=1e-14)


def test_partial_families(cell_family):
    basis, quad = cell_family
    phi = basis.values(quad.points)
    full = compute_gram_matrix(phi, phi, quad)
    assert np.allclose(compute_gram_matrix(phi, phi, quad, nrows=4, ncols=7), full[:4, :7])
    sym = compute_gram_matrix(phi, phi, quad, nrows=4, ncols=4, sym=True)
    assert np.array_equal(sym, sym.T)
    assert np.allclose(sym, full[:4, :4])


def test_vector_times_scalar_blocks(cell_family):
    basis, quad = cell_family
    phi = basis.values(quad.points)[:4]
    dphi = basis.gradients(quad.points)
    M = compute_gram_matrix(dphi, phi, quad)
    assert M.shape == (10, 12)
    for k in range(3):
        Mk = compute_gram_matrix(dphi[:, :, k], phi, quad)
        assert np.allclose(M[:, 4 * k:4 * (k + 1)], Mk)


def test_weights_array_accepted(cell_family):
    basis, quad = cell_family
    phi = basis.values(quad.points)
    assert np.allclose(compute_gram_matrix(phi, phi, quad.weights), compute_gram_matrix(phi, phi, quad))


def test_preconditions(cell_family):
    basis, quad = cell_family
    phi = basis.values(quad.points)
    dphi = basis.gradients(quad.points)
    with pytest.raises(ValueError):
        compute_gram_matrix(phi[:, :-1], phi, quad)
    with pytest.raises(ValueError):
        compute_gram_matrix(phi, phi, quad, nrows=11)
    with pytest.raises(ValueError):
        compute_gram_matrix(phi, phi, quad, nrows=5, ncols=3, sym=True)
    with pytest.raises(ValueError):
        compute_gram_matrix(dphi, phi, quad, nrows=2)
    with pytest.raises(ValueError):
        compute_gram_matrix(phi, dphi, quad)


def test_products_on_sampled_vectors(cube_mesh):
    face = cube_mesh.face(2)
    basis = MonomialScalarBasisFace(face, 2)
    quad = generate_quadrature_rule(face, 4)
    grads = basis.gradients(quad.points)
    t = face.edge_tangent(0)
    dt = scalar_product(grads, t)
    assert dt.shape == (6, len(quad))
    # the derivative of slot 2 (first local axis) along the tangent is 1/h_F
    assert np.allclose(dt[2], 1.0 / face.diam)
    Mt = compute_gram_matrix(dt, basis.values(quad.points), quad)
    assert Mt.shape == (6, 6)
    assert np.allclose(vector_product(grads, face.normal), basis.curls(quad.points))
    assert scalar_product(2.0, 3.0) == 6.0
    with pytest.raises(ValueError):
        scalar_product(grads, np.ones(2))
    with pytest.raises(ValueError):
        vector_product(grads, np.ones(2))


def test_negative_sizes_rejected(cell_family):
    basis, quad = cell_family
    phi = basis.values(quad.points)
    with pytest.raises(ValueError, match="non-negative"):
        compute_gram_matrix(phi, phi, quad, nrows=-1)
    with pytest.raises(ValueError, match="non-negative"):
        compute_gram_matrix(phi, phi, quad, nrows=2, ncols=-3)
