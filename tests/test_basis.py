import numpy as np
import pytest
import sympy as sp

from pyhho.fem.basis import (
    dim_Pcell, dim_Pface, dim_Pedge, cell_powers, face_powers, edge_powers,
    MonomialScalarBasisCell, MonomialScalarBasisFace, MonomialScalarBasisEdge,
    evaluate_quad_function, evaluate_quad_gradient, evaluate_quad_curl,
)
from pyhho.integration.quadrature import generate_quadrature_rule


@pytest.mark.parametrize("m", range(6))
def test_dimensions_match_enumeration(m):
    assert dim_Pcell(m) == (m + 1) * (m + 2) * (m + 3) // 6 == len(cell_powers(m))
    assert dim_Pface(m) == (m + 1) * (m + 2) // 2 == len(face_powers(m))
    assert dim_Pedge(m) == m + 1 == len(edge_powers(m))


def test_enumeration_order_degree_one():
    assert [tuple(p) for p in cell_powers(1)] == [(0, 0, 0), (0, 0, 1), (0, 1, 0), (1, 0, 0)]
    assert [tuple(p) for p in face_powers(1)] == [(0, 0), (0, 1), (1, 0)]
    assert [int(p) for p in edge_powers(1).ravel()] == [0, 1]


def test_powers_are_graded_by_total_degree():
    totals = cell_powers(4).sum(axis=1)
    assert np.all(np.diff(totals) >= 0)


def test_negative_degree_rejected():
    with pytest.raises(ValueError):
        dim_Pcell(-1)
    with pytest.raises(ValueError):
        face_powers(-2)


@pytest.mark.parametrize("degree", [0, 1, 3])
def test_slot_zero_is_constant(cube_mesh, degree):
    rng = np.random.default_rng(0)
    X = rng.random((7, 3))
    cell = cube_mesh.cell(0)
    face = cube_mesh.face(0)
    edge = cube_mesh.edge(0)
    for basis in (MonomialScalarBasisCell(cell, degree),
                  MonomialScalarBasisFace(face, degree),
                  MonomialScalarBasisEdge(edge, degree)):
        assert np.allclose(basis.values(X)[0], 1.0)
        assert np.allclose(basis.gradients(X)[0], 0.0)
        assert basis.function(0, X[0]) == 1.0
        assert np.allclose(basis.gradient(0, X[0]), 0.0)


def test_cell_monomials_against_sympy(cube_mesh):
    cell = cube_mesh.cell(0)
    basis = MonomialScalarBasisCell(cell, 3)
    x, y, z = sp.symbols("x y z")
    xT, hT = cell.center_mass, cell.diam
    point = np.array([0.2, 0.7, 0.9])
    subs = dict(zip((x, y, z), point))
    for i, (a, b, c) in enumerate(basis.powers):
        expr = ((x - xT[0]) / hT) ** int(a) * ((y - xT[1]) / hT) ** int(b) * ((z - xT[2]) / hT) ** int(c)
        assert np.isclose(basis.function(i, point), float(expr.subs(subs)))
        grad = [float(sp.diff(expr, v).subs(subs)) for v in (x, y, z)]
        assert np.allclose(basis.gradient(i, point), grad)
    assert np.allclose(basis.values(point)[:, 0], [basis.function(i, point) for i in range(basis.dimension())])


def test_face_gradients_are_tangential(cube_mesh):
    face = cube_mesh.face(3)
    basis = MonomialScalarBasisFace(face, 2)
    quad = generate_quadrature_rule(face, 4)
    grads = evaluate_quad_gradient(basis, quad)
    curls = evaluate_quad_curl(basis, quad)
    assert grads.shape == curls.shape == (dim_Pface(2), len(quad), 3)
    assert np.allclose(grads @ face.normal, 0.0)
    assert np.allclose(curls @ face.normal, 0.0)
    assert np.allclose(np.einsum("iqd,iqd->iq", grads, curls), 0.0)
    assert np.allclose(np.linalg.norm(curls, axis=2), np.linalg.norm(grads, axis=2))


def test_face_linear_monomials_follow_local_frame(cube_mesh):
    face = cube_mesh.face(0)
    basis = MonomialScalarBasisFace(face, 1)
    t = face.edge_tangent(0)
    n = face.edge_normal(0)
    x = face.center_mass + 0.3 * t - 0.1 * n
    # slot 1 is y_2 (the in-plane normal axis), slot 2 is y_1 (the tangent axis)
    assert np.isclose(basis.function(1, x), -0.1 / face.diam)
    assert np.isclose(basis.function(2, x), 0.3 / face.diam)
    assert np.allclose(basis.gradient(2, x), t / face.diam)


def test_edge_basis(cube_mesh):
    edge = cube_mesh.edge(0)
    basis = MonomialScalarBasisEdge(edge, 3)
    x = edge.center_mass + 0.25 * edge.tangent
    s = 0.25 / edge.diam
    assert np.allclose(basis.values(x)[:, 0], [1.0, s, s ** 2, s ** 3])
    assert np.allclose(basis.gradient(2, x), 2 * s / edge.diam * edge.tangent)
    assert np.allclose(basis.gradients(x)[2, 0], basis.gradient(2, x))


def test_evaluate_quad_function_prefix(tet_mesh):
    cell = tet_mesh.cell(0)
    basis = MonomialScalarBasisCell(cell, 2)
    quad = generate_quadrature_rule(cell, 4)
    full = evaluate_quad_function(basis, quad)
    assert full.shape == (10, len(quad))
    assert np.array_equal(evaluate_quad_function(basis, quad, 4), full[:4])


def test_points_must_be_three_dimensional(cube_mesh):
    basis = MonomialScalarBasisCell(cube_mesh.cell(0), 1)
    with pytest.raises(ValueError):
        basis.values(np.zeros((4, 2)))


def test_edge_index_out_of_range(cube_mesh):
    edge = cube_mesh.edge(0)
    basis = MonomialScalarBasisEdge(edge, 2)
    with pytest.raises(IndexError):
        basis.function(3, edge.center_mass)
    with pytest.raises(IndexError):
        basis.gradient(-1, edge.center_mass)
