"""pyhho.core.hybridspace
Hybrid (cell + face) polynomial spaces on a polytopal mesh.

A :class:`HybridSpace` owns one basis family per cell and per face, built
once at construction, and offers quadrature-driven integration, L2
projection ("interpolation") of functions, and evaluation/norms of
discrete functions.

Layout of a vector of degrees of freedom (DOFs): all cell blocks first, in
the order of the cells, each of length ``nlocal_cell_dofs``; then all face
blocks, in the order of the faces, each of length ``nlocal_face_dofs``.
"""
from __future__ import annotations

import logging
from typing import Callable, Iterator, List, Tuple

import numpy as np
from scipy.linalg import cho_factor, cho_solve, LinAlgError

from pyhho.assembly.gram import compute_gram_matrix
from pyhho.core.mesh import Mesh
from pyhho.fem.basis import (
    MonomialScalarBasisCell, MonomialScalarBasisFace, dim_Pcell, dim_Pface,
)
from pyhho.fem.orthonormal import OrthonormalisedBasis
from pyhho.integration.quadrature import QuadratureRule, generate_quadrature_rule

logger = logging.getLogger(__name__)

_BASIS_CHOICES = ("Mon", "ON")


class HybridSpace:
    """
    Polynomial unknowns of degree `L` in the cells and `K` on the faces.

    Parameters
    ----------
    mesh : Mesh
        The polytopal mesh.
    K : int
        Degree of the face polynomials, ``K >= 0``.
    L : int
        Degree of the cell polynomials, ``L >= -1``. ``L = -1`` means the
        cell carries a single value reconstructed from its faces.
    choice_basis : {'Mon', 'ON'}
        'Mon' keeps the scaled monomials, 'ON' orthonormalises them in L2 on
        each cell and face. Orthonormalisation makes every basis evaluation
        a little more expensive; it pays off for high degrees or distorted
        cells.
    """

    def __init__(self, mesh: Mesh, K: int, L: int, choice_basis: str = "Mon"):
        if not isinstance(mesh, Mesh):
            raise TypeError("'mesh' must be a pyhho Mesh instance.")
        if int(K) < 0:
            raise ValueError(f"Face degree K must be >= 0, got {K}")
        if int(L) < -1:
            raise ValueError(f"Cell degree L must be >= -1, got {L}")
        if choice_basis not in _BASIS_CHOICES:
            raise ValueError(f"choice_basis must be one of {_BASIS_CHOICES}, got {choice_basis!r}")

        self._mesh = mesh
        self._K = int(K)
        self._L = int(L)
        self._Ldeg = max(self._L, 0)
        self._choice_basis = choice_basis

        self._nlocal_cell_dofs = dim_Pcell(self._Ldeg)
        self._nlocal_face_dofs = dim_Pface(self._K)
        self._nhighorder_dofs = dim_Pcell(self._K + 1)
        self._ngradient_dofs = self._nhighorder_dofs - 1
        self._ntotal_cell_dofs = self._nlocal_cell_dofs * mesh.n_cells()
        self._ntotal_face_dofs = self._nlocal_face_dofs * mesh.n_faces()
        self._nboundary_face_dofs = self._nlocal_face_dofs * len(mesh.boundary_faces)
        self._ninternal_face_dofs = self._ntotal_face_dofs - self._nboundary_face_dofs
        self._ntotal_dofs = self._ntotal_cell_dofs + self._ntotal_face_dofs

        # cell families also hold degree K+1 for high-order reconstructions
        self._cell_degree = max(self._Ldeg, self._K + 1)
        make_basis = self._orthonormalised if choice_basis == "ON" else self._monomial

        logger.debug(f"Building cell bases of degree {self._cell_degree} on {mesh.n_cells()} cells")
        self._cell_monomials: List[MonomialScalarBasisCell] = []
        self._cell_bases = []
        self._M_cell_basis: List[np.ndarray] = []
        for cell in mesh.cells_list:
            monomials = MonomialScalarBasisCell(cell, self._cell_degree)
            basis, matrix = make_basis(monomials, cell, 2 * self._cell_degree, f"cell {cell.gid}")
            self._cell_monomials.append(monomials)
            self._cell_bases.append(basis)
            self._M_cell_basis.append(matrix)

        logger.debug(f"Building face bases of degree {self._K} on {mesh.n_faces()} faces")
        self._face_monomials: List[MonomialScalarBasisFace] = []
        self._face_bases = []
        self._M_face_basis: List[np.ndarray] = []
        for face in mesh.faces_list:
            monomials = MonomialScalarBasisFace(face, self._K)
            basis, matrix = make_basis(monomials, face, 2 * self._K, f"face {face.gid}")
            self._face_monomials.append(monomials)
            self._face_bases.append(basis)
            self._M_face_basis.append(matrix)

        logger.info(f"HybridSpace(K={self._K}, L={self._L}, basis='{choice_basis}'): "
                    f"{self._ntotal_cell_dofs} cell DOFs + {self._ntotal_face_dofs} face DOFs")

    # ------------------------------------------------------------------
    #  Basis construction strategies
    # ------------------------------------------------------------------
    @staticmethod
    def _monomial(monomials, entity, doe, label):
        return monomials, np.eye(monomials.dimension())

    @staticmethod
    def _orthonormalised(monomials, entity, doe, label):
        quad = generate_quadrature_rule(entity, doe)
        basis = OrthonormalisedBasis.from_quadrature(monomials, quad, label)
        return basis, basis.matrix

    # ------------------------------------------------------------------
    #  Sizes and parameters
    # ------------------------------------------------------------------
    @property
    def mesh(self) -> Mesh:
        return self._mesh

    @property
    def K(self) -> int:
        """Polynomial degree of the face unknowns."""
        return self._K

    @property
    def L(self) -> int:
        """Polynomial degree of the cell unknowns (may be -1)."""
        return self._L

    @property
    def Ldeg(self) -> int:
        """`L`, or 0 when `L` is -1."""
        return self._Ldeg

    @property
    def choice_basis(self) -> str:
        return self._choice_basis

    @property
    def nlocal_cell_dofs(self) -> int:
        return self._nlocal_cell_dofs

    @property
    def ntotal_cell_dofs(self) -> int:
        return self._ntotal_cell_dofs

    @property
    def nlocal_face_dofs(self) -> int:
        return self._nlocal_face_dofs

    @property
    def ntotal_face_dofs(self) -> int:
        return self._ntotal_face_dofs

    @property
    def ninternal_face_dofs(self) -> int:
        return self._ninternal_face_dofs

    @property
    def nboundary_face_dofs(self) -> int:
        return self._nboundary_face_dofs

    @property
    def nhighorder_dofs(self) -> int:
        """Dimension of the cell polynomials of degree K+1."""
        return self._nhighorder_dofs

    @property
    def ngradient_dofs(self) -> int:
        """Dimension of the gradients of cell polynomials of degree K+1."""
        return self._ngradient_dofs

    @property
    def ntotal_dofs(self) -> int:
        return self._ntotal_dofs

    def cell_offset(self, iT: int) -> int:
        return iT * self._nlocal_cell_dofs

    def face_offset(self, iF: int) -> int:
        return self._ntotal_cell_dofs + iF * self._nlocal_face_dofs

    # ------------------------------------------------------------------
    #  Basis access
    # ------------------------------------------------------------------
    def _check_cell(self, iT: int) -> None:
        if not 0 <= iT < self._mesh.n_cells():
            raise ValueError(f"Cell index {iT} out of range [0, {self._mesh.n_cells()})")

    def _check_face(self, iF: int) -> None:
        if not 0 <= iF < self._mesh.n_faces():
            raise ValueError(f"Face index {iF} out of range [0, {self._mesh.n_faces()})")

    def cell_family(self, iT: int, type_basis: str = "basis"):
        self._check_cell(iT)
        return self._select(self._cell_monomials[iT], self._cell_bases[iT], type_basis)

    def face_family(self, iF: int, type_basis: str = "basis"):
        self._check_face(iF)
        return self._select(self._face_monomials[iF], self._face_bases[iF], type_basis)

    @staticmethod
    def _select(monomials, basis, type_basis):
        if type_basis == "basis":
            return basis
        if type_basis == "monomial":
            return monomials
        raise ValueError(f"type_basis must be 'basis' or 'monomial', got {type_basis!r}")

    def change_of_basis(self, cellface: str, iTF: int) -> np.ndarray:
        """Matrix expressing the basis of a cell/face in terms of its monomials."""
        if cellface == "cell":
            self._check_cell(iTF)
            return self._M_cell_basis[iTF]
        if cellface == "face":
            self._check_face(iTF)
            return self._M_face_basis[iTF]
        raise ValueError(f"cellface must be 'cell' or 'face', got {cellface!r}")

    def cell_monomial(self, iT: int, i: int) -> Callable[[np.ndarray], float]:
        family = self.cell_family(iT, "monomial")
        return lambda x: family.function(i, x)

    def cell_monomials_gradient(self, iT: int, i: int) -> Callable[[np.ndarray], np.ndarray]:
        family = self.cell_family(iT, "monomial")
        return lambda x: family.gradient(i, x)

    def face_monomial(self, iF: int, i: int) -> Callable[[np.ndarray], float]:
        family = self.face_family(iF, "monomial")
        return lambda x: family.function(i, x)

    def cell_basis(self, iT: int, i: int) -> Callable[[np.ndarray], float]:
        family = self.cell_family(iT)
        return lambda x: family.function(i, x)

    def cell_gradient(self, iT: int, i: int) -> Callable[[np.ndarray], np.ndarray]:
        """Gradient of the i-th cell basis function; index 0 is always zero."""
        family = self.cell_family(iT)
        return lambda x: family.gradient(i, x)

    def face_basis(self, iF: int, i: int) -> Callable[[np.ndarray], float]:
        family = self.face_family(iF)
        return lambda x: family.function(i, x)

    def face_gradient(self, iF: int, i: int) -> Callable[[np.ndarray], np.ndarray]:
        family = self.face_family(iF)
        return lambda x: family.gradient(i, x)

    # ------------------------------------------------------------------
    #  Bases at quadrature nodes and Gram matrices
    # ------------------------------------------------------------------
    def basis_quad(self, cellface: str, iTF: int, quad: QuadratureRule, degree: int,
                   type_basis: str = "basis") -> np.ndarray:
        """
        Values of the cell or face basis functions up to `degree` at the
        quadrature nodes, shape ``(dim_P(degree), len(quad))``.
        """
        if cellface == "cell":
            family, ndofs = self.cell_family(iTF, type_basis), dim_Pcell(degree)
        elif cellface == "face":
            family, ndofs = self.face_family(iTF, type_basis), dim_Pface(degree)
        else:
            raise ValueError(f"cellface must be 'cell' or 'face', got {cellface!r}")
        if degree > family.max_degree():
            raise ValueError(f"Degree {degree} requested but the {cellface} basis "
                             f"only goes up to degree {family.max_degree()}")
        return family.values(quad.points)[:ndofs]

    def grad_basis_quad(self, iT: int, quad: QuadratureRule, degree: int,
                        type_basis: str = "basis") -> np.ndarray:
        """Gradients of the cell basis functions up to `degree`, shape ``(dim_Pcell(degree), len(quad), 3)``."""
        family = self.cell_family(iT, type_basis)
        if degree > family.max_degree():
            raise ValueError(f"Degree {degree} requested but the cell basis "
                             f"only goes up to degree {family.max_degree()}")
        return family.gradients(quad.points)[:dim_Pcell(degree)]

    def gram_matrix(self, f_quad, g_quad, nrows: int, ncols: int, quad: QuadratureRule,
                    sym: bool, L2weight=None) -> np.ndarray:
        """
        ``(int f_i g_j)`` for scalar families or ``(int F_i . W G_j)`` for
        vector families, with an optional weight given at the quadrature
        nodes (one scalar per node, or one 3x3 tensor per node).
        """
        g_quad = np.asarray(g_quad, dtype=float)
        if L2weight is not None:
            W = np.asarray(L2weight, dtype=float)
            if W.shape[0] != len(quad):
                raise ValueError(f"Weight given at {W.shape[0]} nodes, quadrature has {len(quad)}")
            if g_quad.ndim == 2:
                g_quad = g_quad * W[None, :]
            else:
                g_quad = np.einsum("qab,jqb->jqa", W, g_quad)
        return compute_gram_matrix(f_quad, g_quad, quad, nrows, ncols, sym)

    # ------------------------------------------------------------------
    #  Integration helpers
    #  Each call regenerates a quadrature rule: fine for diagnostics,
    #  too slow for assembly loops.
    # ------------------------------------------------------------------
    @staticmethod
    def _nodes(quad: QuadratureRule) -> Iterator[Tuple[int, np.ndarray, float]]:
        for iqn, (x, w) in enumerate(quad):
            yield iqn, x, w

    def quadrature_over_cell(self, iT: int, f: Callable[[int, np.ndarray, float], None]) -> None:
        """Call ``f(iqn, x, w)`` on each node of a rule of exactness 2*Ldeg+2 on cell `iT`."""
        self._check_cell(iT)
        quadT = generate_quadrature_rule(self._mesh.cell(iT), 2 * self._Ldeg + 2)
        for iqn, x, w in self._nodes(quadT):
            f(iqn, x, w)

    def quadrature_over_face(self, iF: int, f: Callable[[int, np.ndarray, float], None]) -> None:
        """Call ``f(iqn, x, w)`` on each node of a rule of exactness 2*K+2 on face `iF`."""
        self._check_face(iF)
        quadF = generate_quadrature_rule(self._mesh.face(iF), 2 * self._K + 2)
        for iqn, x, w in self._nodes(quadF):
            f(iqn, x, w)

    def integrate_over_cell(self, iT: int, f: Callable[..., float]) -> float:
        """Integral of ``f(x, y, z)`` over cell `iT`."""
        ans = 0.0

        def accumulate(iqn, x, w):
            nonlocal ans
            ans += w * f(*x)

        self.quadrature_over_cell(iT, accumulate)
        return ans

    def integrate_over_face(self, iF: int, f: Callable[..., float]) -> float:
        """Integral of ``f(x, y, z)`` over face `iF`."""
        ans = 0.0

        def accumulate(iqn, x, w):
            nonlocal ans
            ans += w * f(*x)

        self.quadrature_over_face(iF, accumulate)
        return ans

    def integrate_over_domain(self, f: Callable[..., float]) -> float:
        return sum(self.integrate_over_cell(iT, f) for iT in range(self._mesh.n_cells()))

    # ------------------------------------------------------------------
    #  Interpolation
    # ------------------------------------------------------------------
    @staticmethod
    def _solve_local(M: np.ndarray, b: np.ndarray, label: str) -> np.ndarray:
        try:
            factor = cho_factor(M)
        except LinAlgError as e:
            raise RuntimeError(f"Local mass matrix on {label} is not positive definite; "
                               f"the quadrature rule is too coarse or the {label.split()[0]} "
                               f"is degenerate") from e
        return cho_solve(factor, b)

    def _l2_projection(self, cellface: str, iTF: int, entity, degree: int,
                       f: Callable[..., float], doe: int) -> np.ndarray:
        quad = generate_quadrature_rule(entity, doe)
        phi_quad = self.basis_quad(cellface, iTF, quad, degree)
        M = compute_gram_matrix(phi_quad, phi_quad, quad, sym=True)
        f_quad = np.array([f(*x) for x in quad.points], dtype=float)
        b = phi_quad @ (quad.weights * f_quad)
        return self._solve_local(M, b, f"{cellface} {iTF}")

    def interpolate(self, f: Callable[..., float], doe: int) -> np.ndarray:
        """
        L2 projection of ``f(x, y, z)`` on every cell and face.

        Parameters
        ----------
        f : callable
            Scalar function of the three coordinates.
        doe : int
            Degree of exactness of the quadrature rules used for the
            projections.

        Returns
        -------
        ndarray
            Vector of length `ntotal_dofs` in the cells-then-faces layout.
            When ``L = -1`` each cell value is the weighted average of the
            constant coefficients of its faces (see :meth:`compute_weights`).
        """
        XTF = np.zeros(self._ntotal_dofs)
        nF = self._nlocal_face_dofs
        nT = self._nlocal_cell_dofs

        for face in self._mesh.faces_list:
            iF = face.gid
            offset = self.face_offset(iF)
            XTF[offset:offset + nF] = self._l2_projection("face", iF, face, self._K, f, doe)

        for cell in self._mesh.cells_list:
            iT = cell.gid
            offset = self.cell_offset(iT)
            if self._L >= 0:
                XTF[offset:offset + nT] = self._l2_projection("cell", iT, cell, self._Ldeg, f, doe)
                continue

            # L = -1: the cell value is an average of face values
            barycoefT = self.compute_weights(iT)
            xT = cell.center_mass
            phiT_cst = self._cell_bases[iT].function(0, xT)
            value = 0.0
            for ilF, iF in enumerate(cell.faces):
                xF = self._mesh.face(iF).center_mass
                phiF_cst = self._face_bases[iF].function(0, xF)
                value += barycoefT[ilF] * phiF_cst / phiT_cst * XTF[self.face_offset(iF)]
            XTF[offset] = value

        logger.debug(f"Interpolated on {self._mesh.n_faces()} faces and {self._mesh.n_cells()} cells "
                     f"(doe={doe})")
        return XTF

    def compute_weights(self, iT: int) -> np.ndarray:
        """
        Weights ``|F| d_TF / (3 |T|)`` of the faces of cell `iT`, where
        ``d_TF`` is the signed distance from the cell center to the plane of
        F. They are the volume fractions of the pyramids joining the center
        to the faces and sum to 1.
        """
        self._check_cell(iT)
        cell = self._mesh.cell(iT)
        barycoefT = np.zeros(cell.n_faces())
        for ilF, iF in enumerate(cell.faces):
            face = self._mesh.face(iF)
            nTF = self._mesh.cell_face_normal(iT, ilF)
            dTF = float(np.dot(face.center_mass - cell.center_mass, nTF))
            barycoefT[ilF] = face.measure * dTF / (3.0 * cell.measure)
        return barycoefT

    # ------------------------------------------------------------------
    #  Discrete functions
    # ------------------------------------------------------------------
    def _check_dofs(self, Xh) -> np.ndarray:
        Xh = np.asarray(Xh, dtype=float)
        if Xh.shape != (self._ntotal_dofs,):
            raise ValueError(f"DOF vector of shape {Xh.shape}, expected ({self._ntotal_dofs},)")
        return Xh

    def cell_dofs(self, Xh, iT: int) -> np.ndarray:
        self._check_cell(iT)
        offset = self.cell_offset(iT)
        return self._check_dofs(Xh)[offset:offset + self._nlocal_cell_dofs]

    def face_dofs(self, Xh, iF: int) -> np.ndarray:
        self._check_face(iF)
        offset = self.face_offset(iF)
        return self._check_dofs(Xh)[offset:offset + self._nlocal_face_dofs]

    def restr(self, Xh, iT: int) -> np.ndarray:
        """Local unknowns of cell `iT`: its cell block, then the blocks of its faces."""
        self._check_cell(iT)
        cell = self._mesh.cell(iT)
        blocks = [self.cell_dofs(Xh, iT)] + [self.face_dofs(Xh, iF) for iF in cell.faces]
        return np.concatenate(blocks)

    def evaluate_in_cell(self, Xh, iT: int, x) -> float:
        uT = self.cell_dofs(Xh, iT)
        return float(uT @ self._cell_bases[iT].values(x)[:self._nlocal_cell_dofs, 0])

    def evaluate_in_face(self, Xh, iF: int, x) -> float:
        uF = self.face_dofs(Xh, iF)
        return float(uF @ self._face_bases[iF].values(x)[:, 0])

    def L2norm(self, Xh) -> float:
        """L2 norm of the cell polynomials of a discrete function."""
        Xh = self._check_dofs(Xh)
        value = 0.0
        for cell in self._mesh.cells_list:
            iT = cell.gid
            quadT = generate_quadrature_rule(cell, 2 * self._Ldeg)
            phiT_quadT = self.basis_quad("cell", iT, quadT, self._Ldeg)
            MT = compute_gram_matrix(phiT_quadT, phiT_quadT, quadT, sym=True)
            uT = self.cell_dofs(Xh, iT)
            value += uT @ MT @ uT
        return float(np.sqrt(max(value, 0.0)))

    def H1norm(self, Xh) -> float:
        """
        Discrete H1 norm: gradients of the cell polynomials plus the scaled
        jumps ``h_F^{-1} ||u_F - pi_F u_T||^2_F`` between faces and cells,
        where ``pi_F`` is the L2 projection on the face polynomials of
        degree K.
        """
        Xh = self._check_dofs(Xh)
        value = 0.0
        for cell in self._mesh.cells_list:
            iT = cell.gid
            uT = self.cell_dofs(Xh, iT)
            quadT = generate_quadrature_rule(cell, 2 * self._Ldeg)
            dphiT_quadT = self.grad_basis_quad(iT, quadT, self._Ldeg)
            StiffT = compute_gram_matrix(dphiT_quadT, dphiT_quadT, quadT, sym=True)
            value += uT @ StiffT @ uT

            for iF in cell.faces:
                face = self._mesh.face(iF)
                quadF = generate_quadrature_rule(face, 2 * max(self._K, self._Ldeg))
                phiT_quadF = self.basis_quad("cell", iT, quadF, self._Ldeg)
                phiF_quadF = self.basis_quad("face", iF, quadF, self._K)
                MF = compute_gram_matrix(phiF_quadF, phiF_quadF, quadF, sym=True)
                MFT = compute_gram_matrix(phiF_quadF, phiT_quadF, quadF)
                piF_uT = self._solve_local(MF, MFT @ uT, f"face {iF}")
                jump = (self.face_dofs(Xh, iF) - piF_uT) @ phiF_quadF
                value += (quadF.weights @ jump ** 2) / face.diam
        return float(np.sqrt(max(value, 0.0)))

    def Linf_face(self, Xh) -> float:
        """Largest absolute coefficient on the face basis functions."""
        face_block = self._check_dofs(Xh)[self._ntotal_cell_dofs:]
        return float(np.abs(face_block).max()) if face_block.size else 0.0

    def vertex_values(self, Xh, from_dofs: str = "cell") -> np.ndarray:
        """
        Values of a discrete function at the mesh vertices, averaged over the
        cells (``from_dofs='cell'``) or faces (``'face'``) sharing each vertex.
        """
        Xh = self._check_dofs(Xh)
        if from_dofs == "cell":
            incident, evaluate = self._mesh.vertex_cells, self.evaluate_in_cell
        elif from_dofs == "face":
            incident, evaluate = self._mesh.vertex_faces, self.evaluate_in_face
        else:
            raise ValueError(f"from_dofs must be 'cell' or 'face', got {from_dofs!r}")

        values = np.zeros(self._mesh.n_vertices())
        for iV, xV in enumerate(self._mesh.vertices):
            entities = incident(iV)
            if entities:
                values[iV] = sum(evaluate(Xh, i, xV) for i in entities) / len(entities)
        return values

    def __repr__(self):
        return (f"<HybridSpace K={self._K}, L={self._L}, basis='{self._choice_basis}', "
                f"ntotal_dofs={self._ntotal_dofs}>")
