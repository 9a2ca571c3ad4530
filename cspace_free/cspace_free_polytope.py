"""
Certified collision-free polytopes in the C-space of a robot.

A C-space polytope {s | C·s ≤ d, s_lower ≤ s ≤ s_upper} is certified
collision free when, for every pair of collision geometries on different
bodies, a separating plane a(s)ᵀx + b(s) = 0 keeps them apart throughout the
polytope. Every plane gets its own SOS program (certificate.py), solved in
parallel (search.py). Two outer loops grow a certified polytope:

  * bilinear alternation: certify C, d; then fix the face Lagrangians and
    push the faces away from the inscribed ellipsoid; repeat until the
    ellipsoid volume stops growing.
  * binary search: scale d around a center point
        d(scale) = scale·d_init + (1 − scale)·C·s_center
    and bisect for the largest certifiable scale.
"""
import logging

import cvxpy as cp
import numpy as np
import sympy as sp

from . import search
from .certificate import construct_plane_search_program
from .errors import MissingCertificateError, PreconditionError
from .hpolyhedron import HPolyhedron
from .kinematics import multilinear_monomial_basis_array
from .options import (BilinearAlternationOptions, BinarySearchOptions,
                      CspaceFreePolytopeOptions, FindSeparationCertificateGivenPolytopeOptions)
from .polynomial import NUM_Y, calc_d_minus_Cs, calc_s_bounds_polynomials
from .polytope_growth import (find_polytope_given_lagrangian,
                              get_gram_var_size_for_polytope_search_program)
from .program import solve_with_backoff
from .redundancy import find_redundant_inequalities
from .separating_plane import (CSpaceSeparatingPlane, SeparatingPlaneOrder, generate_rationals,
                               sorted_pair)

logger = logging.getLogger(__name__)


class SearchResult:
    """A certified polytope with the separating planes that certify it."""

    def __init__(self):
        self.C = None
        self.d = None
        self.certified_polytope = None
        # Keyed by plane index.
        self.a = {}
        self.b = {}
        self.num_iter = 0
        # det(Q) of the scaled inscribed ellipsoid, when the search computed it.
        self.ellipsoid_det = None

    def set_polytope(self, C, d, cspace):
        C = np.atleast_2d(np.asarray(C, dtype=float))
        d = np.asarray(d, dtype=float).reshape(-1)
        if C.shape[0] != d.shape[0]:
            raise PreconditionError(f"C has {C.shape[0]} rows but d has {d.shape[0]}")
        self.C = C
        self.d = d
        self.certified_polytope = cspace.get_polyhedron_with_joint_limits(C, d)

    def set_separating_planes(self, certificates_result):
        self.a = {}
        self.b = {}
        for certificate in certificates_result:
            if certificate is None:
                raise PreconditionError("every certificate must be present")
            self.a[certificate.plane_index] = certificate.a
            self.b[certificate.plane_index] = certificate.b

    def update_separating_planes(self, certificates_result):
        for certificate in certificates_result:
            if certificate is not None:
                self.a[certificate.plane_index] = certificate.a
                self.b[certificate.plane_index] = certificate.b


class CspaceFreePolytope:
    def __init__(self, kinematics, geometries, plane_order=SeparatingPlaneOrder.AFFINE,
                 q_star=None, options=None):
        options = options or CspaceFreePolytopeOptions()
        self.kinematics = kinematics
        self.with_cross_y = options.with_cross_y
        self.num_s = kinematics.num_s
        self.nvars = self.num_s + NUM_Y
        self.q_star = (np.zeros(self.num_s) if q_star is None
                       else np.asarray(q_star, dtype=float).reshape(-1))
        self.s_lower = np.asarray(
            kinematics.compute_s_value(kinematics.position_lower_limits, self.q_star), dtype=float)
        self.s_upper = np.asarray(
            kinematics.compute_s_value(kinematics.position_upper_limits, self.q_star), dtype=float)
        self.s_names = [f"s{i}" for i in range(self.num_s)]
        self.y_names = [f"y{i}" for i in range(NUM_Y)]
        self.s_minus_s_lower, self.s_upper_minus_s = calc_s_bounds_polynomials(
            self.s_lower, self.s_upper, self.nvars)

        geometries = sorted(geometries, key=lambda g: g.id)
        self.separating_planes = []
        self.map_geometries_to_separating_planes = {}
        self.monomial_basis_arrays = []
        for i, positive in enumerate(geometries):
            for negative in geometries[i + 1:]:
                if positive.body_index == negative.body_index:
                    continue
                plane_index = len(self.separating_planes)
                expressed_body = kinematics.expressed_body(
                    positive.body_index, negative.body_index)
                s_indices = kinematics.s_indices_on_chain(
                    positive.body_index, negative.body_index)
                plane = CSpaceSeparatingPlane(
                    positive, negative, expressed_body, s_indices, plane_order, self.nvars,
                    name=f"plane{plane_index}")
                self.separating_planes.append(plane)
                self.map_geometries_to_separating_planes[plane.geometry_pair] = plane_index
                self.monomial_basis_arrays.append(tuple(
                    multilinear_monomial_basis_array(
                        set(s_indices) | set(kinematics.s_indices_on_chain(
                            expressed_body, geometry.body_index)),
                        self.num_s)
                    for geometry in (positive, negative)))
        self.plane_geometries = generate_rationals(
            self.separating_planes, kinematics, self.q_star)
        logger.debug("%d separating planes over %d C-space variables",
                     len(self.separating_planes), self.num_s)

    def plane_name(self, plane_index):
        plane = self.separating_planes[plane_index]
        return "(" + ", ".join(
            f"{geometry.name} on {self.kinematics.body_name(geometry.body_index)}"
            for geometry in (plane.positive_side_geometry, plane.negative_side_geometry)) + ")"

    def separating_plane_expressions(self, a, b, tol=1e-6):
        """Solved a(s), b(s) as sympy expressions, dropping |coefficient| <= tol."""
        symbols = sp.symbols(self.s_names + self.y_names)
        return ([p.prune(tol).to_sympy(symbols) for p in a],
                b.prune(tol).to_sympy(symbols))

    def get_separating_plane_index(self, geometry_pair):
        """Index of the plane separating geometry_pair, or -1."""
        return self.map_geometries_to_separating_planes.get(sorted_pair(*geometry_pair), -1)

    def active_plane_indices(self, ignored_collision_pairs=frozenset()):
        ignored = {sorted_pair(*pair) for pair in ignored_collision_pairs}
        return [i for i, plane in enumerate(self.separating_planes)
                if plane.geometry_pair not in ignored]

    def calc_d_minus_Cs(self, C, d):
        return calc_d_minus_Cs(C, d, self.num_s, self.nvars)

    def find_redundant_inequalities(self, C, d, tighten=0.0):
        return find_redundant_inequalities(C, d, self.s_lower, self.s_upper, tighten)

    def get_polyhedron_with_joint_limits(self, C, d):
        """{s | C·s ≤ d, s_lower ≤ s ≤ s_upper} as one HPolyhedron."""
        C = np.atleast_2d(np.asarray(C, dtype=float))
        d = np.asarray(d, dtype=float).reshape(-1)
        A = np.vstack([C, np.eye(self.num_s), -np.eye(self.num_s)])
        b = np.concatenate([d, self.s_upper, -self.s_lower])
        return HPolyhedron(A, b)

    def construct_plane_search_program(self, plane_geometries, d_minus_Cs,
                                       C_redundant_indices=frozenset(),
                                       s_lower_redundant_indices=frozenset(),
                                       s_upper_redundant_indices=frozenset()):
        plane_index = plane_geometries.plane_index
        return construct_plane_search_program(
            self.separating_planes[plane_index], plane_geometries, d_minus_Cs,
            self.s_minus_s_lower, self.s_upper_minus_s, self.monomial_basis_arrays[plane_index],
            self.with_cross_y, self.s_names, self.y_names, C_redundant_indices,
            s_lower_redundant_indices, s_upper_redundant_indices)

    def make_is_geometry_separable_program(self, geometry_pair, C, d):
        plane_index = self.get_separating_plane_index(geometry_pair)
        if plane_index < 0:
            raise MissingCertificateError(
                f"geometry pair {geometry_pair} does not need a separation certificate")
        C_redundant, s_lower_redundant, s_upper_redundant = self.find_redundant_inequalities(C, d)
        return self.construct_plane_search_program(
            self.plane_geometries[plane_index], self.calc_d_minus_Cs(C, d),
            C_redundant, s_lower_redundant, s_upper_redundant)

    def solve_separation_certificate_program(self, certificate_program, options=None):
        """Returns a SeparationCertificateResult, or None if the program fails."""
        options = options or FindSeparationCertificateGivenPolytopeOptions()
        plane_index = certificate_program.plane_index
        if not 0 <= plane_index < len(self.separating_planes):
            raise PreconditionError(f"no separating plane {plane_index}")
        plane = self.separating_planes[plane_index]
        result = solve_with_backoff(
            certificate_program.prog, options.backoff_scale, options.solver_settings())
        if not result.is_success:
            return None
        return certificate_program.certificate.get_solution(
            plane_index, plane.a, plane.b, plane.decision_variables, result)

    def find_separation_certificate_given_polytope(self, C, d,
                                                   ignored_collision_pairs=frozenset(),
                                                   options=None):
        return search.find_separation_certificate_given_polytope(
            self, C, d, ignored_collision_pairs, options)

    def certify_polytope(self, C, d, ignored_collision_pairs=frozenset(), options=None):
        return search.certify_polytope(self, C, d, ignored_collision_pairs, options)

    def search_with_bilinear_alternation(self, C_init, d_init,
                                         ignored_collision_pairs=frozenset(), options=None):
        """
        Alternate between certifying C, d and growing C, d with the face
        Lagrangians fixed. Returns the list of SearchResult, one per iteration
        whose certificate step succeeded.
        """
        options = options or BilinearAlternationOptions()
        C = np.atleast_2d(np.asarray(C_init, dtype=float))
        d = np.asarray(d_init, dtype=float).reshape(-1)
        if C.shape[0] != d.shape[0]:
            raise PreconditionError(f"C_init has {C.shape[0]} rows but d_init has {d.shape[0]}")
        if C.shape[1] != self.num_s:
            raise PreconditionError(f"C_init has {C.shape[1]} columns, expected {self.num_s}")
        if options.max_iter < 0:
            raise PreconditionError("max_iter must be non-negative")
        if options.convergence_tol < 0:
            raise PreconditionError("convergence_tol must be non-negative")
        if not 0 < options.ellipsoid_scaling <= 1:
            raise PreconditionError("ellipsoid_scaling must be in (0, 1]")

        # The growth program keeps |cᵢ|₂ ≤ 1, so start from unit rows.
        C_row_norm = np.linalg.norm(C, axis=1)
        if np.any(C_row_norm == 0):
            raise PreconditionError("C_init contains rows with all 0 entries")
        C = C / C_row_norm[:, None]
        d = d / C_row_norm

        C_var = cp.Variable(C.shape, name="C")
        d_var = cp.Variable(d.shape[0], name="d")
        ellipsoid_margins = cp.Variable(d.shape[0], name="ellipsoid_margin")
        d_minus_Cs = self.calc_d_minus_Cs(C_var, d_var)
        gram_total_size = get_gram_var_size_for_polytope_search_program(
            self, ignored_collision_pairs,
            options.find_polytope_options.search_s_bounds_lagrangians)

        ellipsoid = self.get_polyhedron_with_joint_limits(C, d).maximum_volume_inscribed_ellipsoid(
            options.find_polytope_options.solver)
        ellipsoid_Q = options.ellipsoid_scaling * ellipsoid.shape_matrix()
        prev_cost = np.linalg.det(ellipsoid_Q)
        logger.debug("det(Q) at the beginning is %s", prev_cost)

        ret = []
        iteration = 0
        while iteration < options.max_iter:
            certificates_result = self.find_separation_certificate_given_polytope(
                C, d, ignored_collision_pairs, options.find_lagrangian_options)
            if any(certificate is None for certificate in certificates_result):
                logger.debug("Cannot find the separation certificate at iteration %d "
                             "given the polytope.", iteration)
                break
            result = SearchResult()
            result.set_polytope(C, d, self)
            result.num_iter = iteration
            result.set_separating_planes(certificates_result)
            ret.append(result)

            polytope_result = find_polytope_given_lagrangian(
                self, ignored_collision_pairs, C_var, d_var, d_minus_Cs, certificates_result,
                ellipsoid_Q, ellipsoid.center, ellipsoid_margins, gram_total_size,
                options.find_polytope_options)
            if polytope_result is None:
                logger.debug("Cannot find the separation certificate at iteration %d "
                             "given the Lagrangians.", iteration)
                break
            C = polytope_result.C
            d = polytope_result.d
            result.set_polytope(C, d, self)
            result.a = polytope_result.a
            result.b = polytope_result.b
            result.num_iter = iteration
            ellipsoid = result.certified_polytope.maximum_volume_inscribed_ellipsoid(
                options.find_polytope_options.solver)
            ellipsoid_Q = options.ellipsoid_scaling * ellipsoid.shape_matrix()
            cost = np.linalg.det(ellipsoid_Q)
            result.ellipsoid_det = cost
            logger.debug("Iteration %d: det(Q)=%s", iteration, cost)
            if (cost - prev_cost) / prev_cost < options.convergence_tol:
                break
            prev_cost = cost
            iteration += 1
        return ret

    def binary_search(self, C, d_init, s_center, ignored_collision_pairs=frozenset(),
                      options=None):
        """
        Bisect on the scale of {s | C·s ≤ scale·d_init + (1 − scale)·C·s_center}.

        A pair certified at some scale is not re-certified at smaller scales,
        which assumes a polytope containing a certified one for that pair stays
        certifiable for it. Returns a SearchResult, or None if scale_min
        itself cannot be certified.
        """
        options = options or BinarySearchOptions()
        C = np.atleast_2d(np.asarray(C, dtype=float))
        d_init = np.asarray(d_init, dtype=float).reshape(-1)
        s_center = np.asarray(s_center, dtype=float).reshape(-1)
        if np.any(C @ s_center > d_init):
            raise PreconditionError("s_center is outside the initial polytope")
        if np.any(s_center < self.s_lower) or np.any(s_center > self.s_upper):
            raise PreconditionError("s_center is outside the C-space box")
        if options.scale_min < 0:
            raise PreconditionError("scale_min must be non-negative")
        if not np.isfinite(options.scale_max):
            raise PreconditionError("scale_max must be finite")
        if options.scale_min > options.scale_max:
            raise PreconditionError("scale_min exceeds scale_max")
        if options.max_iter < 0:
            raise PreconditionError("max_iter must be non-negative")
        if options.convergence_tol <= 0:
            raise PreconditionError("convergence_tol must be positive")
        if np.any(np.linalg.norm(C, axis=1) == 0):
            raise PreconditionError("C contains rows with all 0 entries")

        ret = SearchResult()
        ignored = {sorted_pair(*pair) for pair in ignored_collision_pairs}
        # Largest scale at which each plane has been certified so far, -inf
        # until a certificate is found.
        scale_lower_bounds = [-np.inf] * len(self.separating_planes)

        def is_scale_feasible(scale):
            d = scale * d_init + (1 - scale) * (C @ s_center)
            ignored_for_scale = set(ignored)
            for i, plane in enumerate(self.separating_planes):
                if plane.geometry_pair not in ignored and scale_lower_bounds[i] >= scale:
                    ignored_for_scale.add(plane.geometry_pair)
            certificates_result = self.find_separation_certificate_given_polytope(
                C, d, ignored_for_scale, options.find_lagrangian_options)
            for certificate in certificates_result:
                if certificate is not None:
                    scale_lower_bounds[certificate.plane_index] = scale
            ret.update_separating_planes(certificates_result)
            if any(certificate is None for certificate in certificates_result):
                return False
            ret.set_polytope(C, d, self)
            return True

        if not is_scale_feasible(options.scale_min):
            logger.debug("binary_search: scale_min=%s is infeasible.", options.scale_min)
            return None
        if is_scale_feasible(options.scale_max):
            logger.debug("binary_search: scale_max=%s is feasible.", options.scale_max)
            ret.num_iter = 0
            return ret
        scale_min = options.scale_min
        scale_max = options.scale_max
        iteration = 0
        while scale_max - scale_min > options.convergence_tol and iteration < options.max_iter:
            scale = (scale_max + scale_min) / 2
            if is_scale_feasible(scale):
                logger.debug("binary_search: scale=%s is feasible", scale)
                scale_min = scale
            else:
                logger.debug("binary_search: scale=%s is infeasible", scale)
                scale_max = scale
            iteration += 1
        ret.num_iter = iteration
        return ret
