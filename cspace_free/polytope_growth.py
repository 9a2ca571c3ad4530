"""
Growing the polytope C·s ≤ d with the face Lagrangians held fixed.

Once every plane is certified, the Lagrangians λ of the faces are numbers, so

    p − λᵀ(d − C·s) − λ_lowerᵀ(s − s_lower) − λ_upperᵀ(s_upper − s) = σ

is linear in (C, d, a, b, Gram). We maximize how far each face sits from an
inscribed ellipsoid {Q·u + s0 | |u|₂ ≤ 1}:

    |Q·cᵢ|₂ ≤ dᵢ − cᵢᵀs0 − δᵢ,   |cᵢ|₂ ≤ 1,   0 ≤ δᵢ ≤ |s_upper − s_lower|₂
"""
from dataclasses import dataclass, field

import cvxpy as cp
import numpy as np

from .certificate import SeparatingPlaneLagrangians, SeparationCertificate
from .errors import MissingCertificateError, PreconditionError
from .gram import GramVariableAllocator, gram_and_monomial_basis, get_gram_var_size
from .options import EllipsoidMarginCost
from .polynomial import dot
from .program import ConvexProgram, solve_with_backoff


@dataclass
class FindPolytopeGivenLagrangianResult:
    C: np.ndarray
    d: np.ndarray
    # Keyed by plane index.
    a: dict
    b: dict
    ellipsoid_margins: np.ndarray
    certificates: dict = field(default_factory=dict)


def get_gram_var_size_for_polytope_search_program(cspace, ignored_collision_pairs,
                                                  search_s_bounds_lagrangians):
    num_s = cspace.num_s
    num_sos = 1 + (2 * num_s if search_s_bounds_lagrangians else 0)
    size = 0
    for plane_index in cspace.active_plane_indices(ignored_collision_pairs):
        plane_geometries = cspace.plane_geometries[plane_index]
        positive_array, negative_array = cspace.monomial_basis_arrays[plane_index]
        for rationals, basis_array in ((plane_geometries.positive_side_rationals, positive_array),
                                       (plane_geometries.negative_side_rationals, negative_array)):
            for rational in rationals:
                size += num_sos * get_gram_var_size(
                    basis_array, cspace.with_cross_y, rational.numerator.num_y(num_s))
    return size


def _add_rationals_nonnegative(cspace, prog, gram, rationals, basis_array, lagrangians_vec,
                               d_minus_Cs, search_s_bounds_lagrangians, new_lagrangians_vec):
    num_s = cspace.num_s
    nvars = cspace.nvars
    if len(rationals) != len(lagrangians_vec):
        raise PreconditionError(
            f"{len(rationals)} rationals but {len(lagrangians_vec)} Lagrangians")
    for rational, lagrangians in zip(rationals, lagrangians_vec):
        gram_and_basis = gram_and_monomial_basis(
            basis_array, cspace.with_cross_y, rational.numerator.num_y(num_s))
        if search_s_bounds_lagrangians:
            s_lower = []
            s_upper = []
            for _ in range(num_s):
                s_lower.append(gram.add_sos(prog, gram_and_basis))
                s_upper.append(gram.add_sos(prog, gram_and_basis))
        else:
            s_lower = lagrangians.s_lower
            s_upper = lagrangians.s_upper
        if new_lagrangians_vec is not None:
            new_lagrangians_vec.append(
                SeparatingPlaneLagrangians(list(lagrangians.polytope), s_lower, s_upper))
        poly = (rational.numerator - dot(lagrangians.polytope, d_minus_Cs, nvars)
                - dot(s_lower, cspace.s_minus_s_lower, nvars)
                - dot(s_upper, cspace.s_upper_minus_s, nvars))
        prog.add_equality_constraint_between_polynomials(
            poly, gram.add_sos(prog, gram_and_basis))


def initialize_polytope_search_program(cspace, ignored_collision_pairs, C, d, d_minus_Cs,
                                       certificates_vec, search_s_bounds_lagrangians,
                                       gram_total_size, collect_certificates=False):
    """
    Returns (prog, new_certificates). new_certificates maps plane index to the
    symbolic SeparationCertificate of the program when collect_certificates,
    else it is None.
    """
    prog = ConvexProgram()
    prog.add_indeterminates(cspace.s_names)
    active_planes = cspace.active_plane_indices(ignored_collision_pairs)
    if any(not cspace.separating_planes[i].is_polytopic() for i in active_planes):
        prog.add_indeterminates(cspace.y_names)
    prog.add_decision_variables(C)
    prog.add_decision_variables(d)
    gram = GramVariableAllocator(prog.new_continuous_variables(gram_total_size, "Gram")
                                 if gram_total_size > 0 else None)

    plane_to_certificate = {}
    for certificate in certificates_vec:
        if certificate is None:
            raise PreconditionError("every certificate must be present")
        plane_to_certificate[certificate.plane_index] = certificate

    new_certificates = {} if collect_certificates else None
    for plane_index in active_planes:
        plane = cspace.separating_planes[plane_index]
        prog.add_decision_variables(plane.decision_variables)
        certificate = plane_to_certificate.get(plane_index)
        if certificate is None:
            raise MissingCertificateError(
                f"no separation certificate for {cspace.plane_name(plane_index)}")
        new_certificate = SeparationCertificate() if collect_certificates else None
        plane_geometries = cspace.plane_geometries[plane_index]
        positive_array, negative_array = cspace.monomial_basis_arrays[plane_index]
        _add_rationals_nonnegative(
            cspace, prog, gram, plane_geometries.positive_side_rationals, positive_array,
            certificate.positive_side_rational_lagrangians, d_minus_Cs,
            search_s_bounds_lagrangians,
            new_certificate.positive_side_rational_lagrangians if new_certificate else None)
        _add_rationals_nonnegative(
            cspace, prog, gram, plane_geometries.negative_side_rationals, negative_array,
            certificate.negative_side_rational_lagrangians, d_minus_Cs,
            search_s_bounds_lagrangians,
            new_certificate.negative_side_rational_lagrangians if new_certificate else None)
        if collect_certificates:
            new_certificates[plane_index] = new_certificate
    if gram.count != gram_total_size:
        raise RuntimeError(
            f"allocated {gram_total_size} Gram variables but used {gram.count}")
    return prog, new_certificates


def initialize_polytope_search_program_from_map(cspace, ignored_collision_pairs, certificates,
                                                search_s_bounds_lagrangians):
    """
    Same as initialize_polytope_search_program, with certificates keyed by
    geometry pair and fresh variables for C and d.

    Returns (prog, C, d).
    """
    if not certificates:
        raise PreconditionError("no certificates to grow the polytope from")
    first = next(iter(certificates.values()))
    C_rows = len(first.positive_side_rational_lagrangians[0].polytope)
    C = cp.Variable((C_rows, cspace.num_s), name="C")
    d = cp.Variable(C_rows, name="d")
    d_minus_Cs = cspace.calc_d_minus_Cs(C, d)
    certificates_vec = []
    for plane_index in cspace.active_plane_indices(ignored_collision_pairs):
        pair = cspace.separating_planes[plane_index].geometry_pair
        if pair not in certificates:
            raise MissingCertificateError(
                f"no separation certificate for {cspace.plane_name(plane_index)}")
        certificates_vec.append(certificates[pair])
    gram_total_size = get_gram_var_size_for_polytope_search_program(
        cspace, ignored_collision_pairs, search_s_bounds_lagrangians)
    prog, _ = initialize_polytope_search_program(
        cspace, ignored_collision_pairs, C, d, d_minus_Cs, certificates_vec,
        search_s_bounds_lagrangians, gram_total_size)
    return prog, C, d


def add_ellipsoid_containment_constraint(prog, Q, s0, C, d, ellipsoid_margins, s_lower, s_upper):
    Q = np.atleast_2d(np.asarray(Q, dtype=float))
    s0 = np.asarray(s0, dtype=float).reshape(-1)
    if Q.shape[0] != Q.shape[1]:
        raise PreconditionError(f"Q has non-square shape {Q.shape}")
    if np.any(s0 > s_upper) or np.any(s0 < s_lower):
        raise PreconditionError(f"ellipsoid center {s0} is outside the C-space box")
    for i in range(C.shape[0]):
        prog.add_constraint(
            cp.norm(Q @ C[i, :], 2) <= d[i] - C[i, :] @ s0 - ellipsoid_margins[i])
    for i in range(C.shape[0]):
        prog.add_constraint(cp.norm(C[i, :], 2) <= 1)


def add_cspace_polytope_containment(prog, C, d, s_inner_pts, s_lower, s_upper):
    """Require C·s ≤ d for every column s of s_inner_pts."""
    s_inner_pts = np.atleast_2d(np.asarray(s_inner_pts, dtype=float))
    if s_inner_pts.shape[0] != C.shape[1]:
        raise PreconditionError(
            f"s_inner_pts has {s_inner_pts.shape[0]} rows, expected {C.shape[1]}")
    for i in range(s_inner_pts.shape[0]):
        for j in range(s_inner_pts.shape[1]):
            if s_inner_pts[i, j] > s_upper[i]:
                raise PreconditionError(
                    f"s_inner_pts({i}, {j}) = {s_inner_pts[i, j]}, larger than "
                    f"s_upper({i}) = {s_upper[i]}")
            if s_inner_pts[i, j] < s_lower[i]:
                raise PreconditionError(
                    f"s_inner_pts({i}, {j}) = {s_inner_pts[i, j]}, smaller than "
                    f"s_lower({i}) = {s_lower[i]}")
    for j in range(s_inner_pts.shape[1]):
        prog.add_constraint(C @ s_inner_pts[:, j] <= d)


def add_ellipsoid_margin_cost(prog, ellipsoid_margins, cost, epsilon):
    if cost == EllipsoidMarginCost.SUM:
        prog.add_linear_cost(-cp.sum(ellipsoid_margins))
        return
    # Maximize t ≤ (Πᵢ(δᵢ + ε))^(1/n), keeping the cost itself linear.
    t = prog.new_continuous_variables(1, "geometric_mean")
    if ellipsoid_margins.shape[0] == 1:
        prog.add_constraint(t[0] <= ellipsoid_margins[0] + epsilon)
    else:
        prog.add_constraint(t[0] <= cp.geo_mean(ellipsoid_margins + epsilon))
    prog.add_linear_cost(-t[0])


def find_polytope_given_lagrangian(cspace, ignored_collision_pairs, C, d, d_minus_Cs,
                                   certificates_vec, Q, s0, ellipsoid_margins, gram_total_size,
                                   options, collect_certificates=False):
    """
    Solve the growth program for C, d (cvxpy variables). Returns a
    FindPolytopeGivenLagrangianResult, or None if the program fails.
    """
    prog, new_certificates = initialize_polytope_search_program(
        cspace, ignored_collision_pairs, C, d, d_minus_Cs, certificates_vec,
        options.search_s_bounds_lagrangians, gram_total_size, collect_certificates)
    prog.add_decision_variables(ellipsoid_margins)
    add_ellipsoid_containment_constraint(
        prog, Q, s0, C, d, ellipsoid_margins, cspace.s_lower, cspace.s_upper)
    # δᵢ ≤ |s_upper − s_lower|₂ keeps the program bounded.
    prog.add_bounding_box_constraint(
        0, float(np.linalg.norm(cspace.s_upper - cspace.s_lower)), ellipsoid_margins)
    if options.s_inner_pts is not None:
        add_cspace_polytope_containment(
            prog, C, d, options.s_inner_pts, cspace.s_lower, cspace.s_upper)
    add_ellipsoid_margin_cost(
        prog, ellipsoid_margins, options.ellipsoid_margin_cost, options.ellipsoid_margin_epsilon)

    result = solve_with_backoff(prog, options.backoff_scale, options.solver_settings())
    if not result.is_success:
        return None
    active_planes = cspace.active_plane_indices(ignored_collision_pairs)
    ret = FindPolytopeGivenLagrangianResult(
        C=np.atleast_2d(result.get_solution(C)),
        d=np.atleast_1d(result.get_solution(d)),
        a={i: result.get_solution(cspace.separating_planes[i].a) for i in active_planes},
        b={i: result.get_solution(cspace.separating_planes[i].b) for i in active_planes},
        ellipsoid_margins=np.atleast_1d(result.get_solution(ellipsoid_margins)))
    if collect_certificates:
        for plane_index, certificate in new_certificates.items():
            plane = cspace.separating_planes[plane_index]
            ret.certificates[plane_index] = certificate.get_solution(
                plane_index, plane.a, plane.b, plane.decision_variables, result)
    return ret
