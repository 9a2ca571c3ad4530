"""
SOS programs certifying that one separating plane keeps its two geometries
apart everywhere in {s | C·s ≤ d, s_lower ≤ s ≤ s_upper}.

For every plane-side rational with numerator p(s, y) we search for

    p − λᵀ(d − C·s) − λ_lowerᵀ(s − s_lower) − λ_upperᵀ(s_upper − s) = σ

with λ, λ_lower, λ_upper, σ all SOS (a Putinar certificate over the
polytope). Lagrangians of redundant rows are the zero polynomial and get no
Gram variables. The plane coefficients a(s), b(s) are decision variables of
the same program, so the whole thing is one SDP per plane.
"""
from dataclasses import dataclass, field

import numpy as np

from .errors import PreconditionError
from .gram import GramVariableAllocator, gram_and_monomial_basis, get_gram_var_size
from .polynomial import NUM_Y, Polynomial, dot
from .program import ConvexProgram, SolveResult


@dataclass
class SeparatingPlaneLagrangians:
    polytope: list
    s_lower: list
    s_upper: list

    def get_solution(self):
        return SeparatingPlaneLagrangians(
            [p.get_solution() for p in self.polytope],
            [p.get_solution() for p in self.s_lower],
            [p.get_solution() for p in self.s_upper])


@dataclass
class SeparationCertificateResult:
    plane_index: int
    positive_side_rational_lagrangians: list
    negative_side_rational_lagrangians: list
    a: list
    b: Polynomial
    plane_decision_var_vals: np.ndarray
    result: SolveResult | None = None


@dataclass
class SeparationCertificate:
    positive_side_rational_lagrangians: list = field(default_factory=list)
    negative_side_rational_lagrangians: list = field(default_factory=list)

    def get_solution(self, plane_index, a, b, plane_decision_vars, result):
        return SeparationCertificateResult(
            plane_index=plane_index,
            positive_side_rational_lagrangians=[
                lagrangians.get_solution()
                for lagrangians in self.positive_side_rational_lagrangians],
            negative_side_rational_lagrangians=[
                lagrangians.get_solution()
                for lagrangians in self.negative_side_rational_lagrangians],
            a=result.get_solution(a),
            b=result.get_solution(b),
            plane_decision_var_vals=np.atleast_1d(result.get_solution(plane_decision_vars)),
            result=result)


@dataclass
class SeparationCertificateProgram:
    prog: ConvexProgram = field(default_factory=ConvexProgram)
    plane_index: int = -1
    certificate: SeparationCertificate = field(default_factory=SeparationCertificate)


def construct_plane_search_program(plane, plane_geometries, d_minus_Cs, s_minus_s_lower,
                                   s_upper_minus_s, monomial_basis_arrays, with_cross_y,
                                   s_names, y_names, C_redundant_indices=frozenset(),
                                   s_lower_redundant_indices=frozenset(),
                                   s_upper_redundant_indices=frozenset()):
    """
    Build the certificate program of one plane. monomial_basis_arrays is the
    (positive side, negative side) pair of basis arrays.
    """
    num_s = len(s_names)
    nvars = num_s + NUM_Y
    if len(s_minus_s_lower) != num_s or len(s_upper_minus_s) != num_s:
        raise PreconditionError("need one lower and upper bound polynomial per s")
    ret = SeparationCertificateProgram(plane_index=plane_geometries.plane_index)
    prog = ret.prog
    prog.add_indeterminates(s_names)
    if not plane.is_polytopic():
        prog.add_indeterminates(y_names)
    prog.add_decision_variables(plane.decision_variables)

    num_sos = (1 + len(d_minus_Cs) + 2 * num_s - len(C_redundant_indices)
               - len(s_lower_redundant_indices) - len(s_upper_redundant_indices))
    sides = [
        (plane_geometries.positive_side_rationals, monomial_basis_arrays[0],
         ret.certificate.positive_side_rational_lagrangians),
        (plane_geometries.negative_side_rationals, monomial_basis_arrays[1],
         ret.certificate.negative_side_rational_lagrangians),
    ]
    gram_var_size = sum(
        num_sos * get_gram_var_size(basis_array, with_cross_y, r.numerator.num_y(num_s))
        for rationals, basis_array, _ in sides for r in rationals)
    if gram_var_size == 0:
        raise PreconditionError(f"plane {plane_geometries.plane_index} has no rationals")
    gram = GramVariableAllocator(prog.new_continuous_variables(gram_var_size, "Gram"))

    zero = Polynomial.zero(nvars)
    for rationals, basis_array, lagrangians_vec in sides:
        for rational in rationals:
            gram_and_basis = gram_and_monomial_basis(
                basis_array, with_cross_y, rational.numerator.num_y(num_s))
            polytope = [zero if i in C_redundant_indices else gram.add_sos(prog, gram_and_basis)
                        for i in range(len(d_minus_Cs))]
            s_lower = []
            s_upper = []
            for i in range(num_s):
                s_lower.append(zero if i in s_lower_redundant_indices
                               else gram.add_sos(prog, gram_and_basis))
                s_upper.append(zero if i in s_upper_redundant_indices
                               else gram.add_sos(prog, gram_and_basis))
            poly = (rational.numerator - dot(polytope, d_minus_Cs, nvars)
                    - dot(s_lower, s_minus_s_lower, nvars)
                    - dot(s_upper, s_upper_minus_s, nvars))
            prog.add_equality_constraint_between_polynomials(
                poly, gram.add_sos(prog, gram_and_basis))
            lagrangians_vec.append(SeparatingPlaneLagrangians(polytope, s_lower, s_upper))
    if gram.count != gram_var_size:
        raise RuntimeError(
            f"allocated {gram_var_size} Gram variables but used {gram.count}")
    return ret
