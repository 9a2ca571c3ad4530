"""
Separating planes aᵀx + b = 0 whose coefficients are polynomials of s with
cvxpy decision variables as coefficients.

A CONSTANT plane has a, b independent of s. An AFFINE plane has

    aᵢ(s) = aᵢ₀ + Σₖ aᵢₖ·sₖ,   b(s) = b₀ + Σₖ bₖ·sₖ

over the s variables on the kinematic chain between the two geometries.
"""
from dataclasses import dataclass
from enum import Enum

import cvxpy as cp

from .geometry import GeometryType, PlaneSide
from .polynomial import Polynomial, unit_monomial


class SeparatingPlaneOrder(Enum):
    CONSTANT = 0
    AFFINE = 1


def sorted_pair(id1, id2):
    return (id1, id2) if id1 <= id2 else (id2, id1)


class CSpaceSeparatingPlane:
    def __init__(self, positive_side_geometry, negative_side_geometry, expressed_body,
                 s_indices, plane_order, nvars, name="plane"):
        self.positive_side_geometry = positive_side_geometry
        self.negative_side_geometry = negative_side_geometry
        self.expressed_body = expressed_body
        self.s_indices = tuple(s_indices)
        self.plane_order = plane_order

        basis = [(0,) * nvars]
        if plane_order == SeparatingPlaneOrder.AFFINE:
            basis += [unit_monomial(k, nvars) for k in self.s_indices]
        n = len(basis)
        self.decision_variables = cp.Variable(4 * n, name=name)

        def affine(offset):
            return Polynomial(
                {m: self.decision_variables[offset + i] for i, m in enumerate(basis)}, nvars)

        self.a = [affine(i * n) for i in range(3)]
        self.b = affine(3 * n)

    @property
    def geometry_pair(self):
        return sorted_pair(self.positive_side_geometry.id, self.negative_side_geometry.id)

    def is_polytopic(self):
        return (self.positive_side_geometry.type == GeometryType.POLYTOPE
                and self.negative_side_geometry.type == GeometryType.POLYTOPE)

    def __repr__(self):
        return (f"CSpaceSeparatingPlane({self.positive_side_geometry.name!r}, "
                f"{self.negative_side_geometry.name!r}, {self.plane_order.name})")


@dataclass
class PlaneSeparatesGeometries:
    positive_side_rationals: list
    negative_side_rationals: list
    plane_index: int


def generate_rationals(planes, kinematics, q_star):
    """For each plane, the rationals that certify both geometries are on their sides."""
    num_s = kinematics.num_s
    plane_geometries = []
    for plane_index, plane in enumerate(planes):
        rationals = {}
        for side, geometry in ((PlaneSide.POSITIVE, plane.positive_side_geometry),
                               (PlaneSide.NEGATIVE, plane.negative_side_geometry)):
            pose = kinematics.calc_body_pose(plane.expressed_body, geometry.body_index, q_star)
            rationals[side] = geometry.on_plane_side(plane.a, plane.b, pose, side, num_s)
        plane_geometries.append(PlaneSeparatesGeometries(
            rationals[PlaneSide.POSITIVE], rationals[PlaneSide.NEGATIVE], plane_index))
    return plane_geometries
