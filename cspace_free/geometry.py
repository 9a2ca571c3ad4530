"""
Collision geometries and the rationals that certify they lie on one side of a
plane {x | aᵀx + b = 0}.

For a polytope with vertices v, each vertex gives one rational

    positive side:   aᵀ(R·v + t) + (b − 1)·den
    negative side:  −aᵀ(R·v + t) − (b + 1)·den

over den. For a sphere of radius r and center c on the positive side we need
aᵀp + b ≥ r·|a|, p the center in the plane frame. Writing

    x₀ = aᵀ(R·c + t) + b·den,   x̄ = r·den·a

the condition x₀ ≥ |x̄| (given x₀ ≥ 0) holds iff

    x₀·(1 + yᵀy) + 2·x̄ᵀy ≥ 0   for all y ∈ ℝ³

so a sphere gives the two rationals x₀ − den and x₀·(1 + yᵀy) + 2r·den·aᵀy,
negated x₀ for the negative side. The first one also keeps |a| bounded away
from zero. A capsule gives that pair for each of its two end spheres.
"""
from enum import Enum

import numpy as np

from .errors import PreconditionError
from .polynomial import NUM_Y, Polynomial, RationalFunction, dot


class GeometryType(Enum):
    POLYTOPE = 0
    SPHERE = 1
    CAPSULE = 2


class PlaneSide(Enum):
    POSITIVE = 0
    NEGATIVE = 1


class CollisionGeometry:
    type: GeometryType

    def __init__(self, id, body_index, name=None):
        self.id = id
        self.body_index = body_index
        self.name = name if name is not None else str(id)

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r}, body={self.body_index})"

    def on_plane_side(self, a, b, pose, side, num_s):
        """Rationals that are all positive iff the geometry is strictly on `side`."""
        raise NotImplementedError


def _signed(side):
    return 1.0 if side == PlaneSide.POSITIVE else -1.0


def _sphere_rationals(center, radius, a, b, pose, side, num_s):
    den = pose.denominator
    nvars = den.nvars
    x0 = (dot(a, pose.transform_point(center), nvars) + b * den) * _signed(side)
    y = [Polynomial.variable(num_s + i, nvars) for i in range(NUM_Y)]
    y_squared = dot(y, y, nvars)
    a_dot_y = dot(a, y, nvars)
    return [
        RationalFunction(x0 - den, den),
        RationalFunction(x0 * (y_squared + 1.0) + a_dot_y * den * (2.0 * radius), den),
    ]


class PolytopeGeometry(CollisionGeometry):
    type = GeometryType.POLYTOPE

    def __init__(self, id, body_index, vertices, name=None):
        super().__init__(id, body_index, name)
        vertices = np.atleast_2d(np.asarray(vertices, dtype=float))
        if vertices.shape[1] != 3:
            raise PreconditionError(f"vertices have shape {vertices.shape}, expected (k, 3)")
        self.vertices = vertices

    def on_plane_side(self, a, b, pose, side, num_s):
        den = pose.denominator
        nvars = den.nvars
        sign = _signed(side)
        rationals = []
        for v in self.vertices:
            a_dot_p = dot(a, pose.transform_point(v), nvars)
            rationals.append(RationalFunction((a_dot_p + b * den) * sign - den, den))
        return rationals


class SphereGeometry(CollisionGeometry):
    type = GeometryType.SPHERE

    def __init__(self, id, body_index, center, radius, name=None):
        super().__init__(id, body_index, name)
        if radius < 0:
            raise PreconditionError(f"negative sphere radius {radius}")
        self.center = np.asarray(center, dtype=float).reshape(3)
        self.radius = float(radius)

    def on_plane_side(self, a, b, pose, side, num_s):
        return _sphere_rationals(self.center, self.radius, a, b, pose, side, num_s)


class CapsuleGeometry(CollisionGeometry):
    """Segment p₁p₂ swept by a sphere of the given radius."""

    type = GeometryType.CAPSULE

    def __init__(self, id, body_index, p1, p2, radius, name=None):
        super().__init__(id, body_index, name)
        if radius < 0:
            raise PreconditionError(f"negative capsule radius {radius}")
        self.p1 = np.asarray(p1, dtype=float).reshape(3)
        self.p2 = np.asarray(p2, dtype=float).reshape(3)
        self.radius = float(radius)

    def on_plane_side(self, a, b, pose, side, num_s):
        return (_sphere_rationals(self.p1, self.radius, a, b, pose, side, num_s)
                + _sphere_rationals(self.p2, self.radius, a, b, pose, side, num_s))
