"""
Rational forward kinematics.

The certificate builders only need, for a body B expressed in a body A, the
pose as a rational function of the C-space variables s

    X_AB(s) = (R(s), t(s)) / den(s),   den(s) > 0 on the box,

together with the C-space bounds and the s variables along each kinematic
chain. A revolute joint enters through s = tan((θ − θ*)/2); a prismatic
joint through s = q − q*, with den ≡ 1.
"""
from dataclasses import dataclass
from itertools import combinations
from typing import Protocol

import numpy as np

from .errors import PreconditionError
from .polynomial import NUM_Y, Polynomial, dot, mul_monomials, unit_monomial


@dataclass
class RationalPose:
    # 3x3 nested list of Polynomials, numerator of the rotation.
    rotation: list
    # 3 Polynomials, numerator of the translation.
    translation: list
    denominator: Polynomial

    def transform_point(self, p):
        """Numerator of X_AB·p, i.e. R(s)·p + t(s)."""
        p = np.asarray(p, dtype=float).reshape(3)
        nvars = self.denominator.nvars
        return [
            (dot(self.rotation[i], [Polynomial.constant(x, nvars) for x in p], nvars)
            + self.translation[i]).prune()
            for i in range(3)
        ]


class RationalForwardKinematics(Protocol):
    num_s: int
    position_lower_limits: np.ndarray
    position_upper_limits: np.ndarray

    def compute_s_value(self, q, q_star) -> np.ndarray: ...

    def calc_body_pose(self, expressed_body: int, body: int, q_star) -> RationalPose: ...

    def s_indices_on_chain(self, body_a: int, body_b: int) -> list[int]: ...

    def expressed_body(self, body_a: int, body_b: int) -> int: ...

    def body_name(self, body: int) -> str: ...


def multilinear_monomial_basis_array(s_indices, num_s):
    """
    [m(s), y₀·m(s), y₁·m(s), y₂·m(s)] where m(s) holds every product of
    distinct variables among s_indices, 1 included.
    """
    nvars = num_s + NUM_Y
    s_indices = sorted(set(s_indices))
    m = []
    for k in range(len(s_indices) + 1):
        for subset in combinations(s_indices, k):
            e = [0] * nvars
            for i in subset:
                e[i] = 1
            m.append(tuple(e))
    basis_array = [m]
    for i in range(NUM_Y):
        y = unit_monomial(num_s + i, nvars)
        basis_array.append([mul_monomials(y, monomial) for monomial in m])
    return basis_array


class PrismaticChainKinematics:
    """
    A serial chain world(0) → 1 → … → n where joint i translates body i along
    axes[i−1] relative to body i−1, plus a constant offset. Body 0 is the
    world.
    """

    def __init__(self, axes, lower_limits, upper_limits, offsets=None, body_names=None):
        self.axes = np.atleast_2d(np.asarray(axes, dtype=float))
        self.num_s = self.axes.shape[0]
        if self.axes.shape[1] != 3:
            raise PreconditionError(f"joint axes have shape {self.axes.shape}")
        self.position_lower_limits = np.asarray(lower_limits, dtype=float).reshape(-1)
        self.position_upper_limits = np.asarray(upper_limits, dtype=float).reshape(-1)
        if (self.position_lower_limits.shape != (self.num_s,)
                or self.position_upper_limits.shape != (self.num_s,)):
            raise PreconditionError("need one lower and upper limit per joint")
        if np.any(self.position_lower_limits > self.position_upper_limits):
            raise PreconditionError("joint lower limits exceed upper limits")
        if offsets is None:
            offsets = np.zeros((self.num_s, 3))
        self.offsets = np.atleast_2d(np.asarray(offsets, dtype=float))
        self.body_names = body_names or ["world"] + [f"body{i}" for i in range(1, self.num_s + 1)]
        self.nvars = self.num_s + NUM_Y

    def compute_s_value(self, q, q_star):
        return np.asarray(q, dtype=float) - np.asarray(q_star, dtype=float)

    def body_name(self, body):
        return self.body_names[body]

    def _check_body(self, body):
        if not 0 <= body <= self.num_s:
            raise PreconditionError(f"no body {body} in a chain of {self.num_s} joints")

    def _translation_in_world(self, body, q_star):
        t = [Polynomial.zero(self.nvars) for _ in range(3)]
        for k in range(body):
            q_k = Polynomial.variable(k, self.nvars) + float(q_star[k])
            for i in range(3):
                t[i] = t[i] + q_k * float(self.axes[k, i]) + float(self.offsets[k, i])
        return t

    def calc_body_pose(self, expressed_body, body, q_star):
        self._check_body(expressed_body)
        self._check_body(body)
        q_star = np.asarray(q_star, dtype=float).reshape(-1)
        t_body = self._translation_in_world(body, q_star)
        t_expressed = self._translation_in_world(expressed_body, q_star)
        rotation = [[Polynomial.constant(1.0 if i == j else 0.0, self.nvars)
                     for j in range(3)] for i in range(3)]
        return RationalPose(
            rotation=rotation,
            translation=[t_body[i] - t_expressed[i] for i in range(3)],
            denominator=Polynomial.constant(1.0, self.nvars),
        )

    def s_indices_on_chain(self, body_a, body_b):
        self._check_body(body_a)
        self._check_body(body_b)
        return list(range(min(body_a, body_b), max(body_a, body_b)))

    def expressed_body(self, body_a, body_b):
        """The body in the middle of the chain between body_a and body_b."""
        path = list(range(min(body_a, body_b), max(body_a, body_b) + 1))
        return path[len(path) // 2]
