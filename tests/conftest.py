"""
Shared fixtures: a box sliding along x toward a fixed box.

The slider (body 1) spans x ∈ [s − ½, s + ½] with s ∈ [−1, 3]; the obstacle
(world) spans x ∈ [2, 3]. The two touch at s = 1.5, so {s ≤ 1} is collision
free and {s ≤ 2} is not.
"""
import numpy as np
import pytest

from cspace_free import (CspaceFreePolytope, PolytopeGeometry, PrismaticChainKinematics,
                         SphereGeometry)


def box_vertices(lower, upper):
    return np.array([[x, y, z]
                     for x in (lower[0], upper[0])
                     for y in (lower[1], upper[1])
                     for z in (lower[2], upper[2])])


@pytest.fixture
def slider_kinematics():
    return PrismaticChainKinematics(
        axes=[[1.0, 0.0, 0.0]], lower_limits=[-1.0], upper_limits=[3.0],
        body_names=["world", "slider"])


@pytest.fixture
def obstacle():
    return PolytopeGeometry(0, 0, box_vertices([2, -0.5, -0.5], [3, 0.5, 0.5]), name="obstacle")


@pytest.fixture
def slider_box():
    return PolytopeGeometry(
        1, 1, box_vertices([-0.5, -0.5, -0.5], [0.5, 0.5, 0.5]), name="slider")


@pytest.fixture
def slider_cspace(slider_kinematics, obstacle, slider_box):
    return CspaceFreePolytope(slider_kinematics, [obstacle, slider_box])


@pytest.fixture
def sphere_cspace(slider_kinematics, obstacle):
    ball = SphereGeometry(2, 1, center=[0, 0, 0], radius=0.5, name="ball")
    return CspaceFreePolytope(slider_kinematics, [obstacle, ball])


@pytest.fixture
def wall():
    return PolytopeGeometry(2, 0, box_vertices([-3, -0.5, -0.5], [-2, 0.5, 0.5]), name="wall")


@pytest.fixture
def two_pair_cspace(slider_kinematics, obstacle, slider_box, wall):
    return CspaceFreePolytope(slider_kinematics, [obstacle, slider_box, wall])


@pytest.fixture
def planar_cspace():
    """
    A box on a two-joint chain sliding in x then y, next to an obstacle that
    spans y ∈ [−3, 3] and x ∈ [1, 2]. The box spans x ∈ [s₀ − ¼, s₀ + ¼], so
    configurations with s₀ > 0.75 collide whatever s₁ is.
    """
    kinematics = PrismaticChainKinematics(
        axes=[[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]], lower_limits=[-1.0, -1.0],
        upper_limits=[1.0, 1.0], body_names=["world", "carriage", "gripper"])
    obstacle = PolytopeGeometry(0, 0, box_vertices([1, -3, -0.5], [2, 3, 0.5]), name="obstacle")
    gripper = PolytopeGeometry(
        1, 2, box_vertices([-0.25, -0.25, -0.25], [0.25, 0.25, 0.25]), name="gripper_box")
    return CspaceFreePolytope(kinematics, [obstacle, gripper])
