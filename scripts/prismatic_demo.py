"""
Certify and grow a collision-free C-space interval for a box sliding along x
toward a fixed box.

Body 1 slides along x with q ∈ [−1, 3]; its box spans x ∈ [q − ½, q + ½].
The obstacle spans x ∈ [2, 3]. Collision starts at q = 1.5, so

  1. s ≤ 1 is certifiable,
  2. s ≤ 2 is not,
  3. binary search on s ≤ 2·scale finds a scale just below 0.75,
  4. bilinear alternation pushes s ≤ 1 out toward s ≤ 1.5.
"""
import logging

import numpy as np

from cspace_free import (BilinearAlternationOptions, BinarySearchOptions, CspaceFreePolytope,
                         PolytopeGeometry, PrismaticChainKinematics)


def box_vertices(lower, upper):
    return np.array([[x, y, z]
                     for x in (lower[0], upper[0])
                     for y in (lower[1], upper[1])
                     for z in (lower[2], upper[2])])


def make_cspace():
    kinematics = PrismaticChainKinematics(
        axes=[[1.0, 0.0, 0.0]], lower_limits=[-1.0], upper_limits=[3.0],
        body_names=["world", "slider"])
    geometries = [
        PolytopeGeometry(0, 0, box_vertices([2, -0.5, -0.5], [3, 0.5, 0.5]), name="obstacle"),
        PolytopeGeometry(1, 1, box_vertices([-0.5, -0.5, -0.5], [0.5, 0.5, 0.5]), name="slider"),
    ]
    return CspaceFreePolytope(kinematics, geometries)


def main():
    logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")
    cspace = make_cspace()
    C = np.array([[1.0]])

    print("=" * 60)
    print("Certify fixed intervals")
    print("=" * 60)
    for d in [1.0, 2.0]:
        success, certificates = cspace.certify_polytope(C, np.array([d]))
        print(f"s <= {d}: {'CERTIFIED' if success else 'NOT CERTIFIED'}")
        for pair, certificate in certificates.items():
            a, b = cspace.separating_plane_expressions(certificate.a, certificate.b)
            print(f"  pair {pair}: a = {a}")
            print(f"  pair {pair}: b = {b}")

    print(f"\n{'=' * 60}")
    print("Binary search on s <= 2*scale")
    print("=" * 60)
    result = cspace.binary_search(
        C, np.array([2.0]), np.array([0.0]),
        options=BinarySearchOptions(scale_min=0.25, scale_max=1.0, max_iter=6))
    if result is None:
        print("*** INFEASIBLE ***")
    else:
        print(f"Certified s <= {result.d[0]:.4f} after {result.num_iter} iterations")

    print(f"\n{'=' * 60}")
    print("Bilinear alternation from s <= 1")
    print("=" * 60)
    results = cspace.search_with_bilinear_alternation(
        C, np.array([1.0]), options=BilinearAlternationOptions(max_iter=5))
    for r in results:
        print(f"iteration {r.num_iter}: {r.C[0, 0]:.4f}*s <= {r.d[0]:.4f}, "
              f"det(Q) = {r.ellipsoid_det}")


if __name__ == '__main__':
    main()
