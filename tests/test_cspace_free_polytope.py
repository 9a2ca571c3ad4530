from types import SimpleNamespace

import numpy as np
import pytest
import sympy as sp

from cspace_free import (BilinearAlternationOptions, BinarySearchOptions, HPolyhedron,
                         PreconditionError)

C = np.array([[1.0]])


class TestPolyhedronWithJointLimits:
    def test_box_rows_appended(self, slider_cspace):
        polyhedron = slider_cspace.get_polyhedron_with_joint_limits(C, [1.0])
        np.testing.assert_array_equal(polyhedron.A, [[1.0], [1.0], [-1.0]])
        np.testing.assert_array_equal(polyhedron.b, [1.0, 3.0, 1.0])


class TestBilinearAlternation:
    def test_grows_toward_collision_boundary(self, slider_cspace):
        results = slider_cspace.search_with_bilinear_alternation(
            np.array([[2.0]]), np.array([2.0]), options=BilinearAlternationOptions(max_iter=3))
        assert 1 <= len(results) <= 3
        assert [r.num_iter for r in results] == list(range(len(results)))
        for r in results:
            assert isinstance(r.certified_polytope, HPolyhedron)
            assert r.C[0, 0] > 0
            assert r.d[0] / r.C[0, 0] <= 1.5 + 1e-3
            assert set(r.a) == {0}
        # The polytope keeps the scaled ellipsoid of the start s ≤ 1.
        assert results[-1].d[0] / results[-1].C[0, 0] >= 0.99 - 1e-3
        dets = [r.ellipsoid_det for r in results if r.ellipsoid_det is not None]
        assert dets[:-1] == sorted(dets[:-1])

    def test_zero_iterations(self, slider_cspace):
        results = slider_cspace.search_with_bilinear_alternation(
            C, np.array([1.0]), options=BilinearAlternationOptions(max_iter=0))
        assert results == []

    def test_uncertifiable_start(self, slider_cspace):
        assert slider_cspace.search_with_bilinear_alternation(C, np.array([2.0])) == []

    @pytest.mark.parametrize("options", [
        BilinearAlternationOptions(ellipsoid_scaling=0.0),
        BilinearAlternationOptions(ellipsoid_scaling=1.5),
        BilinearAlternationOptions(max_iter=-1),
        BilinearAlternationOptions(convergence_tol=-1.0),
    ])
    def test_preconditions(self, slider_cspace, options):
        with pytest.raises(PreconditionError):
            slider_cspace.search_with_bilinear_alternation(C, np.array([1.0]), options=options)

    def test_shape_mismatch(self, slider_cspace):
        with pytest.raises(PreconditionError):
            slider_cspace.search_with_bilinear_alternation(np.ones((2, 1)), np.ones(1))

    def test_zero_row(self, slider_cspace):
        with pytest.raises(PreconditionError, match="all 0 entries"):
            slider_cspace.search_with_bilinear_alternation(np.array([[0.0]]), np.array([1.0]))


class TestBinarySearch:
    def test_bisects_toward_collision_boundary(self, slider_cspace):
        # d = 2·scale, certifiable iff d < 1.5.
        result = slider_cspace.binary_search(
            C, np.array([2.0]), np.array([0.0]),
            options=BinarySearchOptions(scale_min=0.25, scale_max=1.0, max_iter=3))
        assert result is not None
        assert result.num_iter == 3
        # 0.625 feasible, 0.8125 infeasible, 0.71875 feasible.
        assert result.d == pytest.approx([1.4375])
        assert set(result.a) == {0}

    def test_scale_max_feasible(self, slider_cspace):
        result = slider_cspace.binary_search(
            C, np.array([2.0]), np.array([0.0]),
            options=BinarySearchOptions(scale_min=0.1, scale_max=0.5))
        assert result.num_iter == 0
        assert result.d == pytest.approx([1.0])

    def test_scale_min_infeasible(self, slider_cspace):
        result = slider_cspace.binary_search(
            C, np.array([2.0]), np.array([0.0]),
            options=BinarySearchOptions(scale_min=0.9, scale_max=1.0))
        assert result is None

    def test_zero_scale_min_crossing_collision(self, slider_cspace):
        # At scale 0 the polytope is s ≤ 1.6, which crosses the collision at s = 1.5.
        result = slider_cspace.binary_search(
            C, np.array([2.5]), np.array([1.6]),
            options=BinarySearchOptions(scale_min=0.0, scale_max=1.0, max_iter=2))
        assert result is None

    @pytest.mark.parametrize("C_matrix, d_init, s_center, options", [
        (C, [2.0], [2.5], BinarySearchOptions()),
        (C, [2.0], [-2.0], BinarySearchOptions()),
        (np.array([[0.0]]), [1.0], [0.0], BinarySearchOptions()),
        (C, [2.0], [0.0], BinarySearchOptions(convergence_tol=0.0)),
        (C, [2.0], [0.0], BinarySearchOptions(scale_min=0.5, scale_max=0.4)),
        (C, [2.0], [0.0], BinarySearchOptions(scale_max=np.inf)),
    ])
    def test_preconditions(self, slider_cspace, C_matrix, d_init, s_center, options):
        with pytest.raises(PreconditionError):
            slider_cspace.binary_search(
                C_matrix, np.array(d_init), np.array(s_center), options=options)


class TestBinarySearchBookkeeping:
    """Bisection with a stand-in certifier: plane 0 certifiable iff d < 1.5, plane 1 always."""

    @pytest.fixture
    def calls(self, two_pair_cspace, monkeypatch):
        calls = []

        def fake_find(C, d, ignored_collision_pairs=frozenset(), options=None):
            calls.append((float(d[0]), set(ignored_collision_pairs)))
            results = []
            for i in two_pair_cspace.active_plane_indices(ignored_collision_pairs):
                if i == 0 and d[0] >= 1.5:
                    results.append(None)
                else:
                    results.append(SimpleNamespace(plane_index=i, a=f"a{i}", b=f"b{i}"))
            return results

        monkeypatch.setattr(
            two_pair_cspace, "find_separation_certificate_given_polytope", fake_find)
        return calls

    def test_interval_halves(self, two_pair_cspace, calls):
        result = two_pair_cspace.binary_search(
            C, np.array([2.0]), np.array([0.0]),
            options=BinarySearchOptions(scale_min=0.25, scale_max=1.0, max_iter=20,
                                        convergence_tol=0.01))
        # Width 0.75 halves until it is below 0.01.
        assert result.num_iter == 7
        assert abs(result.d[0] / 2 - 0.75) <= 0.01
        scales = [d / 2 for d, _ in calls[2:]]
        assert scales[:3] == pytest.approx([0.625, 0.8125, 0.71875])
        assert result.a == {0: "a0", 1: "a1"}

    def test_certified_pairs_skipped_at_smaller_scales(self, two_pair_cspace, calls):
        two_pair_cspace.binary_search(
            C, np.array([2.0]), np.array([0.0]),
            options=BinarySearchOptions(scale_min=0.25, scale_max=1.0, max_iter=1))
        # scale_min, scale_max, then 0.625.
        assert [d for d, _ in calls] == pytest.approx([0.5, 2.0, 1.25])
        assert calls[0][1] == set()
        # The wall pair was certified at scale 1 while the obstacle pair failed.
        assert calls[2][1] == {(1, 2)}

    def test_ignored_pairs_respected(self, two_pair_cspace, calls):
        two_pair_cspace.binary_search(
            C, np.array([2.0]), np.array([0.0]), ignored_collision_pairs={(2, 1)},
            options=BinarySearchOptions(scale_min=0.25, scale_max=1.0, max_iter=1))
        assert all((1, 2) in ignored for _, ignored in calls)

    def test_zero_scale_min_checks_every_pair(self, two_pair_cspace, calls):
        result = two_pair_cspace.binary_search(
            C, np.array([2.0]), np.array([0.0]),
            options=BinarySearchOptions(scale_min=0.0, scale_max=1.0, max_iter=1))
        assert calls[0] == (0.0, set())
        assert result.a == {0: "a0", 1: "a1"}


class TestPlaneName:
    def test_names_geometries_and_bodies(self, slider_cspace):
        assert slider_cspace.plane_name(0) == "(obstacle on world, slider on slider)"


class TestSeparatingPlaneExpressions:
    def test_solved_plane_as_sympy(self, slider_cspace):
        success, certificates = slider_cspace.certify_polytope(C, np.array([1.0]))
        assert success
        certificate = certificates[(0, 1)]
        a, b = slider_cspace.separating_plane_expressions(certificate.a, certificate.b)
        s0 = sp.Symbol("s0")
        assert len(a) == 3
        assert b.free_symbols <= {s0}
        for s in (-1.0, 0.0, 1.0):
            point = np.array([s, 0.0, 0.0, 0.0])
            assert float(b.subs(s0, s)) == pytest.approx(
                certificate.b.evaluate(point), abs=1e-5)


class TestTwoJointAlternation:
    """A 4-face polytope in (s₀, s₁) grown with affine planes in both variables."""

    C_square = np.array([[1.0, 0.0], [-1.0, 0.0], [0.0, 1.0], [0.0, -1.0]])

    def test_grows_without_entering_collision(self, planar_cspace):
        d_init = np.full(4, 0.3)
        options = BilinearAlternationOptions(max_iter=2)
        results = planar_cspace.search_with_bilinear_alternation(
            self.C_square, d_init, options=options)
        assert 1 <= len(results) <= options.max_iter
        start = planar_cspace.get_polyhedron_with_joint_limits(
            self.C_square, d_init).maximum_volume_inscribed_ellipsoid()
        dets = [options.ellipsoid_scaling**2 * np.linalg.det(start.shape_matrix())]
        dets += [r.ellipsoid_det for r in results if r.ellipsoid_det is not None]
        assert len(dets) >= 2
        # Each iteration that did not stop the loop grew det(Q); the last may
        # only lose the ellipsoid scaling.
        assert dets[:-1] == sorted(dets[:-1])
        assert dets[-1] >= 0.97 * dets[-2]
        for r in results:
            assert r.C.shape == (4, 2)
            assert np.all(np.linalg.norm(r.C, axis=1) <= 1 + 1e-5)
            assert set(r.a) == {0}
            for s1 in np.linspace(-1.0, 1.0, 5):
                assert not r.certified_polytope.point_in_set([0.8, s1])

    def test_basis_covers_both_joints(self, planar_cspace):
        plane = planar_cspace.separating_planes[0]
        assert list(plane.s_indices) == [0, 1]
        basis = planar_cspace.monomial_basis_arrays[0][0][0]
        assert sorted(basis) == sorted([(0, 0, 0, 0, 0), (1, 0, 0, 0, 0), (0, 1, 0, 0, 0),
                                        (1, 1, 0, 0, 0)])
