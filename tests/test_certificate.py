import logging

import numpy as np
import pytest

from cspace_free import (CspaceFreePolytope, CspaceFreePolytopeOptions,
                         FindSeparationCertificateGivenPolytopeOptions, MissingCertificateError,
                         SphereGeometry)
from cspace_free.gram import get_gram_var_size

C = np.array([[1.0]])


class TestConstructPlaneSearchProgram:
    def test_gram_count_matches_redundancy(self, slider_cspace):
        plane_geometries = slider_cspace.plane_geometries[0]
        d_minus_Cs = slider_cspace.calc_d_minus_Cs(C, np.array([1.0]))
        program = slider_cspace.construct_plane_search_program(
            plane_geometries, d_minus_Cs, set(), set(), {0})
        gram = next(v for v in program.prog.decision_variables if v.name() == "Gram")
        # 1 + one face + two bounds − one redundant upper bound.
        num_sos = 3
        basis_size = get_gram_var_size(slider_cspace.monomial_basis_arrays[0][0], False, 0)
        assert gram.shape == (num_sos * basis_size * 16,)
        certificate = program.certificate
        assert len(certificate.positive_side_rational_lagrangians) == 8
        lagrangians = certificate.negative_side_rational_lagrangians[0]
        assert lagrangians.s_upper[0].is_zero()
        assert not lagrangians.s_lower[0].is_zero()

    def test_y_declared_only_for_non_polytopes(self, slider_cspace, sphere_cspace):
        for cspace, expected in ((slider_cspace, ["s0"]),
                                 (sphere_cspace, ["s0", "y0", "y1", "y2"])):
            program = cspace.construct_plane_search_program(
                cspace.plane_geometries[0], cspace.calc_d_minus_Cs(C, np.array([1.0])))
            assert program.prog.indeterminates == expected

    def test_unknown_pair(self, slider_cspace):
        with pytest.raises(MissingCertificateError):
            slider_cspace.make_is_geometry_separable_program((0, 7), C, np.array([1.0]))


class TestSeparationCertificate:
    def test_certifiable_polytope(self, slider_cspace):
        program = slider_cspace.make_is_geometry_separable_program((0, 1), C, np.array([1.0]))
        result = slider_cspace.solve_separation_certificate_program(program)
        assert result is not None
        assert result.plane_index == 0
        # The plane puts the obstacle on the positive side for all s ≤ 1.
        for s in np.linspace(-1.0, 1.0, 5):
            point = np.array([s, 0.0, 0.0, 0.0])
            a = np.array([p.evaluate(point) for p in result.a])
            b = result.b.evaluate(point)
            assert a @ np.array([2.0 - s, 0.0, 0.0]) + b > 0
            assert a @ np.array([0.5, 0.0, 0.0]) + b < 0

    def test_polytope_straddling_collision(self, slider_cspace):
        program = slider_cspace.make_is_geometry_separable_program((0, 1), C, np.array([2.0]))
        assert slider_cspace.solve_separation_certificate_program(program) is None

    def test_sphere_certifiable(self, sphere_cspace):
        success, certificates = sphere_cspace.certify_polytope(C, np.array([1.0]))
        assert success
        assert set(certificates) == {(0, 2)}

    def test_with_cross_y(self, slider_kinematics, obstacle):
        ball = SphereGeometry(2, 1, center=[0, 0, 0], radius=0.5, name="ball")
        cspace = CspaceFreePolytope(slider_kinematics, [obstacle, ball],
                                    options=CspaceFreePolytopeOptions(with_cross_y=True))
        success, _ = cspace.certify_polytope(C, np.array([0.5]))
        assert success


class TestFindSeparationCertificateGivenPolytope:
    def test_results_per_active_plane(self, slider_cspace):
        results = slider_cspace.find_separation_certificate_given_polytope(C, np.array([1.0]))
        assert len(results) == 1
        assert results[0] is not None

    def test_ignored_pairs(self, slider_cspace):
        results = slider_cspace.find_separation_certificate_given_polytope(
            C, np.array([2.0]), ignored_collision_pairs={(1, 0)})
        assert results == []

    def test_failure_is_none(self, slider_cspace):
        options = FindSeparationCertificateGivenPolytopeOptions(verbose=True, num_threads=1)
        success, certificates = slider_cspace.certify_polytope(
            C, np.array([2.0]), options=options)
        assert not success
        assert certificates == {}

    def test_backoff_and_redundant_faces(self, slider_cspace):
        options = FindSeparationCertificateGivenPolytopeOptions(
            backoff_scale=0.05, ignore_redundant_C=True)
        # s ≤ 5 is implied by s ≤ 1.
        results = slider_cspace.find_separation_certificate_given_polytope(
            np.array([[1.0], [1.0]]), np.array([1.0, 5.0]), options=options)
        assert results[0] is not None
        lagrangians = results[0].positive_side_rational_lagrangians[0]
        assert lagrangians.polytope[1].is_zero()

    def test_warning_lists_only_failed_pairs(self, two_pair_cspace, caplog):
        caplog.set_level(logging.WARNING, logger="cspace_free.search")
        options = FindSeparationCertificateGivenPolytopeOptions(verbose=True, num_threads=1)
        results = two_pair_cspace.find_separation_certificate_given_polytope(
            C, np.array([2.0]), options=options)
        # The obstacle pair fails first, so the wall pair is never attempted.
        assert results == [None, None]
        assert "(obstacle on world, slider on slider)" in caplog.text
        assert "wall" not in caplog.text
