#!/usr/bin/env python3
"""
Unit tests for matrix helpers
"""

import pytest
import numpy as np

from camera_proxy.core.matrix_math import (
    extract_fov,
    extract_view_from_mvp,
    identity_matrix,
    mean_abs_delta,
    perspective_matrix,
    rigid_inverse,
    window_to_matrix,
)
from tests.fixtures.matrix_fixtures import rotation_y, view_matrix


@pytest.mark.unit
class TestMatrixMath:
    """Test conversion and inversion helpers"""

    def test_three_row_completion(self):
        m = window_to_matrix(np.arange(12), row_count=3)
        np.testing.assert_array_equal(m[3], [0, 0, 0, 1])
        assert m[2, 3] == 11

    def test_rigid_inverse(self):
        view = view_matrix()
        inverse = rigid_inverse(view)
        np.testing.assert_allclose(view @ inverse, np.eye(4), atol=1e-5)

    def test_rigid_inverse_is_involution(self):
        view = view_matrix(yaw=1.1)
        np.testing.assert_allclose(rigid_inverse(rigid_inverse(view)), view, atol=1e-5)

    def test_singular_or_non_finite(self):
        assert rigid_inverse(np.zeros((4, 4))) is None
        broken = view_matrix()
        broken[0, 0] = np.inf
        assert rigid_inverse(broken) is None

    def test_perspective_fov(self):
        assert extract_fov(perspective_matrix(fov_y=0.9)) == pytest.approx(0.9, abs=1e-5)
        assert extract_fov(np.zeros((4, 4))) == 0.0

    def test_perspective_layout(self):
        p = perspective_matrix(z_near=1.0, z_far=101.0)
        assert p[2, 3] == 1.0
        assert p[3, 3] == 0.0
        assert p[2, 2] == pytest.approx(101.0 / 100.0)
        assert p[3, 2] == pytest.approx(-1.01)

    def test_view_from_mvp_recovers_rotation(self):
        rotation = rotation_y(0.4)
        mvp = rotation * np.array([[2.0], [2.0], [2.0], [1.0]], dtype=np.float32)
        view = extract_view_from_mvp(mvp)
        np.testing.assert_allclose(view[:3, :3], rotation[:3, :3], atol=1e-6)

    def test_view_from_degenerate_mvp(self):
        np.testing.assert_array_equal(extract_view_from_mvp(np.zeros((4, 4))), identity_matrix())

    def test_mean_abs_delta(self):
        a = np.zeros((4, 4))
        b = np.zeros((4, 4))
        b[0, 0] = 1.6
        assert mean_abs_delta(a, b) == pytest.approx(0.1)
