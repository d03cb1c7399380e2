import numpy as np

from camrig.geometry import (
    distance,
    forward_vector,
    head_to_world,
    lerp_rows,
    world_to_mount,
)
from camrig.types import RigTransform


class TestForward:
    def test_level(self):
        assert np.allclose(forward_vector(RigTransform()), [0.0, 0.0, -1.0])

    def test_positive_tilt_looks_down(self):
        f = forward_vector(RigTransform(tilt_deg=30.0))
        assert f[1] < 0
        assert abs(f[1] + 0.5) < 1e-9

    def test_yaw_about_vertical(self):
        f = forward_vector(RigTransform(yaw_deg=90.0))
        assert np.allclose(f, [-1.0, 0.0, 0.0])

    def test_unit_length(self):
        f = forward_vector(RigTransform(yaw_deg=37.0, tilt_deg=61.0))
        assert abs(np.linalg.norm(f) - 1.0) < 1e-12


def test_head_to_world_translates():
    t = RigTransform(position=(1.0, 2.0, 3.0), tilt_deg=90.0)
    out = head_to_world(t, np.array([[0.0, 0.0, -2.0]]))
    assert np.allclose(out[0], [1.0, 0.0, 3.0])


def test_world_to_mount():
    t = RigTransform(position=(1.0, 2.0, 3.0), yaw_deg=45.0)
    out = world_to_mount(t, np.array([[1.0, 2.0, 3.0], [2.0, 2.0, 3.0]]))
    assert np.allclose(out, [[0, 0, 0], [1, 0, 0]])


def test_distance():
    assert distance((0, 0, 0), (3, 4, 12)) == 13.0


def test_lerp_rows():
    out = lerp_rows(
        np.array([0.0, 0.0, 0.0]), np.array([2.0, 4.0, 6.0]), np.array([0, 0.5, 1])
    )
    assert np.allclose(out, [[0, 0, 0], [1, 2, 3], [2, 4, 6]])
