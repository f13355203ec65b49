"""Tests for receive-side pose reconstruction and its filters."""

import math

import numpy as np
import pytest

from vrpose_telemetry import pose_codec
from vrpose_telemetry.quat_utils import (
    quat_angle,
    quat_from_yaw,
    quat_inverse,
    quat_mul,
    rotate_vec_by_quat,
    slerp,
    yaw_from_quat,
    yaw_only,
)
from vrpose_telemetry.reconstructor import (
    PoseReconstructor,
    ReconstructorState,
    target_from_pose,
)
from vrpose_telemetry.smoothing import rotation_step, smooth_damp
from vrpose_telemetry.types import Pose, Quaternion, Vector3

DT = 1.0 / 60.0


def _quat_about_x(angle: float) -> np.ndarray:
    return np.array([math.sin(angle / 2), 0.0, 0.0, math.cos(angle / 2)])


def _pose(x: float, y: float, z: float, yaw: float = 0.0, pitch: float = 0.0) -> Pose:
    rotation = quat_mul(quat_from_yaw(yaw), _quat_about_x(pitch))
    return Pose(
        head_position=Vector3(x, y, z),
        head_rotation=Quaternion.from_array(rotation),
    )


def _run(reconstructor: PoseReconstructor, seconds: float, dt: float = DT):
    transform = None
    for _ in range(int(round(seconds / dt))):
        transform = reconstructor.tick(dt)
    return transform


class TestQuatUtils:
    """Tests for the quaternion helpers."""

    def test_yaw_rotation_of_forward_vector(self):
        rotated = rotate_vec_by_quat(np.array([0.0, 0.0, 1.0]), quat_from_yaw(math.pi / 2))
        np.testing.assert_allclose(rotated, [1.0, 0.0, 0.0], atol=1e-9)

    def test_inverse_cancels(self):
        q = quat_mul(quat_from_yaw(0.8), _quat_about_x(0.4))
        np.testing.assert_allclose(quat_mul(q, quat_inverse(q)), [0, 0, 0, 1], atol=1e-9)

    @pytest.mark.parametrize("yaw", [-2.5, -0.3, 0.0, 0.4, 1.2, 3.0])
    def test_yaw_round_trip(self, yaw):
        assert yaw_from_quat(quat_from_yaw(yaw)) == pytest.approx(yaw)

    def test_yaw_ignores_pitch(self):
        q = quat_mul(quat_from_yaw(0.7), _quat_about_x(0.3))
        assert yaw_from_quat(q) == pytest.approx(0.7)
        assert quat_angle(yaw_only(q), quat_from_yaw(0.7)) < 1e-6

    def test_slerp_midpoint(self):
        mid = slerp(quat_from_yaw(0.0), quat_from_yaw(1.0), 0.5)
        assert quat_angle(mid, quat_from_yaw(0.5)) < 1e-6

    def test_slerp_takes_shortest_arc(self):
        q = quat_from_yaw(0.2)
        assert quat_angle(slerp(q, -q, 0.5), q) < 1e-6


class TestSmoothing:
    """Tests for the frame-rate independent filters."""

    def test_zero_smooth_time_snaps(self):
        value, velocity = smooth_damp([0, 0, 0], [1, 2, 3], [5, 5, 5], 0.0, DT)
        np.testing.assert_allclose(value, [1, 2, 3])
        np.testing.assert_allclose(velocity, [0, 0, 0])

    def test_zero_dt_holds(self):
        value, velocity = smooth_damp([0, 0, 0], [1, 0, 0], [0.5, 0, 0], 0.1, 0.0)
        np.testing.assert_allclose(value, [0, 0, 0])
        np.testing.assert_allclose(velocity, [0.5, 0, 0])

    def test_approach_is_monotonic(self):
        value, velocity = np.zeros(3), np.zeros(3)
        target = np.array([1.0, 0.0, 0.0])
        previous = 0.0
        for _ in range(120):
            value, velocity = smooth_damp(value, target, velocity, 0.1, DT)
            assert previous <= value[0] <= 1.0
            previous = value[0]
        assert value[0] == pytest.approx(1.0, abs=1e-3)

    def test_rotation_step_clamped(self):
        assert rotation_step(0.1, DT) == pytest.approx(DT / 0.1 * 3)
        assert rotation_step(0.1, 1.0) == 1.0
        assert rotation_step(0.0, DT) == 1.0


class TestTargetFromPose:
    """Tests for the receive-side coordinate convention."""

    def test_mirrors_x_and_drops_height(self):
        position, _ = target_from_pose(_pose(1.0, 1.7, 3.0))
        np.testing.assert_allclose(position, [-1.0, 0.0, 3.0])

    def test_keeps_only_yaw(self):
        _, rotation = target_from_pose(_pose(0, 0, 0, yaw=0.9, pitch=0.5))
        assert quat_angle(rotation, quat_from_yaw(0.9)) < 1e-6


class TestPoseReconstructor:
    """Tests for PoseReconstructor."""

    def test_idle_tick_keeps_default(self):
        reconstructor = PoseReconstructor(default_position=Vector3(1.0, 0.0, 2.0))
        transform = reconstructor.tick(DT)

        assert reconstructor.state is ReconstructorState.IDLE
        assert transform.position == Vector3(1.0, 0.0, 2.0)
        assert reconstructor.get_stats()["ticks"] == 0

    def test_converges_to_network_pose(self):
        reconstructor = PoseReconstructor(smoothing_time=0.1, blend_ratio=1.0)
        reconstructor.on_decoded_pose(_pose(2.0, 1.6, 4.0, yaw=1.0))

        transform = _run(reconstructor, 0.5)

        target = np.array([-2.0, 0.0, 4.0])
        error = np.linalg.norm(np.array(transform.position) - target)
        assert error < 0.01 * np.linalg.norm(target)
        assert quat_angle(transform.rotation, quat_from_yaw(1.0)) < 0.01

    def test_blend_zero_holds_default(self):
        rest = Vector3(5.0, 0.0, 5.0)
        reconstructor = PoseReconstructor(default_position=rest, blend_ratio=0.0)
        reconstructor.on_decoded_pose(_pose(-3.0, 0.0, -3.0, yaw=2.0))

        transform = _run(reconstructor, 0.5)

        np.testing.assert_allclose(transform.position, rest, atol=1e-9)
        assert quat_angle(transform.rotation, [0, 0, 0, 1]) < 1e-6

    def test_blend_half_targets_midpoint(self):
        reconstructor = PoseReconstructor(blend_ratio=0.5)
        reconstructor.on_decoded_pose(_pose(-4.0, 0.0, 2.0))

        transform = _run(reconstructor, 1.0)
        np.testing.assert_allclose(transform.position, [2.0, 0.0, 1.0], atol=1e-3)

    def test_zero_smoothing_snaps(self):
        reconstructor = PoseReconstructor(smoothing_time=0.0, blend_ratio=1.0)
        reconstructor.on_decoded_pose(_pose(1.0, 0.0, 1.0, yaw=-0.6))

        transform = reconstructor.tick(DT)
        np.testing.assert_allclose(transform.position, [-1.0, 0.0, 1.0])
        assert quat_angle(transform.rotation, quat_from_yaw(-0.6)) < 1e-6

    def test_blend_change_is_continuous(self):
        reconstructor = PoseReconstructor(blend_ratio=1.0)
        reconstructor.on_decoded_pose(_pose(-2.0, 0.0, 0.0))
        before = np.array(_run(reconstructor, 1.0).position)

        reconstructor.blend_ratio = 0.0
        after = np.array(reconstructor.tick(DT).position)

        assert np.linalg.norm(after - before) < 0.5 * np.linalg.norm(before)

    def test_zero_dt_leaves_position(self):
        reconstructor = PoseReconstructor(blend_ratio=1.0)
        reconstructor.on_decoded_pose(_pose(-2.0, 0.0, 0.0))
        first = reconstructor.tick(DT)
        assert reconstructor.tick(0.0).position == first.position

    @pytest.mark.parametrize("value,expected", [(-1.0, 0.0), (0.3, 0.3), (2.0, 1.0)])
    def test_blend_ratio_clamped(self, value, expected):
        reconstructor = PoseReconstructor()
        reconstructor.blend_ratio = value
        assert reconstructor.blend_ratio == expected

    def test_capture_default(self):
        reconstructor = PoseReconstructor()
        reconstructor.capture_default(Vector3(1.0, 2.0, 3.0), Quaternion(), reset_current=True)

        assert reconstructor.default_transform.position == Vector3(1.0, 2.0, 3.0)
        assert reconstructor.current_transform.position == Vector3(1.0, 2.0, 3.0)

    def test_handle_message(self, sample_pose):
        reconstructor = PoseReconstructor()
        assert reconstructor.handle_message(pose_codec.encode(sample_pose)) is True

        assert reconstructor.state is ReconstructorState.TRACKING
        assert reconstructor.latest_received_pose.head_position.z == pytest.approx(-0.5)
        np.testing.assert_allclose(
            reconstructor.target_transform.position, [-0.1234, 0.0, -0.5]
        )

    def test_handle_malformed_message(self):
        reconstructor = PoseReconstructor()
        assert reconstructor.handle_message("1#2%garbage") is False

        assert reconstructor.state is ReconstructorState.IDLE
        assert reconstructor.latest_received_pose is None
        assert reconstructor.get_stats()["decode_errors"] == 1

    def test_lost_hand_tracking_keeps_head(self):
        reconstructor = PoseReconstructor(blend_ratio=1.0)
        message = "1.0#1.6#2.0@NaN#NaN#NaN@0#0#0%0#0#0#1@NaN#NaN#NaN#NaN@0#0#0#1"

        assert reconstructor.handle_message(message) is True
        assert reconstructor.state is ReconstructorState.TRACKING
        np.testing.assert_allclose(
            reconstructor.target_transform.position, [-1.0, 0.0, 2.0]
        )
