import numpy as np
import pytest

from vio_init.alignment_window import AlignmentWindow
from vio_init.config import AlignmentParams
from vio_init.imu_preintegration import PreintegratedImuMeasurement
from vio_init.math_utils import so3_exp
from vio_init.online_alignment import OnlineGravityAlignment
from vio_init.simulation import simulate_scenario
from vio_init.types import AlignmentStatus, ImuBias, Pose


GRAVITY = np.array([0.0, 0.0, -9.81])
V0 = np.array([0.1, 0.2, -0.05])
GYRO_BIAS = np.array([1e-4, 2e-4, 3e-4])


def _assert_unset(result):
    assert result.bias is None
    assert result.gravity is None
    assert result.navstate is None
    assert result.velocities is None
    assert result.scale is None


def test_bias_only_without_gravity():
    scenario = simulate_scenario(n_keyframes=5, gravity=(0.0, 0.0, 0.0), gyro_bias=GYRO_BIAS)
    aligner = OnlineGravityAlignment(scenario.window(), gravity_vector=np.zeros(3))

    estimate = aligner.estimate_gyroscope_bias_only()

    assert estimate.success
    assert np.linalg.norm(estimate.bias.gyroscope - GYRO_BIAS) < 2e-4


def test_full_alignment_recovers_gravity_and_initial_state():
    scenario = simulate_scenario(n_keyframes=41, gravity=GRAVITY, initial_velocity=V0)
    aligner = OnlineGravityAlignment(scenario.window(), gravity_vector=GRAVITY)

    result = aligner.align_visual_inertial_estimates()

    assert result.status == AlignmentStatus.SUCCESS
    assert np.allclose(result.gravity, GRAVITY, atol=1e-3)
    assert result.navstate.pose.is_close(Pose.identity(), tol=1e-3)
    assert np.allclose(result.navstate.velocity, V0, atol=1e-3)
    assert result.velocities.shape == (41, 3)
    assert result.scale == 1.0


def test_full_alignment_with_gyro_bias():
    scenario = simulate_scenario(n_keyframes=41, gravity=GRAVITY, initial_velocity=V0, gyro_bias=GYRO_BIAS)
    aligner = OnlineGravityAlignment(scenario.window(), gravity_vector=GRAVITY)

    result = aligner.align_visual_inertial_estimates()

    assert result.success
    assert np.linalg.norm(result.bias.gyroscope - GYRO_BIAS) < 2e-4
    assert np.allclose(result.gravity, GRAVITY, atol=1e-3)
    assert np.allclose(result.navstate.velocity, V0, atol=1e-3)


def test_first_order_reintegration_fallback():
    scenario = simulate_scenario(n_keyframes=41, gravity=GRAVITY, initial_velocity=V0, gyro_bias=GYRO_BIAS)
    full = scenario.window()
    window = AlignmentWindow(poses=full.poses, delta_t=full.delta_t, pims=full.pims)

    result = OnlineGravityAlignment(window, GRAVITY).align_visual_inertial_estimates()

    assert result.success
    assert np.allclose(result.gravity, GRAVITY, atol=1e-3)
    assert np.allclose(result.navstate.velocity, V0, atol=1e-3)


def test_reference_frame_re_anchoring():
    R0 = so3_exp(np.array([0.1, -0.2, 0.7]))
    pose0 = Pose(rotation=R0, translation=[3.0, -1.0, 2.0])
    scenario = simulate_scenario(n_keyframes=21, gravity=GRAVITY, initial_velocity=V0, initial_pose=pose0)

    anchored = OnlineGravityAlignment(scenario.window(), GRAVITY).align_visual_inertial_estimates()
    assert anchored.success
    assert anchored.navstate.pose.is_close(Pose.identity(), tol=1e-9)
    assert np.allclose(anchored.gravity, R0.T @ GRAVITY, atol=1e-3)
    assert np.allclose(anchored.navstate.velocity, R0.T @ V0, atol=1e-3)

    params = AlignmentParams(express_in_reference_frame=False)
    world = OnlineGravityAlignment(scenario.window(), GRAVITY, params).align_visual_inertial_estimates()
    assert world.success
    assert world.navstate.pose.is_close(pose0, tol=1e-9)
    assert np.allclose(world.gravity, GRAVITY, atol=1e-3)
    assert np.allclose(world.navstate.velocity, V0, atol=1e-3)


def test_scale_estimation_for_scale_free_poses():
    scenario = simulate_scenario(n_keyframes=21, gravity=GRAVITY, initial_velocity=V0)
    full = scenario.window()
    scaled = tuple(Pose(rotation=p.rotation, translation=0.5 * p.translation) for p in full.poses)
    window = AlignmentWindow(poses=scaled, delta_t=full.delta_t, pims=full.pims,
                             reintegrators=full.reintegrators)

    params = AlignmentParams(estimate_scale=True)
    result = OnlineGravityAlignment(window, GRAVITY, params).align_visual_inertial_estimates()

    assert result.success
    assert result.scale == pytest.approx(2.0, abs=1e-3)
    assert np.allclose(result.gravity, GRAVITY, atol=1e-3)
    assert np.allclose(result.navstate.velocity, V0, atol=1e-3)


def test_repeated_calls_are_identical():
    scenario = simulate_scenario(n_keyframes=21, gravity=GRAVITY, gyro_bias=GYRO_BIAS)
    aligner = OnlineGravityAlignment(scenario.window(), GRAVITY)

    first = aligner.align_visual_inertial_estimates()
    second = aligner.align_visual_inertial_estimates()

    assert first.status == second.status == AlignmentStatus.SUCCESS
    assert np.array_equal(first.bias.gyroscope, second.bias.gyroscope)
    assert np.array_equal(first.gravity, second.gravity)
    assert np.array_equal(first.velocities, second.velocities)
    assert np.array_equal(first.navstate.velocity, second.navstate.velocity)
    assert first.iterations == second.iterations


def test_too_few_keyframes_leaves_outputs_unset():
    scenario = simulate_scenario(n_keyframes=2, gravity=GRAVITY)
    aligner = OnlineGravityAlignment(scenario.window(), GRAVITY)

    result = aligner.align_visual_inertial_estimates()
    assert result.status == AlignmentStatus.INSUFFICIENT_DATA
    _assert_unset(result)

    estimate = aligner.estimate_gyroscope_bias_only()
    assert estimate.status == AlignmentStatus.INSUFFICIENT_DATA
    assert estimate.bias is None


def test_empty_window_is_insufficient_data():
    aligner = OnlineGravityAlignment(AlignmentWindow(poses=[], delta_t=[], pims=[]), GRAVITY)

    result = aligner.align_visual_inertial_estimates()
    assert result.status == AlignmentStatus.INSUFFICIENT_DATA
    _assert_unset(result)

    estimate = aligner.estimate_gyroscope_bias_only()
    assert estimate.status == AlignmentStatus.INSUFFICIENT_DATA
    assert estimate.bias is None


def test_degenerate_rotation_aborts_alignment():
    poses = [Pose.identity() for _ in range(5)]
    pims = [PreintegratedImuMeasurement(delta_R=np.eye(3), delta_v=np.zeros(3),
                                        delta_p=np.zeros(3), dt=0.1) for _ in range(4)]
    window = AlignmentWindow(poses=poses, delta_t=[0.1] * 4, pims=pims)

    result = OnlineGravityAlignment(window, GRAVITY).align_visual_inertial_estimates()

    assert result.status == AlignmentStatus.DEGENERATE_ROTATION
    _assert_unset(result)


def test_not_converged_aborts_unless_accepted():
    scenario = simulate_scenario(n_keyframes=11, gravity=GRAVITY)
    strict = AlignmentParams(refinement_tolerance=1e-300, max_refinement_iterations=2)

    result = OnlineGravityAlignment(scenario.window(), GRAVITY, strict).align_visual_inertial_estimates()
    assert result.status == AlignmentStatus.NOT_CONVERGED
    assert result.iterations == 2
    _assert_unset(result)

    lenient = strict.with_overrides(accept_unconverged=True)
    result = OnlineGravityAlignment(scenario.window(), GRAVITY, lenient).align_visual_inertial_estimates()
    assert result.status == AlignmentStatus.NOT_CONVERGED
    assert result.gravity is not None
    assert np.allclose(result.gravity, GRAVITY, atol=1e-3)


def test_three_keyframes_warns(capsys):
    scenario = simulate_scenario(n_keyframes=3, gravity=GRAVITY)
    OnlineGravityAlignment(scenario.window(), GRAVITY).align_visual_inertial_estimates()
    assert "[ALIGN] WARNING" in capsys.readouterr().out


def test_non_positive_gravity_raises_for_full_alignment():
    scenario = simulate_scenario(n_keyframes=5, gravity=(0.0, 0.0, 0.0))
    aligner = OnlineGravityAlignment(scenario.window(), gravity_vector=np.zeros(3))
    with pytest.raises(ValueError):
        aligner.align_visual_inertial_estimates()


def test_initial_accelerometer_bias_is_preserved():
    scenario = simulate_scenario(n_keyframes=11, gravity=GRAVITY)
    initial = ImuBias(accelerometer=[0.01, 0.02, 0.03])
    result = OnlineGravityAlignment(scenario.window(), GRAVITY).align_visual_inertial_estimates(initial)
    assert result.success
    assert np.allclose(result.bias.accelerometer, [0.01, 0.02, 0.03])
