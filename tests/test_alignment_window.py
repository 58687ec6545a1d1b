import numpy as np
import pytest

from vio_init.alignment_window import AlignmentWindow, build_alignment_window
from vio_init.imu_preintegration import FirstOrderReintegrator, SampleReintegrator
from vio_init.simulation import simulate_scenario
from vio_init.types import ImuBias, Pose


def test_mismatched_sizes_raise():
    scenario = simulate_scenario(n_keyframes=4)
    window = scenario.window()
    with pytest.raises(ValueError):
        AlignmentWindow(poses=window.poses, delta_t=window.delta_t[:-1], pims=window.pims)
    with pytest.raises(ValueError):
        AlignmentWindow(poses=window.poses[:-1], delta_t=window.delta_t, pims=window.pims)
    with pytest.raises(ValueError):
        AlignmentWindow(poses=window.poses, delta_t=window.delta_t, pims=window.pims,
                        reintegrators=window.reintegrators[:1])


def test_default_reintegrators_are_first_order():
    scenario = simulate_scenario(n_keyframes=4)
    full = scenario.window()
    window = AlignmentWindow(poses=list(full.poses), delta_t=list(full.delta_t), pims=list(full.pims))

    assert len(window) == 4
    assert all(isinstance(r, FirstOrderReintegrator) for r in window.reintegrators)
    assert isinstance(window.poses, tuple)


def test_reintegrated_uses_new_bias():
    scenario = simulate_scenario(n_keyframes=4)
    window = scenario.window()
    bias = ImuBias(gyroscope=[1e-3, 0.0, 0.0])

    pims = window.reintegrated(bias)

    assert len(pims) == 3
    assert all(pim.bias is bias for pim in pims)
    # Original window is untouched
    assert all(np.allclose(pim.bias.gyroscope, 0.0) for pim in window.pims)


def test_build_from_buffer_matches_direct_window():
    scenario = simulate_scenario(n_keyframes=12)
    buffer = scenario.to_imu_buffer()

    window = build_alignment_window(scenario.keyframe_timestamps, scenario.poses, buffer,
                                    n_begin=2, n_frames=5)
    reference = scenario.window()

    assert len(window) == 6
    assert all(isinstance(r, SampleReintegrator) for r in window.reintegrators)
    assert np.allclose(window.timestamps, scenario.keyframe_timestamps[2:8])
    assert np.allclose(window.delta_t, reference.delta_t[2:7])
    for pim, ref in zip(window.pims, reference.pims[2:7]):
        assert np.allclose(pim.delta_R, ref.delta_R, atol=1e-12)
        assert np.allclose(pim.delta_v, ref.delta_v, atol=1e-12)
        assert np.allclose(pim.delta_p, ref.delta_p, atol=1e-12)


def test_build_uses_all_remaining_keyframes_without_cap():
    scenario = simulate_scenario(n_keyframes=6)
    window = build_alignment_window(scenario.keyframe_timestamps, scenario.poses,
                                    scenario.to_imu_buffer(), n_begin=1)
    assert len(window) == 5


def test_build_fails_when_imu_data_missing():
    scenario = simulate_scenario(n_keyframes=4)
    timestamps = np.append(scenario.keyframe_timestamps, scenario.keyframe_timestamps[-1] + 1.0)
    poses = list(scenario.poses) + [Pose.identity()]
    with pytest.raises(ValueError):
        build_alignment_window(timestamps, poses, scenario.to_imu_buffer(), timeout=0.0)


def test_build_rejects_bad_inputs():
    scenario = simulate_scenario(n_keyframes=4)
    buffer = scenario.to_imu_buffer()
    with pytest.raises(ValueError):
        build_alignment_window(scenario.keyframe_timestamps[:-1], scenario.poses, buffer)
    with pytest.raises(ValueError):
        build_alignment_window(scenario.keyframe_timestamps, scenario.poses, buffer, n_begin=3)
    with pytest.raises(ValueError):
        build_alignment_window(scenario.keyframe_timestamps[::-1], scenario.poses, buffer)


def test_empty_window_is_accepted():
    window = AlignmentWindow(poses=[], delta_t=[], pims=[])
    assert len(window) == 0
    assert window.reintegrators == ()


def test_empty_poses_with_intervals_raise():
    pims = simulate_scenario(n_keyframes=2).window().pims
    with pytest.raises(ValueError):
        AlignmentWindow(poses=[], delta_t=[0.25], pims=pims)
