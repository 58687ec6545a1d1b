"""
Synthetic visual-inertial scenarios with known ground truth.

Body motion is driven by sinusoidal angular rates (body frame) and
sinusoidal accelerations (navigation frame). The true state is propagated
with the same zero-order-hold discretization the preintegrator uses:

    R_{k+1} = R_k Exp(ω_k dt)
    v_{k+1} = v_k + a_k dt
    p_{k+1} = p_k + v_k dt + ½ a_k dt²

with a_k = g + R_k f_k, so f_k = R_kᵀ (a_k - g) is the ideal specific force.
The IMU then reports ω_k + b_g and f_k + b_a. Preintegrating the samples
between two keyframes with the true bias reproduces the keyframe states
exactly, which makes the scenarios usable as exact references.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from .alignment_window import AlignmentWindow
from .imu_buffer import ImuBuffer
from .imu_preintegration import SampleReintegrator
from .math_utils import so3_exp
from .types import ImuBias, ImuSamples, Pose


@dataclass(frozen=True)
class MotionProfile:
    """Sinusoid amplitudes [per axis], angular frequencies [rad/s] and phases."""

    gyro_amplitude: np.ndarray = field(default_factory=lambda: np.array([0.3, 0.4, 0.5]))
    gyro_frequency: np.ndarray = field(default_factory=lambda: np.array([0.7, 1.1, 0.5]))
    gyro_phase: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.6, 1.2]))
    accel_amplitude: np.ndarray = field(default_factory=lambda: np.array([0.8, 0.6, 0.4]))
    accel_frequency: np.ndarray = field(default_factory=lambda: np.array([0.9, 0.6, 1.3]))
    accel_phase: np.ndarray = field(default_factory=lambda: np.array([0.3, 0.0, 0.9]))

    def angular_rate(self, t: float) -> np.ndarray:
        return self.gyro_amplitude * np.sin(self.gyro_frequency * t + self.gyro_phase)

    def acceleration(self, t: float) -> np.ndarray:
        return self.accel_amplitude * np.sin(self.accel_frequency * t + self.accel_phase)


@dataclass(frozen=True)
class SyntheticScenario:
    """Simulated IMU stream plus the true keyframe states behind it."""

    imu: ImuSamples
    keyframe_indices: np.ndarray  # into imu.timestamps
    poses: List[Pose]
    velocities: np.ndarray  # (N, 3)
    gravity: np.ndarray
    bias: ImuBias

    @property
    def keyframe_timestamps(self) -> np.ndarray:
        return self.imu.timestamps[self.keyframe_indices]

    @property
    def n_keyframes(self) -> int:
        return len(self.poses)

    def interval_samples(self, k: int) -> ImuSamples:
        """Raw samples of keyframe interval k, both border samples included."""
        lo, hi = int(self.keyframe_indices[k]), int(self.keyframe_indices[k + 1])
        return ImuSamples(
            timestamps=self.imu.timestamps[lo:hi + 1],
            gyro=self.imu.gyro[lo:hi + 1],
            accel=self.imu.accel[lo:hi + 1],
        )

    def window(self, bias: Optional[ImuBias] = None,
               imu_params: Optional[Dict[str, float]] = None) -> AlignmentWindow:
        """Alignment window with PIMs linearized at ``bias`` (zero if None)."""
        bias = bias or ImuBias.zero()
        reintegrators = [SampleReintegrator(self.interval_samples(k), imu_params)
                         for k in range(self.n_keyframes - 1)]
        t_kf = self.keyframe_timestamps
        return AlignmentWindow(
            poses=tuple(self.poses),
            delta_t=tuple(np.diff(t_kf)),
            pims=tuple(r.reintegrate(bias) for r in reintegrators),
            reintegrators=tuple(reintegrators),
            timestamps=tuple(t_kf),
        )

    def to_imu_buffer(self, capacity: Optional[int] = None) -> ImuBuffer:
        buf = ImuBuffer(capacity=capacity or len(self.imu) + 1)
        buf.add_samples(self.imu)
        return buf


def simulate_scenario(n_keyframes: int = 40,
                      keyframe_interval: float = 0.25,
                      imu_rate: float = 200.0,
                      gravity: Sequence[float] = (0.0, 0.0, -9.81),
                      initial_velocity: Sequence[float] = (0.1, 0.2, -0.05),
                      gyro_bias: Sequence[float] = (0.0, 0.0, 0.0),
                      accel_bias: Sequence[float] = (0.0, 0.0, 0.0),
                      initial_pose: Optional[Pose] = None,
                      motion: Optional[MotionProfile] = None,
                      t_start: float = 0.0) -> SyntheticScenario:
    """
    Simulate a keyframe trajectory and the IMU stream that produced it.

    Args:
        n_keyframes: Number of keyframes N
        keyframe_interval: Seconds between keyframes
        imu_rate: IMU sample rate [Hz]
        gravity: Navigation-frame gravity (zero disables it)
        initial_velocity: v at the first keyframe [m/s]
        gyro_bias / accel_bias: Constant biases added to the measurements
        initial_pose: Pose of the first keyframe (identity if None)
        motion: Excitation profile
        t_start: Time of the first sample [s]
    """
    if n_keyframes < 2:
        raise ValueError(f"Need at least 2 keyframes, got {n_keyframes}")
    steps_per_kf = int(round(keyframe_interval * imu_rate))
    if steps_per_kf < 1:
        raise ValueError("keyframe_interval shorter than one IMU period")

    motion = motion or MotionProfile()
    g = np.asarray(gravity, dtype=float)
    bias = ImuBias(accelerometer=accel_bias, gyroscope=gyro_bias)
    dt = 1.0 / imu_rate
    n_steps = steps_per_kf * (n_keyframes - 1)
    t = t_start + np.arange(n_steps + 1) * dt

    pose0 = initial_pose or Pose.identity()
    R = pose0.rotation.copy()
    p = pose0.translation.copy()
    v = np.asarray(initial_velocity, dtype=float).copy()

    gyro = np.zeros((n_steps + 1, 3))
    accel = np.zeros((n_steps + 1, 3))
    poses, velocities = [Pose(rotation=R, translation=p)], [v.copy()]

    for k in range(n_steps + 1):
        w_k = motion.angular_rate(t[k] - t_start)
        a_k = motion.acceleration(t[k] - t_start)
        gyro[k] = w_k + bias.gyroscope
        accel[k] = R.T @ (a_k - g) + bias.accelerometer
        if k == n_steps:
            break

        p = p + v * dt + 0.5 * a_k * dt ** 2
        v = v + a_k * dt
        R = R @ so3_exp(w_k * dt)
        if (k + 1) % steps_per_kf == 0:
            poses.append(Pose(rotation=R, translation=p))
            velocities.append(v.copy())

    return SyntheticScenario(
        imu=ImuSamples(timestamps=t, gyro=gyro, accel=accel),
        keyframe_indices=np.arange(n_keyframes) * steps_per_kf,
        poses=poses,
        velocities=np.asarray(velocities),
        gravity=g,
        bias=bias,
    )
