#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
IMU Preintegration Module
=========================

Implements IMU preintegration on manifold following Forster et al., TRO 2017:
"On-Manifold Preintegration for Real-Time Visual-Inertial Odometry"

The alignment consumes preintegration as a capability: each keyframe interval
owns an ``ImuReintegrator`` that turns a bias into a
``PreintegratedImuMeasurement``. The gyroscope bias is refined once per
alignment call and every interval is re-integrated with it before the
velocity/gravity solve.

Preintegrated quantities (body frame of keyframe i):
----------------------------------------------------
   - ΔR_ij: Relative rotation from i to j
   - Δv_ij: Velocity increment in frame i
   - Δp_ij: Position increment in frame i

Bias correction (first order):
     ΔR_corr = ΔR * Exp(J_R_bg * δbg)
     Δv_corr = Δv + J_v_bg * δbg + J_v_ba * δba
     Δp_corr = Δp + J_p_bg * δbg + J_p_ba * δba

State Update:
-------------
Gravity is NOT compensated during preintegration. It enters in the world
frame when the deltas are applied:
    R_j = R_i * ΔR_ij
    v_j = v_i + g*Δt + R_i * Δv_ij
    p_j = p_i + v_i*Δt + 0.5*g*Δt² + R_i * Δp_ij

This is the relation the linear alignment system is built from.

Covariance Propagation:
-----------------------
    Σ_{k+1} = A_k * Σ_k * A_k' + B_k * Q_d * B_k'

References:
-----------
[1] Forster et al., "On-Manifold Preintegration for Real-Time Visual-Inertial
    Odometry", IEEE TRO 2017

Author: VIO project
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Tuple

import numpy as np

from .config import IMU_PARAMS
from .math_utils import skew_symmetric, so3_exp, so3_right_jacobian
from .types import ImuBias, ImuSamples


# Integration step validation
DT_MIN = 1e-6  # 1 microsecond minimum
DT_MAX = 0.1   # 100ms maximum (IMU should be > 10Hz)


@dataclass(frozen=True)
class PreintegratedImuMeasurement:
    """
    Immutable result of preintegrating one keyframe interval under ``bias``.

    Jacobians follow the right-perturbation convention of
    ``IMUPreintegration``: ∂ΔR/∂bg enters as ΔR @ Exp(J_R_bg @ δbg).
    """

    delta_R: np.ndarray
    delta_v: np.ndarray
    delta_p: np.ndarray
    dt: float
    bias: ImuBias = field(default_factory=ImuBias)
    J_R_bg: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))
    J_v_bg: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))
    J_v_ba: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))
    J_p_bg: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))
    J_p_ba: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))
    cov: np.ndarray = field(default_factory=lambda: np.zeros((9, 9)))

    def corrected(self, bias: ImuBias) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Bias-corrected deltas using the first-order Jacobians.

        Returns:
            delta_R_corr, delta_v_corr, delta_p_corr
        """
        dbg = bias.gyroscope - self.bias.gyroscope
        dba = bias.accelerometer - self.bias.accelerometer
        delta_R_corr = self.delta_R @ so3_exp(self.J_R_bg @ dbg)
        delta_v_corr = self.delta_v + self.J_v_bg @ dbg + self.J_v_ba @ dba
        delta_p_corr = self.delta_p + self.J_p_bg @ dbg + self.J_p_ba @ dba
        return delta_R_corr, delta_v_corr, delta_p_corr


class IMUPreintegration:
    """
    IMU Preintegration on Manifold (Forster et al., TRO 2017).

    Preintegrates IMU measurements between keyframes to compute:
      - ΔR: Preintegrated rotation (SO(3) rotation matrix)
      - Δv: Preintegrated velocity (3D vector)
      - Δp: Preintegrated position (3D vector)

    Also maintains Jacobians w.r.t. biases for efficient bias correction:
      - J_R_bg (3×3): ∂ΔR/∂bg rotation Jacobian w.r.t. gyro bias
      - J_v_bg (3×3): ∂Δv/∂bg velocity Jacobian w.r.t. gyro bias
      - J_v_ba (3×3): ∂Δv/∂ba velocity Jacobian w.r.t. accel bias
      - J_p_bg (3×3): ∂Δp/∂bg position Jacobian w.r.t. gyro bias
      - J_p_ba (3×3): ∂Δp/∂ba position Jacobian w.r.t. accel bias

    Usage Example:
        preint = IMUPreintegration(bias, sigma_g=0.004, sigma_a=0.08)
        for k in range(len(samples) - 1):
            dt = samples.timestamps[k + 1] - samples.timestamps[k]
            preint.integrate_measurement(samples.gyro[k], samples.accel[k], dt)
        pim = preint.to_measurement()
    """

    def __init__(self, bias: ImuBias,
                 sigma_g: float, sigma_a: float):
        """
        Initialize preintegration with the linearization bias and noise parameters.

        Args:
            bias: Bias the raw samples are corrected with
            sigma_g: Gyroscope measurement noise std [rad/s/√Hz]
            sigma_a: Accelerometer measurement noise std [m/s²/√Hz]
        """
        self.sigma_g = sigma_g
        self.sigma_a = sigma_a
        self.reset(bias)

    def reset(self, bias: ImuBias):
        """Reset preintegration to identity/zero with new linearization point."""
        self.bias = bias
        self.bg_lin = bias.gyroscope.copy()
        self.ba_lin = bias.accelerometer.copy()

        self.delta_R = np.eye(3, dtype=float)
        self.delta_v = np.zeros(3, dtype=float)
        self.delta_p = np.zeros(3, dtype=float)

        self.J_R_bg = np.zeros((3, 3), dtype=float)
        self.J_v_bg = np.zeros((3, 3), dtype=float)
        self.J_v_ba = np.zeros((3, 3), dtype=float)
        self.J_p_bg = np.zeros((3, 3), dtype=float)
        self.J_p_ba = np.zeros((3, 3), dtype=float)

        self.cov = np.zeros((9, 9), dtype=float)
        self.dt_sum = 0.0

    def integrate_measurement(self, w_meas: np.ndarray, a_meas: np.ndarray, dt: float):
        """
        Integrate one IMU measurement (gyro + accel) over time step dt.

        The accelerometer reading is specific force and still contains the
        reaction to gravity; gravity is removed in the world frame by the
        consumer of the deltas.

        Args:
            w_meas: Gyroscope measurement (3D, rad/s)
            a_meas: Accelerometer measurement (3D, m/s²)
            dt: Time step (seconds)
        """
        if dt <= 0.0:
            print(f"[PREINT] Invalid dt={dt:.9f}s (≤0), skipping integration")
            return

        if dt < DT_MIN:
            print(f"[PREINT] dt={dt:.9f}s < DT_MIN={DT_MIN}s, skipping")
            return

        if dt > DT_MAX:
            # Likely a timestamp gap; split to keep the Euler step small
            num_splits = int(np.ceil(dt / DT_MAX))
            dt_split = dt / num_splits
            print(f"[PREINT] Large dt={dt:.6f}s split into {num_splits} × {dt_split:.6f}s")
            for _ in range(num_splits):
                self.integrate_measurement(w_meas, a_meas, dt_split)
            return

        w_hat = np.asarray(w_meas, dtype=float) - self.bg_lin
        a_hat = np.asarray(a_meas, dtype=float) - self.ba_lin

        # --- Step 1: Rotation delta ---
        # ΔR_{k+1} = ΔR_k * Exp(ω_hat * dt)
        theta_vec = w_hat * dt
        delta_R_k1 = self.delta_R @ so3_exp(theta_vec)
        j_r = so3_right_jacobian(theta_vec)

        # --- Step 2: Velocity delta ---
        # Δv_{k+1} = Δv_k + ΔR_k * a_hat * dt
        delta_v_k1 = self.delta_v + self.delta_R @ a_hat * dt

        # --- Step 3: Position delta ---
        # Δp_{k+1} = Δp_k + Δv_k * dt + 0.5 * ΔR_k * a_hat * dt²
        delta_p_k1 = self.delta_p + self.delta_v * dt + \
            0.5 * self.delta_R @ a_hat * (dt ** 2)

        # --- Step 4: Jacobians w.r.t. biases ---
        # Forster et al. TRO 2017, Eq. (24-28)
        # ∂ΔR_{k+1}/∂bg = Exp(ωdt)ᵀ ∂ΔR_k/∂bg - Jr dt
        exp_theta = so3_exp(theta_vec)
        j_r_bg_k1 = exp_theta.T @ self.J_R_bg - j_r * dt
        j_v_bg_k1 = self.J_v_bg - self.delta_R @ skew_symmetric(a_hat) @ self.J_R_bg * dt
        j_v_ba_k1 = self.J_v_ba - self.delta_R * dt
        j_p_bg_k1 = self.J_p_bg + self.J_v_bg * dt - \
            0.5 * self.delta_R @ skew_symmetric(a_hat) @ self.J_R_bg * (dt ** 2)
        j_p_ba_k1 = self.J_p_ba + self.J_v_ba * dt - 0.5 * self.delta_R * (dt ** 2)

        # --- Step 5: Covariance (error-state [δθ, δv, δp]) ---
        A = np.eye(9, dtype=float)
        A[0:3, 0:3] = exp_theta.T
        A[3:6, 0:3] = -self.delta_R @ skew_symmetric(a_hat) * dt
        A[6:9, 0:3] = -0.5 * self.delta_R @ skew_symmetric(a_hat) * (dt ** 2)
        A[6:9, 3:6] = np.eye(3) * dt

        B = np.zeros((9, 6), dtype=float)
        B[0:3, 0:3] = j_r * dt
        B[3:6, 3:6] = self.delta_R * dt
        B[6:9, 3:6] = 0.5 * self.delta_R * (dt ** 2)

        Q = np.diag([
            self.sigma_g**2 / dt, self.sigma_g**2 / dt, self.sigma_g**2 / dt,
            self.sigma_a**2 / dt, self.sigma_a**2 / dt, self.sigma_a**2 / dt
        ])

        cov_new = A @ self.cov @ A.T + B @ Q @ B.T
        self.cov = (cov_new + cov_new.T) / 2.0

        # --- Step 6: Commit updates ---
        self.delta_R = delta_R_k1
        self.delta_v = delta_v_k1
        self.delta_p = delta_p_k1

        self.J_R_bg = j_r_bg_k1
        self.J_v_bg = j_v_bg_k1
        self.J_v_ba = j_v_ba_k1
        self.J_p_bg = j_p_bg_k1
        self.J_p_ba = j_p_ba_k1

        self.dt_sum += dt

    def to_measurement(self) -> PreintegratedImuMeasurement:
        """Freeze the current state into an immutable measurement."""
        return PreintegratedImuMeasurement(
            delta_R=self.delta_R.copy(),
            delta_v=self.delta_v.copy(),
            delta_p=self.delta_p.copy(),
            dt=float(self.dt_sum),
            bias=self.bias,
            J_R_bg=self.J_R_bg.copy(),
            J_v_bg=self.J_v_bg.copy(),
            J_v_ba=self.J_v_ba.copy(),
            J_p_bg=self.J_p_bg.copy(),
            J_p_ba=self.J_p_ba.copy(),
            cov=self.cov.copy(),
        )


def preintegrate_samples(samples: ImuSamples, bias: ImuBias,
                         imu_params: Optional[Dict[str, float]] = None) -> PreintegratedImuMeasurement:
    """
    Preintegrate a sample range with a zero-order hold on each sample.

    Sample k is held over [t_k, t_{k+1}); the last sample only closes the
    interval.

    Args:
        samples: Raw samples covering one keyframe interval
        bias: Linearization bias
        imu_params: Noise dict with keys acc_n, gyr_n

    Returns:
        PreintegratedImuMeasurement over [t_0, t_{M-1}]
    """
    params = imu_params or IMU_PARAMS
    preint = IMUPreintegration(
        bias,
        sigma_g=params['gyr_n'],
        sigma_a=params['acc_n'],
    )
    t = samples.timestamps
    for k in range(len(t) - 1):
        preint.integrate_measurement(samples.gyro[k], samples.accel[k], t[k + 1] - t[k])
    return preint.to_measurement()


# =============================================================================
# Re-integration capability
# =============================================================================

class ImuReintegrator(Protocol):
    """Anything that can recompute an interval's PIM under a new bias."""

    def reintegrate(self, bias: ImuBias) -> PreintegratedImuMeasurement:
        ...


class SampleReintegrator:
    """Re-runs preintegration over the raw samples of one interval."""

    def __init__(self, samples: ImuSamples, imu_params: Optional[Dict[str, float]] = None):
        if len(samples) < 2:
            raise ValueError(f"Need at least 2 IMU samples to preintegrate, got {len(samples)}")
        self.samples = samples
        self.imu_params = dict(imu_params or IMU_PARAMS)

    def reintegrate(self, bias: ImuBias) -> PreintegratedImuMeasurement:
        return preintegrate_samples(self.samples, bias, self.imu_params)


class FirstOrderReintegrator:
    """
    Applies the bias Jacobians of an existing PIM instead of revisiting samples.

    Exact only to first order in the bias change; used when the raw samples
    are no longer available.
    """

    def __init__(self, pim: PreintegratedImuMeasurement):
        self.pim = pim

    def reintegrate(self, bias: ImuBias) -> PreintegratedImuMeasurement:
        delta_R, delta_v, delta_p = self.pim.corrected(bias)
        return PreintegratedImuMeasurement(
            delta_R=delta_R,
            delta_v=delta_v,
            delta_p=delta_p,
            dt=self.pim.dt,
            bias=bias,
            J_R_bg=self.pim.J_R_bg,
            J_v_bg=self.pim.J_v_bg,
            J_v_ba=self.pim.J_v_ba,
            J_p_bg=self.pim.J_p_bg,
            J_p_ba=self.pim.J_p_ba,
            cov=self.pim.cov,
        )
