"""Gyroscope bias recovery from vision vs. IMU relative rotations.

For each keyframe pair the vision rotation R_ij = R_iᵀ R_j is compared with
the preintegrated ΔR_ij. To first order in the bias,

    Log(ΔR_ijᵀ R_ij) ≈ J_R_bg (bg - bg_lin)

so stacking all pairs gives a 3-unknown linear least-squares problem that is
solved once through its normal equations.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from .config import AlignmentParams
from .imu_preintegration import PreintegratedImuMeasurement
from .math_utils import so3_log
from .numerical_checks import assert_finite, symmetric_eigen_bounds
from .types import AlignmentStatus, GyroBiasEstimate, ImuBias, Pose


class GyroscopeBiasEstimator:
    """Linear least-squares gyroscope bias from a window of rotations."""

    def __init__(self, params: AlignmentParams | None = None):
        self.params = params or AlignmentParams()

    def estimate(self, poses: Sequence[Pose],
                 pims: Sequence[PreintegratedImuMeasurement],
                 initial_bias: ImuBias | None = None) -> GyroBiasEstimate:
        """
        Solve for the gyroscope bias.

        Args:
            poses: N keyframe poses (only rotations are used)
            pims: N-1 preintegrated measurements between consecutive poses
            initial_bias: Nominal bias; its accelerometer part is carried into
                the output unchanged

        Returns:
            GyroBiasEstimate with the refined bias, or bias=None with
            INSUFFICIENT_DATA / DEGENERATE_ROTATION
        """
        initial_bias = initial_bias or ImuBias.zero()
        n_pairs = len(pims)
        if len(poses) < self.params.min_keyframes or n_pairs < 1:
            reason = f"{len(poses)} keyframes < {self.params.min_keyframes}"
            print(f"[GYRO-BIAS] {AlignmentStatus.INSUFFICIENT_DATA.value}: {reason}")
            return GyroBiasEstimate(AlignmentStatus.INSUFFICIENT_DATA, reason=reason)

        H = np.zeros((3, 3), dtype=float)
        rhs = np.zeros(3, dtype=float)
        for k, pim in enumerate(pims):
            R_ij = poses[k].rotation.T @ poses[k + 1].rotation
            r = so3_log(pim.delta_R.T @ R_ij)
            J = pim.J_R_bg
            # Residual is linear in the absolute bias once bg_lin is folded in
            H += J.T @ J
            rhs += J.T @ (r + J @ pim.bias.gyroscope)

        if not assert_finite("gyro bias H", H, extra_info={"rhs": rhs}):
            return GyroBiasEstimate(AlignmentStatus.DEGENERATE_ROTATION, reason="non-finite normal matrix")

        eig_min, eig_max = symmetric_eigen_bounds(H)
        if eig_min < self.params.bias_min_eigenvalue or eig_max / max(eig_min, 1e-300) > self.params.bias_max_condition:
            reason = f"rank-deficient bias system (eig_min={eig_min:.3e}, eig_max={eig_max:.3e})"
            print(f"[GYRO-BIAS] {AlignmentStatus.DEGENERATE_ROTATION.value}: {reason}")
            return GyroBiasEstimate(AlignmentStatus.DEGENERATE_ROTATION, reason=reason)

        bg = np.linalg.solve(H, rhs)
        if not assert_finite("gyro bias", bg):
            return GyroBiasEstimate(AlignmentStatus.DEGENERATE_ROTATION, reason="non-finite bias")

        if self.params.verbose:
            print(f"[GYRO-BIAS] pairs={n_pairs} eig=[{eig_min:.3e}, {eig_max:.3e}]")
        print(f"[GYRO-BIAS] bg=[{bg[0]:.6e}, {bg[1]:.6e}, {bg[2]:.6e}] rad/s")
        return GyroBiasEstimate(AlignmentStatus.SUCCESS, bias=initial_bias.with_gyroscope(bg))
