#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Online Gravity Alignment Module
===============================

Bootstraps a visual-inertial estimator from a short window of vision poses
and the IMU measurements between them.

Pipeline (any failed stage aborts the rest):
--------------------------------------------
1. Gyroscope bias from vision vs. preintegrated relative rotations
2. Re-integration of every interval with the corrected bias
3. Unconstrained linear solve for keyframe velocities and gravity
4. Tangent-plane refinement enforcing |g| = g0
5. Result assembly: bias, gravity, velocities and the NavState at the
   reference (first) keyframe

The alignment is a one-shot, synchronous computation. The window is never
modified, so repeated calls on the same window return identical results.

Author: VIO project
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np

from .alignment_window import AlignmentWindow
from .config import GRAVITY_VECTOR, AlignmentParams
from .gravity_refinement import GravityRefinementLoop
from .gyro_bias import GyroscopeBiasEstimator
from .linear_alignment import LinearAlignmentSolver
from .types import AlignmentResult, AlignmentStatus, GyroBiasEstimate, ImuBias, NavState, Pose


class OnlineGravityAlignment:
    """
    Gyroscope bias, gravity and velocity initialization over one window.

    Args:
        window: Keyframe poses, elapsed times, PIMs and reintegrators
        gravity_vector: Navigation-frame gravity; its norm is the magnitude
            enforced by the refinement
        params: Solver thresholds and flags
    """

    def __init__(self, window: AlignmentWindow,
                 gravity_vector: Optional[np.ndarray] = None,
                 params: Optional[AlignmentParams] = None):
        self.window = window
        self.gravity_vector = np.asarray(
            GRAVITY_VECTOR if gravity_vector is None else gravity_vector, dtype=float
        ).reshape(3,)
        self.params = params or AlignmentParams()

        self._bias_estimator = GyroscopeBiasEstimator(self.params)
        self._linear_solver = LinearAlignmentSolver(self.params)
        self._refinement = GravityRefinementLoop(self.params)

    @property
    def gravity_magnitude(self) -> float:
        return float(np.linalg.norm(self.gravity_vector))

    def estimate_gyroscope_bias_only(self, initial_bias: Optional[ImuBias] = None) -> GyroBiasEstimate:
        """Run the bias stage alone; bias is None on failure."""
        if not self._check_window_size():
            return GyroBiasEstimate(
                AlignmentStatus.INSUFFICIENT_DATA,
                reason=f"{len(self.window)} keyframes < {self.params.min_keyframes}",
            )
        return self._bias_estimator.estimate(self.window.poses, self.window.pims, initial_bias)

    def align_visual_inertial_estimates(self, initial_bias: Optional[ImuBias] = None) -> AlignmentResult:
        """
        Full alignment.

        Returns:
            AlignmentResult; every estimate field is None unless status is
            SUCCESS (or NOT_CONVERGED with accept_unconverged set)

        Raises:
            ValueError: Gravity vector with non-positive magnitude
        """
        g0 = self.gravity_magnitude
        if not np.isfinite(g0) or g0 <= 0.0:
            raise ValueError(f"Gravity magnitude must be positive for alignment, got {g0}")

        if not self._check_window_size():
            return self._fail(AlignmentStatus.INSUFFICIENT_DATA,
                              f"{len(self.window)} keyframes < {self.params.min_keyframes}")

        # --- Stage 1: gyroscope bias ---
        bias_estimate = self._bias_estimator.estimate(self.window.poses, self.window.pims, initial_bias)
        if not bias_estimate.success:
            return self._fail(bias_estimate.status, bias_estimate.reason)
        bias = bias_estimate.bias

        # --- Stage 2: re-integrate with the corrected bias ---
        pims = self.window.reintegrated(bias)

        poses = self._alignment_poses()
        delta_t = self.window.delta_t

        # --- Stage 3: unconstrained velocity / gravity ---
        linear = self._linear_solver.solve(poses, delta_t, pims)
        if not linear.success:
            return self._fail(linear.status, linear.reason)

        # --- Stage 4: refinement on |g| = g0 ---
        state = self._refinement.refine(poses, delta_t, pims, linear.gravity, g0)
        if state.status == AlignmentStatus.NOT_CONVERGED and not self.params.accept_unconverged:
            return self._fail(state.status, state.reason, state.iterations)
        if state.status not in (AlignmentStatus.SUCCESS, AlignmentStatus.NOT_CONVERGED):
            return self._fail(state.status, state.reason, state.iterations)

        # --- Stage 5: result assembly ---
        ref_pose = poses[0]
        ref_pose = Pose(rotation=ref_pose.rotation, translation=state.scale * ref_pose.translation)
        result = AlignmentResult(
            status=state.status,
            bias=bias,
            gravity=state.gravity.copy(),
            navstate=NavState(pose=ref_pose, velocity=state.velocities[0].copy()),
            velocities=state.velocities.copy(),
            scale=float(state.scale),
            iterations=state.iterations,
            reason=state.reason,
        )
        g = result.gravity
        v = result.navstate.velocity
        print(f"[ALIGN] {result.status.value}: g=[{g[0]:.4f}, {g[1]:.4f}, {g[2]:.4f}] "
              f"v0=[{v[0]:.4f}, {v[1]:.4f}, {v[2]:.4f}] scale={result.scale:.4f} "
              f"iterations={result.iterations}")
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _check_window_size(self) -> bool:
        n = len(self.window)
        if n < self.params.min_keyframes:
            print(f"[ALIGN] {AlignmentStatus.INSUFFICIENT_DATA.value}: "
                  f"{n} keyframes < {self.params.min_keyframes}")
            return False
        if n == 3:
            print("[ALIGN] WARNING: only 3 keyframes, the solve is poorly conditioned (4+ recommended)")
        return True

    def _alignment_poses(self) -> List[Pose]:
        """Poses in the frame the solve runs in (re-anchored on keyframe 0 if enabled)."""
        poses = list(self.window.poses)
        if not self.params.express_in_reference_frame:
            return poses
        ref_inv = poses[0].inverse()
        return [ref_inv.compose(p) for p in poses]

    @staticmethod
    def _fail(status: AlignmentStatus, reason: str, iterations: int = 0) -> AlignmentResult:
        print(f"[ALIGN] Alignment aborted: {status.value} ({reason})")
        return AlignmentResult.failure(status, reason, iterations)
