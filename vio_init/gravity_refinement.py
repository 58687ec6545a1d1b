"""Gravity refinement on the tangent plane of the gravity sphere.

The unconstrained linear solve leaves |g| free. Here gravity is restricted to
the sphere of radius g0: around the current direction ĝ two tangent-plane
coordinates δ are solved for together with the velocities, the direction is
updated to g0·normalize(ĝ + B δ) and the system is rebuilt until the
correction is small relative to g0.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np

from .config import AlignmentParams
from .imu_preintegration import PreintegratedImuMeasurement
from .linear_alignment import build_alignment_system, check_window
from .math_utils import create_tangent_basis, normalize
from .numerical_checks import solve_least_squares
from .types import AlignmentStatus, Pose


@dataclass(frozen=True)
class RefinementState:
    """Iteration state threaded through the refinement loop."""

    gravity: np.ndarray
    velocities: Optional[np.ndarray] = None
    scale: float = 1.0
    iterations: int = 0
    converged: bool = False
    last_delta_norm: float = float("inf")
    status: AlignmentStatus = AlignmentStatus.NOT_CONVERGED
    reason: str = ""

    @property
    def success(self) -> bool:
        return self.status == AlignmentStatus.SUCCESS


class GravityRefinementLoop:
    """Bounded fixed-point iteration enforcing |g| = g0."""

    def __init__(self, params: AlignmentParams | None = None):
        self.params = params or AlignmentParams()

    def refine(self, poses: Sequence[Pose], delta_t: Sequence[float],
               pims: Sequence[PreintegratedImuMeasurement],
               gravity0: np.ndarray, g0: float) -> RefinementState:
        """
        Refine an initial gravity estimate to magnitude g0.

        Args:
            poses: N keyframe poses
            delta_t: N-1 elapsed times [s]
            pims: N-1 measurements re-integrated with the final bias
            gravity0: Initial gravity (e.g. from the unconstrained solve)
            g0: Known gravity magnitude [m/s²]

        Returns:
            RefinementState with status SUCCESS, NOT_CONVERGED (last estimate
            kept) or SINGULAR_SYSTEM / INSUFFICIENT_DATA (no estimate)

        Raises:
            ValueError: g0 not positive, or gravity0 zero / non-finite
        """
        if not np.isfinite(g0) or g0 <= 0.0:
            raise ValueError(f"Gravity magnitude must be positive, got {g0}")
        state = RefinementState(gravity=float(g0) * normalize(gravity0))

        status, reason = check_window(poses, delta_t, self.params)
        if status != AlignmentStatus.SUCCESS:
            print(f"[GRAV-REFINE] {status.value}: {reason}")
            return replace(state, status=status, reason=reason)

        while state.iterations < self.params.max_refinement_iterations:
            g_hat = g0 * normalize(state.gravity)
            basis = create_tangent_basis(g_hat)
            system = build_alignment_system(
                poses, delta_t, pims,
                gravity_basis=basis,
                gravity_offset=g_hat,
                estimate_scale=self.params.estimate_scale,
            )
            x, reason = solve_least_squares(system.A, system.b, self.params.min_rcond)
            if x is None:
                print(f"[GRAV-REFINE] {AlignmentStatus.SINGULAR_SYSTEM.value} "
                      f"at iteration {state.iterations + 1}: {reason}")
                return replace(state, velocities=None, iterations=state.iterations + 1,
                               status=AlignmentStatus.SINGULAR_SYSTEM, reason=reason)

            velocities, delta, scale = system.split(x)
            if scale <= 0.0:
                reason = f"non-positive scale {scale:.4f}"
                print(f"[GRAV-REFINE] {AlignmentStatus.SINGULAR_SYSTEM.value}: {reason}")
                return replace(state, velocities=None, iterations=state.iterations + 1,
                               status=AlignmentStatus.SINGULAR_SYSTEM, reason=reason)

            delta_norm = float(np.linalg.norm(delta))
            state = RefinementState(
                gravity=g0 * normalize(g_hat + basis @ delta),
                velocities=velocities.copy(),
                scale=scale,
                iterations=state.iterations + 1,
                converged=delta_norm / g0 < self.params.refinement_tolerance,
                last_delta_norm=delta_norm,
            )
            if self.params.verbose:
                g = state.gravity
                print(f"[GRAV-REFINE] iter {state.iterations}: |δ|={delta_norm:.3e} "
                      f"g=[{g[0]:.4f}, {g[1]:.4f}, {g[2]:.4f}]")
            if state.converged:
                break

        if not state.converged:
            reason = (f"no convergence after {state.iterations} iterations "
                      f"(|δ|/g0={state.last_delta_norm / g0:.3e})")
            print(f"[GRAV-REFINE] {AlignmentStatus.NOT_CONVERGED.value}: {reason}")
            return replace(state, status=AlignmentStatus.NOT_CONVERGED, reason=reason)

        print(f"[GRAV-REFINE] converged in {state.iterations} iteration(s), "
              f"|g|={np.linalg.norm(state.gravity):.4f}")
        return replace(state, status=AlignmentStatus.SUCCESS)
