"""Linear velocity/gravity alignment from preintegration constraints.

Each keyframe pair i -> j (elapsed dt, gravity-free PIM deltas) gives six
scalar equations in the per-keyframe velocities and gravity:

    v_j - v_i - dt g        = R_i Δv_ij
    dt v_i + ½ dt² g        = (p_j - p_i) - R_i Δp_ij

Gravity enters through an affine parametrization g = g_offset + G θ so the
same assembly serves the unconstrained solve (G = I, θ = g) and the
tangent-plane refinement (G = 3x2 basis, θ = δ). With ``estimate_scale`` the
visual translation difference becomes s (p_j - p_i) with s unknown.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .config import AlignmentParams
from .imu_preintegration import PreintegratedImuMeasurement
from .numerical_checks import solve_least_squares
from .types import AlignmentStatus, Pose


@dataclass(frozen=True)
class LinearAlignmentResult:
    """Velocities (N, 3), gravity (3,) and scale from one linear solve."""

    status: AlignmentStatus
    velocities: Optional[np.ndarray] = None
    gravity: Optional[np.ndarray] = None
    scale: Optional[float] = None
    reason: str = ""

    @property
    def success(self) -> bool:
        return self.status == AlignmentStatus.SUCCESS


@dataclass(frozen=True)
class AlignmentSystem:
    """Assembled system A x = b and where each unknown block lives in x."""

    A: np.ndarray
    b: np.ndarray
    n_keyframes: int
    gravity_cols: slice
    scale_col: Optional[int]

    def split(self, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray, float]:
        """x -> (velocities (N, 3), gravity parameters θ, scale)."""
        velocities = x[:3 * self.n_keyframes].reshape(self.n_keyframes, 3)
        theta = x[self.gravity_cols]
        scale = float(x[self.scale_col]) if self.scale_col is not None else 1.0
        return velocities, theta, scale


def build_alignment_system(poses: Sequence[Pose], delta_t: Sequence[float],
                           pims: Sequence[PreintegratedImuMeasurement],
                           gravity_basis: Optional[np.ndarray] = None,
                           gravity_offset: Optional[np.ndarray] = None,
                           estimate_scale: bool = False) -> AlignmentSystem:
    """
    Assemble the 6(N-1) x (3N + m [+1]) system, m = gravity_basis columns.

    Args:
        poses: N keyframe poses in the alignment frame
        delta_t: N-1 elapsed times [s]
        pims: N-1 measurements, already re-integrated with the final bias
        gravity_basis: G (3, m); identity when None
        gravity_offset: g_offset (3,); zero when None
        estimate_scale: Append a scale column for scale-free poses
    """
    n = len(poses)
    G = np.eye(3) if gravity_basis is None else np.asarray(gravity_basis, dtype=float)
    g_off = np.zeros(3) if gravity_offset is None else np.asarray(gravity_offset, dtype=float)
    m = G.shape[1]

    n_cols = 3 * n + m + (1 if estimate_scale else 0)
    gravity_cols = slice(3 * n, 3 * n + m)
    scale_col = 3 * n + m if estimate_scale else None

    A = np.zeros((6 * (n - 1), n_cols), dtype=float)
    b = np.zeros(6 * (n - 1), dtype=float)
    I3 = np.eye(3)

    for k in range(n - 1):
        i, j = k, k + 1
        dt = float(delta_t[k])
        R_i = poses[i].rotation
        dp_visual = poses[j].translation - poses[i].translation
        pim = pims[k]

        # Velocity rows
        r = 6 * k
        A[r:r + 3, 3 * i:3 * i + 3] = -I3
        A[r:r + 3, 3 * j:3 * j + 3] = I3
        A[r:r + 3, gravity_cols] = -dt * G
        b[r:r + 3] = R_i @ pim.delta_v + dt * g_off

        # Position rows
        r += 3
        A[r:r + 3, 3 * i:3 * i + 3] = dt * I3
        A[r:r + 3, gravity_cols] = 0.5 * dt ** 2 * G
        b[r:r + 3] = -R_i @ pim.delta_p - 0.5 * dt ** 2 * g_off
        if estimate_scale:
            A[r:r + 3, scale_col] = -dp_visual
        else:
            b[r:r + 3] += dp_visual

    return AlignmentSystem(A=A, b=b, n_keyframes=n, gravity_cols=gravity_cols, scale_col=scale_col)


def check_window(poses: Sequence[Pose], delta_t: Sequence[float],
                 params: AlignmentParams) -> Tuple[AlignmentStatus, str]:
    """Keyframe count and elapsed-time preconditions shared by both solves."""
    if len(poses) < params.min_keyframes:
        return AlignmentStatus.INSUFFICIENT_DATA, f"{len(poses)} keyframes < {params.min_keyframes}"
    dts = np.asarray(delta_t, dtype=float)
    if np.any(~np.isfinite(dts)) or np.any(dts <= params.min_delta_t):
        return AlignmentStatus.SINGULAR_SYSTEM, f"elapsed time <= {params.min_delta_t}s (min {dts.min():.3e})"
    return AlignmentStatus.SUCCESS, ""


class LinearAlignmentSolver:
    """Unconstrained least-squares solve for velocities and gravity."""

    def __init__(self, params: AlignmentParams | None = None):
        self.params = params or AlignmentParams()

    def solve(self, poses: Sequence[Pose], delta_t: Sequence[float],
              pims: Sequence[PreintegratedImuMeasurement]) -> LinearAlignmentResult:
        status, reason = check_window(poses, delta_t, self.params)
        if status != AlignmentStatus.SUCCESS:
            print(f"[LIN-ALIGN] {status.value}: {reason}")
            return LinearAlignmentResult(status, reason=reason)

        system = build_alignment_system(poses, delta_t, pims, estimate_scale=self.params.estimate_scale)
        x, reason = solve_least_squares(system.A, system.b, self.params.min_rcond)
        if x is None:
            print(f"[LIN-ALIGN] {AlignmentStatus.SINGULAR_SYSTEM.value}: {reason}")
            return LinearAlignmentResult(AlignmentStatus.SINGULAR_SYSTEM, reason=reason)

        velocities, gravity, scale = system.split(x)
        if scale <= 0.0:
            reason = f"non-positive scale {scale:.4f}"
            print(f"[LIN-ALIGN] {AlignmentStatus.SINGULAR_SYSTEM.value}: {reason}")
            return LinearAlignmentResult(AlignmentStatus.SINGULAR_SYSTEM, reason=reason)

        if self.params.verbose:
            print(f"[LIN-ALIGN] system {system.A.shape[0]}x{system.A.shape[1]}, "
                  f"residual={np.linalg.norm(system.A @ x - system.b):.3e}")
        print(f"[LIN-ALIGN] g=[{gravity[0]:.4f}, {gravity[1]:.4f}, {gravity[2]:.4f}] "
              f"|g|={np.linalg.norm(gravity):.4f} scale={scale:.4f}")
        return LinearAlignmentResult(
            AlignmentStatus.SUCCESS,
            velocities=velocities.copy(),
            gravity=gravity.copy(),
            scale=scale,
        )
