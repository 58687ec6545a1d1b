"""Alignment data types.

Poses, biases and navigation states consumed and produced by the online
gravity alignment, plus the status codes each stage reports at its boundary.
Estimates are immutable once produced; a failed stage leaves every estimate
field as ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

from .math_utils import quat_to_rot, rot_to_quat


class AlignmentStatus(str, Enum):
    """Outcome of an alignment stage."""

    SUCCESS = "SUCCESS"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"  # window below min keyframe count
    DEGENERATE_ROTATION = "DEGENERATE_ROTATION"  # gyro-bias system rank-deficient
    SINGULAR_SYSTEM = "SINGULAR_SYSTEM"  # alignment system not solvable
    NOT_CONVERGED = "NOT_CONVERGED"  # refinement hit its iteration cap


@dataclass(frozen=True)
class Pose:
    """Rigid transform body -> navigation frame (R_nav_body, p_nav_body)."""

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        object.__setattr__(self, "rotation", np.asarray(self.rotation, dtype=float).reshape(3, 3))
        object.__setattr__(self, "translation", np.asarray(self.translation, dtype=float).reshape(3,))

    @classmethod
    def identity(cls) -> Pose:
        return cls()

    @classmethod
    def from_quaternion(cls, q_wxyz: np.ndarray, translation: np.ndarray) -> Pose:
        """Build from a [w,x,y,z] quaternion and a translation."""
        return cls(rotation=quat_to_rot(q_wxyz), translation=translation)

    @property
    def quaternion(self) -> np.ndarray:
        """Rotation as [w,x,y,z]."""
        return rot_to_quat(self.rotation)

    def inverse(self) -> Pose:
        r_inv = self.rotation.T
        return Pose(rotation=r_inv, translation=-r_inv @ self.translation)

    def compose(self, other: Pose) -> Pose:
        """self ∘ other."""
        return Pose(
            rotation=self.rotation @ other.rotation,
            translation=self.rotation @ other.translation + self.translation,
        )

    def between(self, other: Pose) -> Pose:
        """Relative pose self^{-1} ∘ other."""
        return self.inverse().compose(other)

    def as_matrix(self) -> np.ndarray:
        T = np.eye(4)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def is_close(self, other: Pose, tol: float = 1e-9) -> bool:
        return bool(
            np.allclose(self.rotation, other.rotation, atol=tol)
            and np.allclose(self.translation, other.translation, atol=tol)
        )


@dataclass(frozen=True)
class ImuBias:
    """Additive accelerometer [m/s²] and gyroscope [rad/s] offsets."""

    accelerometer: np.ndarray = field(default_factory=lambda: np.zeros(3))
    gyroscope: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        object.__setattr__(self, "accelerometer", np.asarray(self.accelerometer, dtype=float).reshape(3,))
        object.__setattr__(self, "gyroscope", np.asarray(self.gyroscope, dtype=float).reshape(3,))

    @classmethod
    def zero(cls) -> ImuBias:
        return cls()

    def with_gyroscope(self, gyroscope: np.ndarray) -> ImuBias:
        return ImuBias(accelerometer=self.accelerometer.copy(), gyroscope=gyroscope)


@dataclass(frozen=True)
class NavState:
    """Pose and navigation-frame velocity of the body."""

    pose: Pose = field(default_factory=Pose)
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        object.__setattr__(self, "velocity", np.asarray(self.velocity, dtype=float).reshape(3,))


@dataclass(frozen=True)
class ImuSamples:
    """Raw IMU samples over a time range, sorted by time."""

    timestamps: np.ndarray  # (M,) seconds
    gyro: np.ndarray  # (M, 3) rad/s
    accel: np.ndarray  # (M, 3) m/s², specific force

    def __post_init__(self):
        object.__setattr__(self, "timestamps", np.asarray(self.timestamps, dtype=float).reshape(-1))
        object.__setattr__(self, "gyro", np.asarray(self.gyro, dtype=float).reshape(-1, 3))
        object.__setattr__(self, "accel", np.asarray(self.accel, dtype=float).reshape(-1, 3))
        if not (len(self.timestamps) == len(self.gyro) == len(self.accel)):
            raise ValueError(
                f"IMU sample count mismatch: t={len(self.timestamps)} "
                f"gyro={len(self.gyro)} accel={len(self.accel)}"
            )

    def __len__(self) -> int:
        return len(self.timestamps)

    @property
    def duration(self) -> float:
        if len(self.timestamps) < 2:
            return 0.0
        return float(self.timestamps[-1] - self.timestamps[0])


@dataclass(frozen=True)
class GyroBiasEstimate:
    """Result of the gyroscope-bias stage."""

    status: AlignmentStatus
    bias: Optional[ImuBias] = None
    reason: str = ""

    @property
    def success(self) -> bool:
        return self.status == AlignmentStatus.SUCCESS


@dataclass(frozen=True)
class AlignmentResult:
    """
    Output bundle of one full alignment call.

    On failure every estimate field is None; the result is never partially
    populated.
    """

    status: AlignmentStatus
    bias: Optional[ImuBias] = None
    gravity: Optional[np.ndarray] = None
    navstate: Optional[NavState] = None
    velocities: Optional[np.ndarray] = None
    scale: Optional[float] = None
    iterations: int = 0
    reason: str = ""

    @property
    def success(self) -> bool:
        return self.status == AlignmentStatus.SUCCESS

    @classmethod
    def failure(cls, status: AlignmentStatus, reason: str = "", iterations: int = 0) -> AlignmentResult:
        return cls(status=status, reason=reason, iterations=iterations)

    def as_trace_dict(self) -> dict:
        """Flat summary for printing."""
        out = {
            "status": str(self.status.value),
            "iterations": int(self.iterations),
            "reason": str(self.reason),
        }
        if self.gravity is not None:
            out["gyro_bias"] = self.bias.gyroscope.tolist()
            out["gravity"] = self.gravity.tolist()
            out["gravity_norm"] = float(np.linalg.norm(self.gravity))
            out["init_velocity"] = self.navstate.velocity.tolist()
            out["scale"] = float(self.scale)
        return out

