"""
VIO Init (Visual-Inertial Initialization) Package

Online gravity alignment for bootstrapping a visual-inertial estimator:
gyroscope bias, gravity direction and keyframe velocities from a short
window of vision poses and preintegrated IMU measurements.

Version: 1.0.0

Modules:
- vio_init.config: YAML configuration and AlignmentParams
- vio_init.types: Pose, ImuBias, NavState, results and status codes
- vio_init.math_utils: SO(3) helpers and the gravity tangent basis
- vio_init.imu_preintegration: On-manifold preintegration (Forster et al.)
- vio_init.imu_buffer: Thread-safe IMU sample buffer
- vio_init.alignment_window: Keyframe window and its builder
- vio_init.gyro_bias: Gyroscope bias least squares
- vio_init.linear_alignment: Velocity/gravity linear solve
- vio_init.gravity_refinement: |g|-constrained tangent-plane refinement
- vio_init.online_alignment: OnlineGravityAlignment orchestrator
- vio_init.data_loaders: EuRoC-style IMU and ground-truth CSV loaders
- vio_init.simulation: Synthetic scenarios with exact ground truth
"""

__version__ = "1.0.0"

from .alignment_window import AlignmentWindow, build_alignment_window
from .config import AlignmentParams, load_config
from .imu_buffer import ImuBuffer, ImuQueryStatus
from .imu_preintegration import (
    FirstOrderReintegrator,
    IMUPreintegration,
    PreintegratedImuMeasurement,
    SampleReintegrator,
    preintegrate_samples,
)
from .math_utils import create_tangent_basis
from .online_alignment import OnlineGravityAlignment
from .types import (
    AlignmentResult,
    AlignmentStatus,
    GyroBiasEstimate,
    ImuBias,
    ImuSamples,
    NavState,
    Pose,
)

__all__ = [
    "__version__",
    "AlignmentParams",
    "AlignmentResult",
    "AlignmentStatus",
    "AlignmentWindow",
    "FirstOrderReintegrator",
    "GyroBiasEstimate",
    "IMUPreintegration",
    "ImuBias",
    "ImuBuffer",
    "ImuQueryStatus",
    "ImuSamples",
    "NavState",
    "OnlineGravityAlignment",
    "Pose",
    "PreintegratedImuMeasurement",
    "SampleReintegrator",
    "build_alignment_window",
    "create_tangent_basis",
    "load_config",
    "preintegrate_samples",
]
