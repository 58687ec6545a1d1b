#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
VIO Init Configuration Module
=============================

Handles YAML configuration loading and defines the default constants for
the online gravity alignment.

Configuration Structure:
------------------------
The YAML config file contains:
- alignment: solver thresholds, refinement tolerance/iteration cap, and the
  scale / reference-frame / unconverged-result flags
- gravity: navigation-frame gravity vector (its norm is the magnitude the
  refinement enforces)
- imu: IMU noise parameters and the initial bias
- buffer: IMU buffer capacity and query timeout
- verbose: per-stage debug output

Sensor Noise Parameters:
------------------------
- acc_n: Accelerometer noise density [m/s²/√Hz]
- gyr_n: Gyroscope noise density [rad/s/√Hz]

Author: VIO project
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

import numpy as np
import yaml

# ========================================
# Debug verbosity control
# ========================================
# Set to True for per-stage matrices and per-iteration refinement output
VERBOSE_DEBUG = False


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load YAML configuration file and convert to the flat dictionary format.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Dictionary with configuration parameters including:
        - ALIGN_*: Solver and refinement settings
        - GRAVITY_VECTOR: Navigation-frame gravity (3,)
        - IMU_PARAMS: IMU noise parameters
        - INITIAL_GYRO_BIAS / INITIAL_ACCEL_BIAS: Nominal bias (3,)
        - BUFFER_*: IMU buffer settings
        - VERBOSE: Debug output toggle

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed

    Example:
        >>> config = load_config("configs/config_alignment.yaml")
        >>> params = AlignmentParams.from_config(config)
    """
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}
    return config_from_dict(config)


def config_from_dict(config: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a nested (YAML-shaped) dict; missing keys take the module defaults."""
    result = {}

    # ========================================
    # Alignment solver
    # ========================================
    align = config.get('alignment', {}) or {}
    result['ALIGN_MIN_KEYFRAMES'] = int(align.get('min_keyframes', ALIGN_MIN_KEYFRAMES))
    result['ALIGN_MIN_DELTA_T'] = float(align.get('min_delta_t', ALIGN_MIN_DELTA_T))
    result['ALIGN_MIN_RCOND'] = float(align.get('min_rcond', ALIGN_MIN_RCOND))
    result['ALIGN_BIAS_MIN_EIGENVALUE'] = float(align.get('bias_min_eigenvalue', ALIGN_BIAS_MIN_EIGENVALUE))
    result['ALIGN_BIAS_MAX_CONDITION'] = float(align.get('bias_max_condition', ALIGN_BIAS_MAX_CONDITION))
    result['ALIGN_REFINEMENT_TOLERANCE'] = float(align.get('refinement_tolerance', ALIGN_REFINEMENT_TOLERANCE))
    result['ALIGN_MAX_REFINEMENT_ITERATIONS'] = int(
        align.get('max_refinement_iterations', ALIGN_MAX_REFINEMENT_ITERATIONS))
    result['ALIGN_ESTIMATE_SCALE'] = bool(align.get('estimate_scale', ALIGN_ESTIMATE_SCALE))
    result['ALIGN_EXPRESS_IN_REFERENCE_FRAME'] = bool(
        align.get('express_in_reference_frame', ALIGN_EXPRESS_IN_REFERENCE_FRAME))
    result['ALIGN_ACCEPT_UNCONVERGED'] = bool(align.get('accept_unconverged', ALIGN_ACCEPT_UNCONVERGED))

    # ========================================
    # Gravity
    # ========================================
    gravity = config.get('gravity', {}) or {}
    result['GRAVITY_VECTOR'] = np.array(gravity.get('vector', GRAVITY_VECTOR), dtype=float)

    # ========================================
    # IMU noise and nominal bias
    # ========================================
    imu = config.get('imu', {}) or {}
    result['IMU_PARAMS'] = {
        'acc_n': float(imu.get('acc_n', IMU_PARAMS['acc_n'])),
        'gyr_n': float(imu.get('gyr_n', IMU_PARAMS['gyr_n'])),
    }
    result['INITIAL_GYRO_BIAS'] = np.array(imu.get('initial_gyro_bias', [0.0, 0.0, 0.0]), dtype=float)
    result['INITIAL_ACCEL_BIAS'] = np.array(imu.get('initial_accel_bias', [0.0, 0.0, 0.0]), dtype=float)

    # ========================================
    # IMU buffer
    # ========================================
    buf = config.get('buffer', {}) or {}
    result['BUFFER_CAPACITY'] = int(buf.get('capacity', BUFFER_CAPACITY))
    result['BUFFER_QUERY_TIMEOUT'] = float(buf.get('query_timeout', BUFFER_QUERY_TIMEOUT))

    result['VERBOSE'] = bool(config.get('verbose', VERBOSE_DEBUG))
    return result


# =============================================================================
# Default Configuration Variables (overridden by load_config)
# =============================================================================

ALIGN_MIN_KEYFRAMES = 3           # poses; 4+ recommended for conditioning
ALIGN_MIN_DELTA_T = 1e-4          # s, shorter keyframe intervals are singular
ALIGN_MIN_RCOND = 1e-10           # σ_min/σ_max of the alignment system
ALIGN_BIAS_MIN_EIGENVALUE = 1e-12  # of Σ JᵀJ for the gyro bias
ALIGN_BIAS_MAX_CONDITION = 1e8
ALIGN_REFINEMENT_TOLERANCE = 1e-3  # |δ| / g0, relative direction change
ALIGN_MAX_REFINEMENT_ITERATIONS = 10
ALIGN_ESTIMATE_SCALE = False      # metric (stereo) poses by default
ALIGN_EXPRESS_IN_REFERENCE_FRAME = True
ALIGN_ACCEPT_UNCONVERGED = False

GRAVITY_VECTOR = [0.0, 0.0, -9.81]

IMU_PARAMS = {
    'acc_n': 0.08,
    'gyr_n': 0.004,
}

BUFFER_CAPACITY = 100000
BUFFER_QUERY_TIMEOUT = 0.5  # s


@dataclass(frozen=True)
class AlignmentParams:
    """Thresholds and flags shared by every alignment stage."""

    min_keyframes: int = ALIGN_MIN_KEYFRAMES
    min_delta_t: float = ALIGN_MIN_DELTA_T
    min_rcond: float = ALIGN_MIN_RCOND
    bias_min_eigenvalue: float = ALIGN_BIAS_MIN_EIGENVALUE
    bias_max_condition: float = ALIGN_BIAS_MAX_CONDITION
    refinement_tolerance: float = ALIGN_REFINEMENT_TOLERANCE
    max_refinement_iterations: int = ALIGN_MAX_REFINEMENT_ITERATIONS
    estimate_scale: bool = ALIGN_ESTIMATE_SCALE
    express_in_reference_frame: bool = ALIGN_EXPRESS_IN_REFERENCE_FRAME
    accept_unconverged: bool = ALIGN_ACCEPT_UNCONVERGED
    verbose: bool = VERBOSE_DEBUG

    def __post_init__(self):
        if self.min_keyframes < 3:
            raise ValueError(f"min_keyframes must be >= 3, got {self.min_keyframes}")
        if self.max_refinement_iterations < 1:
            raise ValueError("max_refinement_iterations must be >= 1")
        if self.refinement_tolerance <= 0.0:
            raise ValueError("refinement_tolerance must be positive")

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]] = None) -> "AlignmentParams":
        """Accepts the flat dict from load_config/config_from_dict."""
        if cfg is None:
            return cls()
        return cls(
            min_keyframes=int(cfg.get('ALIGN_MIN_KEYFRAMES', ALIGN_MIN_KEYFRAMES)),
            min_delta_t=float(cfg.get('ALIGN_MIN_DELTA_T', ALIGN_MIN_DELTA_T)),
            min_rcond=float(cfg.get('ALIGN_MIN_RCOND', ALIGN_MIN_RCOND)),
            bias_min_eigenvalue=float(cfg.get('ALIGN_BIAS_MIN_EIGENVALUE', ALIGN_BIAS_MIN_EIGENVALUE)),
            bias_max_condition=float(cfg.get('ALIGN_BIAS_MAX_CONDITION', ALIGN_BIAS_MAX_CONDITION)),
            refinement_tolerance=float(cfg.get('ALIGN_REFINEMENT_TOLERANCE', ALIGN_REFINEMENT_TOLERANCE)),
            max_refinement_iterations=int(
                cfg.get('ALIGN_MAX_REFINEMENT_ITERATIONS', ALIGN_MAX_REFINEMENT_ITERATIONS)),
            estimate_scale=bool(cfg.get('ALIGN_ESTIMATE_SCALE', ALIGN_ESTIMATE_SCALE)),
            express_in_reference_frame=bool(
                cfg.get('ALIGN_EXPRESS_IN_REFERENCE_FRAME', ALIGN_EXPRESS_IN_REFERENCE_FRAME)),
            accept_unconverged=bool(cfg.get('ALIGN_ACCEPT_UNCONVERGED', ALIGN_ACCEPT_UNCONVERGED)),
            verbose=bool(cfg.get('VERBOSE', VERBOSE_DEBUG)),
        )

    def with_overrides(self, **kwargs) -> "AlignmentParams":
        return replace(self, **kwargs)
