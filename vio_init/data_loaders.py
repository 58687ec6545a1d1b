#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
VIO Init Data Loaders Module

Loaders for EuRoC / ETH-ASL style CSV logs: raw IMU samples and
ground-truth keyframe states.
"""

import os
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd

from .types import ImuSamples, Pose


NS_TO_S = 1e-9

IMU_COLUMNS = ["timestamp",
               "w_RS_S_x", "w_RS_S_y", "w_RS_S_z",
               "a_RS_S_x", "a_RS_S_y", "a_RS_S_z"]
GT_POSE_COLUMNS = ["timestamp",
                   "p_RS_R_x", "p_RS_R_y", "p_RS_R_z",
                   "q_RS_w", "q_RS_x", "q_RS_y", "q_RS_z"]
GT_VELOCITY_COLUMNS = ["v_RS_R_x", "v_RS_R_y", "v_RS_R_z"]
GT_GYRO_BIAS_COLUMNS = ["b_w_RS_S_x", "b_w_RS_S_y", "b_w_RS_S_z"]
GT_ACCEL_BIAS_COLUMNS = ["b_a_RS_S_x", "b_a_RS_S_y", "b_a_RS_S_z"]


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class GroundTruth:
    """Ground-truth body states, sorted by time."""
    timestamps: np.ndarray  # (N,) seconds
    poses: List[Pose]
    velocities: Optional[np.ndarray] = None  # (N, 3) m/s
    gyro_bias: Optional[np.ndarray] = None  # (N, 3) rad/s
    accel_bias: Optional[np.ndarray] = None  # (N, 3) m/s²

    def __len__(self) -> int:
        return len(self.timestamps)


# =============================================================================
# Helpers
# =============================================================================

def _clean_column(name: str) -> str:
    """'#timestamp [ns]' -> 'timestamp', ' p_RS_R_x [m]' -> 'p_RS_R_x'."""
    return name.strip().lstrip('#').split('[')[0].strip()


def _read_euroc_csv(path: str, required: List[str], label: str) -> pd.DataFrame:
    if not os.path.exists(path):
        raise FileNotFoundError(f"{label} CSV not found: {path}")

    df = pd.read_csv(path, skipinitialspace=True)
    df.columns = [_clean_column(c) for c in df.columns]
    for c in required:
        if c not in df.columns:
            raise ValueError(f"{label} CSV missing column: {c}")

    df = df.sort_values("timestamp").reset_index(drop=True)
    if df["timestamp"].duplicated().any():
        n_dup = int(df["timestamp"].duplicated().sum())
        print(f"[{label}] WARNING: dropping {n_dup} duplicate timestamps")
        df = df.drop_duplicates("timestamp").reset_index(drop=True)
    return df


def _optional_block(df: pd.DataFrame, cols: List[str]) -> Optional[np.ndarray]:
    if all(c in df.columns for c in cols):
        return df[cols].to_numpy(dtype=float)
    return None


# =============================================================================
# Loader Functions
# =============================================================================

def load_imu_csv(path: str, time_scale: float = NS_TO_S) -> ImuSamples:
    """
    Load raw IMU samples.

    Expected columns (EuRoC): #timestamp [ns], w_RS_S_x/y/z [rad s^-1],
    a_RS_S_x/y/z [m s^-2].

    Args:
        path: CSV file path
        time_scale: Multiplier from the file's time unit to seconds

    Raises:
        FileNotFoundError: Missing file
        ValueError: Missing column
    """
    df = _read_euroc_csv(path, IMU_COLUMNS, "IMU")
    samples = ImuSamples(
        timestamps=df["timestamp"].to_numpy(dtype=np.float64) * time_scale,
        gyro=df[IMU_COLUMNS[1:4]].to_numpy(dtype=float),
        accel=df[IMU_COLUMNS[4:7]].to_numpy(dtype=float),
    )
    print(f"[IMU] Loaded {len(samples)} samples over {samples.duration:.2f}s")
    return samples


def load_groundtruth_csv(path: str, time_scale: float = NS_TO_S) -> GroundTruth:
    """
    Load ground-truth body poses (and velocities / biases when present).

    Expected columns (EuRoC state_groundtruth_estimate0): #timestamp,
    p_RS_R_x/y/z, q_RS_w/x/y/z, optionally v_RS_R_x/y/z, b_w_RS_S_x/y/z,
    b_a_RS_S_x/y/z.
    """
    df = _read_euroc_csv(path, GT_POSE_COLUMNS, "GT")

    positions = df[GT_POSE_COLUMNS[1:4]].to_numpy(dtype=float)
    quats = df[GT_POSE_COLUMNS[4:8]].to_numpy(dtype=float)
    poses = [Pose.from_quaternion(q, p) for q, p in zip(quats, positions)]

    gt = GroundTruth(
        timestamps=df["timestamp"].to_numpy(dtype=np.float64) * time_scale,
        poses=poses,
        velocities=_optional_block(df, GT_VELOCITY_COLUMNS),
        gyro_bias=_optional_block(df, GT_GYRO_BIAS_COLUMNS),
        accel_bias=_optional_block(df, GT_ACCEL_BIAS_COLUMNS),
    )
    print(f"[GT] Loaded {len(gt)} states"
          f"{' with velocity' if gt.velocities is not None else ''}"
          f"{' with bias' if gt.gyro_bias is not None else ''}")
    return gt


def subsample_keyframes(gt: GroundTruth, min_interval: float) -> GroundTruth:
    """Keep states at least ``min_interval`` seconds apart (keyframe selection)."""
    if len(gt) == 0:
        return gt
    keep = [0]
    for k in range(1, len(gt)):
        if gt.timestamps[k] - gt.timestamps[keep[-1]] >= min_interval:
            keep.append(k)
    idx = np.asarray(keep)
    return GroundTruth(
        timestamps=gt.timestamps[idx],
        poses=[gt.poses[k] for k in keep],
        velocities=None if gt.velocities is None else gt.velocities[idx],
        gyro_bias=None if gt.gyro_bias is None else gt.gyro_bias[idx],
        accel_bias=None if gt.accel_bias is None else gt.accel_bias[idx],
    )
