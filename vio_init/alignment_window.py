#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Alignment Window Module
=======================

The bounded set of keyframes an alignment runs over: N poses, the N-1
elapsed times between them, one preintegrated measurement per interval and
the re-integration capability that recomputes each measurement under a new
bias.

``build_alignment_window`` assembles a window from timestamped poses and an
``ImuBuffer``: it skips the first ``n_begin`` poses, queries the buffer for
every keyframe interval (waiting up to ``timeout`` for the closing sample)
and preintegrates each interval with the nominal bias.

Author: VIO project
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .imu_buffer import ImuBuffer, ImuQueryStatus
from .imu_preintegration import (
    FirstOrderReintegrator,
    ImuReintegrator,
    PreintegratedImuMeasurement,
    SampleReintegrator,
)
from .types import ImuBias, Pose


@dataclass(frozen=True)
class AlignmentWindow:
    """
    Keyframe window handed to the alignment.

    Invariant: len(poses) == len(delta_t) + 1 == len(pims) + 1, or all
    three empty before the first keyframe arrives. Without
    explicit reintegrators every interval falls back to first-order bias
    correction of its measurement.
    """

    poses: Tuple[Pose, ...]
    delta_t: Tuple[float, ...]
    pims: Tuple[PreintegratedImuMeasurement, ...]
    reintegrators: Optional[Tuple[ImuReintegrator, ...]] = None
    timestamps: Optional[Tuple[float, ...]] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "poses", tuple(self.poses))
        object.__setattr__(self, "delta_t", tuple(float(dt) for dt in self.delta_t))
        object.__setattr__(self, "pims", tuple(self.pims))

        n = len(self.poses)
        n_intervals = max(n - 1, 0)  # an empty window has no intervals
        if len(self.delta_t) != n_intervals or len(self.pims) != n_intervals:
            raise ValueError(
                f"Window size mismatch: {n} poses, {len(self.delta_t)} delta_t, "
                f"{len(self.pims)} PIMs (expected {n_intervals} of each)"
            )

        if self.reintegrators is None:
            object.__setattr__(self, "reintegrators",
                               tuple(FirstOrderReintegrator(pim) for pim in self.pims))
        else:
            object.__setattr__(self, "reintegrators", tuple(self.reintegrators))
            if len(self.reintegrators) != n_intervals:
                raise ValueError(
                    f"Window size mismatch: {len(self.reintegrators)} reintegrators for {n} poses"
                )

        if self.timestamps is not None:
            object.__setattr__(self, "timestamps", tuple(float(t) for t in self.timestamps))
            if len(self.timestamps) != n:
                raise ValueError(f"{len(self.timestamps)} timestamps for {n} poses")

    def __len__(self) -> int:
        return len(self.poses)

    @property
    def n_keyframes(self) -> int:
        return len(self.poses)

    def reintegrated(self, bias: ImuBias) -> Tuple[PreintegratedImuMeasurement, ...]:
        """Every interval's measurement recomputed under ``bias``."""
        return tuple(r.reintegrate(bias) for r in self.reintegrators)


def build_alignment_window(timestamps: Sequence[float], poses: Sequence[Pose],
                           imu_buffer: ImuBuffer, bias: Optional[ImuBias] = None,
                           imu_params: Optional[Dict[str, float]] = None,
                           n_begin: int = 0, n_frames: Optional[int] = None,
                           timeout: Optional[float] = 0.0) -> AlignmentWindow:
    """
    Build a window from timestamped keyframe poses and buffered IMU data.

    Args:
        timestamps: Keyframe times [s], strictly increasing
        poses: Keyframe poses, same length as timestamps
        imu_buffer: Source of raw IMU samples
        bias: Nominal bias for the initial preintegration (zero if None)
        imu_params: Noise dict (acc_n, gyr_n)
        n_begin: Number of leading keyframes to skip
        n_frames: Maximum number of intervals (None = all remaining)
        timeout: Per-interval wait for the closing IMU sample [s]

    Returns:
        AlignmentWindow with one SampleReintegrator per interval

    Raises:
        ValueError: Mismatched inputs, non-increasing timestamps, or an
            interval the buffer cannot serve
    """
    if len(timestamps) != len(poses):
        raise ValueError(f"{len(timestamps)} timestamps for {len(poses)} poses")
    bias = bias or ImuBias.zero()

    t_sel = np.asarray(timestamps, dtype=float)[n_begin:]
    p_sel = list(poses)[n_begin:]
    if n_frames is not None:
        t_sel = t_sel[:n_frames + 1]
        p_sel = p_sel[:n_frames + 1]
    if len(t_sel) < 2:
        raise ValueError(f"Need at least 2 keyframes after n_begin={n_begin}, got {len(t_sel)}")
    if np.any(np.diff(t_sel) <= 0.0):
        raise ValueError("Keyframe timestamps must be strictly increasing")

    delta_t, pims, reintegrators = [], [], []
    for k in range(len(t_sel) - 1):
        status, samples = imu_buffer.query(t_sel[k], t_sel[k + 1], timeout=timeout)
        if status != ImuQueryStatus.DATA_AVAILABLE:
            raise ValueError(
                f"IMU data for interval {k} [{t_sel[k]:.6f}, {t_sel[k + 1]:.6f}] "
                f"unavailable: {status.value}"
            )
        reintegrator = SampleReintegrator(samples, imu_params)
        reintegrators.append(reintegrator)
        pims.append(reintegrator.reintegrate(bias))
        delta_t.append(float(t_sel[k + 1] - t_sel[k]))

    print(f"[IMU-BUF] Window: {len(p_sel)} keyframes, "
          f"t=[{t_sel[0]:.3f}, {t_sel[-1]:.3f}]s, n_begin={n_begin}")
    return AlignmentWindow(
        poses=tuple(p_sel),
        delta_t=tuple(delta_t),
        pims=tuple(pims),
        reintegrators=tuple(reintegrators),
        timestamps=tuple(float(t) for t in t_sel),
    )
