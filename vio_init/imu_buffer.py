"""Thread-safe IMU sample buffer with blocking time-range queries.

The buffer is an explicitly owned resource: the IMU producer pushes samples
from its own thread and the window builder queries [t0, t1] ranges, waiting
up to a bound when the sample closing the range has not arrived yet.
"""

from __future__ import annotations

import threading
from collections import deque
from enum import Enum
from typing import Deque, Optional, Tuple

import numpy as np

from .types import ImuSamples


class ImuQueryStatus(str, Enum):
    DATA_AVAILABLE = "DATA_AVAILABLE"
    NOT_YET_AVAILABLE = "NOT_YET_AVAILABLE"  # waited, t1 still in the future
    NEVER_AVAILABLE = "NEVER_AVAILABLE"  # t0 older than the oldest sample kept
    QUERY_INVALID = "QUERY_INVALID"
    SHUTDOWN = "SHUTDOWN"


def _empty_samples() -> ImuSamples:
    return ImuSamples(timestamps=np.zeros(0), gyro=np.zeros((0, 3)), accel=np.zeros((0, 3)))


class ImuBufferError(Exception):
    """Raised when a sample violates the buffer ordering."""


class ImuBuffer:
    """Bounded, time-ordered store of (t, gyro, accel) samples."""

    def __init__(self, capacity: int = 100000):
        if capacity <= 1:
            raise ValueError("Capacity must be at least 2")
        self._capacity = int(capacity)
        # Oldest samples fall off the left once capacity is reached
        self._t: Deque[float] = deque(maxlen=self._capacity)
        self._gyro: Deque[np.ndarray] = deque(maxlen=self._capacity)
        self._accel: Deque[np.ndarray] = deque(maxlen=self._capacity)
        self._shutdown = False
        self._cond = threading.Condition()

    def __len__(self) -> int:
        with self._cond:
            return len(self._t)

    def add(self, t: float, gyro: np.ndarray, accel: np.ndarray) -> None:
        """Append one sample; timestamps must strictly increase."""
        with self._cond:
            if self._t and t <= self._t[-1]:
                raise ImuBufferError(
                    f"Non-increasing IMU timestamp {t:.9f} after {self._t[-1]:.9f}"
                )
            self._t.append(float(t))
            self._gyro.append(np.asarray(gyro, dtype=float).reshape(3,))
            self._accel.append(np.asarray(accel, dtype=float).reshape(3,))
            self._cond.notify_all()

    def add_samples(self, samples: ImuSamples) -> None:
        for k in range(len(samples)):
            self.add(samples.timestamps[k], samples.gyro[k], samples.accel[k])

    def shutdown(self) -> None:
        """Wake every waiting query; later queries return SHUTDOWN."""
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()

    def time_range(self) -> Optional[Tuple[float, float]]:
        with self._cond:
            if not self._t:
                return None
            return self._t[0], self._t[-1]

    def query(self, t0: float, t1: float,
              timeout: Optional[float] = 0.0) -> Tuple[ImuQueryStatus, ImuSamples]:
        """
        Return samples covering [t0, t1].

        Samples strictly inside the range are returned as stored; the borders
        are linearly interpolated when no sample falls exactly on t0 or t1,
        so the result always starts at t0 and ends at t1.

        Args:
            t0: Range start [s]
            t1: Range end [s], must be > t0
            timeout: Seconds to wait for a sample at or after t1
                (0 = do not wait, None = wait indefinitely)
        """
        if t1 <= t0:
            return ImuQueryStatus.QUERY_INVALID, _empty_samples()

        with self._cond:
            arrived = self._cond.wait_for(
                lambda: self._shutdown or (bool(self._t) and self._t[-1] >= t1),
                timeout=timeout,
            )
            if self._shutdown:
                return ImuQueryStatus.SHUTDOWN, _empty_samples()
            if not arrived:
                return ImuQueryStatus.NOT_YET_AVAILABLE, _empty_samples()
            if self._t[0] > t0:
                return ImuQueryStatus.NEVER_AVAILABLE, _empty_samples()

            t = np.asarray(self._t)
            gyro = np.asarray(self._gyro)
            accel = np.asarray(self._accel)

        inside = (t > t0) & (t < t1)
        ts = [t0] + t[inside].tolist() + [t1]
        gs = [_interp(t, gyro, t0)] + list(gyro[inside]) + [_interp(t, gyro, t1)]
        acs = [_interp(t, accel, t0)] + list(accel[inside]) + [_interp(t, accel, t1)]

        samples = ImuSamples(timestamps=np.asarray(ts), gyro=np.asarray(gs), accel=np.asarray(acs))
        return ImuQueryStatus.DATA_AVAILABLE, samples


def _interp(t: np.ndarray, values: np.ndarray, t_query: float) -> np.ndarray:
    """Per-axis linear interpolation (exact hit returns the stored sample)."""
    return np.array([np.interp(t_query, t, values[:, axis]) for axis in range(3)])
