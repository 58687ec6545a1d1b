import threading
import time

import numpy as np
import pytest

from vio_init.imu_buffer import ImuBuffer, ImuBufferError, ImuQueryStatus


def _filled_buffer(n=11, dt=0.1):
    buf = ImuBuffer()
    for k in range(n):
        t = k * dt
        buf.add(t, [t, 2.0 * t, 0.0], [0.0, 0.0, 9.81 + t])
    return buf


def test_query_exact_borders_returns_stored_samples():
    buf = _filled_buffer()
    status, samples = buf.query(0.2, 0.5)
    assert status == ImuQueryStatus.DATA_AVAILABLE
    assert np.allclose(samples.timestamps, [0.2, 0.3, 0.4, 0.5])
    assert np.allclose(samples.gyro[:, 0], samples.timestamps)


def test_query_interpolates_borders():
    buf = _filled_buffer()
    status, samples = buf.query(0.25, 0.55)
    assert status == ImuQueryStatus.DATA_AVAILABLE
    assert samples.timestamps[0] == 0.25
    assert samples.timestamps[-1] == 0.55
    assert np.allclose(samples.timestamps[1:-1], [0.3, 0.4, 0.5])
    # Signals are linear in t, so interpolation is exact
    assert samples.gyro[-1, 1] == pytest.approx(1.1)
    assert samples.accel[0, 2] == pytest.approx(9.81 + 0.25)


def test_add_rejects_non_increasing_timestamps():
    buf = _filled_buffer(n=3)
    with pytest.raises(ImuBufferError):
        buf.add(0.2, np.zeros(3), np.zeros(3))
    with pytest.raises(ImuBufferError):
        buf.add(0.1, np.zeros(3), np.zeros(3))


def test_query_status_codes():
    buf = _filled_buffer()
    assert buf.query(0.5, 0.5)[0] == ImuQueryStatus.QUERY_INVALID
    assert buf.query(0.5, 2.0, timeout=0.0)[0] == ImuQueryStatus.NOT_YET_AVAILABLE
    assert buf.query(-1.0, 0.5)[0] == ImuQueryStatus.NEVER_AVAILABLE


def test_capacity_drops_oldest_samples():
    buf = ImuBuffer(capacity=3)
    for k in range(5):
        buf.add(float(k), np.zeros(3), np.zeros(3))
    assert len(buf) == 3
    assert buf.time_range() == (2.0, 4.0)
    assert buf.query(1.0, 3.0)[0] == ImuQueryStatus.NEVER_AVAILABLE


def test_long_stream_keeps_newest_window():
    buf = ImuBuffer(capacity=50)
    for k in range(500):
        t = 0.01 * k
        buf.add(t, [t, 0.0, 0.0], [0.0, 0.0, 9.81])

    assert len(buf) == 50
    t_min, t_max = buf.time_range()
    assert t_min == pytest.approx(4.5)
    assert t_max == pytest.approx(4.99)

    status, samples = buf.query(4.6, 4.9)
    assert status == ImuQueryStatus.DATA_AVAILABLE
    assert np.allclose(samples.gyro[:, 0], samples.timestamps)
    assert buf.query(4.0, 4.9)[0] == ImuQueryStatus.NEVER_AVAILABLE


def test_query_waits_for_late_sample():
    buf = _filled_buffer()

    def producer():
        time.sleep(0.05)
        buf.add(1.1, np.zeros(3), np.zeros(3))

    thread = threading.Thread(target=producer)
    thread.start()
    status, samples = buf.query(0.9, 1.1, timeout=2.0)
    thread.join()

    assert status == ImuQueryStatus.DATA_AVAILABLE
    assert samples.timestamps[-1] == pytest.approx(1.1)


def test_shutdown_wakes_waiting_query():
    buf = _filled_buffer()
    result = {}

    def consumer():
        result['status'] = buf.query(0.5, 5.0, timeout=5.0)[0]

    thread = threading.Thread(target=consumer)
    thread.start()
    time.sleep(0.05)
    buf.shutdown()
    thread.join(timeout=2.0)

    assert result['status'] == ImuQueryStatus.SHUTDOWN
