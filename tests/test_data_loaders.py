import numpy as np
import pytest

from vio_init.data_loaders import load_groundtruth_csv, load_imu_csv, subsample_keyframes
from vio_init.math_utils import quat_to_rot


IMU_HEADER = ("#timestamp [ns],w_RS_S_x [rad s^-1],w_RS_S_y [rad s^-1],w_RS_S_z [rad s^-1],"
              "a_RS_S_x [m s^-2],a_RS_S_y [m s^-2],a_RS_S_z [m s^-2]\n")
GT_HEADER = ("#timestamp, p_RS_R_x [m], p_RS_R_y [m], p_RS_R_z [m], "
             "q_RS_w [], q_RS_x [], q_RS_y [], q_RS_z [], "
             "v_RS_R_x [m s^-1], v_RS_R_y [m s^-1], v_RS_R_z [m s^-1]\n")


def _write_imu(path, rows):
    path.write_text(IMU_HEADER + "".join(",".join(str(v) for v in row) + "\n" for row in rows))


def test_load_imu_converts_nanoseconds(tmp_path):
    path = tmp_path / "imu.csv"
    _write_imu(path, [
        [1005000000, 0.1, 0.2, 0.3, 0.0, 0.0, 9.81],
        [1000000000, 0.0, 0.0, 0.0, 0.0, 0.0, 9.80],
        [1010000000, 0.2, 0.2, 0.2, 1.0, 0.0, 9.82],
    ])

    samples = load_imu_csv(str(path))

    assert len(samples) == 3
    assert np.allclose(samples.timestamps, [1.0, 1.005, 1.01])
    assert np.allclose(samples.gyro[1], [0.1, 0.2, 0.3])
    assert np.allclose(samples.accel[:, 2], [9.80, 9.81, 9.82])


def test_load_imu_drops_duplicate_timestamps(tmp_path):
    path = tmp_path / "imu.csv"
    _write_imu(path, [
        [1000000000, 0.0, 0.0, 0.0, 0.0, 0.0, 9.81],
        [1000000000, 0.0, 0.0, 0.0, 0.0, 0.0, 9.81],
        [1005000000, 0.0, 0.0, 0.0, 0.0, 0.0, 9.81],
    ])
    assert len(load_imu_csv(str(path))) == 2


def test_load_imu_missing_file_and_column(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_imu_csv(str(tmp_path / "missing.csv"))

    path = tmp_path / "bad.csv"
    path.write_text("#timestamp [ns],w_RS_S_x [rad s^-1]\n1000000000,0.1\n")
    with pytest.raises(ValueError):
        load_imu_csv(str(path))


def test_load_groundtruth_poses_and_velocity(tmp_path):
    path = tmp_path / "gt.csv"
    s = np.sqrt(0.5)
    path.write_text(GT_HEADER
                    + "1000000000, 1.0, 2.0, 3.0, 1.0, 0.0, 0.0, 0.0, 0.1, 0.2, 0.3\n"
                    + f"1100000000, 1.5, 2.0, 3.0, {s}, 0.0, 0.0, {s}, 0.2, 0.2, 0.3\n")

    gt = load_groundtruth_csv(str(path))

    assert len(gt) == 2
    assert np.allclose(gt.timestamps, [1.0, 1.1])
    assert np.allclose(gt.poses[0].rotation, np.eye(3))
    assert np.allclose(gt.poses[1].rotation, quat_to_rot(np.array([s, 0.0, 0.0, s])))
    assert np.allclose(gt.poses[1].translation, [1.5, 2.0, 3.0])
    assert np.allclose(gt.velocities[0], [0.1, 0.2, 0.3])
    assert gt.gyro_bias is None


def test_subsample_keyframes(tmp_path):
    path = tmp_path / "gt.csv"
    rows = "".join(f"{1000000000 + k * 50000000}, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0\n" for k in range(10))
    path.write_text(GT_HEADER + rows)

    gt = subsample_keyframes(load_groundtruth_csv(str(path)), min_interval=0.09)

    assert len(gt) == 5
    assert np.allclose(np.diff(gt.timestamps), 0.1)
    assert len(gt.poses) == 5
    assert gt.velocities.shape == (5, 3)
