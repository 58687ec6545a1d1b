#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Online Gravity Alignment Entry Point (run_alignment.py)

Runs the visual-inertial initialization over one keyframe window, either on
a EuRoC-style dataset (ground-truth poses standing in for vision poses) or
on a synthetic scenario.

Configuration Model:
--------------------
    YAML config is the single source of truth for algorithm settings.
    CLI provides only paths, window selection and runtime flags.

Usage:
    python run_alignment.py --config configs/config_alignment.yaml \\
        --imu mav0/imu0/data.csv \\
        --groundtruth mav0/state_groundtruth_estimate0/data.csv \\
        --n_begin 1000 --n_frames 40

    # Synthetic scenario:
    python run_alignment.py --simulate --n_frames 40

    # Gyroscope bias only:
    python run_alignment.py --simulate --bias_only

Author: VIO project
"""

import argparse
import os
import sys

import numpy as np

# Add workspace to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Online gravity alignment (visual-inertial initialization)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Dataset run (EuRoC layout):
  python run_alignment.py --imu imu0/data.csv --groundtruth gt/data.csv --n_begin 1000

  # Synthetic scenario with an injected gyro bias:
  python run_alignment.py --simulate --sim_gyro_bias 1e-4 2e-4 3e-4
        """
    )

    parser.add_argument("--config", type=str, default="configs/config_alignment.yaml",
                        help="Path to YAML config file")

    # Data inputs
    parser.add_argument("--imu", type=str, default=None,
                        help="Path to IMU CSV file")
    parser.add_argument("--groundtruth", type=str, default=None,
                        help="Path to ground-truth CSV file (poses used as keyframes)")
    parser.add_argument("--simulate", action="store_true",
                        help="Use a synthetic scenario instead of dataset files")
    parser.add_argument("--sim_gyro_bias", type=float, nargs=3, default=[0.0, 0.0, 0.0],
                        help="Gyro bias injected into the synthetic IMU [rad/s]")

    # Window selection
    parser.add_argument("--n_begin", type=int, default=0,
                        help="Number of leading keyframes to skip")
    parser.add_argument("--n_frames", type=int, default=40,
                        help="Number of keyframe intervals in the window")
    parser.add_argument("--keyframe_interval", type=float, default=0.25,
                        help="Minimum time between keyframes [s]")

    parser.add_argument("--bias_only", action="store_true",
                        help="Estimate the gyroscope bias only")

    return parser.parse_args(argv)


def _truth_velocity(pose, velocity, params):
    """Ground-truth velocity in the frame the alignment reports it in."""
    if params.express_in_reference_frame:
        return pose.rotation.T @ velocity
    return np.asarray(velocity, dtype=float)


def _load_window(args, cfg, initial_bias, params):
    """Build the alignment window and (when known) the true reference state."""
    from vio_init.alignment_window import build_alignment_window
    from vio_init.data_loaders import load_groundtruth_csv, load_imu_csv, subsample_keyframes
    from vio_init.imu_buffer import ImuBuffer
    from vio_init.simulation import simulate_scenario

    if args.simulate:
        scenario = simulate_scenario(
            n_keyframes=args.n_frames + 1,
            keyframe_interval=args.keyframe_interval,
            gravity=cfg['GRAVITY_VECTOR'],
            gyro_bias=args.sim_gyro_bias,
        )
        truth = {
            'gyro_bias': scenario.bias.gyroscope,
            'gravity': scenario.gravity,
            'velocity': scenario.velocities[0],
        }
        return scenario.window(initial_bias, cfg['IMU_PARAMS']), truth

    if not args.imu or not args.groundtruth:
        raise ValueError("--imu and --groundtruth are required unless --simulate is set")

    samples = load_imu_csv(args.imu)
    gt = subsample_keyframes(load_groundtruth_csv(args.groundtruth), args.keyframe_interval)

    buffer = ImuBuffer(capacity=max(cfg['BUFFER_CAPACITY'], len(samples) + 1))
    buffer.add_samples(samples)
    window = build_alignment_window(
        gt.timestamps, gt.poses, buffer,
        bias=initial_bias,
        imu_params=cfg['IMU_PARAMS'],
        n_begin=args.n_begin,
        n_frames=args.n_frames,
        timeout=cfg['BUFFER_QUERY_TIMEOUT'],
    )
    truth = {}
    if gt.gyro_bias is not None:
        truth['gyro_bias'] = gt.gyro_bias[args.n_begin]
    if gt.velocities is not None:
        truth['velocity'] = _truth_velocity(gt.poses[args.n_begin], gt.velocities[args.n_begin], params)
    return window, truth


def main(argv=None):
    """Main entry point - returns the process exit code."""
    args = parse_args(argv)

    print("=" * 70)
    print("Online Gravity Alignment")
    print("=" * 70)

    from vio_init import __version__
    from vio_init.config import AlignmentParams, config_from_dict, load_config
    from vio_init.online_alignment import OnlineGravityAlignment
    from vio_init.types import ImuBias

    print(f"Using vio_init package version: {__version__}")

    if os.path.exists(args.config):
        print(f"\nLoading config: {args.config}")
        cfg = load_config(args.config)
    else:
        print(f"\n[CONFIG] {args.config} not found, using defaults")
        cfg = config_from_dict({})
    params = AlignmentParams.from_config(cfg)
    initial_bias = ImuBias(accelerometer=cfg['INITIAL_ACCEL_BIAS'], gyroscope=cfg['INITIAL_GYRO_BIAS'])

    try:
        window, truth = _load_window(args, cfg, initial_bias, params)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Error preparing alignment window: {e}")
        return 2

    print(f"\nWindow: {len(window)} keyframes, estimate_scale={params.estimate_scale}, "
          f"reference_frame={params.express_in_reference_frame}")
    aligner = OnlineGravityAlignment(window, cfg['GRAVITY_VECTOR'], params)

    if args.bias_only:
        estimate = aligner.estimate_gyroscope_bias_only(initial_bias)
        if not estimate.success:
            print(f"❌ Gyro bias estimation failed: {estimate.status.value} ({estimate.reason})")
            return 1
        print(f"\nGyro bias: {estimate.bias.gyroscope}")
        if 'gyro_bias' in truth:
            err = np.linalg.norm(estimate.bias.gyroscope - truth['gyro_bias'])
            print(f"  error vs truth: {err:.3e} rad/s")
        print("✅ Gyro bias estimation completed")
        return 0

    result = aligner.align_visual_inertial_estimates(initial_bias)
    if result.gravity is None:
        print(f"❌ Alignment failed: {result.status.value} ({result.reason})")
        print("   Hint: retry with a longer window or more rotational excitation")
        return 1

    print("\n" + "=" * 70)
    print("Alignment Summary:")
    print("=" * 70)
    for key, val in result.as_trace_dict().items():
        print(f"  {key}: {val}")
    if 'gyro_bias' in truth:
        print(f"  gyro bias error: {np.linalg.norm(result.bias.gyroscope - truth['gyro_bias']):.3e} rad/s")
    if 'gravity' in truth:
        print(f"  gravity error: {np.linalg.norm(result.gravity - truth['gravity']):.3e} m/s²")
    if 'velocity' in truth:
        print(f"  velocity error: {np.linalg.norm(result.navstate.velocity - truth['velocity']):.3e} m/s")
    print("=" * 70)
    print("✅ Alignment completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
