#!/usr/bin/env python3
"""
Pose-Only Bundle Adjustment - Demo Script

Simulates a calibrated camera observing random world points, perturbs the
pose and refines it with the robust pose-only solver.
"""

import argparse
import sys

import numpy as np

from PoseOptimization import (
    configure_root_logger,
    disable_console_logging,
    get_logger,
    create_options_from_preset,
    PoseOptimizer,
)
from PoseOptimization.config import get_available_presets, load_options, print_options
from PoseOptimization.data import (
    DEFAULT_INTRINSICS,
    default_initial_guess,
    generate_pose_only_problem,
)

logger = get_logger("run")


def main():
    parser = argparse.ArgumentParser(description="Pose-Only Bundle Adjustment Demo")

    # Problem
    parser.add_argument('--num-points', type=int, default=1000,
                       help='Number of simulated correspondences')
    parser.add_argument('--pixel-noise', type=float, default=0.0,
                       help='Gaussian pixel noise standard deviation')
    parser.add_argument('--outlier-ratio', type=float, default=0.0,
                       help='Fraction of correspondences turned into outliers')
    parser.add_argument('--seed', type=int, default=None,
                       help='Random seed')

    # Solver
    parser.add_argument('--preset', type=str, default='default',
                       choices=get_available_presets(),
                       help='Solver option preset')
    parser.add_argument('--config', type=str, default=None,
                       help='JSON options file (overrides --preset)')
    parser.add_argument('--threads', type=int, default=None,
                       help='Worker threads for accumulation (0 = physical cores)')

    # Output
    parser.add_argument('--full-report', action='store_true',
                       help='Print the per-iteration report')
    parser.add_argument('--export-csv', type=str, default=None,
                       help='Write the iteration history to this CSV file')

    # Logging
    parser.add_argument('--verbose', action='store_true',
                       help='Enable verbose logging')
    parser.add_argument('--log-file', type=str, default=None,
                       help='Log to file')
    parser.add_argument('--quiet', action='store_true',
                       help='Log only to --log-file, not the console')

    args = parser.parse_args()

    configure_root_logger(level='DEBUG' if args.verbose else 'INFO', log_file=args.log_file)
    if args.quiet and args.log_file:
        disable_console_logging()

    options = load_options(args.config) if args.config else create_options_from_preset(args.preset)
    if args.threads is not None:
        options.num_threads = args.threads
    options.verbose = args.verbose
    print_options(options)

    problem = generate_pose_only_problem(
        num_points=args.num_points,
        pixel_noise=args.pixel_noise,
        outlier_ratio=args.outlier_ratio,
        seed=args.seed
    )
    initial_guess = default_initial_guess()
    K = DEFAULT_INTRINSICS

    optimizer = PoseOptimizer(options)
    result = optimizer.solve_monocular_pose_only_bundle_adjustment_6dof(
        problem.world_points, problem.pixels, K.fx, K.fy, K.cx, K.cy, initial_guess
    )

    if not result.success:
        logger.error(f"Solve rejected: {result.error}")
        return 1

    print(result.summary.brief_report())
    if args.full_report:
        print(result.summary.full_report())

    np.set_printoptions(precision=5, suppress=True)
    print("Compare pose:")
    print(f"truth:\n{problem.true_pose.as_rt()}")
    print(f"Initial guess:\n{initial_guess.as_rt()}")
    print(f"Estimated:\n{result.pose.as_rt()}")
    print(f"Rotation error: {result.pose.rotation_angle_to(problem.true_pose):.3e} rad")
    print(f"Translation error: {result.pose.translation_distance_to(problem.true_pose):.3e}")

    if problem.outlier_indices:
        detected = np.flatnonzero(~result.inlier_mask)
        print(f"Outliers: {len(problem.outlier_indices)} injected, {len(detected)} rejected")

    print(f"Debug trajectory: {len(optimizer.get_debug_poses())} poses")

    if args.export_csv:
        result.summary.export_csv(args.export_csv)

    return 0


if __name__ == "__main__":
    sys.exit(main())
