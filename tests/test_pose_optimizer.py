import logging

import numpy as np
import pytest

from PoseOptimization import (
    CorrespondenceSet,
    OptimizationStatus,
    Pose,
    PoseOptimizer,
    solve_monocular_pose_only_bundle_adjustment_6dof,
)
from PoseOptimization.algorithms.optimization import pose_optimizer as pose_optimizer_module
from PoseOptimization.config import DEFAULT_OPTIONS
from PoseOptimization.core.structures import so3_exp
from PoseOptimization.data import generate_pose_only_problem

ROTATION_TOL = 1e-3
TRANSLATION_TOL = 1e-3


# ----------------------------------------------------------------------------
# Convergence
# ----------------------------------------------------------------------------

def test_exact_on_noiseless_data_from_true_pose(options, problem, run_solver):
    _, result = run_solver(options, problem, problem.true_pose)

    assert result.status is OptimizationStatus.CONVERGED
    assert result.summary.num_iterations <= 2
    assert result.summary.final_cost < 1e-10
    assert result.pose.rotation_angle_to(problem.true_pose) < 1e-8
    assert result.pose.translation_distance_to(problem.true_pose) < 1e-8
    assert result.inlier_mask.all()


def test_converges_from_perturbed_initial_guess(options, problem, initial_guess, run_solver):
    _, result = run_solver(options, problem, initial_guess)

    assert result.status is OptimizationStatus.CONVERGED
    assert result.summary.num_iterations <= options.iteration_handle.max_num_iterations
    assert result.pose.rotation_angle_to(problem.true_pose) < ROTATION_TOL
    assert result.pose.translation_distance_to(problem.true_pose) < TRANSLATION_TOL
    assert result.summary.final_cost < result.summary.initial_cost


def test_gauss_newton_without_damping(options, problem, small_perturbation, run_solver):
    options.damping_handle.initial_lambda = 0.0
    _, result = run_solver(options, problem, problem.true_pose.retract(small_perturbation))

    assert result.status is OptimizationStatus.CONVERGED
    assert result.pose.rotation_angle_to(problem.true_pose) < ROTATION_TOL
    assert result.pose.translation_distance_to(problem.true_pose) < TRANSLATION_TOL


def test_noisy_data_stays_close_to_truth(options, initial_guess, run_solver):
    noisy = generate_pose_only_problem(num_points=500, pixel_noise=0.5, seed=21)
    _, result = run_solver(options, noisy, initial_guess)

    assert result.status is OptimizationStatus.CONVERGED
    assert result.pose.rotation_angle_to(noisy.true_pose) < 1e-2
    assert result.pose.translation_distance_to(noisy.true_pose) < 1e-2


def test_deterministic(options, problem, initial_guess, run_solver):
    _, first = run_solver(options, problem, initial_guess)
    _, second = run_solver(options, problem, initial_guess)

    np.testing.assert_array_equal(first.pose.as_matrix(), second.pose.as_matrix())
    np.testing.assert_array_equal(first.inlier_mask, second.inlier_mask)
    assert first.summary.cost_history == second.summary.cost_history


def test_threaded_accumulation_reaches_same_pose(options, initial_guess, run_solver):
    large = generate_pose_only_problem(num_points=6000, seed=4)
    _, serial = run_solver(options, large, initial_guess)
    options.num_threads = 3
    _, threaded = run_solver(options, large, initial_guess)

    assert threaded.status is OptimizationStatus.CONVERGED
    assert threaded.pose.rotation_angle_to(serial.pose) < 1e-6
    assert threaded.pose.translation_distance_to(serial.pose) < 1e-6


# ----------------------------------------------------------------------------
# Outliers
# ----------------------------------------------------------------------------

def test_outliers_isolated(options, outlier_problem, small_perturbation, run_solver):
    initial = outlier_problem.true_pose.retract(small_perturbation)
    _, result = run_solver(options, outlier_problem, initial)

    assert result.status is OptimizationStatus.CONVERGED
    np.testing.assert_array_equal(result.inlier_mask, outlier_problem.true_inlier_mask)
    assert result.summary.num_inliers == len(outlier_problem) - len(outlier_problem.outlier_indices)
    assert result.pose.rotation_angle_to(outlier_problem.true_pose) < ROTATION_TOL
    assert result.pose.translation_distance_to(outlier_problem.true_pose) < TRANSLATION_TOL


def test_outlier_result_matches_outlier_free_result(options, outlier_problem,
                                                     small_perturbation, run_solver):
    initial = outlier_problem.true_pose.retract(small_perturbation)
    _, with_outliers = run_solver(options, outlier_problem, initial)

    clean = generate_pose_only_problem(num_points=200, seed=11)
    _, without_outliers = run_solver(options, clean, initial)

    assert with_outliers.pose.rotation_angle_to(without_outliers.pose) < ROTATION_TOL
    assert with_outliers.pose.translation_distance_to(without_outliers.pose) < TRANSLATION_TOL


def test_outliers_flagged_when_they_are_the_majority(options, run_solver):
    majority = generate_pose_only_problem(num_points=200, outlier_ratio=0.6, seed=3)
    optimizer, result = run_solver(options, majority, majority.true_pose)

    assert result.success
    assert not result.inlier_mask[majority.outlier_indices].any()
    correspondences = CorrespondenceSet(majority.world_points, majority.pixels, majority.intrinsics)
    residual_norms = np.linalg.norm(optimizer.compute_residuals(result.pose, correspondences), axis=1)
    np.testing.assert_array_equal(
        result.inlier_mask,
        residual_norms <= options.outlier_handle.threshold_outlier_rejection)
    assert result.summary.num_inliers == int(np.count_nonzero(result.inlier_mask))


# ----------------------------------------------------------------------------
# Invariants
# ----------------------------------------------------------------------------

def test_mask_length_matches_inputs(options, problem, initial_guess):
    optimizer = PoseOptimizer(options)
    K = problem.intrinsics
    for count in (3, 50, len(problem)):
        result = optimizer.solve_monocular_pose_only_bundle_adjustment_6dof(
            problem.world_points[:count], problem.pixels[:count],
            K.fx, K.fy, K.cx, K.cy, initial_guess)
        assert len(result.inlier_mask) == count
        assert result.inlier_mask.dtype == bool


def test_weighted_cost_non_increasing(options, initial_guess, run_solver):
    noisy = generate_pose_only_problem(num_points=300, pixel_noise=1.0, seed=2)
    options.outlier_handle.threshold_outlier_rejection = 1e6
    _, result = run_solver(options, noisy, initial_guess)

    history = np.asarray(result.summary.cost_history)
    assert len(history) >= 2
    assert np.all(np.diff(history) <= 0)


def test_accepted_steps_never_increase_cost(options, outlier_problem, initial_guess, run_solver):
    _, result = run_solver(options, outlier_problem, initial_guess)
    for it in result.summary.iterations:
        if it.step_accepted:
            assert it.cost_change >= 0


def test_initial_pose_not_mutated(options, problem, initial_guess, run_solver):
    matrix = initial_guess.as_matrix()
    before = matrix.copy()
    _, result = run_solver(options, problem, matrix)

    np.testing.assert_array_equal(matrix, before)
    assert not result.pose.is_close(Pose.from_matrix(before))


# ----------------------------------------------------------------------------
# Termination
# ----------------------------------------------------------------------------

def test_zero_iterations(options, problem, initial_guess, run_solver):
    options.iteration_handle.max_num_iterations = 0
    optimizer, result = run_solver(options, problem, initial_guess)

    assert result.status is OptimizationStatus.MAX_ITERATIONS
    assert result.summary.num_iterations == 0
    assert result.pose.is_close(initial_guess, 1e-12, 1e-12)
    assert result.inlier_mask.all()
    assert result.summary.final_cost == pytest.approx(result.summary.initial_cost)
    assert len(optimizer.get_debug_poses()) == 1


def test_iteration_cap_reached(options, problem, initial_guess, run_solver):
    options.iteration_handle.max_num_iterations = 2
    _, result = run_solver(options, problem, initial_guess)

    assert result.status is OptimizationStatus.MAX_ITERATIONS
    assert result.summary.num_iterations == 2
    assert result.success


def test_all_points_behind_camera_diverges(options, problem, run_solver):
    looking_away = Pose(so3_exp([0.0, np.pi, 0.0]), [0.0, 0.0, 0.0])
    _, result = run_solver(options, problem, looking_away)

    assert result.status is OptimizationStatus.DIVERGED
    assert result.success
    assert result.pose.is_close(looking_away, 1e-12, 1e-12)
    assert not result.inlier_mask.any()
    assert len(result.inlier_mask) == len(problem)


def test_too_few_points_diverges(options, problem, initial_guess):
    K = problem.intrinsics
    result = solve_monocular_pose_only_bundle_adjustment_6dof(
        problem.world_points[:2], problem.pixels[:2], K.fx, K.fy, K.cx, K.cy,
        initial_guess, options)

    assert result.status is OptimizationStatus.DIVERGED
    assert result.pose.is_close(initial_guess, 1e-12, 1e-12)
    assert "rank deficient" in result.summary.message


def test_empty_input_diverges(options, initial_guess, intrinsics):
    result = solve_monocular_pose_only_bundle_adjustment_6dof(
        np.zeros((0, 3)), np.zeros((0, 2)),
        intrinsics.fx, intrinsics.fy, intrinsics.cx, intrinsics.cy, initial_guess, options)

    assert result.status is OptimizationStatus.DIVERGED
    assert len(result.inlier_mask) == 0


def test_cost_increase_ends_diverged(options, problem, run_solver):
    options.damping_handle.max_num_trials = 1
    initial = problem.true_pose.retract(np.array([0.0, 0.8, 0.0, 0.3, 0.0, 0.5]))
    optimizer, result = run_solver(options, problem, initial)

    assert result.status is OptimizationStatus.DIVERGED
    assert "Cost increased" in result.summary.message
    assert not result.summary.iterations[-1].step_accepted
    assert result.pose.is_close(optimizer.get_debug_poses()[-1], 1e-12, 1e-12)
    assert np.all(np.diff(result.summary.cost_history) <= 0)


def test_rejected_large_step_diverges_and_warns(options, problem, monkeypatch, caplog):
    monkeypatch.setattr(pose_optimizer_module, "solve_normal_equations",
                        lambda H, g, damping: np.array([0.0, 0.3, 0.0, 0.0, 0.0, 0.0]))
    options.damping_handle.max_num_trials = 3
    K = problem.intrinsics

    with caplog.at_level(logging.WARNING, logger="PoseOptimization"):
        result = PoseOptimizer(options).solve_monocular_pose_only_bundle_adjustment_6dof(
            problem.world_points, problem.pixels, K.fx, K.fy, K.cx, K.cy, problem.true_pose)

    assert result.status is OptimizationStatus.DIVERGED
    assert result.summary.message == "Cost increased after 3 damped trials"
    assert result.summary.iterations[-1].num_trials == 3
    assert result.pose.is_close(problem.true_pose, 1e-12, 1e-12)
    assert result.summary.cost_history == [result.summary.initial_cost]
    assert any(record.levelno == logging.WARNING and "diverged" in record.getMessage()
               for record in caplog.records)


def test_rejected_tiny_step_converges(options, problem, monkeypatch, run_solver):
    monkeypatch.setattr(pose_optimizer_module, "solve_normal_equations",
                        lambda H, g, damping: np.full(6, 1e-8))
    options.damping_handle.max_num_trials = 1
    _, result = run_solver(options, problem, problem.true_pose)

    assert result.status is OptimizationStatus.CONVERGED
    assert "no further decrease" in result.summary.message
    assert not result.summary.iterations[-1].step_accepted
    assert result.pose.is_close(problem.true_pose, 1e-12, 1e-12)


def test_zero_iterations_keeps_mask_all_true_behind_camera(options, problem, run_solver):
    options.iteration_handle.max_num_iterations = 0
    looking_away = Pose(so3_exp([0.0, np.pi, 0.0]), [0.0, 0.0, 0.0])
    _, result = run_solver(options, problem, looking_away)

    assert result.status is OptimizationStatus.MAX_ITERATIONS
    assert result.inlier_mask.all()
    assert len(result.inlier_mask) == len(problem)


# ----------------------------------------------------------------------------
# Precondition failures
# ----------------------------------------------------------------------------

def test_mismatched_lengths_rejected(options, problem, initial_guess, intrinsics):
    result = solve_monocular_pose_only_bundle_adjustment_6dof(
        problem.world_points[:10], problem.pixels[:9],
        intrinsics.fx, intrinsics.fy, intrinsics.cx, intrinsics.cy, initial_guess, options)

    assert result.status is OptimizationStatus.INVALID_INPUT
    assert not result.success
    assert not result
    assert "Mismatch" in result.error
    assert result.summary.termination_type is OptimizationStatus.INVALID_INPUT
    assert result.summary.num_iterations == 0
    assert result.pose.is_close(initial_guess, 1e-12, 1e-12)
    assert result.debug_poses == []


def test_negative_threshold_rejected(options, problem, initial_guess, run_solver):
    options.outlier_handle.threshold_huber_loss = -1.0
    _, result = run_solver(options, problem, initial_guess)

    assert result.status is OptimizationStatus.INVALID_INPUT
    assert "threshold_huber_loss" in result.error
    assert len(result.inlier_mask) == len(problem)
    assert result.inlier_mask.all()


def test_negative_iteration_cap_rejected(options, problem, initial_guess, run_solver):
    options.iteration_handle.max_num_iterations = -1
    _, result = run_solver(options, problem, initial_guess)
    assert result.status is OptimizationStatus.INVALID_INPUT


def test_invalid_intrinsics_rejected(options, problem, initial_guess):
    result = solve_monocular_pose_only_bundle_adjustment_6dof(
        problem.world_points, problem.pixels, 0.0, 338.0, 320.0, 240.0, initial_guess, options)
    assert result.status is OptimizationStatus.INVALID_INPUT
    assert "intrinsics" in result.error


def test_invalid_initial_pose_rejected(options, problem, intrinsics):
    result = solve_monocular_pose_only_bundle_adjustment_6dof(
        problem.world_points, problem.pixels,
        intrinsics.fx, intrinsics.fy, intrinsics.cx, intrinsics.cy, np.ones((4, 4)), options)
    assert result.status is OptimizationStatus.INVALID_INPUT
    assert result.pose.is_close(Pose.identity())


# ----------------------------------------------------------------------------
# Debug trajectory & callbacks
# ----------------------------------------------------------------------------

def test_debug_trajectory_starts_at_initial_pose(options, problem, initial_guess, run_solver):
    optimizer, result = run_solver(options, problem, initial_guess)
    poses = optimizer.get_debug_poses()

    accepted = sum(it.step_accepted for it in result.summary.iterations)
    assert len(poses) == accepted + 1
    assert poses[0].is_close(initial_guess, 1e-12, 1e-12)
    assert poses[-1].is_close(result.pose, 1e-12, 1e-12)
    assert len(result.debug_poses) == len(poses)


def test_debug_trajectory_capacity(options, problem, initial_guess, run_solver):
    options.debug_handle.max_debug_poses = 3
    optimizer, result = run_solver(options, problem, initial_guess)

    poses = optimizer.get_debug_poses()
    assert result.summary.num_iterations > 3
    assert len(poses) == 3
    assert poses[-1].is_close(result.pose, 1e-12, 1e-12)


def test_debug_trajectory_disabled(options, problem, initial_guess, run_solver):
    options.debug_handle.record_debug_poses = False
    optimizer, _ = run_solver(options, problem, initial_guess)
    assert optimizer.get_debug_poses() == []


def test_iteration_callback(options, problem, initial_guess):
    calls = []
    optimizer = PoseOptimizer(options)
    optimizer.set_iteration_callback(lambda iteration, cost, pose: calls.append((iteration, cost)))
    K = problem.intrinsics
    result = optimizer.solve_monocular_pose_only_bundle_adjustment_6dof(
        problem.world_points, problem.pixels, K.fx, K.fy, K.cx, K.cy, initial_guess)

    assert len(calls) == len(result.summary.cost_history) - 1
    assert [cost for _, cost in calls] == result.summary.cost_history[1:]


# ----------------------------------------------------------------------------
# Configuration plumbing
# ----------------------------------------------------------------------------

def test_default_options_copied():
    optimizer = PoseOptimizer()
    assert optimizer.options == DEFAULT_OPTIONS
    assert optimizer.options is not DEFAULT_OPTIONS

    optimizer.options.outlier_handle.threshold_outlier_rejection = 9.0
    assert DEFAULT_OPTIONS.outlier_handle.threshold_outlier_rejection == 2.5


def test_overrides_applied():
    optimizer = PoseOptimizer(outlier_handle={'threshold_huber_loss': 2.0},
                              iteration_handle={'max_num_iterations': 7})
    config = optimizer.get_config()
    assert config['outlier_handle']['threshold_huber_loss'] == 2.0
    assert config['iteration_handle']['max_num_iterations'] == 7
    assert optimizer.supports_robust_loss()
    assert "PoseOptimizer" in repr(optimizer)


def test_compute_cost_and_residuals(options, correspondences, problem):
    optimizer = PoseOptimizer(options)
    residuals = optimizer.compute_residuals(problem.true_pose, correspondences)
    assert residuals.shape == (len(problem), 2)
    assert optimizer.compute_cost(problem.true_pose, correspondences) < 1e-15
