"""
Shared fixtures for the PoseOptimization test suite.
"""

import numpy as np
import pytest

from PoseOptimization.algorithms.optimization import PoseOptimizer
from PoseOptimization.config import Options
from PoseOptimization.core.structures import CorrespondenceSet
from PoseOptimization.data import (
    DEFAULT_INTRINSICS,
    default_initial_guess,
    default_true_pose,
    generate_pose_only_problem,
)


@pytest.fixture
def intrinsics():
    return DEFAULT_INTRINSICS


@pytest.fixture
def true_pose():
    return default_true_pose()


@pytest.fixture
def initial_guess():
    return default_initial_guess()


@pytest.fixture
def problem():
    """200 noise-free, outlier-free correspondences."""
    return generate_pose_only_problem(num_points=200, seed=7)


@pytest.fixture
def outlier_problem():
    """200 noise-free correspondences, 10% of them gross outliers."""
    return generate_pose_only_problem(num_points=200, outlier_ratio=0.1, seed=11)


@pytest.fixture
def correspondences(problem):
    return CorrespondenceSet(problem.world_points, problem.pixels, problem.intrinsics)


@pytest.fixture
def options():
    options = Options()
    options.iteration_handle.max_num_iterations = 100
    options.convergence_handle.threshold_cost_change = 1e-6
    options.convergence_handle.threshold_step_size = 1e-6
    options.outlier_handle.threshold_huber_loss = 1.5
    options.outlier_handle.threshold_outlier_rejection = 2.5
    return options


@pytest.fixture
def small_perturbation():
    return np.array([0.02, -0.03, 0.01, 0.05, -0.04, 0.03])


@pytest.fixture
def run_solver():
    """Run the solver on a synthetic problem, returning (optimizer, result)."""
    def _run(options, problem, initial_pose):
        K = problem.intrinsics
        optimizer = PoseOptimizer(options)
        result = optimizer.solve_monocular_pose_only_bundle_adjustment_6dof(
            problem.world_points, problem.pixels, K.fx, K.fy, K.cx, K.cy, initial_pose
        )
        return optimizer, result
    return _run
