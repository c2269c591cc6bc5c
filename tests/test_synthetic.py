import numpy as np
import pytest

from PoseOptimization.algorithms.geometry import project_points
from PoseOptimization.data import (
    DEFAULT_INTRINSICS,
    default_initial_guess,
    default_true_pose,
    generate_pose_only_problem,
)


def test_shapes_and_ranges():
    problem = generate_pose_only_problem(num_points=300, seed=1)
    assert problem.world_points.shape == (300, 3)
    assert problem.pixels.shape == (300, 2)
    assert np.all(np.abs(problem.world_points[:, 0]) <= 1.7)
    assert np.all(np.abs(problem.world_points[:, 1]) <= 1.3)
    assert np.all((problem.world_points[:, 2] >= 1.2) & (problem.world_points[:, 2] <= 6.2))


def test_noise_free_pixels_are_projections():
    problem = generate_pose_only_problem(num_points=50, seed=2)
    points_camera = problem.true_pose.inverse().transform_points(problem.world_points)
    pixels, valid = project_points(points_camera, DEFAULT_INTRINSICS)
    assert valid.all()
    np.testing.assert_allclose(problem.pixels, pixels)
    np.testing.assert_array_equal(problem.pixels, problem.true_pixels)


def test_seed_is_reproducible():
    a = generate_pose_only_problem(num_points=20, pixel_noise=1.0, outlier_ratio=0.2, seed=3)
    b = generate_pose_only_problem(num_points=20, pixel_noise=1.0, outlier_ratio=0.2, seed=3)
    np.testing.assert_array_equal(a.pixels, b.pixels)
    assert a.outlier_indices == b.outlier_indices


def test_outliers_displaced_by_requested_magnitude():
    problem = generate_pose_only_problem(num_points=100, outlier_ratio=0.1,
                                         outlier_magnitude=(20.0, 30.0), seed=4)
    assert len(problem.outlier_indices) == 10
    displacement = np.linalg.norm(problem.pixels - problem.true_pixels, axis=1)
    assert np.all(displacement[problem.outlier_indices] >= 20.0 - 1e-9)
    assert np.all(displacement[problem.outlier_indices] <= 30.0 + 1e-9)
    assert np.count_nonzero(problem.true_inlier_mask) == 90


def test_default_poses():
    true_pose = default_true_pose()
    assert true_pose.rotation_angle_to(default_initial_guess()) == pytest.approx(0.3)
    np.testing.assert_allclose(default_initial_guess().translation, [-0.2, -0.5, 0.0])


def test_invalid_arguments():
    with pytest.raises(ValueError):
        generate_pose_only_problem(num_points=-1)
    with pytest.raises(ValueError):
        generate_pose_only_problem(outlier_ratio=1.5)
