"""
Synthetic pose-only problems for testing and prototyping.

File: PoseOptimization/data/synthetic.py

Generates random world points in front of a known camera, projects them
through the pinhole model and optionally corrupts the pixels with
Gaussian noise and gross outliers.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from PoseOptimization.core.structures import Intrinsics, Pose
from PoseOptimization.algorithms.geometry import project_points

# 640x480 camera used by the reference simulation
DEFAULT_INTRINSICS = Intrinsics(fx=338.0, fy=338.0, cx=320.0, cy=240.0)

# World point sampling box
X_DEVIATION = 1.7
Y_DEVIATION = 1.3
Z_DEFAULT = 1.2
Z_DEVIATION = 5.0


def default_true_pose() -> Pose:
    """-0.3 rad about Y, translation (0.4, 0.012, -0.5)."""
    return Pose.from_rotation_vector([0.0, -0.3, 0.0], [0.4, 0.012, -0.5])


def default_initial_guess() -> Pose:
    """Identity rotation, translation offset by (-0.2, -0.5, 0)."""
    return Pose(np.eye(3), [-0.2, -0.5, 0.0])


@dataclass
class SyntheticPoseProblem:
    """
    One simulated 2D-3D correspondence set.

    Attributes:
        world_points: World points (N, 3)
        pixels: Observed (corrupted) pixels (N, 2)
        true_pixels: Noise-free projections (N, 2)
        true_pose: Camera-to-world pose used for the projection
        intrinsics: Camera intrinsics
        outlier_indices: Indices of correspondences replaced by gross outliers
    """
    world_points: np.ndarray
    pixels: np.ndarray
    true_pixels: np.ndarray
    true_pose: Pose
    intrinsics: Intrinsics
    outlier_indices: List[int] = field(default_factory=list)

    def __len__(self) -> int:
        return self.world_points.shape[0]

    @property
    def true_inlier_mask(self) -> np.ndarray:
        mask = np.ones(len(self), dtype=bool)
        mask[self.outlier_indices] = False
        return mask


def generate_pose_only_problem(num_points: int = 200,
                               true_pose: Optional[Pose] = None,
                               intrinsics: Intrinsics = DEFAULT_INTRINSICS,
                               pixel_noise: float = 0.0,
                               outlier_ratio: float = 0.0,
                               outlier_magnitude: Tuple[float, float] = (20.0, 60.0),
                               seed: Optional[int] = None) -> SyntheticPoseProblem:
    """
    Simulate a pose-only bundle adjustment problem.

    Args:
        num_points: Number of correspondences
        true_pose: Camera-to-world pose (default: default_true_pose())
        intrinsics: Camera intrinsics
        pixel_noise: Standard deviation of the Gaussian pixel noise
        outlier_ratio: Fraction of correspondences turned into outliers
        outlier_magnitude: (min, max) pixel displacement of an outlier
        seed: Random seed for reproducibility

    Returns:
        SyntheticPoseProblem
    """
    if num_points < 0:
        raise ValueError(f"num_points must be non-negative, got {num_points}")
    if not 0.0 <= outlier_ratio <= 1.0:
        raise ValueError(f"outlier_ratio must be in [0, 1], got {outlier_ratio}")

    rng = np.random.default_rng(seed)
    true_pose = true_pose if true_pose is not None else default_true_pose()

    world_points = np.column_stack([
        rng.uniform(-X_DEVIATION, X_DEVIATION, num_points),
        rng.uniform(-Y_DEVIATION, Y_DEVIATION, num_points),
        rng.uniform(0.0, Z_DEVIATION, num_points) + Z_DEFAULT,
    ])

    points_camera = true_pose.inverse().transform_points(world_points)
    true_pixels, depth_valid = project_points(points_camera, intrinsics)
    if not np.all(depth_valid):
        raise ValueError("True pose places simulated points behind the camera")

    pixels = true_pixels.copy()
    if pixel_noise > 0:
        pixels += rng.normal(0.0, pixel_noise, size=pixels.shape)

    num_outliers = int(round(outlier_ratio * num_points))
    outlier_indices = sorted(rng.choice(num_points, size=num_outliers, replace=False).tolist())
    if num_outliers > 0:
        angles = rng.uniform(0.0, 2.0 * np.pi, num_outliers)
        magnitudes = rng.uniform(outlier_magnitude[0], outlier_magnitude[1], num_outliers)
        pixels[outlier_indices] += np.column_stack([np.cos(angles), np.sin(angles)]) * magnitudes[:, None]

    return SyntheticPoseProblem(
        world_points=world_points,
        pixels=pixels,
        true_pixels=true_pixels,
        true_pose=true_pose,
        intrinsics=intrinsics,
        outlier_indices=outlier_indices
    )
