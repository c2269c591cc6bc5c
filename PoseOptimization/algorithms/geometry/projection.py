"""
Pinhole Reprojection Residuals and Jacobians

Projects world points through the current pose estimate and linearizes the
reprojection residual with respect to a right-multiplicative SE(3)
increment ``pose <- pose @ exp(delta)``, ``delta = [omega, v]``.

For a camera-frame point P = (X, Y, Z):

    u = fx * X / Z + cx,   v = fy * Y / Z + cy

    dP/d(omega) = [P]_x,   dP/dv = -I

Points with Z <= 0 cannot be projected. Their rows are zeroed and flagged
in ``depth_valid`` so they drop out of the current iteration.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, Tuple

from PoseOptimization.core.structures import CorrespondenceSet, Intrinsics, Pose

MIN_DEPTH = 0.0


@dataclass
class LinearizationResult:
    """
    Per-correspondence reprojection state at one pose.

    Attributes:
        residuals: Projected minus observed pixel (N, 2)
        residual_norms: Euclidean norm of each residual (N,)
        depth_valid: True where the point lies in front of the camera (N,)
        points_camera: Points expressed in the camera frame (N, 3)
        jacobians: d(residual)/d(delta) (N, 2, 6), None for cost-only evaluation
    """
    residuals: np.ndarray
    residual_norms: np.ndarray
    depth_valid: np.ndarray
    points_camera: np.ndarray
    jacobians: Optional[np.ndarray] = None

    @property
    def num_valid(self) -> int:
        return int(np.count_nonzero(self.depth_valid))


def project_points(points_camera: np.ndarray,
                   intrinsics: Intrinsics) -> Tuple[np.ndarray, np.ndarray]:
    """
    Pinhole projection of camera-frame points.

    Args:
        points_camera: Camera-frame points (N, 3)
        intrinsics: Camera intrinsics

    Returns:
        Tuple of (pixels (N, 2), depth_valid (N,)). Pixels of points with
        non-positive depth are set to zero.
    """
    points_camera = np.asarray(points_camera, dtype=np.float64).reshape(-1, 3)
    depth = points_camera[:, 2]
    depth_valid = depth > MIN_DEPTH
    inverse_z = np.zeros_like(depth)
    inverse_z[depth_valid] = 1.0 / depth[depth_valid]

    pixels = np.empty((points_camera.shape[0], 2))
    pixels[:, 0] = intrinsics.fx * points_camera[:, 0] * inverse_z + intrinsics.cx
    pixels[:, 1] = intrinsics.fy * points_camera[:, 1] * inverse_z + intrinsics.cy
    pixels[~depth_valid] = 0.0
    return pixels, depth_valid


def projection_jacobians(points_camera: np.ndarray,
                         intrinsics: Intrinsics,
                         depth_valid: np.ndarray) -> np.ndarray:
    """
    Jacobian of the pixel residual with respect to the 6-DoF increment.

    Returns:
        Jacobians (N, 2, 6); rows of depth-invalid points are zero.
    """
    n = points_camera.shape[0]
    X = points_camera[:, 0]
    Y = points_camera[:, 1]
    Z = np.where(depth_valid, points_camera[:, 2], 1.0)
    inverse_z = 1.0 / Z
    inverse_z2 = inverse_z * inverse_z

    # d(u, v) / dP
    J_proj = np.zeros((n, 2, 3))
    J_proj[:, 0, 0] = intrinsics.fx * inverse_z
    J_proj[:, 0, 2] = -intrinsics.fx * X * inverse_z2
    J_proj[:, 1, 1] = intrinsics.fy * inverse_z
    J_proj[:, 1, 2] = -intrinsics.fy * Y * inverse_z2

    # dP / d(delta) = [ [P]_x | -I ]
    J_point = np.zeros((n, 3, 6))
    J_point[:, 0, 1] = -points_camera[:, 2]
    J_point[:, 0, 2] = points_camera[:, 1]
    J_point[:, 1, 0] = points_camera[:, 2]
    J_point[:, 1, 2] = -points_camera[:, 0]
    J_point[:, 2, 0] = -points_camera[:, 1]
    J_point[:, 2, 1] = points_camera[:, 0]
    J_point[:, 0, 3] = -1.0
    J_point[:, 1, 4] = -1.0
    J_point[:, 2, 5] = -1.0

    jacobians = np.matmul(J_proj, J_point)
    jacobians[~depth_valid] = 0.0
    return jacobians


class ReprojectionProblem:
    """
    Residual/Jacobian builder for one correspondence set.

    Usage:
        problem = ReprojectionProblem(correspondences)
        lin = problem.linearize(pose)      # residuals + jacobians
        trial = problem.evaluate(pose)     # residuals only
    """

    def __init__(self, correspondences: CorrespondenceSet):
        self.correspondences = correspondences

    def __len__(self) -> int:
        return len(self.correspondences)

    def to_camera_frame(self, pose: Pose) -> np.ndarray:
        return pose.inverse().transform_points(self.correspondences.world_points)

    def evaluate(self, pose: Pose) -> LinearizationResult:
        """Compute residuals at ``pose`` without Jacobians."""
        points_camera = self.to_camera_frame(pose)
        projected, depth_valid = project_points(points_camera, self.correspondences.intrinsics)

        residuals = projected - self.correspondences.pixels
        residuals[~depth_valid] = 0.0
        residual_norms = np.linalg.norm(residuals, axis=1)

        return LinearizationResult(
            residuals=residuals,
            residual_norms=residual_norms,
            depth_valid=depth_valid,
            points_camera=points_camera
        )

    def linearize(self, pose: Pose) -> LinearizationResult:
        """Compute residuals and Jacobians at ``pose``."""
        result = self.evaluate(pose)
        result.jacobians = projection_jacobians(
            result.points_camera, self.correspondences.intrinsics, result.depth_valid
        )
        return result
