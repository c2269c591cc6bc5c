"""
2D-3D correspondence containers.

File: PoseOptimization/core/structures/correspondence.py
"""

import numpy as np
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

ArrayLike = Union[np.ndarray, Sequence]


@dataclass(frozen=True)
class Intrinsics:
    """
    Pinhole camera intrinsics.

    Attributes:
        fx, fy: Focal lengths in pixels
        cx, cy: Principal point in pixels
    """
    fx: float
    fy: float
    cx: float
    cy: float

    def __post_init__(self):
        values = (self.fx, self.fy, self.cx, self.cy)
        if not all(np.isfinite(v) for v in values):
            raise ValueError(f"Intrinsics must be finite, got {values}")
        if self.fx <= 0 or self.fy <= 0:
            raise ValueError(f"Focal lengths must be positive, got fx={self.fx}, fy={self.fy}")

    @classmethod
    def from_matrix(cls, K: np.ndarray) -> 'Intrinsics':
        K = np.asarray(K, dtype=np.float64)
        if K.shape != (3, 3):
            raise ValueError(f"Invalid camera matrix shape: {K.shape}")
        return cls(float(K[0, 0]), float(K[1, 1]), float(K[0, 2]), float(K[1, 2]))

    def as_matrix(self) -> np.ndarray:
        return np.array([
            [self.fx, 0.0, self.cx],
            [0.0, self.fy, self.cy],
            [0.0, 0.0, 1.0]
        ])


def validate_correspondences(world_points: ArrayLike,
                             pixels: ArrayLike) -> Tuple[bool, str]:
    """
    Check that world points and pixel observations form a usable set.

    Returns:
        Tuple[bool, str]: (is_valid, error_message)
    """
    try:
        points_3d = np.asarray(world_points, dtype=np.float64)
        points_2d = np.asarray(pixels, dtype=np.float64)
    except (TypeError, ValueError) as e:
        return False, f"Correspondences are not numeric: {e}"

    if points_3d.size == 0 and points_2d.size == 0:
        return True, ""
    if points_3d.ndim != 2 or points_3d.shape[1] != 3:
        return False, f"World points must be Nx3, got shape {points_3d.shape}"
    if points_2d.ndim != 2 or points_2d.shape[1] != 2:
        return False, f"Pixels must be Nx2, got shape {points_2d.shape}"
    if points_3d.shape[0] != points_2d.shape[0]:
        return False, (f"Mismatch between 3D and 2D points: "
                       f"{points_3d.shape[0]} world points vs {points_2d.shape[0]} pixels")
    if not np.all(np.isfinite(points_3d)) or not np.all(np.isfinite(points_2d)):
        return False, "Correspondences contain non-finite values"
    return True, ""


class CorrespondenceSet:
    """
    Immutable pairing of 3D world points with observed pixels.

    The arrays are copied and made read-only so nothing downstream can
    change the inputs during a solve.
    """

    def __init__(self, world_points: ArrayLike, pixels: ArrayLike, intrinsics: Intrinsics):
        is_valid, error_msg = validate_correspondences(world_points, pixels)
        if not is_valid:
            raise ValueError(error_msg)

        self.world_points = np.array(world_points, dtype=np.float64).reshape(-1, 3)
        self.pixels = np.array(pixels, dtype=np.float64).reshape(-1, 2)
        self.world_points.flags.writeable = False
        self.pixels.flags.writeable = False
        self.intrinsics = intrinsics

    def __len__(self) -> int:
        return self.world_points.shape[0]

    def __repr__(self) -> str:
        return f"CorrespondenceSet(num_correspondences={len(self)}, intrinsics={self.intrinsics})"
