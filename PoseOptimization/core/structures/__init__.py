"""
Core data structures: rigid poses and 2D-3D correspondences.
"""

from .pose import (
    Pose,
    PoseLike,
    as_pose,
    skew,
    so3_exp,
    so3_log
)

from .correspondence import (
    Intrinsics,
    CorrespondenceSet,
    validate_correspondences
)


__all__ = [
    'Pose',
    'PoseLike',
    'as_pose',
    'skew',
    'so3_exp',
    'so3_log',
    'Intrinsics',
    'CorrespondenceSet',
    'validate_correspondences',
]
