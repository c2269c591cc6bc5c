"""
Data generation for testing and prototyping.
"""

from .synthetic import (
    SyntheticPoseProblem,
    generate_pose_only_problem,
    default_true_pose,
    default_initial_guess,
    DEFAULT_INTRINSICS
)


__all__ = [
    'SyntheticPoseProblem',
    'generate_pose_only_problem',
    'default_true_pose',
    'default_initial_guess',
    'DEFAULT_INTRINSICS',
]
