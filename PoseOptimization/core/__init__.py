"""
Core interfaces and data structures.
"""

from .interfaces import BaseOptimizer, OptimizationStatus
from .structures import Pose, Intrinsics, CorrespondenceSet


__all__ = [
    'BaseOptimizer',
    'OptimizationStatus',
    'Pose',
    'Intrinsics',
    'CorrespondenceSet',
]
