"""
Core interfaces.

Abstract base classes (contracts) that optimizer implementations follow.

Usage:
    from PoseOptimization.core.interfaces import BaseOptimizer, OptimizationStatus
"""

from .base_optimizer import (
    BaseOptimizer,
    OptimizationStatus
)


__all__ = [
    'BaseOptimizer',
    'OptimizationStatus',
]
