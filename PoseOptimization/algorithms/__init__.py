"""
Algorithms Module

Submodules:
- geometry: Pinhole projection, reprojection residuals and Jacobians
- optimization: Robust weighting, normal equations, pose-only bundle adjustment

Usage:
    from PoseOptimization.algorithms.geometry import ReprojectionProblem
    from PoseOptimization.algorithms.optimization import PoseOptimizer
"""

from PoseOptimization.algorithms.geometry import (
    ReprojectionProblem,
    LinearizationResult,
    project_points,
    projection_jacobians,
)

from PoseOptimization.algorithms.optimization import (
    HuberLoss,
    OutlierClassifier,
    accumulate_normal_equations,
    solve_normal_equations,
    SingularSystemError,
    Summary,
    IterationSummary,
    PoseOptimizer,
    PoseOptimizationResult,
    solve_monocular_pose_only_bundle_adjustment_6dof,
)


__all__ = [
    'ReprojectionProblem',
    'LinearizationResult',
    'project_points',
    'projection_jacobians',
    'HuberLoss',
    'OutlierClassifier',
    'accumulate_normal_equations',
    'solve_normal_equations',
    'SingularSystemError',
    'Summary',
    'IterationSummary',
    'PoseOptimizer',
    'PoseOptimizationResult',
    'solve_monocular_pose_only_bundle_adjustment_6dof',
]
