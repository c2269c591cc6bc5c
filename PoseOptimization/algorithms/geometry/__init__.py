"""
Geometric building blocks: pinhole projection and reprojection linearization.
"""

from .projection import (
    ReprojectionProblem,
    LinearizationResult,
    project_points,
    projection_jacobians
)


__all__ = [
    'ReprojectionProblem',
    'LinearizationResult',
    'project_points',
    'projection_jacobians',
]
