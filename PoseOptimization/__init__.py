"""
PoseOptimization - Robust Pose-Only Bundle Adjustment

Estimates the 6-DoF pose of a calibrated camera from known 3D world points
and their observed pixels (re-localization, frame-to-map refinement).
"""

from .logger import (
    setup_logger,
    get_logger,
    configure_root_logger,
    disable_console_logging,
    set_level
)

from .config import (
    Options,
    IterationOptions,
    ConvergenceOptions,
    OutlierOptions,
    DampingOptions,
    DebugOptions,
    create_options_from_preset,
    validate_options
)

from .core import OptimizationStatus, Pose, Intrinsics, CorrespondenceSet

from .algorithms.optimization import (
    PoseOptimizer,
    PoseOptimizationResult,
    Summary,
    solve_monocular_pose_only_bundle_adjustment_6dof
)

__version__ = "1.0.0"
__all__ = [
    "setup_logger",
    "get_logger",
    "configure_root_logger",
    "disable_console_logging",
    "set_level",
    "Options",
    "IterationOptions",
    "ConvergenceOptions",
    "OutlierOptions",
    "DampingOptions",
    "DebugOptions",
    "create_options_from_preset",
    "validate_options",
    "OptimizationStatus",
    "Pose",
    "Intrinsics",
    "CorrespondenceSet",
    "PoseOptimizer",
    "PoseOptimizationResult",
    "Summary",
    "solve_monocular_pose_only_bundle_adjustment_6dof",
]
