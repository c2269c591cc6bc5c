# Robust weighting
from .robust_loss import (
    HuberLoss,
    OutlierClassifier
)

# Linear system
from .normal_equations import (
    accumulate_normal_equations,
    solve_normal_equations,
    SingularSystemError
)

# Reporting
from .summary import (
    Summary,
    IterationSummary
)

# Pose-only bundle adjustment
from .pose_optimizer import (
    PoseOptimizer,
    PoseOptimizationResult,
    solve_monocular_pose_only_bundle_adjustment_6dof
)


__all__ = [
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


# Module metadata
__description__ = 'Robust pose-only bundle adjustment'
