"""
Solver Summary

Iteration history and termination diagnostics of one solve, with a
fixed-format brief report and a tabular export.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import pandas as pd

from PoseOptimization.core.interfaces import OptimizationStatus
from PoseOptimization.logger import get_logger

logger = get_logger("optimization.summary")


@dataclass
class IterationSummary:
    """
    Diagnostics of one outer iteration.

    Attributes:
        iteration: 1-based iteration index
        cost: Robust cost before the step
        cost_change: Cost before minus cost after, under the same inlier mask
        step_norm: Norm of the last solved increment
        trust_lambda: Damping used for the last trial
        num_inliers: Correspondences used to build the step
        step_accepted: Whether the pose was updated
        num_trials: Damped solves attempted in this iteration
    """
    iteration: int
    cost: float
    cost_change: float
    step_norm: float
    trust_lambda: float
    num_inliers: int
    step_accepted: bool
    num_trials: int = 1


@dataclass
class Summary:
    """
    Result summary of a pose-only bundle adjustment solve.

    Attributes:
        num_iterations: Iterations performed
        initial_cost: Robust cost at the initial pose, all correspondences
        final_cost: Robust cost at the final pose under the final mask
        termination_type: Why the solve stopped
        message: Human-readable detail on the termination
        cost_history: Cost at the initial pose followed by one entry per accepted step
        iterations: Per-iteration diagnostics
        num_correspondences: Size of the correspondence set
        num_inliers: Inliers in the final mask
        runtime: Wall time in seconds
    """
    num_iterations: int = 0
    initial_cost: float = 0.0
    final_cost: float = 0.0
    termination_type: Optional[OptimizationStatus] = None
    message: str = ""
    cost_history: List[float] = field(default_factory=list)
    iterations: List[IterationSummary] = field(default_factory=list)
    num_correspondences: int = 0
    num_inliers: int = 0
    runtime: float = 0.0

    @property
    def is_converged(self) -> bool:
        return self.termination_type is OptimizationStatus.CONVERGED

    def get_cost_reduction(self) -> float:
        return self.initial_cost - self.final_cost

    def get_relative_cost_reduction(self) -> float:
        if self.initial_cost == 0:
            return 0.0
        return (self.initial_cost - self.final_cost) / self.initial_cost

    def brief_report(self) -> str:
        termination = self.termination_type.value if self.termination_type else "none"
        return (f"Pose-only BA: iterations: {self.num_iterations}, "
                f"initial cost: {self.initial_cost:.6e}, "
                f"final cost: {self.final_cost:.6e}, "
                f"termination: {termination}")

    def full_report(self) -> str:
        lines = [
            "Pose-only bundle adjustment report",
            "-" * 70,
            f"Correspondences      {self.num_correspondences}",
            f"Inliers              {self.num_inliers}",
            f"Iterations           {self.num_iterations}",
            f"Initial cost         {self.initial_cost:.6e}",
            f"Final cost           {self.final_cost:.6e}",
            f"Runtime              {self.runtime:.4f}s",
            f"Termination          {self.termination_type.value if self.termination_type else 'none'}",
        ]
        if self.message:
            lines.append(f"Message              {self.message}")

        if self.iterations:
            lines.append("-" * 70)
            lines.append(f"{'iter':>4} {'cost':>13} {'cost_change':>13} {'|step|':>11} "
                         f"{'lambda':>9} {'inliers':>8} {'accepted':>8}")
            for it in self.iterations:
                lines.append(f"{it.iteration:>4} {it.cost:>13.6e} {it.cost_change:>13.6e} "
                             f"{it.step_norm:>11.4e} {it.trust_lambda:>9.2e} "
                             f"{it.num_inliers:>8} {str(it.step_accepted):>8}")
        return "\n".join(lines)

    def to_dataframe(self) -> pd.DataFrame:
        """Per-iteration diagnostics as a DataFrame (one row per iteration)."""
        columns = ['iteration', 'cost', 'cost_change', 'step_norm', 'trust_lambda',
                   'num_inliers', 'step_accepted', 'num_trials']
        rows = [[getattr(it, name) for name in columns] for it in self.iterations]
        return pd.DataFrame(rows, columns=columns)

    def export_csv(self, filepath: str) -> str:
        """
        Write the iteration history to CSV.

        Returns:
            str: Path to saved CSV file
        """
        output_path = Path(filepath)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.to_dataframe().to_csv(output_path, index=False)
        logger.info(f"Iteration history exported to CSV: {output_path}")
        return str(output_path)

    def print_summary(self):
        """Log the full report line by line."""
        for line in self.full_report().splitlines():
            logger.info(line)
