"""
Monocular Pose-Only Bundle Adjustment (6-DoF)

Refines the pose of a calibrated camera from known 3D world points and
their observed pixels, keeping the structure fixed.

Each iteration:
1. Linearize the reprojection residuals at the current pose
2. Weight them with a Huber M-estimator, drop hard outliers
3. Solve the damped normal equations for a 6-DoF increment
4. Accept the step if the robust cost does not increase, otherwise
   raise the damping and re-solve (Levenberg-Marquardt)
5. Update the pose on the manifold, re-classify outliers, check convergence

Used for:
- Re-localization against a map
- Frame-to-map pose refinement after PnP
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from PoseOptimization.config import (
    DEFAULT_OPTIONS, Options, merge_options, options_to_dict, validate_options, resolve_num_threads
)
from PoseOptimization.core.interfaces import BaseOptimizer, OptimizationStatus
from PoseOptimization.core.structures import (
    CorrespondenceSet, Intrinsics, Pose, PoseLike, as_pose, validate_correspondences
)
from PoseOptimization.algorithms.geometry import ReprojectionProblem
from PoseOptimization.logger import get_logger

from .normal_equations import accumulate_normal_equations, solve_normal_equations, SingularSystemError
from .robust_loss import HuberLoss, OutlierClassifier
from .summary import IterationSummary, Summary

logger = get_logger("optimization.pose_optimizer")

MIN_LAMBDA = 1e-12
MAX_LAMBDA = 1e12


@dataclass
class PoseOptimizationResult:
    """
    Outcome of one solve.

    ``status`` is INVALID_INPUT only when the inputs were rejected before
    any computation; CONVERGED, MAX_ITERATIONS and DIVERGED are all normal
    terminations and always come with a valid pose and mask.

    Attributes:
        status: Termination state or INVALID_INPUT
        pose: Refined pose (initial pose when nothing was accepted)
        inlier_mask: One flag per correspondence, index-aligned with the input
        summary: Iteration history and costs
        debug_poses: Pose after each accepted iteration, starting with the initial pose
        error: Precondition failure message (empty otherwise)
    """
    status: OptimizationStatus
    pose: Pose
    inlier_mask: np.ndarray
    summary: Summary
    debug_poses: List[Pose] = field(default_factory=list)
    error: str = ""

    @property
    def success(self) -> bool:
        """True when the solve ran (any termination state)."""
        return self.status is not OptimizationStatus.INVALID_INPUT

    @property
    def converged(self) -> bool:
        return self.status is OptimizationStatus.CONVERGED

    def __bool__(self) -> bool:
        return self.success


class PoseOptimizer(BaseOptimizer):
    """
    Robust Gauss-Newton / Levenberg-Marquardt pose-only bundle adjustment.

    Usage:
        optimizer = PoseOptimizer(options)
        result = optimizer.solve_monocular_pose_only_bundle_adjustment_6dof(
            world_points, pixels, fx, fy, cx, cy, initial_pose)
        print(result.summary.brief_report())
        trajectory = optimizer.get_debug_poses()
    """

    def __init__(self, options: Optional[Options] = None, **overrides):
        """
        Args:
            options: Solver options (copied)
            **overrides: Nested option overrides, e.g.
                ``outlier_handle={'threshold_huber_loss': 2.0}``
        """
        options = (options if options is not None else DEFAULT_OPTIONS).copy()
        if overrides:
            options = merge_options(options, overrides)
        self.options = options
        super().__init__(verbose=options.verbose)

        self._debug_poses = self._new_trajectory()

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def solve_monocular_pose_only_bundle_adjustment_6dof(
            self,
            world_points: Sequence,
            pixels: Sequence,
            fx: float, fy: float, cx: float, cy: float,
            initial_pose: PoseLike) -> PoseOptimizationResult:
        """
        Refine a camera pose from 2D-3D correspondences.

        Args:
            world_points: 3D world points (N, 3)
            pixels: Observed pixels (N, 2), index-aligned with world_points
            fx, fy, cx, cy: Pinhole intrinsics
            initial_pose: Starting camera-to-world pose (Pose or 4x4 matrix);
                never modified

        Returns:
            PoseOptimizationResult
        """
        is_valid, error_msg = self.validate_input(world_points, pixels, fx, fy, cx, cy, initial_pose)
        if not is_valid:
            logger.error(f"Invalid input: {error_msg}")
            return self._invalid_result(world_points, pixels, initial_pose, error_msg)

        correspondences = CorrespondenceSet(world_points, pixels, Intrinsics(fx, fy, cx, cy))
        return self.optimize(correspondences, as_pose(initial_pose))

    def optimize(self, correspondences: CorrespondenceSet,
                 initial_pose: Pose) -> PoseOptimizationResult:
        """Run the solve on an already validated correspondence set."""
        start_time = time.time()
        opts = self.options
        max_iterations = opts.iteration_handle.max_num_iterations
        threshold_cost_change = opts.convergence_handle.threshold_cost_change
        threshold_step_size = opts.convergence_handle.threshold_step_size
        damping = opts.damping_handle
        num_threads = resolve_num_threads(opts.num_threads)

        problem = ReprojectionProblem(correspondences)
        huber = HuberLoss(opts.outlier_handle.threshold_huber_loss)
        classifier = OutlierClassifier(opts.outlier_handle.threshold_outlier_rejection,
                                       opts.outlier_handle.min_inlier_ratio)

        num_correspondences = len(problem)
        summary = Summary(num_correspondences=num_correspondences)
        self._debug_poses = self._new_trajectory()

        logger.info(f"Pose-only BA: {num_correspondences} correspondences, "
                    f"max {max_iterations} iterations")

        # Initial state: every correspondence counts, no outlier knowledge yet
        pose = initial_pose.copy()
        inlier_mask = np.ones(num_correspondences, dtype=bool)
        initial_eval = problem.evaluate(pose)
        current_cost = huber.cost(initial_eval.residual_norms, initial_eval.depth_valid)
        summary.initial_cost = current_cost
        summary.cost_history.append(current_cost)
        self._record_debug_pose(pose)

        trust_lambda = damping.initial_lambda
        status = None
        message = ""
        iteration = 0

        while iteration < max_iterations:
            iteration += 1

            lin = problem.linearize(pose)
            active = inlier_mask & lin.depth_valid
            num_active = int(np.count_nonzero(active))
            if num_active == 0:
                summary.iterations.append(IterationSummary(
                    iteration, 0.0, 0.0, 0.0, trust_lambda, 0, False, 0))
                status = OptimizationStatus.DIVERGED
                message = "No usable correspondence (all behind the camera or rejected)"
                break

            current_cost = huber.cost(lin.residual_norms, active)
            weights = huber.weights(lin.residual_norms) * active
            H, g = accumulate_normal_equations(lin.jacobians, lin.residuals, weights, num_threads)

            accepted = False
            num_trials = 0
            step_norm = 0.0
            new_cost = current_cost
            candidate = pose
            trial = None

            while num_trials < damping.max_num_trials:
                num_trials += 1
                try:
                    delta = solve_normal_equations(H, g, trust_lambda)
                except SingularSystemError as e:
                    status = OptimizationStatus.DIVERGED
                    message = str(e)
                    break

                step_norm = float(np.linalg.norm(delta))
                candidate = pose.retract(delta)
                trial = problem.evaluate(candidate)

                # A point that leaves the view would silently lower the cost
                if np.any(active & ~trial.depth_valid):
                    new_cost = np.inf
                else:
                    new_cost = huber.cost(trial.residual_norms, active)

                if new_cost <= current_cost:
                    accepted = True
                    break

                logger.debug(f"Iteration {iteration}: step rejected "
                             f"(cost {current_cost:.6e} -> {new_cost:.6e}, lambda {trust_lambda:.1e})")
                if step_norm < threshold_step_size or trust_lambda == 0:
                    break
                trust_lambda = min(trust_lambda * damping.lambda_up_factor, MAX_LAMBDA)

            if status is OptimizationStatus.DIVERGED:
                summary.iterations.append(IterationSummary(
                    iteration, current_cost, 0.0, step_norm, trust_lambda,
                    num_active, False, num_trials))
                break

            cost_change = current_cost - new_cost if accepted else 0.0
            summary.iterations.append(IterationSummary(
                iteration, current_cost, cost_change, step_norm, trust_lambda,
                num_active, accepted, num_trials))

            if not accepted:
                if step_norm < threshold_step_size:
                    status = OptimizationStatus.CONVERGED
                    message = "Step size below threshold, no further decrease possible"
                else:
                    status = OptimizationStatus.DIVERGED
                    message = f"Cost increased after {num_trials} damped trials"
                break

            pose = candidate
            if trust_lambda > 0:
                trust_lambda = max(trust_lambda * damping.lambda_down_factor, MIN_LAMBDA)

            previous_mask = inlier_mask
            inlier_mask = classifier.classify(trial.residual_norms, trial.depth_valid)
            mask_stable = np.array_equal(previous_mask, inlier_mask)

            summary.cost_history.append(new_cost)
            self._record_debug_pose(pose)
            self._notify_iteration(iteration, new_cost, pose)
            logger.debug(f"Iteration {iteration}: cost {new_cost:.6e}, change {cost_change:.3e}, "
                         f"|step| {step_norm:.3e}, inliers {int(np.count_nonzero(inlier_mask))}"
                         f"/{num_correspondences}")

            if mask_stable and (abs(cost_change) < threshold_cost_change
                                or step_norm < threshold_step_size):
                status = OptimizationStatus.CONVERGED
                message = ("Cost change below threshold" if abs(cost_change) < threshold_cost_change
                           else "Step size below threshold")
                break

        if status is None:
            status = OptimizationStatus.MAX_ITERATIONS
            message = f"Reached {max_iterations} iterations"

        final_eval = problem.evaluate(pose)
        # Reported mask is the hard threshold at the final pose; untouched
        # when no iteration ran
        if iteration > 0:
            inlier_mask = classifier.threshold_mask(final_eval.residual_norms, final_eval.depth_valid)
        summary.num_iterations = iteration
        summary.final_cost = huber.cost(final_eval.residual_norms, inlier_mask)
        summary.termination_type = status
        summary.message = message
        summary.num_inliers = int(np.count_nonzero(inlier_mask))
        summary.runtime = time.time() - start_time

        if status is OptimizationStatus.DIVERGED:
            logger.warning(f"Pose-only BA diverged: {message}")
        logger.info(summary.brief_report())

        return PoseOptimizationResult(
            status=status,
            pose=pose,
            inlier_mask=inlier_mask.copy(),
            summary=summary,
            debug_poses=self.get_debug_poses()
        )

    def get_debug_poses(self) -> List[Pose]:
        """Pose trajectory of the most recent solve (initial pose first)."""
        return [pose.copy() for pose in self._debug_poses]

    # ========================================================================
    # BaseOptimizer INTERFACE
    # ========================================================================

    def validate_input(self, world_points: Sequence, pixels: Sequence,
                       fx: float, fy: float, cx: float, cy: float,
                       initial_pose: PoseLike) -> Tuple[bool, str]:
        """Validate input for pose refinement"""
        is_valid, error_msg = validate_correspondences(world_points, pixels)
        if not is_valid:
            return False, error_msg

        try:
            Intrinsics(fx, fy, cx, cy)
        except (TypeError, ValueError) as e:
            return False, f"Invalid intrinsics: {e}"

        try:
            as_pose(initial_pose)
        except (TypeError, ValueError) as e:
            return False, f"Invalid initial pose: {e}"

        errors = validate_options(self.options)['errors']
        if errors:
            return False, "Invalid options: " + "; ".join(errors)
        return True, ""

    def compute_residuals(self, pose: Pose, correspondences: CorrespondenceSet) -> np.ndarray:
        """Reprojection residuals (N, 2); zero for points behind the camera."""
        return ReprojectionProblem(correspondences).evaluate(pose).residuals

    def compute_cost(self, pose: Pose, correspondences: CorrespondenceSet,
                     inlier_mask: Optional[np.ndarray] = None) -> float:
        """Robust (Huber) cost at ``pose`` over the masked, depth-valid correspondences."""
        evaluation = ReprojectionProblem(correspondences).evaluate(pose)
        mask = evaluation.depth_valid
        if inlier_mask is not None:
            mask = mask & np.asarray(inlier_mask, dtype=bool)
        return HuberLoss(self.options.outlier_handle.threshold_huber_loss).cost(
            evaluation.residual_norms, mask)

    def get_config(self) -> Dict[str, Any]:
        return options_to_dict(self.options)

    def get_algorithm_name(self) -> str:
        return "PoseOptimizer"

    def supports_robust_loss(self) -> bool:
        return True

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _new_trajectory(self) -> deque:
        capacity = self.options.debug_handle.max_debug_poses
        return deque(maxlen=capacity if capacity > 0 else None)

    def _record_debug_pose(self, pose: Pose):
        if self.options.debug_handle.record_debug_poses:
            self._debug_poses.append(pose.copy())

    def _invalid_result(self, world_points: Sequence, pixels: Sequence,
                        initial_pose: PoseLike, error_msg: str) -> PoseOptimizationResult:
        try:
            pose = as_pose(initial_pose)
        except (TypeError, ValueError):
            pose = Pose.identity()

        num_world, num_pixels = _num_rows(world_points), _num_rows(pixels)
        num_points = num_world if num_world == num_pixels else 0
        summary = Summary(termination_type=OptimizationStatus.INVALID_INPUT,
                          message=error_msg,
                          num_correspondences=num_points,
                          num_inliers=num_points)
        self._debug_poses = self._new_trajectory()
        return PoseOptimizationResult(
            status=OptimizationStatus.INVALID_INPUT,
            pose=pose,
            inlier_mask=np.ones(num_points, dtype=bool),
            summary=summary,
            error=error_msg
        )

    def __repr__(self) -> str:
        return (f"{self.get_algorithm_name()}("
                f"max_iter={self.options.iteration_handle.max_num_iterations}, "
                f"huber={self.options.outlier_handle.threshold_huber_loss}, "
                f"outlier={self.options.outlier_handle.threshold_outlier_rejection})")


def _num_rows(values: Any) -> int:
    try:
        return len(values)
    except TypeError:
        return 0


# Convenience functions

def solve_monocular_pose_only_bundle_adjustment_6dof(
        world_points: Sequence,
        pixels: Sequence,
        fx: float, fy: float, cx: float, cy: float,
        initial_pose: PoseLike,
        options: Optional[Options] = None) -> PoseOptimizationResult:
    """
    Convenience function for one-shot pose refinement.

    Example:
        >>> result = solve_monocular_pose_only_bundle_adjustment_6dof(
        ...     points_3d, points_2d, 338.0, 338.0, 320.0, 240.0, Pose.identity())
        >>> result.summary.brief_report()
    """
    optimizer = PoseOptimizer(options)
    return optimizer.solve_monocular_pose_only_bundle_adjustment_6dof(
        world_points, pixels, fx, fy, cx, cy, initial_pose
    )
