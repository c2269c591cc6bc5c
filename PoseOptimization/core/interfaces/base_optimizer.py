"""
Base interface for optimization algorithms.

This defines the contract for algorithms that refine estimates through
iterative optimization (pose-only bundle adjustment and friends).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Callable, Tuple
from enum import Enum
import numpy as np

from PoseOptimization.logger import get_logger

logger = get_logger("core.interfaces")


class OptimizationStatus(Enum):
    """
    Status codes for optimization results.

    CONVERGED, MAX_ITERATIONS and DIVERGED are solve-time termination
    states. INVALID_INPUT is the only error kind: the solve never started.
    """
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations_reached"
    DIVERGED = "diverged"
    INVALID_INPUT = "invalid_input"

    def __str__(self):
        return self.value


class BaseOptimizer(ABC):
    """
    Abstract base class for optimization algorithms.

    Design Principles:
    - Single Responsibility: Each optimizer does ONE type of optimization
    - Configurable: Parameters set via constructor
    - Observable: Provides callbacks for monitoring progress
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self._iteration_callback: Optional[Callable] = None

    # ========================================================================
    # CORE OPTIMIZATION METHOD (Required)
    # ========================================================================

    @abstractmethod
    def optimize(self, *args, **kwargs) -> Any:
        """
        Perform optimization.

        Arguments depend on the specific optimization algorithm.
        """
        pass

    # ========================================================================
    # COST COMPUTATION (Required)
    # ========================================================================

    @abstractmethod
    def compute_cost(self, params: Any, *args, **kwargs) -> float:
        """
        Compute optimization cost for given parameters.

        Returns:
            float: Total cost
        """
        pass

    @abstractmethod
    def compute_residuals(self, params: Any, *args, **kwargs) -> np.ndarray:
        """
        Compute residuals for given parameters.

        Returns:
            np.ndarray: Residuals
        """
        pass

    # ========================================================================
    # VALIDATION (Required)
    # ========================================================================

    @abstractmethod
    def validate_input(self, *args, **kwargs) -> Tuple[bool, str]:
        """
        Validate input before optimization.

        Returns:
            Tuple[bool, str]: (is_valid, error_message)
        """
        pass

    # ========================================================================
    # CONFIGURATION
    # ========================================================================

    @abstractmethod
    def get_config(self) -> Dict[str, Any]:
        """Get current configuration as a plain dictionary."""
        pass

    # ========================================================================
    # CALLBACKS & MONITORING
    # ========================================================================

    def set_iteration_callback(self, callback: Optional[Callable]):
        """
        Set callback to be called after each accepted iteration.

        Args:
            callback: Function(iteration, cost, params) -> None
        """
        self._iteration_callback = callback

    def _notify_iteration(self, iteration: int, cost: float, params: Any):
        """Notify iteration callback"""
        if self._iteration_callback is not None:
            self._iteration_callback(iteration, cost, params)

        if self.verbose:
            logger.info(f"Iteration {iteration}: cost = {cost:.6e}")

    # ========================================================================
    # UTILITY METHODS
    # ========================================================================

    def get_algorithm_name(self) -> str:
        return self.__class__.__name__

    def supports_robust_loss(self) -> bool:
        return False  # Override in subclasses

    def __repr__(self) -> str:
        return f"{self.get_algorithm_name()}(verbose={self.verbose})"
