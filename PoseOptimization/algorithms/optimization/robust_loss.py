"""
Robust Weighting and Outlier Classification

Two independent mechanisms act on the residual norm e of each correspondence:

- Huber M-estimator (soft): weight 1 for e <= k, k / e above it.
- Outlier classifier (hard): e > threshold removes the correspondence
  from the next normal-equation accumulation entirely.

The solver never assumes the rejection threshold is above the Huber one.
"""

import numpy as np
from typing import Optional

from PoseOptimization.logger import get_logger

logger = get_logger("optimization.robust_loss")


class HuberLoss:
    """
    Huber loss on residual norms.

        rho(e) = e^2              if e <= k
               = 2 k e - k^2      otherwise

    The IRLS weight rho'(e) / (2 e) is 1 in the quadratic regime and k / e
    in the linear one. The solver minimises 0.5 * sum(rho).
    """

    def __init__(self, threshold: float):
        if threshold < 0:
            raise ValueError(f"Huber threshold must be non-negative, got {threshold}")
        self.threshold = float(threshold)

    def weights(self, norms: np.ndarray) -> np.ndarray:
        """Huber loss weights."""
        norms = np.asarray(norms, dtype=np.float64)
        weights = np.ones_like(norms)
        outliers = norms > self.threshold
        weights[outliers] = self.threshold / norms[outliers]
        return weights

    def rho(self, norms: np.ndarray) -> np.ndarray:
        norms = np.asarray(norms, dtype=np.float64)
        k = self.threshold
        return np.where(norms <= k, norms**2, 2.0 * k * norms - k**2)

    def cost(self, norms: np.ndarray, mask: Optional[np.ndarray] = None) -> float:
        """Robust cost 0.5 * sum(rho) over the masked correspondences."""
        norms = np.asarray(norms, dtype=np.float64)
        if mask is not None:
            norms = norms[mask]
        return float(0.5 * np.sum(self.rho(norms)))

    def __repr__(self) -> str:
        return f"HuberLoss(threshold={self.threshold})"


class OutlierClassifier:
    """
    Hard inlier/outlier decision on residual norms.

    Depth-invalid correspondences are always outliers. When fewer than
    ``min_inlier_ratio`` of the depth-valid correspondences pass the
    threshold (typically a far-off initial guess where every residual is
    large) rejection is suspended and only depth validity is applied.
    """

    def __init__(self, threshold: float, min_inlier_ratio: float = 0.5):
        if threshold < 0:
            raise ValueError(f"Outlier threshold must be non-negative, got {threshold}")
        self.threshold = float(threshold)
        self.min_inlier_ratio = float(min_inlier_ratio)
        self.last_rejection_suspended = False

    def threshold_mask(self, norms: np.ndarray, depth_valid: np.ndarray) -> np.ndarray:
        """Plain hard threshold, never suspended."""
        return np.asarray(depth_valid, dtype=bool) & (np.asarray(norms) <= self.threshold)

    def classify(self, norms: np.ndarray, depth_valid: np.ndarray) -> np.ndarray:
        """
        Args:
            norms: Residual norms (N,)
            depth_valid: Depth validity flags (N,)

        Returns:
            Inlier mask (N,)
        """
        depth_valid = np.asarray(depth_valid, dtype=bool)
        inliers = self.threshold_mask(norms, depth_valid)

        num_valid = int(np.count_nonzero(depth_valid))
        num_inliers = int(np.count_nonzero(inliers))
        self.last_rejection_suspended = (
            num_valid > 0 and num_inliers < self.min_inlier_ratio * num_valid
        )
        if self.last_rejection_suspended:
            logger.debug(f"Outlier rejection suspended: {num_inliers}/{num_valid} "
                         f"below {self.threshold:.2f}px")
            return depth_valid.copy()
        return inliers

    def __repr__(self) -> str:
        return (f"OutlierClassifier(threshold={self.threshold}, "
                f"min_inlier_ratio={self.min_inlier_ratio})")
