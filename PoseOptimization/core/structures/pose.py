"""
Rigid Pose on SE(3)

Rotation + translation with manifold (exponential map) updates. The pose
maps camera-frame coordinates to world coordinates; world points are
brought into the camera frame with ``pose.inverse()``.

The 6-vector tangent parameterisation is ``[omega (3), v (3)]``:
rotation first, translation second.
"""

import numpy as np
import cv2
from typing import Union

ORTHONORMAL_TOLERANCE = 1e-3
SMALL_ANGLE = 1e-8


def skew(v: np.ndarray) -> np.ndarray:
    """Skew-symmetric (cross-product) matrix of a 3-vector."""
    x, y, z = np.asarray(v, dtype=np.float64).reshape(3)
    return np.array([
        [0.0, -z, y],
        [z, 0.0, -x],
        [-y, x, 0.0]
    ])


def so3_exp(omega: np.ndarray) -> np.ndarray:
    """Rotation matrix from a rotation vector (Rodrigues)."""
    R, _ = cv2.Rodrigues(np.asarray(omega, dtype=np.float64).reshape(3, 1))
    return R


def so3_log(R: np.ndarray) -> np.ndarray:
    """Rotation vector from a rotation matrix (Rodrigues)."""
    rvec, _ = cv2.Rodrigues(np.asarray(R, dtype=np.float64))
    return rvec.reshape(3)


def _left_jacobian(omega: np.ndarray) -> np.ndarray:
    """V matrix coupling rotation and translation in the SE(3) exponential."""
    theta = np.linalg.norm(omega)
    W = skew(omega)
    if theta < SMALL_ANGLE:
        return np.eye(3) + 0.5 * W + (W @ W) / 6.0
    return (np.eye(3)
            + (1.0 - np.cos(theta)) / theta**2 * W
            + (theta - np.sin(theta)) / theta**3 * (W @ W))


def _left_jacobian_inverse(omega: np.ndarray) -> np.ndarray:
    theta = np.linalg.norm(omega)
    W = skew(omega)
    if theta < SMALL_ANGLE:
        return np.eye(3) - 0.5 * W + (W @ W) / 12.0
    coeff = (1.0 - theta * np.sin(theta) / (2.0 * (1.0 - np.cos(theta)))) / theta**2
    return np.eye(3) - 0.5 * W + coeff * (W @ W)


def _orthonormalize(R: np.ndarray) -> np.ndarray:
    """Project a near-rotation onto SO(3), rejecting anything that is not one."""
    if R.shape != (3, 3):
        raise ValueError(f"Invalid rotation matrix shape: {R.shape}")
    if not np.all(np.isfinite(R)):
        raise ValueError("Rotation matrix contains non-finite values")
    if np.linalg.norm(R.T @ R - np.eye(3)) > ORTHONORMAL_TOLERANCE:
        raise ValueError("Rotation matrix is not orthonormal")
    U, _, Vt = np.linalg.svd(R)
    R_proj = U @ Vt
    if np.linalg.det(R_proj) < 0:
        raise ValueError("Rotation matrix is a reflection (det < 0)")
    return R_proj


class Pose:
    """
    Rigid 3D transform (rotation + translation).

    The rotation is always kept a valid orthonormal matrix: it is
    re-projected onto SO(3) on construction, so repeated manifold updates
    never drift away from a proper rotation.

    Usage:
        pose = Pose.identity()
        pose = pose.retract(delta)          # pose @ Pose.exp(delta)
        points_cam = pose.inverse().transform_points(points_world)
    """

    __slots__ = ('rotation', 'translation')

    def __init__(self, rotation: np.ndarray = None, translation: np.ndarray = None):
        R = np.eye(3) if rotation is None else np.asarray(rotation, dtype=np.float64)
        t = np.zeros(3) if translation is None else np.asarray(translation, dtype=np.float64)
        if t.size != 3:
            raise ValueError(f"Invalid translation shape: {t.shape}")
        if not np.all(np.isfinite(t)):
            raise ValueError("Translation contains non-finite values")
        self.rotation = _orthonormalize(R)
        self.translation = t.reshape(3).copy()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def identity(cls) -> 'Pose':
        return cls()

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> 'Pose':
        """Create from a 4x4 homogeneous or 3x4 [R|t] matrix."""
        T = np.asarray(matrix, dtype=np.float64)
        if T.shape not in ((4, 4), (3, 4)):
            raise ValueError(f"Invalid transform shape: {T.shape}")
        return cls(T[:3, :3], T[:3, 3])

    @classmethod
    def from_rotation_vector(cls, rvec: np.ndarray, translation: np.ndarray = None) -> 'Pose':
        return cls(so3_exp(rvec), translation)

    @classmethod
    def exp(cls, delta: np.ndarray) -> 'Pose':
        """
        SE(3) exponential map.

        Args:
            delta: Tangent vector [omega_x, omega_y, omega_z, v_x, v_y, v_z]

        Returns:
            Pose
        """
        delta = np.asarray(delta, dtype=np.float64).reshape(6)
        omega, v = delta[:3], delta[3:]
        return cls(so3_exp(omega), _left_jacobian(omega) @ v)

    # ------------------------------------------------------------------
    # Group operations
    # ------------------------------------------------------------------

    def log(self) -> np.ndarray:
        """SE(3) logarithm, inverse of :meth:`exp`."""
        omega = so3_log(self.rotation)
        v = _left_jacobian_inverse(omega) @ self.translation
        return np.concatenate([omega, v])

    def inverse(self) -> 'Pose':
        R_inv = self.rotation.T
        return Pose(R_inv, -R_inv @ self.translation)

    def compose(self, other: 'Pose') -> 'Pose':
        return Pose(self.rotation @ other.rotation,
                    self.rotation @ other.translation + self.translation)

    def __matmul__(self, other: 'Pose') -> 'Pose':
        return self.compose(other)

    def retract(self, delta: np.ndarray) -> 'Pose':
        """Right-multiplicative manifold update: ``self @ exp(delta)``."""
        return self.compose(Pose.exp(delta))

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Apply the transform to Nx3 points (or a single 3-vector)."""
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim == 1:
            return self.rotation @ pts + self.translation
        return pts @ self.rotation.T + self.translation

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def rotation_angle_to(self, other: 'Pose') -> float:
        """Angle (rad) of the relative rotation between two poses."""
        return float(np.linalg.norm(so3_log(self.rotation.T @ other.rotation)))

    def translation_distance_to(self, other: 'Pose') -> float:
        return float(np.linalg.norm(self.translation - other.translation))

    def is_close(self, other: 'Pose', rotation_tol: float = 1e-6,
                 translation_tol: float = 1e-6) -> bool:
        return (self.rotation_angle_to(other) < rotation_tol and
                self.translation_distance_to(other) < translation_tol)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def as_matrix(self) -> np.ndarray:
        T = np.eye(4)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def as_rt(self) -> np.ndarray:
        """3x4 [R|t] matrix."""
        return self.as_matrix()[:3, :]

    def copy(self) -> 'Pose':
        return Pose(self.rotation, self.translation)

    def __repr__(self) -> str:
        rvec = so3_log(self.rotation)
        return (f"Pose(rvec=[{rvec[0]:.4f}, {rvec[1]:.4f}, {rvec[2]:.4f}], "
                f"t=[{self.translation[0]:.4f}, {self.translation[1]:.4f}, "
                f"{self.translation[2]:.4f}])")


PoseLike = Union[Pose, np.ndarray]


def as_pose(pose: PoseLike) -> Pose:
    """Accept a Pose or a 4x4 / 3x4 matrix."""
    if isinstance(pose, Pose):
        return pose.copy()
    return Pose.from_matrix(pose)
