"""
Rigid transforms restricted to a rotation about the vertical axis.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


def rotation_about_z(angle: float) -> np.ndarray:
    """3x3 right-handed rotation by angle (radians) about +Z."""
    c = np.cos(angle)
    s = np.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def wrap_angle(angle: float) -> float:
    """Map an angle to (-pi, pi]."""
    wrapped = float(np.mod(angle + np.pi, 2.0 * np.pi) - np.pi)
    return np.pi if wrapped == -np.pi else wrapped


@dataclass(frozen=True, eq=False)
class RigidTransform:
    """x' = Rz(angle) @ x + translation.

    Attributes:
        angle: Rotation about the vertical axis in radians
        translation: (3,) translation applied after the rotation
    """
    angle: float = 0.0
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        object.__setattr__(self, "angle", float(self.angle))
        t = np.asarray(self.translation, dtype=np.float64).reshape(3).copy()
        t.setflags(write=False)
        object.__setattr__(self, "translation", t)

    @classmethod
    def identity(cls) -> "RigidTransform":
        return cls()

    @property
    def rotation(self) -> np.ndarray:
        return rotation_about_z(self.angle)

    @property
    def quaternion(self) -> np.ndarray:
        """Rotation as a unit quaternion (w, x, y, z)."""
        half = 0.5 * self.angle
        return np.array([np.cos(half), 0.0, 0.0, np.sin(half)])

    @property
    def angle_degrees(self) -> float:
        return float(np.rad2deg(self.angle))

    def as_matrix(self) -> np.ndarray:
        T = np.eye(4)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    @classmethod
    def from_matrix(cls, matrix: np.ndarray, *, atol: float = 1e-6) -> "RigidTransform":
        """Build from a 4x4 matrix whose rotation part turns about Z only.

        Raises:
            ValueError: If the matrix is not 4x4 or its rotation tilts the Z axis
        """
        T = np.asarray(matrix, dtype=np.float64)
        if T.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4 matrix, got {T.shape}")
        R = T[:3, :3]
        if not (np.allclose(R[2], [0.0, 0.0, 1.0], atol=atol) and np.allclose(R[:2, 2], 0.0, atol=atol)):
            raise ValueError("Only rotations about the vertical axis are supported")
        if not np.isclose(np.linalg.det(R), 1.0, atol=1e-4):
            raise ValueError("Rotation part of the transform is not a proper rotation")
        angle = float(np.arctan2(R[1, 0], R[0, 0]))
        return cls(angle=angle, translation=T[:3, 3])

    def apply(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)
        if points.size == 0:
            return points.reshape(-1, 3).copy()
        return points @ self.rotation.T + self.translation

    def then(self, other: "RigidTransform") -> "RigidTransform":
        """Transform equivalent to applying self first and other second."""
        return RigidTransform(
            angle=wrap_angle(self.angle + other.angle),
            translation=other.rotation @ self.translation + other.translation,
        )

    def inverse(self) -> "RigidTransform":
        return RigidTransform(
            angle=wrap_angle(-self.angle),
            translation=-(rotation_about_z(-self.angle) @ self.translation),
        )

    def __repr__(self) -> str:
        t = ", ".join(f"{v:.4f}" for v in self.translation)
        return f"RigidTransform(angle={self.angle_degrees:.4f} deg, translation=[{t}])"
