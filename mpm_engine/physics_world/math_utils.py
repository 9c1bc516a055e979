"""Small geometry helpers: quaternions, similarity transforms and bounding boxes."""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import product
from math import cos, sin, sqrt
from typing import Sequence, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]
Quaternion = Tuple[float, float, float, float]


def quaternion_to_matrix(quat: Quaternion) -> Tuple[Vec3, Vec3, Vec3]:
    """Rotation matrix rows of an ``(x, y, z, w)`` quaternion."""
    x, y, z, w = quat
    norm = sqrt(x * x + y * y + z * z + w * w)
    if norm <= 1e-8:
        return (1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)
    x /= norm
    y /= norm
    z /= norm
    w /= norm
    xx, yy, zz = x * x, y * y, z * z
    xy, xz, yz = x * y, x * z, y * z
    wx, wy, wz = w * x, w * y, w * z
    row0 = (1 - 2 * (yy + zz), 2 * (xy - wz), 2 * (xz + wy))
    row1 = (2 * (xy + wz), 1 - 2 * (xx + zz), 2 * (yz - wx))
    row2 = (2 * (xz - wy), 2 * (yz + wx), 1 - 2 * (xx + yy))
    return row0, row1, row2


def axis_angle_to_quaternion(axis: Sequence[float], angle: float) -> Quaternion:
    ax, ay, az = axis
    norm = sqrt(ax * ax + ay * ay + az * az)
    if norm <= 1e-8:
        return 0.0, 0.0, 0.0, 1.0
    s = sin(0.5 * angle) / norm
    return ax * s, ay * s, az * s, cos(0.5 * angle)


@dataclass(frozen=True, eq=False)
class Similarity:
    """``x -> scale * rotation @ x + translation`` with a uniform positive scale."""

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    scale: float = 1.0

    def __post_init__(self) -> None:
        if self.scale <= 0.0:
            raise ValueError(f"similarity scale must be positive, got {self.scale}")
        object.__setattr__(self, "rotation", np.asarray(self.rotation, dtype=np.float64).reshape(3, 3))
        object.__setattr__(self, "translation", np.asarray(self.translation, dtype=np.float64).reshape(3))

    @classmethod
    def identity(cls) -> "Similarity":
        return cls()

    @classmethod
    def from_translation(cls, translation: Sequence[float]) -> "Similarity":
        return cls(translation=translation)

    @classmethod
    def from_quaternion(
        cls,
        quaternion: Quaternion,
        translation: Sequence[float] = (0.0, 0.0, 0.0),
        scale: float = 1.0,
    ) -> "Similarity":
        return cls(rotation=np.array(quaternion_to_matrix(quaternion)), translation=translation, scale=scale)

    @classmethod
    def from_axis_angle(
        cls,
        axis: Sequence[float],
        angle: float,
        translation: Sequence[float] = (0.0, 0.0, 0.0),
        scale: float = 1.0,
    ) -> "Similarity":
        return cls.from_quaternion(axis_angle_to_quaternion(axis, angle), translation, scale)

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Transform a point ``(3,)`` or a batch of points ``(N, 3)``."""
        points = np.asarray(points, dtype=np.float64)
        return self.scale * points @ self.rotation.T + self.translation

    def inverse(self) -> "Similarity":
        rotation_t = self.rotation.T
        inv_scale = 1.0 / self.scale
        return Similarity(
            rotation=rotation_t,
            translation=-inv_scale * (rotation_t @ self.translation),
            scale=inv_scale,
        )

    def compose(self, other: "Similarity") -> "Similarity":
        """The transform applying ``other`` first, then ``self``."""
        return Similarity(
            rotation=self.rotation @ other.rotation,
            translation=self.scale * (self.rotation @ other.translation) + self.translation,
            scale=self.scale * other.scale,
        )


@dataclass(frozen=True, eq=False)
class BoundingBox:
    min: np.ndarray
    max: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "min", np.asarray(self.min, dtype=np.float64).reshape(3))
        object.__setattr__(self, "max", np.asarray(self.max, dtype=np.float64).reshape(3))

    @classmethod
    def from_points(cls, points: np.ndarray) -> "BoundingBox":
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if points.size == 0:
            raise ValueError("cannot bound an empty point set")
        return cls(points.min(axis=0), points.max(axis=0))

    def size(self) -> np.ndarray:
        return self.max - self.min

    def center(self) -> np.ndarray:
        return 0.5 * (self.min + self.max)

    def corners(self) -> np.ndarray:
        return np.array([np.where(bits, self.max, self.min) for bits in product((False, True), repeat=3)])

    def contains(self, point: Sequence[float]) -> bool:
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= self.min) and np.all(p <= self.max))

    def transform(self, transform: Similarity) -> "BoundingBox":
        """Axis-aligned box enclosing this box after ``transform``."""
        return BoundingBox.from_points(transform.apply(self.corners()))
