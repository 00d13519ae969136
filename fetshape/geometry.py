"""Affine transformation and bounding box primitives."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np
from scipy.spatial.transform import Rotation

from .types import Vector3, as_vector3


def _readonly(matrix: np.ndarray) -> np.ndarray:
    matrix = np.array(matrix, dtype=float)
    matrix.flags.writeable = False
    return matrix


@dataclass(frozen=True, eq=False)
class Affine:
    """4x4 homogeneous affine transformation (translation, rotation, scale)."""

    matrix: np.ndarray

    def __post_init__(self) -> None:
        matrix = np.asarray(self.matrix, dtype=float)
        if matrix.shape != (4, 4):
            raise ValueError(f"affine matrix must be 4x4, got shape {matrix.shape}")
        object.__setattr__(self, "matrix", _readonly(matrix))

    @classmethod
    def identity(cls) -> "Affine":
        return cls(np.eye(4))

    @classmethod
    def from_values(cls, values: Sequence[float]) -> "Affine":
        """Build from 16 row-major matrix entries."""

        arr = np.asarray(list(values), dtype=float)
        if arr.size != 16:
            raise ValueError(f"expected 16 matrix values, got {arr.size}")
        return cls(arr.reshape(4, 4))

    @classmethod
    def from_translation(cls, translation: Vector3) -> "Affine":
        matrix = np.eye(4)
        matrix[:3, 3] = as_vector3(translation, name="translation")
        return cls(matrix)

    @classmethod
    def from_linear(cls, linear: np.ndarray) -> "Affine":
        matrix = np.eye(4)
        matrix[:3, :3] = np.asarray(linear, dtype=float)
        return cls(matrix)

    @classmethod
    def from_euler(cls, angles: Vector3) -> "Affine":
        """Rotation ``Rz(rz) @ Ry(ry) @ Rx(rx)`` for ``angles = (rx, ry, rz)``."""

        return cls.from_linear(rotation_matrix(angles))

    @classmethod
    def from_rotation_vector(cls, rotvec: Vector3) -> "Affine":
        return cls.from_linear(Rotation.from_rotvec(as_vector3(rotvec)).as_matrix())

    @classmethod
    def from_scale(cls, scale: Vector3) -> "Affine":
        return cls.from_linear(np.diag(as_vector3(scale, name="scale")))

    @property
    def linear(self) -> np.ndarray:
        return self.matrix[:3, :3]

    @property
    def translation(self) -> np.ndarray:
        return self.matrix[:3, 3]

    def values(self) -> list:
        """Row-major matrix entries as Python floats."""

        return [float(v) for v in self.matrix.reshape(-1)]

    def is_identity(self) -> bool:
        return bool(np.array_equal(self.matrix, np.eye(4)))

    def inverse(self) -> "Affine":
        return Affine(np.linalg.inv(self.matrix))

    def __matmul__(self, other: "Affine") -> "Affine":
        """Composition: ``(a @ b)`` applies ``b`` first, then ``a``."""

        if not isinstance(other, Affine):
            return NotImplemented
        return Affine(self.matrix @ other.matrix)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Affine):
            return NotImplemented
        return bool(np.array_equal(self.matrix, other.matrix))

    def __hash__(self) -> int:
        return hash(self.matrix.tobytes())

    def __repr__(self) -> str:
        rows = ", ".join("[" + ", ".join(f"{v:.6g}" for v in row) + "]" for row in self.matrix)
        return f"Affine([{rows}])"

    def apply_point(self, point: Vector3) -> np.ndarray:
        p = as_vector3(point, name="point")
        return self.linear @ p + self.translation

    def apply_vector(self, vector: Vector3) -> np.ndarray:
        v = as_vector3(vector, name="vector")
        return self.linear @ v

    def apply_points(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=float).reshape(-1, 3)
        return pts @ self.linear.T + self.translation

    def inverse_apply_point(self, point: Vector3) -> np.ndarray:
        p = as_vector3(point, name="point")
        return np.linalg.solve(self.linear, p - self.translation)

    def inverse_apply_vector(self, vector: Vector3) -> np.ndarray:
        v = as_vector3(vector, name="vector")
        return np.linalg.solve(self.linear, v)


IDENTITY = Affine.identity()


def rotation_matrix(angles: Vector3) -> np.ndarray:
    """Extrinsic x-y-z rotation, i.e. ``Rz(rz) @ Ry(ry) @ Rx(rx)``."""

    return Rotation.from_euler("xyz", as_vector3(angles, name="angles")).as_matrix()


def delta_transformation(
    pivot: Vector3,
    translation: Vector3 = (0.0, 0.0, 0.0),
    rotation: Vector3 = (0.0, 0.0, 0.0),
    scale_offsets: Vector3 = (0.0, 0.0, 0.0),
) -> Affine:
    """Return ``T(c) T(t) R(r) S(1 + s) T(-c)`` for pivot ``c``.

    This is the update law shared by numeric variable updates and the
    symbolic coordinate builders.
    """

    c = as_vector3(pivot, name="pivot")
    linear = rotation_matrix(rotation) @ np.diag(1.0 + as_vector3(scale_offsets, name="scale"))
    matrix = np.eye(4)
    matrix[:3, :3] = linear
    matrix[:3, 3] = c + as_vector3(translation, name="translation") - linear @ c
    return Affine(matrix)


@dataclass
class Box:
    """Axis-aligned bounding box; empty when ``min > max`` on any axis."""

    min: np.ndarray
    max: np.ndarray

    @classmethod
    def empty(cls) -> "Box":
        return cls(np.full(3, np.inf), np.full(3, -np.inf))

    @classmethod
    def from_points(cls, points: Iterable[Vector3]) -> "Box":
        pts = np.asarray(list(points), dtype=float).reshape(-1, 3)
        if pts.shape[0] == 0:
            return cls.empty()
        return cls(pts.min(axis=0), pts.max(axis=0))

    def is_empty(self) -> bool:
        return bool(np.any(self.min > self.max))

    def centroid(self) -> Optional[np.ndarray]:
        if self.is_empty():
            return None
        return 0.5 * (self.min + self.max)

    def diagonal_length(self) -> float:
        if self.is_empty():
            return 0.0
        return float(np.linalg.norm(self.max - self.min))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Box):
            return NotImplemented
        if self.is_empty() and other.is_empty():
            return True
        return bool(np.array_equal(self.min, other.min) and np.array_equal(self.max, other.max))


__all__ = [
    "Affine",
    "Box",
    "IDENTITY",
    "delta_transformation",
    "rotation_matrix",
]
