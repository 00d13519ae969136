"""Localized surface feature attached to a shape."""

from __future__ import annotations

import math
import struct
import weakref
from typing import TYPE_CHECKING, BinaryIO, Optional, Sequence, TextIO

import numpy as np

from .types import ShapeFormatError, Vector3, as_vector3

if TYPE_CHECKING:  # pragma: no cover
    from .shape import Shape

_BINARY_HEADER = struct.Struct("<3d3ddBddI")


class Feature:
    """Position, normal and descriptor of one feature, in its shape's frame.

    ``position`` and ``normal`` are stored untransformed; ``world_position``
    and ``world_normal`` map them through the owning shape's current
    transformation.
    """

    def __init__(
        self,
        position: Vector3 = (0.0, 0.0, 0.0),
        normal: Vector3 = (0.0, 0.0, 0.0),
        radius: float = 0.0,
        descriptor: Optional[Sequence[float]] = None,
        *,
        boundary: bool = False,
        distinction: float = 0.0,
        salience: float = 0.0,
    ) -> None:
        self.position = as_vector3(position, name="position")
        self.normal = as_vector3(normal, name="normal")
        self.radius = float(radius)
        self.descriptor = np.asarray(descriptor if descriptor is not None else [], dtype=float).reshape(-1)
        self.boundary = bool(boundary)
        self.distinction = float(distinction)
        self.salience = float(salience)
        self.reconstruction_index = -1
        self._shape_ref: Optional["weakref.ReferenceType[Shape]"] = None

    def __repr__(self) -> str:
        return (
            f"Feature(index={self.reconstruction_index}, position={self.position.tolist()}, "
            f"boundary={self.boundary})"
        )

    @property
    def shape(self) -> Optional["Shape"]:
        return self._shape_ref() if self._shape_ref is not None else None

    def _set_shape(self, shape: Optional["Shape"]) -> None:
        self._shape_ref = weakref.ref(shape) if shape is not None else None

    def world_position(self) -> np.ndarray:
        shape = self.shape
        if shape is None:
            return self.position.copy()
        return shape.transform_point(self.position)

    def world_normal(self) -> np.ndarray:
        shape = self.shape
        normal = self.normal if shape is None else shape.transform_vector(self.normal)
        length = float(np.linalg.norm(normal))
        if length == 0.0:
            return np.zeros(3)
        return normal / length

    def descriptor_distances(self, other: "Feature") -> np.ndarray:
        """Absolute per-channel descriptor differences."""

        if self.descriptor.shape != other.descriptor.shape:
            raise ValueError(
                f"descriptor size mismatch: {self.descriptor.size} vs {other.descriptor.size}"
            )
        return np.abs(self.descriptor - other.descriptor)

    def write_ascii(self, fp: TextIO) -> None:
        fields = [*self.position, *self.normal, self.radius]
        fields += [int(self.boundary), self.distinction, self.salience, self.descriptor.size]
        fields += list(self.descriptor)
        fp.write("feature " + " ".join(repr(float(v)) if not isinstance(v, int) else str(v) for v in fields) + "\n")

    @classmethod
    def read_ascii(cls, fp: TextIO) -> "Feature":
        line = fp.readline()
        tokens = line.split()
        if not tokens or tokens[0] != "feature":
            raise ShapeFormatError(f"expected feature record, got {line.strip()!r}")
        try:
            values = [float(tok) for tok in tokens[1:12]]
            ndesc = int(tokens[11])
            descriptor = [float(tok) for tok in tokens[12 : 12 + ndesc]]
        except (ValueError, IndexError) as exc:
            raise ShapeFormatError(f"malformed feature record: {line.strip()!r}") from exc
        if len(values) != 11 or len(descriptor) != ndesc:
            raise ShapeFormatError(f"truncated feature record: {line.strip()!r}")
        return cls(
            values[0:3],
            values[3:6],
            values[6],
            descriptor,
            boundary=bool(int(values[7])),
            distinction=values[8],
            salience=values[9],
        )

    def write_binary(self, fp: BinaryIO) -> None:
        fp.write(
            _BINARY_HEADER.pack(
                *self.position,
                *self.normal,
                self.radius,
                int(self.boundary),
                self.distinction,
                self.salience,
                self.descriptor.size,
            )
        )
        fp.write(struct.pack(f"<{self.descriptor.size}d", *self.descriptor))

    @classmethod
    def read_binary(cls, fp: BinaryIO) -> "Feature":
        data = fp.read(_BINARY_HEADER.size)
        if len(data) != _BINARY_HEADER.size:
            raise ShapeFormatError("truncated feature record")
        values = _BINARY_HEADER.unpack(data)
        ndesc = values[-1]
        raw = fp.read(8 * ndesc)
        if len(raw) != 8 * ndesc:
            raise ShapeFormatError("truncated feature descriptor")
        descriptor = struct.unpack(f"<{ndesc}d", raw)
        return cls(
            values[0:3],
            values[3:6],
            values[6],
            descriptor,
            boundary=bool(values[7]),
            distinction=values[8],
            salience=values[9],
        )


def normal_angle(a: np.ndarray, b: np.ndarray) -> float:
    """Angle in radians between two vectors; ``nan`` if either is degenerate."""

    na = float(np.linalg.norm(a))
    nb = float(np.linalg.norm(b))
    if na == 0.0 or nb == 0.0:
        return math.nan
    cosine = float(np.dot(a, b)) / (na * nb)
    return math.acos(max(-1.0, min(1.0, cosine)))


__all__ = ["Feature", "normal_angle"]
