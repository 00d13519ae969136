from __future__ import annotations

import math
from enum import IntEnum
from typing import Optional, Sequence, Union

import numpy as np

Vector3 = Union[Sequence[float], np.ndarray]

UNASSIGNED = -1
"""Slot value for a degree of freedom that is excluded from the global vector."""

MAX_VARIABLES = 9


class TransformationType(IntEnum):
    """Selector for the transformations stored on a shape."""

    CURRENT = 0
    INITIAL = 1
    GROUND_TRUTH = 2
    NONE = 3


class Dof(IntEnum):
    """Degrees of freedom of a shape transformation, in slot order."""

    TX = 0
    TY = 1
    TZ = 2
    RX = 3
    RY = 4
    RZ = 5
    SX = 6
    SY = 7
    SZ = 8


TRANSLATION_DOFS = (Dof.TX, Dof.TY, Dof.TZ)
ROTATION_DOFS = (Dof.RX, Dof.RY, Dof.RZ)
SCALE_DOFS = (Dof.SX, Dof.SY, Dof.SZ)


class FetError(Exception):
    """Base class for errors raised by fetshape."""


class ShapeStructureError(FetError, RuntimeError):
    """Raised when the shape graph is used inconsistently (a programming error)."""


class ShapeFormatError(FetError, ValueError):
    """Raised when a serialized shape or reconstruction cannot be decoded."""


def as_vector3(value: Vector3, *, name: str = "value") -> np.ndarray:
    """Return ``value`` as a float array of shape ``(3,)``."""

    arr = np.asarray(value, dtype=float).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"{name} must have three components, got shape {arr.shape}")
    return arr


def is_unbounded(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, float) and math.isinf(value) and value > 0)


__all__ = [
    "Vector3",
    "UNASSIGNED",
    "MAX_VARIABLES",
    "TransformationType",
    "Dof",
    "TRANSLATION_DOFS",
    "ROTATION_DOFS",
    "SCALE_DOFS",
    "FetError",
    "ShapeStructureError",
    "ShapeFormatError",
    "as_vector3",
    "is_unbounded",
]
