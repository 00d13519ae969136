"""Configuration helpers for shape components."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass
from typing import Optional, Tuple

_RIGID_INERTIAS: Tuple[float, ...] = (0.0,) * 6 + (math.inf,) * 3


@dataclass
class ShapeConfig:
    """Defaults applied when shapes are created or indexed."""

    kdtree_leafsize: int = 16
    # translation and rotation free, scale locked
    default_inertias: Tuple[float, ...] = _RIGID_INERTIAS
    perturbation_seed: Optional[int] = None


_SHAPE_CONFIG = ShapeConfig()


def get_shape_config() -> ShapeConfig:
    return copy.deepcopy(_SHAPE_CONFIG)


def set_shape_config(config: ShapeConfig) -> None:
    global _SHAPE_CONFIG
    _SHAPE_CONFIG = copy.deepcopy(config)
