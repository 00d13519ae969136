from .algebraic import Expression, Variable, Constant, gradient
from .config import ShapeConfig, get_shape_config, set_shape_config
from .feature import Feature
from .geometry import Affine, Box, IDENTITY, delta_transformation
from .match import Match
from .reconstruction import Reconstruction, Sequence
from .shape import Shape, SearchOptions
from .types import (
    Dof,
    FetError,
    MAX_VARIABLES,
    ShapeFormatError,
    ShapeStructureError,
    TransformationType,
    UNASSIGNED,
)

__all__ = [
    'Expression',
    'Variable',
    'Constant',
    'gradient',
    'ShapeConfig',
    'get_shape_config',
    'set_shape_config',
    'Feature',
    'Affine',
    'Box',
    'IDENTITY',
    'delta_transformation',
    'Match',
    'Reconstruction',
    'Sequence',
    'Shape',
    'SearchOptions',
    'Dof',
    'FetError',
    'MAX_VARIABLES',
    'ShapeFormatError',
    'ShapeStructureError',
    'TransformationType',
    'UNASSIGNED',
]
