"""Exposure of a shape's transformation parameters to a global solver.

Each shape owns nine degrees of freedom (translation, rotation, scale
offsets). Free ones are bound to slots of a global variable vector ``x``.
Solving proceeds around the current transformation: ``x = 0`` means "no
change", and a solved ``x`` is folded into the current transformation as

    D = T(c) . T(t) . Rz(rz) Ry(ry) Rx(rx) . diag(1 + s) . T(-c)

where ``c`` is the transformed origin of the shape. The symbolic builders
produce expressions of exactly the same law, so evaluating them at ``x``
agrees with the transformation obtained from ``update_variable_values(x)``.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

import numpy as np

from .. import algebraic
from ..algebraic import Expression, Variable
from ..geometry import delta_transformation
from ..types import (
    MAX_VARIABLES,
    ROTATION_DOFS,
    SCALE_DOFS,
    TRANSLATION_DOFS,
    UNASSIGNED,
    Vector3,
    as_vector3,
)

if TYPE_CHECKING:  # pragma: no cover
    from . import Shape

logger = logging.getLogger(__name__)

ExpressionTriple = Tuple[Expression, Expression, Expression]
_Matrix = List[List[Expression]]

_DOF_LABELS = ("tx", "ty", "tz", "rx", "ry", "rz", "sx", "sy", "sz")


class VariableBindingMixin:
    """Inertias, slot assignment and parameterized transformations."""

    def _init_variables(self, inertias: Sequence[float]) -> None:
        self.variable_inertias = np.array(inertias, dtype=float)
        self.variable_index = [UNASSIGNED] * MAX_VARIABLES

    def n_variables(self) -> int:
        return MAX_VARIABLES

    def set_inertia(self, inertias: Optional[Sequence[float]] = None, nvariables: int = MAX_VARIABLES) -> None:
        """Copy per-DOF inertias; ``None`` locks every degree of freedom."""

        if inertias is None:
            self.variable_inertias[:] = math.inf
            return
        count = min(len(inertias), nvariables, MAX_VARIABLES)
        for i in range(count):
            self.variable_inertias[i] = float(inertias[i])

    def is_locked(self, dof: int) -> bool:
        return math.isinf(self.variable_inertias[dof])

    def update_variable_index(self, nvariables: int) -> int:
        """Assign consecutive slots to free DOFs, starting at ``nvariables``.

        Returns the advanced counter.
        """

        for dof in range(MAX_VARIABLES):
            if self.is_locked(dof):
                self.variable_index[dof] = UNASSIGNED
            else:
                self.variable_index[dof] = nvariables
                nvariables += 1
        return nvariables

    def clear_variable_index(self) -> None:
        self.variable_index = [UNASSIGNED] * MAX_VARIABLES

    def variable_names(self) -> List[Tuple[int, str]]:
        """``(slot, label)`` for every assigned DOF, in DOF order."""

        label = self.name or f"shape{self.reconstruction_index}"
        return [
            (slot, f"{label}.{_DOF_LABELS[dof]}")
            for dof, slot in enumerate(self.variable_index)
            if slot != UNASSIGNED
        ]

    def inertia_weights(self) -> List[Tuple[int, float]]:
        """``(slot, inertia)`` for every assigned DOF with a positive inertia."""

        return [
            (slot, float(self.variable_inertias[dof]))
            for dof, slot in enumerate(self.variable_index)
            if slot != UNASSIGNED and self.variable_inertias[dof] > 0.0
        ]

    def _numeric_parameters(self, x: Sequence[float]) -> np.ndarray:
        params = np.zeros(MAX_VARIABLES)
        for dof, slot in enumerate(self.variable_index):
            if slot != UNASSIGNED:
                params[dof] = float(x[slot])
        return params

    def update_variable_values(self, x: Sequence[float]) -> None:
        """Fold solved offsets into the current transformation.

        The motion is applied to this shape and to every shape below it along
        primary-parent links, so children must be updated before parents.
        """

        params = self._numeric_parameters(x)
        if not np.any(params):
            return
        pivot = self.transform_point(self.origin())
        delta = delta_transformation(pivot, params[0:3], params[3:6], params[6:9])
        for shape in [self, *self.primary_descendants()]:
            shape.set_transformation(delta @ shape.current_transformation)
        logger.debug("Updated %r with parameters %s", self, params.tolist())

    def compute_transformed_point_coordinates(self, position: Vector3) -> Optional[ExpressionTriple]:
        """World coordinates of an untransformed point as expressions of ``x``.

        Returns ``None`` when this shape or one of its primary ancestors has a
        free DOF without an assigned slot.
        """

        return transformed_coordinates(self, as_vector3(position, name="position"), is_point=True)

    def compute_transformed_vector_coordinates(self, vector: Vector3) -> Optional[ExpressionTriple]:
        return transformed_coordinates(self, as_vector3(vector, name="vector"), is_point=False)


def _parameter_expressions(shape: "Shape") -> Optional[List[Expression]]:
    params: List[Expression] = []
    for dof in range(MAX_VARIABLES):
        slot = shape.variable_index[dof]
        if slot != UNASSIGNED:
            params.append(Variable(slot))
        elif shape.is_locked(dof):
            params.append(algebraic.ZERO)
        else:
            return None
    return params


def _rotation_expressions(rx: Expression, ry: Expression, rz: Expression) -> _Matrix:
    cx, sx = algebraic.cos(rx), algebraic.sin(rx)
    cy, sy = algebraic.cos(ry), algebraic.sin(ry)
    cz, sz = algebraic.cos(rz), algebraic.sin(rz)
    zero, one = algebraic.ZERO, algebraic.ONE
    rot_x = [[one, zero, zero], [zero, cx, -sx], [zero, sx, cx]]
    rot_y = [[cy, zero, sy], [zero, one, zero], [-sy, zero, cy]]
    rot_z = [[cz, -sz, zero], [sz, cz, zero], [zero, zero, one]]
    return _matmul(rot_z, _matmul(rot_y, rot_x))


def _matmul(a: _Matrix, b: _Matrix) -> _Matrix:
    return [[algebraic.dot(a[i], [b[k][j] for k in range(3)]) for j in range(3)] for i in range(3)]


def _linear_expressions(params: List[Expression]) -> _Matrix:
    rotation = _rotation_expressions(*(params[d] for d in ROTATION_DOFS))
    scale = [algebraic.add(1.0, params[d]) for d in SCALE_DOFS]
    return [[algebraic.multiply(rotation[i][j], scale[j]) for j in range(3)] for i in range(3)]


def _apply_delta(shape: "Shape", coords: List[Expression], is_point: bool) -> Optional[List[Expression]]:
    params = _parameter_expressions(shape)
    if params is None:
        return None
    linear = _linear_expressions(params)
    if not is_point:
        return [algebraic.dot(linear[i], coords) for i in range(3)]
    pivot = shape.transform_point(shape.origin())
    offset = [algebraic.add(coords[i], -pivot[i]) for i in range(3)]
    return [
        algebraic.add(algebraic.add(float(pivot[i]), params[TRANSLATION_DOFS[i]]), algebraic.dot(linear[i], offset))
        for i in range(3)
    ]


def transformed_coordinates(shape: "Shape", value: np.ndarray, *, is_point: bool) -> Optional[ExpressionTriple]:
    """Compose the shape's own delta with those of its primary ancestors."""

    if is_point:
        start = shape.transform_point(value)
    else:
        start = shape.transform_vector(value)
    coords: Optional[List[Expression]] = [algebraic.Constant(v) for v in start]
    for node in [shape, *shape.ancestors()]:
        coords = _apply_delta(node, coords, is_point)
        if coords is None:
            logger.warning(
                "Cannot parameterize %r: %r has a free degree of freedom without a variable slot",
                shape,
                node,
            )
            return None
    return coords[0], coords[1], coords[2]


__all__ = ["VariableBindingMixin", "ExpressionTriple", "transformed_coordinates"]
