"""The shape: one posable unit (scan or view) of a reconstruction."""

from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Optional

from ..config import get_shape_config
from .features import FeatureIndexMixin, SearchOptions
from .hierarchy import HierarchyMixin
from .io import LinkRecord, SerializationMixin
from .matches import MatchSetMixin
from .state import AffineStateMixin
from .variables import ExpressionTriple, VariableBindingMixin, transformed_coordinates

if TYPE_CHECKING:  # pragma: no cover
    from ..reconstruction import Reconstruction, Sequence


class Shape(
    AffineStateMixin,
    HierarchyMixin,
    FeatureIndexMixin,
    VariableBindingMixin,
    MatchSetMixin,
    SerializationMixin,
):
    """A scan or view with its own transformation, features and matches.

    Shapes start with identity transformations, no features and the default
    inertias from :func:`fetshape.config.get_shape_config`. Passing a
    reconstruction attaches the shape to it immediately.
    """

    def __init__(self, reconstruction: Optional["Reconstruction"] = None, name: Optional[str] = None) -> None:
        self._reconstruction_ref: Optional["weakref.ReferenceType[Reconstruction]"] = None
        self.reconstruction_index = -1
        self._sequence_ref: Optional["weakref.ReferenceType[Sequence]"] = None
        self.sequence_index = -1
        self.name = name

        self._init_state()
        self._init_hierarchy()
        self._init_features()
        self._init_variables(get_shape_config().default_inertias)
        self._init_matches()
        self._init_io()

        if reconstruction is not None:
            reconstruction.insert_shape(self)

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"<Shape {self.reconstruction_index}{label}>"

    @property
    def reconstruction(self) -> Optional["Reconstruction"]:
        return self._reconstruction_ref() if self._reconstruction_ref is not None else None

    @property
    def sequence(self) -> Optional["Sequence"]:
        return self._sequence_ref() if self._sequence_ref is not None else None

    def _set_reconstruction(self, reconstruction: Optional["Reconstruction"], index: int) -> None:
        self._reconstruction_ref = weakref.ref(reconstruction) if reconstruction is not None else None
        self.reconstruction_index = index

    def _set_sequence(self, sequence: Optional["Sequence"], index: int) -> None:
        self._sequence_ref = weakref.ref(sequence) if sequence is not None else None
        self.sequence_index = index

    def set_name(self, name: Optional[str]) -> None:
        self.name = name

    def copy(self) -> "Shape":
        """Detached copy of transformations, inertias, geometry and name."""

        clone = Shape(name=self.name)
        clone.current_transformation = self.current_transformation
        clone.initial_transformation = self.initial_transformation
        clone.ground_truth_transformation = self.ground_truth_transformation
        clone.variable_inertias = self.variable_inertias.copy()
        clone.variable_index = list(self.variable_index)
        clone._viewpoint = self._viewpoint.copy()
        clone._towards = self._towards.copy()
        clone._up = self._up.copy()
        clone._origin = None if self._origin is None else self._origin.copy()
        return clone

    def release(self) -> None:
        """Unlink hierarchy, detach features and drop matches and sequence membership."""

        self._pending_links = None
        self._unlink_hierarchy()
        for feature in list(self.features):
            self.remove_feature(feature)
        self.matches.clear()
        sequence = self.sequence
        if sequence is not None:
            sequence.remove_shape(self)


__all__ = [
    "Shape",
    "SearchOptions",
    "LinkRecord",
    "ExpressionTriple",
    "transformed_coordinates",
]
