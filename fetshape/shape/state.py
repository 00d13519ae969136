"""Transformations, intrinsic geometry and the cached bounding box of a shape."""

from __future__ import annotations

import logging
from typing import Optional, Union

import numpy as np

from ..config import get_shape_config
from ..geometry import IDENTITY, Affine, Box
from ..types import TransformationType, Vector3, as_vector3

logger = logging.getLogger(__name__)

RandomSource = Union[None, int, np.random.Generator]


def _random_direction(rng: np.random.Generator) -> np.ndarray:
    while True:
        direction = rng.normal(size=3)
        length = float(np.linalg.norm(direction))
        if length > 1e-12:
            return direction / length


class AffineStateMixin:
    """Current/initial/ground-truth transformations plus untransformed geometry.

    ``viewpoint``, ``towards``, ``up`` and ``origin`` are stored in the
    shape's untransformed frame; accessors map them through the current
    transformation so they survive re-optimization unchanged.
    """

    current_transformation: Affine
    initial_transformation: Affine
    ground_truth_transformation: Affine

    def _init_state(self) -> None:
        self.current_transformation = IDENTITY
        self.initial_transformation = IDENTITY
        self.ground_truth_transformation = IDENTITY
        self._viewpoint = np.zeros(3)
        self._towards = np.array([0.0, 0.0, -1.0])
        self._up = np.array([0.0, 1.0, 0.0])
        self._origin: Optional[np.ndarray] = None
        self._bbox: Optional[Box] = None

    # Transformations

    def transformation(self, kind: TransformationType = TransformationType.CURRENT) -> Affine:
        if kind == TransformationType.CURRENT:
            return self.current_transformation
        if kind == TransformationType.INITIAL:
            return self.initial_transformation
        if kind == TransformationType.GROUND_TRUTH:
            return self.ground_truth_transformation
        return IDENTITY

    def set_transformation(
        self, transformation: Affine, kind: TransformationType = TransformationType.CURRENT
    ) -> None:
        """Replace one of the stored transformations.

        Replacing the current transformation invalidates the bounding box and
        the feature search tree.
        """

        if not isinstance(transformation, Affine):
            transformation = Affine(np.asarray(transformation, dtype=float))
        if kind == TransformationType.CURRENT:
            self.current_transformation = transformation
            self.invalidate_bbox()
            self.invalidate_kdtree()
        elif kind == TransformationType.INITIAL:
            self.initial_transformation = transformation
        elif kind == TransformationType.GROUND_TRUTH:
            self.ground_truth_transformation = transformation
        else:
            raise ValueError(f"cannot set transformation of kind {kind!r}")

    def reset_transformation(self) -> None:
        self.set_transformation(IDENTITY)

    def perturb_transformation(
        self,
        translation_magnitude: float,
        rotation_magnitude: float,
        rng: RandomSource = None,
    ) -> Affine:
        """Compose a random rigid motion on top of the current transformation.

        The translation length lies in ``[0, translation_magnitude]`` and the
        rotation angle in ``[-rotation_magnitude, rotation_magnitude]`` about
        an axis through the transformed origin. Returns the applied motion.
        """

        if rng is None:
            rng = get_shape_config().perturbation_seed
        if not isinstance(rng, np.random.Generator):
            rng = np.random.default_rng(rng)

        translation = _random_direction(rng) * rng.uniform(0.0, abs(float(translation_magnitude)))
        angle = rng.uniform(-abs(float(rotation_magnitude)), abs(float(rotation_magnitude)))
        axis = _random_direction(rng)

        pivot = self.transform_point(self.origin())
        motion = (
            Affine.from_translation(pivot + translation)
            @ Affine.from_rotation_vector(axis * angle)
            @ Affine.from_translation(-pivot)
        )
        logger.debug(
            "Perturbing %r by |t|=%.6g angle=%.6g", self, float(np.linalg.norm(translation)), angle
        )
        self.set_transformation(motion @ self.current_transformation)
        return motion

    def transform_point(self, point: Vector3) -> np.ndarray:
        return self.current_transformation.apply_point(point)

    def transform_vector(self, vector: Vector3) -> np.ndarray:
        return self.current_transformation.apply_vector(vector)

    def inverse_transform_point(self, point: Vector3) -> np.ndarray:
        return self.current_transformation.inverse_apply_point(point)

    def inverse_transform_vector(self, vector: Vector3) -> np.ndarray:
        return self.current_transformation.inverse_apply_vector(vector)

    # Geometry

    def viewpoint(self) -> np.ndarray:
        return self.transform_point(self._viewpoint)

    def towards(self) -> np.ndarray:
        return self.transform_vector(self._towards)

    def up(self) -> np.ndarray:
        return self.transform_vector(self._up)

    def set_viewpoint(self, viewpoint: Vector3) -> None:
        self._viewpoint = self.inverse_transform_point(viewpoint)

    def set_towards(self, towards: Vector3) -> None:
        self._towards = self.inverse_transform_vector(towards)

    def set_up(self, up: Vector3) -> None:
        self._up = self.inverse_transform_vector(up)

    def origin(self) -> np.ndarray:
        """Untransformed pivot for rotations and scaling.

        Defaults to the bounding box centroid the first time it is needed and
        stays cached until reset.
        """

        if self._origin is None:
            self._origin = self.inverse_transform_point(self.centroid())
            logger.debug("Defaulted origin of %r to %s", self, self._origin.tolist())
        return self._origin.copy()

    def has_origin(self) -> bool:
        return self._origin is not None

    def set_origin(self, origin: Vector3) -> None:
        self._origin = as_vector3(origin, name="origin").copy()

    def reset_origin(self) -> None:
        self._origin = None

    # Derived properties

    def bbox(self) -> Box:
        if self._bbox is None:
            self.update_bbox()
        assert self._bbox is not None
        return self._bbox

    def centroid(self) -> np.ndarray:
        centroid = self.bbox().centroid()
        return np.zeros(3) if centroid is None else centroid

    def average_feature_radius(self) -> float:
        if not self.features:
            return 0.0
        return float(np.mean([feature.radius for feature in self.features]))

    def invalidate_bbox(self) -> None:
        self._bbox = None

    def update_bbox(self) -> None:
        if self.features:
            positions = np.array([feature.position for feature in self.features])
            self._bbox = Box.from_points(self.current_transformation.apply_points(positions))
        else:
            self._bbox = Box.empty()
