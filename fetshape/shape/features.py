"""Feature membership and kd-tree accelerated feature search."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from ..config import get_shape_config
from ..feature import Feature, normal_angle
from ..geometry import Affine
from ..types import ShapeStructureError, Vector3, as_vector3, is_unbounded

if TYPE_CHECKING:  # pragma: no cover
    from . import Shape

logger = logging.getLogger(__name__)

_FIRST_BATCH = 8


@dataclass
class SearchOptions:
    """Filters applied to correspondence candidates.

    ``None`` disables a filter. Descriptor bounds are per channel; a channel
    bound of ``None`` or ``inf`` leaves that channel unconstrained.
    """

    min_distance: Optional[float] = None
    max_distance: Optional[float] = None
    max_descriptor_distances: Optional[Sequence[Optional[float]]] = None
    max_normal_angle: Optional[float] = None
    min_distinction: Optional[float] = None
    min_salience: Optional[float] = None
    discard_boundaries: bool = False
    opposite_facing_normals: bool = False


class FeatureIndexMixin:
    """Ordered feature set plus a lazily rebuilt kd-tree over world positions."""

    features: List[Feature]

    def _init_features(self) -> None:
        self.features = []
        self._kdtree: Optional[cKDTree] = None
        self._kdtree_positions: Optional[np.ndarray] = None

    def n_features(self) -> int:
        return len(self.features)

    def feature(self, k: int) -> Feature:
        return self.features[k]

    def insert_feature(self, feature: Feature) -> None:
        if feature.shape is not None:
            raise ShapeStructureError(f"{feature!r} already belongs to {feature.shape!r}")
        self.features.append(feature)
        feature._set_shape(self)
        self.invalidate_bbox()
        self.invalidate_kdtree()

    def remove_feature(self, feature: Feature) -> None:
        for k, candidate in enumerate(self.features):
            if candidate is feature:
                break
        else:
            raise ShapeStructureError(f"{feature!r} does not belong to {self!r}")
        del self.features[k]
        feature._set_shape(None)
        self.invalidate_bbox()
        self.invalidate_kdtree()

    def delete_features(self) -> None:
        """Detach every feature, dropping them from the owning reconstruction."""

        reconstruction = self.reconstruction
        for feature in list(self.features):
            if reconstruction is not None and feature.reconstruction_index >= 0:
                reconstruction.remove_feature(feature)
            else:
                self.remove_feature(feature)

    def invalidate_kdtree(self) -> None:
        self._kdtree = None
        self._kdtree_positions = None

    def update_kdtree(self) -> None:
        if not self.features:
            self._kdtree = None
            self._kdtree_positions = np.zeros((0, 3))
            return
        positions = np.array([feature.position for feature in self.features])
        self._kdtree_positions = self.current_transformation.apply_points(positions)
        self._kdtree = cKDTree(self._kdtree_positions, leafsize=get_shape_config().kdtree_leafsize)
        logger.debug("Rebuilt kd-tree of %r over %d feature(s)", self, len(self.features))

    def update_feature_properties(self) -> None:
        """Eagerly rebuild the bounding box and search tree."""

        self.update_bbox()
        self.update_kdtree()

    def _search_tree(self) -> Tuple[Optional[cKDTree], np.ndarray]:
        if self._kdtree_positions is None:
            self.update_kdtree()
        assert self._kdtree_positions is not None
        return self._kdtree, self._kdtree_positions

    def _iter_candidates(
        self,
        position: np.ndarray,
        min_distance: Optional[float],
        max_distance: Optional[float],
    ) -> Iterator[Tuple[int, float]]:
        """Yield ``(feature index, distance)`` by increasing distance.

        Equal distances are ordered by feature index.
        """

        tree, positions = self._search_tree()
        if tree is None:
            return
        lo = 0.0 if min_distance is None else float(min_distance)
        hi = math.inf if is_unbounded(max_distance) else float(max_distance)
        if lo > hi:
            return

        if math.isfinite(hi):
            indices = np.asarray(tree.query_ball_point(position, r=hi), dtype=int)
            if indices.size == 0:
                return
            distances = np.linalg.norm(positions[indices] - position, axis=1)
            keep = (distances >= lo) & (distances <= hi)
            indices, distances = indices[keep], distances[keep]
            order = np.lexsort((indices, distances))
            for i in order:
                yield int(indices[i]), float(distances[i])
            return

        # Unbounded above: widen the neighbourhood until every feature is seen.
        n = len(positions)
        k = min(n, _FIRST_BATCH)
        emitted_below = -math.inf
        while True:
            distances, indices = tree.query(position, k=k)
            distances = np.atleast_1d(distances)
            indices = np.atleast_1d(indices)
            complete = k >= n
            limit = math.inf if complete else float(distances.max())
            keep = (distances >= emitted_below) & (distances >= lo)
            if not complete:
                keep &= distances < limit
            batch_indices, batch_distances = indices[keep], distances[keep]
            for i in np.lexsort((batch_indices, batch_distances)):
                yield int(batch_indices[i]), float(batch_distances[i])
            if complete:
                return
            emitted_below = limit
            k = min(n, 2 * k)

    def find_closest_feature(
        self,
        position: Vector3,
        min_distance: Optional[float] = None,
        max_distance: Optional[float] = None,
    ) -> Optional[Feature]:
        """Nearest feature whose world distance lies in ``[min, max]``."""

        query = as_vector3(position, name="position")
        for index, _ in self._iter_candidates(query, min_distance, max_distance):
            return self.features[index]
        return None

    def _query_frame(
        self, query_feature: Feature, query_transformation: Optional[Affine]
    ) -> Tuple[np.ndarray, np.ndarray]:
        position = query_feature.world_position()
        normal = query_feature.world_normal()
        if query_transformation is not None:
            position = query_transformation.apply_point(position)
            normal = query_transformation.apply_vector(normal)
        return position, normal

    def _is_compatible(
        self,
        candidate: Feature,
        query_feature: Feature,
        query_normal: np.ndarray,
        options: SearchOptions,
    ) -> bool:
        if candidate is query_feature:
            return False
        if options.discard_boundaries and candidate.boundary:
            return False
        if options.min_distinction is not None and candidate.distinction < options.min_distinction:
            return False
        if options.min_salience is not None and candidate.salience < options.min_salience:
            return False
        if options.max_descriptor_distances is not None:
            distances = candidate.descriptor_distances(query_feature)
            for distance, bound in zip(distances, options.max_descriptor_distances):
                if bound is not None and distance > bound:
                    return False
        if options.max_normal_angle is not None:
            reference = -query_normal if options.opposite_facing_normals else query_normal
            angle = normal_angle(candidate.world_normal(), reference)
            if math.isnan(angle) or angle > options.max_normal_angle:
                return False
        return True

    def _iter_compatible(
        self,
        query_feature: Feature,
        query_transformation: Optional[Affine],
        options: Optional[SearchOptions],
    ) -> Iterator[Feature]:
        options = options or SearchOptions()
        position, normal = self._query_frame(query_feature, query_transformation)
        for index, _ in self._iter_candidates(position, options.min_distance, options.max_distance):
            candidate = self.features[index]
            if self._is_compatible(candidate, query_feature, normal, options):
                yield candidate

    def find_closest_compatible_feature(
        self,
        query_feature: Feature,
        query_transformation: Optional[Affine] = None,
        options: Optional[SearchOptions] = None,
    ) -> Optional[Feature]:
        """Nearest feature of this shape passing every filter in ``options``."""

        for candidate in self._iter_compatible(query_feature, query_transformation, options):
            return candidate
        return None

    def find_all_features(
        self,
        query_feature: Feature,
        query_transformation: Optional[Affine] = None,
        options: Optional[SearchOptions] = None,
    ) -> List[Feature]:
        """Every feature passing the filters, nearest first."""

        result = list(self._iter_compatible(query_feature, query_transformation, options))
        logger.debug("find_all_features on %r returned %d candidate(s)", self, len(result))
        return result
