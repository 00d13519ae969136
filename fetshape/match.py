"""Putative correspondence between two features."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Tuple

from .feature import Feature

if TYPE_CHECKING:  # pragma: no cover
    from .shape import Shape


class Match:
    """Record linking two features, usually on different shapes."""

    def __init__(self, feature0: Feature, feature1: Feature, affinity: float = 1.0) -> None:
        self.features: Tuple[Feature, Feature] = (feature0, feature1)
        self.affinity = float(affinity)
        self.reconstruction_index = -1

    def __repr__(self) -> str:
        return (
            f"Match(index={self.reconstruction_index}, "
            f"features=({self.features[0].reconstruction_index}, {self.features[1].reconstruction_index}), "
            f"affinity={self.affinity})"
        )

    def feature(self, k: int) -> Feature:
        return self.features[k]

    def shapes(self) -> Tuple[Optional["Shape"], Optional["Shape"]]:
        return (self.features[0].shape, self.features[1].shape)

    def involves(self, shape: "Shape") -> bool:
        return any(s is shape for s in self.shapes())

    def other_feature(self, feature: Feature) -> Feature:
        if feature is self.features[0]:
            return self.features[1]
        if feature is self.features[1]:
            return self.features[0]
        raise ValueError("feature is not an endpoint of this match")


__all__ = ["Match"]
