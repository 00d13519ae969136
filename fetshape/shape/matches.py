"""Ordered match records referencing a shape."""

from __future__ import annotations

from typing import List

from ..match import Match
from ..types import ShapeStructureError


class MatchSetMixin:
    matches: List[Match]

    def _init_matches(self) -> None:
        self.matches = []

    def n_matches(self) -> int:
        return len(self.matches)

    def match(self, k: int) -> Match:
        return self.matches[k]

    def insert_match(self, match: Match, k: int) -> None:
        """Insert ``match`` before position ``k`` (``k == n_matches()`` appends)."""

        if not 0 <= k <= len(self.matches):
            raise ShapeStructureError(f"match position {k} out of range for {self!r}")
        if not match.involves(self):
            raise ShapeStructureError(f"{match!r} has no endpoint on {self!r}")
        self.matches.insert(k, match)

    def remove_match(self, match: Match, k: int) -> None:
        if not 0 <= k < len(self.matches):
            raise ShapeStructureError(f"match position {k} out of range for {self!r}")
        if self.matches[k] is not match:
            raise ShapeStructureError(f"{match!r} is not stored at position {k} of {self!r}")
        del self.matches[k]

    def match_positions(self, match: Match) -> List[int]:
        return [k for k, candidate in enumerate(self.matches) if candidate is match]
