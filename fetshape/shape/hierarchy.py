"""Parent/child links between shapes."""

from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Iterator, List, Optional

from ..types import ShapeStructureError

if TYPE_CHECKING:  # pragma: no cover
    from . import Shape


def _resolve(ref: "weakref.ReferenceType[Shape]") -> "Shape":
    shape = ref()
    if shape is None:
        raise ShapeStructureError("hierarchy references a shape that no longer exists")
    return shape


class HierarchyMixin:
    """Symmetric parent/child links held as weak references.

    The graph may be a DAG: a shape can have several parents. The first
    parent is the primary one; hierarchical transform composition follows
    primary parents only.
    """

    def _init_hierarchy(self) -> None:
        self._parents: List["weakref.ReferenceType[Shape]"] = []
        self._children: List["weakref.ReferenceType[Shape]"] = []

    @property
    def parents(self) -> List["Shape"]:
        return [_resolve(ref) for ref in self._parents]

    @property
    def children(self) -> List["Shape"]:
        return [_resolve(ref) for ref in self._children]

    def n_parents(self) -> int:
        return len(self._parents)

    def parent(self, k: int) -> "Shape":
        return _resolve(self._parents[k])

    def n_children(self) -> int:
        return len(self._children)

    def child(self, k: int) -> "Shape":
        return _resolve(self._children[k])

    def primary_parent(self) -> Optional["Shape"]:
        return _resolve(self._parents[0]) if self._parents else None

    def has_child(self, child: "Shape") -> bool:
        return any(ref() is child for ref in self._children)

    def insert_child(self, child: "Shape") -> None:
        if child is self:
            raise ShapeStructureError(f"{self!r} cannot be its own child")
        if self.has_child(child):
            raise ShapeStructureError(f"{child!r} is already a child of {self!r}")
        self._children.append(weakref.ref(child))
        child._parents.append(weakref.ref(self))

    def remove_child(self, child: "Shape") -> None:
        if not self.has_child(child):
            return
        self._children = [ref for ref in self._children if ref() is not child]
        child._parents = [ref for ref in child._parents if ref() is not self]

    def ancestors(self) -> List["Shape"]:
        """Primary-parent chain from the nearest parent outwards."""

        chain: List["Shape"] = []
        seen = {id(self)}
        node = self.primary_parent()
        while node is not None and id(node) not in seen:
            seen.add(id(node))
            chain.append(node)
            node = node.primary_parent()
        return chain

    def descendants(self) -> List["Shape"]:
        """All shapes reachable through child links, each listed once."""

        return list(self._walk(primary_only=False))

    def primary_descendants(self) -> List["Shape"]:
        """Descendants whose primary-parent chain passes through this shape."""

        return list(self._walk(primary_only=True))

    def _walk(self, primary_only: bool) -> Iterator["Shape"]:
        seen = {id(self)}
        stack: List["Shape"] = [self]
        while stack:
            node = stack.pop()
            fresh = []
            for child in node.children:
                if id(child) in seen:
                    continue
                if primary_only and child.primary_parent() is not node:
                    continue
                seen.add(id(child))
                fresh.append(child)
                yield child
            stack.extend(reversed(fresh))

    def _unlink_hierarchy(self) -> None:
        for parent in self.parents:
            parent.remove_child(self)
        for child in self.children:
            self.remove_child(child)

    def hierarchy_depth(self) -> int:
        return len(self.ancestors())
