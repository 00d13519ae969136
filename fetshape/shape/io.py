"""Ascii and binary encodings of a single shape record.

References to other shapes, features and matches are written as indices into
the owning reconstruction's tables. After a whole graph has been read,
``resolve_links`` and ``resolve_match_links`` turn them back into objects.
"""

from __future__ import annotations

import json
import struct
import weakref
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, BinaryIO, List, Optional, Sequence, TextIO

import numpy as np

from ..geometry import Affine
from ..types import MAX_VARIABLES, ShapeFormatError, ShapeStructureError, TransformationType

if TYPE_CHECKING:  # pragma: no cover
    from ..reconstruction import Reconstruction

MAGIC = b"FETS"
VERSION = 1

_HEADER = struct.Struct("<4sHiii")
_NAME = struct.Struct("<BI")
_TRANSFORMS = struct.Struct("<48d")
_INERTIAS = struct.Struct(f"<{MAX_VARIABLES}d")
_GEOMETRY = struct.Struct("<12dB")
_COUNT = struct.Struct("<I")

_TRANSFORMATION_LABELS = (
    ("current", TransformationType.CURRENT),
    ("initial", TransformationType.INITIAL),
    ("ground_truth", TransformationType.GROUND_TRUTH),
)
_LINK_LABELS = ("parents", "children", "features", "matches")


@dataclass
class LinkRecord:
    """Index form of a shape's references, as stored on disk."""

    reconstruction_index: int = -1
    sequence_id: int = -1
    sequence_index: int = -1
    parents: List[int] = field(default_factory=list)
    children: List[int] = field(default_factory=list)
    features: List[int] = field(default_factory=list)
    matches: List[int] = field(default_factory=list)


def _format_floats(values: Sequence[float]) -> str:
    return " ".join(repr(float(v)) for v in values)


def _indices(items: Sequence[object], label: str) -> List[int]:
    result = []
    for item in items:
        index = getattr(item, "reconstruction_index", -1)
        if index < 0:
            raise ShapeStructureError(f"cannot serialize {label} reference to unindexed {item!r}")
        result.append(index)
    return result


def format_name(name: Optional[str]) -> str:
    """Single-line ascii form of an optional name: ``unset`` or a JSON string."""

    return "unset" if name is None else json.dumps(name)


def parse_name(text: str) -> Optional[str]:
    if text == "unset":
        return None
    try:
        name = json.loads(text)
    except ValueError as exc:
        raise ShapeFormatError(f"malformed name {text!r}") from exc
    if not isinstance(name, str):
        raise ShapeFormatError(f"name must be a quoted string, got {text!r}")
    return name


def _next_line(fp: TextIO, keyword: str) -> str:
    while True:
        line = fp.readline()
        if not line:
            raise ShapeFormatError(f"truncated shape record: expected '{keyword}'")
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            break
    head, _, rest = stripped.partition(" ")
    if head != keyword:
        raise ShapeFormatError(f"expected '{keyword}', got {stripped!r}")
    return rest.strip()


def _next_tokens(fp: TextIO, keyword: str) -> List[str]:
    return _next_line(fp, keyword).split()


def _parse_floats(tokens: Sequence[str], count: int, keyword: str) -> List[float]:
    if len(tokens) != count:
        raise ShapeFormatError(f"'{keyword}' expects {count} values, got {len(tokens)}")
    try:
        return [float(tok) for tok in tokens]
    except ValueError as exc:
        raise ShapeFormatError(f"non-numeric value in '{keyword}' record") from exc


def _parse_ints(tokens: Sequence[str], keyword: str) -> List[int]:
    try:
        values = [int(tok) for tok in tokens]
    except ValueError as exc:
        raise ShapeFormatError(f"non-integer value in '{keyword}' record") from exc
    if not values or values[0] != len(values) - 1:
        raise ShapeFormatError(f"'{keyword}' count does not match its index list")
    return values[1:]


def _read_exact(fp: BinaryIO, size: int, what: str) -> bytes:
    data = fp.read(size)
    if len(data) != size:
        raise ShapeFormatError(f"truncated shape record while reading {what}")
    return data


class SerializationMixin:
    def _init_io(self) -> None:
        self._pending_links: Optional[LinkRecord] = None

    def link_record(self) -> LinkRecord:
        if self._pending_links is not None:
            return self._pending_links
        sequence = self.sequence
        return LinkRecord(
            reconstruction_index=self.reconstruction_index,
            sequence_id=sequence.reconstruction_index if sequence is not None else -1,
            sequence_index=self.sequence_index,
            parents=_indices(self.parents, "parent"),
            children=_indices(self.children, "child"),
            features=_indices(self.features, "feature"),
            matches=_indices(self.matches, "match"),
        )

    def _geometry_values(self) -> List[float]:
        origin = self._origin if self._origin is not None else np.zeros(3)
        return [*self._viewpoint, *self._towards, *self._up, *origin]

    # Ascii

    def write_ascii(self, fp: TextIO) -> None:
        links = self.link_record()
        fp.write(f"shape {links.reconstruction_index} {links.sequence_id} {links.sequence_index}\n")
        fp.write(f"name {format_name(self.name)}\n")
        for label, kind in _TRANSFORMATION_LABELS:
            fp.write(f"transformation {label} {_format_floats(self.transformation(kind).values())}\n")
        fp.write(f"inertias {_format_floats(self.variable_inertias)}\n")
        fp.write(f"viewpoint {_format_floats(self._viewpoint)}\n")
        fp.write(f"towards {_format_floats(self._towards)}\n")
        fp.write(f"up {_format_floats(self._up)}\n")
        if self._origin is None:
            fp.write("origin unset\n")
        else:
            fp.write(f"origin {_format_floats(self._origin)}\n")
        for label in _LINK_LABELS:
            values = getattr(links, label)
            fp.write(" ".join([label, str(len(values)), *map(str, values)]) + "\n")
        fp.write("end\n")

    def read_ascii(self, fp: TextIO) -> None:
        header = _next_tokens(fp, "shape")
        if len(header) != 3:
            raise ShapeFormatError("shape header expects index, sequence and sequence index")
        try:
            links = LinkRecord(int(header[0]), int(header[1]), int(header[2]))
        except ValueError as exc:
            raise ShapeFormatError("non-integer index in shape header") from exc
        name = parse_name(_next_line(fp, "name"))

        transforms = {}
        for label, kind in _TRANSFORMATION_LABELS:
            tokens = _next_tokens(fp, "transformation")
            if not tokens or tokens[0] != label:
                raise ShapeFormatError(f"expected '{label}' transformation")
            transforms[kind] = Affine.from_values(_parse_floats(tokens[1:], 16, label))
        inertias = _parse_floats(_next_tokens(fp, "inertias"), MAX_VARIABLES, "inertias")
        viewpoint = _parse_floats(_next_tokens(fp, "viewpoint"), 3, "viewpoint")
        towards = _parse_floats(_next_tokens(fp, "towards"), 3, "towards")
        up = _parse_floats(_next_tokens(fp, "up"), 3, "up")
        origin_tokens = _next_tokens(fp, "origin")
        origin = None if origin_tokens == ["unset"] else _parse_floats(origin_tokens, 3, "origin")
        for label in _LINK_LABELS:
            setattr(links, label, _parse_ints(_next_tokens(fp, label), label))
        _next_tokens(fp, "end")

        self._apply_record(name, transforms, inertias, viewpoint, towards, up, origin, links)

    # Binary

    def write_binary(self, fp: BinaryIO) -> None:
        links = self.link_record()
        fp.write(_HEADER.pack(MAGIC, VERSION, links.reconstruction_index, links.sequence_id, links.sequence_index))
        name = (self.name or "").encode("utf-8")
        fp.write(_NAME.pack(int(self.name is not None), len(name)))
        fp.write(name)
        values: List[float] = []
        for _, kind in _TRANSFORMATION_LABELS:
            values.extend(self.transformation(kind).values())
        fp.write(_TRANSFORMS.pack(*values))
        fp.write(_INERTIAS.pack(*self.variable_inertias))
        fp.write(_GEOMETRY.pack(*self._geometry_values(), int(self._origin is not None)))
        for label in _LINK_LABELS:
            indices = getattr(links, label)
            fp.write(_COUNT.pack(len(indices)))
            fp.write(struct.pack(f"<{len(indices)}i", *indices))

    def read_binary(self, fp: BinaryIO) -> None:
        magic, version, index, sequence_id, sequence_index = _HEADER.unpack(
            _read_exact(fp, _HEADER.size, "header")
        )
        if magic != MAGIC:
            raise ShapeFormatError(f"bad shape magic {magic!r}")
        if version != VERSION:
            raise ShapeFormatError(f"unsupported shape record version {version}")
        links = LinkRecord(index, sequence_id, sequence_index)

        has_name, length = _NAME.unpack(_read_exact(fp, _NAME.size, "name"))
        try:
            name = _read_exact(fp, length, "name").decode("utf-8") if has_name else None
        except UnicodeDecodeError as exc:
            raise ShapeFormatError("shape name is not valid utf-8") from exc

        values = _TRANSFORMS.unpack(_read_exact(fp, _TRANSFORMS.size, "transformations"))
        transforms = {
            kind: Affine.from_values(values[16 * i : 16 * (i + 1)])
            for i, (_, kind) in enumerate(_TRANSFORMATION_LABELS)
        }
        inertias = list(_INERTIAS.unpack(_read_exact(fp, _INERTIAS.size, "inertias")))
        geometry = _GEOMETRY.unpack(_read_exact(fp, _GEOMETRY.size, "geometry"))
        origin = list(geometry[9:12]) if geometry[12] else None

        for label in _LINK_LABELS:
            (count,) = _COUNT.unpack(_read_exact(fp, _COUNT.size, label))
            indices = struct.unpack(f"<{count}i", _read_exact(fp, 4 * count, label))
            setattr(links, label, list(indices))

        self._apply_record(
            name, transforms, inertias, geometry[0:3], geometry[3:6], geometry[6:9], origin, links
        )

    def _apply_record(self, name, transforms, inertias, viewpoint, towards, up, origin, links: LinkRecord) -> None:
        if self.features or self.matches or self._parents or self._children:
            raise ShapeStructureError(f"cannot read a record into non-empty {self!r}")
        self.name = name
        self.set_transformation(transforms[TransformationType.CURRENT])
        self.set_transformation(transforms[TransformationType.INITIAL], TransformationType.INITIAL)
        self.set_transformation(transforms[TransformationType.GROUND_TRUTH], TransformationType.GROUND_TRUTH)
        self.variable_inertias = np.array(inertias, dtype=float)
        self.clear_variable_index()
        self._viewpoint = np.array(viewpoint, dtype=float)
        self._towards = np.array(towards, dtype=float)
        self._up = np.array(up, dtype=float)
        self._origin = None if origin is None else np.array(origin, dtype=float)
        self.reconstruction_index = links.reconstruction_index
        self.sequence_index = links.sequence_index
        self._pending_links = links

    # Post-load resolution

    def resolve_links(self, reconstruction: "Reconstruction") -> None:
        """Re-resolve hierarchy, feature and sequence references by index."""

        links = self._pending_links
        if links is None:
            return
        try:
            parents = [reconstruction.shape(i) for i in links.parents]
            children = [reconstruction.shape(i) for i in links.children]
            features = [reconstruction.feature(i) for i in links.features]
            sequence = reconstruction.sequence(links.sequence_id) if links.sequence_id >= 0 else None
        except IndexError as exc:
            raise ShapeFormatError(f"shape {links.reconstruction_index} references a missing entry") from exc
        self._parents = [weakref.ref(parent) for parent in parents]
        self._children = [weakref.ref(child) for child in children]
        for feature in features:
            self.insert_feature(feature)
        if sequence is not None:
            self._set_sequence(sequence, links.sequence_index)

    def resolve_match_links(self, reconstruction: "Reconstruction") -> None:
        """Re-resolve match references; features of all shapes must be resolved first."""

        links = self._pending_links
        if links is None:
            return
        try:
            matches = [reconstruction.match(i) for i in links.matches]
        except IndexError as exc:
            raise ShapeFormatError(f"shape {links.reconstruction_index} references a missing match") from exc
        for match in matches:
            self.insert_match(match, len(self.matches))
        self._pending_links = None
