"""Reconstruction graph: global tables of shapes, features, matches and sequences."""

from __future__ import annotations

import logging
import struct
import weakref
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Sequence as SequenceType, TextIO, TypeVar, Union

import numpy as np

from .feature import Feature
from .logging_utils import apply_debug_logging
from .match import Match
from .shape import Shape
from .shape.io import format_name, parse_name
from .types import ShapeFormatError, ShapeStructureError

logger = logging.getLogger(__name__)

MAGIC = b"FETR"
VERSION = 1
ASCII_HEADER = "fetshape-reconstruction"
BINARY_SUFFIXES = {".fetb", ".bin"}

_HEADER = struct.Struct("<4sH4I")
_MATCH = struct.Struct("<iid")
_NAME = struct.Struct("<BI")

T = TypeVar("T")


def _checked(items: List[T], k: int, label: str) -> T:
    if not 0 <= k < len(items):
        raise IndexError(f"{label} index {k} out of range (0..{len(items) - 1})")
    return items[k]


def _reindex(items: Iterable[object]) -> None:
    for index, item in enumerate(items):
        item.reconstruction_index = index  # type: ignore[attr-defined]


class Sequence:
    """Ordered group of shapes captured together (e.g. frames of one scan pass)."""

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name
        self.shapes: List[Shape] = []
        self.reconstruction_index = -1
        self._reconstruction_ref: Optional["weakref.ReferenceType[Reconstruction]"] = None

    def __repr__(self) -> str:
        return f"<Sequence {self.reconstruction_index} {self.name!r} shapes={len(self.shapes)}>"

    @property
    def reconstruction(self) -> Optional["Reconstruction"]:
        return self._reconstruction_ref() if self._reconstruction_ref is not None else None

    def n_shapes(self) -> int:
        return len(self.shapes)

    def shape(self, k: int) -> Shape:
        return self.shapes[k]

    def insert_shape(self, shape: Shape) -> None:
        if shape.sequence is not None:
            raise ShapeStructureError(f"{shape!r} already belongs to {shape.sequence!r}")
        shape._set_sequence(self, len(self.shapes))
        self.shapes.append(shape)

    def remove_shape(self, shape: Shape) -> None:
        for k, candidate in enumerate(self.shapes):
            if candidate is shape:
                break
        else:
            raise ShapeStructureError(f"{shape!r} does not belong to {self!r}")
        del self.shapes[k]
        shape._set_sequence(None, -1)
        for index, remaining in enumerate(self.shapes):
            remaining.sequence_index = index

    def _rebuild(self, shapes: Iterable[Shape]) -> None:
        members = sorted((s for s in shapes if s.sequence is self), key=lambda s: s.sequence_index)
        if [s.sequence_index for s in members] != list(range(len(members))):
            raise ShapeFormatError(f"sequence {self.reconstruction_index} has inconsistent shape indices")
        self.shapes = members


class Reconstruction:
    """Owner of every shape, feature, match and sequence of one alignment problem."""

    def __init__(self) -> None:
        self.shapes: List[Shape] = []
        self.features: List[Feature] = []
        self.matches: List[Match] = []
        self.sequences: List[Sequence] = []
        self.n_variables = 0

    def __repr__(self) -> str:
        return (
            f"<Reconstruction shapes={len(self.shapes)} features={len(self.features)} "
            f"matches={len(self.matches)} sequences={len(self.sequences)}>"
        )

    # Table access

    def shape(self, k: int) -> Shape:
        return _checked(self.shapes, k, "shape")

    def feature(self, k: int) -> Feature:
        return _checked(self.features, k, "feature")

    def match(self, k: int) -> Match:
        return _checked(self.matches, k, "match")

    def sequence(self, k: int) -> Sequence:
        return _checked(self.sequences, k, "sequence")

    # Structure

    def insert_shape(self, shape: Shape) -> None:
        if shape.reconstruction is not None:
            raise ShapeStructureError(f"{shape!r} already belongs to a reconstruction")
        shape._set_reconstruction(self, len(self.shapes))
        self.shapes.append(shape)

    def remove_shape(self, shape: Shape) -> None:
        if shape.reconstruction is not self:
            raise ShapeStructureError(f"{shape!r} does not belong to this reconstruction")
        for match in [m for m in self.matches if m.involves(shape)]:
            self.remove_match(match)
        shape.release()
        del self.shapes[shape.reconstruction_index]
        shape._set_reconstruction(None, -1)
        _reindex(self.shapes)

    def insert_sequence(self, sequence: Sequence) -> None:
        if sequence.reconstruction is not None:
            raise ShapeStructureError(f"{sequence!r} already belongs to a reconstruction")
        sequence._reconstruction_ref = weakref.ref(self)
        sequence.reconstruction_index = len(self.sequences)
        self.sequences.append(sequence)

    def insert_feature(self, feature: Feature, shape: Optional[Shape] = None) -> None:
        if feature.reconstruction_index >= 0:
            raise ShapeStructureError(f"{feature!r} is already indexed")
        if shape is not None and feature.shape is not None:
            raise ShapeStructureError(f"{feature!r} already belongs to {feature.shape!r}")
        feature.reconstruction_index = len(self.features)
        self.features.append(feature)
        if shape is not None:
            shape.insert_feature(feature)

    def remove_feature(self, feature: Feature) -> None:
        if _checked(self.features, feature.reconstruction_index, "feature") is not feature:
            raise ShapeStructureError(f"{feature!r} does not belong to this reconstruction")
        for match in [m for m in self.matches if feature in m.features]:
            self.remove_match(match)
        if feature.shape is not None:
            feature.shape.remove_feature(feature)
        del self.features[feature.reconstruction_index]
        feature.reconstruction_index = -1
        _reindex(self.features)

    def insert_match(self, match: Match) -> None:
        if match.reconstruction_index >= 0:
            raise ShapeStructureError(f"{match!r} is already indexed")
        match.reconstruction_index = len(self.matches)
        self.matches.append(match)
        for shape in self._distinct_shapes(match):
            shape.insert_match(match, shape.n_matches())

    def remove_match(self, match: Match) -> None:
        if _checked(self.matches, match.reconstruction_index, "match") is not match:
            raise ShapeStructureError(f"{match!r} does not belong to this reconstruction")
        for shape in self._distinct_shapes(match):
            for k in reversed(shape.match_positions(match)):
                shape.remove_match(match, k)
        del self.matches[match.reconstruction_index]
        match.reconstruction_index = -1
        _reindex(self.matches)

    @staticmethod
    def _distinct_shapes(match: Match) -> List[Shape]:
        shapes: List[Shape] = []
        for shape in match.shapes():
            if shape is not None and all(shape is not s for s in shapes):
                shapes.append(shape)
        return shapes

    # Optimization

    def update_variable_index(self) -> int:
        """Thread the global slot counter through all shapes in index order."""

        nvariables = 0
        for shape in self.shapes:
            nvariables = shape.update_variable_index(nvariables)
        self.n_variables = nvariables
        logger.info("Assigned %d variable(s) across %d shape(s)", nvariables, len(self.shapes))
        return nvariables

    def initial_variable_values(self) -> np.ndarray:
        return np.zeros(self.n_variables)

    def update_variable_values(self, x: SequenceType[float]) -> None:
        """Push solved values into every shape, deepest shapes first."""

        x = np.asarray(x, dtype=float)
        if x.size < self.n_variables:
            raise ValueError(f"expected {self.n_variables} variable value(s), got {x.size}")
        order = sorted(self.shapes, key=lambda s: (-s.hierarchy_depth(), s.reconstruction_index))
        for shape in order:
            shape.update_variable_values(x)

    def variable_names(self) -> List[str]:
        names = [""] * self.n_variables
        for shape in self.shapes:
            for slot, label in shape.variable_names():
                names[slot] = label
        return names

    # Ascii

    def write_ascii(self, fp: TextIO) -> None:
        fp.write(f"{ASCII_HEADER} {VERSION}\n")
        fp.write(
            f"counts {len(self.shapes)} {len(self.features)} {len(self.matches)} {len(self.sequences)}\n"
        )
        for feature in self.features:
            feature.write_ascii(fp)
        for match in self.matches:
            f0, f1 = (f.reconstruction_index for f in match.features)
            fp.write(f"match {f0} {f1} {match.affinity!r}\n")
        for sequence in self.sequences:
            fp.write(f"sequence {format_name(sequence.name)}\n")
        for shape in self.shapes:
            shape.write_ascii(fp)

    @classmethod
    def read_ascii(cls, fp: TextIO) -> "Reconstruction":
        header = fp.readline().split()
        if len(header) != 2 or header[0] != ASCII_HEADER:
            raise ShapeFormatError("not a fetshape reconstruction file")
        if header[1] != str(VERSION):
            raise ShapeFormatError(f"unsupported reconstruction version {header[1]}")
        counts = fp.readline().split()
        if len(counts) != 5 or counts[0] != "counts":
            raise ShapeFormatError("missing counts record")
        try:
            nshapes, nfeatures, nmatches, nsequences = (int(tok) for tok in counts[1:])
        except ValueError as exc:
            raise ShapeFormatError("malformed counts record") from exc

        reconstruction = cls()
        for _ in range(nfeatures):
            reconstruction.insert_feature(Feature.read_ascii(fp))
        for _ in range(nmatches):
            tokens = fp.readline().split()
            if len(tokens) != 4 or tokens[0] != "match":
                raise ShapeFormatError("truncated or malformed match record")
            try:
                f0, f1, affinity = int(tokens[1]), int(tokens[2]), float(tokens[3])
            except ValueError as exc:
                raise ShapeFormatError("malformed match record") from exc
            reconstruction._load_match(f0, f1, affinity)
        for _ in range(nsequences):
            head, _, rest = fp.readline().strip().partition(" ")
            if head != "sequence":
                raise ShapeFormatError("truncated or malformed sequence record")
            reconstruction.insert_sequence(Sequence(parse_name(rest.strip())))
        for _ in range(nshapes):
            shape = Shape()
            shape.read_ascii(fp)
            reconstruction._load_shape(shape)
        reconstruction._resolve()
        return reconstruction

    # Binary

    def write_binary(self, fp: BinaryIO) -> None:
        fp.write(
            _HEADER.pack(
                MAGIC, VERSION, len(self.shapes), len(self.features), len(self.matches), len(self.sequences)
            )
        )
        for feature in self.features:
            feature.write_binary(fp)
        for match in self.matches:
            f0, f1 = (f.reconstruction_index for f in match.features)
            fp.write(_MATCH.pack(f0, f1, match.affinity))
        for sequence in self.sequences:
            name = (sequence.name or "").encode("utf-8")
            fp.write(_NAME.pack(int(sequence.name is not None), len(name)))
            fp.write(name)
        for shape in self.shapes:
            shape.write_binary(fp)

    @classmethod
    def read_binary(cls, fp: BinaryIO) -> "Reconstruction":
        data = fp.read(_HEADER.size)
        if len(data) != _HEADER.size:
            raise ShapeFormatError("truncated reconstruction header")
        magic, version, nshapes, nfeatures, nmatches, nsequences = _HEADER.unpack(data)
        if magic != MAGIC:
            raise ShapeFormatError(f"bad reconstruction magic {magic!r}")
        if version != VERSION:
            raise ShapeFormatError(f"unsupported reconstruction version {version}")

        reconstruction = cls()
        for _ in range(nfeatures):
            reconstruction.insert_feature(Feature.read_binary(fp))
        for _ in range(nmatches):
            data = fp.read(_MATCH.size)
            if len(data) != _MATCH.size:
                raise ShapeFormatError("truncated match record")
            reconstruction._load_match(*_MATCH.unpack(data))
        for _ in range(nsequences):
            data = fp.read(_NAME.size)
            if len(data) != _NAME.size:
                raise ShapeFormatError("truncated sequence record")
            has_name, length = _NAME.unpack(data)
            name = fp.read(length)
            if len(name) != length:
                raise ShapeFormatError("truncated sequence name")
            reconstruction.insert_sequence(Sequence(name.decode("utf-8") if has_name else None))
        for _ in range(nshapes):
            shape = Shape()
            shape.read_binary(fp)
            reconstruction._load_shape(shape)
        reconstruction._resolve()
        return reconstruction

    # Files

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        if path.suffix in BINARY_SUFFIXES:
            with path.open("wb") as fp:
                self.write_binary(fp)
        else:
            with path.open("w", encoding="utf-8") as fp:
                self.write_ascii(fp)
        logger.info("Wrote %r to %s", self, path)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Reconstruction":
        path = Path(path)
        if path.suffix in BINARY_SUFFIXES:
            with path.open("rb") as fp:
                reconstruction = cls.read_binary(fp)
        else:
            with path.open("r", encoding="utf-8") as fp:
                reconstruction = cls.read_ascii(fp)
        logger.info("Read %r from %s", reconstruction, path)
        return reconstruction

    # Load helpers

    def _load_match(self, f0: int, f1: int, affinity: float) -> None:
        try:
            match = Match(self.feature(f0), self.feature(f1), affinity)
        except IndexError as exc:
            raise ShapeFormatError(f"match references missing feature ({f0}, {f1})") from exc
        match.reconstruction_index = len(self.matches)
        self.matches.append(match)

    def _load_shape(self, shape: Shape) -> None:
        recorded = shape.reconstruction_index
        shape._set_reconstruction(None, -1)
        self.insert_shape(shape)
        if recorded != shape.reconstruction_index:
            raise ShapeFormatError(
                f"shape record index {recorded} does not match its position {shape.reconstruction_index}"
            )

    def _resolve(self) -> None:
        for shape in self.shapes:
            shape.resolve_links(self)
        for shape in self.shapes:
            shape.resolve_match_links(self)
        for sequence in self.sequences:
            sequence._rebuild(self.shapes)


apply_debug_logging(globals(), logger=logger)


__all__ = ["Reconstruction", "Sequence"]
