"""Core data model shared by the scanner, layout, encoder and scheduler."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from PIL import Image

BlockKind = Literal["math", "tex", "image", "plot"]

RenderState = Literal["pending", "rendering", "ready", "failed"]

FINGERPRINT_LENGTH = 24

_WHITESPACE_RE = re.compile(rb"\s+")


# --- Buffer geometry ---


@dataclass(frozen=True)
class LineRange:
    """Inclusive range of 1-based buffer lines."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"line range ends before it starts: {self.start}..{self.end}")

    def __contains__(self, line: object) -> bool:
        return isinstance(line, int) and self.start <= line <= self.end

    def __len__(self) -> int:
        return self.end - self.start + 1

    def overlaps(self, other: LineRange) -> bool:
        return self.start <= other.end and other.start <= self.end


@dataclass(frozen=True)
class ByteRange:
    """Half-open range of UTF-8 byte offsets into the buffer."""

    start: int
    end: int


# --- Blocks ---


def normalize_source(kind: BlockKind, source: bytes) -> bytes:
    """Normalize block source for fingerprinting.

    Math and LaTeX are whitespace-insensitive; image paths and plot scripts
    are compared byte for byte.
    """
    if kind in ("math", "tex"):
        return _WHITESPACE_RE.sub(b" ", source).strip()
    return source


def fingerprint(kind: BlockKind, source: bytes, *, path: bool = False) -> str:
    hasher = hashlib.sha256()
    hasher.update(kind.encode("ascii"))
    hasher.update(b"\x00file\x00" if path else b"\x00")
    hasher.update(normalize_source(kind, source))
    return hasher.hexdigest()[:FINGERPRINT_LENGTH]


@dataclass(frozen=True)
class Block:
    """One renderable region of the buffer.

    Blocks are never mutated: a content update produces a fresh list and the
    old blocks are dropped. ``path`` marks blocks whose ``source`` is a file
    path (image links, plot and LaTeX file links) rather than inline text.
    ``height`` overrides how many lines the graphic covers, counted from the
    first line of the block.
    """

    kind: BlockKind
    source: bytes
    byte_range: ByteRange
    line_range: LineRange
    path: bool = False
    height: int | None = None
    fingerprint: str = field(init=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fingerprint", fingerprint(self.kind, self.source, path=self.path))

    @property
    def id(self) -> str:
        return f"{self.kind}:{self.line_range.start}"

    @property
    def display_range(self) -> LineRange:
        """Lines the graphic is drawn over."""
        if not self.height:
            return self.line_range
        return LineRange(self.line_range.start, self.line_range.start + self.height - 1)


# --- Viewport and folds ---


@dataclass(frozen=True)
class WindowSize:
    rows: int
    cols: int


@dataclass(frozen=True)
class CellPosition:
    """1-based terminal cell."""

    row: int = 1
    col: int = 1


@dataclass(frozen=True)
class ViewportMetadata:
    """Snapshot of the host window; replaced whole on every update."""

    visible_line_range: LineRange
    window_size: WindowSize
    cursor_line: int = 1
    window_origin: CellPosition = field(default_factory=CellPosition)
    gutter_width: int = 0

    @classmethod
    def initial(cls) -> ViewportMetadata:
        return cls(
            visible_line_range=LineRange(1, 1),
            window_size=WindowSize(rows=1, cols=1),
        )


@dataclass(frozen=True)
class FoldEntry:
    """A fold from ``start_line`` (the marker line) through ``end_line``."""

    start_line: int
    end_line: int
    closed: bool = True

    def hides(self, line: int) -> bool:
        """True when ``line`` is a body line hidden behind the marker."""
        return self.closed and self.start_line < line <= self.end_line


def normalize_folds(folds: list[FoldEntry]) -> tuple[FoldEntry, ...]:
    """Sort folds and merge overlapping or nested ones into the outermost."""
    merged: list[FoldEntry] = []
    for fold in sorted(folds, key=lambda f: (f.start_line, -f.end_line)):
        if fold.end_line < fold.start_line:
            continue
        if merged and fold.start_line <= merged[-1].end_line:
            last = merged[-1]
            if fold.end_line > last.end_line:
                merged[-1] = FoldEntry(last.start_line, fold.end_line, last.closed or fold.closed)
            continue
        merged.append(fold)
    return tuple(merged)


# --- Screen geometry ---


@dataclass(frozen=True)
class ScreenRect:
    """Where a block's graphic lands on the terminal.

    ``row``/``col`` are 1-based cells, ``rows`` the visible height,
    ``skip_rows`` the rows clipped off the top and ``total_rows`` the height
    the whole block would occupy unclipped.
    """

    row: int
    col: int
    rows: int
    cols: int
    skip_rows: int = 0
    total_rows: int = 0

    def __post_init__(self) -> None:
        if self.total_rows < self.rows + self.skip_rows:
            object.__setattr__(self, "total_rows", self.rows + self.skip_rows)


# --- Bitmaps ---


@dataclass(frozen=True, eq=False)
class Bitmap:
    """Immutable raster produced by a renderer."""

    image: Image.Image

    @classmethod
    def open(cls, path: str | Path) -> Bitmap:
        with Image.open(path) as img:
            img.load()
            if img.mode not in ("1", "L", "LA", "RGB", "RGBA"):
                img = img.convert("RGBA")
            return cls(img.copy())

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def mode(self) -> str:
        return self.image.mode

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitmap):
            return NotImplemented
        return (
            self.mode == other.mode
            and self.image.size == other.image.size
            and self.image.tobytes() == other.image.tobytes()
        )

    def __hash__(self) -> int:
        return hash((self.mode, self.image.size))


# --- Host-facing notices ---

NoticeSeverity = Literal["error", "warning"]


@dataclass(frozen=True)
class Notice:
    """A displayable message about one block."""

    line: int
    message: str
    severity: NoticeSeverity = "error"
