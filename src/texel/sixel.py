"""Sixel encoding of bitmaps for a target screen rectangle.

A bitmap is scaled to the block's height in cells, cropped to the visible
part of the rectangle and mapped onto a fixed palette chosen by colour depth.
The result is split into horizontal tiles of ``chunk_rows`` cells; every tile
is a self-contained sequence (cursor save, move, DCS … ST, cursor restore)
with its own colour registers, so tiles can be encoded and written on
different draw ticks. Encoding is deterministic: the same bitmap and
rectangle always give the same bytes.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np
from PIL import Image

from texel.config import EngineConfig
from texel.types import Bitmap, ScreenRect

logger = logging.getLogger(__name__)

_SAVE_CURSOR = "\x1b[s"
_RESTORE_CURSOR = "\x1b[u"
_MOVE_FMT = "\x1b[{};{}H"
_ERASE_CHARS_FMT = "\x1b[{}X"
# P2=1: pixels without a colour keep the terminal background
_SIXEL_START = "\x1bP0;1;0q"
_SIXEL_END = "\x1b\\"

_BAND_WEIGHTS = np.array([1, 2, 4, 8, 16, 32], dtype=np.int32)[:, None]

GRAY_LEVELS = 16
CUBE_LEVELS = 6
ALPHA_THRESHOLD = 128

Palette = list[tuple[int, int, int]]


@dataclass
class EncodedImage:
    chunks: list[bytes] = field(default_factory=list)
    truncated: bool = False
    warning: str | None = None

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


@dataclass
class SixelPlan:
    """A prepared image split into tiles, encoded one tile at a time.

    ``encoded`` memoizes the tiles built so far, keyed by tile index.
    """

    rect: ScreenRect
    image: Image.Image | None = None
    spans: list[tuple[int, int]] = field(default_factory=list)
    truncated: bool = False
    warning: str | None = None
    encoded: dict[int, bytes] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.spans)


# --- Palette mapping ---


def _gray_palette(levels: int) -> Palette:
    step = 255 / (levels - 1)
    return [(round(i * step),) * 3 for i in range(levels)]


def _cube_palette() -> Palette:
    step = 255 // (CUBE_LEVELS - 1)
    return [
        (r * step, g * step, b * step)
        for r in range(CUBE_LEVELS)
        for g in range(CUBE_LEVELS)
        for b in range(CUBE_LEVELS)
    ]


def _quantize_levels(channel: np.ndarray, levels: int) -> np.ndarray:
    return (channel.astype(np.int32) * (levels - 1) + 127) // 255


def quantize(image: Image.Image) -> tuple[np.ndarray, Palette]:
    """Map ``image`` to palette indices; -1 marks transparent pixels."""
    if image.mode == "1":
        gray = np.asarray(image.convert("L"))
        return (gray >= 128).astype(np.int32), [(0, 0, 0), (255, 255, 255)]

    if image.mode in ("L", "LA"):
        data = np.asarray(image)
        gray = data if image.mode == "L" else data[..., 0]
        indices = _quantize_levels(gray, GRAY_LEVELS)
        if image.mode == "LA":
            indices = np.where(data[..., 1] < ALPHA_THRESHOLD, -1, indices)
        return indices, _gray_palette(GRAY_LEVELS)

    data = np.asarray(image.convert("RGBA"))
    levels = _quantize_levels(data[..., :3], CUBE_LEVELS)
    indices = levels[..., 0] * CUBE_LEVELS * CUBE_LEVELS + levels[..., 1] * CUBE_LEVELS + levels[..., 2]
    indices = np.where(data[..., 3] < ALPHA_THRESHOLD, -1, indices)
    return indices, _cube_palette()


# --- Sixel body ---


def _run_length(values: np.ndarray) -> str:
    if values.size == 0:
        return ""
    starts = np.concatenate(([0], np.flatnonzero(np.diff(values)) + 1))
    lengths = np.diff(np.concatenate((starts, [values.size])))
    out: list[str] = []
    for start, length in zip(starts.tolist(), lengths.tolist()):
        char = chr(63 + int(values[start]))
        out.append(f"!{length}{char}" if length > 3 else char * length)
    return "".join(out)


def sixel_body(indices: np.ndarray, palette: Palette) -> str:
    """Encode a 2-D index array as a complete DCS sixel sequence."""
    height, width = indices.shape
    parts = [_SIXEL_START, f'"1;1;{width};{height}']

    used = np.unique(indices[indices >= 0]).tolist()
    for color in used:
        r, g, b = palette[color]
        parts.append(f"#{color};2;{round(r * 100 / 255)};{round(g * 100 / 255)};{round(b * 100 / 255)}")

    bands: list[str] = []
    for y0 in range(0, height, 6):
        band = indices[y0 : y0 + 6]
        if band.shape[0] < 6:
            pad = np.full((6 - band.shape[0], width), -1, dtype=band.dtype)
            band = np.vstack((band, pad))
        rows: list[str] = []
        for color in np.unique(band[band >= 0]).tolist():
            bits = ((band == color) * _BAND_WEIGHTS).sum(axis=0)
            last = int(np.flatnonzero(bits)[-1]) + 1
            rows.append(f"#{color}{_run_length(bits[:last])}")
        bands.append("$".join(rows))
    parts.append("-".join(bands))
    parts.append(_SIXEL_END)
    return "".join(parts)


# --- Encoder ---


class SixelEncoder:
    def __init__(
        self,
        cell_width: int = 10,
        cell_height: int = 20,
        chunk_rows: int = 8,
        max_chunks: int = 64,
    ) -> None:
        if cell_width < 1 or cell_height < 1 or chunk_rows < 1 or max_chunks < 1:
            raise ValueError("encoder dimensions must be positive")
        self.cell_width = cell_width
        self.cell_height = cell_height
        self.chunk_rows = chunk_rows
        self.max_chunks = max_chunks

    @classmethod
    def from_config(cls, config: EngineConfig) -> SixelEncoder:
        return cls(
            cell_width=config.cell_width,
            cell_height=config.cell_height,
            chunk_rows=config.chunk_rows,
            max_chunks=config.max_chunks,
        )

    @property
    def chunk_height(self) -> int:
        return self.chunk_rows * self.cell_height

    def tile(self, height: int) -> list[tuple[int, int]]:
        """Pixel row spans ``[y0, y1)`` of the chunks for an image ``height`` tall."""
        step = self.chunk_height
        return [(y0, min(y0 + step, height)) for y0 in range(0, height, step)]

    def prepare(self, bitmap: Bitmap, rect: ScreenRect) -> Image.Image | None:
        """Scale ``bitmap`` to the block height and crop it to the visible rect."""
        image = bitmap.image
        target_height = rect.total_rows * self.cell_height
        if image.height != target_height and image.height > 0:
            scale = target_height / image.height
            width = max(1, round(image.width * scale))
            image = image.resize((width, target_height), Image.Resampling.LANCZOS)

        top = rect.skip_rows * self.cell_height
        bottom = min(image.height, top + rect.rows * self.cell_height)
        right = min(image.width, rect.cols * self.cell_width)
        if bottom <= top or right <= 0:
            return None
        return image.crop((0, top, right, bottom))

    def plan(self, bitmap: Bitmap, rect: ScreenRect) -> SixelPlan:
        """Scale and crop ``bitmap`` and split it into tiles without encoding any."""
        image = self.prepare(bitmap, rect)
        if image is None:
            return SixelPlan(rect=rect)

        spans = self.tile(image.height)
        plan = SixelPlan(rect=rect, image=image, spans=spans)
        if len(spans) > self.max_chunks:
            plan.truncated = True
            plan.warning = f"Image needs {len(spans)} chunks, only {self.max_chunks} transmitted"
            logger.warning(plan.warning)
            plan.spans = spans[: self.max_chunks]
        return plan

    def encode_span(self, plan: SixelPlan, index: int) -> bytes:
        """Encode tile ``index`` of ``plan`` as a positioned sixel sequence."""
        data = plan.encoded.get(index)
        if data is not None:
            return data
        if plan.image is None:
            raise IndexError(index)
        y0, y1 = plan.spans[index]
        indices, palette = quantize(plan.image.crop((0, y0, plan.image.width, y1)))
        sequence = (
            _SAVE_CURSOR
            + _MOVE_FMT.format(plan.rect.row + y0 // self.cell_height, plan.rect.col)
            + sixel_body(indices, palette)
            + _RESTORE_CURSOR
        )
        data = sequence.encode("ascii")
        plan.encoded[index] = data
        return data

    def encode_chunks(self, bitmap: Bitmap, rect: ScreenRect) -> EncodedImage:
        plan = self.plan(bitmap, rect)
        return EncodedImage(
            chunks=[self.encode_span(plan, index) for index in range(len(plan))],
            truncated=plan.truncated,
            warning=plan.warning,
        )

    def encode(self, bitmap: Bitmap, rect: ScreenRect) -> bytes:
        return self.encode_chunks(bitmap, rect).data

    def expected_chunks(self, height: int) -> int:
        return min(self.max_chunks, math.ceil(height / self.chunk_height))

    @staticmethod
    def erase(rect: ScreenRect) -> bytes:
        """Blank the cells covered by ``rect``."""
        parts = [_SAVE_CURSOR]
        for offset in range(rect.rows):
            parts.append(_MOVE_FMT.format(rect.row + offset, rect.col))
            parts.append(_ERASE_CHARS_FMT.format(rect.cols))
        parts.append(_RESTORE_CURSOR)
        return "".join(parts).encode("ascii")
