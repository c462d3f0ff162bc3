"""Scan buffer text for renderable blocks.

Recognizes fenced ``math``, ``latex``/``tex`` and ``gnuplot`` regions and
standalone markdown links to images, gnuplot scripts and LaTeX files. A
fence language may carry a ``,height=N`` suffix giving the number of lines
the graphic covers. Fences with any other language are treated as opaque
code regions. An unterminated fence swallows the rest of the buffer and
yields nothing, since it is most likely still being typed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from texel.types import Block, BlockKind, ByteRange, LineRange

logger = logging.getLogger(__name__)

FENCE_KINDS: dict[str, BlockKind] = {
    "math": "math",
    "latex": "tex",
    "tex": "tex",
    "gnuplot": "plot",
}

PLOT_EXTENSIONS = (".plt", ".gp", ".gnuplot")
TEX_EXTENSIONS = (".tex",)

_FENCE_OPEN_RE = re.compile(r"^```\s*(?P<lang>[A-Za-z0-9_+-]*)(?:,height=(?P<height>\d+))?[^`]*$")
_FENCE_CLOSE_RE = re.compile(r"^```\s*$")
_LINK_RE = re.compile(r"^\s*!\[[^\]]*\]\((?P<target>[^)\s]+)(?:\s+\"[^\"]*\")?\)\s*$")
_HEADER_RE = re.compile(r"^#{1,6}\s")


@dataclass
class ScanResult:
    blocks: list[Block] = field(default_factory=list)
    headers: list[int] = field(default_factory=list)


def _resolve_target(target: str, base_dir: Path | None) -> str:
    path = Path(target).expanduser()
    if base_dir is not None and not path.is_absolute():
        path = base_dir / path
    return str(path)


def _link_kind(target: str) -> BlockKind:
    lowered = target.lower()
    if lowered.endswith(PLOT_EXTENSIONS):
        return "plot"
    if lowered.endswith(TEX_EXTENSIONS):
        return "tex"
    return "image"


def scan_document(text: str, base_dir: str | Path | None = None) -> ScanResult:
    """Scan ``text`` into blocks and fold-candidate header lines."""
    base = Path(base_dir) if base_dir is not None else None
    lines = text.split("\n")

    # byte offset at which each line starts, plus the end of the buffer
    offsets = [0]
    for line in lines:
        offsets.append(offsets[-1] + len(line.encode("utf-8")) + 1)
    offsets[-1] -= 1

    result = ScanResult()
    idx = 0
    while idx < len(lines):
        line = lines[idx]
        opening = _FENCE_OPEN_RE.match(line)
        if opening is not None:
            close = idx + 1
            while close < len(lines) and _FENCE_CLOSE_RE.match(lines[close]) is None:
                close += 1
            if close >= len(lines):
                logger.debug("Dropping unterminated fence at line %d", idx + 1)
                break

            kind = FENCE_KINDS.get(opening.group("lang").lower())
            if kind is not None:
                source = "\n".join(lines[idx + 1 : close])
                height = opening.group("height")
                result.blocks.append(
                    Block(
                        kind=kind,
                        source=source.encode("utf-8"),
                        byte_range=ByteRange(offsets[idx], offsets[close + 1]),
                        line_range=LineRange(idx + 1, close + 1),
                        height=int(height) if height else None,
                    )
                )
            idx = close + 1
            continue

        link = _LINK_RE.match(line)
        if link is not None:
            target = link.group("target")
            kind = _link_kind(target)
            # blank lines right after the link are reserved for the graphic
            end = idx
            while end + 1 < len(lines) and not lines[end + 1].strip():
                end += 1
            result.blocks.append(
                Block(
                    kind=kind,
                    source=_resolve_target(target, base).encode("utf-8"),
                    byte_range=ByteRange(offsets[idx], offsets[end + 1]),
                    line_range=LineRange(idx + 1, end + 1),
                    path=True,
                )
            )
            idx = end + 1
            continue

        if _HEADER_RE.match(line):
            result.headers.append(idx + 1)
        idx += 1

    logger.debug("Scanned %d blocks, %d headers", len(result.blocks), len(result.headers))
    return result


def scan(text: str, base_dir: str | Path | None = None) -> list[Block]:
    """Return the renderable blocks of ``text`` in document order."""
    return scan_document(text, base_dir).blocks
