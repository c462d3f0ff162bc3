"""Map blocks to screen rectangles.

Layout is a pure function of a block's line range, the viewport metadata and
the fold table. Nothing is remembered between calls: after a scroll or fold
change every rectangle is derived again from scratch.
"""

from __future__ import annotations

from collections.abc import Sequence

from texel.types import Block, FoldEntry, LineRange, ScreenRect, ViewportMetadata


def _containing_fold(line: int, folds: Sequence[FoldEntry]) -> FoldEntry | None:
    for fold in folds:
        if fold.start_line > line:
            break
        if fold.hides(line):
            return fold
    return None


def _folded_away(lines: LineRange, folds: Sequence[FoldEntry]) -> bool:
    """True when ``lines`` collapse into a closed fold.

    That is the case for a block inside the fold body, and for one that starts
    on the marker line and ends inside the body.
    """
    for fold in folds:
        if fold.start_line > lines.start:
            break
        if fold.closed and lines.end <= fold.end_line and (fold.start_line < lines.start or lines.start < lines.end):
            return True
    return False


def marker_line(line: int, folds: Sequence[FoldEntry]) -> int:
    """The buffer line that is actually displayed for ``line``."""
    fold = _containing_fold(line, folds)
    return fold.start_line if fold is not None else line


def screen_index(line: int, folds: Sequence[FoldEntry]) -> int:
    """Number of screen lines before ``line`` when counting from line 1.

    Every closed fold collapses its body into the marker line.
    """
    line = marker_line(line, folds)
    hidden = 0
    for fold in folds:
        if fold.start_line >= line:
            break
        if fold.closed:
            hidden += fold.end_line - fold.start_line
    return line - 1 - hidden


def position(
    block: Block,
    metadata: ViewportMetadata,
    folds: Sequence[FoldEntry] = (),
    *,
    hide_under_cursor: bool = False,
) -> ScreenRect | None:
    """Compute where ``block`` is drawn, or None when it is not visible."""
    lines = block.display_range
    visible = metadata.visible_line_range

    if lines.end < visible.start or lines.start > visible.end:
        return None

    if _folded_away(lines, folds):
        return None

    if hide_under_cursor and metadata.cursor_line in block.line_range:
        return None

    top = screen_index(visible.start, folds)
    first = screen_index(lines.start, folds)
    last = screen_index(lines.end, folds)
    total_rows = last - first + 1

    window_rows = metadata.window_size.rows
    offset = first - top
    skip_rows = max(0, -offset)
    rows = min(total_rows - skip_rows, window_rows - max(0, offset))
    if rows <= 0:
        return None

    col = metadata.window_origin.col + metadata.gutter_width
    cols = metadata.window_size.cols - metadata.gutter_width
    if cols <= 0:
        return None

    return ScreenRect(
        row=metadata.window_origin.row + max(0, offset),
        col=col,
        rows=rows,
        cols=cols,
        skip_rows=skip_rows,
        total_rows=total_rows,
    )


def layout(
    blocks: Sequence[Block],
    metadata: ViewportMetadata,
    folds: Sequence[FoldEntry] = (),
    *,
    hide_under_cursor: bool = False,
) -> list[tuple[Block, ScreenRect]]:
    """Position every visible block, ordered top to bottom."""
    placed = []
    for block in blocks:
        rect = position(block, metadata, folds, hide_under_cursor=hide_under_cursor)
        if rect is not None:
            placed.append((block, rect))
    placed.sort(key=lambda item: (item[1].row, item[0].line_range.start))
    return placed
