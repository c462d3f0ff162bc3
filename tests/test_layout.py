"""Tests for texel.layout."""

from __future__ import annotations

from texel.layout import layout, marker_line, position, screen_index
from texel.types import Block, ByteRange, CellPosition, FoldEntry, LineRange, ScreenRect, ViewportMetadata, WindowSize

from .fakes import viewport


def _block(start: int, end: int, source: bytes = b"x", height: int | None = None) -> Block:
    return Block(kind="math", source=source, byte_range=ByteRange(0, 1), line_range=LineRange(start, end), height=height)


# ---------------------------------------------------------------------------
# Fold arithmetic
# ---------------------------------------------------------------------------


class TestScreenIndex:
    def test_no_folds(self) -> None:
        assert screen_index(1, ()) == 0
        assert screen_index(10, ()) == 9

    def test_closed_fold_collapses_body(self) -> None:
        folds = (FoldEntry(2, 6),)
        assert screen_index(10, folds) == 5

    def test_hidden_line_maps_to_marker(self) -> None:
        folds = (FoldEntry(2, 6),)
        assert marker_line(4, folds) == 2
        assert screen_index(4, folds) == screen_index(2, folds) == 1

    def test_open_fold_takes_space(self) -> None:
        assert screen_index(10, (FoldEntry(2, 6, closed=False),)) == 9


# ---------------------------------------------------------------------------
# position
# ---------------------------------------------------------------------------


class TestPosition:
    def test_fully_visible(self) -> None:
        rect = position(_block(10, 12), viewport(top=1))
        assert rect == ScreenRect(row=10, col=1, rows=3, cols=80, skip_rows=0, total_rows=3)

    def test_above_viewport(self) -> None:
        assert position(_block(1, 3), viewport(top=10)) is None

    def test_below_viewport(self) -> None:
        assert position(_block(50, 52), viewport(top=1, rows=30)) is None

    def test_scroll_shifts_row(self) -> None:
        before = position(_block(10, 12), viewport(top=1))
        after = position(_block(10, 12), viewport(top=6))
        assert before is not None and after is not None
        assert before.row - after.row == 5

    def test_clipped_at_top(self) -> None:
        rect = position(_block(8, 12), viewport(top=10))
        assert rect == ScreenRect(row=1, col=1, rows=3, cols=80, skip_rows=2, total_rows=5)

    def test_clipped_at_bottom(self) -> None:
        rect = position(_block(29, 33), viewport(top=1, rows=30))
        assert rect is not None
        assert rect.row == 29
        assert rect.rows == 2
        assert rect.skip_rows == 0
        assert rect.total_rows == 5

    def test_taller_than_window(self) -> None:
        rect = position(_block(5, 100), viewport(top=10, rows=20))
        assert rect is not None
        assert rect.row == 1
        assert rect.rows == 20
        assert rect.skip_rows == 5

    def test_origin_and_gutter(self) -> None:
        metadata = ViewportMetadata(
            visible_line_range=LineRange(1, 20),
            window_size=WindowSize(rows=20, cols=60),
            cursor_line=0,
            window_origin=CellPosition(row=3, col=5),
            gutter_width=4,
        )
        rect = position(_block(2, 2), metadata)
        assert rect is not None
        assert (rect.row, rect.col, rect.cols) == (4, 9, 56)

    def test_gutter_consumes_window(self) -> None:
        assert position(_block(1, 1), viewport(cols=4, gutter=4)) is None

    def test_inside_closed_fold_hidden(self) -> None:
        assert position(_block(10, 12), viewport(), (FoldEntry(8, 20),)) is None

    def test_starts_on_marker_line_hidden(self) -> None:
        assert position(_block(8, 10), viewport(), (FoldEntry(8, 20),)) is None
        assert position(_block(2, 4), viewport(), (FoldEntry(2, 10),)) is None

    def test_single_line_on_marker_line_visible(self) -> None:
        rect = position(_block(8, 8), viewport(), (FoldEntry(8, 20),))
        assert rect is not None
        assert rect.row == 8
        assert rect.total_rows == 1

    def test_starts_on_marker_line_ends_outside(self) -> None:
        rect = position(_block(8, 22), viewport(), (FoldEntry(8, 20),))
        assert rect is not None
        assert rect.row == 8
        assert rect.total_rows == 3

    def test_starts_in_fold_ends_outside(self) -> None:
        rect = position(_block(8, 12), viewport(), (FoldEntry(5, 10),))
        assert rect is not None
        assert rect.row == 5
        assert rect.total_rows == 3

    def test_block_after_fold_moves_up(self) -> None:
        rect = position(_block(10, 10), viewport(), (FoldEntry(2, 6),))
        assert rect is not None
        assert rect.row == 6

    def test_open_fold_changes_nothing(self) -> None:
        folded = position(_block(10, 10), viewport(), (FoldEntry(2, 6, closed=False),))
        assert folded == position(_block(10, 10), viewport())

    def test_cursor_hides_block(self) -> None:
        block = _block(10, 12)
        assert position(block, viewport(cursor=11), hide_under_cursor=True) is None
        assert position(block, viewport(cursor=11), hide_under_cursor=False) is not None
        assert position(block, viewport(cursor=13), hide_under_cursor=True) is not None

    def test_height_sets_rows(self) -> None:
        block = _block(10, 12, height=6)
        rect = position(block, viewport())
        assert rect is not None
        assert rect.row == 10
        assert rect.total_rows == 6

    def test_height_extends_visibility(self) -> None:
        block = _block(10, 12, height=6)
        rect = position(block, viewport(top=14))
        assert rect is not None
        assert rect.row == 1
        assert (rect.skip_rows, rect.rows) == (4, 2)

    def test_cursor_below_source_keeps_tall_block(self) -> None:
        block = _block(10, 12, height=6)
        assert position(block, viewport(cursor=14), hide_under_cursor=True) is not None
        assert position(block, viewport(cursor=12), hide_under_cursor=True) is None


class TestLayout:
    def test_ordered_top_to_bottom(self) -> None:
        blocks = [_block(20, 21, b"b"), _block(3, 4, b"a"), _block(90, 91, b"c")]
        placed = layout(blocks, viewport(top=1, rows=30))
        assert [block.line_range.start for block, _ in placed] == [3, 20]

    def test_identical_sources_get_distinct_rects(self) -> None:
        placed = layout([_block(2, 2), _block(6, 6)], viewport())
        assert len(placed) == 2
        assert placed[0][0].fingerprint == placed[1][0].fingerprint
        assert placed[0][1].row != placed[1][1].row
