"""Tests for texel.types."""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from texel.types import Bitmap, FoldEntry, LineRange, ScreenRect, normalize_folds


class TestLineRange:
    def test_contains_and_len(self) -> None:
        lines = LineRange(3, 5)
        assert 3 in lines and 5 in lines
        assert 6 not in lines
        assert len(lines) == 3

    def test_rejects_inverted(self) -> None:
        with pytest.raises(ValueError):
            LineRange(5, 4)

    def test_overlaps(self) -> None:
        assert LineRange(1, 3).overlaps(LineRange(3, 4))
        assert not LineRange(1, 3).overlaps(LineRange(4, 6))


class TestFolds:
    def test_hides_body_not_marker(self) -> None:
        fold = FoldEntry(5, 8)
        assert not fold.hides(5)
        assert fold.hides(6) and fold.hides(8)
        assert not fold.hides(9)

    def test_open_fold_hides_nothing(self) -> None:
        assert not FoldEntry(5, 8, closed=False).hides(6)

    def test_normalize_sorts(self) -> None:
        folds = normalize_folds([FoldEntry(20, 25), FoldEntry(1, 3)])
        assert folds == (FoldEntry(1, 3), FoldEntry(20, 25))

    def test_normalize_merges_nested(self) -> None:
        folds = normalize_folds([FoldEntry(12, 14), FoldEntry(10, 20)])
        assert folds == (FoldEntry(10, 20),)

    def test_normalize_merges_overlapping(self) -> None:
        folds = normalize_folds([FoldEntry(1, 5), FoldEntry(4, 9)])
        assert folds == (FoldEntry(1, 9),)

    def test_normalize_drops_inverted(self) -> None:
        assert normalize_folds([FoldEntry(5, 2)]) == ()


class TestScreenRect:
    def test_total_rows_defaults_to_visible(self) -> None:
        assert ScreenRect(row=1, col=1, rows=4, cols=10, skip_rows=2).total_rows == 6


class TestBitmap:
    def test_equality_by_pixels(self) -> None:
        a = Bitmap(Image.new("L", (4, 4), 10))
        b = Bitmap(Image.new("L", (4, 4), 10))
        c = Bitmap(Image.new("L", (4, 4), 11))
        assert a == b
        assert a != c

    def test_open_converts_palette_images(self, tmp_path: Path) -> None:
        path = tmp_path / "p.png"
        Image.new("P", (3, 2)).save(path)
        bitmap = Bitmap.open(path)
        assert bitmap.mode == "RGBA"
        assert (bitmap.width, bitmap.height) == (3, 2)

    def test_open_keeps_gray(self, tmp_path: Path) -> None:
        path = tmp_path / "g.png"
        Image.new("L", (3, 2)).save(path)
        assert Bitmap.open(path).mode == "L"
