"""Tests for texel.protocol."""

from __future__ import annotations

import json

from pydantic import TypeAdapter

from texel.engine import DrawErr, DrawOk, Engine
from texel.protocol import (
    DrawErrResult,
    DrawOkResult,
    DrawResult,
    MetadataPayload,
    Request,
    dispatch,
    draw_result,
    handle_line,
)
from texel.types import Notice

from .fakes import viewport


def _call(engine: Engine, method: str, params: dict | None = None) -> dict:
    line = json.dumps({"id": 1, "method": method, "params": params or {}})
    return json.loads(handle_line(engine, line))


class TestPayloads:
    def test_metadata_from_camel_case(self) -> None:
        payload = MetadataPayload.model_validate(
            {"start": 5, "end": 34, "width": 80, "height": 30, "cursor": 7, "originRow": 2, "originCol": 3, "gutter": 4}
        )
        metadata = payload.to_metadata()
        assert metadata.visible_line_range.start == 5
        assert metadata.visible_line_range.end == 34
        assert metadata.window_size.rows == 30
        assert metadata.window_origin.col == 3
        assert metadata.gutter_width == 4

    def test_metadata_round_trip(self) -> None:
        metadata = viewport(top=3, cursor=9, gutter=2)
        assert MetadataPayload.from_metadata(metadata).to_metadata() == metadata

    def test_draw_result_discriminator(self) -> None:
        adapter = TypeAdapter(DrawResult)
        ok = adapter.validate_python({"type": "ok", "continue": True, "messages": []})
        err = adapter.validate_python({"type": "err", "message": "boom"})
        assert isinstance(ok, DrawOkResult) and ok.continue_ is True
        assert isinstance(err, DrawErrResult) and err.message == "boom"

    def test_draw_result_from_outcome(self) -> None:
        ok = draw_result(DrawOk(continue_=False, messages=[Notice(line=3, message="bad", severity="warning")]))
        assert ok.model_dump(by_alias=True) == {
            "type": "ok",
            "continue": False,
            "messages": [{"line": 3, "message": "bad", "severity": "warning"}],
        }
        assert draw_result(DrawErr(message="x")).model_dump() == {"type": "err", "message": "x"}


class TestDispatch:
    def test_update_metadata(self, engine: Engine) -> None:
        params = {"start": 1, "end": 30, "width": 80, "height": 30}
        assert _call(engine, "update_metadata", params)["result"] == {"changed": True}
        assert _call(engine, "update_metadata", params)["result"] == {"changed": False}

    def test_update_content(self, engine: Engine) -> None:
        response = _call(engine, "update_content", {"content": "# H\n```math\nx\n```\n"})
        assert response["id"] == 1
        assert response["error"] is None
        assert response["result"]["shouldRedraw"] is True
        assert response["result"]["updateFolding"] == [1]
        assert response["result"]["errors"] == []

    def test_set_folds(self, engine: Engine) -> None:
        assert _call(engine, "set_folds", {"folds": [[2, 5]]})["result"] == {"anyChanged": True}

    def test_draw(self, engine: Engine) -> None:
        result = _call(engine, "draw")["result"]
        assert result == {"type": "ok", "continue": False, "messages": []}

    def test_clear_all(self, engine: Engine) -> None:
        response = _call(engine, "clear_all")
        assert response["result"] is None
        assert response["error"] is None

    def test_set_base_dir(self, engine: Engine) -> None:
        _call(engine, "set_base_dir", {"baseDir": "/docs"})
        assert str(engine.base_dir) == "/docs"

    def test_unknown_method(self, engine: Engine) -> None:
        response = dispatch(engine, Request(id=7, method="explode"))
        assert response.id == 7
        assert response.error == "Unknown method: explode"

    def test_invalid_params(self, engine: Engine) -> None:
        response = _call(engine, "update_metadata", {"start": 0})
        assert response["result"] is None
        assert response["error"].startswith("Invalid params for update_metadata")

    def test_invalid_json(self, engine: Engine) -> None:
        response = json.loads(handle_line(engine, "{not json"))
        assert response == {"id": None, "result": None, "error": "Invalid request"}
