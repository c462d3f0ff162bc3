"""JSON wire format between an editor plugin and the engine.

All models use Pydantic with camelCase aliases, so payloads written by a Lua
or Vimscript plugin validate directly and results serialize back the same
way. One request or response per line.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from texel.engine import ContentUpdate, DrawErr, DrawOutcome, Engine
from texel.types import CellPosition, LineRange, Notice, ViewportMetadata, WindowSize

logger = logging.getLogger(__name__)


# --- Payloads ---


class MetadataPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: int = Field(ge=1)
    end: int = Field(ge=1)
    width: int = Field(ge=1)
    height: int = Field(ge=1)
    cursor: int = 1
    origin_row: int = Field(default=1, alias="originRow")
    origin_col: int = Field(default=1, alias="originCol")
    gutter: int = Field(default=0, ge=0)

    def to_metadata(self) -> ViewportMetadata:
        return ViewportMetadata(
            visible_line_range=LineRange(self.start, max(self.start, self.end)),
            window_size=WindowSize(rows=self.height, cols=self.width),
            cursor_line=self.cursor,
            window_origin=CellPosition(row=self.origin_row, col=self.origin_col),
            gutter_width=self.gutter,
        )

    @classmethod
    def from_metadata(cls, metadata: ViewportMetadata) -> MetadataPayload:
        return cls(
            start=metadata.visible_line_range.start,
            end=metadata.visible_line_range.end,
            width=metadata.window_size.cols,
            height=metadata.window_size.rows,
            cursor=metadata.cursor_line,
            origin_row=metadata.window_origin.row,
            origin_col=metadata.window_origin.col,
            gutter=metadata.gutter_width,
        )


class ContentPayload(BaseModel):
    content: str


class FoldsPayload(BaseModel):
    folds: list[tuple[int, int]] = Field(default_factory=list)


class BaseDirPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    base_dir: str | None = Field(default=None, alias="baseDir")


# --- Results ---


class NoticeModel(BaseModel):
    line: int
    message: str
    severity: Literal["error", "warning"] = "error"

    @classmethod
    def from_notice(cls, notice: Notice) -> NoticeModel:
        return cls(line=notice.line, message=notice.message, severity=notice.severity)


class ContentResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    should_redraw: bool = Field(alias="shouldRedraw")
    update_folding: list[int] | None = Field(default=None, alias="updateFolding")
    errors: list[NoticeModel] = Field(default_factory=list)

    @classmethod
    def from_update(cls, update: ContentUpdate) -> ContentResult:
        return cls(
            should_redraw=update.should_redraw,
            update_folding=update.update_folding,
            errors=[NoticeModel.from_notice(n) for n in update.errors],
        )


class MetadataResult(BaseModel):
    changed: bool


class FoldsResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    any_changed: bool = Field(alias="anyChanged")


class DrawOkResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["ok"] = "ok"
    continue_: bool = Field(alias="continue")
    messages: list[NoticeModel] = Field(default_factory=list)


class DrawErrResult(BaseModel):
    type: Literal["err"] = "err"
    message: str


DrawResult = Annotated[DrawOkResult | DrawErrResult, Field(discriminator="type")]


def draw_result(outcome: DrawOutcome) -> DrawOkResult | DrawErrResult:
    if isinstance(outcome, DrawErr):
        return DrawErrResult(message=outcome.message)
    return DrawOkResult(
        continue_=outcome.continue_,
        messages=[NoticeModel.from_notice(n) for n in outcome.messages],
    )


# --- Envelope ---


class Request(BaseModel):
    id: int | str | None = None
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class Response(BaseModel):
    id: int | str | None = None
    result: Any = None
    error: str | None = None


METHODS = ("update_metadata", "update_content", "set_folds", "draw", "clear_all", "set_base_dir")


def dispatch(engine: Engine, request: Request) -> Response:
    """Run one request against ``engine``."""
    if request.method not in METHODS:
        return Response(id=request.id, error=f"Unknown method: {request.method}")
    try:
        result = _call(engine, request.method, request.params)
    except ValidationError as exc:
        return Response(id=request.id, error=f"Invalid params for {request.method}: {exc.error_count()} error(s)")
    return Response(id=request.id, result=result)


def _call(engine: Engine, method: str, params: dict[str, Any]) -> Any:
    match method:
        case "update_metadata":
            payload = MetadataPayload.model_validate(params)
            return MetadataResult(changed=engine.update_metadata(payload.to_metadata())).model_dump()
        case "update_content":
            content = ContentPayload.model_validate(params)
            return ContentResult.from_update(engine.update_content(content.content)).model_dump(by_alias=True)
        case "set_folds":
            folds = FoldsPayload.model_validate(params)
            return FoldsResult(any_changed=engine.set_folds(folds.folds)).model_dump(by_alias=True)
        case "draw":
            return draw_result(engine.draw()).model_dump(by_alias=True)
        case "clear_all":
            engine.clear_all()
            return None
        case "set_base_dir":
            payload = BaseDirPayload.model_validate(params)
            engine.set_base_dir(payload.base_dir)
            return None


def handle_line(engine: Engine, line: str) -> str:
    """Decode one JSON request line and encode the response."""
    try:
        request = Request.model_validate_json(line)
    except ValidationError as exc:
        logger.debug("Rejecting request %r: %s", line, exc)
        return Response(error="Invalid request").model_dump_json()
    response = dispatch(engine, request)
    if response.error:
        logger.debug("Request %s failed: %s", request.method, response.error)
    return response.model_dump_json()
