"""texel: render math, plots and images from a text buffer as terminal graphics."""

# Render cache
from texel.cache import RenderCache, RenderEntry

# Configuration
from texel.config import EngineConfig, load_config

# Host-facing engine
from texel.engine import ContentUpdate, DrawErr, DrawOk, Engine, run_draw_loop

# Errors
from texel.errors import BinaryNotFoundError, RenderError, TexelError

# Layout
from texel.layout import layout, position

# Renders
from texel.pipeline import PipelineDelta, RenderPipeline
from texel.renderers import ExternalRenderer

# Block scanning
from texel.scanner import ScanResult, scan, scan_document

# Draw loop
from texel.scheduler import DrawScheduler, DrawTick

# Sixel encoding
from texel.sixel import EncodedImage, SixelEncoder, SixelPlan

# State
from texel.state import EngineState, Snapshot

# Data model
from texel.types import (
    Bitmap,
    Block,
    BlockKind,
    ByteRange,
    CellPosition,
    FoldEntry,
    LineRange,
    Notice,
    ScreenRect,
    ViewportMetadata,
    WindowSize,
)

__all__ = [
    # Data model
    "Bitmap",
    "Block",
    "BlockKind",
    "ByteRange",
    "CellPosition",
    "FoldEntry",
    "LineRange",
    "Notice",
    "ScreenRect",
    "ViewportMetadata",
    "WindowSize",
    # Errors
    "BinaryNotFoundError",
    "RenderError",
    "TexelError",
    # Scanning and rendering
    "ExternalRenderer",
    "PipelineDelta",
    "RenderCache",
    "RenderEntry",
    "RenderPipeline",
    "ScanResult",
    "scan",
    "scan_document",
    # Layout and drawing
    "DrawScheduler",
    "DrawTick",
    "EncodedImage",
    "SixelPlan",
    "SixelEncoder",
    "layout",
    "position",
    # Engine
    "ContentUpdate",
    "DrawErr",
    "DrawOk",
    "Engine",
    "EngineConfig",
    "EngineState",
    "Snapshot",
    "load_config",
    "run_draw_loop",
]
