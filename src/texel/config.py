"""Engine configuration."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def get_config_dir() -> Path:
    root = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return root / "texel"


def get_config_path() -> Path:
    return get_config_dir() / "config.json"


def _default_art_dir() -> str:
    cache_root = os.environ.get("XDG_CACHE_HOME", os.path.expanduser("~/.cache"))
    return str(Path(cache_root) / "texel" / "arts")


@dataclass
class EngineConfig:
    """Tunables for rendering, encoding and the draw loop."""

    # render cache
    cache_capacity: int = 128
    cache_shards: int = 16
    render_workers: int = 2
    render_timeout: float = 30.0
    latex_dpi: int = 300
    art_dir: str = field(default_factory=_default_art_dir)

    # terminal geometry, in pixels per cell
    cell_width: int = 10
    cell_height: int = 20

    # sixel transmission
    chunk_rows: int = 8
    max_chunks: int = 64
    encoded_cache_size: int = 64

    # draw loop
    tick_budget_bytes: int = 64 * 1024
    hide_under_cursor: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        """Build a config from snake_case or camelCase keys, ignoring unknown ones."""
        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_RE.sub("_", key).lower()
            if name not in known:
                logger.debug("Ignoring unknown config key %r", key)
                continue
            values[name] = value
        return cls(**values)


def load_config(path: str | Path | None = None) -> EngineConfig:
    config_path = Path(path) if path is not None else get_config_path()
    if not config_path.exists():
        return EngineConfig()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Could not read config %s: %s", config_path, exc)
        return EngineConfig()
    if not isinstance(data, dict):
        return EngineConfig()
    return EngineConfig.from_dict(data)
