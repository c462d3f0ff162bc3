"""CLI entry point for texel. Uses Click for argument parsing."""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

import click

from texel.config import EngineConfig, load_config
from texel.engine import Engine, run_draw_loop
from texel.protocol import handle_line
from texel.types import CellPosition, LineRange, ViewportMetadata, WindowSize

_CLEAR_SCREEN = "\x1b[2J\x1b[H"

LOG_LEVELS = click.Choice(["debug", "info", "warning", "error"])


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load(config_path: str | None) -> EngineConfig:
    return load_config(config_path) if config_path else load_config()


def _tty_writer(stream: BinaryIO) -> Callable[[bytes], None]:
    """Writer for a buffered binary stream; each call is flushed in full."""

    def write(data: bytes) -> None:
        stream.write(data)
        stream.flush()

    return write


@click.group(invoke_without_command=True)
@click.pass_context
def main(ctx):
    """Render math, plots and images from a text buffer as sixel graphics."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command("preview")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--top", default=1, type=int, help="First buffer line to show")
@click.option("--interval", default=50, type=int, help="Milliseconds between draw ticks")
@click.option("--timeout", default=30.0, type=float, help="Seconds to wait for renders")
@click.option("--config", "config_path", default=None, help="Path to a JSON config file")
@click.option("--log-level", default="warning", type=LOG_LEVELS)
def preview(file, top, interval, timeout, config_path, log_level):
    """Show FILE in the terminal with its blocks rendered in place."""
    _setup_logging(log_level)
    config = _load(config_path)
    size = shutil.get_terminal_size()
    rows = max(1, size.lines - 1)
    text = file.read_text(encoding="utf-8")
    lines = text.split("\n")

    click.echo(_CLEAR_SCREEN, nl=False)
    for line in lines[top - 1 : top - 1 + rows]:
        click.echo(line[: size.columns])

    with Engine(config, base_dir=file.parent) as engine:
        engine.update_metadata(
            ViewportMetadata(
                visible_line_range=LineRange(top, max(top, top + rows - 1)),
                window_size=WindowSize(rows=rows, cols=size.columns),
                cursor_line=0,
                window_origin=CellPosition(1, 1),
            )
        )
        update = engine.update_content(text)
        if not engine.pipeline.wait(timeout):
            click.echo("Some renders did not finish in time", err=True)
        messages = list(update.errors)
        messages.extend(asyncio.run(run_draw_loop(engine, interval=interval / 1000)))

    click.echo(f"\x1b[{rows + 1};1H", nl=False)
    seen = set()
    for notice in messages:
        key = (notice.line, notice.message)
        if key in seen:
            continue
        seen.add(key)
        click.echo(f"{file.name}:{notice.line}: {notice.severity}: {notice.message}", err=True)


@main.command("serve")
@click.option("--tty", "tty_path", default="/dev/tty", help="Where graphics are written")
@click.option("--config", "config_path", default=None, help="Path to a JSON config file")
@click.option("--log-level", default="warning", type=LOG_LEVELS)
def serve(tty_path, config_path, log_level):
    """Answer JSON requests on stdin, one per line, drawing to --tty."""
    _setup_logging(log_level)
    config = _load(config_path)
    with open(tty_path, "wb") as tty:
        with Engine(config, write=_tty_writer(tty)) as engine:
            for line in sys.stdin:
                if not line.strip():
                    continue
                sys.stdout.write(handle_line(engine, line) + "\n")
                sys.stdout.flush()


if __name__ == "__main__":
    main()
