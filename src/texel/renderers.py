"""Default external renderer: turns block source into a bitmap.

Math and LaTeX (inline or linked ``.tex`` files) go through ``latex`` +
``dvipng``, gnuplot through its ``pngcairo`` terminal, and image links are
decoded with Pillow. Generated PNGs are kept in ``art_dir`` under the block
fingerprint so restarting the editor does not re-run LaTeX for unchanged
equations.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Protocol

from PIL import UnidentifiedImageError

from texel.config import EngineConfig
from texel.errors import BinaryNotFoundError, RenderError
from texel.types import Bitmap, BlockKind, fingerprint

logger = logging.getLogger(__name__)

MATH_TEMPLATE = (
    "\\documentclass[20pt, preview]{{standalone}}\n"
    "\\usepackage{{amsmath}}\\usepackage{{amsfonts}}\n"
    "\\begin{{document}}\n$$\n{body}\n$$\n\\end{{document}}\n"
)

TEX_TEMPLATE = (
    "\\documentclass[20pt, preview]{{standalone}}\n"
    "\\usepackage{{amsmath}}\\usepackage{{amsfonts}}\n"
    "\\begin{{document}}\n{body}\n\\end{{document}}\n"
)

PLOT_PREAMBLE = "set terminal pngcairo transparent enhanced size {width},{height}\nset output '{output}'\n"


class RenderSource(Protocol):
    def __call__(self, kind: BlockKind, source: bytes, *, path: bool = False) -> Bitmap: ...


def parse_latex_error(output: str) -> RenderError:
    """Extract the first ``! message`` and its ``l.<n>`` location from a LaTeX log."""
    reason = ""
    element = ""
    line: int | None = None
    for entry in output.split("\n"):
        if entry.startswith("! ") and "Emergency stop" not in entry:
            if not reason:
                reason = entry[2:].strip()
        elif entry.startswith("l.") and line is None:
            number, _, rest = entry[2:].partition(" ")
            if number.isdigit():
                line = int(number)
            element = rest.strip()
    if not reason:
        reason = "LaTeX failed"
    message = f"{reason}: {element}" if element else reason
    return RenderError(message, line=line)


def _tex_document(body: str) -> str:
    return body if "\\documentclass" in body else TEX_TEMPLATE.format(body=body)


class ExternalRenderer:
    """Callable renderer backed by external programs."""

    def __init__(
        self,
        art_dir: str | Path,
        *,
        dpi: int = 300,
        timeout: float = 30.0,
        plot_size: tuple[int, int] = (800, 500),
    ) -> None:
        self.art_dir = Path(art_dir)
        self.dpi = dpi
        self.timeout = timeout
        self.plot_size = plot_size

    @classmethod
    def from_config(cls, config: EngineConfig) -> ExternalRenderer:
        return cls(config.art_dir, dpi=config.latex_dpi, timeout=config.render_timeout)

    def __call__(self, kind: BlockKind, source: bytes, *, path: bool = False) -> Bitmap:
        if kind == "image":
            return self._open_image(Path(source.decode("utf-8")))
        if kind == "plot":
            if path:
                return self._render_plot_file(Path(source.decode("utf-8")))
            return self._render_plot(source.decode("utf-8"))
        if kind == "math":
            return self._render_latex(MATH_TEMPLATE.format(body=source.decode("utf-8")), fingerprint(kind, source))
        if kind == "tex":
            if path:
                return self._render_tex_file(Path(source.decode("utf-8")))
            document = _tex_document(source.decode("utf-8"))
            return self._render_latex(document, fingerprint(kind, source))
        raise RenderError(f"Unknown block kind: {kind}")

    # --- helpers ---

    def _workdir(self) -> Path:
        try:
            self.art_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RenderError(f"Cannot create {self.art_dir}: {exc}") from exc
        return self.art_dir

    def _run(
        self, args: list[str], cwd: Path, env: dict[str, str] | None = None
    ) -> subprocess.CompletedProcess[str]:
        binary = shutil.which(args[0])
        if binary is None:
            raise BinaryNotFoundError(args[0])
        logger.debug("Running %s in %s", " ".join(args), cwd)
        try:
            return subprocess.run(
                [binary, *args[1:]],
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise RenderError(f"{args[0]} timed out after {self.timeout} seconds") from exc

    def _open_image(self, image_path: Path) -> Bitmap:
        if not image_path.exists():
            raise RenderError(f"File not found: {image_path}")
        try:
            return Bitmap.open(image_path)
        except (UnidentifiedImageError, OSError) as exc:
            raise RenderError(f"Invalid image {image_path}: {exc}") from exc

    def _render_latex(self, document: str, stem: str, search_dir: Path | None = None) -> Bitmap:
        workdir = self._workdir()
        png_path = workdir / f"{stem}.png"
        if png_path.exists():
            return self._open_image(png_path)

        tex_path = workdir / f"{stem}.tex"
        tex_path.write_text(document, encoding="utf-8")

        env = None
        if search_dir is not None:
            # trailing separator keeps the default search path
            env = {**os.environ, "TEXINPUTS": f"{search_dir}{os.pathsep}"}
        result = self._run(["latex", "-interaction=nonstopmode", "-halt-on-error", tex_path.name], workdir, env)
        if result.returncode != 0:
            if not result.stdout.strip():
                raise RenderError(f"latex exited with: {result.stderr.strip()}")
            raise parse_latex_error(result.stdout)

        result = self._run(
            ["dvipng", "-D", str(self.dpi), "-T", "tight", "-bg", "Transparent", "-o", png_path.name, f"{stem}.dvi"],
            workdir,
        )
        if result.returncode != 0 or not png_path.exists():
            raise RenderError(f"dvipng failed: {result.stderr.strip() or result.stdout.strip()}")
        return self._open_image(png_path)

    def _render_tex_file(self, tex_path: Path) -> Bitmap:
        if not tex_path.exists():
            raise RenderError(f"File not found: {tex_path}")
        try:
            body = tex_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise RenderError(f"Cannot read {tex_path}: {exc}") from exc
        document = _tex_document(body)
        # keyed by content so an edited file renders again
        return self._render_latex(document, fingerprint("tex", document.encode("utf-8")), tex_path.parent)

    def _render_plot(self, script: str) -> Bitmap:
        workdir = self._workdir()
        stem = fingerprint("plot", script.encode("utf-8"))
        png_path = workdir / f"{stem}.png"
        if png_path.exists():
            return self._open_image(png_path)

        width, height = self.plot_size
        plt_path = workdir / f"{stem}.plt"
        plt_path.write_text(
            PLOT_PREAMBLE.format(width=width, height=height, output=png_path.name) + script + "\n",
            encoding="utf-8",
        )
        result = self._run(["gnuplot", plt_path.name], workdir)
        if result.returncode != 0 or not png_path.exists():
            raise RenderError(f"gnuplot failed: {result.stderr.strip()}")
        return self._open_image(png_path)

    def _render_plot_file(self, script_path: Path) -> Bitmap:
        if not script_path.exists():
            raise RenderError(f"File not found: {script_path}")
        workdir = self._workdir()
        stem = fingerprint("plot", str(script_path).encode("utf-8"), path=True)
        png_path = workdir / f"{stem}.png"

        width, height = self.plot_size
        preamble = PLOT_PREAMBLE.format(width=width, height=height, output=png_path).replace("\n", "; ")
        result = self._run(["gnuplot", "-e", preamble, str(script_path)], script_path.parent)
        if result.returncode != 0 or not png_path.exists():
            raise RenderError(f"gnuplot failed: {result.stderr.strip()}")
        return self._open_image(png_path)
