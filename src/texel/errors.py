"""Exception types raised by renderers and the engine."""

from __future__ import annotations


class TexelError(Exception):
    """Base class for texel errors."""


class RenderError(TexelError):
    """The external renderer could not produce a bitmap for a block.

    ``line`` is the offending line inside the block source, when the
    renderer reports one (LaTeX does).
    """

    def __init__(self, message: str, line: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.line = line

    def display(self) -> str:
        if self.line is not None:
            return f"{self.message} (line {self.line})"
        return self.message


class BinaryNotFoundError(RenderError):
    """A required external program is not on PATH."""

    def __init__(self, binary: str) -> None:
        super().__init__(f"Required program not found: {binary}")
        self.binary = binary
