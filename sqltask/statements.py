"""
Split a SQL script into statements, or fold it into one batch payload.

Two delimiter conventions are understood:

• ``Normal`` – the token may appear anywhere, ``INSERT …; INSERT …;``
• ``Line``   – the token must sit alone on its line, as a bare ``GO`` does

Statements are never parsed; whatever sits between two delimiters is passed
through verbatim (trimmed).
"""
from __future__ import annotations

import enum
import pathlib
import re
import typing as t
from dataclasses import dataclass

from sqltask.errors import ConfigError

_NEWLINE_RE = re.compile(r"\r\n|\r|\n")


class DelimiterStyle(enum.Enum):
    NORMAL = "Normal"
    LINE = "Line"

    @classmethod
    def parse(cls, value: str | DelimiterStyle) -> DelimiterStyle:
        if isinstance(value, cls):
            return value
        for style in cls:
            if style.value.lower() == str(value).strip().lower():
                return style
        raise ConfigError(
            f"Invalid delimiter style {value!r}; expected Normal or Line"
        )


@dataclass(frozen=True)
class DelimiterConfig:
    token: str
    style: DelimiterStyle = DelimiterStyle.NORMAL
    case_sensitive: bool = False

    def __post_init__(self) -> None:
        if not self.token or not self.token.strip():
            raise ConfigError("Delimiter must not be empty")

    def closes_statement(self, line: str) -> bool:
        """Return True if *line* is a ``Line``-style delimiter line."""
        stripped = line.strip()
        if self.case_sensitive:
            return stripped == self.token.strip()
        return stripped.casefold() == self.token.strip().casefold()


def _split_normal(text: str, token: str) -> t.Iterator[str]:
    yield from text.split(token)


def _split_lines(text: str, cfg: DelimiterConfig) -> t.Iterator[str]:
    buf: list[str] = []
    # only real line breaks; form feeds etc. inside literals stay put
    for line in _NEWLINE_RE.split(text):
        if cfg.closes_statement(line):
            yield "\n".join(buf)
            buf.clear()
            continue
        buf.append(line)
    if buf:
        yield "\n".join(buf)


def split(text: str, cfg: DelimiterConfig) -> list[str]:
    """
    Return the trimmed, non-empty statements of *text* in script order.
    """
    if cfg.style is DelimiterStyle.LINE:
        segments = _split_lines(text, cfg)
    else:
        segments = _split_normal(text, cfg.token)
    return [s.strip() for s in segments if s.strip()]


def read_script(path: pathlib.Path | str) -> str:
    path = pathlib.Path(path)
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"SQL source file {path} not found") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read SQL source file {path}: {exc}") from exc


def split_file(path: pathlib.Path | str, cfg: DelimiterConfig) -> list[str]:
    return split(read_script(path), cfg)


def adapt(text: str, cfg: DelimiterConfig, separator: str = "\n") -> str:
    """
    Fold *text* into a single payload for one execution call.

    The script's own delimiters are dropped and statements are re-joined with
    *separator*, so the boundaries are exactly those :func:`split` finds.  When
    *separator* carries a terminator (``;`` for MySQL), a trailing terminator is
    stripped from each statement first.
    """
    statements = split(text, cfg)
    terminator = separator.strip()
    if terminator:
        # a statement that already ends in the terminator must not get a second one
        statements = [s.removesuffix(terminator).rstrip() for s in statements]
    return separator.join(s for s in statements if s)


def adapt_file(
    path: pathlib.Path | str, cfg: DelimiterConfig, separator: str = "\n"
) -> str:
    return adapt(read_script(path), cfg, separator)
