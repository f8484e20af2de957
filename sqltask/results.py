"""
Render result sets as a tab-separated text report.
"""
from __future__ import annotations

import logging
import typing as t
from dataclasses import dataclass, field

from sqltask.constants import SEPARATOR_WIDTH


@dataclass
class ResultSet:
    """One result set of an execution.

    ``rows`` may be a one-shot iterator streamed from the cursor.  ``rowcount``
    only means something when the statement produced no rows (DML); ``-1``
    stands for "not applicable".
    """

    columns: t.Sequence[str] | None = None
    rows: t.Iterable[t.Sequence[t.Any]] = field(default_factory=list)
    rowcount: int = -1


def _text(value: t.Any) -> str:
    return "" if value is None else str(value)


def format_results(results: t.Iterable[ResultSet], sink: t.TextIO) -> int:
    """
    Write every result set in *results* to *sink*.

    Returns the total of the reported affected-row counts, or ``-1`` if no
    result set reported one.
    """
    affected = -1
    for rs in results:
        if rs.columns is not None:
            sink.write("\t".join(rs.columns) + "\n")
            sink.write("-" * SEPARATOR_WIDTH + "\n")
        for row in rs.rows:
            sink.write("\t".join(_text(v) for v in row) + "\n")
        sink.write("\n")
        if rs.rowcount >= 0:
            affected = max(affected, 0) + rs.rowcount
    return affected


class LogEcho:
    """Text sink that writes through to *sink* and mirrors lines to *log*."""

    def __init__(self, sink: t.TextIO, log: logging.Logger) -> None:
        self._sink = sink
        self._log = log
        self._pending = ""

    def write(self, text: str) -> int:
        written = self._sink.write(text)
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._log.info(line)
        return written

    def flush(self) -> None:
        if self._pending:
            self._log.info(self._pending)
            self._pending = ""
        self._sink.flush()
