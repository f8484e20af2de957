"""
Generic helpers that are reused across sub‑modules.
"""
from __future__ import annotations
import sqlparse


def statement_kind(sql: str) -> str:
    """
    Classify *sql* by its leading keyword (``SELECT``, ``INSERT``, ``CREATE``…).
    Comments are skipped; anything sqlparse cannot place is ``UNKNOWN``.
    """
    parsed = sqlparse.parse(sql)
    if not parsed:
        return "UNKNOWN"
    return parsed[0].get_type()


def preview(sql: str, width: int = 60) -> str:
    """One-line abbreviation of *sql* for log messages."""
    flat = " ".join(sql.split())
    return flat if len(flat) <= width else flat[: width - 1] + "…"
