"""
Connection plumbing: the only module that talks to a DB‑API driver.

The default driver is ``mysql.connector``; anything that behaves like a DB‑API
2.0 connection can be plugged in through the *connect* factory.
"""
from __future__ import annotations

import logging
import re
import typing as t
import urllib.parse
from contextlib import contextmanager

import mysql.connector

from sqltask.config import from_env
from sqltask.constants import MYSQL_PORT
from sqltask.errors import ConfigError, ConnectError, StatementError
from sqltask.results import ResultSet

log = logging.getLogger(__name__)

Connect = t.Callable[..., t.Any]
MessageHandler = t.Callable[[str], None]

# Key=Value connection-string aliases → mysql‑connector kwargs
_KEY_ALIASES = {
    "server": "host",
    "host": "host",
    "data source": "host",
    "address": "host",
    "port": "port",
    "database": "database",
    "initial catalog": "database",
    "user": "user",
    "user id": "user",
    "uid": "user",
    "username": "user",
    "password": "password",
    "pwd": "password",
}

_PASSWORD_RE = re.compile(
    r"(?P<key>(?:^|;)\s*(?:password|pwd)\s*=)[^;]*", re.IGNORECASE
)


def _parse_url(text: str) -> dict[str, t.Any]:
    url = urllib.parse.urlsplit(text)
    kwargs: dict[str, t.Any] = {}
    if url.hostname:
        kwargs["host"] = url.hostname
    try:
        kwargs["port"] = url.port or MYSQL_PORT
    except ValueError as exc:
        raise ConfigError(f"Invalid port in connection string: {exc}") from exc
    if url.username:
        kwargs["user"] = urllib.parse.unquote(url.username)
    if url.password is not None:
        kwargs["password"] = from_env(urllib.parse.unquote(url.password))
    database = url.path.lstrip("/")
    if database:
        kwargs["database"] = database
    for key, value in urllib.parse.parse_qsl(url.query):
        kwargs[key.lower()] = value
    return kwargs


def _parse_pairs(text: str) -> dict[str, t.Any]:
    kwargs: dict[str, t.Any] = {}
    for chunk in text.split(";"):
        if not chunk.strip():
            continue
        key, sep, value = chunk.partition("=")
        if not sep or not key.strip():
            raise ConfigError(f"Malformed connection string segment {chunk!r}")
        key = key.strip().lower()
        kwargs[_KEY_ALIASES.get(key, key)] = from_env(value.strip())
    if "port" in kwargs:
        try:
            kwargs["port"] = int(kwargs["port"])
        except ValueError as exc:
            raise ConfigError(f"Invalid port {kwargs['port']!r}") from exc
    return kwargs


def parse_connection_string(text: str) -> dict[str, t.Any]:
    """
    Turn *text* into keyword arguments for the driver's ``connect``.

    Accepts ``mysql://user:pw@host:port/db?opt=val`` or
    ``Server=host;Database=db;User Id=u;Password=pw``.
    """
    text = text.strip()
    if not text:
        raise ConfigError("Connection string must not be empty")
    if "://" in text:
        return _parse_url(text)
    return _parse_pairs(text)


def mask_connection_string(text: str) -> str:
    """Return *text* with its password replaced by ``***``."""
    if "://" in text:
        url = urllib.parse.urlsplit(text)
        if url.password is None:
            return text
        netloc = url.netloc.replace(f":{url.password}@", ":***@", 1)
        return urllib.parse.urlunsplit(url._replace(netloc=netloc))
    return _PASSWORD_RE.sub(r"\g<key>***", text)


def _mysql_connect(**kwargs: t.Any):
    return mysql.connector.connect(**kwargs, get_warnings=True)


@contextmanager
def connection(connection_string: str, *, connect: Connect | None = None):
    """
    Context‑manager that yields an open DB‑API connection and closes it on
    every exit path.  Commit / rollback is left to the caller.
    """
    kwargs = parse_connection_string(connection_string)
    connect = connect or _mysql_connect
    log.debug("Connecting to %s", mask_connection_string(connection_string))
    try:
        conn = connect(**kwargs)
    except Exception as exc:
        raise ConnectError(f"Cannot open connection: {exc}") from exc

    try:
        yield conn
    finally:
        conn.close()


class Session:
    """
    Executes payloads on one connection and streams their result sets.

    Server warnings / notices are handed to *on_message* as soon as the
    payload has been consumed.
    """

    # MySQL needs the terminator between statements of a multi‑statement call
    batch_separator = ";\n"

    def __init__(self, conn, on_message: MessageHandler | None = None) -> None:
        self.conn = conn
        self.on_message = on_message

    def begin(self) -> None:
        try:
            self.conn.start_transaction()
        except Exception as exc:
            raise ConnectError(f"Cannot begin transaction: {exc}") from exc

    def autocommit(self) -> None:
        """Let every statement commit on its own."""
        self.conn.autocommit = True

    def commit(self) -> None:
        try:
            self.conn.commit()
        except Exception as exc:
            raise StatementError(f"Commit failed: {exc}") from exc

    def rollback(self) -> None:
        self.conn.rollback()

    def execute(self, sql: str) -> t.Iterator[ResultSet]:
        """
        Run *sql* and yield each of its result sets.  Rows are fetched lazily,
        so a result set must be consumed before the next one is requested.
        """
        cur = self.conn.cursor()
        try:
            try:
                cur.execute(sql)
            except Exception as exc:
                raise StatementError(str(exc)) from exc

            while True:
                if cur.description is not None:
                    columns = [d[0] for d in cur.description]
                    yield ResultSet(columns, _rows(cur), -1)
                else:
                    yield ResultSet(None, [], cur.rowcount)
                if not _next_set(cur):
                    break

            self._forward_messages(cur)
        finally:
            cur.close()

    def _forward_messages(self, cur) -> None:
        fetch = getattr(cur, "fetchwarnings", None)
        if fetch is None or self.on_message is None:
            return
        for level, code, text in fetch() or ():
            self.on_message(f"{level} {code}: {text}")


def _rows(cur) -> t.Iterator[t.Sequence[t.Any]]:
    while True:
        try:
            row = cur.fetchone()
        except Exception as exc:
            raise StatementError(str(exc)) from exc
        if row is None:
            return
        yield row


def _next_set(cur) -> bool:
    nextset = getattr(cur, "nextset", None)
    if nextset is None:
        return False
    try:
        return bool(nextset())
    except mysql.connector.errors.NotSupportedError:
        return False
    except Exception as exc:
        raise StatementError(str(exc)) from exc
