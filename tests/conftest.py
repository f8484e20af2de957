"""Fake DB-API connection and shared fixtures."""

import typing

import pytest

from sqltask.config import TaskConfig

# (columns or None, rows, rowcount), or an exception raised when nextset() reaches it
FakeSet = tuple[list[str] | None, list[tuple], int] | Exception


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn
        self.description = None
        self.rowcount = -1
        self.closed = False
        self._sql = None
        self._sets: list[FakeSet] = []
        self._index = 0
        self._rows: typing.Iterator[tuple] = iter(())

    def execute(self, sql: str) -> None:
        self.conn.executed.append(sql)
        self._sql = sql
        response = self.conn.responses.get(sql, [(None, [], 1)])
        if isinstance(response, Exception):
            raise response
        self._sets = list(response)
        self._load(0)

    def _load(self, index: int) -> None:
        self._index = index
        columns, rows, rowcount = self._sets[index]
        self.description = (
            None if columns is None else [(c, None, None, None, None, None, None) for c in columns]
        )
        self._rows = iter(rows)
        self.rowcount = rowcount

    def fetchone(self):
        return next(self._rows, None)

    def nextset(self):
        if self._index + 1 < len(self._sets):
            # an exception in the set list fails the statement that produced it
            if isinstance(self._sets[self._index + 1], Exception):
                raise self._sets[self._index + 1]
            self._load(self._index + 1)
            return True
        return None

    def fetchwarnings(self):
        return self.conn.warnings.get(self._sql)

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self) -> None:
        self.responses: dict[str, list[FakeSet] | Exception] = {}
        self.warnings: dict[str, list[tuple[str, int, str]]] = {}
        self.executed: list[str] = []
        self.cursors: list[FakeCursor] = []
        self.kwargs: dict[str, typing.Any] | None = None
        self.autocommit = False
        self.began = False
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self) -> FakeCursor:
        cur = FakeCursor(self)
        self.cursors.append(cur)
        return cur

    def start_transaction(self) -> None:
        self.began = True

    def commit(self) -> None:
        self.committed = True

    def rollback(self) -> None:
        self.rolled_back = True

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def connect(fake_conn):
    def _connect(**kwargs):
        fake_conn.kwargs = kwargs
        return fake_conn

    return _connect


@pytest.fixture
def make_config():
    def _make(**settings) -> TaskConfig:
        d = {"connstring": "Server=localhost;Database=test", "delimiter": ";"}
        d.update(settings)
        return TaskConfig("test", d)

    return _make
