from __future__ import annotations

import contextlib
import enum
import io
import logging
import pathlib
import sys
import typing as t
from dataclasses import dataclass, field

from sqltask import driver
from sqltask.config import TaskConfig
from sqltask.errors import ConfigError, StatementError, TaskError
from sqltask.properties import expand
from sqltask.results import LogEcho, format_results
from sqltask.statements import adapt, read_script, split
from sqltask.utils import preview, statement_kind

logger = logging.getLogger(__name__)


class State(enum.Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    RUNNING = "running"
    COMMITTING = "committing"
    ROLLING_BACK = "rolling back"
    DONE = "done"


@dataclass
class Success:
    affected: int = -1


@dataclass
class Failed:
    message: str


Outcome = Success | Failed


@dataclass
class TaskResult:
    success: bool
    executed: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)
    affected_rows: int = -1
    error: str | None = None


def _add_affected(total: int, count: int) -> int:
    if count < 0:
        return total
    return max(total, 0) + count


class SqlTask:
    """
    Runs one task invocation: load the script, split or batch it, execute it
    on a fresh connection and report the results.

    Batch mode is all-or-nothing.  Per-statement mode logs a failing statement
    and carries on with the next one, unless ``strict`` is set.
    """

    def __init__(
        self,
        config: TaskConfig,
        *,
        properties: t.Mapping[str, t.Any] | None = None,
        connect: driver.Connect | None = None,
        output: t.TextIO | None = None,
        log: logging.Logger | None = None,
        on_message: driver.MessageHandler | None = None,
    ) -> None:
        self.config = config
        self.properties = properties
        self.connect = connect
        self.output = output
        self.log = log or logger
        self.on_message = on_message
        self.state: State = State.IDLE

        self._out: t.TextIO | None = None
        self._sink: t.TextIO | None = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def plan(self) -> list[str]:
        """Return the payload(s) :meth:`run` would execute, in order."""
        kind, value = self.config.script()
        text = value if kind == "inline" else read_script(value)
        text = expand(
            text, self.properties, enabled=self.config.expand_properties
        )

        cfg = self.config.delimiter_config()
        if self.config.batch:
            payload = adapt(text, cfg, driver.Session.batch_separator)
            return [payload] if payload else []
        return split(text, cfg)

    def run(self) -> TaskResult:
        try:
            return self._run()
        except TaskError as exc:
            if self.config.fail_on_error:
                raise
            self.log.error("SQL task %r failed: %s", self.config.name, exc)
            return TaskResult(success=False, error=str(exc))

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _run(self) -> TaskResult:
        result = TaskResult(success=True)

        with contextlib.ExitStack() as stack:
            stack.callback(self._set_state, State.DONE)
            self._set_state(State.PREPARING)
            self._open_sink(stack)
            self._describe()

            payloads = self.plan()
            conn = stack.enter_context(
                driver.connection(self.config.connection_string, connect=self.connect)
            )
            session = driver.Session(conn, on_message=self._message)

            if self.config.use_transaction:
                session.begin()
            else:
                session.autocommit()

            try:
                self._set_state(State.RUNNING)
                self._execute_all(session, payloads, result)
                if self.config.use_transaction:
                    self._set_state(State.COMMITTING)
                    session.commit()
            except BaseException:
                if self.config.use_transaction:
                    self._set_state(State.ROLLING_BACK)
                    self._rollback(session)
                raise

        if result.affected_rows >= 0:
            self.log.info("%d records affected", result.affected_rows)
        return result

    def _execute_all(
        self, session: driver.Session, payloads: list[str], result: TaskResult
    ) -> None:
        fatal = self.config.batch or self.config.strict
        if not payloads:
            self.log.info("No SQL statements to execute")

        for sql in payloads:
            self._announce(sql)
            outcome = self._execute(session, sql)
            result.executed += 1

            if isinstance(outcome, Failed):
                result.failures.append((sql, outcome.message))
                if fatal:
                    raise StatementError(
                        f"SQL resulted in exception: {outcome.message}"
                    )
                self.log.error("SQL error: %s", outcome.message)
                self.log.error("Statement: %s", sql)
                continue

            result.affected_rows = _add_affected(
                result.affected_rows, outcome.affected
            )

    def _execute(self, session: driver.Session, sql: str) -> Outcome:
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("Executing %s: %s", statement_kind(sql), preview(sql))
        # a batch is all-or-nothing, so its report is held back until it succeeds
        target = io.StringIO() if self.config.batch else self._sink
        try:
            affected = format_results(session.execute(sql), target)
            if target is not self._sink:
                self._sink.write(target.getvalue())
        except StatementError as exc:
            return Failed(str(exc))
        except OSError as exc:
            raise TaskError(f"Cannot write SQL results: {exc}") from exc
        return Success(affected)

    def _rollback(self, session: driver.Session) -> None:
        try:
            session.rollback()
        except Exception as exc:
            # the original failure is what the caller needs to see
            self.log.warning("Rollback failed: %s", exc)

    def _open_sink(self, stack: contextlib.ExitStack) -> None:
        if self.config.output:
            path = pathlib.Path(self.config.output)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fh = path.open("w", encoding="utf-8")
            except OSError as exc:
                raise ConfigError(f"Cannot open output file {path}: {exc}") from exc
            self._out = stack.enter_context(fh)
        else:
            self._out = self.output or sys.stdout

        self._sink = LogEcho(self._out, self.log) if self.config.print else self._out
        stack.callback(self._sink.flush)

    def _describe(self) -> None:
        if not self.config.verbose:
            return
        cfg = self.config
        lines = [
            "SQL Task:",
            f"Connection String: {driver.mask_connection_string(cfg.connection_string)}",
            f"Use Transaction?: {cfg.use_transaction}",
            f"Batch Sql Statements?: {cfg.batch}",
            f"Batch Delimiter: {cfg.delimiter}",
            f"Delimiter Style: {cfg.delimiter_style.value}",
            f"Fail On Error?: {cfg.fail_on_error}",
            f"Source script file: {cfg.source}",
            f"Output file: {cfg.output}",
        ]
        message = "\n".join(lines)
        self.log.info(message)
        self._out.write(message + "\n\n")

    def _announce(self, sql: str) -> None:
        if not self.config.print:
            return
        self._sink.write(f"\nSQL Statement:\n{sql}\n")

    def _message(self, text: str) -> None:
        self._out.write(text + "\n")
        self.log.info(text)
        if self.on_message is not None:
            self.on_message(text)

    def _set_state(self, state: State) -> None:
        self.log.debug("SQL task %r: %s -> %s", self.config.name, self.state.value, state.value)
        self.state = state
