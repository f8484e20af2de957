from __future__ import annotations


class TaskError(RuntimeError):
    """The task failed.  The message is all the caller gets."""


class ConfigError(TaskError):
    """Raised for any user‑visible configuration problem."""


class PropertyError(ConfigError):
    """A ``${name}`` placeholder references an undefined property."""


class ConnectError(TaskError):
    """Opening the connection or beginning the transaction failed."""


class StatementError(TaskError):
    """The database rejected a statement (or a batch)."""
