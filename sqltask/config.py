from __future__ import annotations
import os
import pathlib
import tomllib
import typing as t

import yaml

from sqltask.constants import DEFAULT_CONFIG_PATH
from sqltask.errors import ConfigError
from sqltask.statements import DelimiterConfig, DelimiterStyle

__all__ = ["ConfigError", "TaskConfig", "from_env", "load"]


def from_env(raw: t.Any) -> str:
    """Resolve a whole-value ``${ENV_VAR}`` reference, else return *raw*."""
    raw = str(raw)
    if not (raw.startswith("${") and raw.endswith("}")):
        return raw
    name = raw[2:-1]
    value = os.getenv(name)
    if value is None:
        raise ConfigError(f"Environment variable {name} is not set")
    return value


def _flag(d: t.Mapping[str, t.Any], key: str, default: bool) -> bool:
    value = d.get(key, default)
    if isinstance(value, bool):
        return value
    if str(value).strip().lower() in {"true", "yes", "on", "1"}:
        return True
    if str(value).strip().lower() in {"false", "no", "off", "0"}:
        return False
    raise ConfigError(f"{key!r} must be true or false, got {value!r}")


class TaskConfig:
    """
    A thin value‑object holding one task's parameters.  Nothing here talks to
    the database.
    """

    def __init__(self, name: str, d: t.Mapping[str, t.Any]) -> None:
        self.name: str = name
        try:
            # Allow `${ENV_VAR}` syntax for secrets
            self.connection_string: str = from_env(d["connstring"])
            self.delimiter: str = str(d["delimiter"] or "")
        except KeyError as exc:
            raise ConfigError(
                f"Task {name!r} is missing required setting {exc.args[0]!r}"
            ) from exc

        self.source: str | None = d.get("source") or None
        self.sql: str = d.get("sql") or ""
        self.delimiter_style: DelimiterStyle = DelimiterStyle.parse(
            d.get("delimstyle", DelimiterStyle.NORMAL)
        )
        self.case_sensitive: bool = _flag(d, "case_sensitive", False)
        self.batch: bool = _flag(d, "batch", True)
        self.expand_properties: bool = _flag(d, "expandprops", True)
        self.print: bool = _flag(d, "print", False)
        self.output: str | None = d.get("output") or None
        self.use_transaction: bool = _flag(d, "transaction", True)
        self.fail_on_error: bool = _flag(d, "failonerror", True)
        self.strict: bool = _flag(d, "strict", False)
        self.verbose: bool = _flag(d, "verbose", False)

        # Fail before connecting, not halfway through a run
        self.delimiter_config()
        self.script()

    # --------------------------------------------------------------------- #
    # Helpers
    # --------------------------------------------------------------------- #
    def delimiter_config(self) -> DelimiterConfig:
        return DelimiterConfig(
            self.delimiter, self.delimiter_style, self.case_sensitive
        )

    def script(self) -> tuple[str, str]:
        """
        Return ``("inline", text)`` or ``("file", path)``.  Inline text wins
        whenever it is non-empty.
        """
        if self.sql.strip():
            return "inline", self.sql
        if self.source:
            return "file", self.source
        raise ConfigError("No source file or statements have been specified.")


def _read(cfg_file: pathlib.Path) -> dict[str, t.Any]:
    if cfg_file.suffix.lower() == ".toml":
        with cfg_file.open("rb") as fh:
            return tomllib.load(fh)
    with cfg_file.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def load(
    path: pathlib.Path | str | None = None,
    task: str | None = None,
    overrides: t.Mapping[str, t.Any] | None = None,
) -> tuple[TaskConfig, dict[str, t.Any]]:
    """
    Parse *path* (or the default YAML) and return the :class:`TaskConfig` for
    *task* together with its property map.  Non-``None`` *overrides* replace
    the file's settings.
    """
    cfg_file = pathlib.Path(path) if path else DEFAULT_CONFIG_PATH
    if not cfg_file.exists():
        raise ConfigError(f"Config file {cfg_file} not found.")

    try:
        raw = _read(cfg_file)
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Cannot parse {cfg_file}: {exc}") from exc

    task_name = task or raw.get("default_task")
    if not task_name:
        raise ConfigError("No task specified and no default_task in config")

    try:
        settings = dict(raw["tasks"][task_name])
    except (KeyError, TypeError) as exc:
        raise ConfigError(f"Task {task_name!r} not found in config") from exc

    properties = dict(raw.get("properties") or {})
    properties.update(settings.pop("properties", None) or {})

    for key, value in (overrides or {}).items():
        if value is not None:
            settings[key] = value
    return TaskConfig(task_name, settings), properties
