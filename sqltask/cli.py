#!/usr/bin/env python3
"""
sqltask – run a SQL script from a build or CI pipeline.

• Task settings come from *sqltask.config.yml* (``tasks:`` section) and/or
  command‑line options; options win.
• ``${name}`` placeholders in the script are filled from ``properties:`` and
  ``-D name=value``.
• Without a config file the options alone must describe the task.
"""
from __future__ import annotations

import logging
import pathlib
import sys
import typing as t

import click

from sqltask import __version__
from sqltask.config import TaskConfig, load
from sqltask.constants import DEFAULT_CONFIG_PATH
from sqltask.errors import TaskError
from sqltask.runner import SqlTask

log = logging.getLogger("sqltask")


def _parse_defines(_ctx, _param, values) -> dict[str, str]:
    props: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected name=value, got {item!r}")
        props[name.strip()] = value
    return props


def _build_task(
    config_path: pathlib.Path | None,
    task: str | None,
    overrides: dict[str, t.Any],
    defines: dict[str, str],
) -> tuple[TaskConfig, dict[str, t.Any]]:
    cfg_file = config_path or DEFAULT_CONFIG_PATH
    if config_path is not None or cfg_file.exists():
        cfg, properties = load(cfg_file, task, overrides)
    else:
        settings = {k: v for k, v in overrides.items() if v is not None}
        cfg, properties = TaskConfig(task or "sql", settings), {}
    properties.update(defines)
    return cfg, properties


@click.group()
@click.option(
    "-c", "--config", "config_path", type=click.Path(), help="task config YAML/TOML"
)
@click.option("-v", "--verbose", is_flag=True, help="debug logging")
@click.option("-q", "--quiet", is_flag=True, help="warnings and errors only")
@click.pass_context
def main(ctx, config_path, verbose, quiet):
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    ctx.obj = {
        "config_path": pathlib.Path(config_path) if config_path else None,
        "verbose": verbose,
    }


@main.command()
def version():
    click.echo(__version__)


@main.command()
@click.argument("task", required=False)
@click.option("--connstring", help="connection string (URL or Key=Value;…)")
@click.option("--source", type=click.Path(dir_okay=False), help="SQL script file")
@click.option("--sql", help="inline SQL; wins over --source")
@click.option("--delimiter", help="statement delimiter, e.g. ';' or GO")
@click.option(
    "--delimstyle",
    type=click.Choice(["Normal", "Line"], case_sensitive=False),
    help="Normal: delimiter anywhere; Line: delimiter alone on its line",
)
@click.option("--batch/--no-batch", default=None, help="one call vs one call per statement")
@click.option("--expandprops/--no-expandprops", default=None, help="expand ${name} placeholders")
@click.option("--print", "print_", is_flag=True, default=None, help="echo statements and results to the log")
@click.option("--output", type=click.Path(dir_okay=False), help="write results to this file")
@click.option("--transaction/--no-transaction", default=None, help="wrap the run in a transaction")
@click.option("--strict", is_flag=True, default=None, help="a failing statement aborts per-statement runs")
@click.option("--fail-on-error/--no-fail-on-error", default=None)
@click.option(
    "-D", "--define", "defines", multiple=True, callback=_parse_defines,
    metavar="NAME=VALUE", help="set a property",
)
@click.option("--dry-run", is_flag=True, help="print what would run, touch no database")
@click.pass_context
def run(
    ctx, task, connstring, source, sql, delimiter, delimstyle, batch, expandprops,
    print_, output, transaction, strict, fail_on_error, defines, dry_run,
):
    overrides = {
        "connstring": connstring,
        "source": source,
        "sql": sql,
        "delimiter": delimiter,
        "delimstyle": delimstyle,
        "batch": batch,
        "expandprops": expandprops,
        "print": print_,
        "output": output,
        "transaction": transaction,
        "strict": strict,
        "failonerror": fail_on_error,
        "verbose": ctx.obj["verbose"] or None,
    }
    try:
        cfg, properties = _build_task(ctx.obj["config_path"], task, overrides, defines)
        sql_task = SqlTask(cfg, properties=properties)

        if dry_run:
            for payload in sql_task.plan():
                click.echo(payload)
                click.echo()
            click.echo("-- DRY‑RUN complete (no changes executed)")
            return

        result = sql_task.run()
    except TaskError as exc:
        click.echo(f"SQL task failed: {exc}", err=True)
        sys.exit(1)

    if result.failures:
        log.warning(
            "%d of %d statements failed", len(result.failures), result.executed
        )


if __name__ == "__main__":
    main()
