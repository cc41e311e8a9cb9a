"""
Main entry point for the RPA DFS engine.

Provides the ``rpa-dfs`` command line: run a workflow against a real
browser, validate a workflow file, list selector constants and show
recorded runs.
"""

import asyncio
import os
import sys
from typing import Optional

import click
import structlog
from dotenv import load_dotenv

from .core.config import ConfigLoader, EngineConfig, LoggingConfig
from .core.errors import ConfigError, FrameworkError
from .core.logs import configure_logging
from .core.results import RunResult, RunStore
from .traverser.context import UserContext
from .traverser.parser import WorkflowParser
from .traverser.selectors import SelectorRegistry
from .traverser.traverser import Traverser

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_LOAD_FAILED = 2

_FALSE_VALUES = ("0", "false", "no", "off")


def _load_config(config_file: Optional[str]) -> EngineConfig:
    """Load engine config and apply environment overrides."""
    config = ConfigLoader().load_engine_config(config_file)

    headless = os.getenv("RPA_DFS_HEADLESS")
    if headless is not None:
        config.browser.headless = headless.strip().lower() not in _FALSE_VALUES

    config.logging = _logging_overrides(config.logging)
    return config


def _logging_overrides(logging_config: LoggingConfig) -> LoggingConfig:
    """Apply ``RPA_DFS_LOG_FORMAT`` with the same checks as the config file."""
    log_format = os.getenv("RPA_DFS_LOG_FORMAT")
    if log_format is None:
        return logging_config

    try:
        return LoggingConfig(**{**logging_config.model_dump(), "format": log_format.strip()})
    except ValueError as e:
        raise ConfigError(f"Invalid RPA_DFS_LOG_FORMAT: {e}")


def _fail(message: str, code: int) -> None:
    click.echo(f"error: {message}", err=True)
    sys.exit(code)


config_option = click.option(
    "--config",
    "config_file",
    default=None,
    envvar="RPA_DFS_CONFIG",
    type=click.Path(dir_okay=False),
    help="Engine config file (YAML or JSON)",
)


@click.group()
@click.version_option(package_name="rpa-dfs-engine")
def cli():
    """RPA DFS engine - drive a browser through a JSON workflow graph."""
    load_dotenv()


@cli.command()
@click.argument("workflow", type=click.Path(dir_okay=False))
@click.option(
    "--context",
    "context_file",
    default=None,
    type=click.Path(dir_okay=False),
    help="JSON object with the user data for templates",
)
@config_option
@click.option("--headed", is_flag=True, default=False, help="Show the browser window")
def run(workflow, context_file, config_file, headed):
    """Run WORKFLOW in a Playwright browser."""
    try:
        config = _load_config(config_file)
    except FrameworkError as e:
        _fail(e.message, EXIT_LOAD_FAILED)

    if headed:
        config.browser.headless = False
    log_file = configure_logging(config.logging)
    logger.info(
        "session_started",
        workflow=workflow,
        headless=config.browser.headless,
        log_file=str(log_file) if log_file else None,
    )

    parser = WorkflowParser()
    try:
        loaded = parser.load_file(workflow)
        context = (
            parser.load_context_file(context_file)
            if context_file else UserContext()
        )
    except FrameworkError as e:
        _fail(e.message, EXIT_LOAD_FAILED)

    try:
        result = asyncio.run(_run_workflow(config, parser, loaded, context))
    except KeyboardInterrupt:
        click.echo("Interrupted by user", err=True)
        sys.exit(130)

    logger.info("session_finished", run_id=result.run_id, success=result.success)
    click.echo(_summary(result))
    sys.exit(EXIT_OK if result.success else EXIT_RUN_FAILED)


async def _run_workflow(config, parser, workflow, context) -> RunResult:
    # Imported here so validate/selectors/history work without a browser install
    from .browser.backend import PlaywrightBackend

    store: Optional[RunStore] = None
    if config.results_db:
        store = RunStore(config.results_db)
        await store.initialize()

    traverser = Traverser(
        PlaywrightBackend(config=config.browser),
        parser=parser,
        config=config,
        store=store,
    )
    try:
        await traverser.execute(workflow, context)
    except FrameworkError as e:
        logger.error("workflow_failed", error=e.message)
    finally:
        # A started run has already released the backend
        if traverser.executor is None:
            await traverser.close()
        if store is not None:
            await store.close()

    return traverser.last_result


def _summary(result: RunResult) -> str:
    status = "succeeded" if result.success else "failed"
    line = (
        f"{result.workflow_name or '<unnamed>'} {status} "
        f"run={result.run_id} actions={result.actions} "
        f"duration={result.duration_ms / 1000:.1f}s"
    )
    if result.diagnostics:
        line += f" diagnostics={len(result.diagnostics)}"
    if result.error_message:
        line += f" error={result.error_message}"
    return line


@cli.command()
@click.argument("workflow", type=click.Path(dir_okay=False))
def validate(workflow):
    """Load and validate WORKFLOW without running it."""
    try:
        configure_logging(_logging_overrides(LoggingConfig()))
    except FrameworkError as e:
        _fail(e.message, EXIT_LOAD_FAILED)

    try:
        loaded = WorkflowParser().load_file(workflow)
    except FrameworkError as e:
        _fail(e.message, EXIT_LOAD_FAILED)

    metadata = loaded.metadata
    click.echo(f"ok: {metadata.name or '<unnamed>'} {metadata.version}".rstrip())


@cli.command()
@config_option
def selectors(config_file):
    """List the selector constants and what they resolve to."""
    try:
        config = _load_config(config_file)
    except FrameworkError as e:
        _fail(e.message, EXIT_LOAD_FAILED)

    configure_logging(config.logging)
    registry = SelectorRegistry(config.resolver.selectors)
    mappings = registry.all()
    width = max(len(name) for name in mappings)
    for name in sorted(mappings):
        click.echo(f"{name.ljust(width)}  {mappings[name]}")


@cli.command()
@config_option
@click.option("--limit", default=20, show_default=True, type=click.IntRange(min=1), help="Number of runs")
@click.option("--workflow", "workflow_name", default=None, help="Only runs of this workflow name")
def history(config_file, limit, workflow_name):
    """Show recently recorded runs."""
    try:
        config = _load_config(config_file)
    except FrameworkError as e:
        _fail(e.message, EXIT_LOAD_FAILED)

    configure_logging(config.logging)
    if not config.results_db:
        _fail("no results_db configured", EXIT_LOAD_FAILED)

    runs = asyncio.run(_list_runs(config.results_db, limit, workflow_name))
    if not runs:
        click.echo("no runs recorded")
        return
    for result in runs:
        click.echo(_summary(result))


async def _list_runs(db_path: str, limit: int, workflow_name: Optional[str]) -> list[RunResult]:
    store = RunStore(db_path)
    await store.initialize()
    try:
        return await store.list_runs(limit=limit, workflow_name=workflow_name)
    finally:
        await store.close()


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
