"""Command line interface for the dormant account clean-up job."""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .config import AppConfig, ConfigurationError, LoggingConfig, load_config
from .credentials import resolve_credential
from .orchestrator import CleanupOrchestrator, build_orchestrator
from .scanner import format_cutoff
from .scheduler import DailySchedule, run_daily

app = typer.Typer(help="Delete directory accounts that have not signed in recently.")

ConfigOption = typer.Option(
    None, "--config", help="Path to a specific settings file (overrides default)."
)


def configure_logging(config: LoggingConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.level),
        format=config.format,
        stream=sys.stdout,
        force=True,
    )


def _load_configuration(config_path: Optional[Path]) -> AppConfig:
    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)
    configure_logging(config.logging)
    return config


def _build(config: AppConfig) -> CleanupOrchestrator:
    try:
        return build_orchestrator(config)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)


@app.command("run")
def run_once(config_path: Optional[Path] = ConfigOption) -> None:
    """Run one clean-up immediately."""

    config = _load_configuration(config_path)
    with _build(config) as orchestrator:
        report = orchestrator.run()
    typer.echo(json.dumps(report.to_dict(), indent=2))


@app.command("preview")
def preview(config_path: Optional[Path] = ConfigOption) -> None:
    """List the accounts a run would delete, without deleting them."""

    config = _load_configuration(config_path)
    with _build(config) as orchestrator:
        exclusions, scan = orchestrator.preview()
    payload = {
        "cutoff": format_cutoff(scan.cutoff) if scan.cutoff else None,
        "protected": len(exclusions),
        "skipped": scan.skipped,
        "completed": scan.completed,
        "candidates": scan.candidates,
        "warnings": [*exclusions.warnings, *scan.warnings],
    }
    typer.echo(json.dumps(payload, indent=2))


@app.command("schedule")
def schedule(
    config_path: Optional[Path] = ConfigOption,
    at: Optional[str] = typer.Option(None, "--at", help="Override the daily HH:MM trigger."),
) -> None:
    """Run the clean-up every day at the configured time."""

    config = _load_configuration(config_path)
    if at:
        try:
            daily = DailySchedule.parse(at, utc=config.schedule.utc)
        except ValueError:
            raise typer.BadParameter("--at must be HH:MM.")
    else:
        daily = DailySchedule.from_config(config.schedule)

    # Fail on a missing certificate now rather than at the first trigger.
    try:
        resolve_credential(config.identity)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)

    def _job() -> None:
        with build_orchestrator(config) as orchestrator:
            orchestrator.run()

    run_daily(_job, daily)


def run():
    app()


if __name__ == "__main__":
    run()
