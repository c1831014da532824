from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import Settings, load_settings
from .errors import BuildFailure, RegistryError, SpawnFailure
from .guest.dispatcher import run_guest
from .orchestrator.report import build_report, write_report
from .orchestrator.runner import Orchestrator
from .registry import TestRegistry, load_registry
from .utils import configure_logging

app = typer.Typer(help="Run one test suite on the host and inside a tape-driven guest")
console = Console(highlight=False)

REGISTRY_ARGUMENT = typer.Argument(
    ..., help="Registry reference: module:attr or path/to/file.py:attr"
)
FILTER_ARGUMENT = typer.Argument(None, help="Only run tests whose name contains this text")
GUEST_OPTION = typer.Option(
    None, "--guest/--no-guest", help="Override TAPEHARNESS_GUEST_TEST."
)
CONFIG_OPTION = typer.Option(None, "--config", exists=True, dir_okay=False)
REPORT_OPTION = typer.Option(None, "--report", dir_okay=False)
LOG_LEVEL_OPTION = typer.Option("WARNING", "--log-level")


@app.callback()
def main() -> None:
    pass


def _load_settings(config: Optional[Path], guest: Optional[bool] = None) -> Settings:
    return load_settings(config, guest_test=guest)


def _load_registry(ref: str) -> TestRegistry:
    try:
        return load_registry(ref)
    except RegistryError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("run")
def run_cmd(
    registry_ref: str = REGISTRY_ARGUMENT,
    filter_text: Optional[str] = FILTER_ARGUMENT,
    guest: Optional[bool] = GUEST_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    report: Optional[Path] = REPORT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    configure_logging(log_level)
    settings = _load_settings(config, guest)
    registry = _load_registry(registry_ref)
    orchestrator = Orchestrator(registry, settings, console=console)
    try:
        record = orchestrator.run(filter_text)
    except (BuildFailure, SpawnFailure) as exc:
        console.print(f"error: {exc}", markup=False, soft_wrap=True)
        raise typer.Exit(code=2) from exc
    if report is not None:
        write_report(report, build_report(orchestrator, record, filter_text))
        console.print({"report": str(report)})
    if not record.ok:
        raise typer.Exit(code=1)


@app.command("list")
def list_cmd(registry_ref: str = REGISTRY_ARGUMENT) -> None:
    registry = _load_registry(registry_ref)
    table = Table(title="Registered Tests")
    table.add_column("Name")
    table.add_column("Source")
    table.add_column("Ignore")
    table.add_column("Should panic")
    table.add_column("Kind")
    for descriptor in registry:
        table.add_row(
            descriptor.name,
            descriptor.source_file,
            "yes" if descriptor.ignore else "no",
            descriptor.should_panic.describe(),
            descriptor.kind,
        )
    console.print(table)


@app.command("guest")
def guest_cmd(
    registry_ref: str = REGISTRY_ARGUMENT,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Dispatch one test over stdin/stdout, as a guest artifact would."""
    settings = _load_settings(config)
    registry = _load_registry(registry_ref)
    code = run_guest(registry, env_name=settings.env_name)
    if code:
        raise typer.Exit(code=code)


if __name__ == "__main__":
    app()
