from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from logdiag.backends import get_backend
from logdiag.config import LogDiagConfig, load_config, merge_config
from logdiag.device import HeaderSettings, device_info
from logdiag.doctor import run_doctor
from logdiag.engine import LogDiagnoser, diagnose_file
from logdiag.formatter import format_logfile
from logdiag.report import ReportError, send_report
from logdiag.rules import load_ruleset
from logdiag.runner import CommandRunner
from logdiag.tool_logging import setup_logging

app = typer.Typer(help="logdiag - Pi-Apps installation log diagnosis")


def _build_config(
    config_path: Optional[Path],
    backend: Optional[str],
    rule_files: Optional[list[Path]],
    verbosity: int,
) -> LogDiagConfig:
    overrides = {
        "backend": backend,
        "rules": {"files": rule_files or None},
        "verbosity": verbosity,
    }
    try:
        return merge_config(load_config(config_path), overrides)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)


def _runner(config: LogDiagConfig) -> CommandRunner:
    return CommandRunner(timeout=config.commands.timeout, retries=config.commands.retries)


def _header_settings(config: LogDiagConfig) -> HeaderSettings:
    return HeaderSettings(
        pi_apps_dir=config.header.pi_apps_dir,
        fetch_latest_version=config.header.fetch_latest_version,
        github_token=config.header.github_token,
        timeout=config.header.timeout,
    )


def _require_file(logfile: Path) -> None:
    if not logfile.is_file():
        typer.echo(f"Log file not found: {logfile}")
        raise typer.Exit(code=1)


@app.command()
def diagnose(
    logfile: Path,
    no_write: bool = typer.Option(False, "--no-write", help="Do not query the package manager or modify the log"),
    backend: Optional[str] = typer.Option(None, "--backend", help="apt, pacman, generic or auto"),
    as_json: bool = typer.Option(False, "--json", help="Print the diagnosis as JSON"),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    rule_file: Optional[list[Path]] = typer.Option(
        None, "--rule", help="Custom rule file", show_default=False
    ),
    verbosity: int = typer.Option(0, "--verbose", count=True, help="Increase verbosity"),
) -> None:
    """Diagnose an installation log."""
    config_model = _build_config(config, backend, rule_file, verbosity)
    _require_file(logfile)
    try:
        selected = get_backend(config_model.backend)
        setup_logging(config_model.verbosity, selected.name)
        diagnoser = LogDiagnoser(selected, runner=_runner(config_model), rule_files=config_model.rules.files)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    logging.getLogger(__name__).info("Diagnosing %s", logfile)
    diagnosis = diagnose_file(logfile, allow_write=not no_write, diagnoser=diagnoser)

    if as_json:
        typer.echo(json.dumps(diagnosis.to_dict(), indent=2))
        return
    for caption in diagnosis.captions:
        typer.echo(caption)
        typer.echo("")
    typer.echo(f"Category: {diagnosis.category.value}")
    typer.echo(f"Reporting allowed: {'yes' if diagnosis.reporting_allowed else 'no'}")


@app.command("format")
def format_command(
    logfile: Path,
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    verbosity: int = typer.Option(0, "--verbose", count=True, help="Increase verbosity"),
) -> None:
    """Clean a log and prepend the device header."""
    config_model = _build_config(config, None, None, verbosity)
    setup_logging(config_model.verbosity, config_model.backend)
    _require_file(logfile)
    runner = _runner(config_model)
    settings = _header_settings(config_model)
    format_logfile(logfile, lambda: device_info(runner, settings))
    typer.echo(f"Formatted {logfile}")


@app.command()
def send(
    logfile: Path,
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    verbosity: int = typer.Option(0, "--verbose", count=True, help="Increase verbosity"),
) -> None:
    """Format a log and upload it as an error report."""
    config_model = _build_config(config, None, None, verbosity)
    setup_logging(config_model.verbosity, config_model.backend)
    runner = _runner(config_model)
    settings = _header_settings(config_model)
    try:
        result = send_report(
            logfile,
            lambda: device_info(runner, settings),
            runner=runner,
            pointer=config_model.report.pointer,
            timeout=config_model.report.timeout,
        )
    except ReportError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    typer.echo(result.message)


@app.command()
def rules(
    backend: Optional[str] = typer.Option(None, "--backend", help="apt, pacman, generic or auto"),
    rule_file: Optional[list[Path]] = typer.Option(
        None, "--rule-file", help="Custom rule file", show_default=False
    ),
) -> None:
    """Validate and list the rule catalog of a backend."""
    try:
        selected = get_backend(backend)
        ruleset = load_ruleset(selected.catalog, rule_file or [])
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    for rule in ruleset:
        category = rule.category.value if rule.category else "-"
        typer.echo(f"{rule.name}\t{category}\t{rule.handler or ''}".rstrip())
    typer.echo(f"Loaded {len(ruleset)} rules for {selected.name}")


@app.command("device-info")
def device_info_command(
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """Print the device header that formatting prepends to logs."""
    config_model = _build_config(config, None, None, 0)
    typer.echo(device_info(_runner(config_model), _header_settings(config_model)), nl=False)


@app.command()
def doctor(
    backend: Optional[str] = typer.Option(None, "--backend", help="apt, pacman, generic or auto"),
) -> None:
    """Check which external tools diagnosis and reporting can use."""
    try:
        selected = get_backend(backend)
    except ValueError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    report = run_doctor(selected)
    typer.echo(f"Backend: {report.backend}")
    typer.echo(f"Enrichment: {'enabled' if report.enrichment else 'disabled'}")
    typer.echo("Tools:")
    for name, available in report.tools.items():
        typer.echo(f"  {name}: {'ok' if available else 'missing'}")
    if not report.ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
