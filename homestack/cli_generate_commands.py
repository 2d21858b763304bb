"""Generation CLI commands - validate, plan, generate, version."""
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from homestack import __version__
from homestack.cli_support import (
    find_config,
    handle_cli_error,
    print_error,
    print_info,
    print_success,
    print_warning,
    setup_logging,
)
from homestack.config.loader import ConfigLoader
from homestack.core.bundler import BundleGenerator
from homestack.core.config import HomestackSettings
from homestack.core.lock import LockError
from homestack.core.resolver import AssignmentResolver
from homestack.errors import BundleWriteError, ConfigIssue, ConfigValidationError

# Module-level console instance (will be set by register function)
console: Console = Console()


def _print_issues(issues: List[ConfigIssue]) -> None:
    console.print(f"[red]Configuration has {len(issues)} issue(s):[/red]")
    for issue in issues:
        print_error(console, f"[bold]{issue.kind}[/bold] {escape(str(issue))}")


def _load(config: Optional[str]):
    """Load and validate the config, exiting with the issue list on failure."""
    loader = ConfigLoader(find_config(config))
    try:
        return loader.load()
    except ConfigValidationError as e:
        _print_issues(e.issues)
        raise typer.Exit(1)


def validate(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Validate homelab.yaml and report every issue at once."""
    setup_logging(log_file=log_file, verbose=verbose)

    config_file = find_config(config)
    try:
        issues = ConfigLoader(config_file).check()
    except FileNotFoundError as e:
        handle_cli_error(e, console, verbose)
        return

    if issues:
        _print_issues(issues)
        raise typer.Exit(1)

    print_success(console, f"{escape(config_file)} is valid")


def plan(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Show which machines every service resolves to (read-only)."""
    setup_logging(log_file=log_file, verbose=verbose)

    try:
        unified = _load(config)
    except FileNotFoundError as e:
        handle_cli_error(e, console, verbose)
        return

    assignment = AssignmentResolver().resolve(unified)

    console.print(f"\n[bold]Backend:[/bold] {unified.backend.value}  [bold]Driver:[/bold] {escape(unified.driver)}")

    table = Table(title="Service placement", show_header=True, header_style="bold cyan")
    table.add_column("Service")
    table.add_column("Strategy")
    table.add_column("Machines")
    table.add_column("Enabled", justify="center")

    for key, service in unified.services.items():
        table.add_row(
            escape(key),
            escape(str(service.deploy)),
            escape(", ".join(assignment.machines_for(key))),
            "[green]yes[/green]" if service.enabled else "[dim]no[/dim]",
        )

    if unified.services:
        console.print(table)
    else:
        print_info(console, "No services declared")


def generate(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output directory"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Parallel workers"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Generate deployment bundles for every machine (or the cluster)."""
    setup_logging(log_file=log_file, verbose=verbose)

    try:
        settings = HomestackSettings.from_env().with_overrides(output_dir=output, workers=workers)
    except ValueError as e:
        handle_cli_error(e, console, verbose)
        return

    try:
        unified = _load(config)
        report = BundleGenerator(settings).generate(unified)
    except (FileNotFoundError, LockError, BundleWriteError) as e:
        handle_cli_error(e, console, verbose)
        return

    table = Table(title=f"Bundles ({report.backend})", show_header=True, header_style="bold cyan")
    table.add_column("Unit")
    table.add_column("Status")
    table.add_column("Services")
    table.add_column("Details", overflow="fold")

    for result in report.results:
        if result.ok:
            table.add_row(
                escape(result.unit),
                "[green]ok[/green]",
                escape(", ".join(result.bundle.service_names) or "-"),
                escape(str(result.path)),
            )
        else:
            table.add_row(escape(result.unit), "[red]failed[/red]", "-", escape(str(result.error)))

    console.print(table)

    for unit in report.removed:
        print_info(console, f"Removed bundle of undeclared unit {escape(unit)}")

    if report.master_script:
        print_info(console, f"Deploy everything with: {escape(str(report.master_script))}")

    if not report.ok:
        print_warning(console, f"{len(report.failed)} of {len(report.results)} unit(s) failed")
        raise typer.Exit(1)

    print_success(console, f"Generated {len(report.results)} bundle(s) in {escape(str(report.output_dir))}")


def version():
    """Show homestack version."""
    console.print(f"homestack v{__version__}")


def register_generate_commands(app: typer.Typer, shared_console: Console):
    """Register generation commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(validate)
    app.command()(plan)
    app.command()(generate)
    app.command()(version)
