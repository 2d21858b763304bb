"""Shared utilities for homestack CLI modules."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from homestack.core.logger import configure_logging

# Default config search paths (ordered by proximity to current run)
CONFIG_PATHS = [
    "./homelab.yaml",
    str(Path.home() / ".config" / "homestack" / "homelab.yaml"),
    "/etc/homestack/homelab.yaml",
]


def find_config(config_path: Optional[str] = None) -> str:
    """Locate the active homelab configuration file."""
    if config_path:
        return config_path

    if env_config := os.environ.get("HOMESTACK_CONFIG"):
        return env_config

    for path in CONFIG_PATHS:
        if Path(path).exists():
            return path

    return "homelab.yaml"


def setup_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Configure console and file logging for a CLI command."""
    configure_logging(verbose=verbose, log_file=log_file)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Handle CLI errors with consistent formatting.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    console.print(f"[red]Error:[/red] {escape(str(e))}")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    """Print success message with consistent formatting."""
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    """Print error message with consistent formatting."""
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    """Print warning message with consistent formatting."""
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    """Print info message with consistent formatting."""
    console.print(f"[cyan]{prefix}[/cyan] {message}")
