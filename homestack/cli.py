#!/usr/bin/env python3
"""homestack CLI - one homelab.yaml, deployment bundles for every machine."""

import typer
from rich.console import Console

from homestack.cli_generate_commands import register_generate_commands

app = typer.Typer(
    name="homestack",
    help="""homestack - Unified configuration for homelab deployments

One YAML file. Compose bundles per machine, or one Swarm stack.

Quick start:
  hs validate                # Check homelab.yaml
  hs plan                    # See which machine runs what
  hs generate                # Write bundles to ./generated

More commands: hs --help
""",
    add_completion=False,
)

console = Console()

register_generate_commands(app, console)

if __name__ == "__main__":
    app()
