"""Output formatting utilities for CLI commands."""

import json
from typing import Any

import click


def success(message: str) -> None:
    click.secho(f"✓ {message}", fg="green")


def error(message: str) -> None:
    click.secho(f"✗ {message}", fg="red", err=True)


def warning(message: str) -> None:
    click.secho(f"⚠ {message}", fg="yellow")


def info(message: str) -> None:
    click.secho(f"ℹ {message}", fg="blue")


def header(message: str) -> None:
    click.secho(f"\n{message}", fg="cyan", bold=True)


def section(title: str) -> None:
    """Print a section divider."""
    click.secho(f"\n{'=' * 60}", fg="white", dim=True)
    click.secho(title, fg="white", bold=True)
    click.secho("=" * 60, fg="white", dim=True)


def key_value(label: str, value: Any, *, width: int = 16) -> None:
    """Print one aligned ``label: value`` row."""
    click.echo(f"  {label + ':':<{width}} {value}")


def echo_json(data: Any) -> None:
    """Print ``data`` as indented JSON; UUIDs and datetimes become strings."""
    click.echo(json.dumps(data, indent=2, default=str))
