# Copyright (c) Syntropy Systems
"""apkregress doctor command."""

import shutil
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console

from apkregress.config import find_config_file, format_duration, get_global_config_path, load_config

console = Console()


def doctor(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to a configuration YAML file",
    ),
) -> None:
    """Check apkregress setup and diagnose issues.

    Verifies:
    - configuration loads
    - the test command is on PATH
    - apkrane is available for reverse dependency lookup
    - chainctl is available for private repositories
    """
    issues: list[str] = []
    warnings: list[str] = []

    # Check configuration
    source = config_file or find_config_file()
    if source is None and get_global_config_path().exists():
        source = get_global_config_path()
    try:
        config = load_config(config_file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        issues.append(f"Configuration error: {e}")
        config = None
    else:
        where = str(source) if source else "defaults"
        console.print(f"[green]✓[/green] Configuration: {where}")
        console.print(
            f"  [dim]concurrency:[/dim] {config.concurrency}  "
            f"[dim]hang timeout:[/dim] {format_duration(config.hang_timeout)}"
        )

    # Check test command
    if config is not None:
        executable = config.test_command[0]
        if shutil.which(executable):
            console.print(f"[green]✓[/green] Test command: {executable}")
        else:
            console.print(f"[red]✗[/red] Test command not found: {executable}")
            issues.append(f"{executable} not found on PATH")

    # Check apkrane
    if shutil.which("apkrane"):
        console.print("[green]✓[/green] apkrane available")
    else:
        console.print("[yellow]⚠[/yellow] apkrane not found (required for --package)")
        warnings.append("apkrane missing")

    # Check chainctl
    if shutil.which("chainctl"):
        console.print("[green]✓[/green] chainctl available")
    else:
        console.print("[dim]•[/dim] chainctl not found (only needed for enterprise/extras)")

    # Summary
    console.print()
    if issues:
        console.print(f"[red]Found {len(issues)} issue(s)[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
        raise typer.Exit(1)
    if warnings:
        console.print(f"[yellow]Found {len(warnings)} warning(s)[/yellow]")
        for warning in warnings:
            console.print(f"  - {warning}")
    else:
        console.print("[green]All checks passed[/green]")
