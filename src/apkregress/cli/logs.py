# Copyright (c) Syntropy Systems
"""apkregress logs command."""

from pathlib import Path
from typing import cast

import typer
from rich.console import Console

from apkregress.executor import log_file_name
from apkregress.models.trial import TrialMode

console = Console()


def logs(
    log_dir: Path = typer.Argument(
        default=cast("Path", cast("object", ...)),
        help="Run log directory printed at the start of a run",
    ),
    package: str = typer.Argument(
        default=cast("str", cast("object", ...)),
        help="Package to show the trial log for",
    ),
    baseline: bool = typer.Option(
        False,
        "--baseline", "-b",
        help="Show the trial run without the APK repository",
    ),
) -> None:
    """Show the build log of one trial.

    By default shows the trial run with the APK repository appended.
    """
    mode = TrialMode.BASELINE if baseline else TrialMode.OVERLAY
    log_path = log_dir / log_file_name(package, mode)

    if not log_path.exists():
        if mode is TrialMode.BASELINE and (log_dir / log_file_name(package, TrialMode.OVERLAY)).exists():
            console.print("[dim]No baseline trial ran for this package[/dim]")
        else:
            console.print(f"[red]Error:[/red] No log found at {log_path}")
            raise typer.Exit(1)
        return

    content = log_path.read_text(errors="replace")
    if content:
        console.print(content, end="", markup=False, highlight=False)
    else:
        console.print("[dim]Log file is empty[/dim]")
