# Copyright (c) Syntropy Systems
"""apkregress run command."""

import contextlib
import logging
import signal
import threading
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from apkregress.classifier import summarize
from apkregress.config import DEFAULT_HANG_TIMEOUT, format_duration, load_config, make_log_dir, parse_duration
from apkregress.deps import ApkIndexClient, RepoType, read_package_file
from apkregress.errors import DependencyResolutionError, PackageListError, RunCancelledError, SchedulingError
from apkregress.executor import TrialExecutor
from apkregress.models.verdict import RunOutcome
from apkregress.progress import ProgressSnapshot, ProgressTracker
from apkregress.report import ReportContext, render_markdown, render_text, write_result_files
from apkregress.scheduler import Scheduler

console = Console()

EXIT_CODES = {
    RunOutcome.CLEAN: 0,
    RunOutcome.REGRESSIONS: 4,
    RunOutcome.HUNG: 5,
}


def setup_logging(verbose: bool) -> None:
    """Route apkregress log records through rich."""
    logger = logging.getLogger("apkregress")
    logger.handlers = [RichHandler(console=console, show_path=False, show_time=False)]
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    logger.propagate = False


@contextlib.contextmanager
def _cancel_on_signals(scheduler: Scheduler) -> Iterator[None]:
    """Kill running tests on SIGINT/SIGTERM while the scheduler runs.

    Builds run in their own sessions, so terminal signals never reach them.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _signal_handler(signum, frame):
        console.print("\n[yellow]Shutdown requested, killing running tests...[/yellow]")
        scheduler.cancel()

    previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    for sig in previous:
        signal.signal(sig, _signal_handler)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def run(
    package: Optional[str] = typer.Option(
        None,
        "--package", "-p",
        help="Package name to find reverse dependencies for",
    ),
    package_file: Optional[Path] = typer.Option(
        None,
        "--package-file", "-f",
        help="File containing list of package names (one per line)",
    ),
    repo: str = typer.Option(
        ...,
        "--repo", "-r",
        help="APK repository URL to test against",
    ),
    repo_path: Path = typer.Option(
        ...,
        "--repo-path", "-w",
        help="Path to the package repository checkout",
    ),
    repo_type: RepoType = typer.Option(
        RepoType.WOLFI,
        "--repo-type", "-t",
        case_sensitive=False,
        help="Repository type used for reverse dependency lookup",
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency", "-c",
        min=1,
        help="Number of concurrent test jobs (default: 4)",
    ),
    hang_timeout: Optional[str] = typer.Option(
        None,
        "--hang-timeout",
        help="Timeout for hung tests, e.g. 30m, 1h30m, 90 (default: 30m)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    markdown: bool = typer.Option(
        False,
        "--markdown", "-m",
        help="Output test summary in markdown format for GitHub issues",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to a configuration YAML file",
    ),
    log_root: Optional[Path] = typer.Option(
        None,
        "--log-root",
        help="Directory receiving per-run log directories (default: logs)",
    ),
) -> None:
    """
    Test reverse dependencies of a package for regressions.

    Every package is tested with the APK repository appended. Packages that
    fail are tested again without it; a package that only fails with the
    repository is a regression.

    Exit codes: 0 clean, 4 regressions found, 5 hung tests (no regressions),
    1 setup error, 130 interrupted.
    """
    if not package and not package_file:
        console.print("[red]Error:[/red] either --package or --package-file must be specified")
        raise typer.Exit(1)
    if package and package_file:
        console.print("[red]Error:[/red] cannot specify both --package and --package-file")
        raise typer.Exit(1)

    repo_path = repo_path.resolve()
    if not repo_path.exists():
        console.print(f"[red]Error:[/red] repository path does not exist: {repo_path}")
        raise typer.Exit(1)

    try:
        config = load_config(config_file)
        timeout = parse_duration(hang_timeout) if hang_timeout else config.hang_timeout
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    if timeout <= 0:
        timeout = DEFAULT_HANG_TIMEOUT
    if concurrency is None:
        concurrency = config.concurrency

    setup_logging(verbose)

    try:
        if package_file is not None:
            units = read_package_file(package_file)
        else:
            units = ApkIndexClient(repo_type).reverse_dependencies(package)
    except (DependencyResolutionError, PackageListError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if not units:
        console.print(f"No reverse dependencies found for package: {package}")
        return

    try:
        log_dir = make_log_dir(log_root or Path(config.log_root), package)
    except OSError as e:
        console.print(f"[red]Error:[/red] failed to create log directory: {e}")
        raise typer.Exit(1) from e
    console.print(f"Testing {len(units)} packages with concurrency {concurrency}")
    console.print(f"[dim]Logs will be saved to:[/dim] {log_dir}")

    executor = TrialExecutor(
        repo_path=repo_path,
        log_dir=log_dir,
        overlay_repo=repo,
        hang_timeout=timeout,
        config=config,
    )

    started = time.monotonic()
    status_ctx = contextlib.nullcontext() if verbose else console.status("Starting tests...")
    try:
        with status_ctx as status:

            def show_progress(snapshot: ProgressSnapshot) -> None:
                if status is not None:
                    status.update(snapshot.format())

            progress = ProgressTracker(len(units), verbose=verbose, on_update=show_progress)
            scheduler = Scheduler(executor, concurrency, progress=progress)
            with _cancel_on_signals(scheduler):
                trials = scheduler.run(units)
    except RunCancelledError as e:
        console.print(f"[yellow]Run cancelled:[/yellow] {e}")
        raise typer.Exit(130) from e
    except SchedulingError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    summary = summarize(trials, total_units=len(units))
    _ = write_result_files(summary, log_dir)

    ctx = ReportContext(
        package_label=package or f"{len(units)} packages from file",
        overlay_repo=repo,
        hang_timeout=timeout,
        duration=time.monotonic() - started,
        verbose=verbose,
    )
    if markdown:
        console.print(render_markdown(summary, ctx), markup=False, highlight=False, soft_wrap=True, end="")
    else:
        render_text(console, summary, ctx)

    code = EXIT_CODES[summary.outcome]
    if code:
        if not markdown:
            reason = (
                f"found {len(summary.regressed)} regressions"
                if summary.outcome is RunOutcome.REGRESSIONS
                else f"found {len(summary.hang_events)} hung tests (timeout {format_duration(timeout)})"
            )
            console.print(f"\n[red]Error:[/red] {reason}")
        raise typer.Exit(code)
