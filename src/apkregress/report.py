# Copyright (c) Syntropy Systems
"""Rendering of run summaries and result list files."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rich.table import Table

from apkregress.config import format_duration
from apkregress.models.verdict import RunSummary, VerdictKind

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console

logger = logging.getLogger(__name__)


@dataclass
class ReportContext:
    """Run facts shown alongside the verdicts."""

    package_label: str
    overlay_repo: str
    hang_timeout: float
    duration: float = 0.0
    verbose: bool = False


def write_result_files(summary: RunSummary, log_dir: Path) -> list[Path]:
    """Write one newline-joined list per result category into log_dir.

    Failures to write are logged and do not abort the run.
    """
    written: list[Path] = []
    for stem, units in summary.partitions().items():
        path = log_dir / f"{stem}.txt"
        content = "\n".join(units)
        if content:
            content += "\n"
        try:
            _ = path.write_text(content)
        except OSError as e:
            logger.warning("Failed to write %s: %s", path.name, e)
            continue
        written.append(path)
    return written


def _metric_rows(summary: RunSummary) -> list[tuple[str, int]]:
    return [
        ("Total packages found", summary.total_units),
        ("Packages skipped (no YAML)", summary.count(VerdictKind.SKIPPED)),
        ("Packages tested", summary.tested_count),
        ("Regressions detected", summary.count(VerdictKind.REGRESSION)),
        ("Hung tests", len(summary.hang_events)),
        ("Successful packages", summary.count(VerdictKind.SUCCESS)),
        ("Failed packages", summary.count(VerdictKind.FAILURE)),
        ("Incomplete results", summary.count(VerdictKind.INCOMPLETE)),
    ]


def render_text(console: Console, summary: RunSummary, ctx: ReportContext) -> None:
    """Print per-package results and a summary table."""
    timeout = format_duration(ctx.hang_timeout)
    console.print("\n[bold]=== Test Results ===[/bold]")

    for verdict in summary.verdicts:
        unit = verdict.unit
        if verdict.kind is VerdictKind.REGRESSION:
            console.print(
                f"[red]\U0001f534 {unit}: REGRESSION DETECTED[/red] "
                "(fails with repo, passes without)"
            )
        elif verdict.kind is VerdictKind.HUNG:
            for mode in verdict.hang_modes:
                console.print(
                    f"[yellow]⏰ {unit}: HUNG[/yellow] "
                    f"({mode.label} - killed after {timeout})"
                )
        elif verdict.kind is VerdictKind.INCOMPLETE:
            console.print(
                f"[yellow]⚠️  {unit}: Incomplete test results[/yellow] "
                f"({verdict.detail})"
            )
        elif ctx.verbose:
            if verdict.kind is VerdictKind.SUCCESS:
                console.print(
                    f"[green]✅ {unit}: PASS[/green] "
                    "(with repo, without-repo test skipped)"
                )
            elif verdict.kind is VerdictKind.FAILURE:
                console.print(f"[red]❌ {unit}: FAIL[/red] (both scenarios)")
            elif verdict.kind is VerdictKind.SKIPPED:
                console.print(f"[dim]⏭️  {unit}: SKIPPED (YAML file not found)[/dim]")

    table = Table(title="Summary", show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    for label, value in _metric_rows(summary):
        if label == "Regressions detected" and value:
            table.add_row(f"[red]{label}[/red]", f"[red]{value}[/red]")
        else:
            table.add_row(label, str(value))
    console.print(table)

    if summary.hang_events:
        console.print(f"\nTests that hung (killed after {timeout}):")
        for event in summary.hang_events:
            console.print(f"  - {event}", markup=False)

    if summary.regressed:
        console.print("\nPackages with regressions:")
        for unit in summary.regressed:
            console.print(f"  - {unit}", markup=False)


def render_markdown(summary: RunSummary, ctx: ReportContext) -> str:
    """Render the summary as GitHub-flavoured markdown."""
    lines = [
        "## APK Regression Test Summary",
        "",
        f"**Package:** {ctx.package_label}  ",
        f"**APK Repository:** {ctx.overlay_repo}  ",
        f"**Test Duration:** {format_duration(ctx.duration)}  ",
        "",
        "### Test Results",
        "",
        "| Metric | Count |",
        "|--------|-------|",
    ]
    for label, value in _metric_rows(summary):
        if label == "Regressions detected":
            lines.append(f"| **{label}** | **{value}** |")
        else:
            lines.append(f"| {label} | {value} |")

    if summary.regressed:
        lines += [
            "",
            "### \U0001f534 Packages with Regressions",
            "",
            "The following packages **fail with the new APK repository** but "
            "**pass without it**, indicating potential regressions:",
            "",
        ]
        lines += [f"- `{unit}`" for unit in summary.regressed]

    if summary.hang_events:
        lines += [
            "",
            "### ⏰ Tests That Hung",
            "",
            f"The following tests were killed after {format_duration(ctx.hang_timeout)} timeout:",
            "",
        ]
        lines += [f"- `{event}`" for event in summary.hang_events]

    if not summary.regressed and not summary.hang_events:
        lines += [
            "",
            "### ✅ All Tests Passed",
            "",
            "No regressions were detected. All packages either passed with the new "
            "repository or failed consistently in both scenarios.",
        ]

    lines += ["", "---", "*Generated by apkregress*"]
    return "\n".join(lines) + "\n"
