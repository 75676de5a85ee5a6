# Copyright (c) Syntropy Systems
"""Turns per-unit trials into verdicts and a run summary.

The rules in :func:`classify` are evaluated top to bottom and the first
match wins. Their order matters: a skip outranks a hang, and a hang in
either mode outranks any pass/fail comparison.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from apkregress.models.trial import Trial, TrialMode, TrialOutcome
from apkregress.models.verdict import HangEvent, RunSummary, UnitVerdict, VerdictKind

if TYPE_CHECKING:
    from collections.abc import Iterable


def group_trials(trials: Iterable[Trial]) -> dict[str, dict[TrialMode, Trial]]:
    """Group trials by unit, keyed by mode, in first-seen unit order."""
    grouped: dict[str, dict[TrialMode, Trial]] = {}
    for trial in trials:
        grouped.setdefault(trial.unit, {})[trial.mode] = trial
    return grouped


def classify(unit: str, trials: dict[TrialMode, Trial]) -> UnitVerdict:
    """Classify one unit from its overlay and optional baseline trial."""
    overlay = trials.get(TrialMode.OVERLAY)
    baseline = trials.get(TrialMode.BASELINE)

    if overlay is None:
        return UnitVerdict(unit=unit, kind=VerdictKind.INCOMPLETE, detail="no overlay trial")

    if overlay.outcome is TrialOutcome.SKIPPED:
        return UnitVerdict(unit=unit, kind=VerdictKind.SKIPPED)

    if overlay.outcome is TrialOutcome.HUNG:
        modes = [TrialMode.OVERLAY]
        if baseline is not None and baseline.outcome is TrialOutcome.HUNG:
            modes.append(TrialMode.BASELINE)
        return UnitVerdict(unit=unit, kind=VerdictKind.HUNG, hang_modes=tuple(modes))

    if baseline is not None and baseline.outcome is TrialOutcome.HUNG:
        return UnitVerdict(unit=unit, kind=VerdictKind.HUNG, hang_modes=(TrialMode.BASELINE,))

    if overlay.outcome is TrialOutcome.SUCCESS and baseline is None:
        return UnitVerdict(unit=unit, kind=VerdictKind.SUCCESS)

    if overlay.outcome is TrialOutcome.FAILURE and baseline is not None:
        if baseline.outcome is TrialOutcome.SUCCESS:
            return UnitVerdict(unit=unit, kind=VerdictKind.REGRESSION)
        if baseline.outcome is TrialOutcome.FAILURE:
            return UnitVerdict(unit=unit, kind=VerdictKind.FAILURE)

    if overlay.outcome is TrialOutcome.FAILURE and baseline is None:
        detail = "overlay trial failed but no baseline trial ran"
    else:
        detail = f"unexpected trial combination: {_describe(overlay, baseline)}"
    return UnitVerdict(unit=unit, kind=VerdictKind.INCOMPLETE, detail=detail)


def _describe(overlay: Trial, baseline: Trial | None) -> str:
    base = baseline.outcome.value if baseline is not None else "none"
    return f"overlay={overlay.outcome.value}, baseline={base}"


def summarize(trials: Iterable[Trial], total_units: int | None = None) -> RunSummary:
    """Classify every unit present in ``trials`` and aggregate the verdicts.

    Hang events are counted per mode, so a unit that hung with and without
    the overlay repository contributes two events.
    """
    grouped = group_trials(trials)
    verdicts: list[UnitVerdict] = []
    hang_events: list[HangEvent] = []

    for unit in sorted(grouped):
        verdict = classify(unit, grouped[unit])
        verdicts.append(verdict)
        hang_events.extend(HangEvent(unit=unit, mode=mode) for mode in verdict.hang_modes)

    return RunSummary(
        total_units=len(grouped) if total_units is None else total_units,
        verdicts=verdicts,
        hang_events=hang_events,
    )
