# Copyright (c) Syntropy Systems
"""Pydantic models for per-unit verdicts and run summaries."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from .base import FrozenModel, RegressBaseModel
from .trial import TrialMode


class VerdictKind(str, Enum):
    """Final classification of a unit."""

    SUCCESS = "success"
    FAILURE = "failure"
    REGRESSION = "regression"
    HUNG = "hung"
    SKIPPED = "skipped"
    INCOMPLETE = "incomplete"


class RunOutcome(str, Enum):
    """Run-wide condition the caller maps to an exit code."""

    CLEAN = "clean"
    REGRESSIONS = "regressions"
    HUNG = "hung"


class HangEvent(FrozenModel):
    """A single trial that was killed after the hang timeout."""

    unit: str
    mode: TrialMode

    def __str__(self) -> str:
        return f"{self.unit} ({self.mode.label})"


class UnitVerdict(FrozenModel):
    """Classification of one unit after all of its trials completed."""

    unit: str
    kind: VerdictKind
    hang_modes: tuple[TrialMode, ...] = ()
    detail: str | None = None


class RunSummary(RegressBaseModel):
    """Aggregate over all unit verdicts of a run."""

    total_units: int = 0
    verdicts: list[UnitVerdict] = Field(default_factory=list)
    hang_events: list[HangEvent] = Field(default_factory=list)

    def units(self, kind: VerdictKind) -> list[str]:
        """Return the sorted unit names with the given verdict."""
        return sorted(v.unit for v in self.verdicts if v.kind is kind)

    def count(self, kind: VerdictKind) -> int:
        return sum(1 for v in self.verdicts if v.kind is kind)

    @property
    def successful(self) -> list[str]:
        return self.units(VerdictKind.SUCCESS)

    @property
    def failed(self) -> list[str]:
        return self.units(VerdictKind.FAILURE)

    @property
    def regressed(self) -> list[str]:
        return self.units(VerdictKind.REGRESSION)

    @property
    def hung(self) -> list[str]:
        return self.units(VerdictKind.HUNG)

    @property
    def skipped(self) -> list[str]:
        return self.units(VerdictKind.SKIPPED)

    @property
    def incomplete(self) -> list[str]:
        return self.units(VerdictKind.INCOMPLETE)

    @property
    def tested_count(self) -> int:
        """Units that reached the test command (everything but skips)."""
        return len(self.verdicts) - self.count(VerdictKind.SKIPPED)

    @property
    def outcome(self) -> RunOutcome:
        """Regressions take precedence over hangs."""
        if self.count(VerdictKind.REGRESSION):
            return RunOutcome.REGRESSIONS
        if self.hang_events:
            return RunOutcome.HUNG
        return RunOutcome.CLEAN

    def partitions(self) -> dict[str, list[str]]:
        """Return the five result lists keyed by their file stem."""
        return {
            "successful": self.successful,
            "failed": self.failed,
            "regressions": self.regressed,
            "hung": self.hung,
            "skipped": self.skipped,
        }
