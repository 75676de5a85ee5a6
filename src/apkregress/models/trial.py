# Copyright (c) Syntropy Systems
"""Pydantic models for single trial executions."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from .base import FrozenModel


class TrialMode(str, Enum):
    """Condition a trial runs under."""

    OVERLAY = "with_repo"
    BASELINE = "without_repo"

    @property
    def label(self) -> str:
        """Human-readable mode name used in reports."""
        return self.value.replace("_", " ")


class TrialOutcome(str, Enum):
    """Result kind of one trial."""

    SUCCESS = "success"
    FAILURE = "failure"
    HUNG = "hung"
    SKIPPED = "skipped"


class Trial(FrozenModel):
    """One execution of the test command for one unit under one mode."""

    unit: str
    mode: TrialMode
    outcome: TrialOutcome
    error: str | None = None
    exit_code: int | None = None
    log_path: Path | None = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is TrialOutcome.SUCCESS

    @property
    def failed(self) -> bool:
        return self.outcome is TrialOutcome.FAILURE

    @property
    def hung(self) -> bool:
        return self.outcome is TrialOutcome.HUNG

    @property
    def skipped(self) -> bool:
        return self.outcome is TrialOutcome.SKIPPED
