# Copyright (c) Syntropy Systems
"""Bounded-concurrency scheduler running the two-trial protocol per package."""
from __future__ import annotations

import logging
import queue
import threading
from typing import TYPE_CHECKING, Protocol

from apkregress.errors import RunCancelledError, SchedulingError
from apkregress.models.trial import Trial, TrialMode

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from apkregress.progress import ProgressTracker

logger = logging.getLogger(__name__)


class TrialRunner(Protocol):
    """Anything that can run a single trial and abort the ones running."""

    def run_trial(self, unit: str, mode: TrialMode) -> Trial: ...

    def cancel(self) -> None: ...


class Scheduler:
    """Runs trials for many units with at most ``concurrency`` at a time.

    One thread is started per unit. Each thread holds an admission slot for
    the whole lifetime of its unit, so at most ``concurrency`` executor calls
    ever run simultaneously. Trials are collected on an unbounded queue and
    returned only after every thread has finished.
    """

    def __init__(
        self,
        executor: TrialRunner,
        concurrency: int,
        progress: ProgressTracker | None = None,
        on_trial: Callable[[Trial], None] | None = None,
    ) -> None:
        if concurrency < 1:
            msg = f"concurrency must be at least 1, got {concurrency}"
            raise ValueError(msg)
        self.executor = executor
        self.concurrency = concurrency
        self.progress = progress
        self.on_trial = on_trial
        self._slots = threading.BoundedSemaphore(concurrency)
        self._cancelled = threading.Event()
        self._results: queue.SimpleQueue[Trial] = queue.SimpleQueue()
        self._errors: list[tuple[str, Exception]] = []
        self._errors_lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop admitting units and kill the trials already running.

        Callable from another thread or a signal handler; :meth:`run` then
        raises :class:`RunCancelledError` once every thread has exited.
        """
        self._cancelled.set()
        self.executor.cancel()

    def run(self, units: Sequence[str]) -> list[Trial]:
        """Run every unit and return all trials emitted.

        Duplicate unit names are tested once. Within a unit the overlay trial
        always precedes its baseline trial. No ordering holds across units.

        Raises:
            RunCancelledError: If the run was cancelled or interrupted.
            SchedulingError: If any unit's task raised unexpectedly. All other
                units still run to completion first.

        """
        self._results = queue.SimpleQueue()
        self._errors = []

        threads = [
            threading.Thread(
                target=self._run_unit,
                args=(unit,),
                name=f"apkregress-{unit}",
                daemon=True,
            )
            for unit in dict.fromkeys(units)
        ]
        started: list[threading.Thread] = []
        try:
            for t in threads:
                t.start()
                started.append(t)
            for t in started:
                t.join()
        except KeyboardInterrupt:
            logger.warning("Interrupted, killing running tests")
            self.cancel()
            for t in started:
                t.join()

        trials: list[Trial] = []
        while True:
            try:
                trials.append(self._results.get_nowait())
            except queue.Empty:
                break

        if self.cancelled:
            msg = f"run cancelled after {len(trials)} trial(s); running tests were killed"
            raise RunCancelledError(msg)

        if self._errors:
            unit, first = self._errors[0]
            msg = f"{len(self._errors)} unit(s) failed unexpectedly, first: {unit}: {first}"
            raise SchedulingError(msg) from first

        return trials

    def _emit(self, trial: Trial) -> None:
        self._results.put(trial)
        if self.on_trial is not None:
            self.on_trial(trial)

    def _run_unit(self, unit: str) -> None:
        try:
            with self._slots:
                if self.cancelled:
                    return
                overlay = self.executor.run_trial(unit, TrialMode.OVERLAY)
                self._emit(overlay)

                # Baseline only runs when the overlay trial ran and did not pass
                if overlay.succeeded or overlay.skipped or self.cancelled:
                    return

                baseline = self.executor.run_trial(unit, TrialMode.BASELINE)
                if baseline.skipped:
                    # Definition vanished between trials; nothing to compare
                    return
                self._emit(baseline)
        except Exception as e:
            logger.exception("Unexpected error while testing %s", unit)
            with self._errors_lock:
                self._errors.append((unit, e))
        finally:
            if self.progress is not None:
                _ = self.progress.advance()
