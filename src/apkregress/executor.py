# Copyright (c) Syntropy Systems
"""Single-trial executor: runs the test command for one package and mode."""
from __future__ import annotations

import logging
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING

from apkregress.config import format_duration
from apkregress.errors import (
    ApkRegressError,
    DefinitionNotFoundError,
    ProcessExitError,
    ProcessStartError,
    RunCancelledError,
    TrialTimeoutError,
)
from apkregress.models.trial import Trial, TrialMode, TrialOutcome
from apkregress.runner import ProcessRunner

if TYPE_CHECKING:
    from apkregress.config import RegressConfig

logger = logging.getLogger(__name__)

HUNG_MARKER = "\n\n=== TEST HUNG - KILLED AFTER {timeout} ===\n"


def log_file_name(unit: str, mode: TrialMode) -> str:
    """Return the deterministic log file name for a unit and mode."""
    return f"{unit}_{mode.value}.log"


class TrialExecutor:
    """Runs trials of the external test command against a package repository.

    Every trial gets its own scratch directory, removed on every exit path,
    and its own log file under ``log_dir``. Errors are never raised to the
    caller; they are captured in the returned :class:`Trial`.
    """

    def __init__(
        self,
        repo_path: Path,
        log_dir: Path,
        overlay_repo: str,
        hang_timeout: float,
        config: RegressConfig,
    ) -> None:
        if hang_timeout <= 0:
            msg = f"hang_timeout must be positive, got {hang_timeout}"
            raise ValueError(msg)
        self.repo_path = repo_path
        self.log_dir = log_dir
        self.overlay_repo = overlay_repo
        self.hang_timeout = hang_timeout
        self.config = config
        self._active: set[ProcessRunner] = set()
        self._active_lock = threading.Lock()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Kill every running trial and refuse to start new ones.

        Safe to call from any thread or from a signal handler.
        """
        with self._active_lock:
            self._cancelled.set()
            running = list(self._active)
        for proc in running:
            logger.info("Killing %s", " ".join(proc.command_argv))
            _ = proc.kill(grace_period=self.config.kill_grace_period)

    def definition_path(self, unit: str) -> Path:
        return self.repo_path / f"{unit}{self.config.definition_suffix}"

    def log_path(self, unit: str, mode: TrialMode) -> Path:
        return self.log_dir / log_file_name(unit, mode)

    def build_command(self, unit: str) -> list[str]:
        return [token.format(unit=unit) for token in self.config.test_command]

    def build_env(self, mode: TrialMode, scratch_dir: Path) -> dict[str, str]:
        """Environment overrides for one trial.

        Both modes point the build at the scratch directory; only the overlay
        mode adds the repository option.
        """
        env = {self.config.workdir_env_var: str(scratch_dir)}
        if mode is TrialMode.OVERLAY:
            env[self.config.overlay_env_var] = self.config.overlay_template.format(
                repo=self.overlay_repo
            )
        return env

    def run_trial(self, unit: str, mode: TrialMode) -> Trial:
        """Run one trial and classify its outcome.

        Returns a SKIPPED trial without spawning anything when the package
        definition is missing. Setup failures (scratch directory, log file)
        and start failures are reported as FAILURE.
        """
        started = time.monotonic()

        definition = self.definition_path(unit)
        if not definition.exists():
            logger.info("Skipping %s: definition not found at %s", unit, definition)
            error = DefinitionNotFoundError(f"package definition not found: {definition}")
            return Trial(unit=unit, mode=mode, outcome=TrialOutcome.SKIPPED, error=str(error))

        log_path = self.log_path(unit, mode)
        outcome = TrialOutcome.SUCCESS
        error: ApkRegressError | OSError | None = None
        exit_code: int | None = None

        try:
            with tempfile.TemporaryDirectory(
                prefix=f"apkregress-{unit}-",
                dir=self.config.work_root,
                ignore_cleanup_errors=True,
            ) as scratch:
                exit_code = self._execute(unit, mode, Path(scratch), log_path)
        except TrialTimeoutError as e:
            outcome = TrialOutcome.HUNG
            error = e
        except RunCancelledError as e:
            outcome = TrialOutcome.FAILURE
            error = e
        except (ProcessStartError, ProcessExitError) as e:
            outcome = TrialOutcome.FAILURE
            error = e
            exit_code = getattr(e, "exit_code", None)
        except OSError as e:
            logger.warning("Could not set up trial %s (%s): %s", unit, mode.label, e)
            outcome = TrialOutcome.FAILURE
            error = e

        return Trial(
            unit=unit,
            mode=mode,
            outcome=outcome,
            error=str(error) if error is not None else None,
            exit_code=exit_code,
            log_path=log_path,
            duration=time.monotonic() - started,
        )

    def _execute(self, unit: str, mode: TrialMode, scratch_dir: Path, log_path: Path) -> int:
        command = self.build_command(unit)
        env = self.build_env(mode, scratch_dir)

        if mode is TrialMode.OVERLAY:
            logger.info(
                "Testing %s with repository %s (temp: %s, log: %s)",
                unit, self.overlay_repo, scratch_dir, log_path,
            )
        else:
            logger.info(
                "Testing %s without repository (temp: %s, log: %s)",
                unit, scratch_dir, log_path,
            )

        with ProcessRunner(command, self.repo_path, log_path, env=env) as proc:
            proc.open_log()
            if self.cancelled:
                msg = f"run cancelled before {unit} started"
                raise RunCancelledError(msg)
            try:
                proc.start()
            except OSError as e:
                msg = f"failed to start {' '.join(command)}: {e}"
                raise ProcessStartError(msg) from e

            with self._active_lock:
                self._active.add(proc)
                cancelled = self.cancelled
            try:
                if cancelled:
                    _ = proc.kill()
                exit_code = proc.wait(timeout=self.hang_timeout)
            except subprocess.TimeoutExpired:
                _ = proc.kill(grace_period=self.config.kill_grace_period)
                timeout = format_duration(self.hang_timeout)
                proc.write_marker(HUNG_MARKER.format(timeout=timeout))
                logger.info("Test %s hung and was killed after %s", unit, timeout)
                msg = f"test hung and was killed after {timeout}"
                raise TrialTimeoutError(msg, self.hang_timeout) from None
            finally:
                with self._active_lock:
                    self._active.discard(proc)

        if self.cancelled:
            msg = f"run cancelled while testing {unit}"
            raise RunCancelledError(msg)
        if exit_code != 0:
            msg = f"{' '.join(command)} failed: exit status {exit_code}"
            raise ProcessExitError(msg, exit_code)
        return exit_code
