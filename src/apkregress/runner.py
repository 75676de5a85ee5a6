# Copyright (c) Syntropy Systems
"""Process runner with orphan prevention."""
from __future__ import annotations

import contextlib
import ctypes
import os
import signal
import subprocess
import sys
import time
from typing import IO, TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType

PR_SET_PDEATHSIG = 1


def _load_prctl() -> Any:
    if sys.platform != "linux":
        return None
    try:
        return ctypes.CDLL("libc.so.6", use_errno=True).prctl
    except (AttributeError, OSError):
        return None


# Resolved in the parent; forked children must not dlopen while other
# threads may hold the loader lock.
_prctl = _load_prctl()


def setup_pdeathsig() -> None:
    """Set PDEATHSIG so child dies when parent dies.

    This prevents orphan builds when apkregress itself is killed.
    Only works on Linux.
    """
    if _prctl is None:
        return
    _prctl(PR_SET_PDEATHSIG, signal.SIGKILL)


class ProcessRunner:
    """Runs one external command with its output captured to a log file.

    Features:
    - Uses start_new_session=True so the whole build tree shares a process group
    - Sets PDEATHSIG on Linux to prevent orphans
    - Captures interleaved stdout/stderr to a truncated log file
    - Kills the entire process group, never just the direct child
    """

    command_argv: list[str]
    workdir: Path
    log_path: Path
    env: dict[str, str]
    _process: subprocess.Popen[bytes] | None
    _exit_code: int | None
    _log_file: IO[str] | None

    def __init__(
        self,
        command_argv: list[str],
        workdir: Path,
        log_path: Path,
        env: dict[str, str] | None = None,
    ) -> None:
        """Initialize a process runner.

        Args:
            command_argv: Command as list of argv tokens (no shell)
            workdir: Working directory to run the command in
            log_path: File receiving the combined output stream
            env: Additional environment variables

        """
        self.command_argv = command_argv
        self.workdir = workdir
        self.log_path = log_path

        # Merge environment
        self.env = os.environ.copy()
        if env:
            self.env.update(env)

        self._process = None
        self._exit_code = None
        self._log_file = None

    def open_log(self) -> None:
        """Create or truncate the log file."""
        if self._log_file is None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = self.log_path.open("w")

    def start(self) -> None:
        """Start the process without waiting for it.

        Raises:
            OSError: If the executable cannot be launched.

        """
        self.open_log()

        self._process = subprocess.Popen(  # noqa: S603
            self.command_argv,
            stdout=self._log_file,
            stderr=subprocess.STDOUT,
            env=self.env,
            cwd=str(self.workdir),
            start_new_session=True,  # Creates new process group
            preexec_fn=setup_pdeathsig if sys.platform == "linux" else None,  # noqa: PLW1509
        )

    def wait(self, timeout: float | None = None) -> int:
        """Wait for the process to finish and return exit code.

        Raises:
            subprocess.TimeoutExpired: If the process is still running after
                timeout seconds. The process is left running.

        """
        if self._process is None:
            return self._exit_code or 0

        code = self._process.wait(timeout=timeout)
        self._exit_code = code
        return code

    def kill(self, grace_period: float = 0.0) -> int:
        """Kill the process group and reap the child.

        Sends SIGTERM to the process group, waits for grace_period, then
        sends SIGKILL if still alive. A grace period of zero skips SIGTERM.

        Args:
            grace_period: Seconds to wait after SIGTERM before SIGKILL

        Returns:
            Exit code (negative signal number if killed)

        """
        if self._process is None:
            return self._exit_code or 0

        # Process group ID equals the child's PID with start_new_session
        pgid = self._process.pid

        # Leader already gone: still sweep whatever it left in its group
        if self._process.poll() is not None:
            with contextlib.suppress(OSError, ProcessLookupError):
                os.killpg(pgid, signal.SIGKILL)
            exit_code = self._process.returncode
            self._exit_code = exit_code
            return exit_code

        if grace_period > 0:
            with contextlib.suppress(OSError, ProcessLookupError):
                os.killpg(pgid, signal.SIGTERM)

            deadline = time.monotonic() + grace_period
            while time.monotonic() < deadline:
                if self._process.poll() is not None:
                    break
                time.sleep(0.1)

        # SIGKILL the group even if the leader exited, to catch stragglers
        with contextlib.suppress(OSError, ProcessLookupError):
            os.killpg(pgid, signal.SIGKILL)

        # Reap the child so no zombie or waiter is left behind
        exit_code = self._process.wait()
        self._exit_code = exit_code
        return exit_code

    def write_marker(self, text: str) -> None:
        """Append text to the still-open log file."""
        if self._log_file is not None:
            _ = self._log_file.write(text)
            self._log_file.flush()

    def close(self) -> None:
        """Close the log file."""
        if self._log_file:
            with contextlib.suppress(OSError):
                self._log_file.close()
            self._log_file = None

    def __enter__(self) -> ProcessRunner:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.is_running:
            _ = self.kill()
        self.close()

    @property
    def pid(self) -> int | None:
        """Get the process ID."""
        if self._process is None:
            return None
        return self._process.pid

    @property
    def exit_code(self) -> int | None:
        """Get the exit code if finished."""
        return self._exit_code

    @property
    def is_running(self) -> bool:
        """Check if the process is still running."""
        if self._process is None:
            return False
        return self._process.poll() is None
