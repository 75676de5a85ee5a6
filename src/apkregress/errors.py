# Copyright (c) Syntropy Systems
"""Exception types for apkregress."""
from __future__ import annotations


class ApkRegressError(Exception):
    """Base class for all apkregress errors."""


class DefinitionNotFoundError(ApkRegressError):
    """The package definition file does not exist in the package repository."""


class ProcessStartError(ApkRegressError):
    """The external test command could not be started."""


class ProcessExitError(ApkRegressError):
    """The external test command exited with a non-zero status."""

    def __init__(self, message: str, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class TrialTimeoutError(ApkRegressError):
    """The external test command exceeded the hang timeout and was killed."""

    def __init__(self, message: str, timeout: float) -> None:
        super().__init__(message)
        self.timeout = timeout


class DependencyResolutionError(ApkRegressError):
    """Reverse dependencies could not be resolved."""


class PackageListError(ApkRegressError):
    """A package list file could not be read or was empty."""


class SchedulingError(ApkRegressError):
    """A scheduler task failed with an unexpected exception."""


class RunCancelledError(ApkRegressError):
    """The run was interrupted and its running trials were killed."""
