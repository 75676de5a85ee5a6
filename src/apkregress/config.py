# Copyright (c) Syntropy Systems
"""Configuration management for apkregress."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import cast

import yaml

CONFIG_FILENAME = ".apkregress.yaml"

# Default hang timeout in seconds (30 minutes)
DEFAULT_HANG_TIMEOUT = 30 * 60.0

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


@dataclass
class RegressConfig:
    """Configuration for apkregress."""

    # Number of packages tested at the same time
    concurrency: int = 4

    # Seconds before a trial is considered hung and killed
    hang_timeout: float = DEFAULT_HANG_TIMEOUT

    # Grace period between SIGTERM and SIGKILL for hung trials (seconds)
    kill_grace_period: float = 0.0

    # Directory that receives per-run log directories
    log_root: str = "logs"

    # Parent directory for per-trial scratch directories (None = system temp)
    work_root: str | None = None

    # External test command, formatted with {unit}
    test_command: list[str] = field(default_factory=lambda: ["make", "test/{unit}"])

    # Suffix of a package definition file in the package repository
    definition_suffix: str = ".yaml"

    # Environment variable carrying the overlay repository option
    overlay_env_var: str = "MELANGE_EXTRA_OPTS"

    # Value of the overlay variable, formatted with {repo}
    overlay_template: str = "--repository-append {repo}"

    # Environment variable pointing the build at its scratch directory
    workdir_env_var: str = "TMPDIR"


def parse_duration(text: str) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers of seconds (``"90"``, ``"1.5"``) or unit strings
    such as ``"30m"``, ``"1h30m"``, ``"45s"`` and ``"500ms"``.

    Raises:
        ValueError: If the text is empty, negative or malformed.

    """
    value = text.strip().lower()
    if not value:
        msg = "Duration must not be empty"
        raise ValueError(msg)

    try:
        seconds = float(value)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(value):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(value) or pos == 0:
            msg = f"Invalid duration: {text!r}"
            raise ValueError(msg) from None

    if not math.isfinite(seconds):
        msg = f"Invalid duration: {text!r}"
        raise ValueError(msg)
    if seconds < 0:
        msg = f"Duration must not be negative: {text!r}"
        raise ValueError(msg)
    return seconds


def format_duration(seconds: float) -> str:
    """Format seconds the way durations are accepted on the command line."""
    total = int(round(seconds))
    if total < 60:
        return f"{seconds:g}s" if seconds < 1 else f"{total}s"
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs:
        parts.append(f"{secs}s")
    return "".join(parts)


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the nearest config file by walking up from start_path.

    Returns None if no config file is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        current = current.parent

    candidate = current / CONFIG_FILENAME
    if candidate.is_file():
        return candidate

    return None


def get_global_config_path() -> Path:
    """Get the global config file path (~/.apkregress/config.yaml)."""
    return Path.home() / ".apkregress" / "config.yaml"


def load_config(config_path: Path | None = None) -> RegressConfig:
    """Load configuration from a YAML file or defaults.

    Looks for config in:
    1. Provided config_path
    2. Nearest .apkregress.yaml walking up
    3. ~/.apkregress/config.yaml
    4. Defaults
    """
    config = RegressConfig()

    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            global_config = get_global_config_path()
            if global_config.exists():
                config_path = global_config

    if config_path is None or not config_path.exists():
        return config

    with config_path.open() as f:
        data = cast("dict[str, object]", yaml.safe_load(f) or {})

    concurrency = data.get("concurrency")
    if isinstance(concurrency, int) and not isinstance(concurrency, bool) and concurrency > 0:
        config.concurrency = concurrency
    hang_timeout = data.get("hang_timeout")
    if isinstance(hang_timeout, str):
        config.hang_timeout = parse_duration(hang_timeout)
    elif isinstance(hang_timeout, (int, float)) and not isinstance(hang_timeout, bool):
        config.hang_timeout = float(hang_timeout)
    if config.hang_timeout <= 0:
        config.hang_timeout = DEFAULT_HANG_TIMEOUT
    kill_grace_period = data.get("kill_grace_period")
    if isinstance(kill_grace_period, (int, float)) and not isinstance(kill_grace_period, bool):
        config.kill_grace_period = float(kill_grace_period)
    log_root = data.get("log_root")
    if isinstance(log_root, str):
        config.log_root = log_root
    work_root = data.get("work_root")
    if isinstance(work_root, str):
        config.work_root = work_root
    test_command = data.get("test_command")
    if isinstance(test_command, list) and test_command:
        config.test_command = [str(token) for token in cast("list[object]", test_command)]
    for key in ("definition_suffix", "overlay_env_var", "overlay_template", "workdir_env_var"):
        value = data.get(key)
        if isinstance(value, str):
            setattr(config, key, value)

    return config


def make_log_dir(
    log_root: Path,
    package_name: str | None = None,
    now: datetime | None = None,
) -> Path:
    """Create the timestamped log directory for one run.

    Single-package runs get ``regression-test-<package>-<stamp>``; runs over
    a package list get ``package-list-test-<stamp>``.
    """
    if now is None:
        now = datetime.now()
    stamp = now.strftime("%Y%m%d-%H%M%S")

    if package_name:
        log_dir = log_root / f"regression-test-{package_name}-{stamp}"
    else:
        log_dir = log_root / f"package-list-test-{stamp}"

    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir
