# Copyright (c) Syntropy Systems
"""Tests for configuration loading."""

from __future__ import annotations

import os
from datetime import datetime
from typing import TYPE_CHECKING

import pytest
import yaml

from apkregress.config import (
    CONFIG_FILENAME,
    DEFAULT_HANG_TIMEOUT,
    RegressConfig,
    find_config_file,
    format_duration,
    load_config,
    make_log_dir,
    parse_duration,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestDurations:
    """Tests for duration parsing and formatting."""

    @pytest.mark.parametrize(
        ("text", "seconds"),
        [
            ("90", 90.0),
            ("1.5", 1.5),
            ("30m", 1800.0),
            ("1h30m", 5400.0),
            ("45s", 45.0),
            ("500ms", 0.5),
            ("1h0m5s", 3605.0),
            (" 2M ", 120.0),
        ],
    )
    def test_parse(self, text: str, seconds: float) -> None:
        """Test accepted duration formats."""
        assert parse_duration(text) == seconds

    @pytest.mark.parametrize("text", ["", "abc", "10x", "m5", "-5", "5m-", "nan"])
    def test_parse_rejects(self, text: str) -> None:
        """Test rejected duration formats."""
        with pytest.raises(ValueError):
            _ = parse_duration(text)

    @pytest.mark.parametrize(
        ("seconds", "text"),
        [(1800.0, "30m"), (5400.0, "1h30m"), (45.0, "45s"), (0.5, "0.5s"), (3605.0, "1h5s")],
    )
    def test_format(self, seconds: float, text: str) -> None:
        """Test duration formatting."""
        assert format_duration(seconds) == text


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self, temp_dir: Path) -> None:
        """Test defaults when the given file does not exist."""
        config = load_config(temp_dir / "missing.yaml")

        assert config == RegressConfig()
        assert config.hang_timeout == DEFAULT_HANG_TIMEOUT
        assert config.test_command == ["make", "test/{unit}"]

    def test_values_from_file(self, temp_dir: Path) -> None:
        """Test that known keys override defaults."""
        path = temp_dir / "config.yaml"
        with path.open("w") as f:
            yaml.dump(
                {
                    "concurrency": 8,
                    "hang_timeout": "45m",
                    "kill_grace_period": 5,
                    "log_root": "/var/log/apkregress",
                    "test_command": ["make", "-j1", "test/{unit}"],
                    "overlay_env_var": "EXTRA_OPTS",
                    "unknown_key": True,
                },
                f,
            )

        config = load_config(path)

        assert config.concurrency == 8
        assert config.hang_timeout == 2700.0
        assert config.kill_grace_period == 5.0
        assert config.log_root == "/var/log/apkregress"
        assert config.test_command == ["make", "-j1", "test/{unit}"]
        assert config.overlay_env_var == "EXTRA_OPTS"

    def test_invalid_values_ignored(self, temp_dir: Path) -> None:
        """Test that wrongly typed or out-of-range values keep defaults."""
        path = temp_dir / "config.yaml"
        _ = path.write_text("concurrency: 0\nhang_timeout: 0\ntest_command: make\n")

        config = load_config(path)

        assert config.concurrency == 4
        assert config.hang_timeout == DEFAULT_HANG_TIMEOUT
        assert config.test_command == ["make", "test/{unit}"]

    def test_finds_nearest_file(self, temp_dir: Path) -> None:
        """Test discovery by walking up from the current directory."""
        nested = temp_dir / "a" / "b"
        nested.mkdir(parents=True)
        _ = (temp_dir / CONFIG_FILENAME).write_text("concurrency: 2\n")

        found = find_config_file(nested)

        assert found == (temp_dir / CONFIG_FILENAME).resolve()

    def test_load_uses_discovered_file(self, temp_dir: Path) -> None:
        """Test that load_config falls back to the discovered file."""
        _ = (temp_dir / CONFIG_FILENAME).write_text("concurrency: 6\n")
        cwd = os.getcwd()
        os.chdir(temp_dir)
        try:
            assert load_config().concurrency == 6
        finally:
            os.chdir(cwd)


class TestLogDir:
    """Tests for per-run log directories."""

    def test_single_package_name(self, temp_dir: Path) -> None:
        """Test the directory name for a single-package run."""
        log_dir = make_log_dir(temp_dir, "openssl", now=datetime(2025, 3, 4, 5, 6, 7))

        assert log_dir == temp_dir / "regression-test-openssl-20250304-050607"
        assert log_dir.is_dir()

    def test_package_list_name(self, temp_dir: Path) -> None:
        """Test the directory name for a package-list run."""
        log_dir = make_log_dir(temp_dir / "logs", now=datetime(2025, 3, 4, 5, 6, 7))

        assert log_dir == temp_dir / "logs" / "package-list-test-20250304-050607"
        assert log_dir.is_dir()
