# Copyright (c) Syntropy Systems
"""Pytest fixtures for apkregress tests."""

from __future__ import annotations

import os
import sys
import tempfile
import textwrap
import time
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from apkregress.config import RegressConfig
from apkregress.executor import TrialExecutor

# Stand-in for `make test/<unit>`. Behaviour is chosen by the unit prefix:
#   ok-*        passes in both modes
#   fail-*      fails in both modes
#   regress-*   fails only with the overlay repository
#   hang-*      never exits
#   hangrepo-*  never exits with the overlay repository, passes without
#   spawn-*     starts a grandchild, records its pid, then never exits
FAKE_BUILD = textwrap.dedent(
    """
    import os
    import subprocess
    import sys
    import time

    unit = sys.argv[1]
    overlay = os.environ.get("MELANGE_EXTRA_OPTS", "")
    print(f"building {unit}", flush=True)
    print(f"overlay={overlay}", flush=True)
    print(f"tmpdir={os.environ.get('TMPDIR', '')}", flush=True)
    sys.stderr.write(f"stderr from {unit}\\n")
    sys.stderr.flush()

    if unit.startswith("spawn-"):
        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(120)"])
        with open(os.environ["PID_FILE"], "w") as f:
            f.write(f"{os.getpid()} {child.pid}")
        time.sleep(120)
    if unit.startswith("hang-") or (unit.startswith("hangrepo-") and overlay):
        time.sleep(120)
    if unit.startswith("fail-") or (unit.startswith("regress-") and overlay):
        sys.exit(2)
    """
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_build(temp_dir: Path) -> Path:
    """Write the fake build script and return its path."""
    script = temp_dir / "fake_build.py"
    _ = script.write_text(FAKE_BUILD)
    return script


@pytest.fixture
def package_repo(temp_dir: Path) -> Callable[..., Path]:
    """Return a factory creating a package repository with definitions."""

    def _make(*units: str) -> Path:
        repo = temp_dir / "packages"
        repo.mkdir(exist_ok=True)
        for unit in units:
            _ = (repo / f"{unit}.yaml").write_text(f"package:\n  name: {unit}\n")
        return repo

    return _make


@pytest.fixture
def test_config(fake_build: Path, temp_dir: Path) -> RegressConfig:
    """Configuration running the fake build instead of make."""
    work_root = temp_dir / "work"
    work_root.mkdir()
    return RegressConfig(
        test_command=[sys.executable, str(fake_build), "{unit}"],
        work_root=str(work_root),
        hang_timeout=1.0,
    )


@pytest.fixture
def make_executor(
    temp_dir: Path,
    test_config: RegressConfig,
) -> Callable[..., TrialExecutor]:
    """Return a factory building an executor over a given repository."""

    def _make(repo_path: Path, hang_timeout: float = 1.0) -> TrialExecutor:
        log_dir = temp_dir / "logs"
        log_dir.mkdir(exist_ok=True)
        return TrialExecutor(
            repo_path=repo_path,
            log_dir=log_dir,
            overlay_repo="https://example.test/os",
            hang_timeout=hang_timeout,
            config=test_config,
        )

    return _make


def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    # Zombies still answer signal 0 until their parent reaps them
    stat = Path(f"/proc/{pid}/stat")
    try:
        state = stat.read_text().rsplit(")", 1)[1].split()[0]
    except (OSError, IndexError):
        return True
    return state != "Z"


@pytest.fixture
def spawned_pids(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[..., list[int]]:
    """Make spawn-* builds record their pids and return a reader waiting for them."""
    path = temp_dir / "pids"
    monkeypatch.setenv("PID_FILE", str(path))

    def _read(timeout: float = 10.0) -> list[int]:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if path.exists():
                pids = path.read_text().split()
                if len(pids) == 2:
                    return [int(pid) for pid in pids]
            time.sleep(0.05)
        msg = "spawn build never recorded its pids"
        raise AssertionError(msg)

    return _read


@pytest.fixture
def wait_until_gone() -> Callable[..., bool]:
    """Return a helper polling until every pid has exited."""

    def _wait(pids: list[int], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while any(_is_alive(pid) for pid in pids) and time.monotonic() < deadline:
            time.sleep(0.1)
        return not any(_is_alive(pid) for pid in pids)

    return _wait
