# Copyright (c) Syntropy Systems
"""Package discovery: reverse dependencies from an APK index, or a list file."""
from __future__ import annotations

import logging
import os
import platform
import subprocess
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import Field, ValidationError

from apkregress.errors import DependencyResolutionError, PackageListError
from apkregress.models.base import RegressBaseModel

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

AUTH_AUDIENCE = "apk.cgr.dev"

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x86_64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}


class RepoType(str, Enum):
    """Package repository flavours with their APKINDEX locations."""

    WOLFI = "wolfi"
    ENTERPRISE = "enterprise"
    EXTRAS = "extras"

    def index_url(self, arch: str) -> str:
        templates = {
            RepoType.WOLFI: "https://packages.wolfi.dev/os/{arch}/APKINDEX.tar.gz",
            RepoType.ENTERPRISE: "https://apk.cgr.dev/chainguard-private/{arch}/APKINDEX.tar.gz",
            RepoType.EXTRAS: "https://packages.cgr.dev/extras/{arch}/APKINDEX.tar.gz",
        }
        return templates[self].format(arch=arch)

    @property
    def requires_auth(self) -> bool:
        return self is not RepoType.WOLFI


class ApkPackage(RegressBaseModel):
    """One line of ``apkrane ls --json`` output."""

    origin: str = Field(default="", alias="Origin")
    dependencies: list[str] | None = Field(default=None, alias="Dependencies")


def index_arch(machine: str | None = None) -> str:
    """Map a host machine name to the architecture used in index URLs."""
    if machine is None:
        machine = platform.machine()
    return _ARCH_ALIASES.get(machine.lower(), machine.lower())


def parse_index_lines(output: str) -> list[ApkPackage]:
    """Parse JSON-lines index output, skipping blank and malformed lines."""
    packages: list[ApkPackage] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        try:
            packages.append(ApkPackage.model_validate_json(line))
        except ValidationError as e:
            logger.warning("Failed to parse index line: %s", e.errors()[0]["msg"])
    return packages


def find_reverse_dependencies(packages: list[ApkPackage], package_name: str) -> list[str]:
    """Return the sorted origins depending on ``package_name``.

    A dependency matches when it contains the package name anywhere, so
    ``so:libfoo.so.1`` counts as a dependency on ``libfoo``.
    """
    origins: set[str] = set()
    for pkg in packages:
        if not pkg.dependencies or not pkg.origin:
            continue
        if any(package_name in dep for dep in pkg.dependencies):
            origins.add(pkg.origin)
    return sorted(origins)


class ApkIndexClient:
    """Resolves reverse dependencies using the ``apkrane`` tool."""

    def __init__(self, repo_type: RepoType = RepoType.WOLFI, arch: str | None = None) -> None:
        self.repo_type = repo_type
        self.arch = index_arch(arch)

    @property
    def index_url(self) -> str:
        return self.repo_type.index_url(self.arch)

    def auth_env(self) -> dict[str, str]:
        """Environment for authenticated index access.

        Raises:
            DependencyResolutionError: If no token could be obtained.

        """
        try:
            result = subprocess.run(  # noqa: S603
                ["chainctl", "auth", "token", "--audience", AUTH_AUDIENCE],  # noqa: S607
                capture_output=True,
                text=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            msg = f"failed to get authentication token: {e}"
            raise DependencyResolutionError(msg) from e

        token = result.stdout.strip()
        logger.info("Setting up authentication for %s repository", self.repo_type.value)
        return {"HTTP_AUTH": f"basic:{AUTH_AUDIENCE}:user:{token}"}

    def list_index(self) -> list[ApkPackage]:
        """Fetch and parse the latest packages in the index.

        Raises:
            DependencyResolutionError: If apkrane cannot be run or fails.

        """
        env = os.environ.copy()
        if self.repo_type.requires_auth:
            env.update(self.auth_env())

        try:
            result = subprocess.run(  # noqa: S603
                ["apkrane", "ls", "--json", "--latest", self.index_url],  # noqa: S607
                capture_output=True,
                text=True,
                check=True,
                env=env,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            msg = f"failed to run apkrane ls for {self.index_url}: {e}"
            raise DependencyResolutionError(msg) from e

        return parse_index_lines(result.stdout)

    def reverse_dependencies(self, package_name: str) -> list[str]:
        """Return the sorted origins of packages that depend on package_name."""
        logger.info("Finding reverse dependencies for package: %s", package_name)
        origins = find_reverse_dependencies(self.list_index(), package_name)
        logger.info("Found %d reverse dependencies", len(origins))
        return origins


def read_package_file(path: Path) -> list[str]:
    """Read package names, one per line, ignoring blanks and ``#`` comments.

    Names listed more than once are kept at their first position.

    Raises:
        PackageListError: If the file cannot be read or lists no packages.

    """
    try:
        text = path.read_text()
    except OSError as e:
        msg = f"failed to read package file {path}: {e}"
        raise PackageListError(msg) from e

    names = (line.strip() for line in text.splitlines())
    packages = list(dict.fromkeys(name for name in names if name and not name.startswith("#")))
    if not packages:
        msg = f"no packages found in file {path}"
        raise PackageListError(msg)
    return packages
