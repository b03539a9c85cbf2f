"""Port: package version lookup for package-runner servers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class PackageVersions:
    installed: str | None = None
    latest: str | None = None


class VersionCheckerPort(Protocol):
    """Port for resolving installed and published versions of a package."""

    async def check(self, package_name: str) -> PackageVersions:
        """Never raises; unknown versions are None."""
        ...
