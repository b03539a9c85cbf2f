"""Installed and latest versions of npm packages launched through a runner."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from urllib.parse import quote as urlquote

import httpx

from mcp_assay.models import TokenMetrics, utc_now
from mcp_assay.packages.base import PackageVersions, VersionCheckerPort
from mcp_assay.transport.stdio import terminate_process

logger = logging.getLogger(__name__)

_NPM_REGISTRY_URL = "https://registry.npmjs.org"

# npm ls prints whole dependency trees on failure; keep log lines short.
_STDERR_LOG_LIMIT = 500


class NpmVersionChecker:
    """Adapter for VersionCheckerPort backed by the npm registry and ``npm ls``.

    Every lookup is bounded by ``timeout_seconds``. Failures of any kind,
    including a missing ``npm`` binary, come back as ``None``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        timeout_seconds: float = 10.0,
        npm_command: str = "npm",
        log: logging.Logger | None = None,
    ) -> None:
        self._http = http_client
        self._timeout = timeout_seconds
        self._npm = npm_command
        self._log = log or logger

    async def check(self, package_name: str) -> PackageVersions:
        return PackageVersions(
            installed=await self.installed_version(package_name),
            latest=await self.latest_version(package_name),
        )

    async def latest_version(self, package_name: str) -> str | None:
        # Scoped names keep their leading "@" but the slash must be encoded.
        encoded = urlquote(package_name, safe="@")
        try:
            resp = await asyncio.wait_for(
                self._http.get(f"{_NPM_REGISTRY_URL}/{encoded}/latest", timeout=self._timeout),
                timeout=self._timeout,
            )
        except (httpx.HTTPError, TimeoutError) as exc:
            self._log.debug("npm registry lookup for %s failed: %r", package_name, exc)
            return None
        if not resp.is_success:
            return None
        try:
            version = resp.json().get("version")
        except (ValueError, AttributeError):
            return None
        return version if isinstance(version, str) else None

    async def installed_version(self, package_name: str) -> str | None:
        stdout = await self._npm_ls(package_name)
        if not stdout:
            return None
        try:
            dependencies = json.loads(stdout).get("dependencies", {})
        except (ValueError, AttributeError):
            return None
        entry = dependencies.get(package_name) if isinstance(dependencies, dict) else None
        if isinstance(entry, dict) and isinstance(entry.get("version"), str):
            return entry["version"]
        return None

    async def _npm_ls(self, package_name: str) -> str | None:
        """stdout of ``npm ls -g --json`` for one package, or None on any failure."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self._npm,
                "ls",
                "-g",
                "--json",
                "--depth=0",
                package_name,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            self._log.debug("Cannot run %s: %s", self._npm, exc)
            return None

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError:
            self._log.debug("npm ls for %s timed out after %ss", package_name, self._timeout)
            await terminate_process(proc, grace_seconds=0)
            return None

        if proc.returncode != 0:
            self._log.debug(
                "npm ls for %s failed (%d): %s",
                package_name,
                proc.returncode,
                stderr.decode(errors="replace")[:_STDERR_LOG_LIMIT],
            )
            return None
        return stdout.decode(errors="replace")


async def with_versions(metrics: TokenMetrics, checker: VersionCheckerPort) -> TokenMetrics:
    """Return a new TokenMetrics carrying version info for its package.

    Metrics without a package name are returned unchanged.
    """
    if not metrics.package_name:
        return metrics
    versions = await checker.check(metrics.package_name)
    return dataclasses.replace(
        metrics,
        installed_version=versions.installed,
        latest_version=versions.latest,
        version_checked_at=utc_now(),
    )
