"""Top-level assessment: pick a transport per descriptor and cross-check HTTP results."""

from __future__ import annotations

import logging

import httpx

from mcp_assay.models import (
    Assessment,
    AssessmentError,
    AssessmentErrorType,
    ServerDescriptor,
    Transport,
)
from mcp_assay.oauth.discovery import OAuthDiscovery
from mcp_assay.packages.base import VersionCheckerPort
from mcp_assay.packages.versions import NpmVersionChecker, with_versions
from mcp_assay.settings import AssessmentSettings
from mcp_assay.transport.base import HttpAssessorPort, SdkValidatorPort, StdioAssessorPort
from mcp_assay.transport.http import StreamableHttpClient, request_headers
from mcp_assay.transport.sdk import SdkCrossValidator, compare_tool_counts
from mcp_assay.transport.stdio import StdioAssessor

logger = logging.getLogger(__name__)


class Assessor:
    """Adapter for AssessorPort.

    Process-based descriptors go to the stdio client, whose failures are
    opaque and become a single ``unknown`` error here. URL-based descriptors
    go to the Streamable HTTP client; a would-be success is then replayed
    through the reference SDK client before it is accepted.
    """

    def __init__(
        self,
        *,
        stdio: StdioAssessorPort,
        http: HttpAssessorPort,
        sdk: SdkValidatorPort,
        versions: VersionCheckerPort | None = None,
        stdio_timeout: float = 15.0,
        log: logging.Logger | None = None,
    ) -> None:
        self._stdio = stdio
        self._http = http
        self._sdk = sdk
        self._versions = versions
        self._stdio_timeout = stdio_timeout
        self._log = log or logger

    @classmethod
    def from_settings(
        cls,
        http_client: httpx.AsyncClient,
        settings: AssessmentSettings | None = None,
        *,
        check_versions: bool = False,
        log: logging.Logger | None = None,
    ) -> Assessor:
        """Wire the default adapters around a shared httpx client."""
        settings = settings or AssessmentSettings()
        oauth = OAuthDiscovery(http_client, timeout_seconds=settings.oauth_timeout, log=log)
        return cls(
            stdio=StdioAssessor(
                timeout_seconds=settings.stdio_timeout,
                client_name=settings.client_name,
                client_version=settings.client_version,
                log=log,
            ),
            http=StreamableHttpClient(
                http_client,
                oauth,
                timeout_seconds=settings.request_timeout,
                client_name=settings.client_name,
                client_version=settings.client_version,
                log=log,
            ),
            sdk=SdkCrossValidator(
                timeout_seconds=settings.sdk_timeout,
                client_name=f"{settings.client_name}-validator",
                client_version=settings.client_version,
                log=log,
            ),
            versions=NpmVersionChecker(http_client, log=log) if check_versions else None,
            stdio_timeout=settings.stdio_timeout,
            log=log,
        )

    async def assess(self, descriptor: ServerDescriptor) -> Assessment:
        transport = descriptor.transport
        if transport is None:
            self._log.info("Skipping %s: no command or URL configured", descriptor.name)
            return AssessmentError(
                type=AssessmentErrorType.UNKNOWN,
                message="No URL or command configured",
            )
        if transport == Transport.STDIO:
            return await self._assess_stdio(descriptor)
        return await self._assess_http(descriptor)

    async def _assess_stdio(self, descriptor: ServerDescriptor) -> Assessment:
        metrics = await self._stdio.assess(descriptor)
        if metrics is None:
            return AssessmentError(
                type=AssessmentErrorType.UNKNOWN,
                message=(
                    f"Failed to assess command-based MCP '{descriptor.name}': "
                    f"'{descriptor.command}' did not complete the MCP handshake "
                    f"(it failed to start, exited early, or did not answer within "
                    f"{self._stdio_timeout:g}s)."
                ),
            )
        if self._versions is not None and metrics.package_name:
            metrics = await with_versions(metrics, self._versions)
        return metrics

    async def _assess_http(self, descriptor: ServerDescriptor) -> Assessment:
        result = await self._http.assess(descriptor)
        if result.error is not None:
            return result.error

        self._log.info("%s: validating with SDK transport...", descriptor.name)
        sdk = await self._sdk.count_tools(descriptor.url, dict(descriptor.headers))
        mismatch = compare_tool_counts(
            len(result.tools),
            sdk,
            url=descriptor.url,
            headers=request_headers(descriptor.headers),
        )
        if mismatch is not None:
            self._log.warning("%s: %s", descriptor.name, mismatch.message)
            return mismatch

        assert result.metrics is not None
        return result.metrics


async def assess(
    descriptor: ServerDescriptor,
    *,
    http_client: httpx.AsyncClient | None = None,
    settings: AssessmentSettings | None = None,
) -> Assessment:
    """Assess one server with default adapters.

    Pass a long-lived ``http_client`` when assessing many servers.
    """
    if http_client is not None:
        return await Assessor.from_settings(http_client, settings).assess(descriptor)
    async with httpx.AsyncClient(follow_redirects=True) as client:
        return await Assessor.from_settings(client, settings).assess(descriptor)
