"""MCP server that assesses other MCP servers: reachability, OAuth gating and token cost."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from mcp_assay.assessment.base import AssessmentCachePort, AssessorPort
from mcp_assay.assessment.cache import InMemoryAssessmentCache
from mcp_assay.assessment.orchestrator import Assessor
from mcp_assay.connection.base import ConnectionTestRunnerPort
from mcp_assay.connection.tester import ConnectionTestRunner
from mcp_assay.models import ServerDescriptor
from mcp_assay.oauth.discovery import OAuthDiscovery
from mcp_assay.settings import AssessmentSettings, load_settings
from mcp_assay.tools.assess import assess_server, reassess_server, sweep_servers
from mcp_assay.tools.savings import estimate_savings
from mcp_assay.tools.test import test_connection
from mcp_assay.transport.http import StreamableHttpClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AppContext:
    """Shared state across all tool invocations.

    ``cache`` and ``known`` live for the server process only; nothing is
    written to disk.
    """

    http_client: httpx.AsyncClient
    settings: AssessmentSettings
    assessor: AssessorPort
    connection_tester: ConnectionTestRunnerPort
    cache: AssessmentCachePort
    known: dict[str, ServerDescriptor] = field(default_factory=dict)


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage shared adapter lifecycle -- the composition root."""
    settings = load_settings()
    # No transport retries: a failed probe is reported, not repeated.
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout, connect=settings.reachability_timeout),
        follow_redirects=True,
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
    ) as http_client:
        assessor = Assessor.from_settings(http_client, settings, check_versions=True)
        oauth = OAuthDiscovery(http_client, timeout_seconds=settings.oauth_timeout)
        connection_tester = ConnectionTestRunner(
            http_client,
            StreamableHttpClient(
                http_client,
                oauth,
                timeout_seconds=settings.request_timeout,
                client_name=f"{settings.client_name}-connection-test",
                client_version=settings.client_version,
            ),
            reachability_timeout=settings.reachability_timeout,
        )
        logger.info("mcp-assay ready (sweep limit %d)", settings.sweep_limit)

        yield AppContext(
            http_client=http_client,
            settings=settings,
            assessor=assessor,
            connection_tester=connection_tester,
            cache=InMemoryAssessmentCache(),
        )


mcp = FastMCP(
    "mcp-assay",
    instructions=(
        "mcp-assay checks whether MCP servers can be reached and used, and how much "
        "context budget their tool schemas cost.\n\n"
        "## Tools\n"
        "- **assess_server**: connect to one server (command or URL), list its tools "
        "and estimate their token cost. Failures come back classified as one of "
        "auth_failed, oauth_required, connection_failed, timeout, sdk_mismatch or "
        "unknown, with masked request diagnostics.\n"
        "- **test_connection**: step-by-step connection test for a URL-based server. "
        "Use it to show the user exactly which step fails.\n"
        "- **sweep_servers**: assess up to three not-yet-assessed servers from a "
        "config-shaped mapping. Call again to continue.\n"
        "- **reassess_server**: retry a server assessed earlier in this session, "
        "discarding its cached error.\n"
        "- **estimate_savings**: tokens kept out of the context window when the "
        "listed servers are routed through the guard.\n\n"
        "oauth_required means the server needs an interactive OAuth flow; explain "
        "that to the user instead of retrying. Never echo credentials from headers "
        "or env back to the user."
    ),
    lifespan=app_lifespan,
)

# ─── Read-only tools ──────────────────────────────────────────
mcp.tool(annotations=ToolAnnotations(readOnlyHint=True))(assess_server)
mcp.tool(annotations=ToolAnnotations(readOnlyHint=True))(test_connection)
mcp.tool(annotations=ToolAnnotations(readOnlyHint=True))(sweep_servers)
mcp.tool(annotations=ToolAnnotations(readOnlyHint=True))(reassess_server)
mcp.tool(annotations=ToolAnnotations(readOnlyHint=True))(estimate_savings)
