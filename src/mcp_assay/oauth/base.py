"""Port: OAuth requirement detection."""

from __future__ import annotations

from typing import Protocol

from mcp_assay.models import OAuthMetadata


class OAuthDiscoveryPort(Protocol):
    """Port for detecting whether an MCP server is OAuth-gated."""

    async def discover_well_known(self, server_url: str) -> OAuthMetadata | None:
        """Fetch RFC 9728 protected-resource metadata for the server's origin."""
        ...

    async def detect(
        self,
        server_url: str,
        www_authenticate: str | None,
    ) -> OAuthMetadata | None:
        """Check both OAuth signals, preferring well-known metadata."""
        ...
