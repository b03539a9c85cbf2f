"""Detect OAuth-gated MCP servers.

Two independent signals, either one sufficient:

- ``{origin}/.well-known/oauth-protected-resource`` (RFC 9728) returning
  metadata with at least one authorization server.
- A ``WWW-Authenticate`` challenge on a 401/403 that names the Bearer scheme.
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlsplit

import httpx

from mcp_assay.models import OAuthDetection, OAuthMetadata

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/oauth-protected-resource"


def well_known_url(server_url: str) -> str:
    """Protected-resource metadata URL for the origin of *server_url*."""
    parts = urlsplit(server_url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Not an absolute URL: {server_url!r}")
    return f"{parts.scheme}://{parts.netloc}{WELL_KNOWN_PATH}"


def metadata_from_challenge(www_authenticate: str | None) -> OAuthMetadata | None:
    """Synthesize minimal metadata from a Bearer ``WWW-Authenticate`` value."""
    if not www_authenticate or "bearer" not in www_authenticate.lower():
        return None
    return OAuthMetadata(
        detected_via=OAuthDetection.WWW_AUTHENTICATE,
        www_authenticate=www_authenticate,
    )


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


def parse_protected_resource(payload: object) -> OAuthMetadata | None:
    """Parse a well-known response body. Returns None unless it names an auth server."""
    if not isinstance(payload, dict):
        return None
    metadata = OAuthMetadata(
        detected_via=OAuthDetection.WELL_KNOWN,
        resource=_optional_str(payload.get("resource")),
        authorization_servers=_string_list(payload.get("authorization_servers")),
        scopes_supported=_string_list(payload.get("scopes_supported")),
        bearer_methods_supported=_string_list(payload.get("bearer_methods_supported")),
        resource_documentation=_optional_str(payload.get("resource_documentation")),
    )
    return metadata if metadata.is_valid else None


class OAuthDiscovery:
    """Adapter for OAuthDiscoveryPort -- holds httpx client."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        timeout_seconds: float = 5.0,
        log: logging.Logger | None = None,
    ) -> None:
        self._http = http_client
        self._timeout = timeout_seconds
        self._log = log or logger

    async def discover_well_known(self, server_url: str) -> OAuthMetadata | None:
        """GET the protected-resource document. Never raises."""
        try:
            url = well_known_url(server_url)
        except ValueError:
            return None

        try:
            resp = await asyncio.wait_for(
                self._http.get(
                    url,
                    headers={"Accept": "application/json"},
                    timeout=self._timeout,
                ),
                timeout=self._timeout,
            )
        except (httpx.HTTPError, TimeoutError) as exc:
            self._log.debug("OAuth discovery: %s failed: %s", url, exc)
            return None

        if not resp.is_success:
            self._log.debug("OAuth discovery: %s returned %d", url, resp.status_code)
            return None

        try:
            payload = resp.json()
        except ValueError:
            self._log.debug("OAuth discovery: %s returned non-JSON body", url)
            return None

        metadata = parse_protected_resource(payload)
        if metadata is None:
            self._log.debug("OAuth discovery: %s has no authorization_servers", url)
        else:
            self._log.info(
                "OAuth discovery: %s lists authorization servers %s",
                server_url,
                ", ".join(metadata.authorization_servers),
            )
        return metadata

    async def detect(
        self,
        server_url: str,
        www_authenticate: str | None,
    ) -> OAuthMetadata | None:
        from_header = metadata_from_challenge(www_authenticate)
        from_well_known = await self.discover_well_known(server_url)
        return from_well_known or from_header
