"""Cross-check a raw HTTP assessment with the reference MCP client.

A hand-rolled POST sequence can succeed against servers that the real
consumer, built on ``mcp.client.streamable_http``, cannot use. After a
successful raw assessment the same URL and headers are replayed through
``ClientSession`` and the tool counts are compared.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import timedelta

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation

from mcp_assay.diagnostics import build_diagnostics
from mcp_assay.models import AssessmentError, AssessmentErrorType, SdkValidation
from mcp_assay.transport.base import SdkToolCount

logger = logging.getLogger(__name__)


class SdkCrossValidator:
    """Adapter for SdkValidatorPort."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        client_name: str = "mcp-assay-validator",
        client_version: str = "1.0.0",
        log: logging.Logger | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._client_info = Implementation(name=client_name, version=client_version)
        self._log = log or logger

    async def count_tools(self, url: str, headers: dict[str, str]) -> SdkToolCount:
        """Connect, initialize and list tools through the SDK transport.

        Uses ``asyncio.wait_for`` so that on timeout the inner coroutine
        receives ``CancelledError`` and the transport context managers close.
        """
        try:
            count = await asyncio.wait_for(
                self._list_tools(url, headers),
                timeout=self._timeout,
            )
        except TimeoutError:
            error = f"SDK transport timed out after {self._timeout:g}s"
            self._log.info("SDK validation of %s failed: %s", url, error)
            return SdkToolCount(tool_count=-1, error=error)
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            self._log.info("SDK validation of %s failed: %s", url, error)
            return SdkToolCount(tool_count=-1, error=error)

        self._log.info("SDK validation of %s received %d tools", url, count)
        return SdkToolCount(tool_count=count)

    async def _list_tools(self, url: str, headers: dict[str, str]) -> int:
        async with (
            streamablehttp_client(
                url,
                headers=headers or None,
                timeout=timedelta(seconds=self._timeout),
            ) as (read_stream, write_stream, _get_session_id),
            ClientSession(read_stream, write_stream, client_info=self._client_info) as session,
        ):
            await session.initialize()
            result = await session.list_tools()
            return len(result.tools)


def compare_tool_counts(
    direct_tools: int,
    sdk: SdkToolCount,
    *,
    url: str,
    headers: Mapping[str, str],
) -> AssessmentError | None:
    """``sdk_mismatch`` when the reference client failed or saw no tools."""
    diagnostics = build_diagnostics(url, headers)

    if sdk.tool_count < 0:
        return AssessmentError(
            type=AssessmentErrorType.SDK_MISMATCH,
            message=(
                f"The guard cannot connect to this MCP. Direct fetch succeeded with "
                f"{direct_tools} tools, but the SDK transport failed."
            ),
            sdk_validation=SdkValidation(
                direct_fetch_tools=direct_tools,
                sdk_transport_tools=-1,
                sdk_error=sdk.error,
            ),
            diagnostics=diagnostics,
        )

    if sdk.tool_count == 0 and direct_tools > 0:
        return AssessmentError(
            type=AssessmentErrorType.SDK_MISMATCH,
            message=(
                f"The guard cannot use this MCP. Direct fetch returned {direct_tools} tools, "
                "but the SDK transport returned 0. This indicates an authentication "
                "or protocol issue."
            ),
            sdk_validation=SdkValidation(
                direct_fetch_tools=direct_tools,
                sdk_transport_tools=0,
                sdk_error="SDK returned 0 tools while direct fetch succeeded",
            ),
            diagnostics=diagnostics,
        )

    return None
