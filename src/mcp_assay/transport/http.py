"""Assess URL-based MCP servers over Streamable HTTP.

Two POSTs per assessment: ``initialize`` and then ``tools/list``. A session
id returned in the ``Mcp-Session-Id`` response header of ``initialize`` is
replayed on ``tools/list``. Replies may be a plain JSON document or an
event stream; both are decoded through the tool-decoder chain.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum

import httpx

from mcp_assay.diagnostics import build_diagnostics
from mcp_assay.models import (
    AssessmentError,
    AssessmentErrorType,
    RequestDiagnostics,
    ServerDescriptor,
)
from mcp_assay.oauth.base import OAuthDiscoveryPort
from mcp_assay.protocol.decoders import DEFAULT_TOOL_DECODERS, ToolDecoder, decode_tools
from mcp_assay.protocol.messages import encode, initialize_request, schema_chars, tools_list_request
from mcp_assay.tokens.estimator import metrics_from_tools
from mcp_assay.transport.base import HttpAssessment

logger = logging.getLogger(__name__)

SESSION_HEADER = "mcp-session-id"

BASE_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/event-stream",
}

OAUTH_REQUIRED_MESSAGE = (
    "This MCP server requires OAuth authentication, which the guard cannot support."
)
SESSION_ERROR_MESSAGE = (
    "Session error (HTTP {status}). The server may require session-based "
    "authentication that isn't available during assessment."
)


class Stage(StrEnum):
    INITIALIZE = "initialize"
    TOOLS_LIST = "tools/list"


def request_headers(
    caller_headers: Mapping[str, str] | None,
    session_id: str | None = None,
) -> dict[str, str]:
    headers = {**BASE_HEADERS, **(caller_headers or {})}
    if session_id:
        headers[SESSION_HEADER] = session_id
    return headers


def short_session(session_id: str) -> str:
    return f"{session_id[:20]}..." if len(session_id) > 20 else session_id


@dataclass(frozen=True, slots=True)
class HttpExchange:
    """One completed POST. ``response_headers`` keys are lowercase."""

    url: str
    request_headers: dict[str, str]
    request_body: str
    status_code: int
    reason_phrase: str
    response_headers: dict[str, str]
    response_body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def status_line(self) -> str:
        return f"{self.status_code} {self.reason_phrase}".strip()

    @property
    def session_id(self) -> str | None:
        return self.response_headers.get(SESSION_HEADER) or None

    @property
    def www_authenticate(self) -> str | None:
        return self.response_headers.get("www-authenticate") or None

    def diagnostics(self) -> RequestDiagnostics:
        return build_diagnostics(
            self.url,
            self.request_headers,
            request_body=self.request_body,
            response_body=self.response_body,
            response_headers=self.response_headers,
        )


def transport_error(
    url: str,
    headers: Mapping[str, str],
    body: str,
    exc: Exception,
    *,
    timeout_seconds: float,
) -> AssessmentError:
    """Map an exception raised before any HTTP response to an AssessmentError."""
    diagnostics = build_diagnostics(
        url,
        headers,
        request_body=body,
        raw_error=f"{type(exc).__name__}: {exc}",
    )
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return AssessmentError(
            type=AssessmentErrorType.TIMEOUT,
            message=f"Connection timed out after {timeout_seconds:g} seconds",
            diagnostics=diagnostics,
        )
    return AssessmentError(
        type=AssessmentErrorType.CONNECTION_FAILED,
        message=str(exc) or type(exc).__name__,
        diagnostics=diagnostics,
    )


class StreamableHttpClient:
    """Adapter for HttpAssessorPort -- holds httpx client and OAuth discovery."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        oauth: OAuthDiscoveryPort,
        *,
        timeout_seconds: float = 10.0,
        client_name: str = "mcp-assay",
        client_version: str = "1.0.0",
        decoders: Sequence[ToolDecoder] = DEFAULT_TOOL_DECODERS,
        log: logging.Logger | None = None,
    ) -> None:
        self._http = http_client
        self._oauth = oauth
        self._client_name = client_name
        self._client_version = client_version
        self._decoders = tuple(decoders)
        self._log = log or logger
        self.timeout_seconds = timeout_seconds

    # ── Wire ────────────────────────────────────────────────────

    def initialize_body(self, *, indent: int | None = None) -> str:
        return encode(initialize_request(self._client_name, self._client_version), indent=indent)

    @staticmethod
    def tools_list_body(*, indent: int | None = None) -> str:
        return encode(tools_list_request(), indent=indent)

    async def post(self, url: str, headers: Mapping[str, str], body: str) -> HttpExchange:
        """POST *body* and read the full response. Raises httpx errors.

        The timeout bounds the whole exchange, body included, not each read.
        """
        try:
            return await asyncio.wait_for(
                self._post(url, headers, body), timeout=self.timeout_seconds
            )
        except TimeoutError as exc:
            raise httpx.TimeoutException(
                f"No complete response within {self.timeout_seconds:g}s"
            ) from exc

    async def _post(self, url: str, headers: Mapping[str, str], body: str) -> HttpExchange:
        resp = await self._http.post(
            url,
            headers=dict(headers),
            content=body.encode("utf-8"),
            timeout=self.timeout_seconds,
        )
        return HttpExchange(
            url=url,
            request_headers=dict(headers),
            request_body=body,
            status_code=resp.status_code,
            reason_phrase=resp.reason_phrase,
            response_headers={k.lower(): v for k, v in resp.headers.items()},
            response_body=resp.text,
        )

    def decode_tools(self, body: str) -> list[object] | None:
        return decode_tools(body, self._decoders)

    # ── Classification ──────────────────────────────────────────

    async def classify_failure(
        self,
        exchange: HttpExchange,
        stage: Stage,
        session_id: str | None = None,
    ) -> AssessmentError:
        """Classify a non-2xx reply. OAuth signals are checked before auth_failed."""
        status = exchange.status_code
        diagnostics = exchange.diagnostics()
        common = {
            "status_code": status,
            "status_text": exchange.reason_phrase,
            "diagnostics": diagnostics,
        }

        body = exchange.response_body.lower()
        if (
            stage == Stage.TOOLS_LIST
            and status == 400
            and (not session_id or "session" in body or "invalid" in body)
        ):
            return AssessmentError(
                type=AssessmentErrorType.CONNECTION_FAILED,
                message=SESSION_ERROR_MESSAGE.format(status=status),
                **common,
            )

        if status in (401, 403):
            self._log.info(
                "%s answered %s with %d, checking OAuth (WWW-Authenticate: %r)",
                exchange.url,
                stage,
                status,
                exchange.www_authenticate,
            )
            metadata = await self._oauth.detect(exchange.url, exchange.www_authenticate)
            if metadata is not None:
                return AssessmentError(
                    type=AssessmentErrorType.OAUTH_REQUIRED,
                    message=OAUTH_REQUIRED_MESSAGE,
                    oauth_metadata=metadata,
                    **common,
                )
            return AssessmentError(
                type=AssessmentErrorType.AUTH_FAILED,
                message=(
                    f"Authentication failed (HTTP {exchange.status_line}). "
                    "Check your Authorization header."
                ),
                **common,
            )

        suffix = " on tools/list request" if stage == Stage.TOOLS_LIST else ""
        return AssessmentError(
            type=AssessmentErrorType.CONNECTION_FAILED,
            message=f"Server returned HTTP {exchange.status_line}{suffix}",
            **common,
        )

    # ── Assessment ──────────────────────────────────────────────

    async def assess(self, descriptor: ServerDescriptor) -> HttpAssessment:
        url = descriptor.url
        if not url:
            return HttpAssessment(
                error=AssessmentError(
                    type=AssessmentErrorType.UNKNOWN,
                    message="No URL configured",
                )
            )

        self._log.info(
            "Assessing %s at %s (headers: %s)",
            descriptor.name,
            url,
            ", ".join(descriptor.headers) or "none",
        )

        headers = request_headers(descriptor.headers)
        init_body = self.initialize_body()
        try:
            init = await self.post(url, headers, init_body)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            self._log.info("initialize to %s failed: %s", descriptor.name, exc)
            return HttpAssessment(
                error=transport_error(
                    url, headers, init_body, exc, timeout_seconds=self.timeout_seconds
                )
            )

        if not init.ok:
            self._log.info("%s initialize failed with %d", descriptor.name, init.status_code)
            return HttpAssessment(error=await self.classify_failure(init, Stage.INITIALIZE))

        session_id = init.session_id
        if session_id:
            self._log.info("%s returned session id %s", descriptor.name, short_session(session_id))
        else:
            self._log.info("%s did not return a session id", descriptor.name)

        tools_headers = request_headers(descriptor.headers, session_id)
        tools_body = self.tools_list_body()
        try:
            listing = await self.post(url, tools_headers, tools_body)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            self._log.info("tools/list to %s failed: %s", descriptor.name, exc)
            return HttpAssessment(
                error=transport_error(
                    url, tools_headers, tools_body, exc, timeout_seconds=self.timeout_seconds
                )
            )

        if not listing.ok:
            self._log.info("%s tools/list failed with %d", descriptor.name, listing.status_code)
            return HttpAssessment(
                error=await self.classify_failure(listing, Stage.TOOLS_LIST, session_id)
            )

        tools = self.decode_tools(listing.response_body)
        if not tools:
            self._log.info("%s returned no tools", descriptor.name)
            return HttpAssessment(
                error=AssessmentError(
                    type=AssessmentErrorType.UNKNOWN,
                    message="Server returned no tools",
                    diagnostics=listing.diagnostics(),
                )
            )

        metrics = metrics_from_tools(tools, schema_chars(tools))
        self._log.info(
            "%s: %d tools, ~%d tokens over HTTP",
            descriptor.name,
            metrics.tool_count,
            metrics.estimated_tokens,
        )
        return HttpAssessment(metrics=metrics, tools=tools)
