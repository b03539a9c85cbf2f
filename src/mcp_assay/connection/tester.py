"""Verbose connection test for URL-based MCP servers.

Runs the same initialize / tools/list exchange as an assessment, but records
each step with its duration and the masked request and response text so a
user can see exactly where a server stops cooperating.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from urllib.parse import urlsplit

import httpx

from mcp_assay.connection.base import ProgressCallback
from mcp_assay.diagnostics import format_request, format_response
from mcp_assay.models import (
    AssessmentError,
    AssessmentErrorType,
    ConnectionStep,
    ConnectionTestResult,
    OAuthDetection,
    ServerDescriptor,
    StepData,
)
from mcp_assay.transport.http import (
    SESSION_ERROR_MESSAGE,
    HttpExchange,
    Stage,
    StreamableHttpClient,
    request_headers,
    short_session,
    transport_error,
)

logger = logging.getLogger(__name__)

STEP_VALIDATE = "Validate Configuration"
STEP_COMMAND = "Test Command-based MCP"
STEP_NETWORK = "Network Connectivity"
STEP_INITIALIZE = "MCP Initialize"
STEP_OAUTH = "OAuth Discovery"
STEP_TOOLS_LIST = "MCP Tools List"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _oauth_details(error: AssessmentError) -> str:
    metadata = error.oauth_metadata
    if metadata is not None and metadata.detected_via == OAuthDetection.WELL_KNOWN:
        how = f"Authorization servers: {', '.join(metadata.authorization_servers)}"
    else:
        how = "Detected via WWW-Authenticate: Bearer header"
    return f"Server requires OAuth authentication. {how}"


class _Recorder:
    """Accumulates steps for one run and builds the final result."""

    def __init__(self, name: str, on_progress: ProgressCallback | None) -> None:
        self.name = name
        self.steps: list[ConnectionStep] = []
        self._on_progress = on_progress
        self._started = time.monotonic()

    async def progress(self, message: str) -> float:
        if self._on_progress is not None:
            outcome = self._on_progress(message)
            if inspect.isawaitable(outcome):
                await outcome
        return time.monotonic()

    def step(
        self,
        name: str,
        success: bool,
        details: str,
        started: float | None = None,
        data: StepData | None = None,
    ) -> None:
        self.steps.append(
            ConnectionStep(
                name=name,
                success=success,
                details=details,
                duration_ms=_elapsed_ms(started) if started is not None else 0,
                data=data,
            )
        )

    def finish(self, success: bool, error: AssessmentError | None = None) -> ConnectionTestResult:
        return ConnectionTestResult(
            success=success,
            mcp_name=self.name,
            steps=list(self.steps),
            error=error,
            duration_ms=_elapsed_ms(self._started),
        )


class ConnectionTestRunner:
    """Adapter for ConnectionTestRunnerPort.

    Reuses the Streamable HTTP client for request bodies, header assembly
    and failure classification, so a connection test and an assessment of
    the same server always agree on the error type.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        client: StreamableHttpClient,
        *,
        reachability_timeout: float = 5.0,
        log: logging.Logger | None = None,
    ) -> None:
        self._http = http_client
        self._client = client
        self._reachability_timeout = reachability_timeout
        self._log = log or logger

    async def run(
        self,
        descriptor: ServerDescriptor,
        on_progress: ProgressCallback | None = None,
    ) -> ConnectionTestResult:
        rec = _Recorder(descriptor.name, on_progress)

        started = await rec.progress("Validating configuration...")
        if descriptor.transport is None:
            rec.step(STEP_VALIDATE, False, "No URL or command configured for this MCP", started)
            return rec.finish(
                False,
                AssessmentError(
                    type=AssessmentErrorType.UNKNOWN,
                    message="No URL or command configured",
                ),
            )

        if descriptor.url:
            details = f"URL: {descriptor.url}\nHeaders: {', '.join(descriptor.headers) or 'none'}"
        else:
            details = f"Command: {' '.join([descriptor.command, *descriptor.args])}"
        rec.step(STEP_VALIDATE, True, details, started)

        if not descriptor.url:
            rec.step(
                STEP_COMMAND,
                False,
                "Verbose connection testing is only supported for URL-based MCPs. "
                "Re-assess this MCP to check it.",
            )
            return rec.finish(False)

        error = await self._check_reachability(descriptor.url, rec)
        if error is not None:
            return rec.finish(False, error)

        session_id, error = await self._initialize(descriptor, rec)
        if error is not None:
            return rec.finish(False, error)

        error = await self._list_tools(descriptor, session_id, rec)
        if error is not None:
            return rec.finish(False, error)

        self._log.info("Connection test for %s passed", descriptor.name)
        return rec.finish(True)

    # ── Steps ───────────────────────────────────────────────────

    async def _check_reachability(self, url: str, rec: _Recorder) -> AssessmentError | None:
        """HEAD the URL. Any HTTP response at all, 405 included, counts as reachable."""
        started = await rec.progress("Testing network connectivity...")
        host = urlsplit(url).hostname
        limit = self._reachability_timeout

        try:
            if not host:
                raise httpx.InvalidURL(f"No host in {url!r}")
            await asyncio.wait_for(self._http.head(url, timeout=limit), timeout=limit)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol):
            rec.step(STEP_NETWORK, False, f"Invalid URL: {url}", started)
            return AssessmentError(type=AssessmentErrorType.UNKNOWN, message="Invalid URL format")
        except (httpx.TimeoutException, TimeoutError):
            rec.step(STEP_NETWORK, False, f"Could not reach {host} within {limit:g} seconds", started)
            return AssessmentError(
                type=AssessmentErrorType.TIMEOUT,
                message="Network connectivity test timed out",
            )
        except httpx.ConnectError as exc:
            rec.step(STEP_NETWORK, False, f"Could not connect to {host}: {exc}", started)
            return AssessmentError(
                type=AssessmentErrorType.CONNECTION_FAILED,
                message=str(exc) or f"Could not connect to {host}",
            )
        except httpx.HTTPError as exc:
            # Connected, but the server mishandled HEAD.
            self._log.debug("HEAD %s failed after connecting: %s", url, exc)
            rec.step(STEP_NETWORK, True, f"Server at {host} is reachable", started)
            return None

        rec.step(STEP_NETWORK, True, f"Successfully reached {host}", started)
        return None

    async def _initialize(
        self,
        descriptor: ServerDescriptor,
        rec: _Recorder,
    ) -> tuple[str | None, AssessmentError | None]:
        started = await rec.progress("Sending MCP initialize request...")
        url = descriptor.url
        headers = request_headers(descriptor.headers)
        body = self._client.initialize_body(indent=2)
        request_text = format_request(url, headers, body)

        try:
            exchange = await self._client.post(url, headers, body)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            rec.step(
                STEP_INITIALIZE,
                False,
                str(exc) or type(exc).__name__,
                started,
                StepData(request=request_text),
            )
            return None, transport_error(
                url, headers, body, exc, timeout_seconds=self._client.timeout_seconds
            )

        if not exchange.ok:
            rec.step(
                STEP_INITIALIZE,
                False,
                f"HTTP {exchange.status_line}",
                started,
                self._step_data(request_text, exchange, with_status=True),
            )
            error = await self._client.classify_failure(exchange, Stage.INITIALIZE)
            if error.type == AssessmentErrorType.OAUTH_REQUIRED:
                rec.step(STEP_OAUTH, True, _oauth_details(error), started)
            return None, error

        session_id = exchange.session_id
        if session_id:
            details = f"Server accepted initialize request. Session ID: {short_session(session_id)}"
        else:
            details = "Server accepted initialize request (no session ID returned)"
        rec.step(STEP_INITIALIZE, True, details, started, self._step_data(request_text, exchange))
        return session_id, None

    async def _list_tools(
        self,
        descriptor: ServerDescriptor,
        session_id: str | None,
        rec: _Recorder,
    ) -> AssessmentError | None:
        started = await rec.progress("Fetching tools list...")
        url = descriptor.url
        headers = request_headers(descriptor.headers, session_id)
        body = self._client.tools_list_body(indent=2)
        note = f"(Session ID: {short_session(session_id)})" if session_id else "(No session ID)"
        request_text = format_request(url, headers, body, note=note)

        try:
            exchange = await self._client.post(url, headers, body)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            rec.step(
                STEP_TOOLS_LIST,
                False,
                str(exc) or type(exc).__name__,
                started,
                StepData(request=request_text),
            )
            return transport_error(
                url, headers, body, exc, timeout_seconds=self._client.timeout_seconds
            )

        if not exchange.ok:
            error = await self._client.classify_failure(exchange, Stage.TOOLS_LIST, session_id)
            if error.message == SESSION_ERROR_MESSAGE.format(status=exchange.status_code):
                details = (
                    f"HTTP {exchange.status_code} - Possible session error. "
                    "Server may require session-based auth."
                )
            else:
                details = f"HTTP {exchange.status_line}"
            rec.step(
                STEP_TOOLS_LIST,
                False,
                details,
                started,
                self._step_data(request_text, exchange, with_status=True),
            )
            if error.type == AssessmentErrorType.OAUTH_REQUIRED:
                rec.step(STEP_OAUTH, True, _oauth_details(error), started)
            return error

        count = len(self._client.decode_tools(exchange.response_body) or [])
        plural = "" if count == 1 else "s"
        suffix = " (with session)" if session_id else ""
        rec.step(
            STEP_TOOLS_LIST,
            True,
            f"Successfully retrieved {count} tool{plural}{suffix}",
            started,
            self._step_data(request_text, exchange),
        )
        return None

    @staticmethod
    def _step_data(request_text: str, exchange: HttpExchange, *, with_status: bool = False) -> StepData:
        return StepData(
            request=request_text,
            response=format_response(
                exchange.response_headers,
                exchange.response_body,
                status=exchange.status_line if with_status else "",
            ),
        )
