"""Tests for the step-by-step connection test runner (connection/tester.py)."""

from __future__ import annotations

import time

import httpx

from mcp_assay.connection.tester import ConnectionTestRunner
from mcp_assay.models import AssessmentErrorType, ServerDescriptor
from mcp_assay.oauth.discovery import OAuthDiscovery
from mcp_assay.transport.http import StreamableHttpClient

URL = "https://mcp.example.com/mcp"
HAPPY_STEPS = ["Validate Configuration", "Network Connectivity", "MCP Initialize", "MCP Tools List"]


def _runner(http: httpx.AsyncClient) -> ConnectionTestRunner:
    return ConnectionTestRunner(http, StreamableHttpClient(http, OAuthDiscovery(http)))


def _runner_for(server) -> ConnectionTestRunner:
    return _runner(server.client())


def _failing_on(method: str, exc_type: type[httpx.TransportError], server) -> ConnectionTestRunner:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == method:
            raise exc_type("unreachable", request=request)
        return server.handle(request)

    return _runner(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _descriptor(**headers: str) -> ServerDescriptor:
    return ServerDescriptor(name="docs", url=URL, headers=dict(headers))


class TestHappyPath:
    async def test_all_steps_pass(self, mcp_server):
        result = await _runner_for(mcp_server).run(_descriptor())

        assert result.success is True
        assert result.error is None
        assert result.mcp_name == "docs"
        assert [s.name for s in result.steps] == HAPPY_STEPS
        assert all(s.success for s in result.steps)
        assert result.steps[-1].details == "Successfully retrieved 2 tools"
        assert all(s.duration_ms is not None and s.duration_ms >= 0 for s in result.steps)
        assert result.duration_ms >= 0

    async def test_session_reported_and_replayed(self, mcp_server):
        mcp_server.session_id = "session-abcdefghijklmnopqrstuvwxyz"

        result = await _runner_for(mcp_server).run(_descriptor())

        init_step, tools_step = result.steps[2], result.steps[3]
        assert "Session ID: session-abcdefghijkl..." in init_step.details
        assert tools_step.details == "Successfully retrieved 2 tools (with session)"
        assert "(Session ID: session-abcdefghijkl...)" in tools_step.data.request
        assert mcp_server.posts()[1].headers["mcp-session-id"] == mcp_server.session_id

    async def test_step_data_shows_masked_request_and_response(self, mcp_server):
        result = await _runner_for(mcp_server).run(
            _descriptor(Authorization="Bearer sk-live-0123456789")
        )

        init_step = result.steps[2]
        assert init_step.data.request.startswith(f"POST {URL}\nHeaders: ")
        assert '"method": "initialize"' in init_step.data.request
        assert "Bearer sk-..." in init_step.data.request
        assert "sk-live-0123456789" not in init_step.data.request
        assert init_step.data.response.startswith("Headers: ")
        assert "(No session ID)" in result.steps[3].data.request

    async def test_validate_details_list_header_names_only(self, mcp_server):
        result = await _runner_for(mcp_server).run(_descriptor(Authorization="Bearer secret-value"))

        assert result.steps[0].details == f"URL: {URL}\nHeaders: Authorization"

    async def test_head_not_allowed_still_reachable(self, mcp_server):
        mcp_server.head_status = 405

        result = await _runner_for(mcp_server).run(_descriptor())

        assert result.steps[1].success is True
        assert result.steps[1].details == "Successfully reached mcp.example.com"

    async def test_zero_tools_is_still_success(self, mcp_server):
        mcp_server.tools = []

        result = await _runner_for(mcp_server).run(_descriptor())

        assert result.success is True
        assert result.steps[-1].details == "Successfully retrieved 0 tools"

    async def test_event_stream_tools(self, mcp_server):
        mcp_server.event_stream = True

        result = await _runner_for(mcp_server).run(_descriptor())

        assert result.steps[-1].details == "Successfully retrieved 2 tools"


class TestProgress:
    async def test_sync_callback(self, mcp_server):
        messages: list[str] = []

        await _runner_for(mcp_server).run(_descriptor(), on_progress=messages.append)

        assert messages == [
            "Validating configuration...",
            "Testing network connectivity...",
            "Sending MCP initialize request...",
            "Fetching tools list...",
        ]

    async def test_async_callback(self, mcp_server):
        messages: list[str] = []

        async def record(message: str) -> None:
            messages.append(message)

        await _runner_for(mcp_server).run(_descriptor(), on_progress=record)

        assert len(messages) == 4


class TestConfigurationFailures:
    async def test_no_endpoint(self, mcp_server):
        result = await _runner_for(mcp_server).run(ServerDescriptor(name="empty"))

        assert result.success is False
        assert [s.name for s in result.steps] == ["Validate Configuration"]
        assert result.steps[0].success is False
        assert result.error.type == AssessmentErrorType.UNKNOWN
        assert mcp_server.requests == []

    async def test_command_only_server(self, mcp_server):
        descriptor = ServerDescriptor(name="fs", command="npx", args=["-y", "server-fs"])

        result = await _runner_for(mcp_server).run(descriptor)

        assert result.success is False
        assert result.error is None
        assert result.steps[0].details == "Command: npx -y server-fs"
        assert result.steps[1].name == "Test Command-based MCP"
        assert result.steps[1].success is False
        assert mcp_server.requests == []

    async def test_malformed_url(self, mcp_server):
        result = await _runner_for(mcp_server).run(ServerDescriptor(name="x", url="not a url"))

        assert result.steps[-1].name == "Network Connectivity"
        assert result.steps[-1].details == "Invalid URL: not a url"
        assert result.error.type == AssessmentErrorType.UNKNOWN
        assert result.error.message == "Invalid URL format"


class TestNetworkFailures:
    async def test_reachability_timeout(self, mcp_server):
        result = await _failing_on("HEAD", httpx.ConnectTimeout, mcp_server).run(_descriptor())

        assert result.success is False
        assert [s.name for s in result.steps] == HAPPY_STEPS[:2]
        assert result.steps[1].details == "Could not reach mcp.example.com within 5 seconds"
        assert result.error.type == AssessmentErrorType.TIMEOUT
        assert result.error.message == "Network connectivity test timed out"

    async def test_reachability_connect_error(self, mcp_server):
        result = await _failing_on("HEAD", httpx.ConnectError, mcp_server).run(_descriptor())

        assert result.steps[1].success is False
        assert result.error.type == AssessmentErrorType.CONNECTION_FAILED

    async def test_head_protocol_error_counts_as_reachable(self, mcp_server):
        result = await _failing_on("HEAD", httpx.RemoteProtocolError, mcp_server).run(_descriptor())

        assert result.success is True
        assert result.steps[1].details == "Server at mcp.example.com is reachable"

    async def test_initialize_timeout(self, mcp_server):
        result = await _failing_on("POST", httpx.ReadTimeout, mcp_server).run(_descriptor())

        init_step = result.steps[-1]
        assert init_step.name == "MCP Initialize"
        assert init_step.success is False
        assert init_step.data.request is not None
        assert init_step.data.response is None
        assert result.error.type == AssessmentErrorType.TIMEOUT
        assert result.error.diagnostics.raw_error.startswith("ReadTimeout")


    async def test_initialize_stream_that_never_ends(self, trickle_server):
        async with httpx.AsyncClient() as http:
            runner = ConnectionTestRunner(
                http, StreamableHttpClient(http, OAuthDiscovery(http), timeout_seconds=1.0)
            )
            started = time.monotonic()
            result = await runner.run(ServerDescriptor(name="slow", url=f"{trickle_server}/mcp"))
            elapsed = time.monotonic() - started

        assert result.success is False
        assert result.steps[-1].name == "MCP Initialize"
        assert result.error.type == AssessmentErrorType.TIMEOUT
        assert elapsed < 3.0

class TestHttpFailures:
    async def test_oauth_required_on_initialize(self, mcp_server):
        mcp_server.init_status = 401
        mcp_server.www_authenticate = 'Bearer realm="mcp"'

        result = await _runner_for(mcp_server).run(_descriptor())

        names = [s.name for s in result.steps]
        assert names == [*HAPPY_STEPS[:3], "OAuth Discovery"]
        init_step, oauth_step = result.steps[2], result.steps[3]
        assert init_step.success is False
        assert init_step.details == "HTTP 401 Unauthorized"
        assert init_step.data.response.startswith("Status: 401 Unauthorized\n")
        assert oauth_step.success is True
        assert "WWW-Authenticate" in oauth_step.details
        assert result.error.type == AssessmentErrorType.OAUTH_REQUIRED

    async def test_oauth_step_names_authorization_servers(self, mcp_server):
        mcp_server.init_status = 401
        mcp_server.well_known = {"authorization_servers": ["https://auth.example.com"]}

        result = await _runner_for(mcp_server).run(_descriptor())

        assert result.steps[-1].details == (
            "Server requires OAuth authentication. "
            "Authorization servers: https://auth.example.com"
        )

    async def test_auth_failed_without_oauth_signal(self, mcp_server):
        mcp_server.init_status = 403

        result = await _runner_for(mcp_server).run(_descriptor())

        assert result.steps[-1].name == "MCP Initialize"
        assert result.error.type == AssessmentErrorType.AUTH_FAILED
        assert result.error.status_code == 403

    async def test_session_error_on_tools_list(self, mcp_server):
        mcp_server.tools_status = 400

        result = await _runner_for(mcp_server).run(_descriptor())

        tools_step = result.steps[-1]
        assert tools_step.name == "MCP Tools List"
        assert tools_step.success is False
        assert "Possible session error" in tools_step.details
        assert result.error.type == AssessmentErrorType.CONNECTION_FAILED
        assert result.error.message.startswith("Session error (HTTP 400)")

    async def test_other_tools_list_failure(self, mcp_server):
        mcp_server.tools_status = 500

        result = await _runner_for(mcp_server).run(_descriptor())

        assert result.steps[-1].details == "HTTP 500 Internal Server Error"
        assert result.error.message.endswith("on tools/list request")
