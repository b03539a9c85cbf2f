"""Tests for the MCP tool functions (tools/*.py)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from mcp_assay.assessment.cache import InMemoryAssessmentCache
from mcp_assay.models import (
    AssessmentError,
    AssessmentErrorType,
    ConnectionStep,
    ConnectionTestResult,
    ServerDescriptor,
    TokenMetrics,
)
from mcp_assay.server import AppContext
from mcp_assay.settings import AssessmentSettings
from mcp_assay.tools.assess import assess_server, reassess_server, sweep_servers
from mcp_assay.tools.savings import estimate_savings
from mcp_assay.tools.test import test_connection as _tool_test_connection

METRICS = TokenMetrics(tool_count=3, schema_chars=3500, estimated_tokens=1000)
TIMEOUT = AssessmentError(type=AssessmentErrorType.TIMEOUT, message="slow")

# --- Helpers ---------------------------------------------------------------


def _make_ctx(*outcomes: object, sweep_limit: int = 3) -> MagicMock:
    app = MagicMock(spec=AppContext)
    app.settings = AssessmentSettings(sweep_limit=sweep_limit)
    app.cache = InMemoryAssessmentCache()
    app.known = {}
    app.assessor = MagicMock()
    app.assessor.assess = AsyncMock(side_effect=list(outcomes))
    app.connection_tester = MagicMock()
    app.connection_tester.run = AsyncMock()
    ctx = MagicMock()
    ctx.request_context.lifespan_context = app
    ctx.info = AsyncMock()
    ctx.error = AsyncMock()
    return ctx


def _servers(*names: str) -> dict[str, dict[str, object]]:
    return {n: {"url": f"https://{n}.example.com/mcp"} for n in names}


# --- assess_server ---------------------------------------------------------


class TestAssessServer:
    async def test_success(self):
        ctx = _make_ctx(METRICS)
        app = ctx.request_context.lifespan_context

        result = await assess_server("docs", ctx, url="https://docs.example.com/mcp")

        assert result["success"] is True
        assert result["metrics"]["tool_count"] == 3
        assert result["metrics"]["estimated_tokens"] == 1000
        assert app.cache.get_metrics("docs") is METRICS
        assert app.known["docs"].url == "https://docs.example.com/mcp"

    async def test_failure_is_reported_and_cached(self):
        ctx = _make_ctx(TIMEOUT)
        app = ctx.request_context.lifespan_context

        result = await assess_server("fs", ctx, command="npx", args=["-y", "server-fs"])

        assert result["success"] is False
        assert result["error"]["type"] == "timeout"
        assert app.cache.get_error("fs") is TIMEOUT
        descriptor = app.assessor.assess.await_args.args[0]
        assert descriptor == ServerDescriptor(name="fs", command="npx", args=["-y", "server-fs"])

    async def test_invalid_descriptor(self):
        ctx = _make_ctx()

        result = await assess_server("x", ctx, url="https://a.example", headers={"X": 1})

        assert result["success"] is False
        assert "headers" in result["message"]
        ctx.error.assert_not_awaited()

    async def test_empty_name(self):
        result = await assess_server("  ", _make_ctx(), url="https://a.example")

        assert result["success"] is False
        assert "name" in result["message"]

    async def test_unexpected_error(self):
        ctx = _make_ctx(RuntimeError("kaboom"))

        result = await assess_server("docs", ctx, url="https://docs.example.com/mcp")

        assert result == {"name": "docs", "success": False, "message": "Internal error: RuntimeError"}
        ctx.error.assert_awaited_once()


# --- sweep_servers ---------------------------------------------------------


class TestSweepServers:
    async def test_bounded_by_settings(self):
        ctx = _make_ctx(METRICS, TIMEOUT, METRICS)

        result = await sweep_servers(_servers("a", "b", "c", "d"), ctx)

        assert result["assessed"] == ["a", "b", "c"]
        assert result["remaining"] == 1
        assert result["results"]["a"]["success"] is True
        assert result["results"]["b"]["error"]["type"] == "timeout"

    async def test_explicit_limit(self):
        ctx = _make_ctx(METRICS)

        result = await sweep_servers(_servers("a", "b"), ctx, limit=1)

        assert result["assessed"] == ["a"]
        assert result["remaining"] == 1

    async def test_invalid_entry(self):
        result = await sweep_servers({"a": "npx server"}, _make_ctx())  # type: ignore[dict-item]

        assert result["assessed"] == []
        assert "must be an object" in result["message"]


# --- reassess_server -------------------------------------------------------


class TestReassessServer:
    async def test_unknown_server(self):
        result = await reassess_server("ghost", _make_ctx())

        assert result["success"] is False
        assert "ghost" in result["message"]

    async def test_clears_error_and_retries(self):
        ctx = _make_ctx(METRICS)
        app = ctx.request_context.lifespan_context
        app.known["docs"] = ServerDescriptor(name="docs", url="https://docs.example.com/mcp")
        app.cache.set_error("docs", TIMEOUT)

        result = await reassess_server("docs", ctx)

        assert result["success"] is True
        assert app.cache.get_error("docs") is None
        assert app.cache.get_metrics("docs") is METRICS
        ctx.info.assert_awaited_once()


# --- test_connection -------------------------------------------------------


class TestTestConnection:
    async def test_returns_steps(self):
        ctx = _make_ctx()
        app = ctx.request_context.lifespan_context
        app.connection_tester.run.return_value = ConnectionTestResult(
            success=True,
            mcp_name="docs",
            steps=[ConnectionStep(name="Validate Configuration", success=True, details="ok")],
            duration_ms=12,
        )

        result = await _tool_test_connection("docs", ctx, url="https://docs.example.com/mcp")

        assert result["success"] is True
        assert result["steps"][0]["name"] == "Validate Configuration"
        assert result["duration_ms"] == 12
        kwargs = app.connection_tester.run.await_args.kwargs
        assert kwargs["on_progress"] is ctx.info

    async def test_invalid_descriptor(self):
        result = await _tool_test_connection("x", _make_ctx(), args=["a", 1])  # type: ignore[list-item]

        assert result["success"] is False
        assert result["error"]["type"] == "unknown"

    async def test_unexpected_error(self):
        ctx = _make_ctx()
        ctx.request_context.lifespan_context.connection_tester.run.side_effect = OSError("fd")

        result = await _tool_test_connection("docs", ctx, url="https://docs.example.com/mcp")

        assert result["error"]["message"] == "Internal error: OSError"
        ctx.error.assert_awaited_once()


# --- estimate_savings ------------------------------------------------------


class TestEstimateSavings:
    async def test_uses_cached_metrics(self):
        ctx = _make_ctx()
        ctx.request_context.lifespan_context.cache.set_metrics("a", METRICS)

        result = await estimate_savings(_servers("a", "b", "c"), ["a", "b"], ctx)

        assert result == {
            "total_tokens_without_guard": 1800,
            "guard_tokens": 500,
            "tokens_saved": 1300,
            "assessed_mcps": 1,
            "guarded_mcps": 2,
            "has_estimates": True,
        }

    async def test_invalid_servers(self):
        result = await estimate_savings({"a": 3}, [], _make_ctx())  # type: ignore[dict-item]

        assert result["success"] is False
