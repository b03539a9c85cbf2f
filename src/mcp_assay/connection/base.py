"""Port: step-by-step connection testing of a single MCP server."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol

from mcp_assay.models import ConnectionTestResult, ServerDescriptor

# Receives a short human-readable message before each step starts.
ProgressCallback = Callable[[str], Awaitable[None] | None]


class ConnectionTestRunnerPort(Protocol):
    """Port for verbose, diagnosable connection tests."""

    async def run(
        self,
        descriptor: ServerDescriptor,
        on_progress: ProgressCallback | None = None,
    ) -> ConnectionTestResult:
        """Run validation, reachability, initialize and tools/list in order.

        Stops at the first failing step. Never raises.
        """
        ...
