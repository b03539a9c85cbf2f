"""test_connection tool -- step-by-step connection test for one MCP server."""

from __future__ import annotations

from dataclasses import asdict

from mcp.server.fastmcp import Context

from mcp_assay.errors import McpAssayError
from mcp_assay.models import AssessmentError, AssessmentErrorType, ConnectionTestResult
from mcp_assay.tools._helpers import descriptor_from_args, get_context, remember


async def test_connection(
    name: str,
    ctx: Context,
    command: str = "",
    args: list[str] | None = None,
    env: dict[str, str] | None = None,
    url: str = "",
    headers: dict[str, str] | None = None,
) -> dict[str, object]:
    """Walk through a connection to one MCP server and report each step.

    Steps: Validate Configuration, Network Connectivity, MCP Initialize,
    OAuth Discovery (only when the server demands OAuth), MCP Tools List.
    Stops at the first failure. Each step carries its duration and the
    request/response text (credentials masked).

    Only URL-based servers get the full walk-through; for command-based
    servers use assess_server.

    Args:
        name: Server name, as it appears in the user's MCP config.
        command: Executable for a process-based server.
        args: Arguments for the command.
        env: Extra environment variables for the command.
        url: Endpoint of an HTTP-based server.
        headers: Extra HTTP headers, e.g. Authorization.

    Returns:
        {success, mcp_name, steps: [{name, success, details, duration_ms,
        data}], error, duration_ms}.
    """
    try:
        app = get_context(ctx)
        descriptor = descriptor_from_args(
            name, command=command, args=args, env=env, url=url, headers=headers
        )
        remember(app, [descriptor])
        result = await app.connection_tester.run(descriptor, on_progress=ctx.info)
        return asdict(result)
    except McpAssayError as exc:
        return asdict(
            ConnectionTestResult(
                success=False,
                mcp_name=name,
                error=AssessmentError(type=AssessmentErrorType.UNKNOWN, message=str(exc)),
            )
        )
    except Exception as exc:
        await ctx.error(f"Unexpected error in test_connection: {exc}")
        return asdict(
            ConnectionTestResult(
                success=False,
                mcp_name=name,
                error=AssessmentError(
                    type=AssessmentErrorType.UNKNOWN,
                    message=f"Internal error: {type(exc).__name__}",
                ),
            )
        )
