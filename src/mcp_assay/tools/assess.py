"""assess_server, sweep_servers and reassess_server tools."""

from __future__ import annotations

from mcp.server.fastmcp import Context

from mcp_assay.assessment.sweep import assess_and_record, reassess, sweep_unassessed
from mcp_assay.errors import McpAssayError
from mcp_assay.tools._helpers import (
    assessment_to_dict,
    descriptor_from_args,
    descriptors_from_config,
    get_context,
    lookup,
    remember,
)


async def assess_server(
    name: str,
    ctx: Context,
    command: str = "",
    args: list[str] | None = None,
    env: dict[str, str] | None = None,
    url: str = "",
    headers: dict[str, str] | None = None,
) -> dict[str, object]:
    """Connect to one MCP server, list its tools and estimate their token cost.

    Give either ``command`` (plus optional ``args``/``env``) for a server
    launched as a subprocess, or ``url`` (plus optional ``headers``) for a
    Streamable HTTP server. When both are given the command is used.

    Args:
        name: Server name, as it appears in the user's MCP config.
        command: Executable for a process-based server, e.g. "npx".
        args: Arguments for the command.
        env: Extra environment variables for the command.
        url: Endpoint of an HTTP-based server.
        headers: Extra HTTP headers, e.g. Authorization.

    Returns:
        {"name", "success": True, "metrics": {tool_count, schema_chars,
        estimated_tokens, ...}} or {"name", "success": False, "error":
        {type, message, diagnostics, ...}}.
    """
    try:
        app = get_context(ctx)
        descriptor = descriptor_from_args(
            name, command=command, args=args, env=env, url=url, headers=headers
        )
        remember(app, [descriptor])
        outcome = await assess_and_record(app.assessor, descriptor, app.cache)
        return assessment_to_dict(name, outcome)
    except McpAssayError as exc:
        return {"name": name, "success": False, "message": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in assess_server: {exc}")
        return {"name": name, "success": False, "message": f"Internal error: {type(exc).__name__}"}


async def sweep_servers(
    servers: dict[str, dict[str, object]],
    ctx: Context,
    limit: int = 0,
) -> dict[str, object]:
    """Assess servers that have neither results nor a recorded error yet.

    At most ``limit`` servers (default 3) are assessed per call, one after
    another, in the order given. Call again while ``remaining`` > 0.

    Args:
        servers: Mapping of server name to a config entry with "command",
            "args", "env" or "url", "headers" keys (the mcpServers shape).
        limit: Max servers to assess in this call. 0 uses the configured default.

    Returns:
        {"assessed": [names], "remaining": int, "results": {name: result}}.
    """
    try:
        app = get_context(ctx)
        descriptors = descriptors_from_config(servers)
        remember(app, descriptors)
        outcome = await sweep_unassessed(
            app.assessor,
            descriptors,
            app.cache,
            limit=limit if limit > 0 else app.settings.sweep_limit,
        )
        results: dict[str, object] = {}
        for name in outcome.assessed:
            cached = app.cache.get_error(name) or app.cache.get_metrics(name)
            if cached is not None:
                results[name] = assessment_to_dict(name, cached)
        return {"assessed": outcome.assessed, "remaining": outcome.remaining, "results": results}
    except McpAssayError as exc:
        return {"assessed": [], "remaining": 0, "results": {}, "message": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in sweep_servers: {exc}")
        return {
            "assessed": [],
            "remaining": 0,
            "results": {},
            "message": f"Internal error: {type(exc).__name__}",
        }


async def reassess_server(name: str, ctx: Context) -> dict[str, object]:
    """Retry a server seen earlier in this session, discarding its cached error.

    Args:
        name: Server name previously passed to assess_server or sweep_servers.

    Returns:
        Same shape as assess_server.
    """
    try:
        app = get_context(ctx)
        descriptor = lookup(app, name)
        await ctx.info(f"Re-assessing {name}...")
        outcome = await reassess(app.assessor, descriptor, app.cache)
        return assessment_to_dict(name, outcome)
    except McpAssayError as exc:
        return {"name": name, "success": False, "message": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in reassess_server: {exc}")
        return {"name": name, "success": False, "message": f"Internal error: {type(exc).__name__}"}
