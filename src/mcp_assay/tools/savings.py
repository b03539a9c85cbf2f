"""estimate_savings tool -- context-window savings from guarding servers."""

from __future__ import annotations

from dataclasses import asdict

from mcp.server.fastmcp import Context

from mcp_assay.errors import McpAssayError
from mcp_assay.tokens.estimator import calculate_savings
from mcp_assay.tools._helpers import descriptors_from_config, get_context, remember


async def estimate_savings(
    servers: dict[str, dict[str, object]],
    guarded: list[str],
    ctx: Context,
) -> dict[str, object]:
    """Estimate how many tokens stay out of the context window when servers are guarded.

    Uses results from earlier assess_server / sweep_servers calls. A guarded
    server without results counts as 800 tokens and sets ``has_estimates``.
    Does not contact any server.

    Args:
        servers: Mapping of server name to config entry (the mcpServers shape).
        guarded: Names of the servers routed through the guard.

    Returns:
        {total_tokens_without_guard, guard_tokens, tokens_saved,
        assessed_mcps, guarded_mcps, has_estimates}.
    """
    try:
        app = get_context(ctx)
        descriptors = descriptors_from_config(servers)
        remember(app, descriptors)
        summary = calculate_savings(
            descriptors,
            {name: True for name in guarded},
            app.cache.metrics_by_name(),
        )
        return asdict(summary)
    except McpAssayError as exc:
        return {"success": False, "message": str(exc)}
    except Exception as exc:
        await ctx.error(f"Unexpected error in estimate_savings: {exc}")
        return {"success": False, "message": f"Internal error: {type(exc).__name__}"}
