"""Helpers shared by the tool functions: context lookup and descriptor parsing."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict
from typing import TYPE_CHECKING

from mcp.server.fastmcp import Context

from mcp_assay.errors import InvalidDescriptorError, ServerNotFoundError
from mcp_assay.models import Assessment, AssessmentError, ServerDescriptor

if TYPE_CHECKING:
    from mcp_assay.server import AppContext


def get_context(ctx: Context) -> AppContext:
    """Extract AppContext from FastMCP's lifespan context.

    Raises TypeError if the lifespan context is not an AppContext instance.
    """
    from mcp_assay.server import AppContext

    app = ctx.request_context.lifespan_context
    if not isinstance(app, AppContext):
        msg = (
            f"Expected AppContext in lifespan_context, got {type(app).__name__}. "
            "Is the server configured with app_lifespan?"
        )
        raise TypeError(msg)
    return app


def descriptor_from_args(
    name: str,
    *,
    command: str = "",
    args: list[str] | None = None,
    env: dict[str, str] | None = None,
    url: str = "",
    headers: dict[str, str] | None = None,
) -> ServerDescriptor:
    if not name.strip():
        raise InvalidDescriptorError("Server name must not be empty.")
    return ServerDescriptor.from_dict(
        name,
        {
            "command": command,
            "args": args or [],
            "env": env or {},
            "url": url,
            "headers": headers or {},
        },
    )


def descriptors_from_config(servers: Mapping[str, object]) -> list[ServerDescriptor]:
    """Parse an ``mcpServers``-shaped mapping, preserving its order."""
    if not isinstance(servers, Mapping):
        raise InvalidDescriptorError("'servers' must map server names to entries.")
    return [ServerDescriptor.from_dict(name, raw) for name, raw in servers.items()]


def remember(app: AppContext, descriptors: list[ServerDescriptor]) -> None:
    for descriptor in descriptors:
        app.known[descriptor.name] = descriptor


def lookup(app: AppContext, name: str) -> ServerDescriptor:
    descriptor = app.known.get(name)
    if descriptor is None:
        raise ServerNotFoundError(
            f"Server '{name}' has not been seen in this session. "
            "Use assess_server or sweep_servers first."
        )
    return descriptor


def assessment_to_dict(name: str, outcome: Assessment) -> dict[str, object]:
    if isinstance(outcome, AssessmentError):
        return {"name": name, "success": False, "error": asdict(outcome)}
    return {"name": name, "success": True, "metrics": asdict(outcome)}
