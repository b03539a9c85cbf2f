"""Tool-list decoders for ``tools/list`` response bodies.

Streamable HTTP servers may answer with a single JSON document or with a
server-sent-event stream. Each decoder returns the ``tools`` array or
``None``; ``decode_tools`` tries them in order.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence

from mcp_assay.protocol.messages import RpcResult, decode_message, decode_payload, tools_from_result

ToolDecoder = Callable[[str], "list[object] | None"]

_SSE_DATA_PREFIX = "data:"


def decode_json_document(body: str) -> list[object] | None:
    """Body is one JSON-RPC response: ``{"result": {"tools": [...]}}``."""
    message = decode_message(body)
    if isinstance(message, RpcResult):
        return tools_from_result(message.result)
    return None


def decode_event_stream(body: str) -> list[object] | None:
    """Scan ``data:`` lines and return tools from the first line that has them."""
    for line in body.splitlines():
        line = line.rstrip("\r")
        if not line.startswith(_SSE_DATA_PREFIX):
            continue
        data = line[len(_SSE_DATA_PREFIX):].lstrip()
        try:
            payload = json.loads(data)
        except ValueError:
            continue
        message = decode_payload(payload, raw=data)
        if isinstance(message, RpcResult):
            tools = tools_from_result(message.result)
            if tools is not None:
                return tools
    return None


DEFAULT_TOOL_DECODERS: tuple[ToolDecoder, ...] = (decode_json_document, decode_event_stream)


def decode_tools(
    body: str,
    decoders: Sequence[ToolDecoder] = DEFAULT_TOOL_DECODERS,
) -> list[object] | None:
    for decoder in decoders:
        tools = decoder(body)
        if tools is not None:
            return tools
    return None
