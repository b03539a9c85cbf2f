"""JSON-RPC 2.0 messages for the MCP handshake.

Only two requests are ever sent: ``initialize`` (id 1) and ``tools/list``
(id 2). Replies are decoded into a small tagged union so callers never
trust field presence without a type check.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

PROTOCOL_VERSION = "2024-11-05"
INITIALIZE_ID = 1
TOOLS_LIST_ID = 2


def initialize_request(client_name: str, client_version: str) -> dict[str, object]:
    return {
        "jsonrpc": "2.0",
        "id": INITIALIZE_ID,
        "method": "initialize",
        "params": {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": client_name, "version": client_version},
        },
    }


def tools_list_request() -> dict[str, object]:
    return {"jsonrpc": "2.0", "id": TOOLS_LIST_ID, "method": "tools/list", "params": {}}


def encode(message: object, *, indent: int | None = None) -> str:
    """Serialize to JSON.

    The compact form has no whitespace between tokens and keeps non-ASCII
    characters as-is, so its length matches what the consuming client
    measures.
    """
    if indent is not None:
        return json.dumps(message, indent=indent, ensure_ascii=False)
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False)


def schema_chars(tools: list[object]) -> int:
    return len(encode(tools))


# ─── Decoded replies ──────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class RpcResult:
    id: object
    result: dict[str, object]


@dataclass(frozen=True, slots=True)
class RpcError:
    id: object
    code: int | None
    message: str


@dataclass(frozen=True, slots=True)
class Unparseable:
    raw: str


RpcMessage = RpcResult | RpcError | Unparseable


def decode_message(text: str) -> RpcMessage:
    """Decode one JSON-RPC message. Anything off-shape becomes ``Unparseable``."""
    try:
        payload = json.loads(text)
    except ValueError:
        return Unparseable(raw=text)
    return decode_payload(payload, raw=text)


def decode_payload(payload: object, *, raw: str = "") -> RpcMessage:
    if not isinstance(payload, dict):
        return Unparseable(raw=raw)

    msg_id = payload.get("id")
    result = payload.get("result")
    if isinstance(result, dict):
        return RpcResult(id=msg_id, result=result)

    error = payload.get("error")
    if isinstance(error, dict):
        code = error.get("code")
        return RpcError(
            id=msg_id,
            code=code if isinstance(code, int) else None,
            message=str(error.get("message", "")),
        )

    return Unparseable(raw=raw)


def tools_from_result(result: dict[str, object]) -> list[object] | None:
    tools = result.get("tools")
    if isinstance(tools, list):
        return tools
    return None
