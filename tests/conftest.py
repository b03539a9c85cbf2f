"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

import httpx
import pytest

from mcp_assay.oauth.discovery import WELL_KNOWN_PATH

SAMPLE_TOOLS: list[dict[str, object]] = [
    {
        "name": "search_docs",
        "description": "Search the documentation index.",
        "inputSchema": {
            "type": "object",
            "properties": {"query": {"type": "string"}, "limit": {"type": "integer"}},
            "required": ["query"],
        },
    },
    {
        "name": "fetch_page",
        "description": "Fetch one page by its identifier, e.g. «intro».",
        "inputSchema": {
            "type": "object",
            "properties": {"page_id": {"type": "string"}},
            "required": ["page_id"],
        },
    },
]


@dataclass
class FakeMcpServer:
    """Scriptable Streamable HTTP MCP endpoint served through httpx.MockTransport."""

    tools: list[dict[str, object]] = field(default_factory=lambda: list(SAMPLE_TOOLS))
    session_id: str | None = None
    event_stream: bool = False
    head_status: int = 200
    init_status: int = 200
    tools_status: int = 200
    error_body: str = ""
    www_authenticate: str | None = None
    well_known: dict[str, object] | None = None
    requests: list[httpx.Request] = field(default_factory=list)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def posts(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.method == "GET" and request.url.path == WELL_KNOWN_PATH:
            if self.well_known is None:
                return httpx.Response(404, text="Not Found")
            return httpx.Response(200, json=self.well_known)
        if request.method == "HEAD":
            return httpx.Response(self.head_status)

        message = json.loads(request.content)
        if message["method"] == "initialize":
            if self.init_status != 200:
                return self._failure(self.init_status)
            headers = {"mcp-session-id": self.session_id} if self.session_id else {}
            return self._reply(
                message["id"],
                {"protocolVersion": "2024-11-05", "capabilities": {"tools": {}}},
                headers,
            )

        if self.tools_status != 200:
            return self._failure(self.tools_status)
        return self._reply(message["id"], {"tools": self.tools}, {})

    def _failure(self, status: int) -> httpx.Response:
        headers = {"www-authenticate": self.www_authenticate} if self.www_authenticate else {}
        return httpx.Response(status, text=self.error_body, headers=headers)

    def _reply(self, msg_id: int, result: dict[str, object], headers: dict[str, str]) -> httpx.Response:
        payload = {"jsonrpc": "2.0", "id": msg_id, "result": result}
        if self.event_stream:
            return httpx.Response(
                200,
                text=f"event: message\ndata: {json.dumps(payload)}\n\n",
                headers={"content-type": "text/event-stream", **headers},
            )
        return httpx.Response(200, json=payload, headers=headers)


@pytest.fixture()
def mcp_server() -> FakeMcpServer:
    return FakeMcpServer()


@pytest.fixture()
def sample_tools() -> list[dict[str, object]]:
    return [dict(tool) for tool in SAMPLE_TOOLS]


async def _trickle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Answer any request with 200 and an event stream of keepalive comments."""
    with contextlib.suppress(ConnectionError, asyncio.IncompleteReadError):
        head = await reader.readuntil(b"\r\n\r\n")
        length = 0
        for line in head.decode("latin-1").split("\r\n"):
            name, _, value = line.partition(":")
            if name.strip().lower() == "content-length":
                length = int(value)
        if length:
            await reader.readexactly(length)
        writer.write(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: text/event-stream\r\n"
            b"Connection: close\r\n\r\n"
        )
        await writer.drain()
        for _ in range(50):
            writer.write(b": ping\n\n")
            await writer.drain()
            await asyncio.sleep(0.2)
    writer.close()


@pytest.fixture()
async def trickle_server() -> AsyncIterator[str]:
    """Base URL of a real local server that never finishes a response body."""
    handlers: set[asyncio.Task[None]] = set()

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        assert task is not None
        handlers.add(task)
        await _trickle(reader, writer)

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        for task in handlers:
            task.cancel()
        await asyncio.gather(*handlers, return_exceptions=True)
        server.close()
        await server.wait_closed()
