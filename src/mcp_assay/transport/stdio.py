"""Assess process-based MCP servers by speaking JSON-RPC over their stdio."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal

from mcp_assay.models import ServerDescriptor, TokenMetrics
from mcp_assay.packages.runner import extract_package_name, is_package_runner
from mcp_assay.protocol.messages import (
    INITIALIZE_ID,
    TOOLS_LIST_ID,
    RpcError,
    RpcResult,
    decode_message,
    encode,
    initialize_request,
    schema_chars,
    tools_from_result,
    tools_list_request,
)
from mcp_assay.tokens.estimator import metrics_from_tools

logger = logging.getLogger(__name__)

# tools/list replies arrive as a single line and can be large.
_STREAM_LIMIT = 16 * 1024 * 1024
_TERMINATE_GRACE_SECONDS = 2.0


def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
    try:
        os.killpg(os.getpgid(proc.pid), sig)
    except (ProcessLookupError, OSError):
        with contextlib.suppress(ProcessLookupError, OSError):
            proc.send_signal(sig)


async def terminate_process(
    proc: asyncio.subprocess.Process,
    *,
    grace_seconds: float = _TERMINATE_GRACE_SECONDS,
) -> None:
    """SIGTERM the process group, then SIGKILL if it outlives the grace period.

    A grace period of zero or less skips SIGTERM.
    """
    if proc.returncode is not None:
        return
    if grace_seconds <= 0:
        _signal_group(proc, signal.SIGKILL)
        await proc.wait()
        return
    _signal_group(proc, signal.SIGTERM)
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace_seconds)
    except TimeoutError:
        _signal_group(proc, signal.SIGKILL)
        await proc.wait()


class StdioAssessor:
    """Adapter for StdioAssessorPort.

    Spawns the server in its own session, writes ``initialize``, waits for
    its result, writes ``tools/list`` and measures the returned schemas.
    The handshake and the child's termination share one deadline, and the
    child is terminated on every exit path.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 15.0,
        client_name: str = "mcp-assay",
        client_version: str = "1.0.0",
        log: logging.Logger | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._client_name = client_name
        self._client_version = client_version
        self._log = log or logger

    async def assess(self, descriptor: ServerDescriptor) -> TokenMetrics | None:
        if not descriptor.command:
            self._log.info("Skipping %s: no command configured", descriptor.name)
            return None

        self._log.info("Assessing %s via stdio...", descriptor.name)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        try:
            proc = await asyncio.create_subprocess_exec(
                descriptor.command,
                *descriptor.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **descriptor.env},
                start_new_session=True,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            self._log.warning("Could not spawn %s: %s", descriptor.name, exc)
            return None

        stderr_task = asyncio.create_task(self._drain_stderr(descriptor.name, proc))
        try:
            tools = await asyncio.wait_for(
                self._handshake(descriptor.name, proc),
                timeout=max(0.0, deadline - loop.time()),
            )
        except TimeoutError:
            self._log.warning(
                "%s did not complete the MCP handshake within %ss",
                descriptor.name,
                self._timeout,
            )
            return None
        except (OSError, ValueError) as exc:
            # Broken stdin pipe, or a stdout line beyond the stream limit.
            self._log.warning("Stdio handshake with %s failed: %s", descriptor.name, exc)
            return None
        finally:
            stderr_task.cancel()
            # Cleanup shares the handshake deadline.
            grace = min(_TERMINATE_GRACE_SECONDS, deadline - loop.time())
            await terminate_process(proc, grace_seconds=grace)
            await asyncio.gather(stderr_task, return_exceptions=True)

        if tools is None:
            return None

        metrics = metrics_from_tools(
            tools,
            schema_chars(tools),
            package_name=(
                extract_package_name(descriptor.args)
                if is_package_runner(descriptor.command)
                else None
            ),
        )
        self._log.info(
            "%s: %d tools, ~%d tokens",
            descriptor.name,
            metrics.tool_count,
            metrics.estimated_tokens,
        )
        return metrics

    async def _handshake(
        self,
        name: str,
        proc: asyncio.subprocess.Process,
    ) -> list[object] | None:
        """Drive initialize -> tools/list. None if the server stops or errors first."""
        assert proc.stdin is not None and proc.stdout is not None

        await self._send(proc.stdin, initialize_request(self._client_name, self._client_version))

        while True:
            line = await proc.stdout.readline()
            if not line:
                self._log.info("%s exited before assessment completed", name)
                return None

            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue

            message = decode_message(text)
            if isinstance(message, RpcError) and message.id in (INITIALIZE_ID, TOOLS_LIST_ID):
                self._log.info(
                    "%s answered request %s with error %s: %s",
                    name,
                    message.id,
                    message.code,
                    message.message,
                )
                return None
            if not isinstance(message, RpcResult):
                continue

            if message.id == INITIALIZE_ID:
                await self._send(proc.stdin, tools_list_request())
            elif message.id == TOOLS_LIST_ID:
                tools = tools_from_result(message.result)
                if tools is not None:
                    return tools

    @staticmethod
    async def _send(stdin: asyncio.StreamWriter, message: dict[str, object]) -> None:
        stdin.write(encode(message).encode("utf-8") + b"\n")
        await stdin.drain()

    async def _drain_stderr(self, name: str, proc: asyncio.subprocess.Process) -> None:
        """Log server stderr. Never treated as a failure."""
        if proc.stderr is None:
            return
        while True:
            line = await proc.stderr.readline()
            if not line:
                return
            self._log.debug("%s stderr: %s", name, line.decode("utf-8", errors="replace").rstrip())
