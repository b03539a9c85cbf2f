"""Ports: MCP transports used for assessment."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from mcp_assay.models import AssessmentError, ServerDescriptor, TokenMetrics


@dataclass(frozen=True, slots=True)
class HttpAssessment:
    """Outcome of a raw Streamable HTTP assessment.

    Exactly one of ``metrics`` / ``error`` is set. ``tools`` holds the
    decoded tool list on success so the caller can cross-validate counts.
    """

    metrics: TokenMetrics | None = None
    error: AssessmentError | None = None
    tools: list[object] = field(default_factory=list)

    def __post_init__(self) -> None:
        if (self.metrics is None) == (self.error is None):
            msg = "HttpAssessment needs exactly one of metrics or error"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class SdkToolCount:
    tool_count: int  # -1 when the reference client failed
    error: str | None = None


class StdioAssessorPort(Protocol):
    """Port for assessing process-based servers over stdio."""

    async def assess(self, descriptor: ServerDescriptor) -> TokenMetrics | None:
        """Spawn, handshake, list tools. None on any failure (never raises)."""
        ...


class HttpAssessorPort(Protocol):
    """Port for assessing URL-based servers over Streamable HTTP."""

    async def assess(self, descriptor: ServerDescriptor) -> HttpAssessment:
        """Handshake and list tools, classifying any failure."""
        ...


class SdkValidatorPort(Protocol):
    """Port for repeating the handshake through the reference MCP client."""

    async def count_tools(self, url: str, headers: dict[str, str]) -> SdkToolCount:
        """Never raises; failures are reported as tool_count == -1."""
        ...
