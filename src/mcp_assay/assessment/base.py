"""Ports: assessment entry point and the caller-owned result cache."""

from __future__ import annotations

from typing import Protocol

from mcp_assay.models import Assessment, AssessmentError, ServerDescriptor, TokenMetrics


class AssessorPort(Protocol):
    """Port for single-server assessment."""

    async def assess(self, descriptor: ServerDescriptor) -> Assessment:
        """Return TokenMetrics or exactly one AssessmentError. Never raises."""
        ...


class AssessmentCachePort(Protocol):
    """Caller-owned store of the latest outcome per server name.

    The engine reads it before and writes it after an assessment; it never
    persists anything itself.
    """

    def get_metrics(self, name: str) -> TokenMetrics | None: ...

    def set_metrics(self, name: str, metrics: TokenMetrics) -> None: ...

    def get_error(self, name: str) -> AssessmentError | None: ...

    def set_error(self, name: str, error: AssessmentError) -> None: ...

    def clear_error(self, name: str) -> None: ...

    def metrics_by_name(self) -> dict[str, TokenMetrics]: ...
