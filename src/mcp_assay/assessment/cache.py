"""In-memory AssessmentCachePort for a single process lifetime."""

from __future__ import annotations

from dataclasses import dataclass, field

from mcp_assay.models import AssessmentError, TokenMetrics


@dataclass
class InMemoryAssessmentCache:
    metrics: dict[str, TokenMetrics] = field(default_factory=dict)
    errors: dict[str, AssessmentError] = field(default_factory=dict)

    def get_metrics(self, name: str) -> TokenMetrics | None:
        return self.metrics.get(name)

    def set_metrics(self, name: str, metrics: TokenMetrics) -> None:
        self.metrics[name] = metrics

    def get_error(self, name: str) -> AssessmentError | None:
        return self.errors.get(name)

    def set_error(self, name: str, error: AssessmentError) -> None:
        self.errors[name] = error

    def clear_error(self, name: str) -> None:
        self.errors.pop(name, None)

    def metrics_by_name(self) -> dict[str, TokenMetrics]:
        return dict(self.metrics)
