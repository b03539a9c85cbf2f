"""Estimate context-window tokens from tool-schema size and aggregate savings."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping

from mcp_assay.models import SavingsSummary, ServerDescriptor, TokenMetrics

logger = logging.getLogger(__name__)

# JSON schemas tokenize at roughly 3-4 characters per token.
CHARS_PER_TOKEN = 3.5

# Always-present tool surface of the guard itself.
GUARD_BASELINE_TOKENS = 500

# Assumed cost of a guarded server that has not been assessed yet.
DEFAULT_UNASSESSED_TOKENS = 800

GuardStatuses = Mapping[str, bool] | Callable[[str], bool]


def estimate_tokens(chars: int) -> int:
    """``round(chars / 3.5)`` with halves rounded up."""
    return math.floor(chars / CHARS_PER_TOKEN + 0.5)


def metrics_from_tools(
    tools: list[object],
    schema_chars: int,
    *,
    package_name: str | None = None,
) -> TokenMetrics:
    return TokenMetrics(
        tool_count=len(tools),
        schema_chars=schema_chars,
        estimated_tokens=estimate_tokens(schema_chars),
        package_name=package_name,
    )


def _guard_lookup(guard_statuses: GuardStatuses) -> Callable[[str], bool]:
    if callable(guard_statuses):
        return guard_statuses
    return lambda name: bool(guard_statuses.get(name, False))


def calculate_savings(
    descriptors: Iterable[ServerDescriptor],
    guard_statuses: GuardStatuses,
    cache: Mapping[str, TokenMetrics],
) -> SavingsSummary:
    """Summarize how many tokens the guard keeps out of the context window.

    Only guarded servers count toward ``total_tokens_without_guard``: their
    cached estimate when assessed, otherwise ``DEFAULT_UNASSESSED_TOKENS``
    (and the summary is flagged as containing estimates). ``assessed_mcps``
    counts every server with cached metrics, guarded or not.
    """
    is_guarded = _guard_lookup(guard_statuses)
    total = 0
    assessed = 0
    guarded = 0
    unassessed_guarded = 0

    for descriptor in descriptors:
        metrics = cache.get(descriptor.name)
        if metrics is not None:
            assessed += 1
        if not is_guarded(descriptor.name):
            continue

        guarded += 1
        if metrics is not None:
            total += metrics.estimated_tokens
        else:
            unassessed_guarded += 1
            total += DEFAULT_UNASSESSED_TOKENS

    logger.debug(
        "Savings: %d guarded (%d estimated), %d assessed, %d tokens without guard",
        guarded,
        unassessed_guarded,
        assessed,
        total,
    )

    return SavingsSummary(
        total_tokens_without_guard=total,
        guard_tokens=GUARD_BASELINE_TOKENS,
        tokens_saved=max(0, total - GUARD_BASELINE_TOKENS),
        assessed_mcps=assessed,
        guarded_mcps=guarded,
        has_estimates=unassessed_guarded > 0,
    )
