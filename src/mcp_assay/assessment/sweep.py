"""Record assessments in the caller's cache and sweep unassessed servers."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from mcp_assay.assessment.base import AssessmentCachePort, AssessorPort
from mcp_assay.models import Assessment, AssessmentError, ServerDescriptor, SweepOutcome

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_LIMIT = 3


async def assess_and_record(
    assessor: AssessorPort,
    descriptor: ServerDescriptor,
    cache: AssessmentCachePort,
) -> Assessment:
    """Assess and write the outcome: metrics clear any old error; errors are stored."""
    outcome = await assessor.assess(descriptor)
    if isinstance(outcome, AssessmentError):
        cache.set_error(descriptor.name, outcome)
        logger.info("Assessment of %s failed: %s (%s)", descriptor.name, outcome.type, outcome.message)
    else:
        cache.set_metrics(descriptor.name, outcome)
        cache.clear_error(descriptor.name)
    return outcome


async def reassess(
    assessor: AssessorPort,
    descriptor: ServerDescriptor,
    cache: AssessmentCachePort,
) -> Assessment:
    """Explicit retry: drop the cached error first, then assess again."""
    cache.clear_error(descriptor.name)
    return await assess_and_record(assessor, descriptor, cache)


def select_unassessed(
    descriptors: Iterable[ServerDescriptor],
    cache: AssessmentCachePort,
) -> list[ServerDescriptor]:
    """Servers with an endpoint and neither cached metrics nor a cached error, in input order."""
    return [
        d
        for d in descriptors
        if d.transport is not None
        and cache.get_metrics(d.name) is None
        and cache.get_error(d.name) is None
    ]


async def sweep_unassessed(
    assessor: AssessorPort,
    descriptors: Iterable[ServerDescriptor],
    cache: AssessmentCachePort,
    *,
    limit: int = DEFAULT_SWEEP_LIMIT,
) -> SweepOutcome:
    """Assess the first *limit* unassessed servers, one after another.

    Servers past the limit are left for a later sweep.
    """
    candidates = select_unassessed(descriptors, cache)
    batch = candidates[: max(0, limit)]
    if candidates:
        logger.info(
            "Sweep: %d unassessed server(s), assessing %d",
            len(candidates),
            len(batch),
        )

    assessed: list[str] = []
    for descriptor in batch:
        await assess_and_record(assessor, descriptor, cache)
        assessed.append(descriptor.name)

    return SweepOutcome(assessed=assessed, remaining=len(candidates) - len(batch))
