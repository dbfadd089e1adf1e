"""
Initial timeline construction.

Largest resources are lowered first so the background reclaimer has the most
time to act on them, and lowering steps are spaced evenly across the window
to bound how many reclaims run at once.
"""

from datetime import datetime, timedelta
from typing import Iterable

from .entities import CleanupStep, Resource, StepPhase


def order_resources(resources: Iterable[Resource]) -> list[Resource]:
    """Sort by original capacity descending, then resource id ascending."""
    return sorted(resources, key=lambda r: (-r.original_capacity, r.resource_id))


def step_distance(
    resource_count: int,
    total_run_budget: timedelta,
    per_resource_budget: timedelta,
) -> timedelta:
    """
    Spacing between consecutive lowering steps.

    Formula: max(0, total - per_resource) / (n - 1) for n > 1, else 0.
    The last resource is lowered early enough to leave it a full
    per-resource processing window before the run ends.
    """
    if resource_count <= 1:
        return timedelta(0)
    window = max(timedelta(0), total_run_budget - per_resource_budget)
    return window / (resource_count - 1)


def build_initial_steps(
    resources: Iterable[Resource],
    start: datetime,
    total_run_budget: timedelta,
    per_resource_budget: timedelta,
    percentage_to_keep: int,
) -> list[CleanupStep]:
    """
    One LOWERING step per resource at start + rank * step_distance.

    Returns:
        Steps in rank order
    """
    ordered = order_resources(resources)
    distance = step_distance(len(ordered), total_run_budget, per_resource_budget)

    return [
        CleanupStep(
            resource_id=resource.resource_id,
            target_capacity=resource.lowered_capacity(percentage_to_keep),
            scheduled_at=start + rank * distance,
            phase=StepPhase.LOWERING,
        )
        for rank, resource in enumerate(ordered)
    ]
