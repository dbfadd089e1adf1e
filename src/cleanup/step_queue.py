"""
Step Queue for the cleanup scheduler.

- Holds at most one pending CleanupStep per resource (replace-on-write)
- Pops due steps in ascending scheduled time, ties broken by resource id
- Refuses to queue a LOWERING step over a pending RESTORING step

What StepQueue MUST NOT do:
- Execute mutations (RemoteMutator's responsibility)
- Decide retry timing (Scheduler's responsibility)
"""

from datetime import datetime
from typing import Iterator, Optional

from .entities import CleanupStep, StepPhase
from .errors import InvalidOperationError


def _ordering_key(step: CleanupStep) -> tuple:
    return (step.scheduled_at, step.resource_id)


class StepQueue:
    """
    Ordered collection of pending steps keyed by resource id.

    The queue is only touched from the scheduler's control thread, so it
    carries no locking. Queue sizes are bounded by the number of discovered
    resources, so ordering is computed on demand.
    """

    def __init__(self):
        self._steps: dict[str, CleanupStep] = {}

    # =========================================================================
    # Mutation
    # =========================================================================

    def put(self, step: CleanupStep) -> None:
        """
        Insert or replace the pending step for `step.resource_id`.

        Raises:
            InvalidOperationError: If a LOWERING step would replace a pending
                RESTORING step for the same resource
        """
        existing = self._steps.get(step.resource_id)
        if (
            existing is not None
            and existing.phase == StepPhase.RESTORING
            and step.phase == StepPhase.LOWERING
        ):
            raise InvalidOperationError(
                f"Cannot queue LOWERING for {step.resource_id}: "
                "its RESTORING step is already scheduled"
            )
        self._steps[step.resource_id] = step

    def remove(self, resource_id: str) -> Optional[CleanupStep]:
        """Remove and return the pending step for a resource, if any."""
        return self._steps.pop(resource_id, None)

    def pop_due(self, now: datetime) -> list[CleanupStep]:
        """
        Remove and return every step scheduled at or before `now`.

        Returns:
            Steps in ascending scheduled time, ties by resource id
        """
        due = sorted(
            (step for step in self._steps.values() if step.is_due(now)),
            key=_ordering_key,
        )
        for step in due:
            del self._steps[step.resource_id]
        return due

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, resource_id: str) -> Optional[CleanupStep]:
        return self._steps.get(resource_id)

    def next_due_at(self) -> Optional[datetime]:
        """Earliest scheduled time among pending steps."""
        if not self._steps:
            return None
        return min(step.scheduled_at for step in self._steps.values())

    def pending(self) -> list[CleanupStep]:
        """Snapshot of pending steps in due order."""
        return sorted(self._steps.values(), key=_ordering_key)

    def is_empty(self) -> bool:
        return not self._steps

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._steps

    def __iter__(self) -> Iterator[CleanupStep]:
        return iter(self.pending())
