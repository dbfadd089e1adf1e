"""
Remote Mutator for the cleanup scheduler.

- Submits one capacity command as a detached task
- Polls for completion at a fixed short interval until a deadline
- Issues a best-effort cancel when the deadline passes

What RemoteMutator MUST NOT do:
- Decide whether a mutation took effect (the caller re-reads the resource)
- Retry (Scheduler's responsibility)
- Record errors (Scheduler's responsibility)
"""

import logging
from datetime import timedelta

from .clock import Clock
from .entities import CapacityCommand, MutationOutcome, TaskState
from .errors import PlatformError
from .platform import CapacityPlatform, DetachedTask


logger = logging.getLogger(__name__)


DEFAULT_TASK_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_CANCEL_GRACE_SECONDS = 5.0


class RemoteMutator:
    """
    Applies one capacity change under a deadline.

    The platform cannot cancel a blocked mutation synchronously, so the
    command runs as a DetachedTask. A TIMED_OUT outcome is advisory: the
    mutation may already have applied, or may apply after this returns.
    """

    def __init__(
        self,
        platform: CapacityPlatform,
        clock: Clock,
        task_poll_interval: float = DEFAULT_TASK_POLL_INTERVAL_SECONDS,
        cancel_grace: float = DEFAULT_CANCEL_GRACE_SECONDS,
    ):
        """
        Initialize RemoteMutator.

        Args:
            platform: Control plane that starts detached tasks
            clock: Time source used for the deadline and polling sleeps
            task_poll_interval: Seconds between completion checks
            cancel_grace: Upper bound for a cancel request
        """
        self.platform = platform
        self.clock = clock
        self.task_poll_interval = task_poll_interval
        self.cancel_grace = cancel_grace

    def execute(self, command: CapacityCommand, deadline: float) -> MutationOutcome:
        """
        Run `command` and wait at most `deadline` seconds for it.

        Returns:
            APPLIED(target) if the task completed cleanly in time,
            FAILED(error) if it completed with an error or could not start,
            TIMED_OUT if the deadline elapsed first
        """
        logger.debug(
            f"Submitting {command.priority.value} priority mutation for "
            f"{command.resource_id}: {command.statement}"
        )

        try:
            task = self.platform.submit(command)
        except PlatformError as e:
            return MutationOutcome.failed(e.message, code=e.code)

        stop_at = self.clock.now() + timedelta(seconds=deadline)

        while True:
            state = task.poll()
            if state == TaskState.COMPLETED:
                return self._completed_outcome(task)
            if self.clock.now() >= stop_at:
                break
            remaining = (stop_at - self.clock.now()).total_seconds()
            self.clock.sleep(max(0.0, min(self.task_poll_interval, remaining)))

        self._cancel(task)
        logger.warning(
            f"Mutation for {command.resource_id} did not finish within "
            f"{deadline}s; cancellation requested (outcome unknown)"
        )
        return MutationOutcome.timed_out()

    def _completed_outcome(self, task: DetachedTask) -> MutationOutcome:
        if task.failed:
            return MutationOutcome.failed(
                task.error_message or "Mutation failed",
                code=task.error_code,
            )
        return MutationOutcome.applied(task.command.target_capacity)

    def _cancel(self, task: DetachedTask) -> None:
        """Best-effort cancel; never lets a cancel failure escape."""
        try:
            task.cancel(self.cancel_grace)
        except Exception as e:
            logger.error(
                f"Error cancelling mutation for {task.command.resource_id}: {e}"
            )
            task.state = TaskState.UNKNOWN
