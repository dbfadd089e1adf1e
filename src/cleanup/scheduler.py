"""
Cleanup Scheduler - staggers ceiling reductions across a fleet of resources.

Run lifecycle:
1. Discover eligible resources (platform collaborator)
2. Build the initial LOWERING timeline
3. Drive the cooperative loop: pop due steps, mutate, verify, advance/retry
4. Force-restore whatever is still pending when the time budget runs out
5. Raise an aggregated CleanupRunError if unresolved errors remain

Usage:
    scheduler = CleanupScheduler(platform, RunConfig(minutes_to_run=240))
    result = scheduler.run()
"""

import logging
from datetime import datetime
from typing import Optional

from .clock import Clock, SystemClock, seconds_until
from .config import RunConfig
from .entities import (
    CleanupStep,
    ErrorKind,
    MutationOutcome,
    MutationStatus,
    Priority,
    Resource,
    RunResult,
    StepPhase,
)
from .error_collector import ErrorCollector
from .errors import CleanupError, CleanupRunError, DiscoveryError, PlatformError
from .mutator import RemoteMutator
from .platform import CapacityPlatform
from .step_queue import StepQueue
from .timeline import build_initial_steps


logger = logging.getLogger(__name__)


# Floor for the idle sleep so the loop never spins
MIN_SLEEP_SECONDS = 0.1


class CleanupScheduler:
    """
    Orchestrates one staggered cleanup run.

    Single-threaded: the StepQueue and ErrorCollector are only touched from
    the thread calling run(). Exactly one mutation is in flight at a time.

    Every mutation outcome is checked by re-reading the resource's current
    capacity. The mutator's own status only feeds error messages, because a
    cancelled mutation may still have applied.
    """

    def __init__(
        self,
        platform: CapacityPlatform,
        config: Optional[RunConfig] = None,
        clock: Optional[Clock] = None,
        mutator: Optional[RemoteMutator] = None,
    ):
        """
        Initialize CleanupScheduler.

        Args:
            platform: Control plane adapter (discovery, reads, mutations)
            config: Run parameters (defaults to RunConfig())
            clock: Time source (defaults to SystemClock())
            mutator: RemoteMutator (injectable for testing)
        """
        self.platform = platform
        self.config = config or RunConfig()
        self.clock = clock or SystemClock()
        self.mutator = mutator or RemoteMutator(
            platform,
            self.clock,
            task_poll_interval=self.config.task_poll_interval_seconds,
            cancel_grace=self.config.cancel_grace_seconds,
        )

        self.queue = StepQueue()
        self.errors = ErrorCollector()
        self._resources: dict[str, Resource] = {}
        self._result: Optional[RunResult] = None
        # Step popped from the queue and being processed right now
        self._in_flight: Optional[CleanupStep] = None

    # =========================================================================
    # Run
    # =========================================================================

    def run(self) -> RunResult:
        """
        Execute a full cleanup run.

        Returns:
            RunResult when every resource finished without unresolved errors

        Raises:
            DiscoveryError: If eligible resources cannot be listed (no
                mutation is attempted)
            CleanupRunError: If unresolved errors remain after every affected
                resource had its restore attempted

        Any other exception escaping the loop (including KeyboardInterrupt)
        is re-raised after every resource with a pending or in-flight step
        has had its forced restore attempted.
        """
        start = self.clock.now()
        stop_time = start + self.config.total_run_budget

        self.queue = StepQueue()
        self.errors = ErrorCollector()
        self._result = RunResult(started_at=start)
        self._in_flight = None

        logger.info(
            f"Cleanup run started: minutes_to_run={self.config.minutes_to_run}, "
            f"percentage_to_keep={self.config.percentage_to_keep}, "
            f"stop_time={stop_time.isoformat()}"
        )

        resources = self._discover()
        self._result.resources = resources

        if not resources:
            logger.info("No eligible resources found, nothing to do")
            self._result.finished_at = self.clock.now()
            return self._result

        for step in self.plan(resources, start):
            self.queue.put(step)

        try:
            self._run_loop(stop_time)
        except BaseException as e:
            logger.error(
                f"Cleanup run aborted by {type(e).__name__}: {e}; "
                "restoring every resource still in progress"
            )
            self._force_restore_remaining()
            self._result.errors = self.errors.records
            self._result.finished_at = self.clock.now()
            raise

        if not self.queue.is_empty():
            self._result.budget_exhausted = True
            logger.warning(
                f"Time budget exhausted with {len(self.queue)} resource(s) "
                "pending; forcing restore"
            )
            self._force_restore_remaining()

        return self._finish()

    @property
    def result(self) -> Optional[RunResult]:
        """Result of the most recent run, including one that was aborted."""
        return self._result

    def plan(
        self,
        resources: Optional[list[Resource]] = None,
        start: Optional[datetime] = None,
    ) -> list[CleanupStep]:
        """
        Build and log the initial LOWERING timeline.

        Args:
            resources: Resources to schedule (discovered when omitted)
            start: Instant of rank 0 (now when omitted)
        """
        if resources is None:
            resources = self._discover()
        if start is None:
            start = self.clock.now()

        steps = build_initial_steps(
            resources,
            start=start,
            total_run_budget=self.config.total_run_budget,
            per_resource_budget=self.config.per_resource_budget,
            percentage_to_keep=self.config.percentage_to_keep,
        )

        for rank, step in enumerate(steps):
            offset = step.scheduled_at - start
            logger.info(
                f"Planned #{rank} {step.resource_id}: lower to "
                f"{step.target_capacity} at +{offset}"
            )

        return steps

    def _discover(self) -> list[Resource]:
        resources = list(self.platform.list_eligible_resources())

        seen: set[str] = set()
        for resource in resources:
            if resource.resource_id in seen:
                raise DiscoveryError(
                    f"Duplicate resource returned by discovery: {resource.resource_id}"
                )
            if resource.original_capacity <= 0:
                raise DiscoveryError(
                    f"Resource {resource.resource_id} has non-positive capacity "
                    f"{resource.original_capacity}"
                )
            seen.add(resource.resource_id)

        self._resources = {r.resource_id: r for r in resources}
        logger.info(f"Discovered {len(resources)} eligible resource(s)")
        return resources

    def _finish(self) -> RunResult:
        result = self._result
        result.errors = self.errors.records
        result.finished_at = self.clock.now()

        logger.info(
            f"Cleanup run finished in {result.duration_seconds:.0f}s: "
            f"completed={len(result.completed)}, "
            f"force_restored={len(result.force_restored)}, "
            f"errors={len(result.errors)} "
            f"(unresolved={len(result.unresolved_errors)})"
        )

        if self.errors.has_unresolved():
            message = self.errors.summary(budget_exhausted=result.budget_exhausted)
            logger.error(f"Cleanup run failed: {message}")
            raise CleanupRunError(message, result=result)

        return result

    # =========================================================================
    # Main Loop
    # =========================================================================

    def _run_loop(self, stop_time: datetime) -> None:
        """Process due steps until the queue drains or the budget runs out."""
        while not self.queue.is_empty():
            if self.clock.now() > stop_time:
                break

            due = self.queue.pop_due(self.clock.now())
            try:
                while due:
                    if self.clock.now() > stop_time:
                        break
                    step = due.pop(0)
                    self._in_flight = step
                    self._process_step(step)
                    self._in_flight = None
            finally:
                # Unprocessed steps go back for the next pass or a forced restore
                for step in due:
                    self.queue.put(step)

            if self.queue.is_empty():
                break

            self._wait(stop_time)

    def _wait(self, stop_time: datetime) -> None:
        """Sleep until the next step is due, capped by poll interval and stop time."""
        candidates = [
            self.config.poll_interval_seconds,
            seconds_until(self.clock, stop_time),
        ]
        next_due = self.queue.next_due_at()
        if next_due is not None:
            candidates.append(seconds_until(self.clock, next_due))

        self.clock.sleep(max(MIN_SLEEP_SECONDS, min(candidates)))

    def _process_step(self, step: CleanupStep) -> None:
        step.attempts += 1
        logger.info(
            f"{step.phase.value} {step.resource_id} to {step.target_capacity} "
            f"(attempt {step.attempts})"
        )

        # A mutation that finished after an earlier timeout shows up here
        current = self._read_capacity(step)
        if current is None:
            self._reschedule(step)
            return
        if current == step.target_capacity:
            logger.info(
                f"{step.resource_id} already at {current}, no mutation needed"
            )
            self._on_success(step)
            return

        try:
            command = self.platform.build_command(
                step.resource_id, step.target_capacity, Priority.LOW
            )
        except CleanupError as e:
            self.errors.add(
                step.resource_id,
                code="invalid_command",
                message=str(e),
                kind=ErrorKind.MUTATION_FAILED,
                phase=step.phase,
            )
            self._reschedule(step)
            return

        outcome = self.mutator.execute(
            command, deadline=self.config.mutation_timeout_seconds
        )

        observed = self._read_capacity(step)
        if observed is None:
            self._reschedule(step)
            return

        if observed == step.target_capacity:
            if outcome.status != MutationStatus.APPLIED:
                logger.info(
                    f"Mutation for {step.resource_id} reported "
                    f"{outcome.status.value} but the new value is in place"
                )
            self._on_success(step)
            return

        self._record_failure(step, outcome, observed)
        self._reschedule(step)

    def _read_capacity(self, step: CleanupStep) -> Optional[int]:
        try:
            return self.platform.read_capacity(step.resource_id)
        except PlatformError as e:
            self.errors.add(
                step.resource_id,
                code=e.code if e.code is not None else "read_failed",
                message=f"Could not read current capacity: {e.message}",
                kind=ErrorKind.VERIFICATION_FAILED,
                phase=step.phase,
            )
            return None

    def _on_success(self, step: CleanupStep) -> None:
        now = self.clock.now()

        if step.phase == StepPhase.LOWERING:
            resource = self._resources[step.resource_id]
            restore = CleanupStep(
                resource_id=step.resource_id,
                target_capacity=resource.original_capacity,
                scheduled_at=now + self.config.per_resource_budget,
                phase=StepPhase.RESTORING,
            )
            self.queue.put(restore)
            logger.info(
                f"Lowered {step.resource_id} to {step.target_capacity}; restore "
                f"to {restore.target_capacity} at {restore.scheduled_at.isoformat()}"
            )
            return

        self.queue.remove(step.resource_id)
        self.errors.resolve(step.resource_id)
        self._result.completed.append(step.resource_id)
        logger.info(f"Restored {step.resource_id} to {step.target_capacity}")

    def _reschedule(self, step: CleanupStep) -> None:
        step.scheduled_at = self.clock.now() + self.config.retry_backoff
        self.queue.put(step)
        logger.info(
            f"Retrying {step.phase.value} for {step.resource_id} at "
            f"{step.scheduled_at.isoformat()}"
        )

    def _record_failure(
        self,
        step: CleanupStep,
        outcome: MutationOutcome,
        observed: int,
    ) -> None:
        if outcome.status == MutationStatus.FAILED:
            self.errors.add(
                step.resource_id,
                code=outcome.error_code if outcome.error_code is not None else "mutation_failed",
                message=outcome.error_message or "Mutation failed",
                kind=ErrorKind.MUTATION_FAILED,
                phase=step.phase,
            )
        elif outcome.status == MutationStatus.TIMED_OUT:
            self.errors.add(
                step.resource_id,
                code="timeout",
                message=(
                    f"Mutation did not finish within "
                    f"{self.config.mutation_timeout_seconds}s; capacity is "
                    f"{observed}, expected {step.target_capacity}"
                ),
                kind=ErrorKind.TIMED_OUT,
                phase=step.phase,
            )
        else:
            self.errors.add(
                step.resource_id,
                code="mismatch",
                message=(
                    f"Mutation reported success but capacity is {observed}, "
                    f"expected {step.target_capacity}"
                ),
                kind=ErrorKind.VERIFICATION_MISMATCH,
                phase=step.phase,
            )

    # =========================================================================
    # Forced Restore
    # =========================================================================

    def _force_restore_remaining(self) -> None:
        """Force-restore every resource with a pending or in-flight step, by id."""
        resource_ids = {step.resource_id for step in self.queue.pending()}
        if self._in_flight is not None:
            resource_ids.add(self._in_flight.resource_id)
            self._in_flight = None

        for resource_id in sorted(resource_ids):
            self.queue.remove(resource_id)
            resource = self._resources[resource_id]
            try:
                restored = self.force_restore(resource)
            except Exception as e:
                logger.exception(f"Forced restore of {resource_id} raised")
                self._record_forced_failure(
                    resource,
                    "unexpected_error",
                    f"Forced restore raised {type(e).__name__}: {e}",
                )
                continue
            if restored:
                self._result.force_restored.append(resource_id)

    def force_restore(self, resource: Resource) -> bool:
        """
        Single high-priority attempt to put a resource back to its original capacity.

        Idempotent: a resource already at its original capacity is left alone.
        Failures are recorded and not retried.

        Returns:
            True if the resource is verified at its original capacity
        """
        target = resource.original_capacity

        try:
            current: Optional[int] = self.platform.read_capacity(resource.resource_id)
        except PlatformError as e:
            logger.warning(
                f"Could not read {resource.resource_id} before forced restore: {e}"
            )
            current = None

        if current == target:
            logger.info(
                f"{resource.resource_id} already at original capacity {target}"
            )
            return True

        try:
            command = self.platform.build_command(
                resource.resource_id, target, Priority.HIGH
            )
        except CleanupError as e:
            self._record_forced_failure(resource, "invalid_command", str(e))
            return False

        outcome = self.mutator.execute(
            command, deadline=self.config.forced_restore_timeout_seconds
        )

        try:
            observed = self.platform.read_capacity(resource.resource_id)
        except PlatformError as e:
            self._record_forced_failure(
                resource,
                e.code if e.code is not None else "read_failed",
                f"Forced restore outcome {outcome.status.value}; "
                f"could not verify: {e.message}",
            )
            return False

        if observed == target:
            logger.info(f"Forced restore of {resource.resource_id} to {target} verified")
            return True

        self._record_forced_failure(
            resource,
            outcome.error_code if outcome.error_code is not None else outcome.status.value.lower(),
            (
                f"Forced restore to {target} failed ({outcome.status.value}"
                + (f": {outcome.error_message}" if outcome.error_message else "")
                + f"); capacity is {observed}"
            ),
        )
        return False

    def _record_forced_failure(self, resource: Resource, code, message: str) -> None:
        self.errors.add(
            resource.resource_id,
            code=code,
            message=message,
            kind=ErrorKind.FORCED_RESTORE_FAILED,
            phase=StepPhase.RESTORING,
        )
