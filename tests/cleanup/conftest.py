"""
Cleanup Test Fixtures.

Base fixtures:
  - Mocked clock at fixed time that advances only when slept or ticked
  - In-memory platform whose detached tasks follow per-resource scripts
  - Recording mutator that remembers every (command, deadline) pair
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from src.cleanup import (
    CapacityCommand,
    CleanupScheduler,
    DetachedTask,
    MutationOutcome,
    PlatformError,
    Priority,
    RemoteMutator,
    Resource,
    RunConfig,
    TaskState,
)
from src.control_plane.commands import build_capacity_command


# Fixed time for deterministic tests
FIXED_DATETIME = datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class MockClock:
    """
    Mock clock for deterministic time control.

    - Starts at fixed epoch
    - Advances only when slept or explicitly ticked
    """

    def __init__(self, start_time: datetime = FIXED_DATETIME):
        self._current = start_time
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._current += timedelta(seconds=seconds)

    def tick(self, seconds: float = 1) -> None:
        """Advance time by specified seconds."""
        self._current += timedelta(seconds=seconds)

    def elapsed(self) -> timedelta:
        return self._current - FIXED_DATETIME


@dataclass
class TaskScript:
    """
    How one detached task behaves.

    complete_after: seconds until the task reports completion (None = never)
    applies: whether the new capacity takes effect at all
    apply_after: seconds until the value takes effect (defaults to
        complete_after); may exceed the mutation deadline
    """

    complete_after: Optional[float] = 0.0
    applies: bool = True
    apply_after: Optional[float] = None
    error_code: Optional[int] = None
    error_message: Optional[str] = None


class FakeTask(DetachedTask):
    """Detached task driven by a TaskScript and the mock clock."""

    def __init__(self, command, platform, script: TaskScript, submitted_at: datetime):
        super().__init__(command)
        self.platform = platform
        self.script = script
        self.submitted_at = submitted_at
        self.cancel_calls = 0

    def poll(self) -> TaskState:
        if self.state != TaskState.RUNNING:
            return self.state

        self.platform.settle()
        if self.script.complete_after is None:
            return self.state

        elapsed = (self.platform.clock.now() - self.submitted_at).total_seconds()
        if elapsed >= self.script.complete_after:
            self.state = TaskState.COMPLETED
            if self.script.error_message is not None:
                self.error_code = self.script.error_code
                self.error_message = self.script.error_message
        return self.state

    def cancel(self, grace_seconds: float) -> TaskState:
        self.cancel_calls += 1
        if self.state == TaskState.COMPLETED:
            return self.state
        self.state = TaskState.UNKNOWN
        return self.state


def failing(code: int = 1222, message: str = "Lock request time out period exceeded.") -> TaskScript:
    """Script for a mutation that completes with a server error."""
    return TaskScript(applies=False, error_code=code, error_message=message)


class FakePlatform:
    """
    In-memory CapacityPlatform.

    Script selection per submission: queued scripts for the resource first,
    then a failure rule for (resource, priority), then `default_script`.
    """

    def __init__(self, clock: MockClock, capacities: dict[str, int]):
        self.clock = clock
        self.original = dict(capacities)
        self.capacities = dict(capacities)
        self.default_script = TaskScript()
        self.scripts: dict[str, list[TaskScript]] = {}
        self.failures: dict[tuple[str, Priority], TaskScript] = {}
        self.read_failures: dict[str, int] = {}
        self.discovery_error: Optional[Exception] = None

        self.submissions: list[CapacityCommand] = []
        self.submitted_at: list[datetime] = []
        self.tasks: list[FakeTask] = []
        self.reads: list[str] = []
        self._pending: list[tuple[datetime, str, int]] = []

    # Scripting helpers

    def script(self, resource_id: str, *scripts: TaskScript) -> None:
        self.scripts.setdefault(resource_id, []).extend(scripts)

    def fail(self, resource_id: str, priority: Priority, script: Optional[TaskScript] = None) -> None:
        self.failures[(resource_id, priority)] = script or failing()

    def settle(self) -> None:
        """Apply every capacity change whose time has come."""
        now = self.clock.now()
        remaining = []
        for apply_at, resource_id, value in self._pending:
            if apply_at <= now:
                self.capacities[resource_id] = value
            else:
                remaining.append((apply_at, resource_id, value))
        self._pending = remaining

    def submissions_for(self, resource_id: str, priority: Optional[Priority] = None) -> list[CapacityCommand]:
        return [
            c for c in self.submissions
            if c.resource_id == resource_id and (priority is None or c.priority == priority)
        ]

    # CapacityPlatform

    def list_eligible_resources(self) -> list[Resource]:
        if self.discovery_error is not None:
            raise self.discovery_error
        return [Resource(rid, capacity) for rid, capacity in self.original.items()]

    def read_capacity(self, resource_id: str) -> int:
        self.reads.append(resource_id)
        if self.read_failures.get(resource_id, 0) > 0:
            self.read_failures[resource_id] -= 1
            raise PlatformError("Login timeout expired", code=258)
        self.settle()
        return self.capacities[resource_id]

    def build_command(self, resource_id: str, target_capacity: int, priority: Priority) -> CapacityCommand:
        return build_capacity_command(resource_id, target_capacity, priority)

    def submit(self, command: CapacityCommand) -> FakeTask:
        now = self.clock.now()
        self.submissions.append(command)
        self.submitted_at.append(now)

        queued = self.scripts.get(command.resource_id)
        if queued:
            script = queued.pop(0)
        else:
            script = self.failures.get(
                (command.resource_id, command.priority), self.default_script
            )

        if script.applies:
            apply_after = script.apply_after
            if apply_after is None:
                apply_after = script.complete_after
            if apply_after is not None:
                self._pending.append(
                    (now + timedelta(seconds=apply_after), command.resource_id, command.target_capacity)
                )

        task = FakeTask(command, self, script, now)
        self.tasks.append(task)
        return task


class RecordingMutator(RemoteMutator):
    """RemoteMutator that remembers every call."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls: list[tuple[CapacityCommand, float]] = []

    def execute(self, command: CapacityCommand, deadline: float) -> MutationOutcome:
        self.calls.append((command, deadline))
        return super().execute(command, deadline)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def make_platform(clock):
    """Factory: FakePlatform over the given capacities."""

    def _make(capacities: dict[str, int]) -> FakePlatform:
        return FakePlatform(clock, capacities)

    return _make


@pytest.fixture
def make_scheduler(clock):
    """Factory: CleanupScheduler wired to the mock clock and a recording mutator."""

    def _make(platform: FakePlatform, **config_values) -> CleanupScheduler:
        config = RunConfig(**config_values)
        mutator = RecordingMutator(
            platform,
            clock,
            task_poll_interval=config.task_poll_interval_seconds,
            cancel_grace=config.cancel_grace_seconds,
        )
        return CleanupScheduler(platform, config, clock=clock, mutator=mutator)

    return _make
