"""
RemoteMutator Tests.

- Completion inside the deadline yields APPLIED or FAILED
- Deadline expiry issues exactly one cancel and yields TIMED_OUT
- Submission and cancellation failures never escape execute()
"""

from src.cleanup import (
    MutationStatus,
    PlatformError,
    Priority,
    RemoteMutator,
    TaskState,
)
from src.control_plane.commands import build_capacity_command

from .conftest import FakePlatform, TaskScript, failing


def lower_a(target=500):
    return build_capacity_command("A", target, Priority.LOW)


class TestCompletion:
    """Tasks that finish before the deadline."""

    def test_applied(self, clock, make_platform):
        platform = make_platform({"A": 1000})
        mutator = RemoteMutator(platform, clock)

        outcome = mutator.execute(lower_a(), deadline=5)

        assert outcome.status == MutationStatus.APPLIED
        assert outcome.value == 500
        assert platform.capacities["A"] == 500
        assert platform.tasks[0].cancel_calls == 0

    def test_applied_after_a_few_polls(self, clock, make_platform):
        platform = make_platform({"A": 1000})
        platform.script("A", TaskScript(complete_after=3))
        mutator = RemoteMutator(platform, clock, task_poll_interval=1.0)

        outcome = mutator.execute(lower_a(), deadline=5)

        assert outcome.status == MutationStatus.APPLIED
        assert clock.sleeps == [1.0, 1.0, 1.0]

    def test_failed_carries_server_error(self, clock, make_platform):
        platform = make_platform({"A": 1000})
        platform.script("A", failing(code=1205, message="Transaction was deadlocked"))
        mutator = RemoteMutator(platform, clock)

        outcome = mutator.execute(lower_a(), deadline=5)

        assert outcome.status == MutationStatus.FAILED
        assert outcome.error_code == 1205
        assert outcome.error_message == "Transaction was deadlocked"
        assert platform.capacities["A"] == 1000


class TestDeadline:
    """Tasks still running when the deadline passes."""

    def test_timed_out_cancels_once(self, clock, make_platform):
        platform = make_platform({"A": 1000})
        platform.script("A", TaskScript(complete_after=None))
        mutator = RemoteMutator(platform, clock, task_poll_interval=1.0)

        outcome = mutator.execute(lower_a(), deadline=5)

        task = platform.tasks[0]
        assert outcome.status == MutationStatus.TIMED_OUT
        assert task.cancel_calls == 1
        assert task.state == TaskState.UNKNOWN
        assert clock.elapsed().total_seconds() == 5

    def test_sleep_never_overshoots_deadline(self, clock, make_platform):
        platform = make_platform({"A": 1000})
        platform.script("A", TaskScript(complete_after=None))
        mutator = RemoteMutator(platform, clock, task_poll_interval=2.0)

        mutator.execute(lower_a(), deadline=5)

        assert clock.sleeps == [2.0, 2.0, 1.0]
        assert clock.elapsed().total_seconds() == 5

    def test_late_apply_is_invisible_to_mutator(self, clock, make_platform):
        """The value may land after TIMED_OUT is returned."""
        platform = make_platform({"A": 1000})
        platform.script("A", TaskScript(complete_after=None, apply_after=7))
        mutator = RemoteMutator(platform, clock)

        outcome = mutator.execute(lower_a(), deadline=5)

        assert outcome.status == MutationStatus.TIMED_OUT
        assert platform.capacities["A"] == 1000

        clock.tick(2)
        assert platform.read_capacity("A") == 500


class TestFailuresContained:
    """execute() reports problems as outcomes, not exceptions."""

    def test_submit_error_becomes_failed(self, clock):
        class RefusingPlatform(FakePlatform):
            def submit(self, command):
                raise PlatformError("Cannot open server", code=53)

        mutator = RemoteMutator(RefusingPlatform(clock, {"A": 1000}), clock)

        outcome = mutator.execute(lower_a(), deadline=5)

        assert outcome.status == MutationStatus.FAILED
        assert outcome.error_code == 53
        assert outcome.error_message == "Cannot open server"

    def test_cancel_error_is_swallowed(self, clock):
        class BrokenCancelPlatform(FakePlatform):
            def submit(self, command):
                task = super().submit(command)

                def _explode(grace_seconds):
                    raise OSError("process table unavailable")

                task.cancel = _explode
                return task

        platform = BrokenCancelPlatform(clock, {"A": 1000})
        platform.script("A", TaskScript(complete_after=None))
        mutator = RemoteMutator(platform, clock)

        outcome = mutator.execute(lower_a(), deadline=5)

        assert outcome.status == MutationStatus.TIMED_OUT
        assert platform.tasks[0].state == TaskState.UNKNOWN
