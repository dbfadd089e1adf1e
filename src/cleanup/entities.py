"""
Cleanup Domain Entities.

- Resource: One capacity-limited store, frozen at discovery
- CleanupStep: A pending capacity mutation for one resource
- ErrorRecord: Audit record of a single failed attempt
- MutationOutcome: What the RemoteMutator observed for one mutation
- RunResult: Summary of a completed run

Status values are str enums so they log and serialize as plain text.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


class StepPhase(str, Enum):
    """
    Phase of a cleanup step.

    - LOWERING: Ceiling is reduced so the background reclaimer trims data
    - RESTORING: Ceiling is set back to the original capacity
    """

    LOWERING = "LOWERING"
    RESTORING = "RESTORING"


class TaskState(str, Enum):
    """
    Lifecycle of a detached remote task.

    UNKNOWN is only entered after a cancellation attempt. The mutation may or
    may not have taken effect; only a verification read can tell.
    """

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCEL_REQUESTED = "CANCEL_REQUESTED"
    UNKNOWN = "UNKNOWN"


class MutationStatus(str, Enum):
    """Outcome reported by the RemoteMutator."""

    APPLIED = "APPLIED"
    TIMED_OUT = "TIMED_OUT"
    FAILED = "FAILED"


class Priority(str, Enum):
    """
    Contention priority for a remote mutation.

    LOW yields to concurrent workload (a failure just triggers a retry).
    HIGH is reserved for forced restores at the end of a run.
    """

    LOW = "LOW"
    HIGH = "HIGH"


class ErrorKind(str, Enum):
    """Classification of a failed attempt."""

    MUTATION_FAILED = "MUTATION_FAILED"
    TIMED_OUT = "TIMED_OUT"
    VERIFICATION_MISMATCH = "VERIFICATION_MISMATCH"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    FORCED_RESTORE_FAILED = "FORCED_RESTORE_FAILED"


def utc_now() -> datetime:
    """Get current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Resource:
    """A capacity-limited store eligible for staggered cleanup."""

    resource_id: str
    original_capacity: int

    def lowered_capacity(self, percentage_to_keep: int) -> int:
        """Target ceiling while cleanup runs: floor(pct/100 * original)."""
        return self.original_capacity * percentage_to_keep // 100


@dataclass
class CleanupStep:
    """
    One pending mutation.

    Mutability rules:
    - resource_id, phase, target_capacity: fixed for the life of the step
    - scheduled_at, attempts: updated in place when a retry is scheduled
    """

    resource_id: str
    target_capacity: int
    scheduled_at: datetime
    phase: StepPhase
    attempts: int = 0

    def is_due(self, now: datetime) -> bool:
        """Check if the step may run at the given instant."""
        return self.scheduled_at <= now


@dataclass(frozen=True)
class CapacityCommand:
    """
    Opaque operation handed to the mutation collaborator.

    `statement` is the rendered command text. Only the command builder
    produces instances, after validating the resource identifier.
    """

    resource_id: str
    target_capacity: int
    priority: Priority
    statement: str


@dataclass(frozen=True)
class MutationOutcome:
    """Result of RemoteMutator.execute()."""

    status: MutationStatus
    value: Optional[int] = None
    error_code: Optional[Union[int, str]] = None
    error_message: Optional[str] = None

    @classmethod
    def applied(cls, value: int) -> "MutationOutcome":
        return cls(status=MutationStatus.APPLIED, value=value)

    @classmethod
    def timed_out(cls) -> "MutationOutcome":
        return cls(status=MutationStatus.TIMED_OUT)

    @classmethod
    def failed(
        cls,
        message: str,
        code: Optional[Union[int, str]] = None,
    ) -> "MutationOutcome":
        return cls(
            status=MutationStatus.FAILED,
            error_code=code,
            error_message=message,
        )


@dataclass
class ErrorRecord:
    """
    Audit record of one failed attempt.

    Records are append-only. `resolved` flips to True once the resource
    later finishes its scheduled restore with a verified value.
    """

    resource_id: str
    code: Union[int, str]
    message: str
    kind: ErrorKind
    phase: Optional[StepPhase] = None
    recorded_at: datetime = field(default_factory=utc_now)
    resolved: bool = False

    def render(self) -> str:
        return f"Error {self.code} for resource {self.resource_id}: {self.message}"


@dataclass
class RunResult:
    """Summary of one scheduler run."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    resources: list[Resource] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    force_restored: list[str] = field(default_factory=list)
    budget_exhausted: bool = False
    errors: list[ErrorRecord] = field(default_factory=list)

    @property
    def unresolved_errors(self) -> list[ErrorRecord]:
        return [record for record in self.errors if not record.resolved]

    @property
    def succeeded(self) -> bool:
        return not self.unresolved_errors

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()
