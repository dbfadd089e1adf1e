"""
Run report schemas.

Serializable view of a RunResult for `--json` output.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, Field

from .entities import CleanupStep, ErrorRecord, RunResult


class ErrorRecordResponse(BaseModel):
    """One failed attempt."""

    resource_id: str
    code: Union[int, str]
    message: str
    kind: str
    phase: Optional[str] = None
    recorded_at: str = Field(..., description="UTC timestamp (ISO format)")
    resolved: bool = False


class PlannedStepResponse(BaseModel):
    """One entry of the initial lowering timeline."""

    resource_id: str
    target_capacity: int
    scheduled_at: str = Field(..., description="UTC timestamp (ISO format)")
    offset_seconds: float = Field(..., description="Seconds after the run start")


class RunReport(BaseModel):
    """Outcome of one cleanup run."""

    succeeded: bool
    started_at: str
    finished_at: Optional[str] = None
    duration_seconds: Optional[float] = None
    resource_count: int = 0
    completed: List[str] = Field(default_factory=list)
    force_restored: List[str] = Field(default_factory=list)
    budget_exhausted: bool = False
    errors: List[ErrorRecordResponse] = Field(default_factory=list)


def error_to_response(record: ErrorRecord) -> ErrorRecordResponse:
    return ErrorRecordResponse(
        resource_id=record.resource_id,
        code=record.code,
        message=record.message,
        kind=record.kind.value,
        phase=record.phase.value if record.phase is not None else None,
        recorded_at=record.recorded_at.isoformat(),
        resolved=record.resolved,
    )


def result_to_report(result: RunResult) -> RunReport:
    return RunReport(
        succeeded=result.succeeded,
        started_at=result.started_at.isoformat(),
        finished_at=result.finished_at.isoformat() if result.finished_at else None,
        duration_seconds=result.duration_seconds,
        resource_count=len(result.resources),
        completed=list(result.completed),
        force_restored=list(result.force_restored),
        budget_exhausted=result.budget_exhausted,
        errors=[error_to_response(record) for record in result.errors],
    )


def plan_to_response(steps: List[CleanupStep]) -> List[PlannedStepResponse]:
    if not steps:
        return []
    start = steps[0].scheduled_at
    return [
        PlannedStepResponse(
            resource_id=step.resource_id,
            target_capacity=step.target_capacity,
            scheduled_at=step.scheduled_at.isoformat(),
            offset_seconds=(step.scheduled_at - start).total_seconds(),
        )
        for step in steps
    ]
