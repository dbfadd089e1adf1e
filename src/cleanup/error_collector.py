"""
Error Collector - per-run sink for failed attempts.

One instance is created per scheduler run and shared with every component
that can fail. Records are never removed; resolving a resource only flags
its records so the audit trail survives in the RunResult.
"""

import logging
from typing import Optional, Union

from .entities import ErrorKind, ErrorRecord, StepPhase


logger = logging.getLogger(__name__)


SUMMARY_SEPARATOR = " | "
BUDGET_EXHAUSTED_NOTE = "Time budget exhausted before all resources finished. "


class ErrorCollector:
    """Append-only store of ErrorRecords with an aggregated report."""

    def __init__(self):
        self._records: list[ErrorRecord] = []

    def add(
        self,
        resource_id: str,
        code: Union[int, str],
        message: str,
        kind: ErrorKind,
        phase: Optional[StepPhase] = None,
    ) -> ErrorRecord:
        """Append a record and log it."""
        record = ErrorRecord(
            resource_id=resource_id,
            code=code,
            message=message,
            kind=kind,
            phase=phase,
        )
        self._records.append(record)
        logger.warning(
            f"[{kind.value}] {record.render()}"
            + (f" (phase={phase.value})" if phase is not None else "")
        )
        return record

    def resolve(self, resource_id: str) -> int:
        """
        Mark every record for a resource as resolved.

        Returns:
            Number of records newly marked resolved
        """
        count = 0
        for record in self._records:
            if record.resource_id == resource_id and not record.resolved:
                record.resolved = True
                count += 1
        if count:
            logger.info(
                f"Resolved {count} earlier error(s) for resource {resource_id}"
            )
        return count

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def unresolved(self) -> list[ErrorRecord]:
        return [record for record in self._records if not record.resolved]

    def has_errors(self) -> bool:
        return bool(self._records)

    def has_unresolved(self) -> bool:
        return any(not record.resolved for record in self._records)

    def affected_resources(self) -> list[str]:
        """Resource ids with at least one unresolved record, first-seen order."""
        seen: dict[str, None] = {}
        for record in self._records:
            if not record.resolved:
                seen.setdefault(record.resource_id, None)
        return list(seen)

    def summary(
        self,
        budget_exhausted: bool = False,
        include_resolved: bool = False,
    ) -> str:
        """
        Render records as a single message.

        Format per record: "Error <code> for resource <name>: <message>",
        joined by " | ". A leading note is added when the run stopped because
        its time budget ran out.
        """
        records = self._records if include_resolved else self.unresolved()
        body = SUMMARY_SEPARATOR.join(record.render() for record in records)
        if budget_exhausted:
            return BUDGET_EXHAUSTED_NOTE + body
        return body
