"""
Run configuration for the cleanup scheduler.

Defaults:
- 240 minutes of runtime, 50% of the ceiling kept while cleanup runs
- 35 minutes per resource: Query Store flushes data every 15 minutes by
  default and size-based cleanup runs along with the flush
"""

from datetime import timedelta

from pydantic import BaseModel, Field


DEFAULT_MINUTES_TO_RUN = 240
DEFAULT_PERCENTAGE_TO_KEEP = 50
DEFAULT_MINUTES_PER_RESOURCE = 35


class RunConfig(BaseModel):
    """Validated parameters for one scheduler run."""

    minutes_to_run: int = Field(
        default=DEFAULT_MINUTES_TO_RUN,
        gt=0,
        description="Maximum runtime; lowering steps are staggered across it",
    )
    percentage_to_keep: int = Field(
        default=DEFAULT_PERCENTAGE_TO_KEEP,
        ge=1,
        le=100,
        description="Percentage of the original ceiling kept while cleanup runs",
    )
    minutes_per_resource: int = Field(
        default=DEFAULT_MINUTES_PER_RESOURCE,
        ge=0,
        description="Time the background reclaimer needs per resource",
    )
    mutation_timeout_seconds: float = Field(default=5.0, gt=0)
    forced_restore_timeout_seconds: float = Field(default=15.0, gt=0)
    retry_backoff_seconds: float = Field(default=30.0, ge=0)
    poll_interval_seconds: float = Field(default=30.0, gt=0)
    task_poll_interval_seconds: float = Field(default=1.0, gt=0)
    cancel_grace_seconds: float = Field(default=5.0, ge=0)

    @property
    def total_run_budget(self) -> timedelta:
        return timedelta(minutes=self.minutes_to_run)

    @property
    def per_resource_budget(self) -> timedelta:
        return timedelta(minutes=self.minutes_per_resource)

    @property
    def retry_backoff(self) -> timedelta:
        return timedelta(seconds=self.retry_backoff_seconds)
