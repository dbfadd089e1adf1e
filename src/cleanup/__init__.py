"""
Staggered cleanup core.

Lowers each resource's capacity ceiling in turn so the platform's background
reclaimer trims data gradually, then restores the original ceiling. Every
lowered resource is restored, by its scheduled step or by a forced restore
when the time budget runs out.
"""

from .entities import (
    CapacityCommand,
    CleanupStep,
    ErrorKind,
    ErrorRecord,
    MutationOutcome,
    MutationStatus,
    Priority,
    Resource,
    RunResult,
    StepPhase,
    TaskState,
)
from .errors import (
    CLEANUP_RUN_ERROR_CODE,
    CleanupError,
    CleanupRunError,
    DiscoveryError,
    InvalidOperationError,
    InvalidResourceIdError,
    PlatformError,
)
from .clock import Clock, SystemClock
from .config import RunConfig
from .platform import CapacityPlatform, DetachedTask
from .step_queue import StepQueue
from .error_collector import ErrorCollector
from .mutator import RemoteMutator
from .timeline import build_initial_steps, order_resources, step_distance
from .scheduler import CleanupScheduler

__all__ = [
    # Entities
    "CapacityCommand",
    "CleanupStep",
    "ErrorKind",
    "ErrorRecord",
    "MutationOutcome",
    "MutationStatus",
    "Priority",
    "Resource",
    "RunResult",
    "StepPhase",
    "TaskState",
    # Errors
    "CLEANUP_RUN_ERROR_CODE",
    "CleanupError",
    "CleanupRunError",
    "DiscoveryError",
    "InvalidOperationError",
    "InvalidResourceIdError",
    "PlatformError",
    # Clock
    "Clock",
    "SystemClock",
    # Config
    "RunConfig",
    # Collaborators
    "CapacityPlatform",
    "DetachedTask",
    # Queue
    "StepQueue",
    # Errors sink
    "ErrorCollector",
    # Mutator
    "RemoteMutator",
    # Timeline
    "build_initial_steps",
    "order_resources",
    "step_distance",
    # Scheduler
    "CleanupScheduler",
]
