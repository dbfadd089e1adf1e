"""
Collaborator interfaces for the cleanup scheduler.

The scheduler never talks to a control plane directly. Adapters (see
src/control_plane) implement CapacityPlatform and hand back DetachedTask
objects for in-flight mutations.
"""

from abc import ABC, abstractmethod
from typing import Optional, Protocol, Union

from .entities import CapacityCommand, Priority, Resource, TaskState


class DetachedTask(ABC):
    """
    A mutation running outside the caller's execution context.

    Completion must be polled and cancellation is advisory: after cancel()
    the task is UNKNOWN and the mutation may still take effect.
    """

    def __init__(self, command: CapacityCommand):
        self.command = command
        self.state = TaskState.RUNNING
        self.error_code: Optional[Union[int, str]] = None
        self.error_message: Optional[str] = None

    @property
    def failed(self) -> bool:
        """True when the task completed and reported an error."""
        return self.state == TaskState.COMPLETED and self.error_message is not None

    @abstractmethod
    def poll(self) -> TaskState:
        """
        Refresh and return the task state without blocking.

        On completion, implementations set error_code / error_message when
        the remote side reported a failure.
        """
        ...

    @abstractmethod
    def cancel(self, grace_seconds: float) -> TaskState:
        """
        Request cancellation, waiting at most `grace_seconds`.

        Returns:
            The resulting state (UNKNOWN unless the task had already finished
            before the request was issued)
        """
        ...


class CapacityPlatform(Protocol):
    """Protocol for the control plane owning the capacity ceilings."""

    def list_eligible_resources(self) -> list[Resource]:
        """
        Return resources eligible for staggered cleanup.

        Raises:
            DiscoveryError: If the inventory cannot be read
        """
        ...

    def read_capacity(self, resource_id: str) -> int:
        """
        Read the authoritative current ceiling of a resource.

        Raises:
            PlatformError: If the read fails
        """
        ...

    def build_command(
        self,
        resource_id: str,
        target_capacity: int,
        priority: Priority,
    ) -> CapacityCommand:
        """Build the opaque command that sets a resource's ceiling."""
        ...

    def submit(self, command: CapacityCommand) -> DetachedTask:
        """
        Start the command as a detached task and return immediately.

        Raises:
            PlatformError: If the task could not be started
        """
        ...
