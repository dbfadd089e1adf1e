"""
Cleanup-specific exceptions.

Individual mutation failures never surface as exceptions from the scheduler
loop; they become ErrorRecords. Exceptions are reserved for invariant
violations, invalid input, discovery failures and the final aggregated report.
"""

from typing import Optional, Union


# Classification code carried by the aggregated end-of-run error
CLEANUP_RUN_ERROR_CODE = 49218345


class CleanupError(Exception):
    """Base exception for all cleanup errors."""
    pass


class InvalidOperationError(CleanupError):
    """
    Raised when an operation violates scheduler invariants.

    Examples:
    - Queueing a LOWERING step for a resource whose RESTORING step is pending
    - Building a command with a negative capacity
    """
    pass


class InvalidResourceIdError(CleanupError):
    """Raised when a resource identifier cannot be safely quoted."""

    def __init__(self, resource_id: str, reason: str):
        self.resource_id = resource_id
        self.reason = reason
        super().__init__(f"Invalid resource identifier {resource_id!r}: {reason}")


class PlatformError(CleanupError):
    """
    Raised by a platform adapter when a remote call fails.

    `code` carries the platform's own error number when one is known
    (e.g. 1222 for a SQL Server lock request timeout).
    """

    def __init__(self, message: str, code: Optional[Union[int, str]] = None):
        self.code = code
        self.message = message
        super().__init__(message if code is None else f"[{code}] {message}")


class DiscoveryError(PlatformError):
    """Raised when the list of eligible resources cannot be obtained."""
    pass


class CleanupRunError(CleanupError):
    """
    Aggregated failure signal raised at the end of a run.

    Raised only after every affected resource has had its restore attempted.
    The message joins every unresolved error record.
    """

    def __init__(self, message: str, result=None):
        self.code = CLEANUP_RUN_ERROR_CODE
        self.message = message
        self.result = result
        super().__init__(f"Error {self.code}: {message}")
