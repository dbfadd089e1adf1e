"""
Command builder for capacity mutations.

Identifiers are validated and bracket-quoted before they reach any statement
text, so a resource name can never change the shape of the command.
"""

from src.cleanup.entities import CapacityCommand, Priority
from src.cleanup.errors import InvalidOperationError, InvalidResourceIdError


# sysname limit
MAX_IDENTIFIER_LENGTH = 128

DEADLOCK_PRIORITY = {
    Priority.LOW: "LOW",
    Priority.HIGH: "HIGH",
}


def validate_resource_id(resource_id: str) -> str:
    """
    Check that a resource identifier can be safely quoted.

    Raises:
        InvalidResourceIdError: If empty, too long, or holding control characters
    """
    if not isinstance(resource_id, str) or not resource_id:
        raise InvalidResourceIdError(str(resource_id), "identifier is empty")
    if len(resource_id) > MAX_IDENTIFIER_LENGTH:
        raise InvalidResourceIdError(
            resource_id, f"longer than {MAX_IDENTIFIER_LENGTH} characters"
        )
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in resource_id):
        raise InvalidResourceIdError(resource_id, "contains control characters")
    return resource_id


def quote_identifier(resource_id: str) -> str:
    """Bracket-quote an identifier, doubling any closing bracket."""
    validate_resource_id(resource_id)
    return "[" + resource_id.replace("]", "]]") + "]"


def build_capacity_command(
    resource_id: str,
    target_capacity: int,
    priority: Priority = Priority.LOW,
) -> CapacityCommand:
    """
    Build the statement that sets a Query Store ceiling.

    Example (LOW priority, target 1000):
        SET DEADLOCK_PRIORITY LOW;
        ALTER DATABASE [Sales] SET QUERY_STORE (MAX_STORAGE_SIZE_MB = 1000);

    Raises:
        InvalidResourceIdError: If the identifier is unsafe
        InvalidOperationError: If the target is not a non-negative integer
    """
    if isinstance(target_capacity, bool) or not isinstance(target_capacity, int):
        raise InvalidOperationError(
            f"Target capacity must be an integer, got {target_capacity!r}"
        )
    if target_capacity < 0:
        raise InvalidOperationError(
            f"Target capacity must not be negative, got {target_capacity}"
        )

    statement = (
        f"SET DEADLOCK_PRIORITY {DEADLOCK_PRIORITY[priority]};\n"
        f"ALTER DATABASE {quote_identifier(resource_id)} SET QUERY_STORE "
        f"(MAX_STORAGE_SIZE_MB = {target_capacity});"
    )

    return CapacityCommand(
        resource_id=resource_id,
        target_capacity=target_capacity,
        priority=priority,
        statement=statement,
    )
