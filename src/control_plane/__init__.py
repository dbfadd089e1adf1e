"""
Control plane adapters for the cleanup scheduler.
"""

from .commands import (
    build_capacity_command,
    quote_identifier,
    validate_resource_id,
)
from .query_store import (
    QueryStorePlatform,
    SqlcmdSettings,
    SubprocessTask,
    parse_sqlcmd_error,
)

__all__ = [
    # Commands
    "build_capacity_command",
    "quote_identifier",
    "validate_resource_id",
    # Query Store
    "QueryStorePlatform",
    "SqlcmdSettings",
    "SubprocessTask",
    "parse_sqlcmd_error",
]
