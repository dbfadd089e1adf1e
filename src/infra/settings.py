"""
Environment-based settings.

Environment Variables:
- CLEANUP_MINUTES_TO_RUN: Maximum runtime in minutes (default: 240)
- CLEANUP_PERCENTAGE_TO_KEEP: Percentage of the ceiling kept (default: 50)
- CLEANUP_MINUTES_PER_RESOURCE: Reclaimer time per resource (default: 35)
- CLEANUP_MUTATION_TIMEOUT_SECONDS: Deadline per mutation (default: 5)
- CLEANUP_FORCED_RESTORE_TIMEOUT_SECONDS: Deadline per forced restore (default: 15)
- CLEANUP_RETRY_BACKOFF_SECONDS: Delay before a failed step is retried (default: 30)
- CLEANUP_POLL_INTERVAL_SECONDS: Idle sleep of the control loop (default: 30)
- SQLCMD_SERVER, SQLCMD_DATABASE, SQLCMD_USER, SQLCMD_PASSWORD, SQLCMD_PATH,
  SQLCMD_LOGIN_TIMEOUT: sqlcmd connection settings
- LOG_LEVEL, LOG_DIR: Logging settings (default: INFO, logs)

`python -m src.cleanup` loads a .env file from the working directory before
these are read; variables already set in the environment win.
"""

import logging
import os
from typing import Any, Optional

from src.cleanup.config import RunConfig
from src.control_plane.query_store import SqlcmdSettings

logger = logging.getLogger(__name__)


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            logger.warning(f"[Settings] Invalid integer for {key}: {val}, using default: {default}")
    return default


def _get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return float(val)
        except ValueError:
            logger.warning(f"[Settings] Invalid number for {key}: {val}, using default: {default}")
    return default


def load_run_config(**overrides: Any) -> RunConfig:
    """
    Build a RunConfig from environment variables.

    Keyword overrides whose value is None are ignored, so parsed CLI
    arguments can be passed straight through.

    Raises:
        pydantic.ValidationError: If a value is out of range
    """
    defaults = RunConfig()
    values: dict[str, Any] = {
        "minutes_to_run": _get_env_int("CLEANUP_MINUTES_TO_RUN", defaults.minutes_to_run),
        "percentage_to_keep": _get_env_int("CLEANUP_PERCENTAGE_TO_KEEP", defaults.percentage_to_keep),
        "minutes_per_resource": _get_env_int("CLEANUP_MINUTES_PER_RESOURCE", defaults.minutes_per_resource),
        "mutation_timeout_seconds": _get_env_float(
            "CLEANUP_MUTATION_TIMEOUT_SECONDS", defaults.mutation_timeout_seconds
        ),
        "forced_restore_timeout_seconds": _get_env_float(
            "CLEANUP_FORCED_RESTORE_TIMEOUT_SECONDS", defaults.forced_restore_timeout_seconds
        ),
        "retry_backoff_seconds": _get_env_float(
            "CLEANUP_RETRY_BACKOFF_SECONDS", defaults.retry_backoff_seconds
        ),
        "poll_interval_seconds": _get_env_float(
            "CLEANUP_POLL_INTERVAL_SECONDS", defaults.poll_interval_seconds
        ),
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return RunConfig(**values)


def load_sqlcmd_settings(server: Optional[str] = None) -> SqlcmdSettings:
    """
    Build sqlcmd connection settings from environment variables.

    Raises:
        ValueError: If no server is given and SQLCMD_SERVER is unset
    """
    server = server or os.getenv("SQLCMD_SERVER")
    if not server:
        raise ValueError("No server given: pass --server or set SQLCMD_SERVER")

    return SqlcmdSettings(
        server=server,
        database=os.getenv("SQLCMD_DATABASE", "master"),
        user=os.getenv("SQLCMD_USER") or None,
        password=os.getenv("SQLCMD_PASSWORD") or None,
        sqlcmd_path=os.getenv("SQLCMD_PATH", "sqlcmd"),
        login_timeout_seconds=_get_env_int("SQLCMD_LOGIN_TIMEOUT", 30),
    )
