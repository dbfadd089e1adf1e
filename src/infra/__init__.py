"""
Infrastructure module - logging and environment settings.
"""

from .logging_config import setup_logging

from .settings import (
    load_run_config,
    load_sqlcmd_settings,
)

__all__ = [
    # logging
    "setup_logging",
    # settings
    "load_run_config",
    "load_sqlcmd_settings",
]
