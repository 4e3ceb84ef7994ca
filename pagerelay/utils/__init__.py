"""
pagerelay utilities module.
"""

from pagerelay.utils.config import Settings, get_project_root, get_settings
from pagerelay.utils.errors import (
    EngineUnavailableError,
    ForbiddenTargetError,
    InvalidTargetError,
    NavigationError,
    RelayError,
    RelayErrorCode,
    UpstreamFetchError,
)
from pagerelay.utils.logging import (
    LogContext,
    bind_context,
    configure_logging,
    get_logger,
    unbind_context,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "get_project_root",
    # Errors
    "RelayError",
    "RelayErrorCode",
    "InvalidTargetError",
    "ForbiddenTargetError",
    "EngineUnavailableError",
    "NavigationError",
    "UpstreamFetchError",
    # Logging
    "get_logger",
    "configure_logging",
    "bind_context",
    "unbind_context",
    "LogContext",
]
