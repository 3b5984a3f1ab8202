"""Observability for sync contexts.

Provides JSON and console logging with per-context correlation.
"""

from forgetful.observability.logging import (
    LogContext,
    configure_logging,
    context_name_var,
    user_id_var,
)

__all__ = [
    "configure_logging",
    "LogContext",
    "context_name_var",
    "user_id_var",
]
