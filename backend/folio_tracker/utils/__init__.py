# backend/folio_tracker/utils/__init__.py
"""
Utility modules for Folio Tracker.

Cross-cutting utilities used throughout the package:
- logging: Logging configuration with correlation ID support
- context: Correlation ID per holdings computation

Usage:
    from folio_tracker.utils import setup_logging, get_logger
    from folio_tracker.utils import correlation_scope, get_correlation_id
"""

from folio_tracker.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
    correlation_scope,
)
from folio_tracker.utils.logging import setup_logging, get_logger

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "correlation_scope",
]
