"""Utility modules for BroadcastSync"""

from .logging_setup import get_logger, log_exception, setup_logging

__all__ = [
    "get_logger",
    "log_exception",
    "setup_logging",
]
