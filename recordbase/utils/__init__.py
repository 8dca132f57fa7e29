"""
Common utilities package for the recordbase service.

Logging, retry handling for transient database errors, and the text helpers
used to derive schema names.
"""

from recordbase.utils.logger import PerformanceLogger, log_performance, setup_logger
from recordbase.utils.retry_utils import is_retryable_db_error
from recordbase.utils.text_processing import to_camel_case

__all__ = [
    # Logging utilities
    "setup_logger",
    "PerformanceLogger",
    "log_performance",
    # Retry utilities
    "is_retryable_db_error",
    # Text utilities
    "to_camel_case",
]
