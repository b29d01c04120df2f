"""
Reliability module: retry with exponential backoff.
"""

from awsrest.reliability.retry import (
    Retrier,
    RetryPolicy,
    RetryStats,
    calculate_backoff,
    retry_with_backoff,
)

__all__ = [
    "Retrier",
    "RetryPolicy",
    "RetryStats",
    "calculate_backoff",
    "retry_with_backoff",
]
