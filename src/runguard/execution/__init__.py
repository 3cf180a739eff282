"""Execution helpers: retry strategies and the control loops.

The loops live in :mod:`runguard.execution.driver`.
"""

from runguard.execution.retry import ExponentialBackoff, NoRetry, RetryContext, RetryStrategy

__all__ = [
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
    "RetryStrategy",
]
