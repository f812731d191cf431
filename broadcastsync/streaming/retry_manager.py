"""
Retry logic with exponential backoff for delivery I/O.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, TypeVar

from broadcastsync.exceptions import FaultKind
from broadcastsync.streaming.error_handler import ErrorClassifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry attempts."""

    max_retries: int = 2
    backoff_base: float = 0.5
    backoff_max: float = 10.0
    use_exponential_backoff: bool = True


@dataclass
class RetryAttempt:
    """Represents a single failed attempt."""

    attempt_number: int
    timestamp: datetime
    error: Exception
    retryable: bool


class RetryManager:
    """Retries async operations whose failures classify as network faults."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        classifier: Optional[ErrorClassifier] = None,
    ):
        self.config = config or RetryConfig()
        self.classifier = classifier or ErrorClassifier()
        self.attempt_history: list[RetryAttempt] = []

    def is_retryable(self, error: Exception, context: Optional[dict[str, Any]] = None) -> bool:
        fault = self.classifier.fault_from_exception(error, context)
        return fault.kind == FaultKind.NETWORK

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Execute an operation, retrying network failures with backoff.

        Args:
            operation: Async function to execute.
            operation_name: Name of the operation for logging.
            context: Additional context for error classification.

        Returns:
            Result of the operation.

        Raises:
            Exception: The last error once retries are exhausted, or the
                first error that is not worth retrying.
        """
        for attempt in range(self.config.max_retries + 1):
            try:
                result = await operation()
                if attempt > 0:
                    logger.info(f"{operation_name} succeeded after {attempt} retry attempt(s)")
                return result

            except Exception as e:
                retryable = self.is_retryable(e, context)
                self.attempt_history.append(
                    RetryAttempt(
                        attempt_number=attempt,
                        timestamp=datetime.utcnow(),
                        error=e,
                        retryable=retryable,
                    )
                )

                if not retryable or attempt >= self.config.max_retries:
                    logger.warning(
                        f"{operation_name} failed after {attempt + 1} attempt(s): {e}"
                    )
                    raise

                delay = self._calculate_backoff(attempt)
                logger.info(
                    f"{operation_name} failed "
                    f"(attempt {attempt + 1}/{self.config.max_retries + 1}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await asyncio.sleep(delay)

        raise RuntimeError(f"{operation_name} failed after retries")

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff delay for retry attempt."""
        if not self.config.use_exponential_backoff:
            return self.config.backoff_base
        delay = self.config.backoff_base * (2**attempt)
        return min(delay, self.config.backoff_max)
