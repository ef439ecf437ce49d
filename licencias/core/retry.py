"""Retry policy shared by the evidence adapter and the radicado generator."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff.

    Attributes:
        max_attempts: Total number of attempts, including the first one
        base_delay: Delay in seconds before the first retry
        multiplier: Growth factor applied per attempt
        max_delay: Upper bound for a single delay
        retry_on: Exception types considered retryable
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 8.0
    retry_on: Tuple[Type[BaseException], ...] = field(default_factory=tuple)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retry_on)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given zero-based failed attempt."""
        return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "operation") -> T:
        """Run ``operation`` until it succeeds or attempts are exhausted.

        Non-retryable errors propagate immediately. When every attempt fails
        the last retryable error is re-raised unchanged.
        """
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except Exception as e:
                if not self.is_retryable(e) or attempt == self.max_attempts - 1:
                    raise

                wait_time = self.delay_for(attempt)
                LOGGER.warning(
                    f"{description} failed, retrying (attempt {attempt + 1}/{self.max_attempts})",
                    extra={"error": str(e), "wait_seconds": wait_time},
                )
                if wait_time > 0:
                    await self.sleep(wait_time)

        # Unreachable: the loop either returns or raises
        raise RuntimeError(f"{description} exhausted retries")
