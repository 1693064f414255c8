import logging
import random
import time
from typing import Callable, Tuple, Type, TypeVar

from isbn_resolver.errors import BookNotFoundError, UpstreamError

logger = logging.getLogger("isbn_resolver.retry")

T = TypeVar("T")


class RetryPolicy:
    """Exponential backoff with optional jitter for upstream calls."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 5.0,
        backoff_multiplier: float = 2.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.max_attempts = max(1, int(max_attempts))
        self.base_delay = max(0.0, float(base_delay))
        self.max_delay = max(0.0, float(max_delay))
        self.backoff_multiplier = backoff_multiplier
        self.jitter = jitter
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        delay = min(
            self.max_delay, self.base_delay * self.backoff_multiplier ** (attempt - 1)
        )
        if self.jitter:
            delay += random.random() * delay * 0.25
        return delay

    def execute(
        self,
        operation: Callable[[], T],
        retry_on: Tuple[Type[BaseException], ...] = (UpstreamError,),
    ) -> T:
        """Run ``operation``, retrying the errors in ``retry_on``.

        A not-found answer is final and never retried. The last error is
        re-raised once attempts are exhausted.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation()
            except BookNotFoundError:
                raise
            except retry_on as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} failed: {e} "
                    f"(retrying in {delay:.2f}s)"
                )
                self._sleep(delay)
        raise AssertionError("unreachable")
