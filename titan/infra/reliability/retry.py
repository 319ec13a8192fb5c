# =============================================================================
# File: titan/infra/reliability/retry.py
# Description: Retry mechanism with exponential backoff and jitter
# =============================================================================

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from typing import TypeVar, Callable, Optional, Awaitable, Tuple, Type

from titan.config.reliability_config import RetryConfig

logger = logging.getLogger("titan.retry")

T = TypeVar('T')


# Jitter strategies
class JitterStrategy(ABC):
    """Base class for jitter strategies."""

    @abstractmethod
    def apply(self, base_delay: float) -> float:
        """Apply jitter to base delay."""
        pass


class FullJitter(JitterStrategy):
    """Full jitter: delay = random(0, base_delay)."""

    def apply(self, base_delay: float) -> float:
        return random.uniform(0, base_delay)


class EqualJitter(JitterStrategy):
    """Equal jitter: delay = base_delay/2 + random(0, base_delay/2)."""

    def apply(self, base_delay: float) -> float:
        half = base_delay / 2
        return half + random.uniform(0, half)


class DecorrelatedJitter(JitterStrategy):
    """Decorrelated jitter with memory of previous delay."""

    def __init__(self):
        self.previous_delay: Optional[float] = None

    def apply(self, base_delay: float) -> float:
        if self.previous_delay is None:
            self.previous_delay = base_delay

        max_delay = self.previous_delay * 3
        self.previous_delay = random.uniform(base_delay, max_delay)
        return self.previous_delay


def get_jitter_strategy(jitter_type: str) -> JitterStrategy:
    """Get jitter strategy by name."""
    strategies = {
        'full': FullJitter,
        'equal': EqualJitter,
        'decorrelated': DecorrelatedJitter,
    }
    return strategies.get(jitter_type, FullJitter)()


def compute_delay_ms(retry_config: RetryConfig, attempt: int) -> float:
    """Base backoff delay before the attempt after `attempt` (1-based), capped."""
    factor = retry_config.exponential_base or retry_config.backoff_factor
    return min(
        retry_config.initial_delay_ms * (factor ** (attempt - 1)),
        retry_config.max_delay_ms
    )


async def retry_async(
        func: Callable[..., Awaitable[T]],
        *args,
        retry_config: Optional[RetryConfig] = None,
        context: str = "operation",
        **kwargs
) -> T:
    """Execute async function with retry logic."""
    if retry_config is None:
        retry_config = RetryConfig()

    jitter_strategy = get_jitter_strategy(retry_config.jitter_type) if retry_config.jitter else None

    for attempt in range(1, retry_config.max_attempts + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if retry_config.retry_condition and not retry_config.retry_condition(e):
                logger.warning(
                    f"Retry condition not met for {context} after attempt {attempt}. Error: {e}"
                )
                raise

            if attempt >= retry_config.max_attempts:
                logger.warning(
                    f"Retry exhausted for {context} after {attempt} attempts. Last error: {e}"
                )
                raise

            base_delay_ms = compute_delay_ms(retry_config, attempt)
            actual_delay_ms = jitter_strategy.apply(base_delay_ms) if jitter_strategy else base_delay_ms
            delay_seconds = actual_delay_ms / 1000

            logger.info(
                f"Retry attempt {attempt}/{retry_config.max_attempts} for {context} "
                f"after error: {e}. Waiting {delay_seconds:.2f}s before retry."
            )

            await asyncio.sleep(delay_seconds)

    raise RuntimeError(f"Retry loop for {context} ran with max_attempts={retry_config.max_attempts}")


def retry_on(
        *exception_types: Type[BaseException],
        exclude: Tuple[Type[BaseException], ...] = (),
) -> Callable[[Exception], bool]:
    """
    Build a RetryConfig.retry_condition.

    Example:
        retry_on(TransportError, exclude=(InsufficientFundsError,))
    """

    def condition(error: Exception) -> bool:
        return isinstance(error, exception_types) and not isinstance(error, exclude)

    return condition
