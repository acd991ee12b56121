"""
Retry manager with exponential backoff.

Shared by every outbound call of the pipeline (translation backend and
remote store). Errors flagged non-recoverable are raised at once; any
other failure is retried until the attempt budget is spent, after which
RetryExhaustedError carries the last error.
"""

import asyncio
import random
from typing import Optional, Callable, Any
from dataclasses import dataclass
from enum import Enum

from booktranslator.core.exceptions import TranslationError, RetryExhaustedError
from booktranslator.utils import unified_logger as log


class RetryStrategy(Enum):
    """How the delay grows between attempts."""
    EXPONENTIAL = "exponential"  # initial_delay * backoff_factor ** (attempt - 1)
    LINEAR = "linear"  # initial_delay * attempt
    IMMEDIATE = "immediate"  # No delay, retry immediately
    NONE = "none"  # Don't retry


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total attempts, first try included
        initial_delay: Delay before the first retry, in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Multiplier for exponential backoff
        jitter: Random extra delay as a fraction of the delay (0.0-1.0)
        strategy: Retry strategy to use
    """
    max_attempts: int = 4
    initial_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: float = 0.0
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL

    @classmethod
    def from_retries(cls, retries: int, base_delay: float, **kwargs) -> 'RetryConfig':
        """Build a config from a retry count (attempts = retries + 1)."""
        return cls(max_attempts=retries + 1, initial_delay=base_delay, **kwargs)


class RetryManager:
    """Runs async callables with retry and backoff."""

    def __init__(self, config: Optional[RetryConfig] = None, name: str = "operation"):
        """
        Args:
            config: Retry configuration (defaults to 3 retries, 1s doubling)
            name: Label used in log lines
        """
        self.config = config or RetryConfig()
        self.name = name

    def calculate_delay(self, attempt: int) -> float:
        """Delay to wait after the given failed attempt (1-based)."""
        config = self.config
        if config.strategy in (RetryStrategy.IMMEDIATE, RetryStrategy.NONE):
            return 0.0

        if config.strategy == RetryStrategy.LINEAR:
            delay = config.initial_delay * attempt
        else:  # EXPONENTIAL
            delay = config.initial_delay * (config.backoff_factor ** (attempt - 1))

        delay = min(delay, config.max_delay)

        if config.jitter > 0:
            delay += delay * config.jitter * random.random()

        return delay

    async def execute_with_retry(
        self,
        func: Callable[..., Any],
        *args,
        operation_id: Optional[str] = None,
        on_retry: Optional[Callable[[Exception, int], None]] = None,
        **kwargs
    ) -> Any:
        """Execute an async function with retry logic.

        Args:
            func: Async function to execute
            *args: Positional arguments for func
            operation_id: Identifier used in logs and in the exhaustion error
            on_retry: Callback called before each retry (error, attempt_number)
            **kwargs: Keyword arguments for func

        Returns:
            Result of func

        Raises:
            RetryExhaustedError: If all attempts failed
            TranslationError: Immediately, if the error is not recoverable
        """
        config = self.config
        op_id = operation_id or self.name
        max_attempts = 1 if config.strategy == RetryStrategy.NONE else max(1, config.max_attempts)
        attempt = 0

        while True:
            attempt += 1
            try:
                result = await func(*args, **kwargs)
                if attempt > 1:
                    log.debug(f"{op_id} succeeded after {attempt} attempts")
                return result

            except asyncio.CancelledError:
                raise

            except Exception as error:
                if isinstance(error, TranslationError) and not error.recoverable:
                    log.debug(f"Non-recoverable error in {op_id}: {error}")
                    raise

                if attempt >= max_attempts:
                    log.warning(f"Retry exhausted for {op_id} after {attempt} attempts: {error}")
                    raise RetryExhaustedError(
                        f"{op_id} failed after {attempt} attempts: {error}",
                        original_error=error,
                        attempts=attempt
                    ) from error

                delay = self.calculate_delay(attempt)
                log.warning(
                    f"Attempt {attempt}/{max_attempts} failed for {op_id}: "
                    f"{type(error).__name__}: {error}. Retrying in {delay:.2f}s..."
                )

                if on_retry:
                    try:
                        on_retry(error, attempt)
                    except Exception as callback_error:
                        log.warning(f"Error in on_retry callback: {callback_error}")

                if delay > 0:
                    await asyncio.sleep(delay)
