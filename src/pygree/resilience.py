"""Caller-level resilience for device round trips (circuit breaker, exponential backoff).

The command engine attempts every round trip exactly once. These helpers layer a
retry policy on top of it for callers that want one; ``GreeClient`` uses them when
configured with a backoff or a circuit breaker.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from pygree.exceptions import GreeConnectionError, GreeTimeoutError


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "ExponentialBackoff",
    "ExponentialBackoffConfig",
    "retry_with_backoff",
]

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

# Failures a device round trip can recover from: lost datagrams and socket errors
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (GreeTimeoutError, GreeConnectionError)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failures exceeded threshold, blocking round trips
    HALF_OPEN = "half_open"  # Probing whether the device answers again


@dataclass
class CircuitBreakerConfig:
    """Configuration for the circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures before the circuit opens.
        recovery_timeout: Seconds the circuit stays open before probing again.
        success_threshold: Consecutive successes in half-open needed to close.
        monitored_exceptions: Exception types counted as failures.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 2
    monitored_exceptions: tuple[type[Exception], ...] = TRANSIENT_ERRORS


@dataclass
class ExponentialBackoffConfig:
    """Configuration for exponential backoff.

    Attributes:
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any delay, in seconds.
        max_retries: Total number of attempts.
        exponential_base: Growth factor between attempts.
        jitter: Randomize delays between zero and the computed value.
    """

    base_delay: float = 0.5
    max_delay: float = 10.0
    max_retries: int = 3
    exponential_base: float = 2.0
    jitter: bool = True


class CircuitBreaker:
    """Stops talking to an unresponsive device for a while.

    After ``failure_threshold`` consecutive monitored failures the circuit opens
    and round trips are refused until ``recovery_timeout`` has passed; then a
    limited number of probes decide whether it closes again.

    Example:
        ```python
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=30.0)

        if breaker.can_execute():
            try:
                status = await api.read_status(session, codes)
                breaker.record_success()
            except GreeTimeoutError as err:
                breaker.record_failure(err)
                raise
        ```
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 2,
        monitored_exceptions: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
    ) -> None:
        """Initialize the circuit breaker.

        Args:
            failure_threshold: Consecutive failures before the circuit opens.
            recovery_timeout: Seconds before probing again.
            success_threshold: Consecutive successes needed to close from half-open.
            monitored_exceptions: Exception types counted as failures.
        """
        self.config = CircuitBreakerConfig(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            success_threshold=success_threshold,
            monitored_exceptions=monitored_exceptions,
        )
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: float | None = None

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        self._update_state()
        return self._state

    @property
    def failure_count(self) -> int:
        """Consecutive monitored failures."""
        return self._failure_count

    @property
    def success_count(self) -> int:
        """Consecutive successes while half-open."""
        return self._success_count

    def _update_state(self) -> None:
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.config.recovery_timeout:
                _LOGGER.info("Circuit breaker entering HALF_OPEN state for recovery test")
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = time.monotonic()

    def can_execute(self) -> bool:
        """Check if a round trip may be attempted now."""
        self._update_state()
        return self._state is not CircuitState.OPEN

    def record_success(self) -> None:
        """Record a successful round trip."""
        if self._state is CircuitState.HALF_OPEN:
            self._success_count += 1
            _LOGGER.debug(
                "Circuit breaker recorded success in HALF_OPEN (%d/%d)",
                self._success_count,
                self.config.success_threshold,
            )
            if self._success_count >= self.config.success_threshold:
                _LOGGER.info("Circuit breaker closing after successful recovery")
                self.reset()
        elif self._failure_count:
            self._failure_count = 0

    def record_failure(self, exception: Exception) -> None:
        """Record a failed round trip; unmonitored exception types are ignored."""
        if not isinstance(exception, self.config.monitored_exceptions):
            return

        self._failure_count += 1
        if self._state is CircuitState.HALF_OPEN:
            _LOGGER.warning("Circuit breaker opening after failure in HALF_OPEN state")
            self._success_count = 0
            self._open()
        elif self._state is CircuitState.CLOSED:
            _LOGGER.debug("Circuit breaker failure count: %d/%d", self._failure_count, self.config.failure_threshold)
            if self._failure_count >= self.config.failure_threshold:
                _LOGGER.warning("Circuit breaker opening after %d consecutive failures", self._failure_count)
                self._open()

    def reset(self) -> None:
        """Close the circuit and clear all counters."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None


class ExponentialBackoff:
    """Delay calculator for retries.

    Example:
        ```python
        backoff = ExponentialBackoff(base_delay=0.5, max_retries=3)
        backoff.calculate_delay(2)  # up to 2.0 seconds
        ```
    """

    def __init__(
        self,
        base_delay: float = 0.5,
        max_delay: float = 10.0,
        max_retries: int = 3,
        exponential_base: float = 2.0,
        *,
        jitter: bool = True,
    ) -> None:
        """Initialize the backoff calculator.

        Args:
            base_delay: Delay before the first retry, in seconds.
            max_delay: Upper bound for any delay, in seconds.
            max_retries: Total number of attempts.
            exponential_base: Growth factor between attempts.
            jitter: Randomize delays between zero and the computed value.
        """
        self.config = ExponentialBackoffConfig(
            base_delay=base_delay,
            max_delay=max_delay,
            max_retries=max_retries,
            exponential_base=exponential_base,
            jitter=jitter,
        )

    @property
    def max_retries(self) -> int:
        """Total number of attempts."""
        return self.config.max_retries

    def calculate_delay(self, attempt: int) -> float:
        """Return the delay after the given (0-indexed) failed attempt."""
        delay = min(self.config.base_delay * (self.config.exponential_base**attempt), self.config.max_delay)
        if self.config.jitter:
            delay = random.uniform(0, delay)  # noqa: S311
        return delay


async def retry_with_backoff(
    func: Callable[[], Awaitable[_T]],
    *,
    circuit_breaker: CircuitBreaker | None = None,
    backoff: ExponentialBackoff | None = None,
    retryable_exceptions: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
) -> _T:
    """Run a round trip, retrying transient failures with exponential backoff.

    Exceptions that are not retryable (validation errors, protocol errors, ...)
    propagate immediately.

    Args:
        func: Async callable performing one round trip.
        circuit_breaker: Optional circuit breaker consulted before every attempt.
        backoff: Retry schedule; defaults to ExponentialBackoff().
        retryable_exceptions: Exception types that trigger a retry.

    Returns:
        Result of the first successful attempt.

    Raises:
        GreeConnectionError: If the circuit breaker is open.
        Exception: The last failure once all attempts are exhausted.

    Example:
        ```python
        status = await retry_with_backoff(
            lambda: api.read_status(session, ["Pow"]),
            backoff=ExponentialBackoff(max_retries=3),
        )
        ```
    """
    if backoff is None:
        backoff = ExponentialBackoff()

    attempts = max(backoff.max_retries, 1)
    for attempt in range(attempts):
        if circuit_breaker and not circuit_breaker.can_execute():
            msg = f"Circuit breaker is {circuit_breaker.state.value}, refusing round trip"
            raise GreeConnectionError(msg)

        try:
            result = await func()
        except retryable_exceptions as exc:
            if circuit_breaker:
                circuit_breaker.record_failure(exc)
            if attempt >= attempts - 1:
                _LOGGER.warning("All %d attempts failed: %s", attempts, exc)
                raise
            delay = backoff.calculate_delay(attempt)
            _LOGGER.warning(
                "Attempt %d/%d failed: %s. Retrying in %.1f seconds",
                attempt + 1,
                attempts,
                exc,
                delay,
            )
            await asyncio.sleep(delay)
        else:
            if circuit_breaker:
                circuit_breaker.record_success()
            return result

    msg = "Unexpected state: no result and no exception"
    raise RuntimeError(msg)
