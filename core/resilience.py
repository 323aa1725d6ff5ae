"""
Resilience patterns for the LinkedIn connection automation.

This module provides mechanisms for building resilient operations using:
- Retry with exponential backoff (using tenacity), reported as a RetryOutcome
- Circuit breaker pattern (using pybreaker) with listeners for logging and metrics
- Scoped cleanup that runs exactly once, in reverse registration order
- Graceful degradation: fallbacks and partial-success batches
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

import pybreaker
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from core.errors import CircuitOpenError, error_message, is_retryable_error
from core.logger import bind_context, get_structured_logger

# Type variables for generic function signatures
T = TypeVar('T')

structured_logger = get_structured_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Immutable retry settings for one call of ``with_retry``.

    Delays are in seconds. The n-th wait is
    ``min(base_delay * backoff_multiplier ** (n - 1), max_delay)``.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    retry_predicate: Callable[[BaseException], bool] = is_retryable_error
    name: str = "operation"


@dataclass
class RetryOutcome(Generic[T]):
    """Result of ``with_retry``: either a value or the last error, plus attempts used."""

    succeeded: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0


def _log_retry(policy: RetryPolicy) -> Callable[[RetryCallState], None]:
    op_logger = bind_context(structured_logger, operation=policy.name)

    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        op_logger.warning(
            "operation_retry",
            attempt=retry_state.attempt_number,
            max_attempts=policy.max_attempts,
            delay_seconds=round(retry_state.next_action.sleep, 3) if retry_state.next_action else 0,
            error=error_message(exc),
        )

    return before_sleep


async def with_retry(operation: Callable[[], Awaitable[T]], policy: Optional[RetryPolicy] = None) -> RetryOutcome[T]:
    """
    Run ``operation`` until it succeeds, the policy refuses to retry, or attempts run out.

    The operation's error is never raised; it is reported in the outcome.
    Cancellation is not an error and always propagates.

    Args:
        operation: Zero-argument coroutine function
        policy: Retry settings; defaults to ``RetryPolicy()``

    Returns:
        RetryOutcome with the value on success or the last error on failure
    """
    policy = policy or RetryPolicy()
    attempts = 0
    value = None

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, policy.max_attempts)),
        wait=wait_exponential(
            multiplier=policy.base_delay,
            exp_base=policy.backoff_multiplier,
            max=policy.max_delay,
        ),
        retry=retry_if_exception(policy.retry_predicate),
        before_sleep=_log_retry(policy),
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                attempts = attempt.retry_state.attempt_number
                value = await operation()
    except Exception as e:
        structured_logger.debug(
            "operation_failed",
            operation=policy.name,
            attempts=attempts,
            retryable=policy.retry_predicate(e),
            error=error_message(e),
        )
        return RetryOutcome(succeeded=False, error=e, attempts=attempts)

    return RetryOutcome(succeeded=True, value=value, attempts=attempts)


class CircuitState(str, Enum):
    CLOSED = pybreaker.STATE_CLOSED
    OPEN = pybreaker.STATE_OPEN
    HALF_OPEN = pybreaker.STATE_HALF_OPEN


class CircuitBreakerListener(pybreaker.CircuitBreakerListener):
    """
    Circuit breaker listener that collects metrics and logs state changes.
    """

    def __init__(self, logger: structlog.BoundLogger, metrics_collector=None):
        """
        Initialize the circuit breaker listener.

        Args:
            logger: Structured logger instance
            metrics_collector: Optional metrics collector instance
        """
        self.logger = logger
        self.metrics_collector = metrics_collector

    def state_change(self, breaker, old_state, new_state):
        """
        Log state changes and record metrics when the circuit breaker state changes.

        Args:
            breaker: pybreaker circuit breaker instance
            old_state: Previous state of the circuit breaker
            new_state: New state of the circuit breaker
        """
        old_name = old_state.name if old_state is not None else None
        self.logger.warning(
            "circuit_breaker_state_change",
            breaker=breaker.name,
            old_state=old_name,
            new_state=new_state.name,
        )
        if self.metrics_collector is not None:
            self.metrics_collector.record_circuit_breaker_state_change(breaker.name, old_name, new_state.name)

    def failure(self, breaker, exc):
        self.logger.error(
            "circuit_breaker_failure",
            breaker=breaker.name,
            error=error_message(exc),
            failure_count=breaker.fail_counter,
            threshold=breaker.fail_max,
        )

    def success(self, breaker):
        self.logger.debug("circuit_breaker_success", breaker=breaker.name)


class CircuitBreaker:
    """
    Async front end for a ``pybreaker.CircuitBreaker``.

    closed -> open once ``failure_threshold`` consecutive calls have failed.
    open -> half-open on the first call after ``recovery_timeout`` seconds.
    half-open -> closed on success, back to open on failure.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "default",
        listeners: Optional[List[pybreaker.CircuitBreakerListener]] = None,
    ):
        """
        Initialize the circuit breaker.

        Args:
            failure_threshold: Consecutive failures that open the circuit
            recovery_timeout: Seconds to stay open before allowing a trial call
            name: Name used in logs, metrics and errors
            listeners: Observers of failures, successes and state changes
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self._breaker = pybreaker.CircuitBreaker(
            fail_max=failure_threshold,
            reset_timeout=recovery_timeout,
            name=name,
            listeners=list(listeners or []),
        )

    @property
    def state(self) -> CircuitState:
        return CircuitState(self._breaker.current_state)

    @property
    def failure_count(self) -> int:
        return self._breaker.fail_counter

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` through the breaker.

        Args:
            operation: Zero-argument coroutine function

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: If the circuit is open and the recovery window has not elapsed
            Exception: Whatever the operation raised, after it was counted
        """
        operation_error: Optional[BaseException] = None
        try:
            with self._breaker.calling():
                try:
                    return await operation()
                except Exception as e:
                    operation_error = e
                    raise
        except pybreaker.CircuitBreakerError as e:
            # The failure that trips the breaker is reported as itself.
            if operation_error is not None:
                raise operation_error
            raise CircuitOpenError(
                f"Circuit breaker '{self.name}' is open",
                context={
                    "failure_count": self.failure_count,
                    "recovery_timeout": self.recovery_timeout,
                },
            ) from e

    def get_state(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
        }

    def reset(self) -> None:
        self._breaker.close()



@dataclass
class _Cleanup:
    action: Callable[[], Any]
    name: str


class ResourceScope:
    """
    Registers cleanup actions and runs them once, last registered first.

    A failing cleanup is logged and collected; the remaining ones still run.
    Concurrent ``cleanup()`` calls share a single pass.
    """

    def __init__(self, name: str = "run", cleanup_timeout: Optional[float] = None):
        """
        Args:
            name: Scope name for logging
            cleanup_timeout: Optional per-action time box in seconds
        """
        self.name = name
        self.cleanup_timeout = cleanup_timeout
        self._cleanups: List[_Cleanup] = []
        self._is_cleaning_up = False
        self._done: Optional[asyncio.Event] = None
        self.logger = bind_context(structured_logger, scope=name)

    @property
    def is_cleaning_up(self) -> bool:
        return self._is_cleaning_up

    def __len__(self) -> int:
        return len(self._cleanups)

    def __contains__(self, name: str) -> bool:
        return any(entry.name == name for entry in self._cleanups)

    def register(self, cleanup: Callable[[], Any], name: Optional[str] = None) -> None:
        """Register a sync or async zero-argument cleanup action."""
        self._cleanups.append(_Cleanup(cleanup, name or getattr(cleanup, "__qualname__", repr(cleanup))))

    async def _invoke(self, entry: _Cleanup) -> None:
        result = entry.action()
        if inspect.isawaitable(result):
            if self.cleanup_timeout is not None:
                await asyncio.wait_for(result, timeout=self.cleanup_timeout)
            else:
                await result

    async def cleanup(self) -> List[BaseException]:
        """
        Run all registered cleanups in reverse order.

        Returns:
            Errors raised by individual cleanups during this pass; empty for a
            caller that joined a pass already in progress
        """
        if self._is_cleaning_up:
            await self._done.wait()
            return []

        self._is_cleaning_up = True
        self._done = asyncio.Event()
        entries = list(reversed(self._cleanups))
        self._cleanups.clear()
        errors: List[BaseException] = []

        try:
            for entry in entries:
                try:
                    await self._invoke(entry)
                except Exception as e:
                    errors.append(e)
                    self.logger.warning("cleanup_failed", cleanup=entry.name, error=error_message(e))
            self.logger.debug("cleanup_completed", count=len(entries), failures=len(errors))
            return errors
        finally:
            self._is_cleaning_up = False
            self._done.set()


async def with_fallback(
    primary: Callable[[], Awaitable[T]],
    fallback: Callable[[], Awaitable[T]],
    should_fallback: Optional[Callable[[BaseException], bool]] = None,
    name: str = "operation",
) -> T:
    """
    Run ``primary``; on a qualifying failure return ``fallback()`` instead.

    Args:
        primary: Zero-argument coroutine function
        fallback: Zero-argument coroutine function used when primary fails
        should_fallback: Decides whether an error qualifies; absent means every error does
        name: Operation name for logging

    Returns:
        The primary's or the fallback's result

    Raises:
        Exception: The primary's error when ``should_fallback`` rejects it
    """
    try:
        return await primary()
    except Exception as e:
        if should_fallback is not None and not should_fallback(e):
            raise
        structured_logger.warning("primary_failed_using_fallback", operation=name, error=error_message(e))
        return await fallback()


@dataclass
class PartialResult(Generic[T]):
    results: List[T] = field(default_factory=list)
    errors: List[BaseException] = field(default_factory=list)


async def with_partial_success(operations: List[Callable[[], Awaitable[T]]]) -> PartialResult[T]:
    """
    Run independent operations and keep whatever succeeded.

    Operations run one after another since they usually share one browser page.
    Results keep the original order with failed slots omitted; errors are
    collected separately. No failure stops the others.
    """
    partial: PartialResult[T] = PartialResult()
    for operation in operations:
        try:
            partial.results.append(await operation())
        except Exception as e:
            partial.errors.append(e)

    if partial.errors:
        structured_logger.warning(
            "partial_success",
            succeeded=len(partial.results),
            failed=len(partial.errors),
        )
    return partial
