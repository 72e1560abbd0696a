"""Retry, backoff and idempotent execution for fallible async operations.

`ResilientExecutor.execute` wraps any zero-argument callable that returns an
awaitable. Errors are classified into retry categories; only an explicit
allow-list (network, timeout, 5xx server, rate limit) is retried, everything
else propagates unchanged from the first attempt. Backoff is exponential with
a cap and +/-25% jitter. Sleeps go through anyio, so caller cancellation
aborts the wait and no further attempt is made. A ``deadline`` bounds every
attempt and every wait, not only the gaps between them.

An idempotency key is held in flight for the whole execution; concurrent
callers with the same key queue behind it instead of running the operation
a second time.

When retries run out a RetryExhausted error is raised carrying the attempt
count, elapsed time, a generated request id and the last underlying error.
"""

from __future__ import annotations

import functools
import logging
import random
import threading
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import anyio
import httpx
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from survey_intake.config import RetryConfig
from survey_intake.logic.errors import RetryExhausted, ServiceTimeout, SubmissionError, TransientError
from survey_intake.logic.idempotency import IdempotencyCache


logger = logging.getLogger(__name__)

NETWORK_ERROR = "NETWORK_ERROR"
TIMEOUT_ERROR = "TIMEOUT_ERROR"
SERVER_ERROR = "SERVER_ERROR"
RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

RETRYABLE_CATEGORIES = frozenset({NETWORK_ERROR, TIMEOUT_ERROR, SERVER_ERROR, RATE_LIMIT_EXCEEDED})

Operation = Callable[[], Awaitable[Any]]
RetryCallback = Callable[[int, BaseException, float], None]


class RetryOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)
    jitter: float = Field(default=0.25, ge=0, le=1)
    # Total time budget in seconds across attempts and waits
    deadline: Optional[float] = Field(default=None, gt=0)

    @classmethod
    def from_config(cls, cfg: RetryConfig) -> "RetryOptions":
        return cls(
            max_attempts=cfg.max_attempts,
            base_delay=cfg.base_delay,
            multiplier=cfg.multiplier,
            max_delay=cfg.max_delay,
        )


SUBMISSION_RETRY = RetryOptions(max_attempts=5, base_delay=2.0, max_delay=60.0)
DRAFT_RETRY = RetryOptions(max_attempts=3, base_delay=1.0, max_delay=15.0)
COMPENSATION_RETRY = RetryOptions(max_attempts=2, base_delay=0.5, max_delay=2.0)


def _category_for_status(status: int) -> Optional[str]:
    if status == 429:
        return RATE_LIMIT_EXCEEDED
    if status == 408:
        return TIMEOUT_ERROR
    if 500 <= status <= 599:
        return SERVER_ERROR
    return None


def classify(error: BaseException) -> Optional[str]:
    """Return the retry category of ``error`` or None when it is not retryable."""
    if isinstance(error, TransientError):
        return error.category
    if isinstance(error, SubmissionError):
        return None
    if isinstance(error, (PoolTimeoutError, httpx.TimeoutException, TimeoutError)):
        return TIMEOUT_ERROR
    if isinstance(error, httpx.HTTPStatusError):
        return _category_for_status(error.response.status_code)
    if isinstance(error, (OperationalError, DisconnectionError, httpx.TransportError, ConnectionError)):
        return NETWORK_ERROR
    for attr in ("status_code", "status"):
        status = getattr(error, attr, None)
        if isinstance(status, int) and not isinstance(status, bool):
            return _category_for_status(status)
    code = getattr(error, "code", None)
    if isinstance(code, str) and code in RETRYABLE_CATEGORIES:
        return code
    return None


def is_retryable(error: BaseException) -> bool:
    return classify(error) is not None


def compute_delay(attempt: int, options: RetryOptions, rng: random.Random) -> float:
    """Delay in seconds before attempt ``attempt + 1``.

    ``base_delay * multiplier ** (attempt - 1)`` capped at ``max_delay``,
    then spread by the jitter fraction in both directions.
    """
    delay = min(options.base_delay * (options.multiplier ** (attempt - 1)), options.max_delay)
    if options.jitter:
        delay += delay * options.jitter * rng.uniform(-1.0, 1.0)
    return max(0.0, delay)


class BatchOutcome(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    result: Any = None
    error: Optional[BaseException] = None


class _BudgetSpent(Exception):
    """Raised inside the executor when the time budget ran out mid-await."""


class ResilientExecutor:
    def __init__(
        self,
        cache: Optional[IdempotencyCache] = None,
        default_options: Optional[RetryOptions] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._cache = cache if cache is not None else IdempotencyCache()
        self._defaults = default_options or RetryOptions()
        self._sleep = sleep or anyio.sleep
        self._rng = rng or random.Random()
        self._clock = clock or time.monotonic
        # idempotency key -> (lock, number of callers holding or waiting on it)
        self._in_flight: Dict[str, Tuple[anyio.Lock, int]] = {}
        self._in_flight_guard = threading.Lock()
        self._counters: Dict[str, int] = {}
        self.clear_counters()

    @property
    def cache(self) -> IdempotencyCache:
        return self._cache

    @property
    def default_options(self) -> RetryOptions:
        return self._defaults

    def _claim_key(self, key: str) -> anyio.Lock:
        with self._in_flight_guard:
            lock, users = self._in_flight.get(key, (None, 0))
            if lock is None:
                lock = anyio.Lock()
            self._in_flight[key] = (lock, users + 1)
            return lock

    def _release_key(self, key: str) -> None:
        with self._in_flight_guard:
            lock, users = self._in_flight[key]
            if users <= 1:
                del self._in_flight[key]
            else:
                self._in_flight[key] = (lock, users - 1)

    async def execute(
        self,
        operation: Operation,
        options: Optional[RetryOptions] = None,
        idempotency_key: Optional[str] = None,
        on_retry: Optional[RetryCallback] = None,
    ) -> Any:
        """Run ``operation`` under the retry policy.

        Calls sharing an ``idempotency_key`` are serialized: a caller arriving
        while the key is in flight waits, then replays the cached result, or
        runs the operation itself when the earlier call failed.
        """
        opts = options or self._defaults
        if not idempotency_key:
            return await self._run_with_retries(operation, opts, on_retry)

        lock = self._claim_key(idempotency_key)
        try:
            async with lock:
                entry = self._cache.get(idempotency_key)
                if entry is not None:
                    self._counters["replays"] += 1
                    logger.info("resilient_exec_replay key=%s", idempotency_key)
                    return entry.result
                result = await self._run_with_retries(operation, opts, on_retry)
                return self._cache.put(idempotency_key, result).result
        finally:
            self._release_key(idempotency_key)

    async def _bounded(self, step: Operation, remaining: Optional[float]) -> Any:
        if remaining is None:
            return await step()
        with anyio.move_on_after(max(0.0, remaining)):
            return await step()
        raise _BudgetSpent()

    def _deadline_exceeded(
        self, request_id: str, attempt: int, started: float, last_error: BaseException
    ) -> RetryExhausted:
        elapsed_ms = int((self._clock() - started) * 1000)
        self._counters["failures"] += 1
        logger.error(
            "resilient_exec_deadline request_id=%s attempts=%s elapsed_ms=%s",
            request_id,
            attempt,
            elapsed_ms,
        )
        return RetryExhausted(
            attempts=attempt,
            elapsed_ms=elapsed_ms,
            request_id=request_id,
            last_error=last_error,
            reason="deadline_exceeded",
        )

    async def _run_with_retries(
        self, operation: Operation, opts: RetryOptions, on_retry: Optional[RetryCallback]
    ) -> Any:
        request_id = uuid.uuid4().hex
        started = self._clock()
        deadline_at = started + opts.deadline if opts.deadline is not None else None
        attempt = 0
        while True:
            attempt += 1
            self._counters["attempts"] += 1
            remaining = None if deadline_at is None else deadline_at - self._clock()
            try:
                result = await self._bounded(operation, remaining)
            except _BudgetSpent:
                timeout = ServiceTimeout(f"attempt {attempt} did not finish within the time budget")
                raise self._deadline_exceeded(request_id, attempt, started, timeout) from None
            except Exception as exc:
                category = classify(exc)
                elapsed = self._clock() - started
                if category is None:
                    self._counters["failures"] += 1
                    logger.info(
                        "resilient_exec_not_retryable request_id=%s attempt=%s error=%s",
                        request_id,
                        attempt,
                        type(exc).__name__,
                    )
                    raise
                if attempt >= opts.max_attempts:
                    self._counters["failures"] += 1
                    logger.error(
                        "resilient_exec_exhausted request_id=%s attempts=%s elapsed_ms=%s category=%s",
                        request_id,
                        attempt,
                        int(elapsed * 1000),
                        category,
                        exc_info=True,
                    )
                    raise RetryExhausted(
                        attempts=attempt,
                        elapsed_ms=int(elapsed * 1000),
                        request_id=request_id,
                        last_error=exc,
                    ) from exc
                delay = compute_delay(attempt, opts, self._rng)
                if opts.deadline is not None and elapsed + delay >= opts.deadline:
                    raise self._deadline_exceeded(request_id, attempt, started, exc) from exc
                self._counters["retries"] += 1
                logger.warning(
                    "resilient_exec_retry request_id=%s attempt=%s category=%s delay_s=%.3f",
                    request_id,
                    attempt,
                    category,
                    delay,
                )
                if on_retry is not None:
                    on_retry(attempt, exc, delay)
                remaining = None if deadline_at is None else deadline_at - self._clock()
                try:
                    await self._bounded(functools.partial(self._sleep, delay), remaining)
                except _BudgetSpent:
                    raise self._deadline_exceeded(request_id, attempt, started, exc) from exc
                continue

            self._counters["successes"] += 1
            return result

    async def execute_batch(
        self, operations: Sequence[Operation], options: Optional[RetryOptions] = None
    ) -> List[BatchOutcome]:
        """Run independent operations concurrently; one outcome per operation, in order.

        A failing operation never cancels or hides the others.
        """
        outcomes: List[BatchOutcome] = [
            BatchOutcome(success=False, error=RuntimeError("operation did not complete")) for _ in operations
        ]

        async def _run(index: int, op: Operation) -> None:
            try:
                result = await self.execute(op, options)
            except Exception as exc:
                outcomes[index] = BatchOutcome(success=False, error=exc)
            else:
                outcomes[index] = BatchOutcome(success=True, result=result)

        async with anyio.create_task_group() as tg:
            for index, op in enumerate(operations):
                tg.start_soon(_run, index, op)
        return outcomes

    def stats(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self._counters)
        with self._in_flight_guard:
            out["in_flight"] = len(self._in_flight)
        out["cache"] = self._cache.stats()
        return out

    def clear_counters(self) -> None:
        self._counters = {"attempts": 0, "retries": 0, "successes": 0, "failures": 0, "replays": 0}

    def clear(self) -> None:
        """Drop cached results and reset statistics."""
        self._cache.clear()
        self.clear_counters()


__all__ = [
    "NETWORK_ERROR",
    "TIMEOUT_ERROR",
    "SERVER_ERROR",
    "RATE_LIMIT_EXCEEDED",
    "RETRYABLE_CATEGORIES",
    "RetryOptions",
    "SUBMISSION_RETRY",
    "DRAFT_RETRY",
    "COMPENSATION_RETRY",
    "classify",
    "is_retryable",
    "compute_delay",
    "BatchOutcome",
    "ResilientExecutor",
]
