"""Functional tests for the idempotency cache and the resilient executor."""

from __future__ import annotations

import random
import time
from typing import Any, List

import anyio
import httpx
import pytest
from sqlalchemy.exc import OperationalError

from survey_intake.logic.errors import (
    NetworkError,
    RateLimited,
    RetryExhausted,
    ServerError,
    ServiceTimeout,
    ValidationFailed,
)
from survey_intake.logic.idempotency import IdempotencyCache, stable_payload_hash
from survey_intake.logic.resilience import (
    COMPENSATION_RETRY,
    DRAFT_RETRY,
    SUBMISSION_RETRY,
    ResilientExecutor,
    RetryOptions,
    classify,
    compute_delay,
    is_retryable,
)
from survey_intake.models.submission import ValidationReport


class Flaky:
    """Callable that fails with the queued errors, then returns ``result``."""

    def __init__(self, errors: List[BaseException], result: Any = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class SlowOp:
    """Callable that waits before finishing; fails first when ``fail_first`` is set."""

    def __init__(self, wait: float, result: Any = "done", fail_first: bool = False) -> None:
        self.wait = wait
        self.result = result
        self.fail_first = fail_first
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        await anyio.sleep(self.wait)
        if self.fail_first and self.calls == 1:
            raise ValueError("first call fails")
        return self.result


# -----------------------------
# Idempotency cache
# -----------------------------


def test_cache_first_writer_wins_and_entries_expire(monotonic):
    cache = IdempotencyCache(ttl_seconds=600, clock=monotonic)
    assert cache.get("k") is None
    stored = cache.put("k", {"id": 1})
    again = cache.put("k", {"id": 2})
    assert again.result == {"id": 1}
    assert stored is again
    monotonic.advance(599)
    assert cache.get("k").result == {"id": 1}
    monotonic.advance(2)
    assert cache.get("k") is None
    assert len(cache) == 0


def test_cache_purge_clear_and_stats(monotonic):
    cache = IdempotencyCache(ttl_seconds=10, clock=monotonic)
    cache.put("a", 1)
    monotonic.advance(5)
    cache.put("b", 2)
    monotonic.advance(6)
    assert cache.purge_expired() == 1
    cache.get("b")
    cache.get("missing")
    stats = cache.stats()
    assert stats["entries"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    cache.clear()
    assert cache.stats()["entries"] == 0


def test_cache_rejects_non_positive_ttl():
    with pytest.raises(ValueError):
        IdempotencyCache(ttl_seconds=0)


def test_stable_payload_hash_ignores_key_order():
    assert stable_payload_hash({"a": 1, "b": [1, 2]}) == stable_payload_hash({"b": [1, 2], "a": 1})
    assert stable_payload_hash({"a": 1}) != stable_payload_hash({"a": 2})


# -----------------------------
# Classification and backoff
# -----------------------------


def test_classification_allow_list():
    request = httpx.Request("POST", "https://api.example.test/submit")
    unavailable = httpx.HTTPStatusError("503", request=request, response=httpx.Response(503, request=request))
    bad_request = httpx.HTTPStatusError("400", request=request, response=httpx.Response(400, request=request))

    assert classify(NetworkError("down")) == "NETWORK_ERROR"
    assert classify(ServiceTimeout("slow")) == "TIMEOUT_ERROR"
    assert classify(ServerError("boom", status_code=502)) == "SERVER_ERROR"
    assert classify(RateLimited("slow down")) == "RATE_LIMIT_EXCEEDED"
    assert classify(httpx.ConnectTimeout("t", request=request)) == "TIMEOUT_ERROR"
    assert classify(httpx.ConnectError("refused", request=request)) == "NETWORK_ERROR"
    assert classify(unavailable) == "SERVER_ERROR"
    assert classify(OperationalError("SELECT 1", {}, Exception("gone"))) == "NETWORK_ERROR"
    assert classify(ConnectionResetError()) == "NETWORK_ERROR"
    assert classify(TimeoutError()) == "TIMEOUT_ERROR"

    assert classify(bad_request) is None
    assert classify(ValidationFailed("bad", ValidationReport())) is None
    assert classify(ValueError("nope")) is None
    assert is_retryable(KeyError("x")) is False


def test_classification_of_foreign_errors_by_status_and_code():
    class UpstreamError(Exception):
        def __init__(self, status_code: int) -> None:
            super().__init__(status_code)
            self.status_code = status_code

    class CodedError(Exception):
        code = "RATE_LIMIT_EXCEEDED"

    assert classify(UpstreamError(429)) == "RATE_LIMIT_EXCEEDED"
    assert classify(UpstreamError(408)) == "TIMEOUT_ERROR"
    assert classify(UpstreamError(404)) is None
    assert classify(CodedError()) == "RATE_LIMIT_EXCEEDED"


def test_compute_delay_grows_and_caps_without_jitter():
    opts = RetryOptions(base_delay=1.0, multiplier=2.0, max_delay=5.0, jitter=0)
    rng = random.Random(7)
    assert [compute_delay(n, opts, rng) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_compute_delay_jitter_stays_within_quarter():
    opts = RetryOptions(base_delay=4.0, jitter=0.25)
    rng = random.Random(1)
    for _ in range(50):
        assert 3.0 <= compute_delay(1, opts, rng) <= 5.0


def test_preset_policies():
    assert (SUBMISSION_RETRY.max_attempts, SUBMISSION_RETRY.base_delay, SUBMISSION_RETRY.max_delay) == (5, 2.0, 60.0)
    assert (DRAFT_RETRY.max_attempts, DRAFT_RETRY.base_delay, DRAFT_RETRY.max_delay) == (3, 1.0, 15.0)
    assert COMPENSATION_RETRY.max_attempts == 2


# -----------------------------
# Executor
# -----------------------------


@pytest.mark.anyio
async def test_retries_transient_failures_then_succeeds(executor, recorded_sleep):
    op = Flaky([NetworkError("down"), ServiceTimeout("slow")], result=42)
    seen = []
    result = await executor.execute(
        op,
        RetryOptions(max_attempts=3, base_delay=1.0, jitter=0),
        on_retry=lambda attempt, exc, delay: seen.append((attempt, type(exc).__name__, delay)),
    )
    assert result == 42
    assert op.calls == 3
    assert recorded_sleep.delays == [1.0, 2.0]
    assert seen == [(1, "NetworkError", 1.0), (2, "ServiceTimeout", 2.0)]
    stats = executor.stats()
    assert stats["retries"] == 2
    assert stats["successes"] == 1


@pytest.mark.anyio
async def test_non_retryable_error_is_attempted_once_and_propagates_unchanged(executor, recorded_sleep):
    failure = ValidationFailed("bad", ValidationReport())
    op = Flaky([failure])
    with pytest.raises(ValidationFailed) as exc_info:
        await executor.execute(op, RetryOptions(max_attempts=5))
    assert exc_info.value is failure
    assert op.calls == 1
    assert recorded_sleep.delays == []


@pytest.mark.anyio
async def test_exhaustion_carries_attempts_and_last_error(executor, monotonic):
    async def always_down() -> None:
        monotonic.advance(0.5)
        raise ServerError("unavailable", status_code=503)

    with pytest.raises(RetryExhausted) as exc_info:
        await executor.execute(always_down, RetryOptions(max_attempts=3, base_delay=0.1, jitter=0))
    exc = exc_info.value
    assert exc.attempts == 3
    assert isinstance(exc.last_error, ServerError)
    assert exc.__cause__ is exc.last_error
    assert exc.elapsed_ms == 1500
    assert len(exc.request_id) == 32
    assert exc.reason == "attempts_exhausted"


@pytest.mark.anyio
async def test_deadline_stops_retrying_before_sleep(executor, recorded_sleep):
    op = Flaky([NetworkError("down")] * 5)
    with pytest.raises(RetryExhausted) as exc_info:
        await executor.execute(op, RetryOptions(max_attempts=5, base_delay=10.0, jitter=0, deadline=5.0))
    assert exc_info.value.reason == "deadline_exceeded"
    assert op.calls == 1
    assert recorded_sleep.delays == []


@pytest.mark.anyio
async def test_idempotent_replay_within_ttl(executor, monotonic):
    op = Flaky([], result={"id": "rec-1"})
    first = await executor.execute(op, idempotency_key="submit-42")
    monotonic.advance(60)
    second = await executor.execute(op, idempotency_key="submit-42")
    assert second == first
    assert op.calls == 1
    assert executor.stats()["replays"] == 1


@pytest.mark.anyio
async def test_replay_expires_after_ttl(executor, monotonic):
    op = Flaky([], result="fresh")
    await executor.execute(op, idempotency_key="k")
    monotonic.advance(601)
    await executor.execute(op, idempotency_key="k")
    assert op.calls == 2


@pytest.mark.anyio
async def test_failures_are_not_cached(executor):
    op = Flaky([ValueError("broken")], result="later")
    with pytest.raises(ValueError):
        await executor.execute(op, idempotency_key="k")
    assert await executor.execute(op, idempotency_key="k") == "later"
    assert op.calls == 2


@pytest.mark.anyio
async def test_execute_batch_isolates_failures_and_keeps_order(executor):
    ops = [Flaky([], result=1), Flaky([ValueError("x")]), Flaky([NetworkError("blip")], result=3)]
    outcomes = await executor.execute_batch(ops, RetryOptions(max_attempts=2, jitter=0))
    assert [o.success for o in outcomes] == [True, False, True]
    assert outcomes[0].result == 1
    assert isinstance(outcomes[1].error, ValueError)
    assert outcomes[2].result == 3


@pytest.mark.anyio
async def test_clear_resets_cache_and_counters(executor):
    await executor.execute(Flaky([]), idempotency_key="k")
    executor.clear()
    stats = executor.stats()
    assert stats["attempts"] == 0
    assert stats["cache"]["entries"] == 0


@pytest.mark.anyio
async def test_concurrent_calls_with_same_key_run_once(executor):
    op = SlowOp(0.05, result={"id": "rec-1"})
    results = []

    async def _call() -> None:
        results.append(await executor.execute(op, idempotency_key="submit-42"))

    async with anyio.create_task_group() as tg:
        tg.start_soon(_call)
        tg.start_soon(_call)

    assert op.calls == 1
    assert results == [{"id": "rec-1"}, {"id": "rec-1"}]
    stats = executor.stats()
    assert stats["replays"] == 1
    assert stats["in_flight"] == 0


@pytest.mark.anyio
async def test_waiting_caller_runs_operation_when_first_call_failed(executor):
    op = SlowOp(0.02, result="second", fail_first=True)
    outcomes: List[Any] = []

    async def _call() -> None:
        try:
            outcomes.append(await executor.execute(op, idempotency_key="k"))
        except ValueError as exc:
            outcomes.append(exc)

    async with anyio.create_task_group() as tg:
        tg.start_soon(_call)
        tg.start_soon(_call)

    assert op.calls == 2
    assert sum(isinstance(o, ValueError) for o in outcomes) == 1
    assert "second" in outcomes
    assert executor.cache.get("k").result == "second"


@pytest.mark.anyio
async def test_deadline_bounds_a_hanging_attempt():
    executor = ResilientExecutor()
    op = SlowOp(0.5, result="late")
    started = time.monotonic()
    with pytest.raises(RetryExhausted) as exc_info:
        await executor.execute(op, RetryOptions(max_attempts=3, deadline=0.1))
    assert time.monotonic() - started < 0.4
    exc = exc_info.value
    assert exc.reason == "deadline_exceeded"
    assert exc.attempts == 1
    assert isinstance(exc.last_error, ServiceTimeout)
    assert op.calls == 1


@pytest.mark.anyio
async def test_cancelling_during_backoff_makes_no_further_attempt():
    executor = ResilientExecutor(rng=random.Random(0))
    op = Flaky([NetworkError("down")] * 5)
    with anyio.CancelScope() as scope:
        await executor.execute(
            op,
            RetryOptions(max_attempts=5, base_delay=5.0, jitter=0),
            on_retry=lambda attempt, exc, delay: scope.cancel(),
        )
    assert scope.cancel_called
    assert op.calls == 1
    assert executor.stats()["retries"] == 1


@pytest.mark.anyio
async def test_execute_batch_outcomes_line_up_with_inputs(executor):
    ops = [SlowOp(0.03, result="slow"), SlowOp(0.0, result="fast"), SlowOp(0.01, result="middle")]
    outcomes = await executor.execute_batch(ops)
    assert len(outcomes) == len(ops)
    assert [o.result for o in outcomes] == ["slow", "fast", "middle"]
