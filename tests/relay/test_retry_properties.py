"""Property-based and unit tests for the 503 retry helper.

Properties:
- N-1 unavailable failures followed by a success (N <= max_retries + 1)
  succeed, after sleeping initial_delay * (2^0 + ... + 2^(N-2)) in total.
- Any failure other than 503 propagates immediately with zero sleeps.
- Once the retry budget is spent the last 503 propagates unchanged.
"""

import asyncio
from typing import List, Optional

import httpx
import pytest
from hypothesis import given, settings, strategies as st

from src.relay.generation.base import GenerationBackendError
from src.relay.retry import (
    is_service_unavailable,
    retry_on_unavailable,
    status_code_of,
)


def run_async(coro):
    return asyncio.run(coro)


class _FlakyOperation:
    """Fails ``failures`` times with ``status_code`` before returning."""

    def __init__(self, failures: int, status_code: Optional[int] = 503):
        self.failures = failures
        self.status_code = status_code
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise GenerationBackendError("Model is loading", status_code=self.status_code)
        return "review text"


class _SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# =============================================================================
# Properties
# =============================================================================


@given(
    max_retries=st.integers(min_value=0, max_value=6),
    initial_delay=st.floats(min_value=0.001, max_value=30.0, allow_nan=False),
    data=st.data(),
)
@settings(max_examples=100)
def test_unavailable_then_success_sleeps_geometric_total(max_retries, initial_delay, data):
    failures = data.draw(st.integers(min_value=0, max_value=max_retries))
    operation = _FlakyOperation(failures)
    sleep = _SleepRecorder()

    result = run_async(
        retry_on_unavailable(
            operation,
            max_retries=max_retries,
            initial_delay=initial_delay,
            sleep=sleep,
        )
    )

    assert result == "review text"
    assert operation.calls == failures + 1
    assert len(sleep.delays) == failures
    assert sum(sleep.delays) == pytest.approx(initial_delay * (2 ** failures - 1))


@given(
    status_code=st.one_of(
        st.none(),
        st.sampled_from([400, 401, 403, 404, 422, 429, 500, 502, 504]),
    ),
    max_retries=st.integers(min_value=0, max_value=6),
)
@settings(max_examples=100)
def test_non_unavailable_failure_propagates_without_sleeping(status_code, max_retries):
    operation = _FlakyOperation(failures=1, status_code=status_code)
    sleep = _SleepRecorder()

    with pytest.raises(GenerationBackendError) as exc_info:
        run_async(
            retry_on_unavailable(
                operation,
                max_retries=max_retries,
                initial_delay=5.0,
                sleep=sleep,
            )
        )

    assert exc_info.value.status_code == status_code
    assert operation.calls == 1
    assert sleep.delays == []


@given(max_retries=st.integers(min_value=0, max_value=6))
@settings(max_examples=50)
def test_exhausted_budget_raises_last_unavailable(max_retries):
    operation = _FlakyOperation(failures=max_retries + 1)
    sleep = _SleepRecorder()

    with pytest.raises(GenerationBackendError) as exc_info:
        run_async(
            retry_on_unavailable(
                operation,
                max_retries=max_retries,
                initial_delay=1.0,
                sleep=sleep,
            )
        )

    assert exc_info.value.status_code == 503
    assert operation.calls == max_retries + 1
    assert sleep.delays == [2.0 ** i for i in range(max_retries)]


# =============================================================================
# Unit tests
# =============================================================================


class TestDefaults:
    def test_default_schedule_is_5_10_20_seconds(self):
        operation = _FlakyOperation(failures=3)
        sleep = _SleepRecorder()

        result = run_async(retry_on_unavailable(operation, sleep=sleep))

        assert result == "review text"
        assert sleep.delays == [5.0, 10.0, 20.0]

    def test_fourth_unavailable_is_not_retried_by_default(self):
        operation = _FlakyOperation(failures=4)
        sleep = _SleepRecorder()

        with pytest.raises(GenerationBackendError):
            run_async(retry_on_unavailable(operation, sleep=sleep))

        assert operation.calls == 4


class TestStatusCodeOf:
    def test_reads_status_code_attribute(self):
        assert status_code_of(GenerationBackendError("x", status_code=503)) == 503

    def test_reads_httpx_response_status(self):
        request = httpx.Request("POST", "https://inference.example/models/m")
        error = httpx.HTTPStatusError(
            "Service Unavailable",
            request=request,
            response=httpx.Response(503, request=request),
        )

        assert status_code_of(error) == 503
        assert is_service_unavailable(error)

    def test_plain_exception_has_no_status(self):
        assert status_code_of(RuntimeError("boom")) is None
        assert not is_service_unavailable(RuntimeError("boom"))

    def test_transport_error_is_not_retried(self):
        error = GenerationBackendError("connection refused")

        assert status_code_of(error) is None
        assert not is_service_unavailable(error)
