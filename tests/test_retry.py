from __future__ import annotations

import pytest

from errors import AuthError, NetworkError, RetryExhausted
from retry import RetryPolicy, init_retry_policy, transcription_retry_policy


class Flaky:
    def __init__(self, failures: int, result: str = "ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise NetworkError(f"failure {self.calls}")
        return self.result


def _policy(max_attempts: int = 3, **kwargs) -> tuple[RetryPolicy, list[float]]:
    delays: list[float] = []
    policy = RetryPolicy("test", max_attempts, base_delay_s=1.0, sleep=delays.append, **kwargs)
    return policy, delays


def test_fails_permanently_on_fourth_consecutive_failure() -> None:
    policy, delays = _policy(3)
    state = policy.new_state()
    op = Flaky(failures=10)

    with pytest.raises(RetryExhausted) as info:
        policy.call(op, state)

    assert op.calls == 4
    assert delays == [1.0, 2.0, 4.0]
    assert state.failed is True
    assert isinstance(info.value.__cause__, NetworkError)


def test_succeeds_after_retries_and_resets_state() -> None:
    policy, delays = _policy(3)
    state = policy.new_state()

    assert policy.call(Flaky(failures=3), state) == "ok"
    assert delays == [1.0, 2.0, 4.0]
    assert state.attempts == 0
    assert state.failed is False
    assert state.last_failure_at is None


def test_failed_state_requires_explicit_reset() -> None:
    policy, _ = _policy(1)
    state = policy.new_state()
    with pytest.raises(RetryExhausted):
        policy.call(Flaky(failures=5), state)

    op = Flaky(failures=0)
    with pytest.raises(RetryExhausted):
        policy.call(op, state)
    assert op.calls == 0

    state.reset()
    assert policy.call(op, state) == "ok"
    assert op.calls == 1


def test_delay_is_capped() -> None:
    policy = transcription_retry_policy(sleep=lambda _: None)
    assert [policy.delay_for(i) for i in range(6)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]
    assert policy.max_attempts == 5


def test_transcription_policy_gives_up_after_five_retries() -> None:
    delays: list[float] = []
    policy = transcription_retry_policy(sleep=delays.append)
    state = policy.new_state()
    op = Flaky(failures=100)

    with pytest.raises(RetryExhausted):
        policy.call(op, state)

    assert op.calls == 6
    assert delays == [1.0, 2.0, 4.0, 8.0, 10.0]


def test_non_retryable_errors_propagate_immediately() -> None:
    policy = transcription_retry_policy(sleep=lambda _: pytest.fail("should not sleep"))
    state = policy.new_state()

    def boom() -> str:
        raise ValueError("bug")

    with pytest.raises(ValueError):
        policy.call(boom, state)
    assert state.attempts == 0


def test_on_retry_reports_each_delay() -> None:
    policy, _ = _policy(3)
    seen: list[tuple[int, float]] = []
    policy.call(
        Flaky(failures=2),
        policy.new_state(),
        on_retry=lambda st, delay, exc: seen.append((st.attempts, delay)),
    )
    assert seen == [(1, 1.0), (2, 2.0)]


def test_init_policy_has_three_attempts() -> None:
    policy = init_retry_policy(sleep=lambda _: None)
    assert policy.kind == "init"
    assert policy.max_attempts == 3
    assert policy.cap_s is None


def test_fatal_errors_are_not_retried() -> None:
    policy = transcription_retry_policy(sleep=lambda _: pytest.fail("should not sleep"))
    state = policy.new_state()

    def rejected() -> str:
        raise AuthError("invalid key")

    with pytest.raises(AuthError):
        policy.call(rejected, state)
    assert state.failed is False
