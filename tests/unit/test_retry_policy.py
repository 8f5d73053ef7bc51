from __future__ import annotations

import pytest

from src.app.infra.db.retry import RetryPolicy


class Transient(Exception):
    pass


class Permanent(Exception):
    pass


class FlakyCall:
    def __init__(self, failures: list[Exception], result: str = "ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def make_policy(sleeps: list[float], **overrides) -> RetryPolicy:
    options = dict(
        max_attempts=3,
        base_delay=0.1,
        max_delay=5.0,
        is_retryable=lambda error: isinstance(error, Transient),
        sleep=sleeps.append,
        rand=lambda: 0.0,
    )
    options.update(overrides)
    return RetryPolicy(**options)


def test_success_on_first_attempt_does_not_sleep() -> None:
    sleeps: list[float] = []
    call = FlakyCall([])

    assert make_policy(sleeps).run(call, "get") == "ok"
    assert call.calls == 1
    assert sleeps == []


def test_transient_failures_back_off_exponentially() -> None:
    sleeps: list[float] = []
    call = FlakyCall([Transient(), Transient()])

    assert make_policy(sleeps).run(call, "get") == "ok"
    assert call.calls == 3
    assert sleeps == pytest.approx([0.1, 0.2])


def test_exhaustion_reraises_last_error() -> None:
    sleeps: list[float] = []
    last = Transient("third")
    call = FlakyCall([Transient("first"), Transient("second"), last])

    with pytest.raises(Transient) as exc_info:
        make_policy(sleeps).run(call, "put")

    assert exc_info.value is last
    assert call.calls == 3
    assert len(sleeps) == 2


def test_permanent_error_is_not_retried() -> None:
    sleeps: list[float] = []
    call = FlakyCall([Permanent()])

    with pytest.raises(Permanent):
        make_policy(sleeps).run(call, "update")

    assert call.calls == 1
    assert sleeps == []


def test_default_policy_retries_nothing() -> None:
    sleeps: list[float] = []
    call = FlakyCall([Transient()])
    policy = RetryPolicy(sleep=sleeps.append)

    with pytest.raises(Transient):
        policy.run(call, "get")

    assert call.calls == 1


def test_jitter_adds_up_to_thirty_percent() -> None:
    policy = make_policy([], rand=lambda: 1.0)

    assert policy.delay_for(1) == pytest.approx(0.13)
    assert policy.delay_for(3) == pytest.approx(0.52)


def test_delay_is_capped() -> None:
    policy = make_policy([], rand=lambda: 1.0)

    assert policy.delay_for(10) == 5.0


def test_single_attempt_policy() -> None:
    sleeps: list[float] = []
    call = FlakyCall([Transient()])

    with pytest.raises(Transient):
        make_policy(sleeps, max_attempts=1).run(call, "get")

    assert call.calls == 1
    assert sleeps == []


def test_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
