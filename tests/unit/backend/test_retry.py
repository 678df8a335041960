"""Tests for backoff delays and failure classification."""

import random

import pytest

from gitplus.backend.retry import (
    Backoff,
    FailureKind,
    classify,
    compute_delay,
    is_transient_message,
)
from gitplus.core.config import BackendConfig
from gitplus.core.errors import CommandTimeout, ExecError, ParseError


@pytest.mark.parametrize("draw", [-1.0, -0.3, 0.0, 0.5, 1.0])
def test_delay_never_decreases_for_a_fixed_draw(draw):
    config = BackendConfig(base_delay=0.5, max_delay=20, jitter=0.5)
    delays = [compute_delay(n, config, draw) for n in range(12)]
    assert delays == sorted(delays)
    assert max(delays) <= 20


def test_delay_without_jitter_is_exponential():
    config = BackendConfig(base_delay=1, backoff_base=2, jitter=0)
    assert [compute_delay(n, config, 0.7) for n in range(4)] == [1, 2, 4, 8]


def test_delay_is_capped():
    config = BackendConfig(max_delay=5)
    assert compute_delay(50, config, 1.0) == 5
    assert compute_delay(5000, config, 1.0) == 5


def test_jitter_bounds():
    config = BackendConfig(base_delay=2, jitter=0.25)
    assert compute_delay(0, config, -1) == pytest.approx(1.5)
    assert compute_delay(0, config, 1) == pytest.approx(2.5)
    # Out-of-range draws are clamped
    assert compute_delay(0, config, 7) == pytest.approx(2.5)


def test_negative_attempt():
    with pytest.raises(ValueError):
        compute_delay(-1, BackendConfig(), 0)


def test_backoff_uses_rng():
    config = BackendConfig(base_delay=1, jitter=0.25)
    first = Backoff(config, random.Random(7))
    second = Backoff(config, random.Random(7))
    assert [first.delay(n) for n in range(3)] == [
        second.delay(n) for n in range(3)
    ]
    assert 0.75 <= first.delay(0) <= 1.25


@pytest.mark.parametrize("error,kind", [
    (CommandTimeout("claude", 120), FailureKind.TIMEOUT),
    (ExecError("claude", "exit 1", 1, "Error: rate limit exceeded"),
     FailureKind.TRANSIENT),
    (ExecError("claude", "HTTP 503 from upstream", 1), FailureKind.TRANSIENT),
    (ExecError("claude", "network is unreachable"), FailureKind.TRANSIENT),
    (ExecError("claude", "exit 1", 1, "invalid API key"), FailureKind.FATAL),
    (ExecError("claude", "not found"), FailureKind.FATAL),
    (ParseError("bad json"), FailureKind.FATAL),
    (RuntimeError("other"), FailureKind.FATAL),
])
def test_classify(error, kind):
    assert classify(error) is kind


def test_transient_messages():
    assert is_transient_message("API is overloaded, try again")
    assert is_transient_message("502 Bad Gateway")
    assert not is_transient_message("permission denied")
