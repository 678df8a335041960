"""Backoff and transient-failure classification for backend calls."""

from __future__ import annotations

import random
import re
from enum import Enum

from gitplus.core.config import BackendConfig
from gitplus.core.errors import CommandTimeout, ExecError, ParseError

TRANSIENT_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"timed?\s*out|timeout",
        r"network",
        r"connection",
        r"rate.?limit",
        r"throttl",
        r"\b5\d\d\b",
        r"temporarily unavailable",
        r"service unavailable",
        r"internal server error",
        r"bad gateway",
        r"gateway timeout",
        r"overloaded",
    )
)


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    TRANSIENT = "transient"
    FATAL = "fatal"


def is_transient_message(message: str) -> bool:
    return any(p.search(message) for p in TRANSIENT_PATTERNS)


def classify(error: BaseException) -> FailureKind:
    """Decide whether a failed call is worth retrying."""
    if isinstance(error, CommandTimeout):
        return FailureKind.TIMEOUT
    if isinstance(error, ParseError):
        return FailureKind.FATAL
    if isinstance(error, ExecError):
        text = f"{error} {error.stderr}"
        return (
            FailureKind.TRANSIENT
            if is_transient_message(text)
            else FailureKind.FATAL
        )
    return FailureKind.FATAL


def compute_delay(
    attempt: int, config: BackendConfig, jitter_draw: float
) -> float:
    """Seconds to wait before retry number ``attempt + 1``.

    delay = min(max_delay, base_delay * backoff_base**attempt * factor)
    where factor = 1 + jitter * jitter_draw and jitter_draw is in
    [-1, 1]. For a fixed draw the delay never decreases with attempt.
    """
    if attempt < 0:
        raise ValueError("attempt must be non-negative")
    jitter_draw = max(-1.0, min(1.0, jitter_draw))
    factor = 1.0 + config.jitter * jitter_draw
    try:
        raw = config.base_delay * config.backoff_base ** attempt * factor
    except OverflowError:
        return config.max_delay
    return min(config.max_delay, raw)


class Backoff:
    """Draws jitter and produces the delay for each attempt."""

    def __init__(self, config: BackendConfig, rng: random.Random | None = None):
        self.config = config
        self.rng = rng or random.Random()

    def delay(self, attempt: int) -> float:
        return compute_delay(attempt, self.config, self.rng.uniform(-1, 1))
