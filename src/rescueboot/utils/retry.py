# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from rescueboot.errors import TerminalProvisioningError

MAX_ATTEMPTS = 3


class OutcomeKind(str, Enum):
    OK = "ok"
    RECOVERED = "recovered"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class Outcome:
    """
    Tagged result of one operation attempt.

    OK / RECOVERED end the operation successfully, RETRYABLE asks the retry
    policy for another attempt, TERMINAL stops immediately.
    """

    kind: OutcomeKind
    value: Any = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, value: Any = None) -> "Outcome":
        return cls(OutcomeKind.OK, value)

    @classmethod
    def recovered(cls, message: str, value: Any = None) -> "Outcome":
        return cls(OutcomeKind.RECOVERED, value, message)

    @classmethod
    def retryable(cls, message: str, value: Any = None) -> "Outcome":
        return cls(OutcomeKind.RETRYABLE, value, message)

    @classmethod
    def terminal(cls, message: str, value: Any = None) -> "Outcome":
        return cls(OutcomeKind.TERMINAL, value, message)

    @property
    def succeeded(self) -> bool:
        return self.kind in (OutcomeKind.OK, OutcomeKind.RECOVERED)


class RetryCounter:
    """Per-host retry counter; reset on success, bumped on handled failure."""

    def __init__(self) -> None:
        self.retries = 0

    def reset(self) -> None:
        self.retries = 0

    def bump(self) -> int:
        self.retries += 1
        return self.retries

    def __repr__(self) -> str:
        return f"RetryCounter(retries={self.retries})"


@dataclass(frozen=True)
class RetryState:
    operation: str
    attempt: int
    last_error: Optional[str]
    delay: float


def rolling_backoff(attempt: int) -> float:
    # 4, 13, 28, 49, 76 ...
    return attempt * attempt * 3 + 1


def with_retry(
    operation: Callable[[], Outcome],
    *,
    name: str,
    counter: RetryCounter,
    max_attempts: int = MAX_ATTEMPTS,
    backoff: Callable[[int], float] = rolling_backoff,
    before_retry: Optional[Callable[[RetryState], None]] = None,
    on_retry: Optional[Callable[[RetryState], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Outcome:
    """
    Run `operation` until it succeeds or the retry budget is spent.

    The same callable is re-invoked on every attempt, so anything the
    operation obtains (a rescue password, say) is derived again each time.
    With max_attempts=3 the operation runs at most 4 times.

    before_retry: called before sleeping, e.g. to undo a half-applied change
    on_retry: callback(state) for logging/events
    """
    while True:
        outcome = operation()
        if outcome.succeeded:
            counter.reset()
            return outcome

        if outcome.kind is OutcomeKind.TERMINAL or counter.retries >= max_attempts:
            raise TerminalProvisioningError(name, outcome.message)

        attempt = counter.bump()
        state = RetryState(
            operation=name,
            attempt=attempt,
            last_error=outcome.message,
            delay=backoff(attempt),
        )
        if on_retry:
            on_retry(state)
        if before_retry:
            before_retry(state)
        sleep(state.delay)
