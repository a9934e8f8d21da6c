#!/usr/bin/env python3
from __future__ import annotations

"""
Retry controller for SubRelay remote calls.

Each logical call runs as an explicit per-attempt state machine:
    attempt k → timeout = base * 2**k → acquire session → run work
              → classify outcome → decide (return / retry / fallback / raise)

Decisions:
    SUCCESS    → return the value.
    TIMEOUT    → rotate session and retry; re-raise on the final attempt.
    TRANSPORT  → rotate session and retry; re-raise on the final attempt.
    MALFORMED  → rotate session and retry; return the fallback on the final attempt.
    UNEXPECTED → stop at once and return the fallback.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from subrelay_lib.errors import MalformedResponse, TranslationTimeout, TransportFault
from subrelay_lib.session_manager import SessionManager, TranslationSession

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5


class Outcome(Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    TRANSPORT = "transport"
    UNEXPECTED = "unexpected"


# Outcomes that rotate the session and try again while attempts remain
RETRYABLE = {Outcome.TIMEOUT, Outcome.MALFORMED, Outcome.TRANSPORT}


@dataclass
class RetryPolicy:
    """
    Attempt budget and exponential per-attempt timeouts.

    Attributes:
        max_attempts: Total attempts (first try included).
        base_timeout: Timeout in seconds for the first attempt; doubles each attempt.
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_timeout: float = 15.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_timeout <= 0:
            raise ValueError("base_timeout must be positive")

    def timeout_for(self, attempt: int) -> float:
        """Timeout for 0-based `attempt`: 15s, 30s, 60s, ... for base 15."""
        return self.base_timeout * (2 ** attempt)


@dataclass
class RetryResult(Generic[T]):
    """
    Value produced by run_with_retries().

    Attributes:
        value: Work result, or the fallback when `fell_back` is True.
        outcome: Classification of the last attempt.
        attempts: Number of attempts made.
        fell_back: True when `value` is the caller's fallback.
    """
    value: T
    outcome: Outcome
    attempts: int
    fell_back: bool = False


def classify(error: Optional[BaseException]) -> Outcome:
    """
    Map an attempt's exception (or None) to an Outcome.
    """
    if error is None:
        return Outcome.SUCCESS
    if isinstance(error, TranslationTimeout):
        return Outcome.TIMEOUT
    if isinstance(error, TransportFault):
        return Outcome.TRANSPORT
    if isinstance(error, MalformedResponse):
        return Outcome.MALFORMED
    return Outcome.UNEXPECTED


def run_with_retries(
    work: Callable[[TranslationSession, float], T],
    sessions: SessionManager,
    policy: RetryPolicy,
    fallback: T,
    label: str = "Remote call",
) -> RetryResult[T]:
    """
    Run `work(session, timeout)` under the retry policy.

    Args:
        work: Performs exactly one remote call with the given session and timeout.
        sessions: Session manager providing (and rotating) the session.
        policy: Attempt budget and timeouts.
        fallback: Returned when the work is abandoned without a fatal error.
        label: Prefix for log messages.

    Returns:
        RetryResult with the work's value or the fallback.

    Raises:
        TranslationTimeout: Every attempt timed out (or the last one did).
        TransportFault: The last attempt failed at the transport/session level.
    """
    last = policy.max_attempts - 1

    for attempt in range(policy.max_attempts):
        timeout = policy.timeout_for(attempt)
        logger.debug("%s attempt %d with timeout %ss", label, attempt + 1, timeout)

        error: Optional[Exception] = None
        value = None
        try:
            session = sessions.acquire()
            value = work(session, timeout)
        except Exception as e:
            error = e

        outcome = classify(error)

        if outcome is Outcome.SUCCESS:
            return RetryResult(value=value, outcome=outcome, attempts=attempt + 1)

        if outcome is Outcome.UNEXPECTED:
            logger.warning("%s failed unexpectedly, returning original input: %s", label, error)
            return RetryResult(fallback, outcome, attempt + 1, fell_back=True)

        if outcome in RETRYABLE and attempt < last:
            logger.warning(
                "%s attempt %d failed (%s: %s), retrying with a new session and increased timeout...",
                label, attempt + 1, outcome.value, error
            )
            sessions.invalidate()
            continue

        # Final attempt
        sessions.invalidate()
        if outcome is Outcome.MALFORMED:
            logger.error(
                "%s failed - malformed response after %d attempts, returning original input",
                label, policy.max_attempts
            )
            return RetryResult(fallback, outcome, attempt + 1, fell_back=True)

        logger.error("%s failed after %d attempts (%s)", label, policy.max_attempts, outcome.value)
        raise error

    # max_attempts >= 1, so the loop always returns or raises
    raise AssertionError("unreachable")
