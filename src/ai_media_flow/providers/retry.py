"""
Retry policy for dispatches.

One table decides which error kinds are retried. The Dispatcher is the
only consumer; adapters never retry on their own.
"""

from __future__ import annotations

from dataclasses import dataclass

from ai_media_flow.providers.base import (
    BackendUnavailable,
    DispatchError,
    InvalidInput,
    MalformedResponse,
    MissingCredential,
    RateLimited,
    Unauthorized,
)


@dataclass(frozen=True)
class RetryRule:
    retry: bool
    # Only retry when the backend said how long to wait
    requires_hint: bool = False


RETRY_POLICY: dict[str, RetryRule] = {
    RateLimited.kind: RetryRule(retry=True, requires_hint=True),
    BackendUnavailable.kind: RetryRule(retry=True),
    MissingCredential.kind: RetryRule(retry=False),
    InvalidInput.kind: RetryRule(retry=False),
    Unauthorized.kind: RetryRule(retry=False),
    MalformedResponse.kind: RetryRule(retry=False),
}


def retry_hint(error: DispatchError) -> float | None:
    return getattr(error, "retry_after", None)


def should_retry(error: DispatchError, attempt: int, max_attempts: int) -> bool:
    """Whether a failed attempt (1-based) should be followed by another."""
    if attempt >= max_attempts:
        return False
    rule = RETRY_POLICY.get(error.kind)
    if rule is None or not rule.retry:
        return False
    if rule.requires_hint and retry_hint(error) is None:
        return False
    return True


def backoff_delay(
    error: DispatchError,
    attempt: int,
    base: float = 1.0,
    maximum: float = 30.0,
) -> float:
    """
    Seconds to wait after failed attempt ``attempt`` (1-based).

    Exponential ``base * 2**(attempt - 1)``, raised to the backend's
    retry hint when that is longer, and capped at ``maximum``.
    """
    delay = base * 2 ** (attempt - 1)
    hint = retry_hint(error)
    if hint is not None:
        delay = max(delay, hint)
    return min(delay, maximum)
