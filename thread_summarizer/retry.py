from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .config_schema import RetryPolicyConfig

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    Exponential backoff for throttled generation calls.

    max_attempts counts the first call, so the defaults give 1 call + 3 retries
    with waits of 5s, 10s and 20s in between.
    """

    max_attempts: int = 4
    base_delay_seconds: float = 5.0
    max_delay_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")

    @classmethod
    def from_policy(cls, policy: RetryPolicyConfig) -> "RetryConfig":
        base = float(policy.base_delay_seconds)
        return cls(
            max_attempts=int(policy.max_retries) + 1,
            base_delay_seconds=base,
            max_delay_seconds=base * (2 ** max(0, policy.max_retries - 1)),
        )

    def delays(self) -> list[float]:
        """Every wait the policy can produce, in order."""
        return [compute_backoff_seconds(n, self) for n in range(1, self.max_attempts)]


@dataclass(frozen=True)
class RetryEvent:
    operation: str
    failure_attempt: int
    next_attempt: int
    max_attempts: int
    delay_seconds: float
    reason: str | None
    error_type: str
    error_message: str


IsRetryableFn = Callable[[BaseException], tuple[bool, str | None]]
OnRetryFn = Callable[[RetryEvent], None]
SleepFn = Callable[[float], None]


def compute_backoff_seconds(failure_attempt: int, cfg: RetryConfig) -> float:
    exponent = max(0, int(failure_attempt) - 1)
    return min(cfg.max_delay_seconds, cfg.base_delay_seconds * (2**exponent))


def call_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig,
    is_retryable: IsRetryableFn,
    operation: str,
    on_retry: OnRetryFn | None = None,
    sleep_fn: SleepFn | None = None,
) -> T:
    """
    Call fn(), retrying only the failures is_retryable accepts.

    The last retryable error is re-raised once max_attempts calls have failed;
    any other error propagates from the attempt that raised it.
    """
    op = (operation or "").strip() or "operation"
    sleeper = sleep_fn or time.sleep
    attempt = 0

    while True:
        attempt += 1
        try:
            return fn()
        except Exception as exc:
            retryable, reason = is_retryable(exc)
            if not retryable or attempt >= cfg.max_attempts:
                raise

            delay = compute_backoff_seconds(attempt, cfg)
            if on_retry is not None:
                on_retry(
                    RetryEvent(
                        operation=op,
                        failure_attempt=attempt,
                        next_attempt=attempt + 1,
                        max_attempts=cfg.max_attempts,
                        delay_seconds=delay,
                        reason=reason,
                        error_type=type(exc).__name__,
                        error_message=(str(exc) or "").strip(),
                    )
                )
            if delay > 0:
                sleeper(delay)
