"""Error-classified retry policy.

Each ErrorType maps to a fixed RetryStrategy. Rate limits are retried most
patiently, transport failures moderately, API/unknown errors conservatively,
and token-limit failures never (a request that did not fit will not fit on
the next attempt either).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, NamedTuple, TypeVar

from hunkwise_core.state import ErrorType, classify_exception

logger = logging.getLogger(__name__)

DEFAULT_MAX_DELAY_MS = 300_000

T = TypeVar("T")


class RetryStrategy(NamedTuple):
    max_attempts: int
    base_delay: int  # milliseconds
    should_retry: bool


_CONSERVATIVE = RetryStrategy(max_attempts=2, base_delay=1000, should_retry=True)
_TRANSPORT = RetryStrategy(max_attempts=3, base_delay=2000, should_retry=True)

RETRY_STRATEGIES: dict[str, RetryStrategy] = {
    "rate_limit": RetryStrategy(max_attempts=5, base_delay=5000, should_retry=True),
    "timeout": _TRANSPORT,
    "network": _TRANSPORT,
    "token_limit": RetryStrategy(max_attempts=0, base_delay=0, should_retry=False),
    "api_error": _CONSERVATIVE,
    "unknown": _CONSERVATIVE,
}


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    per_error_type_max_attempts: dict[str, int] = field(default_factory=dict)


class RetryExhaustedError(Exception):
    """Raised by call_with_retry once no further attempt is allowed."""

    def __init__(self, message: str, error_type: ErrorType, attempts: int):
        super().__init__(message)
        self.error_type = error_type
        self.attempts = attempts


def get_retry_strategy(error_type: str) -> RetryStrategy:
    return RETRY_STRATEGIES.get(error_type, _CONSERVATIVE)


def build_retry_config(max_attempts: int = 3, overrides: dict[str, int] | None = None) -> RetryConfig:
    """RetryConfig using each strategy's own attempt count, with optional per-type overrides."""
    per_type = {name: s.max_attempts for name, s in RETRY_STRATEGIES.items() if s.should_retry}
    per_type.update(overrides or {})
    return RetryConfig(max_attempts=max_attempts, per_error_type_max_attempts=per_type)


def calculate_backoff_delay(attempt: int, base_delay: int, max_delay: int = DEFAULT_MAX_DELAY_MS) -> int:
    """Exponential backoff in milliseconds: ``base_delay * 2**attempt``, capped at ``max_delay``."""
    if base_delay == 0:
        return 0
    return min(base_delay * 2 ** max(attempt, 0), max_delay)


def should_retry(attempt: int, error_type: str, config: RetryConfig) -> bool:
    """Whether a failure on 0-indexed ``attempt`` may be retried."""
    if not get_retry_strategy(error_type).should_retry:
        return False
    max_attempts = config.per_error_type_max_attempts.get(error_type, config.max_attempts)
    return attempt < max_attempts


def call_with_retry(
    fn: Callable[[], T],
    config: RetryConfig,
    *,
    describe: str = "call",
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Call ``fn`` until it succeeds or the retry policy gives up.

    Failures are classified from the raised exception; the strategy for that
    type decides the backoff. When retries run out the last exception is
    re-raised wrapped in RetryExhaustedError.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            error_type = classify_exception(e)
            if not should_retry(attempt, error_type, config):
                logger.error("%s failed after %d attempt(s) [%s]: %s", describe, attempt + 1, error_type, e)
                raise RetryExhaustedError(str(e), error_type, attempt + 1) from e
            delay_ms = calculate_backoff_delay(attempt, get_retry_strategy(error_type).base_delay)
            logger.warning(
                "%s error (attempt %d, %s): %s. Retrying in %.1fs...",
                describe,
                attempt + 1,
                error_type,
                e,
                delay_ms / 1000,
            )
            (sleep or time.sleep)(delay_ms / 1000)
            attempt += 1
