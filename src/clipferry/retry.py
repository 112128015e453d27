from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from .app_logging import LOGGER_NAME, log_with_fields

T = TypeVar("T")


def _never_retry(error: BaseException) -> bool:
    return False


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    is_retryable: Callable[[BaseException], bool] = _never_retry
    backoff_seconds: float = 0.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return self.backoff_seconds * (2 ** (attempt - 1))


@dataclass(slots=True)
class StepResult(Generic[T]):
    step: str
    attempts: int
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


class StepExecutor:
    """Runs one operation under a retry policy.

    Non-retryable errors stop immediately; retryable ones are attempted again
    after an exponential backoff until ``max_attempts`` is reached. Every
    attempt is logged. With a cancel event and no explicit ``sleep``, the
    backoff wait ends early once the event is set; an attempt in progress is
    never interrupted.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        logger: logging.Logger | None = None,
        *,
        sleep: Callable[[float], object] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.policy = policy
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.cancel_event = cancel_event
        if sleep is None:
            sleep = cancel_event.wait if cancel_event is not None else time.sleep
        self.sleep = sleep

    def execute(self, step: str, operation: Callable[[], T], *, job: str | None = None) -> StepResult[T]:
        attempt = 0
        while True:
            attempt += 1
            log_with_fields(
                self.logger,
                logging.INFO,
                "step_attempt",
                job=job,
                step=step,
                attempt=attempt,
                max_attempts=self.policy.max_attempts,
            )
            try:
                value = operation()
            except Exception as exc:
                retryable = self.policy.is_retryable(exc)
                exhausted = attempt >= self.policy.max_attempts
                log_with_fields(
                    self.logger,
                    logging.WARNING if retryable and not exhausted else logging.ERROR,
                    "step_attempt_failed",
                    job=job,
                    step=step,
                    attempt=attempt,
                    retryable=retryable,
                    error=str(exc),
                )
                if exhausted or not retryable:
                    return StepResult(step=step, attempts=attempt, error=exc)
                if self.cancel_event is not None and self.cancel_event.is_set():
                    return StepResult(step=step, attempts=attempt, error=exc)
                delay = self.policy.delay_for(attempt)
                if delay > 0:
                    self.sleep(delay)
                    if self.cancel_event is not None and self.cancel_event.is_set():
                        return StepResult(step=step, attempts=attempt, error=exc)
                continue
            return StepResult(step=step, attempts=attempt, value=value)
