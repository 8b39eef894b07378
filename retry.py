"""Bounded exponential backoff shared by initialization and transcription."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from errors import AuthError, NetworkError, RetryExhausted, VoiceCloneError
from models import RetryState

logger = logging.getLogger("voiceclone.retry")

T = TypeVar("T")

RetryCallback = Callable[[RetryState, float, BaseException], None]


class RetryPolicy:
    """Re-invoke a failing operation with ``min(base * 2**attempt, cap)`` delays.

    The retry counter is not kept here: callers thread a :class:`RetryState`
    through :meth:`call`, so a policy instance can be shared and tested in
    isolation. Once ``max_attempts`` retries have failed, the state is marked
    failed and every later call raises :class:`RetryExhausted` until the state
    is reset explicitly. Errors listed in ``fatal`` propagate on the first
    occurrence.
    """

    def __init__(
        self,
        kind: str,
        max_attempts: int,
        base_delay_s: float = 1.0,
        cap_s: Optional[float] = None,
        retry_on: Tuple[Type[BaseException], ...] = (VoiceCloneError,),
        fatal: Tuple[Type[BaseException], ...] = (),
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.kind = kind
        self.max_attempts = max_attempts
        self.base_delay_s = base_delay_s
        self.cap_s = cap_s
        self.retry_on = retry_on
        self.fatal = fatal
        self._sleep = sleep
        self._clock = clock

    def new_state(self) -> RetryState:
        return RetryState(kind=self.kind)

    def delay_for(self, attempt: int) -> float:
        delay = self.base_delay_s * (2 ** attempt)
        if self.cap_s is not None:
            delay = min(delay, self.cap_s)
        return delay

    def call(
        self,
        operation: Callable[[], T],
        state: RetryState,
        on_retry: Optional[RetryCallback] = None,
    ) -> T:
        if state.failed:
            raise RetryExhausted(self.kind, state.attempts)

        while True:
            try:
                result = operation()
            except self.retry_on as exc:
                if isinstance(exc, self.fatal):
                    raise
                if state.attempts >= self.max_attempts:
                    state.record_failure(self._clock())
                    state.failed = True
                    logger.error(
                        "%s failed permanently after %d attempts: %s",
                        self.kind,
                        state.attempts,
                        exc,
                    )
                    raise RetryExhausted(self.kind, state.attempts) from exc
                delay = self.delay_for(state.attempts)
                state.record_failure(self._clock())
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                    self.kind,
                    state.attempts,
                    self.max_attempts,
                    delay,
                    exc,
                )
                if on_retry is not None:
                    on_retry(state, delay, exc)
                self._sleep(delay)
                continue
            state.reset()
            return result


MAX_RETRIES = 3
MAX_TRANSCRIPTION_RETRIES = 5


def init_retry_policy(**kwargs) -> RetryPolicy:
    return RetryPolicy("init", MAX_RETRIES, base_delay_s=1.0, **kwargs)


def transcription_retry_policy(**kwargs) -> RetryPolicy:
    kwargs.setdefault("retry_on", (NetworkError,))
    kwargs.setdefault("fatal", (AuthError,))
    return RetryPolicy(
        "transcription",
        MAX_TRANSCRIPTION_RETRIES,
        base_delay_s=1.0,
        cap_s=10.0,
        **kwargs,
    )
