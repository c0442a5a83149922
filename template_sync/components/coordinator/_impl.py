"""
Optimistic CAS retry loop - shared by live and background writers.

Models one logical write as an explicit state machine:

    READ_VERSION -> ATTEMPT_WRITE -> (BACKOFF -> READ_VERSION)* -> terminal

Terminals: SUCCESS, EXHAUSTED, TIMEOUT, FATAL, NOT_FOUND, ABORTED.

Key behaviors:
- Only a version conflict drives a retry; store failures are fatal
- Every retry re-reads, a stale expected version would conflict again
- Attempts are bounded by max_attempts, wall time by deadline_ms
- The deadline is checked at decision points only, never mid-write
- Backoff delays never shrink between consecutive attempts
- The cache is invalidated before SUCCESS is reported
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from template_sync.adapters.clock import SystemClock
from template_sync.core.ports.store import (
    Committed,
    NotFound,
    StoreError,
    StoreFailure,
    TemplateStorePort,
    VersionConflict,
)
from template_sync.core.ports.time import TimePort
from template_sync.domain.entities import Template

from .models import DEFAULT_OPTIONS, UpdateOptions
from .ports import CacheInvalidatorPort

logger = logging.getLogger(__name__)


# --- States ---


class RetryState(Enum):
    READ_VERSION = "read_version"
    ATTEMPT_WRITE = "attempt_write"
    BACKOFF = "backoff"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    TIMEOUT = "timeout"
    FATAL = "fatal"
    NOT_FOUND = "not_found"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset(
    {
        RetryState.SUCCESS,
        RetryState.EXHAUSTED,
        RetryState.TIMEOUT,
        RetryState.FATAL,
        RetryState.NOT_FOUND,
        RetryState.ABORTED,
    }
)


# --- Change planning ---


@dataclass(frozen=True)
class Skip:
    """Returned by a planner to abandon the write without error."""

    reason: str


# Builds the change set from the freshly read record (called once per attempt)
ChangePlanner = Callable[[Template], dict[str, Any] | Skip]


# --- Outcome ---


@dataclass(frozen=True)
class CasOutcome:
    """Terminal result of one run of the loop."""

    state: RetryState
    attempts: int
    template: Template | None = None
    last_version: str | None = None
    delays_ms: tuple[float, ...] = ()
    message: str = ""
    cause: BaseException | None = None
    skip_reason: str | None = None

    @property
    def committed(self) -> bool:
        return self.state is RetryState.SUCCESS


# --- Backoff Calculation ---


def compute_backoff_ms(
    attempt: int,
    options: UpdateOptions = DEFAULT_OPTIONS,
    rng: random.Random | None = None,
    previous_ms: float = 0.0,
) -> float:
    """
    Delay to wait after failed attempt number ``attempt`` (1-based).

    base * multiplier^(attempt-1), plus up to one base interval of jitter
    when enabled. Clamped to at least ``previous_ms`` so the sequence
    never decreases.
    """
    exponent = max(attempt - 1, 0)
    delay = options.base_backoff_ms * options.backoff_multiplier**exponent
    if options.jitter and options.base_backoff_ms > 0:
        delay += (rng or random).uniform(0, options.base_backoff_ms)
    return max(delay, previous_ms)


# --- Loop ---


class CasRetryLoop:
    """
    Drives READ_VERSION / ATTEMPT_WRITE / BACKOFF until a terminal state.

    Stateless between runs; safe to share across threads.
    """

    def __init__(
        self,
        store: TemplateStorePort,
        time_port: TimePort | None = None,
        options: UpdateOptions | None = None,
        invalidator: CacheInvalidatorPort | None = None,
        rng: random.Random | None = None,
        writer: str = "live",
    ) -> None:
        self._store = store
        self._time = time_port or SystemClock()
        self._options = options or DEFAULT_OPTIONS
        self._invalidator = invalidator
        self._rng = rng
        self._writer = writer

    def run(
        self,
        template_id: str,
        plan: ChangePlanner,
        options: UpdateOptions | None = None,
    ) -> CasOutcome:
        opts = options or self._options
        started = self._time.monotonic()

        def elapsed_ms() -> float:
            return (self._time.monotonic() - started) * 1000

        state = RetryState.READ_VERSION
        attempt = 1
        current: Template | None = None
        committed: Template | None = None
        last_version: str | None = None
        delays: list[float] = []
        previous_delay = 0.0
        message = ""
        cause: BaseException | None = None
        skip_reason: str | None = None

        while state not in TERMINAL_STATES:
            if state is RetryState.READ_VERSION:
                try:
                    current = self._store.read(template_id)
                except StoreError as e:
                    logger.error("Read of %s failed: %s", template_id, e)
                    message = str(e)
                    cause = e.cause or e
                    state = RetryState.FATAL
                    continue

                if current is None:
                    message = f"Template {template_id} not found"
                    state = RetryState.NOT_FOUND
                    continue

                last_version = current.version
                state = RetryState.ATTEMPT_WRITE

            elif state is RetryState.ATTEMPT_WRITE:
                assert current is not None
                planned = plan(current)
                if isinstance(planned, Skip):
                    skip_reason = planned.reason
                    message = planned.reason
                    state = RetryState.ABORTED
                    continue

                result = self._store.conditional_write(template_id, planned, current.version)

                if isinstance(result, Committed):
                    committed = result.template
                    last_version = committed.version
                    if self._invalidator is not None:
                        self._invalidator.invalidate(template_id)
                    state = RetryState.SUCCESS

                elif isinstance(result, VersionConflict):
                    if result.current_version is not None:
                        last_version = result.current_version
                    logger.info(
                        "Version conflict on %s (%s writer, attempt %d/%d, expected %s, found %s)",
                        template_id,
                        self._writer,
                        attempt,
                        opts.max_attempts,
                        result.expected_version,
                        result.current_version,
                    )
                    if attempt >= opts.max_attempts:
                        message = (
                            f"Version conflict on {template_id} persisted "
                            f"after {attempt} attempts"
                        )
                        state = RetryState.EXHAUSTED
                    elif elapsed_ms() >= opts.deadline_ms:
                        message = self._timeout_message(template_id, opts, attempt)
                        state = RetryState.TIMEOUT
                    else:
                        state = RetryState.BACKOFF

                elif isinstance(result, NotFound):
                    message = f"Template {template_id} not found"
                    state = RetryState.NOT_FOUND

                elif isinstance(result, StoreFailure):
                    logger.error("Write of %s failed: %s", template_id, result.message)
                    message = result.message
                    cause = result.cause
                    state = RetryState.FATAL

                else:
                    raise TypeError(f"Unexpected write result: {result!r}")

            elif state is RetryState.BACKOFF:
                delay = compute_backoff_ms(attempt, opts, self._rng, previous_delay)
                remaining = max(opts.deadline_ms - elapsed_ms(), 0.0)
                wait = min(delay, remaining)
                delays.append(wait)
                self._time.sleep(wait / 1000)
                previous_delay = delay

                if elapsed_ms() >= opts.deadline_ms:
                    message = self._timeout_message(template_id, opts, attempt)
                    state = RetryState.TIMEOUT
                else:
                    attempt += 1
                    state = RetryState.READ_VERSION

        if state in (RetryState.EXHAUSTED, RetryState.TIMEOUT):
            logger.warning("%s (last version %s)", message, last_version)

        return CasOutcome(
            state=state,
            attempts=attempt,
            template=committed,
            last_version=last_version,
            delays_ms=tuple(delays),
            message=message,
            cause=cause,
            skip_reason=skip_reason,
        )

    @staticmethod
    def _timeout_message(template_id: str, opts: UpdateOptions, attempts: int) -> str:
        return (
            f"Deadline of {opts.deadline_ms:g}ms exceeded on {template_id} "
            f"after {attempts} attempts"
        )
