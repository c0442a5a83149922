"""
Coordinator component - Live template updates with optimistic locking.

Handles one logical write per call: read the current version, attempt a
conditional write, back off and retry on conflict, invalidate the cache
on commit.

Invariants:
- I1: A write commits only against the version it was planned from
- I2: Only version conflicts are retried; store failures fail fast
- I3: Retries are bounded by attempts and by the deadline
- I4: The cache entry is gone before success is reported
- I5: Every live commit advances last_user_update
"""

from __future__ import annotations

import random
from typing import Any

from template_sync.adapters.clock import SystemClock
from template_sync.domain.entities import Template, TemplatePatch

from ._impl import CasOutcome, CasRetryLoop, RetryState
from .models import (
    DEFAULT_OPTIONS,
    ErrorKind,
    UpdateError,
    UpdateOptions,
    UpdateTemplateInput,
    UpdateTemplateOutput,
)
from .ports import CacheInvalidatorPort, TemplateStorePort, TimePort

_ERROR_KINDS = {
    RetryState.EXHAUSTED: ErrorKind.EXHAUSTED,
    RetryState.TIMEOUT: ErrorKind.TIMEOUT,
    RetryState.FATAL: ErrorKind.STORE_ERROR,
    RetryState.NOT_FOUND: ErrorKind.NOT_FOUND,
}


def _convert_outcome(outcome: CasOutcome) -> UpdateTemplateOutput:
    """Convert a terminal loop outcome to the component output."""
    if outcome.state is RetryState.SUCCESS:
        assert outcome.template is not None
        return UpdateTemplateOutput(
            template=outcome.template,
            new_version=outcome.template.version,
            attempts=outcome.attempts,
            success=True,
        )

    kind = _ERROR_KINDS.get(outcome.state)
    if kind is None:
        raise ValueError(f"Live updates cannot end in state {outcome.state}")

    return UpdateTemplateOutput(
        error=UpdateError(
            kind=kind,
            message=outcome.message,
            attempts=outcome.attempts,
            last_version=outcome.last_version,
            cause=repr(outcome.cause) if outcome.cause is not None else None,
        ),
        attempts=outcome.attempts,
        success=False,
    )


class UpdateCoordinator:
    """
    Orchestrates live writes against the versioned store.

    The coordinator owns no data; the cache it invalidates is injected.
    """

    def __init__(
        self,
        store: TemplateStorePort,
        cache: CacheInvalidatorPort | None = None,
        time_port: TimePort | None = None,
        default_options: UpdateOptions | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._time = time_port or SystemClock()
        self._loop = CasRetryLoop(
            store=store,
            time_port=self._time,
            options=default_options or DEFAULT_OPTIONS,
            invalidator=cache,
            rng=rng,
            writer="live",
        )

    def update_template(
        self,
        template_id: str,
        patch: TemplatePatch,
        options: UpdateOptions | None = None,
    ) -> UpdateTemplateOutput:
        """
        Apply ``patch`` to a template with optimistic locking.

        Args:
            template_id: Template to update.
            patch: Fields to replace (whole-field).
            options: Retry budget; defaults to the coordinator's.

        Returns:
            UpdateTemplateOutput with the committed template or an error.
        """
        changes = patch.changes()

        def plan(current: Template) -> dict[str, Any]:
            return {**changes, "last_user_update": self._time.now_utc()}

        outcome = self._loop.run(template_id, plan, options)
        return _convert_outcome(outcome)


# --- Component Entry Points ---


def run_update(
    inp: UpdateTemplateInput,
    *,
    store: TemplateStorePort,
    cache: CacheInvalidatorPort | None = None,
    time_port: TimePort | None = None,
    rng: random.Random | None = None,
) -> UpdateTemplateOutput:
    """
    Update a template on behalf of a live caller.

    Args:
        inp: Input containing template_id, patch and optional options.
        store: Versioned template store port.
        cache: Optional cache to invalidate on commit.
        time_port: Optional time port for timestamps, deadline and sleep.
        rng: Optional random source for jitter.

    Returns:
        UpdateTemplateOutput with the committed template or an error.
    """
    coordinator = UpdateCoordinator(store=store, cache=cache, time_port=time_port, rng=rng)
    return coordinator.update_template(inp.template_id, inp.patch, inp.options)


def run(
    inp: UpdateTemplateInput,
    *,
    store: TemplateStorePort,
    cache: CacheInvalidatorPort | None = None,
    time_port: TimePort | None = None,
) -> UpdateTemplateOutput:
    """Main entry point for the coordinator component."""
    if isinstance(inp, UpdateTemplateInput):
        return run_update(inp, store=store, cache=cache, time_port=time_port)
    raise ValueError(f"Unknown input type: {type(inp)}")
