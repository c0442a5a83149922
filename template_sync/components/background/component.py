"""
Background component - Derived-field recomputation that defers to live edits.

Invariants:
- I1: No write while the last live edit is younger than the cooldown
- I2: The cooldown is re-checked on every re-read inside the retry loop
- I3: Conflicts are retried under the same CAS rules as live writes;
      exhaustion yields a skip, never a forced overwrite
- I4: last_user_update is never written
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from typing import Any

from template_sync.adapters.clock import SystemClock
from template_sync.components.coordinator import CasRetryLoop, RetryState, Skip
from template_sync.domain.entities import Template

from ._impl import derive_fields, in_cooldown
from .models import (
    DEFAULT_CONFIG,
    SKIP_CONFLICT,
    SKIP_RECENT_USER_UPDATE,
    BackgroundConfig,
    BatchResult,
    ProcessBatchInput,
    ProcessOutput,
    ProcessRecordInput,
)
from .ports import CacheInvalidatorPort, TemplateStorePort, TimePort

logger = logging.getLogger(__name__)


class BackgroundProcessor:
    """
    Second writer class for templates.

    Goes to the store directly; the optional invalidator keeps a shared
    read cache coherent with background commits.
    """

    def __init__(
        self,
        store: TemplateStorePort,
        time_port: TimePort | None = None,
        config: BackgroundConfig | None = None,
        invalidator: CacheInvalidatorPort | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._time = time_port or SystemClock()
        self._config = config or DEFAULT_CONFIG
        self._loop = CasRetryLoop(
            store=store,
            time_port=self._time,
            options=self._config.retry,
            invalidator=invalidator,
            rng=rng,
            writer="background",
        )

    def process_record(self, template_id: str) -> ProcessOutput:
        """
        Recompute derived fields for one template.

        Returns:
            ProcessOutput with outcome processed, skipped or failed.
        """

        def plan(current: Template) -> dict[str, Any] | Skip:
            now = self._time.now_utc()
            if in_cooldown(current, now, self._config.cooldown_ms):
                return Skip(SKIP_RECENT_USER_UPDATE)
            return derive_fields(current, now)

        outcome = self._loop.run(template_id, plan)

        if outcome.state is RetryState.SUCCESS:
            logger.info("Processed %s at version %s", template_id, outcome.last_version)
            return ProcessOutput(
                template_id=template_id,
                outcome="processed",
                template=outcome.template,
                attempts=outcome.attempts,
            )

        if outcome.state is RetryState.ABORTED:
            logger.info("Skipped %s: %s", template_id, outcome.skip_reason)
            return ProcessOutput(
                template_id=template_id,
                outcome="skipped",
                reason=outcome.skip_reason,
                attempts=outcome.attempts,
            )

        if outcome.state in (RetryState.EXHAUSTED, RetryState.TIMEOUT):
            logger.warning("Skipped %s after conflicts: %s", template_id, outcome.message)
            return ProcessOutput(
                template_id=template_id,
                outcome="skipped",
                reason=SKIP_CONFLICT,
                attempts=outcome.attempts,
            )

        logger.error("Processing %s failed: %s", template_id, outcome.message)
        return ProcessOutput(
            template_id=template_id,
            outcome="failed",
            reason=outcome.state.value,
            error=outcome.message,
            attempts=outcome.attempts,
        )

    def _process_isolated(self, template_id: str) -> ProcessOutput:
        try:
            return self.process_record(template_id)
        except Exception as e:
            logger.exception("Unexpected error processing %s", template_id)
            return ProcessOutput(
                template_id=template_id,
                outcome="failed",
                reason="error",
                error=str(e),
            )

    def process_many(self, template_ids: Iterable[str]) -> BatchResult:
        """Process several templates; one failure does not stop the batch."""
        results = tuple(self._process_isolated(template_id) for template_id in template_ids)
        return BatchResult(
            total_processed=len(results),
            processed=sum(1 for r in results if r.outcome == "processed"),
            skipped=sum(1 for r in results if r.outcome == "skipped"),
            failed=sum(1 for r in results if r.outcome == "failed"),
            results=results,
        )


# --- Component Entry Points ---


def run_process(
    inp: ProcessRecordInput,
    *,
    store: TemplateStorePort,
    time_port: TimePort | None = None,
    config: BackgroundConfig | None = None,
    invalidator: CacheInvalidatorPort | None = None,
) -> ProcessOutput:
    """
    Process one template.

    Args:
        inp: Input containing template_id.
        store: Versioned template store port.
        time_port: Optional time port.
        config: Optional cooldown and retry configuration.
        invalidator: Optional cache invalidator.

    Returns:
        ProcessOutput with outcome.
    """
    processor = BackgroundProcessor(
        store=store, time_port=time_port, config=config, invalidator=invalidator
    )
    return processor.process_record(inp.template_id)


def run_process_batch(
    inp: ProcessBatchInput,
    *,
    store: TemplateStorePort,
    time_port: TimePort | None = None,
    config: BackgroundConfig | None = None,
    invalidator: CacheInvalidatorPort | None = None,
) -> BatchResult:
    """Process a batch of templates."""
    processor = BackgroundProcessor(
        store=store, time_port=time_port, config=config, invalidator=invalidator
    )
    return processor.process_many(inp.template_ids)


def run(
    inp: ProcessRecordInput | ProcessBatchInput,
    *,
    store: TemplateStorePort,
    time_port: TimePort | None = None,
    config: BackgroundConfig | None = None,
    invalidator: CacheInvalidatorPort | None = None,
) -> ProcessOutput | BatchResult:
    """
    Main entry point for the background component.

    Dispatches to appropriate handler based on input type.
    """
    if isinstance(inp, ProcessRecordInput):
        return run_process(
            inp, store=store, time_port=time_port, config=config, invalidator=invalidator
        )
    elif isinstance(inp, ProcessBatchInput):
        return run_process_batch(
            inp, store=store, time_port=time_port, config=config, invalidator=invalidator
        )
    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
