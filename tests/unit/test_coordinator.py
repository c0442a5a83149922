"""
Tests for UpdateCoordinator and the CAS retry loop.

Test assertions:
- Commits against the version it read and stamps last_user_update
- Always-conflicting store: at most max_attempts writes, then exhausted
- Backoff delays never shrink between attempts
- Deadline aborts the loop with a timeout distinct from exhaustion
- Store failures and missing records fail fast without retry
- The cache is invalidated on commit, never refreshed
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any

import pytest

from template_sync.adapters.memory_store import InMemoryTemplateStore
from template_sync.components.coordinator import (
    CasRetryLoop,
    ErrorKind,
    RetryState,
    Skip,
    UpdateCoordinator,
    UpdateOptions,
    UpdateTemplateInput,
    compute_backoff_ms,
    run,
)
from template_sync.core.ports.store import (
    StoreError,
    StoreFailure,
    VersionConflict,
    WriteResult,
)
from template_sync.domain.entities import Template, TemplatePatch

# --- Mock Implementations ---


@dataclass
class AlwaysConflictStore:
    """Reads from a real store, but every conditional write conflicts."""

    inner: InMemoryTemplateStore
    writes: int = 0

    def read(self, template_id: str) -> Template | None:
        return self.inner.read(template_id)

    def conditional_write(
        self, template_id: str, changes: dict[str, Any], expected_version: str
    ) -> WriteResult:
        self.writes += 1
        return VersionConflict(expected_version=expected_version, current_version="v-other")


@dataclass
class FailingStore:
    """Every write fails with a store error."""

    inner: InMemoryTemplateStore
    writes: int = 0

    def read(self, template_id: str) -> Template | None:
        return self.inner.read(template_id)

    def conditional_write(
        self, template_id: str, changes: dict[str, Any], expected_version: str
    ) -> WriteResult:
        self.writes += 1
        return StoreFailure(message="disk full", cause=OSError("disk full"))


@dataclass
class BrokenReadStore:
    def read(self, template_id: str) -> Template | None:
        raise StoreError("connection refused", cause=ConnectionError("refused"))

    def conditional_write(
        self, template_id: str, changes: dict[str, Any], expected_version: str
    ) -> WriteResult:
        raise AssertionError("must not write after a failed read")


@dataclass
class ConflictOnceStore:
    """First write loses a race against a competing commit, then delegates."""

    inner: InMemoryTemplateStore
    competing_changes: dict[str, Any]
    writes: int = 0

    def read(self, template_id: str) -> Template | None:
        return self.inner.read(template_id)

    def conditional_write(
        self, template_id: str, changes: dict[str, Any], expected_version: str
    ) -> WriteResult:
        self.writes += 1
        if self.writes == 1:
            self.inner.conditional_write(template_id, self.competing_changes, expected_version)
        return self.inner.conditional_write(template_id, changes, expected_version)


@dataclass
class RecordingCache:
    invalidated: list[str] = field(default_factory=list)

    def invalidate(self, template_id: str) -> None:
        self.invalidated.append(template_id)


# --- Backoff ---


class TestComputeBackoff:
    def test_exponential_without_jitter(self) -> None:
        opts = UpdateOptions(base_backoff_ms=100, backoff_multiplier=2.0)
        assert compute_backoff_ms(1, opts) == 100
        assert compute_backoff_ms(2, opts) == 200
        assert compute_backoff_ms(3, opts) == 400

    def test_jitter_within_one_base_interval(self) -> None:
        opts = UpdateOptions(base_backoff_ms=100, backoff_multiplier=2.0, jitter=True)
        rng = random.Random(7)
        for attempt in range(1, 6):
            delay = compute_backoff_ms(attempt, opts, rng)
            floor = 100 * 2 ** (attempt - 1)
            assert floor <= delay <= floor + 100

    def test_clamped_to_previous(self) -> None:
        opts = UpdateOptions(base_backoff_ms=100, backoff_multiplier=1.0)
        assert compute_backoff_ms(2, opts, previous_ms=150) == 150

    def test_jitter_sequence_never_decreases(self) -> None:
        opts = UpdateOptions(base_backoff_ms=100, backoff_multiplier=1.0, jitter=True)
        rng = random.Random(3)
        previous = 0.0
        for attempt in range(1, 20):
            delay = compute_backoff_ms(attempt, opts, rng, previous)
            assert delay >= previous
            previous = delay


class TestUpdateOptions:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"base_backoff_ms": -1},
            {"backoff_multiplier": 0.5},
            {"deadline_ms": 0},
        ],
    )
    def test_invalid_options_rejected(self, kwargs: dict[str, Any]) -> None:
        with pytest.raises(ValueError):
            UpdateOptions(**kwargs)


# --- Coordinator ---


class TestUpdateSuccess:
    def test_commits_and_bumps_version(self, memory_store, clock) -> None:
        coordinator = UpdateCoordinator(store=memory_store, time_port=clock)

        result = coordinator.update_template("t1", TemplatePatch(name="A"))

        assert result.success is True
        assert result.new_version == "v2"
        assert result.attempts == 1
        assert result.template is not None
        assert result.template.name == "A"
        assert memory_store.read("t1").name == "A"

    def test_stamps_last_user_update(self, memory_store, clock) -> None:
        clock.advance(1)
        coordinator = UpdateCoordinator(store=memory_store, time_port=clock)

        result = coordinator.update_template("t1", TemplatePatch(description="B"))

        assert result.template is not None
        assert result.template.last_user_update == clock.now_utc()
        assert result.template.updated_at == clock.now_utc()

    def test_invalidates_cache_on_commit(self, memory_store, clock) -> None:
        cache = RecordingCache()
        coordinator = UpdateCoordinator(store=memory_store, cache=cache, time_port=clock)

        coordinator.update_template("t1", TemplatePatch(name="A"))

        assert cache.invalidated == ["t1"]

    def test_empty_patch_still_commits(self, memory_store, clock) -> None:
        coordinator = UpdateCoordinator(store=memory_store, time_port=clock)

        result = coordinator.update_template("t1", TemplatePatch())

        assert result.success is True
        assert result.new_version == "v2"
        assert result.template is not None
        assert result.template.name == "Original"

    def test_retries_after_conflict_and_keeps_both_changes(self, memory_store, clock) -> None:
        store = ConflictOnceStore(inner=memory_store, competing_changes={"name": "A"})
        coordinator = UpdateCoordinator(store=store, time_port=clock)

        result = coordinator.update_template("t1", TemplatePatch(description="B"))

        assert result.success is True
        assert result.attempts == 2
        assert result.new_version == "v3"
        final = memory_store.read("t1")
        assert final.name == "A"
        assert final.description == "B"
        assert clock.sleeps == [0.1]


class TestBoundedRetry:
    def test_always_conflict_exhausts(self, memory_store, clock) -> None:
        store = AlwaysConflictStore(inner=memory_store)
        cache = RecordingCache()
        coordinator = UpdateCoordinator(store=store, cache=cache, time_port=clock)
        opts = UpdateOptions(max_attempts=3, base_backoff_ms=10, deadline_ms=60_000)

        result = coordinator.update_template("t1", TemplatePatch(name="A"), opts)

        assert result.success is False
        assert result.error is not None
        assert result.error.kind is ErrorKind.EXHAUSTED
        assert result.error.attempts == 3
        assert result.error.last_version == "v-other"
        assert store.writes == 3
        assert cache.invalidated == []

    def test_single_attempt_never_sleeps(self, memory_store, clock) -> None:
        store = AlwaysConflictStore(inner=memory_store)
        coordinator = UpdateCoordinator(store=store, time_port=clock)

        result = coordinator.update_template(
            "t1", TemplatePatch(name="A"), UpdateOptions(max_attempts=1)
        )

        assert result.error is not None
        assert result.error.kind is ErrorKind.EXHAUSTED
        assert store.writes == 1
        assert clock.sleeps == []

    def test_observed_delays_monotonic(self, memory_store, clock) -> None:
        store = AlwaysConflictStore(inner=memory_store)
        loop = CasRetryLoop(store=store, time_port=clock, rng=random.Random(11))
        opts = UpdateOptions(
            max_attempts=6, base_backoff_ms=20, backoff_multiplier=1.0, jitter=True,
            deadline_ms=60_000,
        )

        outcome = loop.run("t1", lambda current: {"name": "A"}, opts)

        assert outcome.state is RetryState.EXHAUSTED
        assert len(outcome.delays_ms) == 5
        assert list(outcome.delays_ms) == sorted(outcome.delays_ms)

    def test_delays_follow_multiplier(self, memory_store, clock) -> None:
        store = AlwaysConflictStore(inner=memory_store)
        loop = CasRetryLoop(store=store, time_port=clock)
        opts = UpdateOptions(max_attempts=4, base_backoff_ms=100, deadline_ms=60_000)

        outcome = loop.run("t1", lambda current: {"name": "A"}, opts)

        assert outcome.delays_ms == (100, 200, 400)


class TestDeadline:
    def test_deadline_yields_timeout(self, memory_store, clock) -> None:
        store = AlwaysConflictStore(inner=memory_store)
        coordinator = UpdateCoordinator(store=store, time_port=clock)
        opts = UpdateOptions(max_attempts=10, base_backoff_ms=100, deadline_ms=250)

        result = coordinator.update_template("t1", TemplatePatch(name="A"), opts)

        assert result.error is not None
        assert result.error.kind is ErrorKind.TIMEOUT
        assert store.writes < 10
        # Waits are capped by the remaining budget
        assert sum(clock.sleeps) <= 0.25 + 1e-9

    def test_timeout_distinct_from_exhaustion(self, memory_store, clock) -> None:
        store = AlwaysConflictStore(inner=memory_store)
        coordinator = UpdateCoordinator(store=store, time_port=clock)

        timed_out = coordinator.update_template(
            "t1", TemplatePatch(name="A"),
            UpdateOptions(max_attempts=50, base_backoff_ms=100, deadline_ms=500),
        )
        exhausted = coordinator.update_template(
            "t1", TemplatePatch(name="A"),
            UpdateOptions(max_attempts=2, base_backoff_ms=100, deadline_ms=60_000),
        )

        assert timed_out.error is not None and exhausted.error is not None
        assert timed_out.error.kind is ErrorKind.TIMEOUT
        assert exhausted.error.kind is ErrorKind.EXHAUSTED


class TestFatalErrors:
    def test_store_failure_not_retried(self, memory_store, clock) -> None:
        store = FailingStore(inner=memory_store)
        coordinator = UpdateCoordinator(store=store, time_port=clock)

        result = coordinator.update_template("t1", TemplatePatch(name="A"))

        assert result.success is False
        assert result.error is not None
        assert result.error.kind is ErrorKind.STORE_ERROR
        assert result.error.cause is not None
        assert "disk full" in result.error.cause
        assert store.writes == 1
        assert clock.sleeps == []

    def test_read_error_is_store_error(self, clock) -> None:
        coordinator = UpdateCoordinator(store=BrokenReadStore(), time_port=clock)

        result = coordinator.update_template("t1", TemplatePatch(name="A"))

        assert result.error is not None
        assert result.error.kind is ErrorKind.STORE_ERROR
        assert "refused" in (result.error.cause or "")

    def test_missing_template_not_found(self, memory_store, clock) -> None:
        coordinator = UpdateCoordinator(store=memory_store, time_port=clock)

        result = coordinator.update_template("nope", TemplatePatch(name="A"))

        assert result.error is not None
        assert result.error.kind is ErrorKind.NOT_FOUND
        assert result.error.attempts == 1
        assert clock.sleeps == []


class TestRetryLoop:
    def test_skip_aborts_without_writing(self, memory_store, clock) -> None:
        store = AlwaysConflictStore(inner=memory_store)
        loop = CasRetryLoop(store=store, time_port=clock)

        outcome = loop.run("t1", lambda current: Skip("not today"))

        assert outcome.state is RetryState.ABORTED
        assert outcome.skip_reason == "not today"
        assert store.writes == 0

    def test_planner_sees_fresh_read_each_attempt(self, memory_store, clock) -> None:
        store = ConflictOnceStore(inner=memory_store, competing_changes={"update_count": 5})
        loop = CasRetryLoop(store=store, time_port=clock)
        seen: list[str] = []

        def plan(current: Template) -> dict[str, Any]:
            seen.append(current.version)
            return {"update_count": current.update_count + 1}

        outcome = loop.run("t1", plan)

        assert outcome.committed
        assert seen == ["v1", "v2"]
        assert memory_store.read("t1").update_count == 6


class TestEntryPoint:
    def test_run_dispatches_update(self, memory_store, clock) -> None:
        result = run(
            UpdateTemplateInput(template_id="t1", patch=TemplatePatch(name="Via run")),
            store=memory_store,
            time_port=clock,
        )
        assert result.success is True
        assert memory_store.read("t1").name == "Via run"

    def test_run_rejects_unknown_input(self, memory_store) -> None:
        with pytest.raises(ValueError):
            run("not an input", store=memory_store)  # type: ignore[arg-type]
