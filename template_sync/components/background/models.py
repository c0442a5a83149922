"""
Background component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from template_sync.components.coordinator.models import UpdateOptions
from template_sync.domain.entities import Template

# --- Configuration ---


@dataclass(frozen=True)
class BackgroundConfig:
    """Background processor configuration from rules."""

    # Minimum age of the last live edit before a background write is allowed
    cooldown_ms: float = 5000
    # Typically a smaller budget than live writers get
    retry: UpdateOptions = field(
        default_factory=lambda: UpdateOptions(max_attempts=2, base_backoff_ms=50, deadline_ms=2000)
    )

    def __post_init__(self) -> None:
        if self.cooldown_ms < 0:
            raise ValueError("cooldown_ms must not be negative")


DEFAULT_CONFIG = BackgroundConfig()


# --- Outcome Type ---


ProcessOutcome = Literal["processed", "skipped", "failed"]

SKIP_RECENT_USER_UPDATE = "recent user update"
SKIP_CONFLICT = "conflict"


# --- Input Models ---


@dataclass(frozen=True)
class ProcessRecordInput:
    """Input for processing one template."""

    template_id: str


@dataclass(frozen=True)
class ProcessBatchInput:
    """Input for processing several templates."""

    template_ids: tuple[str, ...]


# --- Output Models ---


@dataclass(frozen=True)
class ProcessOutput:
    """Output of processing one template."""

    template_id: str
    outcome: ProcessOutcome
    reason: str | None = None
    template: Template | None = None
    error: str | None = None
    attempts: int = 0

    @property
    def success(self) -> bool:
        # Skips are not errors
        return self.outcome != "failed"


@dataclass(frozen=True)
class BatchResult:
    """Result of processing a batch of templates."""

    total_processed: int
    processed: int
    skipped: int
    failed: int
    results: tuple[ProcessOutput, ...] = ()
