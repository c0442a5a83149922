"""
Coordinator component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from template_sync.domain.entities import Template, TemplatePatch

# --- Retry Options ---


@dataclass(frozen=True)
class UpdateOptions:
    """Retry budget for one logical write."""

    max_attempts: int = 3
    base_backoff_ms: float = 100
    backoff_multiplier: float = 2.0
    jitter: bool = False
    deadline_ms: float = 3000

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_backoff_ms < 0:
            raise ValueError("base_backoff_ms must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")
        if self.deadline_ms <= 0:
            raise ValueError("deadline_ms must be positive")


DEFAULT_OPTIONS = UpdateOptions()


# --- Error Kinds ---


class ErrorKind(Enum):
    """Why a logical write did not commit."""

    EXHAUSTED = "exhausted"  # conflict budget spent
    TIMEOUT = "timeout"  # deadline passed while retrying a conflict
    STORE_ERROR = "store_error"  # fatal, never retried
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class UpdateError:
    """Failure details, enough to diagnose without retrying blindly."""

    kind: ErrorKind
    message: str
    attempts: int
    last_version: str | None = None
    cause: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class UpdateTemplateInput:
    """Input for a live (interactive) template update."""

    template_id: str
    patch: TemplatePatch
    options: UpdateOptions | None = None


# --- Output Models ---


@dataclass(frozen=True)
class UpdateTemplateOutput:
    """Output of a template update."""

    template: Template | None = None
    new_version: str | None = None
    error: UpdateError | None = None
    attempts: int = 0
    success: bool = True
