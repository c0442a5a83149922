"""
Versioned Template Store Interface.

Protocol-based interface for the durable record store. The store is the
only synchronization primitive in the system: every higher-level guarantee
(no lost updates, background deference) is derived from its atomic
conditional write.

Key requirements:
- conditional_write checks the version and applies the changes as one
  indivisible step
- two concurrent writes with the same expected version cannot both commit
- every commit assigns a fresh version token and sets updated_at
- conflicts are reported as results, not raised
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from template_sync.domain.entities import Template


class StoreError(Exception):
    """Non-transient store failure (I/O, driver, corruption). Never retried."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


# --- Conditional write results ---


@dataclass(frozen=True)
class Committed:
    """The write was applied; ``template`` is the new committed state."""

    template: Template


@dataclass(frozen=True)
class VersionConflict:
    """The expected version no longer matches the stored one."""

    expected_version: str
    current_version: str | None = None


@dataclass(frozen=True)
class NotFound:
    """The record disappeared between read and write."""

    template_id: str


@dataclass(frozen=True)
class StoreFailure:
    """The store could not complete the write."""

    message: str
    cause: BaseException | None = None


WriteResult = Committed | VersionConflict | NotFound | StoreFailure


class TemplateStorePort(Protocol):
    """Durable versioned template store."""

    def read(self, template_id: str) -> Template | None:
        """
        Read the committed state of a template.

        Returns:
            The template, or None if no record exists.

        Raises:
            StoreError: if the store cannot be read.
        """
        ...

    def conditional_write(
        self,
        template_id: str,
        changes: dict[str, Any],
        expected_version: str,
    ) -> WriteResult:
        """
        Apply ``changes`` (whole-field replacement) iff the stored version
        equals ``expected_version``.
        """
        ...

    def create(self, template: Template) -> Template:
        """Insert a new template (seeding only)."""
        ...

    def list_ids(self) -> list[str]:
        """List all template ids."""
        ...
