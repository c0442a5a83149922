"""
Derived-field computation for background processing.

Pure functions; no I/O.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from template_sync.domain.entities import Template


def user_edit_age_ms(template: Template, now_utc: datetime) -> float | None:
    """Milliseconds since the last live edit, or None if there never was one."""
    if template.last_user_update is None:
        return None
    return (now_utc - template.last_user_update).total_seconds() * 1000


def in_cooldown(template: Template, now_utc: datetime, cooldown_ms: float) -> bool:
    """True if a live edit happened less than cooldown_ms ago."""
    age = user_edit_age_ms(template, now_utc)
    return age is not None and age < cooldown_ms


def derive_fields(template: Template, now_utc: datetime) -> dict[str, Any]:
    """
    Recompute derived fields from the given snapshot.

    Every field definition is marked processed, and the record gets a
    processed_at stamp. Live-owned fields (name, description, sections,
    last_user_update) are never part of the change set.
    """
    field_definitions = {
        key: definition.model_copy(update={"processed": True, "processed_at": now_utc})
        for key, definition in template.field_definitions.items()
    }
    return {
        "field_definitions": field_definitions,
        "processed_at": now_utc,
    }
