import copy
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Enums / Literals ---
FieldType = Literal["text", "number", "checkbox", "select", "date"]

# Fields owned by the store and the writers, never by a patch
BOOKKEEPING_FIELDS = frozenset(
    {"id", "version", "updated_at", "last_user_update", "processed_at"}
)


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Naive timestamps are taken to be UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# --- Template parts ---

class TemplateSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    fields: list[str] = Field(default_factory=list)
    order: int = 0

class FieldDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: FieldType = "text"
    label: str = ""
    required: bool = False
    validation: dict[str, Any] | None = None
    options: list[str] | None = None
    # Derived by the background processor
    processed: bool = False
    processed_at: datetime | None = None

    @field_validator("processed_at")
    @classmethod
    def _utc_processed_at(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

class InspectionVariant(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    conditions: dict[str, Any] = Field(default_factory=dict)
    field_overrides: dict[str, Any] = Field(default_factory=dict)

# --- Template (the versioned record) ---

class Template(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    description: str | None = None
    organization_id: str | None = None
    sections: list[TemplateSection] = Field(default_factory=list)
    field_definitions: dict[str, FieldDefinition] = Field(default_factory=dict)
    inspection_variants: list[InspectionVariant] = Field(default_factory=list)
    update_count: int = 0

    # Opaque token, compared for equality only
    version: str = "1"
    updated_at: datetime = Field(default_factory=utc_now)
    # Advanced by live (interactive) writes only
    last_user_update: datetime | None = None
    # Advanced by background writes only
    processed_at: datetime | None = None

    @field_validator("updated_at", "last_user_update", "processed_at")
    @classmethod
    def _utc_timestamps(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    def with_changes(self, changes: dict[str, Any]) -> "Template":
        """Whole-field replacement: every key in changes overwrites the stored field."""
        data = self.model_dump()
        data.update(copy.deepcopy(changes))
        return Template.model_validate(data)


class TemplatePatch(BaseModel):
    """
    Partial update over the mutable template fields.

    A field that is set (even to None) replaces the stored field entirely;
    unset fields are left untouched. Nested structures are never merged.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str | None = None
    description: str | None = None
    sections: list[TemplateSection] | None = None
    field_definitions: dict[str, FieldDefinition] | None = None
    inspection_variants: list[InspectionVariant] | None = None
    update_count: int | None = None

    @field_validator(
        "name", "sections", "field_definitions", "inspection_variants", "update_count"
    )
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        # Only reached for explicitly supplied values
        if value is None:
            raise ValueError("field cannot be set to null")
        return value

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def is_empty(self) -> bool:
        return not self.model_fields_set
