"""
Templates API.

Thin HTTP shell over TemplateService.

Status mapping for failed updates:
- not_found -> 404
- exhausted -> 409 (conflict budget spent)
- timeout -> 503 (deadline passed while retrying)
- store_error -> 500
"""

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from template_sync.api.deps import get_template_service
from template_sync.components.coordinator import ErrorKind, UpdateOptions
from template_sync.core.ports.store import StoreError
from template_sync.domain.entities import Template, TemplatePatch
from template_sync.services.templates import TemplateService

router = APIRouter()

_STATUS_FOR_ERROR = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.EXHAUSTED: status.HTTP_409_CONFLICT,
    ErrorKind.TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.STORE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# --- Request/Response Models ---


class UpdateOptionsRequest(BaseModel):
    """Per-call retry overrides; accepts camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    max_attempts: int | None = Field(default=None, ge=1)
    base_backoff_ms: float | None = Field(default=None, ge=0)
    backoff_multiplier: float | None = Field(default=None, ge=1)
    jitter: bool | None = None
    deadline_ms: float | None = Field(default=None, gt=0)


class UpdateTemplateRequest(BaseModel):
    """Template update request model."""

    changes: dict[str, Any]
    options: UpdateOptionsRequest | None = None


class UpdateErrorResponse(BaseModel):
    """Failure details."""

    kind: str
    message: str
    attempts: int
    last_version: str | None
    cause: str | None = None


class UpdateTemplateResponse(BaseModel):
    """Update response model."""

    success: bool
    data: Template | None = None
    new_version: str | None = None
    attempts: int


class ProcessResponse(BaseModel):
    """Background processing response."""

    template_id: str
    outcome: str
    reason: str | None = None
    version: str | None = None


class CacheStatsResponse(BaseModel):
    hits: int
    misses: int
    invalidations: int
    rejected_fills: int
    size: int
    tracked_ids: int


# --- Helper Functions ---


def merge_options(
    defaults: UpdateOptions,
    overrides: UpdateOptionsRequest | None,
) -> UpdateOptions:
    """Overlay the fields the caller supplied onto the service defaults."""
    if overrides is None:
        return defaults
    provided = overrides.model_dump(exclude_none=True)
    return UpdateOptions(**{**asdict(defaults), **provided})


# --- Endpoints ---


@router.get("/cache/stats", response_model=CacheStatsResponse, summary="Cache counters")
def get_cache_stats(
    service: TemplateService = Depends(get_template_service),
) -> CacheStatsResponse:
    return CacheStatsResponse(**asdict(service.cache_stats()))


@router.delete("/cache", status_code=status.HTTP_204_NO_CONTENT, summary="Clear the cache")
def clear_cache(
    service: TemplateService = Depends(get_template_service),
) -> None:
    service.clear_cache()


@router.delete(
    "/cache/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Drop one cached template",
)
def clear_cached_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
) -> None:
    service.clear_cache(template_id)


@router.get(
    "/{template_id}",
    response_model=Template,
    summary="Get template",
    description="Served from the cache when possible; never older than the last committed update.",
)
def get_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
) -> Template:
    try:
        template = service.get_template(template_id)
    except StoreError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e

    if template is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Template {template_id} not found",
        )
    return template


@router.patch(
    "/{template_id}",
    response_model=UpdateTemplateResponse,
    summary="Update template",
    description="Whole-field replacement with optimistic locking and bounded retry.",
)
def update_template(
    template_id: str,
    request: UpdateTemplateRequest,
    service: TemplateService = Depends(get_template_service),
) -> UpdateTemplateResponse:
    try:
        patch = TemplatePatch.model_validate(request.changes)
        options = merge_options(service.update_options, request.options)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    result = service.update_template(template_id, patch, options)

    if not result.success:
        assert result.error is not None
        error = result.error
        raise HTTPException(
            status_code=_STATUS_FOR_ERROR[error.kind],
            detail=UpdateErrorResponse(
                kind=error.kind.value,
                message=error.message,
                attempts=error.attempts,
                last_version=error.last_version,
                cause=error.cause,
            ).model_dump(),
        )

    return UpdateTemplateResponse(
        success=True,
        data=result.template,
        new_version=result.new_version,
        attempts=result.attempts,
    )


@router.post(
    "/{template_id}/process",
    response_model=ProcessResponse,
    summary="Run background processing for one template",
)
def process_template(
    template_id: str,
    service: TemplateService = Depends(get_template_service),
) -> ProcessResponse:
    result = service.process_record(template_id)
    return ProcessResponse(
        template_id=template_id,
        outcome=result.outcome,
        reason=result.reason,
        version=result.template.version if result.template else None,
    )
