"""
Background component - Derived-field recomputation that defers to live edits.
"""

from ._impl import derive_fields, in_cooldown, user_edit_age_ms
from .component import BackgroundProcessor, run, run_process, run_process_batch
from .models import (
    DEFAULT_CONFIG,
    SKIP_CONFLICT,
    SKIP_RECENT_USER_UPDATE,
    BackgroundConfig,
    BatchResult,
    ProcessBatchInput,
    ProcessOutcome,
    ProcessOutput,
    ProcessRecordInput,
)
from .ports import CacheInvalidatorPort, TemplateStorePort, TimePort

__all__ = [
    # Entry points
    "run",
    "run_process",
    "run_process_batch",
    "BackgroundProcessor",
    # Functions
    "derive_fields",
    "in_cooldown",
    "user_edit_age_ms",
    # Models
    "BackgroundConfig",
    "BatchResult",
    "ProcessBatchInput",
    "ProcessOutcome",
    "ProcessOutput",
    "ProcessRecordInput",
    # Constants
    "DEFAULT_CONFIG",
    "SKIP_CONFLICT",
    "SKIP_RECENT_USER_UPDATE",
    # Ports
    "CacheInvalidatorPort",
    "TemplateStorePort",
    "TimePort",
]
