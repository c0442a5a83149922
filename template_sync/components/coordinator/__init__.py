"""
Coordinator component - Live template updates with optimistic locking.

Also exposes the CAS retry loop that background writers reuse.
"""

from ._impl import (
    TERMINAL_STATES,
    CasOutcome,
    CasRetryLoop,
    ChangePlanner,
    RetryState,
    Skip,
    compute_backoff_ms,
)
from .component import UpdateCoordinator, run, run_update
from .models import (
    DEFAULT_OPTIONS,
    ErrorKind,
    UpdateError,
    UpdateOptions,
    UpdateTemplateInput,
    UpdateTemplateOutput,
)
from .ports import CacheInvalidatorPort, TemplateStorePort, TimePort

__all__ = [
    # Entry points
    "run",
    "run_update",
    "UpdateCoordinator",
    # Retry loop
    "CasOutcome",
    "CasRetryLoop",
    "ChangePlanner",
    "RetryState",
    "Skip",
    "TERMINAL_STATES",
    "compute_backoff_ms",
    # Models
    "DEFAULT_OPTIONS",
    "ErrorKind",
    "UpdateError",
    "UpdateOptions",
    "UpdateTemplateInput",
    "UpdateTemplateOutput",
    # Ports
    "CacheInvalidatorPort",
    "TemplateStorePort",
    "TimePort",
]
