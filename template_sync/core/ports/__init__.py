# template-sync: ports (adapter interfaces)

from .store import (
    Committed,
    NotFound,
    StoreError,
    StoreFailure,
    TemplateStorePort,
    VersionConflict,
    WriteResult,
)
from .time import TimePort

__all__ = [
    "Committed",
    "NotFound",
    "StoreError",
    "StoreFailure",
    "TemplateStorePort",
    "TimePort",
    "VersionConflict",
    "WriteResult",
]
