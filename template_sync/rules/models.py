from typing import Literal

from pydantic import BaseModel, Field

from template_sync.components.background.models import BackgroundConfig
from template_sync.components.coordinator.models import UpdateOptions


class RetryRules(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_backoff_ms: float = Field(default=100, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    jitter: bool = False
    deadline_ms: float = Field(default=3000, gt=0)

    def to_options(self) -> UpdateOptions:
        return UpdateOptions(
            max_attempts=self.max_attempts,
            base_backoff_ms=self.base_backoff_ms,
            backoff_multiplier=self.backoff_multiplier,
            jitter=self.jitter,
            deadline_ms=self.deadline_ms,
        )

class BackgroundRules(BaseModel):
    cooldown_ms: float = Field(default=5000, ge=0)
    retry: RetryRules = Field(
        default_factory=lambda: RetryRules(max_attempts=2, base_backoff_ms=50, deadline_ms=2000)
    )

    def to_config(self) -> BackgroundConfig:
        return BackgroundConfig(cooldown_ms=self.cooldown_ms, retry=self.retry.to_options())

class CacheRules(BaseModel):
    max_age_seconds: float | None = Field(default=None, gt=0)

class StoreRules(BaseModel):
    backend: Literal["memory", "sqlite"] = "memory"
    sqlite_path: str = "templates.db"
    migrations_dir: str = "migrations"

class RunnerRules(BaseModel):
    enabled: bool = False
    poll_interval_seconds: float = Field(default=60.0, gt=0)

class SyncRules(BaseModel):
    rules_version: str = "1"
    update: RetryRules = Field(default_factory=RetryRules)
    background: BackgroundRules = Field(default_factory=BackgroundRules)
    cache: CacheRules = Field(default_factory=CacheRules)
    store: StoreRules = Field(default_factory=StoreRules)
    runner: RunnerRules = Field(default_factory=RunnerRules)
