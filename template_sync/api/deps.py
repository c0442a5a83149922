import os
from functools import lru_cache
from pathlib import Path

from fastapi import Depends

from template_sync.rules.loader import load_rules
from template_sync.rules.models import SyncRules
from template_sync.services.templates import TemplateService


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("SYNC_DATA_DIR", "./data"))
        self.rules_path = Path(os.environ.get("SYNC_RULES_PATH", self.base_dir / "rules.yaml"))


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> SyncRules:
    return load_rules(get_settings().rules_path)


# --- Service ---
@lru_cache
def _build_template_service(settings: Settings) -> TemplateService:
    rules = load_rules(settings.rules_path)
    # Migrations ship with the code; the database lives under the data dir
    rules = rules.model_copy(
        update={
            "store": rules.store.model_copy(
                update={"migrations_dir": str(settings.base_dir / rules.store.migrations_dir)}
            )
        }
    )
    return TemplateService.from_rules(rules, base_dir=settings.data_dir)


def get_template_service(
    settings: Settings = Depends(get_settings),
) -> TemplateService:
    return _build_template_service(settings)
