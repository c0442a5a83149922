import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from template_sync.adapters.dev_jobs import DevBackgroundRunner
from template_sync.api.deps import get_rules, get_settings, get_template_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    # Load rules and build the service on startup (fail-fast)
    try:
        rules = get_rules()
        service = get_template_service(get_settings())
    except Exception:
        logger.critical("Template service startup failed", exc_info=True)
        raise
    logger.info("Rules loaded (version %s, store %s)", rules.rules_version, rules.store.backend)

    runner: DevBackgroundRunner | None = None
    if rules.runner.enabled:
        runner = DevBackgroundRunner(
            processor=service.processor,
            list_ids=service.store.list_ids,
            poll_interval_seconds=rules.runner.poll_interval_seconds,
        )
        runner.start()

    yield

    if runner is not None:
        runner.stop()
    service.close()


app = FastAPI(
    title="Template Sync API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from template_sync.api.routes import templates  # noqa: E402

app.include_router(templates.router, prefix="/api/templates", tags=["Templates"])


@app.get("/health")
def health_check() -> dict[str, Any]:
    return {"status": "ok", "service": "template-sync"}
