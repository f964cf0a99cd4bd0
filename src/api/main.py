import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.api.deps import build_redirect_handler, get_redirect_hooks, get_settings
from src.api.middleware import RedirectMiddleware
from src.rules.loader import load_rules

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Load rules and migrate on startup (fail-fast)
    try:
        load_rules(settings.rules_path)
        Path(settings.data_dir).mkdir(parents=True, exist_ok=True)
        migrator = SQLiteMigrator(settings.db_path, settings.migrations_dir)
        pending = migrator.pending()
        if pending:
            logger.info("Pending migrations: %s", ", ".join(pending))
            migrator.run_migrations()
    except (OSError, ValueError, RuntimeError) as e:
        logger.critical("Startup failed: %s", e)
        sys.exit(1)

    yield


app = FastAPI(
    title="Slug Redirects API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from src.api.routes import admin_pages, admin_redirects  # noqa: E402

app.include_router(admin_redirects.router, prefix="/api/admin", tags=["Admin Redirects"])
app.include_router(admin_pages.router, prefix="/api/admin", tags=["Admin Pages"])

# Redirect lookup runs before routing for every frontend request
app.add_middleware(
    RedirectMiddleware,
    handler_factory=build_redirect_handler,
    hooks_factory=get_redirect_hooks,
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "redirects"}
