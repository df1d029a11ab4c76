"""FastAPI application entry point.

Catalog Sort API - trigger sort runs, inspect sales tallies and the outcome
audit trail. Postgres (audit trail) and Redis (run lock) are optional: the
app starts without them and reports what is available on /health.
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from catalog_sort.logging_config import configure_run_logging
from catalog_sort.routes import api_router
from catalog_sort.schemas.common import ErrorCode, error_payload
from catalog_sort.settings import get_settings
from catalog_sort.stores.postgres import close_db, init_db, is_db_ready, ping_db
from catalog_sort.stores.redis import close_redis, init_redis, is_redis_ready

logger = logging.getLogger("catalog_sort")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure the run log, then connect the optional stores."""
    settings = get_settings()
    configure_run_logging(settings.log_file, settings.log_level)

    if settings.persist_outcomes:
        try:
            await init_db(settings)
            await ping_db()
            logger.info("Postgres connected; outcomes will be persisted")
        except Exception:
            logger.exception("Postgres init failed; outcomes go to the run log only")
            await close_db()

    try:
        await init_redis()
    except Exception:
        logger.exception("Redis init failed; runs will not take the run lock")
        await close_redis()

    yield

    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Sales-driven variant, option value and image ordering",
        lifespan=lifespan,
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=error_payload(
                ErrorCode.INTERNAL_ERROR,
                str(exc) if settings.debug else "Internal server error",
            ),
        )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        """Liveness plus which optional stores are connected."""
        return {"ok": True, "outcomes_db": is_db_ready(), "run_lock": is_redis_ready()}

    app.include_router(api_router)

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "catalog_sort.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
