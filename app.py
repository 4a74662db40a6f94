import logging
import os
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from availability.api import router as coverage_router
from availability.dependencies import build_coverage_services
from config import get_cors_origins
from core.api import GENERIC_ERROR_MESSAGE
from core.cache import JsonCache
from core.http import cleanup_session
from core.http.circuit_breaker import upstream_states
from core.redis import close_shared_redis
from db import DatabaseManager

# Basic logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database and wire the coverage components."""
    db_manager = DatabaseManager()
    try:
        await db_manager.init_beanie()
        app.state.db_manager = db_manager
        app.state.coverage = build_coverage_services(JsonCache())
        logger.info("Application startup completed successfully.")
    except Exception as e:
        logger.critical(
            "CRITICAL: Failed to initialize application during startup: %s",
            str(e),
            exc_info=True,
        )
        raise

    yield

    await db_manager.cleanup_connections()
    await cleanup_session()
    await close_shared_redis()
    logger.info("Application shutdown completed successfully")


def create_app(*, with_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Broadband Coverage",
        lifespan=lifespan if with_lifespan else None,
    )

    origins = get_cors_origins()
    if not os.getenv("CORS_ALLOWED_ORIGINS"):
        logger.warning(
            "CORS_ALLOWED_ORIGINS not set. Using development defaults: %s",
            origins,
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(coverage_router)

    @app.get("/api/health")
    async def health() -> dict[str, object]:
        """Liveness plus the circuit state of each geocoding upstream."""
        return {"status": "ok", "upstreams": upstream_states()}

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc: HTTPException):
        """Handle 404 Not Found errors."""
        logger.warning("404 Not Found: %s. Detail: %s", request.url, exc.detail)
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Not found", "detail": exc.detail},
        )

    @app.exception_handler(500)
    async def internal_error_handler(request: Request, exc: Exception):
        """Handle 500 Internal Server Error errors without leaking details."""
        error_id = str(uuid.uuid4())
        logger.error(
            "Internal Server Error (ID: %s): Request %s %s failed. Exception: %s",
            error_id,
            request.method,
            request.url,
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": GENERIC_ERROR_MESSAGE, "error_id": error_id},
        )

    return app


app = create_app()


# --- Main Execution Block ---
if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
