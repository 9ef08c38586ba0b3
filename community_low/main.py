"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from community_low.api.routes import prices
from community_low.cache.price_cache import price_cache
from community_low.config import settings
from community_low.db.models import Base
from community_low.db.session import engine
from community_low.logging_config import setup_logging

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "*",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting community lowest-price service...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    logger.info("Shutting down...")
    await price_cache.close()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Community Low",
    description="Crowd-verified lowest observed price per product",
    version="0.1.0",
    lifespan=lifespan,
)

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/health"],
)
instrumentator.instrument(app).expose(app, include_in_schema=False)


@app.middleware("http")
async def permissive_cors(request: Request, call_next):
    """Answer every OPTIONS with 204 and open every response to any origin."""
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        response = JSONResponse({"error": "Internal error"}, status_code=500)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    """Keep error bodies in the service's ``{"error": ...}`` shape."""
    message = "Not found" if exc.status_code in (404, 405) else str(exc.detail)
    status_code = 404 if exc.status_code == 405 else exc.status_code
    return JSONResponse({"error": message}, status_code=status_code)


app.include_router(prices.router)


if __name__ == "__main__":
    uvicorn.run(
        "community_low.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
