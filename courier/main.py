"""FastAPI application for courier."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from courier.config import settings
from courier.database import init_db, close_db
from courier.dependencies import build_courier
from courier.errors import (
    InvalidPreferenceError,
    RecordNotFoundError,
    TemplateConflictError,
    TemplateResolutionError,
)
from courier.routes.notifications import router as notifications_router
from courier.routes.preferences import router as preferences_router
from courier.routes.templates import router as templates_router

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)

# Domain errors raised by handlers, mapped to HTTP status codes.
ERROR_STATUS = {
    RecordNotFoundError: 404,
    TemplateConflictError: 409,
    InvalidPreferenceError: 400,
    # Only raised at enqueue when strict_template_check is on.
    TemplateResolutionError: 422,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("courier starting up (queue_mode=%s)", settings.queue_mode)
    await init_db()
    app.state.courier = await build_courier()
    try:
        yield
    finally:
        logger.info("courier shutting down")
        await app.state.courier.close()
        await close_db()


app = FastAPI(
    title="Courier",
    description="Idempotent, preference-aware notification delivery with retries",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = next(code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type))
    logger.info("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


for error_type in ERROR_STATUS:
    app.add_exception_handler(error_type, _domain_error_handler)

for router in (notifications_router, templates_router, preferences_router):
    app.include_router(router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "courier", "queue_mode": settings.queue_mode}
