from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
from datetime import datetime, timezone

from quotedigest.core.config import settings
from quotedigest.core.exceptions import (
    QuoteDigestError,
    RecommendationEmptyCatalog,
    ReportNotFound,
    StorageUnavailable,
)
from quotedigest.routers import catalog, quotes, reports
from quotedigest.database import init_db
from quotedigest.scheduler import start_scheduler, stop_scheduler

# ----------------------------
# Logging
# ----------------------------
logger = logging.getLogger("quotedigest")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Server fingerprint for debugging
SERVER_BOOT_ID = f"quotedigest-backend::{os.getpid()}::{datetime.now(timezone.utc).isoformat()}"

app = FastAPI(debug=settings.DEBUG)

cors_origins = settings.cors_origins_list
logger.info(f"[CORS] allow_origins={cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------------
# Error mapping
# ----------------------------
# "Not generated yet" and "temporarily unavailable" get distinct status codes
# and codes so clients can show different messages.
ERROR_RESPONSES = {
    ReportNotFound: (status.HTTP_404_NOT_FOUND, "report_not_generated"),
    StorageUnavailable: (status.HTTP_503_SERVICE_UNAVAILABLE, "storage_unavailable"),
    RecommendationEmptyCatalog: (status.HTTP_409_CONFLICT, "catalog_empty"),
}


@app.exception_handler(QuoteDigestError)
async def quotedigest_error_handler(request: Request, exc: QuoteDigestError):
    status_code, code = ERROR_RESPONSES.get(type(exc), (status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error"))
    if status_code >= 500:
        logger.warning(f"[{code}] {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"[UNHANDLED] {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error", "code": "internal_error"},
    )


# ----------------------------
# Routers
# ----------------------------
app.include_router(reports.router, prefix="/api")
app.include_router(quotes.router, prefix="/api")
app.include_router(catalog.router, prefix="/api")


@app.on_event("startup")
def on_startup() -> None:
    logger.info(f"[BOOT] {SERVER_BOOT_ID}")
    init_db()
    if settings.SCHEDULER_ENABLED:
        start_scheduler()


@app.on_event("shutdown")
def on_shutdown() -> None:
    stop_scheduler()


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/api/health")
def api_health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
