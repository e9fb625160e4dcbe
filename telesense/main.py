from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from telesense.core.config import settings
from telesense.core.errors import (
    SenseException,
    sense_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from telesense.core.logging import setup_logging
from telesense.core.runtime import Runtime, build_runtime, get_runtime
from telesense.routers import stats as stats_router
from telesense.routers import telemetry as telemetry_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    # Tests may install a prebuilt runtime before startup.
    runtime = getattr(app.state, "runtime", None) or build_runtime(settings)
    app.state.runtime = runtime
    runtime.broadcaster.start()
    try:
        yield
    finally:
        await runtime.broadcaster.stop()
        runtime.close()
        app.state.runtime = None


app = FastAPI(
    title="Telesense API",
    description=(
        "**Vehicle telemetry behavior analysis**\n\n"
        "Detects driving behaviors in raw sensor samples, classifies their intent, "
        "scores risk, decides coaching, and streams live statistics.\n\n"
        "All error responses follow the `{code, message, details}` envelope."
    ),
    version=settings.MODEL_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Exception handlers (most specific first) ---
app.add_exception_handler(SenseException, sense_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(telemetry_router.router)
app.include_router(stats_router.router)


@app.get("/health", tags=["health"], summary="Health check")
def health(runtime: Runtime = Depends(get_runtime)):
    """
    Returns `{"status": "ok"}` with the seconds since the last processed
    sample. Returns HTTP 503 when nothing has been processed for longer than
    `HEALTH_STALE_AFTER_SECONDS`.
    """
    idle = runtime.stats.seconds_since_last_processed()
    body = {
        "status": "ok",
        "env": runtime.settings.APP_ENV,
        "seconds_since_last_processed": round(idle, 3),
        "subscribers": len(runtime.manager.connections),
    }
    if idle > runtime.settings.HEALTH_STALE_AFTER_SECONDS:
        body["status"] = "stale"
        return JSONResponse(status_code=503, content=body)
    return body


@app.get("/metrics", include_in_schema=False)
def metrics(runtime: Runtime = Depends(get_runtime)):
    """Prometheus text exposition of the pipeline meters."""
    return Response(content=runtime.metrics.render(), media_type=CONTENT_TYPE_LATEST)
