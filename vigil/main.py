# vigil/main.py
"""
FastAPI application entry point.
Includes security middleware, global error handlers, all routers,
and startup of the stream/analysis pipeline.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from vigil.routers import alerts, cameras, events, health, metrics, rules, segments, system
from vigil.database import SessionLocal, create_tables
from vigil.config import settings
from vigil.exceptions import AuthenticationError, VigilError
from vigil.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="Vigil Surveillance API",
    description="AI video surveillance backend — cameras, detection events, rules and alerts.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (dashboard runs on another origin) ──────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to dashboard origin in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
OPEN_PATHS = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}


def check_api_key(request: Request, expected: str):
    """Raise AuthenticationError unless the request carries the expected key."""
    supplied = request.headers.get("X-API-Key") or request.query_params.get("api_key")
    if not supplied:
        raise AuthenticationError("Missing API key")
    if supplied != expected:
        raise AuthenticationError("Invalid API key")


class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Lightweight API key auth for every endpoint except health and docs.
    Set API_KEY in .env. Leave empty to disable auth.
    """
    async def dispatch(self, request: Request, call_next):
        if request.url.path in OPEN_PATHS or not settings.API_KEY:
            return await call_next(request)
        try:
            check_api_key(request, settings.API_KEY)
        except AuthenticationError as e:
            logger.warning(f"Rejected {request.method} {request.url.path} from {request.client.host if request.client else '?'}: {e.message}")
            return JSONResponse(status_code=e.status_code, content={"detail": e.message})
        return await call_next(request)


app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(VigilError)
async def vigil_exception_handler(request: Request, exc: VigilError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(cameras.router,  prefix="/api/v1", tags=["📷 Cameras"])
app.include_router(events.router,   prefix="/api/v1", tags=["📡 Events"])
app.include_router(alerts.router,   prefix="/api/v1", tags=["🔔 Alerts"])
app.include_router(rules.router,    prefix="/api/v1", tags=["📐 Rules"])
app.include_router(segments.router, prefix="/api/v1", tags=["🎞️  Segments"])
app.include_router(metrics.router,  prefix="/api/v1", tags=["📊 Metrics"])
app.include_router(system.router,   prefix="/api/v1", tags=["⚙️  System"])
app.include_router(health.router,   prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 Vigil backend starting up...")
    create_tables()
    logger.info("✅ Database tables ready")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")

    if settings.PIPELINE_ENABLED:
        from vigil.models.camera import Camera
        from vigil.services import pipeline as pipeline_module
        from vigil.services.analysis_engine import build_engine_from_settings

        db = SessionLocal()
        try:
            cams = [pipeline_module.camera_config(c) for c in db.query(Camera).all()]
        finally:
            db.close()
        pipeline_module.pipeline = pipeline_module.Pipeline(build_engine_from_settings())
        await pipeline_module.pipeline.start(cams)
    else:
        logger.info("📡 Stream pipeline disabled (PIPELINE_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Vigil backend shutting down...")
    from vigil.services import pipeline as pipeline_module
    if pipeline_module.pipeline is not None:
        await pipeline_module.pipeline.stop()
