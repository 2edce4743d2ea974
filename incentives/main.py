"""
Incentives API application.

Wires the v1 router, request tracing, the JSON error envelope and health checks.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
import time
import uuid
from contextlib import asynccontextmanager
from incentives.api.deps import http_error_for
from incentives.api.v1 import api_router
from incentives.config import (
    BOOTSTRAP_ADMIN_EMAIL,
    BOOTSTRAP_ADMIN_KEY,
    CORS_ORIGINS,
    LOG_FILE,
    LOG_LEVEL,
    SYSTEM_TIMEZONE,
)
from incentives.database import Base, SessionLocal, engine
from incentives.models.db import Campaign, SpecialEvent, User
from incentives.models.db.enums import CampaignStatus, UserRole
from incentives.models.schemas.base import FieldError, ValidationErrorResponse
from incentives.services.errors import CampaignDefinitionError, IncentiveError
from incentives.services.event_resolver import active_events
from incentives.utils import setup_logging, get_logger
from incentives.utils.time import utc_now

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE, enable_console=True)

logger = get_logger(__name__)

SERVICE_NAME = "incentives-engine"
VERSION = "1.0.0"


def ensure_bootstrap_admin() -> None:
    """Create the first admin from BOOTSTRAP_ADMIN_KEY on an empty deployment."""
    if not BOOTSTRAP_ADMIN_KEY:
        return
    with SessionLocal() as db:
        if db.query(User).filter(User.role == UserRole.ADMIN).first() is not None:
            return
        admin = User(name="Administrador", email=BOOTSTRAP_ADMIN_EMAIL, api_key=BOOTSTRAP_ADMIN_KEY, role=UserRole.ADMIN)
        db.add(admin)
        db.commit()
        logger.info("Bootstrap admin created", user_id=admin.id, email=BOOTSTRAP_ADMIN_EMAIL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Incentives engine starting", version=VERSION, system_timezone=SYSTEM_TIMEZONE)
    Base.metadata.create_all(bind=engine)
    logger.info("Schema ready", tables=sorted(Base.metadata.tables))
    ensure_bootstrap_admin()
    yield
    engine.dispose()
    logger.info("Incentives engine stopped")


app = FastAPI(
    title="Sales Incentives Engine",
    description="""
    Campaign engine for optical-retail sales incentives.

    * **Reward cards**: manual or auto-replicating tracks, each requirement with its own conditions
    * **Spillover**: surplus units flow into the next card
    * **Special events**: time-boxed reward multipliers
    * **Payouts**: coins, currency rewards, manager commission and a payable ledger
    * **Prizes**: coin catalog with refunds on cancellation

    Authenticate with `Authorization: Bearer <api key>`.
    Keys are prefixed by role: `adm_`, `ger_` or `ven_`.
    """,
    version=VERSION,
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _error_response(request: Request, status_code: int, message, headers=None, **extra) -> JSONResponse:
    body = {"success": False, "message": message, **extra, "request_id": _request_id(request)}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@app.middleware("http")
async def trace_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    started = time.perf_counter()

    response = await call_next(request)

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(elapsed_ms)
    response.headers["X-Content-Type-Options"] = "nosniff"

    log = logger.warning if response.status_code >= 500 else logger.info
    log(
        "Request handled",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        process_time_ms=elapsed_ms,
        client=request.client.host if request.client else None,
        request_id=request_id
    )
    return response


@app.exception_handler(CampaignDefinitionError)
async def definition_error_handler(request: Request, exc: CampaignDefinitionError):
    """Every rule a campaign or event definition broke, field by field."""
    errors = exc.as_dicts()
    logger.warning(
        "Definition rejected",
        fields=[e["field"] for e in errors],
        path=request.url.path,
        request_id=_request_id(request)
    )
    body = ValidationErrorResponse(
        message=str(exc),
        errors=[FieldError(**e) for e in errors],
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=422, content=body.model_dump())


@app.exception_handler(IncentiveError)
async def incentive_error_handler(request: Request, exc: IncentiveError):
    # Domain errors that an endpoint did not translate itself
    http_exc = http_error_for(exc)
    logger.warning(
        "Business rule violation",
        error_type=type(exc).__name__,
        status_code=http_exc.status_code,
        path=request.url.path,
        request_id=_request_id(request)
    )
    return _error_response(request, http_exc.status_code, http_exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = jsonable_encoder(exc.errors())
    logger.warning(
        "Request validation failed",
        error_count=len(details),
        path=request.url.path,
        request_id=_request_id(request)
    )
    return _error_response(request, 422, "Request validation failed", details=details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code >= 500:
        logger.error("HTTP error", status_code=exc.status_code, detail=exc.detail, request_id=_request_id(request))
    return _error_response(request, exc.status_code, exc.detail, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        request_id=_request_id(request),
        exc_info=True
    )
    return _error_response(request, 500, "Internal server error")


@app.get("/health", tags=["health"], summary="Liveness check")
async def health_check():
    return {"status": "healthy", "service": SERVICE_NAME, "version": VERSION, "timestamp": time.time()}


@app.get("/health/detailed", tags=["health"], summary="Readiness check")
def detailed_health_check():
    """Database reachability plus a count of active campaigns and events running right now."""
    report = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": time.time(),
        "system_timezone": SYSTEM_TIMEZONE,
        "checks": {},
    }
    with SessionLocal() as db:
        try:
            campaigns = db.scalar(
                select(func.count(Campaign.id)).where(Campaign.status == CampaignStatus.ACTIVE)
            )
            events = db.scalars(select(SpecialEvent).where(SpecialEvent.active.is_(True))).all()
        except SQLAlchemyError as e:
            report["checks"]["database"] = f"unhealthy: {e}"
            report["status"] = "degraded"
            return report
    report["checks"]["database"] = "healthy"
    report["checks"]["active_campaigns"] = campaigns
    report["checks"]["events_in_force"] = len(active_events(events, utc_now()))
    return report


@app.get("/", tags=["root"])
async def root():
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1",
    }


app.include_router(api_router, prefix="/api/v1")

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("incentives.main:app", host="0.0.0.0", port=8000, reload=True, reload_dirs=["incentives"])
