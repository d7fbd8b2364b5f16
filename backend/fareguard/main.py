import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fareguard.config import settings
from fareguard.errors import (
    ExpiredOfferError,
    FareGuardError,
    NotFoundError,
    ProviderUnavailableError,
    UnknownProviderError,
    UnsupportedCapabilityError,
    UpstreamError,
    UserNotFoundError,
    ValidationError,
)

# ─── Logging setup (file + console) ───
_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_LOG_DIR.mkdir(exist_ok=True)

_log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        RotatingFileHandler(
            _LOG_DIR / "fareguard.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        ),
    ],
)

# Quiet noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

from fareguard.database import async_session_factory
from fareguard.routers import flights, policies
from fareguard.services.audit_recorder import UsageAuditRecorder
from fareguard.services.cache_service import CacheService, OfferCache
from fareguard.services.compliance_evaluator import ComplianceEvaluator
from fareguard.services.policy_resolver import PolicyResolver
from fareguard.services.providers.registry import build_registry
from fareguard.services.sql_stores import SqlAuditSink, SqlPolicyStore, SqlSpendLedger

logger = logging.getLogger(__name__)

# Most specific first; the first matching class wins
ERROR_STATUS: list[tuple[type[FareGuardError], int]] = [
    (ExpiredOfferError, 410),
    (ValidationError, 422),
    (UpstreamError, 502),
    (ProviderUnavailableError, 503),
    (UnknownProviderError, 400),
    (UnsupportedCapabilityError, 400),
    (UserNotFoundError, 404),
    (NotFoundError, 404),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    cache = CacheService(settings.redis_url)
    registry = build_registry(settings, OfferCache(cache))
    logger.info(
        f"Flight providers available: {registry.available_providers() or 'none'} "
        f"(primary: {settings.primary_flight_provider}, fallback enabled: {settings.enable_provider_fallback})"
    )

    store = SqlPolicyStore(async_session_factory)
    resolver = PolicyResolver(store)
    recorder = UsageAuditRecorder(SqlAuditSink(async_session_factory), background=True)

    app.state.registry = registry
    app.state.policy_store = store
    app.state.resolver = resolver
    app.state.recorder = recorder
    app.state.evaluator = ComplianceEvaluator(resolver, SqlSpendLedger(async_session_factory), recorder)

    yield

    # Shutdown
    await recorder.drain()
    await registry.aclose()
    await cache.close()
    logger.info("Provider clients closed")


def error_response(exc: FareGuardError) -> JSONResponse:
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    body = {"detail": exc.message}
    if isinstance(exc, ValidationError):
        body["field"] = exc.field
        body["passenger"] = exc.passenger
    elif isinstance(exc, ExpiredOfferError):
        body["offer_id"] = exc.offer_id
        body["expired_minutes"] = exc.expired_minutes
    return JSONResponse(status_code=status, content=body)


def create_app() -> FastAPI:
    app = FastAPI(
        title="FareGuard",
        description="Multi-provider flight booking with per-role spend policies",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FareGuardError)
    async def fareguard_error_handler(request: Request, exc: FareGuardError):
        return error_response(exc)

    app.include_router(flights.router, prefix="/api/flights", tags=["flights"])
    app.include_router(policies.router, prefix="/api/policies", tags=["policies"])

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "service": "fareguard"}

    return app


app = create_app()
