"""
EK-LS API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Storage backend and Redis client (created here, kept on app.state)
- Session and check-in token services
- Background job scheduler
- CORS middleware
- API routing
- Health check endpoints
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.api import api_router
from app.core.config import Settings, settings
from app.core.database import StorageBackend, create_storage
from app.core.errors import InfrastructureUnavailableError
from app.core.redis import close_redis, create_redis_client
from app.core.scheduler import JobScheduler
from app.core.security import Signer
from app.modules.attendance.checkin_tokens import CheckinTokenService
from app.modules.attendance.jobs import ExpirySweeper, register_attendance_jobs
from app.modules.attendance.repository import AttendanceRepository
from app.modules.attendance.roster import RosterGateway
from app.modules.attendance.service import RedemptionCoordinator
from app.modules.auth.revocation import RevocationStore
from app.modules.auth.service import AuthService
from app.modules.auth.tokens import SessionTokenService

logger = logging.getLogger(__name__)


def init_services(
    app: FastAPI,
    config: Settings,
    storage: StorageBackend,
    redis: Redis,
) -> None:
    """
    Build the token services and coordinators on ``app.state``.

    Each signer gets its own secret, so a check-in token can never pass as a
    session token or the other way round.
    """
    session_tokens = SessionTokenService(Signer(config.session_token_secret))
    revocations = RevocationStore(redis, floor_ttl_seconds=config.revocation_floor_ttl_seconds)
    checkin_tokens = CheckinTokenService(
        Signer(config.checkin_token_secret),
        namespace_prefix=config.checkin_namespace_prefix,
        window=timedelta(hours=config.checkin_window_hours),
        clock_skew=timedelta(seconds=config.checkin_clock_skew_seconds),
    )
    attendance = AttendanceRepository(storage)

    app.state.storage = storage
    app.state.redis = redis
    app.state.auth_service = AuthService(
        session_tokens,
        revocations,
        token_ttl=timedelta(minutes=config.session_token_ttl_minutes),
        fail_open=config.revocation_fail_open,
    )
    app.state.redemption_coordinator = RedemptionCoordinator(
        checkin_tokens,
        RosterGateway(storage),
        attendance,
        qr_size=config.checkin_qr_size,
    )

    scheduler = JobScheduler()
    register_attendance_jobs(
        scheduler,
        ExpirySweeper(attendance, window=checkin_tokens.window),
        interval_hours=config.checkin_sweep_interval_hours,
    )
    app.state.scheduler = scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Redis connection
    - Database connection
    - Background job scheduler
    """
    # Startup
    logger.info(f"Starting EK-LS API in {settings.python_env} mode...")

    storage = create_storage(
        settings.database_url,
        timeout_seconds=settings.storage_timeout_seconds,
        echo=settings.database_echo,
    )
    redis = create_redis_client(settings.redis_url, settings.redis_timeout_seconds)

    # Check Redis
    try:
        await redis.ping()
        logger.info("[OK] Redis connected")
    except (RedisError, OSError) as e:
        logger.error(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    # Check Database
    try:
        await storage.ping()
        logger.info("[OK] Database connected")
    except InfrastructureUnavailableError as e:
        logger.error(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    if settings.is_development:
        await storage.create_schema()

    init_services(app, settings, storage, redis)

    # Start the scheduler
    try:
        await app.state.scheduler.start()
        logger.info("[OK] Background scheduler started")
    except Exception as e:
        logger.error(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down EK-LS API...")

    # Stop the scheduler first (wait for running jobs)
    await app.state.scheduler.stop()
    logger.info("[OK] Background scheduler stopped")

    await close_redis(redis)
    await storage.close()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="EK-LS API",
    description="EL-KENDEH attendance and session trust API",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to EK-LS API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check(request: Request) -> dict[str, str]:
    """
    Readiness check endpoint.

    Ready when the database answers. Redis is reported but does not gate
    readiness, since authentication can run fail-open without it.
    """
    storage: StorageBackend = request.app.state.storage
    try:
        await storage.ping()
    except InfrastructureUnavailableError as e:
        raise HTTPException(
            status_code=503,
            detail={"status": "not ready", "database": "error"},
        ) from e

    try:
        await request.app.state.redis.ping()
        redis_status = "connected"
    except (RedisError, OSError):
        redis_status = "error"

    return {"status": "ready", "database": "connected", "redis": redis_status}


# ============================================
# Background Job Debug Endpoints
# ============================================
# These endpoints allow manual triggering of background jobs for testing
# and debugging purposes. In production, jobs run automatically on schedule.

if settings.is_development:

    @app.get("/debug/jobs", tags=["Debug"])
    async def list_jobs(request: Request) -> dict[str, Any]:
        """List all registered background jobs and their next run time."""
        return {"jobs": request.app.state.scheduler.list_jobs()}

    @app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
    async def trigger_job(job_id: str, request: Request) -> dict[str, Any]:
        """
        Manually trigger a background job for testing.

        Args:
            job_id: The ID of the job to trigger. Available jobs:
                - attendance_sweep_checkin_metadata

        Raises:
            HTTPException 400: If job_id is not found.
        """
        try:
            return await request.app.state.scheduler.trigger(job_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
