from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homeservices_auth.config import app_logger, settings
from homeservices_auth.db import dispose_db, init_db
from homeservices_auth.dependencies import get_async_session
from homeservices_auth.exceptions.handlers import (
    account_locked_exception_handler,
    authentication_exception_handler,
    bad_request_exception_handler,
    conflict_exception_handler,
    database_exception_handler,
    exception_schema,
    forbidden_exception_handler,
    general_exception_handler,
    not_found_exception_handler,
    notification_exception_handler,
    otp_exception_handler,
)
from homeservices_auth.exceptions.types import (
    AccountLockedException,
    AppException,
    AuthenticationException,
    BadRequestException,
    ConflictException,
    DatabaseException,
    ForbiddenException,
    NotFoundException,
    NotificationException,
    OTPException,
)
from homeservices_auth.services import (
    BrevoNotificationDispatcher,
    TokenService,
    build_auth_service,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_logger.info("Starting application...")

    if settings.ENVIRONMENT != "production":
        app_logger.info("Creating database tables...")
        await init_db()

    yield

    app_logger.info("Shutting down application...")

    app_logger.info("Closing notification dispatcher...")
    await app.state.dispatcher.aclose()

    await dispose_db()
    app_logger.info("Application shut down.")


app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=settings.APP_DESCRIPTION,
    debug=settings.DEBUG,
    responses=exception_schema,
)

# Stateless services shared by all requests
app.state.dispatcher = BrevoNotificationDispatcher()
app.state.token_service = TokenService()
app.state.auth_service = build_auth_service(
    dispatcher=app.state.dispatcher, tokens=app.state.token_service
)

# Subclasses before their parents
app.add_exception_handler(OTPException, otp_exception_handler)
app.add_exception_handler(AccountLockedException, account_locked_exception_handler)
app.add_exception_handler(AuthenticationException, authentication_exception_handler)
app.add_exception_handler(ForbiddenException, forbidden_exception_handler)
app.add_exception_handler(NotFoundException, not_found_exception_handler)
app.add_exception_handler(ConflictException, conflict_exception_handler)
app.add_exception_handler(BadRequestException, bad_request_exception_handler)
app.add_exception_handler(NotificationException, notification_exception_handler)
app.add_exception_handler(DatabaseException, database_exception_handler)
# Catch-all for the AppException tree
app.add_exception_handler(AppException, general_exception_handler)


@app.get("/", include_in_schema=False)
async def root(request: Request):
    docs_root = str(request.base_url).rstrip("/")
    return {
        "message": f"{settings.APP_NAME} credential service",
        "version": settings.APP_VERSION,
        "documentations": {
            "swagger": docs_root + app.docs_url,
            "redoc": docs_root + app.redoc_url,
        },
    }


@app.head("/health", include_in_schema=False)
@app.get("/health")
async def health_check(session: Annotated[AsyncSession, Depends(get_async_session)]):
    """Liveness plus a ``SELECT 1`` round trip to the database."""
    database_ok = False
    try:
        database_ok = (await session.execute(text("SELECT 1"))).scalar() == 1
    except SQLAlchemyError as e:
        app_logger.error(f"Database health check failed: {e}")

    checks = {"database": "ok" if database_ok else "unhealthy"}
    if not database_ok:
        raise AppException(
            "Database unreachable; health checks failed.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"status": "degraded", "checks": checks},
        )

    return {
        "status": "ok",
        "message": f"{settings.APP_NAME} is running.",
        "checks": checks,
    }
