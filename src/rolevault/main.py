from __future__ import annotations

import asyncio
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rolevault.auth.resolver import PrincipalResolver
from rolevault.configs.settings import Settings, get_settings
from rolevault.errors import AppError, AuthError
from rolevault.repositories.api_key_repository import ApiKeyRepository
from rolevault.repositories.file_repository import FileRepository
from rolevault.repositories.mongo import get_mongo_client, get_mongo_db
from rolevault.repositories.notification_repository import NotificationRepository
from rolevault.repositories.redis_client import redis_client
from rolevault.repositories.request_repository import RequestRepository
from rolevault.repositories.user_repository import UserRepository
from rolevault.routers.api_key_router import router as api_key_router
from rolevault.routers.auth_router import router as auth_router
from rolevault.routers.dashboard_router import router as dashboard_router
from rolevault.routers.file_router import router as file_router
from rolevault.routers.health_router import router as health_router
from rolevault.routers.notification_router import router as notification_router
from rolevault.routers.request_router import router as request_router
from rolevault.routers.role_router import router as role_router
from rolevault.routers.user_router import router as user_router
from rolevault.services.api_key_service import ApiKeyService
from rolevault.services.auth_service import AuthService
from rolevault.services.dashboard_service import DashboardService
from rolevault.services.file_service import FileService
from rolevault.services.notification_service import NotificationService
from rolevault.services.request_service import RequestService
from rolevault.services.user_service import UserService
from rolevault.utils.response import failure
from rolevault.configs.logging_config import get_logger, setup_logging

log = get_logger(__name__)


def _cors_origins(settings: Settings) -> list[str]:
    # .env can provide a comma-separated string
    raw_origins = settings.CORS_ORIGINS
    if isinstance(raw_origins, str):
        return [o.strip() for o in raw_origins.split(",") if o.strip()]
    if isinstance(raw_origins, (list, tuple, set)):
        return list(raw_origins)
    return []


def _field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        out.append({"field": ".".join(loc), "message": err.get("msg", "invalid value")})
    return out


def wire_services(app: FastAPI, *, settings: Settings, mongo_db, redis) -> None:
    """Build repositories and services on ``app.state``."""
    user_repo = UserRepository(mongo_db, settings)
    request_repo = RequestRepository(mongo_db, settings)
    api_key_repo = ApiKeyRepository(mongo_db, settings)
    file_repo = FileRepository(mongo_db, settings)
    notification_repo = NotificationRepository(mongo_db, settings)

    app.state.user_repo = user_repo
    app.state.request_repo = request_repo
    app.state.api_key_repo = api_key_repo
    app.state.file_repo = file_repo
    app.state.notification_repo = notification_repo

    notifications = NotificationService(notification_repo, redis, settings)
    resolver = PrincipalResolver(user_repo, settings)
    users = UserService(user_repo, settings)
    requests = RequestService(request_repo, notifications)
    files = FileService(file_repo, notifications, settings)

    app.state.notification_service = notifications
    app.state.principal_resolver = resolver
    app.state.user_service = users
    app.state.auth_service = AuthService(user_repo, users, resolver, notifications, settings)
    app.state.request_service = requests
    app.state.api_key_service = ApiKeyService(api_key_repo, notifications, settings)
    app.state.file_service = files
    app.state.dashboard_service = DashboardService(requests, files)


async def api_key_expiry_worker(service: ApiKeyService, interval_seconds: int) -> None:
    log.info("api_key_expiry.start interval_seconds=%s", interval_seconds)
    while True:
        try:
            counts = await service.sweep_expiry()
            log.info("api_key_expiry.sweep expired=%s warned=%s", counts["expired"], counts["warned"])
        except Exception as loop_exc:
            log.error("api_key_expiry.loop_error %s", str(loop_exc), exc_info=True)
        await asyncio.sleep(interval_seconds)


def create_app() -> FastAPI:
    app = FastAPI(title="rolevault", version="0.1.0")
    settings: Settings = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        start = time.perf_counter()
        method = request.method
        path = request.url.path
        request_id = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")

        log.info("request.start method=%s path=%s request_id=%s", method, path, request_id)
        response = None
        try:
            response = await call_next(request)
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            status_code = getattr(response, "status_code", "unknown")
            log.info(
                "request.end method=%s path=%s status=%s request_id=%s elapsed_ms=%s",
                method,
                path,
                status_code,
                request_id,
                elapsed_ms,
            )
        return response

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(role_router)
    app.include_router(user_router)
    app.include_router(request_router)
    app.include_router(api_key_router)
    app.include_router(file_router)
    app.include_router(notification_router)
    app.include_router(dashboard_router)

    @app.exception_handler(AppError)
    async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
        log.info("request.error type=%s status=%s message=%s", type(exc).__name__, exc.http_status, exc.message)
        # Never tell the caller why authentication failed.
        message = "access denied" if isinstance(exc, AuthError) else exc.message
        return JSONResponse(status_code=exc.http_status, content=failure(message, **exc.payload()))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        errors = _field_errors(exc)
        log.info("request.error type=validation errors=%s", errors)
        return JSONResponse(status_code=400, content=failure("validation error", errors=errors))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error: %s", str(exc))
        return JSONResponse(status_code=500, content=failure("internal server error"))

    @app.on_event("startup")
    async def startup() -> None:
        settings: Settings = get_settings()
        setup_logging(settings.LOG_LEVEL)

        mongo_client = get_mongo_client(settings)
        mongo_db = get_mongo_db(mongo_client, settings)
        await redis_client.connect()

        app.state.settings = settings
        app.state.mongo_client = mongo_client
        app.state.mongo_db = mongo_db
        app.state.redis = redis_client.client

        wire_services(app, settings=settings, mongo_db=mongo_db, redis=redis_client.client)

        log.info("startup.ensure_indexes begin")
        for repo in (
            app.state.user_repo,
            app.state.request_repo,
            app.state.api_key_repo,
            app.state.file_repo,
            app.state.notification_repo,
        ):
            await repo.ensure_indexes()
        log.info("startup.ensure_indexes done")

        await app.state.user_service.ensure_bootstrap_admin()

        app.state.api_key_expiry_task = asyncio.create_task(
            api_key_expiry_worker(app.state.api_key_service, settings.api_key_check_interval_seconds)
        )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        log.info("shutdown.begin")
        worker = getattr(app.state, "api_key_expiry_task", None)
        if worker:
            worker.cancel()
        await redis_client.close()
        mongo_client = getattr(app.state, "mongo_client", None)
        if mongo_client is not None:
            mongo_client.close()
        log.info("shutdown.done")

    return app


app = create_app()
