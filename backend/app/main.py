from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.api.routes import router
from backend.app.config import AppSettings
from backend.app.dependencies import ServiceContainer, build_container, get_settings
from backend.app.errors import install_exception_handlers, internal_error_response
from backend.app.logging_config import configure_logging
from backend.app.telemetry import TelemetryClient, TelemetryEvent

SettingsFactory = Callable[[], AppSettings]
ContainerFactory = Callable[[AppSettings], ServiceContainer]


def health_check() -> dict[str, str]:
    return {"status": "ok"}


def _request_telemetry(request: Request) -> TelemetryClient:
    container = getattr(request.app.state, "container", None)
    if isinstance(container, ServiceContainer):
        return container.telemetry
    return TelemetryClient.disabled()


def create_app(
    *,
    settings_factory: SettingsFactory = get_settings,
    container_factory: ContainerFactory = build_container,
) -> FastAPI:
    @asynccontextmanager
    async def app_lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = settings_factory()
        configure_logging(settings)
        container = container_factory(settings)
        app.state.container = container
        try:
            yield
        finally:
            container.close()
            app.state.container = None

    app = FastAPI(title="SkillSprint API", version="0.1.0", lifespan=app_lifespan)
    install_exception_handlers(app)

    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        telemetry = _request_telemetry(request)
        incoming_request_id = request.headers.get("X-Request-ID")
        request_id = (
            incoming_request_id.strip()
            if isinstance(incoming_request_id, str) and incoming_request_id.strip()
            else str(uuid4())
        )
        context_tokens = bind_contextvars(
            http_request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        started_at = perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            telemetry.emit(
                TelemetryEvent.HTTP_REQUEST_FAILED,
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                error_type=type(exc).__name__,
            )
            response = internal_error_response(request, exc)
            response.headers["X-Request-ID"] = request_id
            return response
        else:
            response.headers["X-Request-ID"] = request_id
            telemetry.emit(
                TelemetryEvent.HTTP_REQUEST_COMPLETED,
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                status_code=response.status_code,
            )
            return response
        finally:
            reset_contextvars(**context_tokens)

    app.middleware("http")(request_context_middleware)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )

    return app


app = create_app()
