import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ...config import Settings
from ...logging import init_logging, info as log_info, LogRecord, LogEvent
from ...application.cache.controller import CacheController
from ...application.host import ControllerHost
from ...domain.exceptions import ControllerStateError, InstallError, NetworkError
from ...domain.models import ErrorType
from ...infrastructure.network.fetcher import Fetcher, HttpxFetcher
from ...infrastructure.network.http_client_factory import HttpClientFactory
from ...infrastructure.storage import CacheStorage, create_storage
from .middleware import logging_middleware
from .errors import get_error_details_from_exc, log_and_return_error_response
from .routes.health import router as health_router
from .routes.control import router as control_router
from .routes.proxy import router as proxy_router


def create_app(
    settings: Settings,
    storage: Optional[CacheStorage] = None,
    fetcher: Optional[Fetcher] = None,
) -> FastAPI:
    """Creates and configures the FastAPI application instance.

    Initializes logging, sets up middleware, and registers routes. The cache
    controller is installed and activated during startup; until then, and
    whenever install fails, requests pass straight through to the upstream.

    Args:
        settings: Configuration settings object
        storage: Storage backend; built from settings when omitted
        fetcher: Network fetcher; an httpx-backed one is built when omitted

    Returns:
        Fully configured FastAPI application instance
    """
    init_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_storage = storage if storage is not None else create_storage(settings)
        app_fetcher = (
            fetcher
            if fetcher is not None
            else HttpxFetcher(HttpClientFactory.create_client(settings))
        )
        logging.info(
            f"Starting controller host for {settings.scope_origin} "
            f"({settings.storage_backend.value} storage)"
        )

        try:
            async with ControllerHost(app_fetcher) as host:
                app.state.host = host
                controller = CacheController.from_settings(
                    settings, app_storage, app_fetcher
                )
                try:
                    await host.register(controller)
                    log_info(
                        LogRecord(
                            event=LogEvent.CONTROLLER_ACTIVATE.value,
                            message="Cache controller ready",
                            data=controller.status().model_dump(mode="json"),
                        )
                    )
                except InstallError as e:
                    logging.error(
                        f"Cache controller {e.version} failed to install, "
                        f"serving uncontrolled: {e.failed_urls}"
                    )
                yield
        finally:
            logging.info("Initiating application shutdown")
            app.state.host = None
            try:
                await app_fetcher.aclose()
            except Exception as e:
                logging.error(f"Failed to close fetcher: {str(e)}")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=None,
        redoc_url=None,
        description="Offline-capable caching layer in front of a static web app.",
        lifespan=lifespan,
        default_response_class=JSONResponse,
    )
    app.state.settings = settings
    app.state.host = None

    app.middleware("http")(logging_middleware)

    app.include_router(health_router, tags=["Health"])
    app.include_router(control_router, tags=["Control"])
    app.include_router(proxy_router, tags=["Proxy"])

    @app.exception_handler(NetworkError)
    async def network_error_handler(request: Request, exc: NetworkError):
        err_type, err_msg, err_status = get_error_details_from_exc(exc)
        return await log_and_return_error_response(
            request, err_status, err_type, err_msg, exc
        )

    @app.exception_handler(ControllerStateError)
    async def controller_state_error_handler(
        request: Request, exc: ControllerStateError
    ):
        err_type, err_msg, err_status = get_error_details_from_exc(exc)
        return await log_and_return_error_response(
            request, err_status, err_type, err_msg, exc
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_error_handler(request: Request, exc: ValidationError):
        return await log_and_return_error_response(
            request,
            422,
            ErrorType.INVALID_REQUEST,
            f"Validation error: {exc.errors()}",
            caught_exception=exc,
        )

    @app.exception_handler(json.JSONDecodeError)
    async def json_decode_error_handler(request: Request, exc: json.JSONDecodeError):
        return await log_and_return_error_response(
            request,
            400,
            ErrorType.INVALID_REQUEST,
            "Invalid JSON format.",
            caught_exception=exc,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        return await log_and_return_error_response(
            request,
            500,
            ErrorType.API_ERROR,
            "An unexpected internal server error occurred.",
            caught_exception=exc,
        )

    return app
