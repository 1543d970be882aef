"""
FastAPI application factory.
"""
import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Settings
from ..errors import SetupError, SyntropyError
from ..host import HostInspector
from ..utils import Clock, utc_now
from .deps import Services, build_services, error_envelope
from .routes import config, health, setup, validation

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def create_app(
    settings: Optional[Settings] = None,
    host: Optional[HostInspector] = None,
    clock: Clock = utc_now,
    services: Optional[Services] = None,
) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(title="Syntropy Manager API", version=__version__)
    app.state.services = services or build_services(settings, host, clock)

    app.include_router(health.router)
    app.include_router(config.router, prefix=API_PREFIX)
    app.include_router(setup.router, prefix=API_PREFIX)
    app.include_router(validation.router, prefix=API_PREFIX)

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d interface=%s user_id=%s duration=%.3fs",
            request.method,
            request.url.path,
            response.status_code,
            getattr(request.state, "interface", request.query_params.get("interface", "")),
            getattr(request.state, "user_id", request.query_params.get("user_id", "")),
            time.perf_counter() - started,
        )
        return response

    @app.exception_handler(SyntropyError)
    async def syntropy_error_handler(request: Request, exc: SyntropyError) -> JSONResponse:
        extra = {}
        details = ""
        if isinstance(exc, SetupError):
            details = exc.step
            extra["step"] = exc.step
            extra["config"] = exc.config
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc)
        body = error_envelope(exc.code, str(exc), exc.status_code, details=details, **extra)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        field = ".".join(str(p) for p in errors[0].get("loc", ())) if errors else ""
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        body = error_envelope("INVALID_REQUEST", message, 400, details=str(len(errors)), field=field)
        return JSONResponse(status_code=400, content=jsonable_encoder(body))

    logger.debug("application created home=%s", settings.home_dir)
    return app
