from __future__ import annotations

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.routing import Match

from storefront.api.error_handling import register_exception_handlers, service_error_response
from storefront.api.routes import router
from storefront.config import get_settings
from storefront.logging import get_logger, set_correlation_id
from storefront.service.errors import ServiceError
from storefront.service.runtime import get_runtime

logger = get_logger(__name__)

__version__ = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = get_runtime()
    logger.info("startup_complete", app_env=runtime.settings.app_env)

    yield

    try:
        await get_runtime().close()
        logger.info("runtime_cleanup_complete")
    except Exception as exc:
        logger.error("shutdown_failed", error=str(exc))


app = FastAPI(title="Storefront Identity", version=__version__, lifespan=lifespan)


def _allowed_origins() -> List[str]:
    settings = get_settings()
    if settings.cors_allow_origins:
        return settings.cors_allow_origins
    # credentials are allowed, so never fall back to a wildcard
    return [settings.client_url.rstrip("/")]


def _route_template(request: Request) -> Optional[str]:
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", None)
    return None


@app.middleware("http")
async def authorize_request(request: Request, call_next):
    """Apply the route's role requirement before the handler runs.

    Requests that match no route are left to the router so it can answer
    404 or 405.
    """
    route_path = _route_template(request)
    if route_path is None:
        return await call_next(request)
    guard = get_runtime().guard
    try:
        principal = guard.authorize(
            request.method, route_path, request.headers.get("Authorization")
        )
    except ServiceError as exc:
        return service_error_response(exc)
    request.state.principal = principal
    return await call_next(request)


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if request.url.path.startswith(("/auth/", "/users/", "/dashboard/")):
        response.headers.setdefault("Cache-Control", "no-store")
    return response


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag each request with ``X-Request-ID`` for log correlation.

    The client's header is reused when present, otherwise a UUID is generated.
    """
    correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)

register_exception_handlers(app)
app.include_router(router)
