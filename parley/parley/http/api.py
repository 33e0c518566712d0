from __future__ import annotations

"""FastAPI application factory for Parley.

``create_app`` wires one store, one topic router and the message service that
joins them, then registers every router module under
:mod:`parley.http.routes` plus the ``/ws`` live connection endpoint.  Domain
errors are rendered as ``{"detail": ...}`` with the status each error class
carries.
"""

from contextlib import asynccontextmanager
from importlib import import_module
import pkgutil

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

import structlog

from ..config import AppConfig, load_config
from ..errors import ParleyError
from ..messaging import MessageService
from ..store import JsonStore, init_store
from ..topics import TopicRouter
from .ws import Gateway, websocket_endpoint


logger = structlog.get_logger()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and whether it succeeds or fails."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        logger.info("request.start", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
            logger.info(
                "request.success",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
            return response
        except Exception as exc:  # pragma: no cover
            logger.exception(
                "request.failure",
                method=request.method,
                path=request.url.path,
                error=str(exc),
            )
            raise


async def parley_error_handler(request: Request, exc: ParleyError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.info
    log(
        "request.rejected",
        path=request.url.path,
        status_code=exc.http_status,
        error=exc.message,
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("request.invalid", path=request.url.path, errors=str(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "invalid request body"},
    )


def create_app(
    config: AppConfig | None = None,
    *,
    store: JsonStore | None = None,
    router: TopicRouter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    cfg = config or load_config()
    if store is None:
        store = init_store(cfg.store.path)
    if router is None:
        router = TopicRouter(
            send_timeout=cfg.delivery.send_timeout,
            outbox_limit=cfg.delivery.outbox_limit,
        )
    service = MessageService(store, router)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        snapshot = await store.snapshot()
        logger.info(
            "app.start",
            store=str(store.path),
            version=snapshot.version,
        )
        yield
        await router.close()
        logger.info("app.stop")

    app = FastAPI(title="Parley", lifespan=lifespan)
    app.state.config = cfg
    app.state.store = store
    app.state.router = router
    app.state.service = service
    app.state.gateway = Gateway(service, router)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(ParleyError, parley_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_api_websocket_route("/ws", websocket_endpoint)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    # Include routers from all modules in the routes package
    from . import routes as routes_pkg

    for _, module_name, _ in pkgutil.iter_modules(routes_pkg.__path__):
        module = import_module(f"{routes_pkg.__name__}.{module_name}")
        route = getattr(module, "router", None)
        if route is not None:
            app.include_router(route)

    return app
