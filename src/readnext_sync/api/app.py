"""FastAPI application for the ReadNext sync server.

Routes:

- ``POST /api/sync/{namespace}`` -- push changes, pull the next page.
- ``GET /api/articles/{namespace}/{article_id}`` -- one stored article.
- ``GET /api/stats/{namespace}`` -- record count and truncated articles.
- ``GET /health``, ``GET /`` -- liveness, no auth.

All ``/api`` routes require the shared PIN when one is configured.  Store
work runs in a worker thread via ``run_sync`` so slow backends only slow
their own request.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .. import __version__
from ..config import Config
from ..core.async_utils import run_sync
from ..errors import AuthError, RequestError, StoreUnavailable
from ..lifespan import store_lifespan
from ..store import Store
from ..sync import SyncSession, collect_namespace_stats, parse_sync_request
from .auth import PIN_HEADER, require_pin

logger = logging.getLogger(__name__)


def _install(app: FastAPI, store: Store) -> None:
    app.state.store = store
    app.state.session = SyncSession(
        store, max_page_size=app.state.config.max_page_size
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    config: Config | None = None, store: Store | None = None
) -> FastAPI:
    """Build the sync API.

    Args:
        config: Runtime configuration.  Defaults to ``Config()``.
        store: Pre-built store.  When given it is used as-is and left open
            on shutdown; otherwise the store is opened from *config* by the
            app lifespan and closed when the app stops.
    """
    config = config or Config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if store is not None:
            yield
            return
        with store_lifespan(config) as opened:
            _install(app, opened)
            logger.info("ReadNext sync server v%s ready", __version__)
            yield

    app = FastAPI(
        title="ReadNext Sync Server",
        description="Two-way article sync with content healing",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    if store is not None:
        _install(app, store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "Content-Length",
            "X-Requested-With",
            PIN_HEADER,
        ],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.debug(
            "Incoming %s %s - Length: %s",
            request.method,
            request.url.path,
            request.headers.get("content-length"),
        )
        return await call_next(request)

    # --- Error translation ---

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        return _error(401, str(exc))

    @app.exception_handler(RequestError)
    async def handle_request_error(
        request: Request, exc: RequestError
    ) -> JSONResponse:
        logger.info("Rejected request %s: %s", request.url.path, exc)
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        logger.info("Rejected request %s: %s", request.url.path, problems)
        return _error(400, problems)

    @app.exception_handler(StoreUnavailable)
    async def handle_store_unavailable(
        request: Request, exc: StoreUnavailable
    ) -> JSONResponse:
        logger.error(
            "Store unavailable [%s] during %s: %s",
            exc.namespace,
            exc.operation,
            exc.detail,
        )
        return _error(503, f"Storage unavailable: {exc.detail}")

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Sync Error on %s", request.url.path)
        return _error(500, str(exc))

    # --- Routes ---

    @app.get("/", response_class=PlainTextResponse)
    async def banner() -> str:
        return "ReadNext Sync Server Running."

    @app.get("/health")
    async def health(request: Request) -> dict[str, str]:
        return {
            "status": "healthy",
            "service": "readnext-sync",
            "version": __version__,
            "backend": request.app.state.config.backend,
        }

    @app.post("/api/sync/{namespace}", dependencies=[Depends(require_pin)])
    async def sync_namespace(
        namespace: str,
        request: Request,
        body: Annotated[Any, Body()] = None,
    ) -> dict[str, Any]:
        """Push the client's changes, then return the next page of updates."""
        sync_request = parse_sync_request(body)
        session: SyncSession = request.app.state.session
        response = await run_sync(session.run, namespace, sync_request)
        return response.model_dump(by_alias=True)

    @app.get(
        "/api/articles/{namespace}/{article_id}",
        dependencies=[Depends(require_pin)],
    )
    async def get_article(
        namespace: str, article_id: str, request: Request
    ):
        record = await run_sync(
            request.app.state.store.get, namespace, article_id
        )
        if record is None:
            return _error(404, f"Article '{article_id}' not found")
        return record.to_payload()

    @app.get("/api/stats/{namespace}", dependencies=[Depends(require_pin)])
    async def namespace_stats(namespace: str, request: Request) -> dict[str, Any]:
        stats = await run_sync(
            collect_namespace_stats, request.app.state.store, namespace
        )
        return stats.model_dump()

    return app
