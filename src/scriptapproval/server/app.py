"""FastAPI application serving the approval backend.

Dependencies: config, store, server.routes
Wired in: cli.py → serve (uvicorn factory ``create_app_from_env``)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from scriptapproval import __version__
from scriptapproval.config import Settings
from scriptapproval.errors import UnknownKindError
from scriptapproval.hashing import ArtifactKind
from scriptapproval.server.routes import router
from scriptapproval.store import ApprovalStore, LegacyConverter

_log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan; startup/shutdown hooks."""
    store: ApprovalStore = app.state.store
    pending = {kind: len(store.snapshot(kind).pending) for kind in ArtifactKind}
    _log.info(
        "Script approval server starting (pending: %s)",
        ", ".join(f"{kind}={count}" for kind, count in pending.items()),
    )
    yield
    _log.info("Script approval server shutting down")


async def _unknown_kind_handler(_request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


def create_app(
    store: ApprovalStore,
    *,
    converter: LegacyConverter | None = None,
    api_key: str | None = None,
) -> FastAPI:
    """Build an app bound to *store*; mutating routes require *api_key* when set."""
    app = FastAPI(
        title="Script Approval",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.converter = converter or LegacyConverter(store)
    app.state.api_key = api_key
    app.add_exception_handler(UnknownKindError, _unknown_kind_handler)
    app.include_router(router)
    return app


def create_app_from_env() -> FastAPI:
    """Uvicorn factory reading :class:`Settings` from the environment."""
    settings = Settings.from_env()
    if settings.api_key is None:
        _log.warning("SCRIPT_APPROVAL_API_KEY is not set; mutating endpoints are open.")
    store = ApprovalStore(db_path=settings.db_path)
    return create_app(store, api_key=settings.api_key)
