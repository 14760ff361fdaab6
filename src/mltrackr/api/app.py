"""FastAPI application factory.

API layer:
- Resolves the caller from the identity provider's header
- Validates inputs, delegates to the tracking layer
- Returns payloads for the dashboard
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Generator

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mltrackr.core.errors import StoreUnavailableError
from mltrackr.db.repo import DbSession
from mltrackr.db.session import get_session, init_db

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:5173"


def get_db_session(request: Request) -> Generator[DbSession, None, None]:
    """Dependency to get database session.

    Yields:
        Database session that is automatically closed after request.
    """
    session = get_session(request.app.state.db_path)
    try:
        yield session
    finally:
        session.close()


def get_caller_id(x_user_id: str | None = Header(default=None)) -> str:
    """Dependency resolving the authenticated caller.

    The identity provider in front of this service authenticates the
    request and forwards the user id in the X-User-Id header.

    Raises:
        HTTPException: 401 if the header is missing or blank.
    """
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()


def _cors_origins() -> list[str]:
    raw = os.environ.get("MLTRACKR_CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def create_app(db_path: Path | None = None) -> FastAPI:
    """Create FastAPI application.

    Args:
        db_path: Optional path to database file. Falls back to
            MLTRACKR_DB_PATH, then data/mltrackr.db.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        init_db(app.state.db_path)
        yield

    app = FastAPI(
        title="MLTrackr API",
        description="Experiment tracking with versioned history and statistics",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.db_path = db_path

    # Add CORS middleware for dashboard access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(
        request: Request, exc: StoreUnavailableError
    ) -> JSONResponse:
        logger.error(
            "Store failure on %s %s", request.method, request.url.path, exc_info=exc
        )
        return JSONResponse(status_code=503, content={"detail": exc.message})

    # Include routes; stats must precede experiments so /experiments/stats
    # is not captured by /experiments/{experiment_id}
    from mltrackr.api.routes import experiments, stats

    app.include_router(stats.router, prefix="/api")
    app.include_router(experiments.router, prefix="/api")

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "mltrackr",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


# Default app instance
app = create_app()
