"""FastAPI application factory.

Lifespan
--------
On startup the app opens a single SQLite connection (shared across all
requests via ``request.app.state.db``), initialises the schema and builds the
collaborators every analysis run uses.  On shutdown it closes the connection
cleanly.

Routers
-------
    /analysis  - run an analysis, fetch stored results
    /health    - liveness probe
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mailsift import __version__
from mailsift.analysis.llm import LLMClassifier, SemanticClassifier
from mailsift.config import Settings
from mailsift.db import SQLiteResultStore, get_connection, init_db
from mailsift.documents import DocumentSource, FileDocumentSource
from mailsift.retrieval.web import HttpWebClient, WebClient

from mailsift.api.routers import analysis as analysis_router
from mailsift.api.routers import health as health_router


def create_app(
    settings: Optional[Settings] = None,
    *,
    documents: Optional[DocumentSource] = None,
    classifier: Optional[SemanticClassifier] = None,
    web: Optional[WebClient] = None,
) -> FastAPI:
    """Return a fully-configured FastAPI application instance.

    Collaborators default to the production implementations built from
    *settings*; tests pass fakes instead.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Open the DB on startup and close it on shutdown."""
        settings.ensure_workspace()
        conn = get_connection(settings.db_path)
        init_db(conn)
        app.state.db = conn
        app.state.store = SQLiteResultStore(conn)
        try:
            yield
        finally:
            conn.close()

    app = FastAPI(
        title="mailsift API",
        description=(
            "REST interface for criteria-driven email analysis: runs the "
            "link-following classification pipeline over a stored document "
            "and serves persisted results."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.documents = documents or FileDocumentSource(settings.documents_dir)
    app.state.classifier = classifier or LLMClassifier(settings)
    app.state.web = web or HttpWebClient(settings)

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(analysis_router.router, prefix="/analysis", tags=["analysis"])
    app.include_router(health_router.router, prefix="/health", tags=["health"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn mailsift.api.app:app --reload
app = create_app()
