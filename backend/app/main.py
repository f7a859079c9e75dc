"""Registry Backend Application.

Entry point for the upload service of the beneficiary registry. The
GraphQL API owns the login session (a server-side session store keyed by
the signed ``sessionId`` cookie); this app reads it to authenticate the
upload endpoints and serves the stored files.

Modules:
    - auth: identity lookup through the signed session cookie
    - files: upload admission, storage, references and the upload ledger
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from app.auth.session import (
    IdentityLookup,
    SessionAuthenticator,
    SessionStoreReader,
    SqlSessionStore,
    StoreSessionAuthenticator,
)
from app.config import AppConfig, get_config
from app.files.gatekeeper import UploadGatekeeper
from app.files.ledger import UploadLedger
from app.files.router import router as files_router
from app.files.storage import StorageRouter

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# python-multipart logs every parsed part at debug level
for _noisy in ("multipart", "multipart.multipart", "python_multipart"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config: AppConfig = app.state.config

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    app.state.storage.ensure_dirs()
    logger.info("Upload directories ready under %s", config.storage.public_root)

    if config.storage.ledger_enabled:
        Path(config.storage.ledger_path).parent.mkdir(parents=True, exist_ok=True)
        app.state.ledger = UploadLedger(db_path=config.storage.ledger_path)
        logger.info("Upload ledger open: %s", config.storage.ledger_path)
    else:
        app.state.ledger = None
        logger.info("Upload ledger disabled in config.")

    yield  # Application runs here

    # Shutdown
    if app.state.ledger is not None:
        app.state.ledger.close()
    logger.info("Application shutdown complete")


def _build_identity_lookup(
    config: AppConfig,
    session_store: Optional[SessionStoreReader],
) -> IdentityLookup:
    if config.session.backend == "cookie":
        return SessionAuthenticator(user_key=config.session.user_key)

    if session_store is None and config.secrets.database.url:
        session_store = SqlSessionStore(url=config.secrets.database.url)
        logger.info("Reading sessions from the shared session store")
    if session_store is None:
        logger.warning("No session store configured; every upload is unauthenticated")
    return StoreSessionAuthenticator(
        session_store,
        secrets=[config.secrets.session.secret_key],
        cookie_name=config.session.cookie_name,
        user_key=config.session.user_key,
    )


def create_app(
    config: Optional[AppConfig] = None,
    session_store: Optional[SessionStoreReader] = None,
) -> FastAPI:
    """Build the FastAPI application for ``config`` (defaults to the loaded config).

    ``session_store`` replaces the store built from ``secrets.database.url``
    when the session backend is ``store``.
    """
    config = config or get_config()

    app = FastAPI(
        title="Registry Upload API",
        description="Authenticated image and document uploads for the beneficiary registry",
        version="0.1.0",
        lifespan=lifespan,
    )

    storage = StorageRouter(
        public_root=config.storage.public_root,
        image_dir=config.storage.image_dir,
        document_dir=config.storage.document_dir,
        naming=config.storage.naming,
        chunk_size=config.storage.chunk_size,
        max_file_size=config.uploads.max_file_size_bytes,
    )
    app.state.config = config
    app.state.storage = storage
    app.state.gatekeeper = UploadGatekeeper(_build_identity_lookup(config, session_store))

    # Added last runs first: CORS wraps the session middleware
    if config.session.backend == "cookie":
        app.add_middleware(
            SessionMiddleware,
            secret_key=config.secrets.session.secret_key,
            session_cookie=config.session.cookie_name,
            max_age=config.session.max_age_seconds,
            https_only=config.is_production,
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(files_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    # Stored uploads are served from the public root; mounted last so the
    # upload routes above take precedence.
    app.mount(
        "/",
        StaticFiles(directory=str(storage.public_root), check_dir=False),
        name="public",
    )

    return app


app = create_app()
