"""
Account Ledger API entry point.

create_app() wires the ledger service into FastAPI:
  - lifespan: logging setup, schema creation and engine disposal
  - CORS for the configured browser origins
  - translation of ledger errors into HTTP responses (app/exceptions.py)
  - the ledger routes and a health probe

Run a development server with:
    uvicorn app.main:app --reload
"""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import make_url

from app.config import settings
from app.database import Base, engine
from app.exceptions import register_exception_handlers
from app.logging import get_logger, setup_logging
from app.models import Account, Transaction  # noqa: F401  (registers the tables on Base.metadata)
from app.routers import ledger

logger = get_logger(__name__)


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Set up logging and the schema before the first request, release the
    connection pool after the last one.

    create_all() only adds missing tables; schema changes to existing
    tables need a migration.
    """
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    _ensure_sqlite_directory(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)

    yield

    await engine.dispose()
    logger.info("%s stopped", settings.APP_NAME)


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Account ledger API: deposits, withdrawals, transfers and history",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )

    register_exception_handlers(application)
    application.include_router(ledger.router, tags=["Ledger"])

    @application.get("/health", tags=["Health"])
    async def health_check():
        """Liveness probe; does not touch the database."""
        return {"status": "ok", "service": settings.APP_NAME, "version": settings.APP_VERSION}

    return application


app = create_app()
