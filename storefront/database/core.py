from typing import Annotated
from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool
from ..core.config import settings
from ..logging import logger


def _database_url():
    """ DATABASE_URL wins, then discrete DB_* credentials, then a local SQLite file """
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    if settings.DB_HOST:
        return URL.create(
            settings.DB_DIALECT,
            username=settings.DB_USER or None,
            password=settings.DB_PASSWORD or None,
            host=settings.DB_HOST,
            port=int(settings.DB_PORT) if settings.DB_PORT else None,
            database=settings.DB_NAME,
        ).render_as_string(hide_password=False)
    logger.warning("DATABASE_URL not found in environment variables, falling back to SQLite")
    return "sqlite:///./storefront.db"


DATABASE_URL = _database_url()

logger.info("Using database: SQLite" if DATABASE_URL.startswith("sqlite") else f"Using database: {DATABASE_URL.split(':', 1)[0]}")

if DATABASE_URL.startswith("sqlite"):
    engine_kwargs = {"connect_args": {"check_same_thread": False}, "echo": False}
    if ":memory:" in DATABASE_URL or DATABASE_URL in ("sqlite://", "sqlite:///"):
        # One shared connection so every session sees the same in-memory database
        engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(DATABASE_URL, **engine_kwargs)

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=300,
        echo=False
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


DbSession = Annotated[Session, Depends(get_db)]


def init_db():
    """Create every table registered on the metadata."""
    from . import models  # noqa: F401  registers the entities
    Base.metadata.create_all(bind=engine)
