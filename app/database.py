import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Build an engine for the SQL booking store.

    Railway/Heroku style ``postgres://`` URLs are rewritten for SQLAlchemy, and
    in-memory SQLite gets a single shared connection so every session sees the
    same tables.
    """
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    kwargs = {"echo": echo, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    logger.info(f"Using database: {database_url[:40]}...")
    return create_engine(database_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def create_tables(engine: Engine):
    """Create all tables in the database"""
    # Register mapped classes on Base.metadata
    from .models import booking  # noqa: F401

    Base.metadata.create_all(bind=engine)
