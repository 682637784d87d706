"""Database connection and session management for the SQL metadata backend."""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from object_vault.models import Base


def create_metadata_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine for the metadata database.

    SQLite connections are shared across worker threads; callers serialize
    writes themselves.
    """
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(engine)
