"""
Warranty Portal - Database Configuration
SQLAlchemy engine/session handle owned by the running process
"""
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import ConflictError

# Base class for ORM models
Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Connection pool plus session factory.

    One instance is created when the process starts (API lifespan or the
    SFTP server entry point) and disposed when it stops. Components receive
    sessions from it instead of importing a module-level engine.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        engine_kwargs = {"echo": echo}
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url or url == "sqlite://":
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, **engine_kwargs)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def init_db(self) -> None:
        """Initialize database - create all tables."""
        # Models register themselves on Base at import time
        from .models import db_models  # noqa: F401
        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Iterator[Session]:
    """Dependency for FastAPI - yields a session from the app's Database."""
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()


def commit_unique(db: Session, message: str) -> None:
    """
    Commit an insert guarded by a unique column.

    A concurrent writer can pass the existence check first; the constraint
    violation is rolled back and reported as ConflictError.
    """
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(message)

