"""
LetterDesk - Database Configuration
SQLAlchemy engine and session factory, constructed at startup and injected.
"""
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

# Base class for ORM models
Base = declarative_base()


class Database:
    """Owns the engine and session factory for one process."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        connect_args = {}
        if url.startswith("sqlite"):
            # Background generation runs on worker threads
            connect_args = {"check_same_thread": False, "timeout": 30}
        self.engine = create_engine(url, echo=echo, connect_args=connect_args)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()

    def create_all(self) -> None:
        """Initialize database - create all tables."""
        # Import models so they register on Base.metadata
        from .models import db_models  # noqa: F401
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Iterator[Session]:
    """Dependency for FastAPI - yields database session."""
    db = request.app.state.services.database.session()
    try:
        yield db
    finally:
        db.close()
