"""Engine construction and per-request database sessions"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from finboard.config import settings


def build_engine(database_url: str) -> Engine:
    """
    Create an engine suited to the backend.

    Postgres gets a bounded pool (10 + 10 overflow, recycled hourly).
    SQLite is only used for local runs and tests and needs cross-thread access
    under TestClient.
    """
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
