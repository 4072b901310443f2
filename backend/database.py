"""
Database engine and session factory.

Request handlers and scripts obtain sessions here; the services themselves
receive a Session and never create engines.
"""

import logging
from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from api.config import settings

logger = logging.getLogger(__name__)

# Create database engine
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=settings.DB_POOL_PRE_PING,
    echo=settings.DEBUG
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Get database session.

    Yields database session and ensures it's closed after use.

    Usage:
        for db in get_db():
            service = RunImportService(db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
