"""Database engine setup.

Postgres in every deployed environment; tests swap the engine for an
in-memory SQLite one (see ``tests/conftest.py``).
"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from wallstreet.core.config import settings

raw_url = settings.DATABASE_URL or "sqlite:///:memory:"

if raw_url.startswith("postgresql"):
    engine = create_engine(
        raw_url,
        future=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True,
    )
elif raw_url.startswith("sqlite"):
    engine = create_engine(raw_url, future=True, connect_args={"check_same_thread": False})
else:
    engine = create_engine(raw_url, future=True)

SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

