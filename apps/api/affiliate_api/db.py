from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from .settings import settings


def _connect_args(database_url: str) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        # Redirect side effects write from worker threads; writers wait on the file lock.
        return {"check_same_thread": False, "timeout": 30}
    return {}


engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.sql_echo,
    connect_args=_connect_args(settings.database_url),
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker[Session]:
    return SessionLocal


def check_db_health() -> bool:
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
    return True
