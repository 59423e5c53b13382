from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from devsync.core.config import get_settings
from devsync.observability.metrics import instrument_engine

settings = get_settings()

engine_kwargs: dict[str, Any] = {"future": True}

if settings.database_url.startswith(("postgresql", "postgres")):
    engine_kwargs.update({
        "connect_args": {"options": "-c timezone=utc"},
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 1800,
    })
elif settings.database_url.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(settings.database_url, **engine_kwargs)

instrument_engine(engine)

SessionLocal = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def open_session() -> Session:
    """Open a session outside a request, from the factory current at call time."""
    return SessionLocal()
