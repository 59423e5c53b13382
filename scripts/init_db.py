#!/usr/bin/env python3
"""Block until the database is reachable, then create any missing tables."""

from __future__ import annotations

import os
import sys
import time
from typing import Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from devsync.core.config import get_settings  # noqa: E402
from devsync.db.base import Base  # noqa: E402

DEFAULT_INTERVAL_SECONDS = 2.0
DEFAULT_TIMEOUT_SECONDS = 120.0


def _timestamp() -> str:
    return time.strftime("%Y-%m-%d %H:%M:%S")


def _log(message: str, *, stream: Optional[object] = None) -> None:
    target = stream or sys.stdout
    target.write(f"[init_db] {_timestamp()} {message}\n")
    target.flush()


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _log(f"invalid value for {name!r} ({value!r}); falling back to {default}", stream=sys.stderr)
        return default


def main() -> int:
    database_url = get_settings().database_url
    interval_seconds = max(_get_float("DB_WAIT_INTERVAL_SECONDS", DEFAULT_INTERVAL_SECONDS), 0.1)
    timeout_seconds = _get_float("DB_WAIT_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)
    deadline = time.monotonic() + timeout_seconds if timeout_seconds > 0 else None
    masked_url = make_url(database_url).render_as_string(hide_password=True)

    _log(f"waiting for database {masked_url} (interval={interval_seconds:.1f}s)")
    engine = create_engine(database_url, pool_pre_ping=True, future=True)

    attempt = 1
    while True:
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            break
        except SQLAlchemyError as exc:
            engine.dispose()
            _log(f"attempt {attempt}: database unavailable ({exc})", stream=sys.stderr)
            if deadline and time.monotonic() >= deadline:
                _log("giving up because DB_WAIT_TIMEOUT_SECONDS was exceeded", stream=sys.stderr)
                return 1
            time.sleep(interval_seconds)
            attempt += 1

    existing = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)
    created = sorted(set(Base.metadata.tables) - existing)
    _log(f"database ready after {attempt} attempt{'s' if attempt != 1 else ''}; created tables: {created or 'none'}")
    engine.dispose()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
