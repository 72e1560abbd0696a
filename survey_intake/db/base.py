"""SQLAlchemy engine management.

The store targets PostgreSQL in production but supports SQLite for local
development and CI. No declarative models are defined here; this module only
manages engine lifecycle for the Core-level repository.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def _db_url() -> str:
    return (
        os.getenv("TEST_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or "sqlite+pysqlite:///:memory:"
    )


# Module-level cached Engine so repositories share the same connection pool
_ENGINE: Optional[Engine] = None
_ENGINE_URL: Optional[str] = None


def make_engine(url: str) -> Engine:
    """Create a new Engine for ``url``.

    SQLite in-memory URLs get a StaticPool so the single connection (and its
    data) survives across threads; store calls run in worker threads.
    """
    kwargs: dict = {"future": True, "pool_pre_ping": True}
    if url.startswith("sqlite") and ":memory:" in url:
        kwargs.update({
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        })
    logger.info("db_engine_create dialect=%s", url.split(":", 1)[0])
    return create_engine(url, **kwargs)


def get_engine(url: Optional[str] = None) -> Engine:
    """Return the shared Engine for the given URL, creating it on first use."""
    global _ENGINE, _ENGINE_URL
    resolved_url = url or _db_url()
    if _ENGINE is None or _ENGINE_URL != resolved_url:
        _ENGINE = make_engine(resolved_url)
        _ENGINE_URL = resolved_url
    return _ENGINE


def dispose_engine() -> None:
    global _ENGINE, _ENGINE_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _ENGINE_URL = None


__all__ = ["make_engine", "get_engine", "dispose_engine"]
