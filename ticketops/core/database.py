"""Engine access shared by routers, the lifecycle controller and CLIs."""
from __future__ import annotations

from functools import lru_cache

from sqlalchemy.engine import Engine, create_engine

from ticketops.core.config import settings


@lru_cache(maxsize=1)
def _cached_engine(url: str) -> Engine:
    return create_engine(url, future=True, pool_pre_ping=True)


def get_engine() -> Engine:
    """Return the process-wide engine for ``settings.database_url``.

    Also used as a FastAPI dependency so tests can swap in their own engine
    through ``app.dependency_overrides``.
    """
    return _cached_engine(settings.database_url)


def ensure_engine(engine: Engine | None) -> Engine:
    return engine or get_engine()


def db_schema() -> str | None:
    return settings.DB_SCHEMA or None
