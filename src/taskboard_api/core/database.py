"""Process-wide async engine and session factory.

The API, the CLI and background export jobs all draw sessions from the
factory created by ``init_engine``.  Export jobs hold a connection for as
long as they stream, so PostgreSQL engines get a pool with headroom beyond
the request handlers and ``pool_pre_ping`` to catch connections dropped
while a job sat between batches.  SQLite URLs (local runs and tests) use
SQLAlchemy's default pooling for the dialect.
"""

from typing import Any

from loguru import logger
from sqlalchemy import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

POSTGRES_POOL_DEFAULTS: dict[str, Any] = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_pre_ping": True,
}

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def is_sqlite_url(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def engine_options(database_url: str, *, schema: str | None = None, **overrides: Any) -> dict[str, Any]:
    """Build ``create_async_engine`` keyword arguments for ``database_url``.

    Args:
        database_url: Async connection string.
        schema: PostgreSQL schema searched before ``public``.  SQLite has no
            schemas, so it is ignored there with a warning.
        **overrides: Explicit engine arguments; these win over defaults.
            Passing ``poolclass`` disables the pool sizing defaults.
    """
    options = dict(overrides)
    if is_sqlite_url(database_url):
        if schema is not None:
            logger.warning(f"Ignoring database schema {schema!r} for SQLite database")
        return options

    if schema is not None:
        connect_args = dict(options.get("connect_args") or {})
        server_settings = dict(connect_args.get("server_settings") or {})
        server_settings["search_path"] = f"{schema},public"
        connect_args["server_settings"] = server_settings
        options["connect_args"] = connect_args

    if "poolclass" not in options:
        for key, value in POSTGRES_POOL_DEFAULTS.items():
            options.setdefault(key, value)
    return options


def init_engine(database_url: str, *, schema: str | None = None, **kwargs: Any) -> AsyncEngine:
    """Create the engine and session factory used by ``get_session_factory``.

    Sessions never expire loaded objects on commit; export jobs keep using
    the job row after each state change.
    """
    global _engine, _session_factory  # noqa: PLW0603
    _engine = create_async_engine(database_url, **engine_options(database_url, schema=schema, **kwargs))
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        msg = "Database engine not initialized. Call init_engine() first."
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        msg = "Session factory not initialized. Call init_engine() first."
        raise RuntimeError(msg)
    return _session_factory


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine.  Safe to call twice."""
    global _engine, _session_factory  # noqa: PLW0603
    engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        await engine.dispose()
