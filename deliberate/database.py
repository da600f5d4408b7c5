"""Database engine, declarative base and the request-scoped session."""

import logging
import ssl
from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from deliberate.config import Settings, settings

logger = logging.getLogger(__name__)

_SSL_QUERY_KEYS = ("sslmode", "ssl")


def get_engine_url_and_connect_args(database_url: str) -> tuple[str, dict]:
    """
    Split SSL options out of the URL.

    asyncpg rejects ``sslmode``/``ssl`` query parameters, so they are removed
    and any request for SSL becomes an ``ssl`` connect argument. ``disable``
    keeps the connection in plain text.
    """
    parsed = urlparse(database_url)
    query = parse_qs(parsed.query)
    requested = [query.pop(key)[0] for key in _SSL_QUERY_KEYS if key in query]
    if not requested:
        return database_url, {}

    url = urlunparse(parsed._replace(query=urlencode(query, doseq=True)))
    if all(mode in ("disable", "false") for mode in requested):
        return url, {}
    if any(mode in ("verify-full", "verify-ca") for mode in requested):
        return url, {"ssl": ssl.create_default_context()}

    # require/prefer: encrypt without verifying the pooler's certificate chain
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return url, {"ssl": ctx}


class Base(DeclarativeBase):
    """Declarative base for every table."""


def create_engine_from_settings(config: Settings) -> AsyncEngine:
    url, connect_args = get_engine_url_and_connect_args(config.database_url)
    return create_async_engine(
        url,
        echo=config.log_level.upper() == "DEBUG",
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


engine = create_engine_from_settings(settings)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; committed on success, rolled back on error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    await engine.dispose()
    logger.info("Database engine disposed")
