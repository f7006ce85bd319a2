"""Database connection and session management."""

import ssl
from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from esla.config import settings

# libpq modes that encrypt without checking the server certificate
_UNVERIFIED_SSL_MODES = {"require", "prefer", "allow", "true"}


def _make_ssl_context_for_hosted_pg():
    """SSL context for hosted Postgres poolers - disables cert verification."""
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _ssl_context_for_mode(mode: str):
    """asyncpg `ssl` argument for a libpq sslmode; None leaves SSL off."""
    if mode in ("", "disable", "false"):
        return None
    if mode == "verify-full":
        return ssl.create_default_context()
    if mode == "verify-ca":
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        return ctx
    if mode in _UNVERIFIED_SSL_MODES:
        return _make_ssl_context_for_hosted_pg()
    raise ValueError(f"Unsupported sslmode: {mode}")


def get_engine_url_and_connect_args(database_url: str):
    """Strip sslmode from URL (asyncpg doesn't accept it) and add SSL via connect_args."""
    url = database_url
    connect_args = {}
    if "sslmode=" in url or "ssl=" in url:
        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        modes = query.pop("sslmode", None) or query.pop("ssl", None) or [""]
        query.pop("ssl", None)
        new_query = urlencode(query, doseq=True)
        url = urlunparse(parsed._replace(query=new_query))
        ctx = _ssl_context_for_mode(modes[0].lower())
        if ctx is not None:
            connect_args["ssl"] = ctx
    return url, connect_args


_db_url, _connect_args = get_engine_url_and_connect_args(settings.database_url)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


engine = create_async_engine(
    _db_url,
    echo=settings.log_level == "DEBUG",
    connect_args=_connect_args,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for database sessions."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
