"""
Database session management.
"""
import ssl
from typing import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from surveyflow.config import settings


def get_async_url_and_connect_args():
    """
    Get the async database URL and connect_args for asyncpg.

    asyncpg doesn't accept the sslmode parameter - it needs ssl=True or an
    SSL context. sslmode is stripped from the URL and returned separately.
    """
    db_url = settings.async_database_url
    # Shown in pg_stat_activity
    connect_args = {"server_settings": {"application_name": "surveyflow"}}
    use_ssl = False

    parsed = urlparse(db_url)

    if parsed.query:
        params = parse_qs(parsed.query)
        if "sslmode" in params:
            sslmode = params.pop("sslmode", [""])[0]
            if sslmode in ("require", "verify-ca", "verify-full"):
                use_ssl = True
        params.pop("ssl", None)
        new_query = urlencode({k: v[0] for k, v in params.items()}, doseq=False) if params else ""
        db_url = urlunparse((parsed.scheme, parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment))

    if use_ssl:
        # Managed databases present certificates we don't pin
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = ssl_context

    return db_url, connect_args


async_db_url, async_connect_args = get_async_url_and_connect_args()

# Create async engine
engine = create_async_engine(
    async_db_url,
    echo=settings.debug,
    future=True,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    connect_args=async_connect_args,
)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
