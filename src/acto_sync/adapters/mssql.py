"""Async SQL Server engine plumbing.

Engines are created through SQLAlchemy's ``mssql+aioodbc`` dialect with an
``async_creator`` so the credential reaches ``aioodbc.connect`` as separate
``UID``/``PWD`` keyword arguments and never appears in a URL or in the ODBC
connection string the engine holds.

Usage:
    from acto_sync.adapters.mssql import open_connection

    async with open_connection(descriptor) as conn:
        result = await conn.execute(text("SELECT @@SERVERNAME"))
        name = result.scalar()
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

if TYPE_CHECKING:
    from acto_sync.connection.descriptor import ConnectionDescriptor

DIALECT_URL = "mssql+aioodbc://"


def _creator(descriptor: "ConnectionDescriptor"):
    """Return an ``async_creator`` that opens raw aioodbc connections."""

    async def connect():
        # pyodbc needs the unixODBC runtime; load it on first connect only
        import aioodbc

        return await aioodbc.connect(
            dsn=descriptor.connection_string,
            **descriptor.driver_kwargs(),
        )

    return connect


def create_async_engine_pooled(
    descriptor: "ConnectionDescriptor",
    **kwargs: Any,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine with connection pooling.

    Default pool settings:

    - ``pool_size=5``: Reasonable default for typical workloads.
    - ``max_overflow=10``: Allow burst connections.
    - ``pool_pre_ping=True``: Validate connections before checkout.
    - ``pool_recycle=300``: Recycle connections every 5 minutes.

    Args:
        descriptor: Credential-free connection descriptor.
        **kwargs: Additional keyword arguments forwarded to
            ``create_async_engine``.

    Returns:
        Configured ``AsyncEngine``.
    """
    defaults: dict[str, Any] = {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "echo": False,
    }
    # Caller kwargs override defaults
    merged = {**defaults, **kwargs}

    return create_async_engine(DIALECT_URL, async_creator=_creator(descriptor), **merged)


def create_target_engine(descriptor: "ConnectionDescriptor") -> AsyncEngine:
    """Create an unpooled engine for short-lived connections to a target."""
    return create_async_engine(
        DIALECT_URL,
        async_creator=_creator(descriptor),
        poolclass=NullPool,
        echo=False,
    )


@asynccontextmanager
async def open_connection(descriptor: "ConnectionDescriptor") -> AsyncIterator[AsyncConnection]:
    """Open a single connection to ``descriptor`` and dispose of it afterwards.

    Errors from the driver propagate unchanged.
    """
    engine = create_target_engine(descriptor)
    try:
        async with engine.connect() as conn:
            yield conn
    finally:
        await engine.dispose()
