"""Connection verification against a target SQL Server.

``ConnectionResolver.test_connection`` makes exactly one attempt, runs
``SELECT @@VERSION`` and reports a ``ConnectionResult``.  Failures are
classified (see ``classification``) and never carry raw driver text as the
primary message.

Usage:
    from acto_sync.connection.resolver import ConnectionResolver

    resolver = ConnectionResolver(config.connection)
    result = await resolver.test_connection(server_info)
    if not result.valid:
        print(result.error_code, result.message)
"""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, Field
from sqlalchemy import text

from acto_sync.adapters.mssql import open_connection
from acto_sync.config.models import ConnectionSettings
from acto_sync.connection.classification import ConnectionErrorKind, classify_error
from acto_sync.connection.descriptor import ServerInfo, build_descriptor
from acto_sync.connection.redaction import redact

logger = logging.getLogger(__name__)

SERVER_VERSION_QUERY = "SELECT @@VERSION"


class ConnectionResult(BaseModel):
    """Outcome of a single connection attempt."""

    valid: bool
    message: str
    server_version: str | None = None
    tested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error_code: ConnectionErrorKind | None = None
    help_link: str | None = None
    errors: list[str] = Field(default_factory=list)


class ConnectionResolver:
    """Builds descriptors and verifies that a target database is reachable."""

    def __init__(self, settings: ConnectionSettings) -> None:
        self._settings = settings

    async def test_connection(self, info: ServerInfo) -> ConnectionResult:
        """Open one connection to ``info`` and read the server version.

        Invalid input (blank server, bad port, missing login) is reported as
        an invalid result rather than raised.
        """
        try:
            descriptor = build_descriptor(info, self._settings)
        except ValueError as e:
            return ConnectionResult(valid=False, message=redact(str(e)) or "Invalid server details.")

        try:
            async with open_connection(descriptor) as conn:
                result = await conn.execute(text(SERVER_VERSION_QUERY))
                version = result.scalar()
        except Exception as e:
            classified = classify_error(e)
            logger.warning(
                "Connection test failed for server=%s database=%s port=%s: %s",
                descriptor.server,
                descriptor.database,
                descriptor.port,
                classified.kind.value,
            )
            return ConnectionResult(
                valid=False,
                message=classified.message,
                error_code=classified.kind,
                help_link=classified.help_link,
                errors=[classified.detail] if classified.detail else [],
            )

        logger.info(
            "Connection test succeeded for server=%s database=%s port=%s",
            descriptor.server,
            descriptor.database,
            descriptor.port,
        )
        return ConnectionResult(
            valid=True,
            message="Connection successful.",
            server_version=str(version) if version is not None else None,
        )
