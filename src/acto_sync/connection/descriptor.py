"""Connection descriptors with credentials carried separately.

A ``ConnectionDescriptor`` holds everything needed to reach a SQL Server
database except the login.  Its ``connection_string`` is an ODBC string with
no ``UID``/``PWD`` keys; the ``Credential`` travels beside it and is handed
to the driver as separate keyword arguments.  Logging, ``repr()`` or
``model_dump()`` of a descriptor therefore never exposes the password.

The same ``build_descriptor`` is used when verifying a connection and when
the orchestrator opens a target for schema reading, so both paths share the
encryption defaults driven by the configured environment.

Usage:
    from acto_sync.connection.descriptor import ServerInfo, build_descriptor

    info = ServerInfo.from_connection_string(
        "Server=db1,1444;Database=Sales;User Id=app;Password=secret;"
    )
    descriptor = build_descriptor(info, settings)
    descriptor.connection_string
    # 'Driver={ODBC Driver 18 for SQL Server};Server=tcp:db1,1444;Database=Sales;...'
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from acto_sync.config.models import ConnectionSettings
from acto_sync.connection.redaction import redact
from acto_sync.errors import InvalidConnectionStringError

DEFAULT_PORT = 1433
MIN_TIMEOUT = 5
MAX_TIMEOUT = 120


# ============================================================================
# Models
# ============================================================================


class Credential(BaseModel):
    """SQL Server login, kept apart from the connection string."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: SecretStr

    def driver_kwargs(self) -> dict[str, str]:
        """Keyword arguments for ``pyodbc.connect`` / ``aioodbc.connect``."""
        return {"UID": self.username, "PWD": self.password.get_secret_value()}


class ServerInfo(BaseModel):
    """User-supplied target server details."""

    server: str
    port: int = DEFAULT_PORT
    database: str
    username: str | None = None
    password: SecretStr | None = None
    encrypt: bool = True
    trust_server_certificate: bool = False
    connection_timeout: int = 30
    application_name: str | None = None

    @classmethod
    def from_connection_string(cls, raw: str) -> "ServerInfo":
        """Build ``ServerInfo`` from an ADO.NET / ODBC style connection string.

        Raises:
            InvalidConnectionStringError: If the string has no server or no
                database, or a value cannot be parsed.  The message never
                contains the raw string.
        """
        values = parse_connection_string(raw)

        server = _first(values, "server", "data source", "address", "addr", "network address")
        database = _first(values, "database", "initial catalog")
        if not server:
            raise InvalidConnectionStringError("Connection string does not specify a server.")
        if not database:
            raise InvalidConnectionStringError("Connection string does not specify a database.")

        host, port = _split_data_source(server)

        fields: dict[str, Any] = {"server": host, "port": port, "database": database}

        username = _first(values, "user id", "uid", "user", "username")
        password = _first(values, "password", "pwd")
        if username:
            fields["username"] = username
        if password is not None:
            fields["password"] = SecretStr(password)

        encrypt = _first(values, "encrypt")
        if encrypt is not None:
            fields["encrypt"] = _parse_bool(encrypt, "Encrypt")
        trust = _first(values, "trustservercertificate", "trust server certificate")
        if trust is not None:
            fields["trust_server_certificate"] = _parse_bool(trust, "TrustServerCertificate")
        timeout = _first(values, "connect timeout", "connection timeout", "timeout")
        if timeout is not None:
            try:
                fields["connection_timeout"] = int(timeout)
            except ValueError:
                raise InvalidConnectionStringError(
                    "Connection timeout must be an integer number of seconds."
                ) from None
        app_name = _first(values, "application name", "app")
        if app_name:
            fields["application_name"] = app_name

        return cls(**fields)


class ConnectionDescriptor(BaseModel):
    """Validated, credential-free description of a SQL Server connection."""

    model_config = ConfigDict(frozen=True)

    server: str
    port: int
    database: str
    driver: str
    encrypt: bool
    trust_server_certificate: bool
    timeout: int
    application_name: str
    trusted_connection: bool = False
    credential: Credential | None = Field(default=None, exclude=True, repr=False)

    @property
    def data_source(self) -> str:
        """``host`` for the default port, ``host,port`` otherwise."""
        if self.port == DEFAULT_PORT:
            return self.server
        return f"{self.server},{self.port}"

    @property
    def connection_string(self) -> str:
        """ODBC connection string without any credential keys."""
        parts = [
            f"Driver={{{self.driver}}}",
            f"Server=tcp:{self.data_source}",
            f"Database={_quote_value(self.database)}",
            f"Encrypt={'yes' if self.encrypt else 'no'}",
            f"TrustServerCertificate={'yes' if self.trust_server_certificate else 'no'}",
            f"Connection Timeout={self.timeout}",
            f"APP={_quote_value(self.application_name)}",
        ]
        if self.trusted_connection:
            parts.append("Trusted_Connection=yes")
        return ";".join(parts) + ";"

    def driver_kwargs(self) -> dict[str, str]:
        """Credential keyword arguments for the driver (empty for trusted)."""
        if self.credential is None:
            return {}
        return self.credential.driver_kwargs()

    def safe_target(self) -> str:
        """``server:port/database`` for log lines."""
        return f"{self.server}:{self.port}/{self.database}"


# ============================================================================
# Builders
# ============================================================================


def build_descriptor(
    info: ServerInfo,
    settings: ConnectionSettings,
    trusted_connection: bool = False,
) -> ConnectionDescriptor:
    """Build a validated ``ConnectionDescriptor`` from ``ServerInfo``.

    TrustServerCertificate is the caller's flag, relaxed to ``True`` only in
    the ``development`` environment.  The timeout is clamped to 5..120
    seconds.

    Raises:
        ValueError: If server or database is blank, the port is out of
            range, or a SQL login is missing its user name or password.
    """
    if not info.server or not info.server.strip():
        raise ValueError("Server cannot be null or empty.")
    if not info.database or not info.database.strip():
        raise ValueError("Database cannot be null or empty.")
    if info.port <= 0 or info.port > 65535:
        raise ValueError("Port must be between 1 and 65535.")

    credential: Credential | None = None
    if not trusted_connection:
        if not info.username or not info.username.strip():
            raise ValueError("Username cannot be null or empty.")
        if info.password is None or not info.password.get_secret_value():
            raise ValueError("Password cannot be null or empty.")
        credential = Credential(username=info.username, password=info.password)

    return ConnectionDescriptor(
        server=info.server.strip(),
        port=info.port,
        database=info.database.strip(),
        driver=settings.driver,
        encrypt=info.encrypt,
        trust_server_certificate=info.trust_server_certificate or settings.is_development,
        timeout=min(max(info.connection_timeout, MIN_TIMEOUT), MAX_TIMEOUT),
        application_name=info.application_name or settings.application_name,
        trusted_connection=trusted_connection,
        credential=credential,
    )


def descriptor_from_connection_string(
    raw: str,
    settings: ConnectionSettings,
) -> ConnectionDescriptor:
    """Parse a raw connection string and build its descriptor.

    Raises:
        InvalidConnectionStringError: If the string cannot be parsed or
            fails descriptor validation.  The message is redacted.
    """
    info = ServerInfo.from_connection_string(raw)
    try:
        return build_descriptor(info, settings)
    except ValueError as e:
        raise InvalidConnectionStringError(redact(str(e))) from None


def parse_connection_string(raw: str) -> dict[str, str]:
    """Split ``key=value;`` pairs into a dict with lower-cased keys.

    Values may be wrapped in ``{braces}`` (with ``}}`` as an escaped brace)
    or in single/double quotes, in which case ``;`` inside them is literal.
    Later duplicates win, matching SqlClient.

    Raises:
        InvalidConnectionStringError: On an unterminated quoted value or a
            segment without ``=``.
    """
    if raw is None or not raw.strip():
        raise InvalidConnectionStringError("Connection string cannot be empty.")

    values: dict[str, str] = {}
    i, n = 0, len(raw)
    while i < n:
        # key
        eq = raw.find("=", i)
        semi = raw.find(";", i)
        if eq == -1 or (semi != -1 and semi < eq):
            segment = raw[i:semi if semi != -1 else n].strip()
            if segment:
                raise InvalidConnectionStringError(
                    "Connection string segment is missing '='."
                )
            i = (semi if semi != -1 else n) + 1
            continue
        key = " ".join(raw[i:eq].split()).lower()
        i = eq + 1
        while i < n and raw[i] in " \t":
            i += 1

        # value
        if i < n and raw[i] in "{'\"":
            value, i = _read_quoted(raw, i)
            while i < n and raw[i] != ";":
                i += 1
        else:
            end = raw.find(";", i)
            end = n if end == -1 else end
            value = raw[i:end].strip()
            i = end
        i += 1

        if key:
            values[key] = value

    return values


# ============================================================================
# Helpers
# ============================================================================


def _read_quoted(raw: str, start: int) -> tuple[str, int]:
    """Read a ``{...}`` / quoted value starting at ``start``."""
    opener = raw[start]
    closer = "}" if opener == "{" else opener
    out: list[str] = []
    i = start + 1
    while i < len(raw):
        ch = raw[i]
        if ch == closer:
            if i + 1 < len(raw) and raw[i + 1] == closer:
                out.append(ch)
                i += 2
                continue
            return "".join(out), i + 1
        out.append(ch)
        i += 1
    raise InvalidConnectionStringError("Connection string has an unterminated quoted value.")


def _first(values: dict[str, str], *keys: str) -> str | None:
    for key in keys:
        if key in values:
            return values[key]
    return None


def _split_data_source(server: str) -> tuple[str, int]:
    """``tcp:host,1444`` -> (``host``, 1444); named instances stay intact."""
    host = server.strip()
    if host.lower().startswith("tcp:"):
        host = host[4:]
    port = DEFAULT_PORT
    if "," in host:
        host, port_text = host.rsplit(",", 1)
        try:
            port = int(port_text.strip())
        except ValueError:
            raise InvalidConnectionStringError("Server port must be numeric.") from None
    return host.strip(), port


def _parse_bool(value: str, key: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "1", "mandatory", "strict"):
        return True
    if lowered in ("false", "no", "0", "optional"):
        return False
    raise InvalidConnectionStringError(f"Invalid value for {key}.")


def _quote_value(value: str) -> str:
    """Brace-quote ODBC values containing separators."""
    if any(ch in value for ch in ";{}="):
        return "{" + value.replace("}", "}}") + "}"
    return value
