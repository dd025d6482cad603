"""Classification of SQL Server connection failures.

Maps driver errors onto a fixed taxonomy (``ConnectionErrorKind``) using
lookup tables, consulted in order:

1. SQL Server native error numbers found in the ODBC message (``(18456)``).
2. ODBC message markers for failures reported with a generic number
   (TLS negotiation is reported as ``(-1)`` by ODBC Driver 18).
3. The ODBC SQLSTATE (``28000``, ``08001``, ...).

Anything else is ``UNKNOWN``.  New codes are one-line additions to the
tables below.

Usage:
    from acto_sync.connection.classification import classify_error

    classified = classify_error(exc)
    classified.kind          # ConnectionErrorKind.AUTH_FAILED
    classified.message       # 'Login failed. Check the user name and password.'
"""

import re
from dataclasses import dataclass
from enum import Enum

from acto_sync.connection.redaction import redact


class ConnectionErrorKind(str, Enum):
    """Stable, machine-readable connection failure codes."""

    AUTH_FAILED = "AUTH_FAILED"
    NETWORK_UNREACHABLE = "NETWORK_UNREACHABLE"
    SERVER_NOT_FOUND = "SERVER_NOT_FOUND"
    DATABASE_NOT_FOUND = "DATABASE_NOT_FOUND"
    ACCESS_DENIED = "ACCESS_DENIED"
    TLS_HANDSHAKE_FAILED = "TLS_HANDSHAKE_FAILED"
    UNKNOWN = "UNKNOWN"


# ============================================================================
# Lookup tables
# ============================================================================

# SQL Server / SQL Server Native Client / Winsock error numbers
NATIVE_ERROR_KINDS: dict[int, ConnectionErrorKind] = {
    18456: ConnectionErrorKind.AUTH_FAILED,         # Login failed for user
    18452: ConnectionErrorKind.AUTH_FAILED,         # Login from untrusted domain
    18486: ConnectionErrorKind.AUTH_FAILED,         # Account locked out
    18487: ConnectionErrorKind.AUTH_FAILED,         # Password expired
    18488: ConnectionErrorKind.AUTH_FAILED,         # Password must be changed
    4060: ConnectionErrorKind.DATABASE_NOT_FOUND,   # Cannot open database
    911: ConnectionErrorKind.DATABASE_NOT_FOUND,    # Database does not exist
    916: ConnectionErrorKind.ACCESS_DENIED,         # Principal cannot access database
    229: ConnectionErrorKind.ACCESS_DENIED,         # Permission denied on object
    262: ConnectionErrorKind.ACCESS_DENIED,         # Permission denied in database
    4064: ConnectionErrorKind.ACCESS_DENIED,        # Cannot open default database
    53: ConnectionErrorKind.SERVER_NOT_FOUND,       # Network path not found
    2: ConnectionErrorKind.SERVER_NOT_FOUND,        # Server/instance not found
    26: ConnectionErrorKind.SERVER_NOT_FOUND,       # Error locating server/instance
    11001: ConnectionErrorKind.SERVER_NOT_FOUND,    # No such host is known
    11004: ConnectionErrorKind.SERVER_NOT_FOUND,    # Host has no address
    10060: ConnectionErrorKind.NETWORK_UNREACHABLE,  # Connection timed out
    10061: ConnectionErrorKind.NETWORK_UNREACHABLE,  # Connection refused
    10065: ConnectionErrorKind.NETWORK_UNREACHABLE,  # No route to host
    10054: ConnectionErrorKind.NETWORK_UNREACHABLE,  # Connection reset by peer
    258: ConnectionErrorKind.NETWORK_UNREACHABLE,   # Wait operation timed out
    121: ConnectionErrorKind.NETWORK_UNREACHABLE,   # Semaphore timeout
    40: ConnectionErrorKind.NETWORK_UNREACHABLE,    # Could not open a connection
    20: ConnectionErrorKind.TLS_HANDSHAKE_FAILED,   # Instance does not support encryption
    -2146893019: ConnectionErrorKind.TLS_HANDSHAKE_FAILED,  # Certificate chain not trusted
    -2146893022: ConnectionErrorKind.TLS_HANDSHAKE_FAILED,  # Certificate name mismatch
    -2146893007: ConnectionErrorKind.TLS_HANDSHAKE_FAILED,  # No common algorithm
}

# Lower-cased substrings of the ODBC message
MESSAGE_MARKER_KINDS: tuple[tuple[str, ConnectionErrorKind], ...] = (
    ("ssl provider", ConnectionErrorKind.TLS_HANDSHAKE_FAILED),
    ("certificate verify failed", ConnectionErrorKind.TLS_HANDSHAKE_FAILED),
    ("certificate chain was issued by an authority that is not trusted",
     ConnectionErrorKind.TLS_HANDSHAKE_FAILED),
    ("encryption not supported", ConnectionErrorKind.TLS_HANDSHAKE_FAILED),
    ("login failed", ConnectionErrorKind.AUTH_FAILED),
    ("cannot open database", ConnectionErrorKind.DATABASE_NOT_FOUND),
    ("no such host is known", ConnectionErrorKind.SERVER_NOT_FOUND),
    ("name or service not known", ConnectionErrorKind.SERVER_NOT_FOUND),
)

SQLSTATE_KINDS: dict[str, ConnectionErrorKind] = {
    "28000": ConnectionErrorKind.AUTH_FAILED,
    "42000": ConnectionErrorKind.ACCESS_DENIED,
    "08001": ConnectionErrorKind.NETWORK_UNREACHABLE,
    "08S01": ConnectionErrorKind.NETWORK_UNREACHABLE,
    "HYT00": ConnectionErrorKind.NETWORK_UNREACHABLE,
    "HYT01": ConnectionErrorKind.NETWORK_UNREACHABLE,
}

USER_MESSAGES: dict[ConnectionErrorKind, str] = {
    ConnectionErrorKind.AUTH_FAILED: "Login failed. Check the user name and password.",
    ConnectionErrorKind.NETWORK_UNREACHABLE: (
        "Could not reach the server. Check the host, port and firewall rules."
    ),
    ConnectionErrorKind.SERVER_NOT_FOUND: (
        "Server or instance not found. Check the server name."
    ),
    ConnectionErrorKind.DATABASE_NOT_FOUND: (
        "The database does not exist or is not available to this login."
    ),
    ConnectionErrorKind.ACCESS_DENIED: (
        "The login does not have permission to access this database."
    ),
    ConnectionErrorKind.TLS_HANDSHAKE_FAILED: (
        "Encryption negotiation failed. The server certificate could not be validated."
    ),
    ConnectionErrorKind.UNKNOWN: "Could not connect to the database.",
}

HELP_LINKS: dict[ConnectionErrorKind, str] = {
    ConnectionErrorKind.TLS_HANDSHAKE_FAILED: (
        "https://learn.microsoft.com/en-us/sql/connect/odbc/"
        "connection-troubleshooting"
    ),
}

_NATIVE_CODE_RE = re.compile(r"\((-?\d+)\)")
_SQLSTATE_RE = re.compile(r"^\[?([0-9A-Z]{5})\]?$")


# ============================================================================
# Classification
# ============================================================================


@dataclass(frozen=True)
class ClassifiedError:
    """A driver error mapped onto the taxonomy.

    ``detail`` is the redacted driver text, kept only for ``UNKNOWN``.
    """

    kind: ConnectionErrorKind
    message: str
    help_link: str | None = None
    detail: str | None = None


def classify_error(exc: BaseException) -> ClassifiedError:
    """Classify a connection exception.

    Accepts SQLAlchemy ``DBAPIError`` wrappers (the pyodbc error is read from
    ``.orig``), raw ``pyodbc.Error`` instances, or any other exception.
    """
    sqlstate, text = _driver_error_parts(exc)
    kind = classify_parts(sqlstate, text)
    return ClassifiedError(
        kind=kind,
        message=USER_MESSAGES[kind],
        help_link=HELP_LINKS.get(kind),
        detail=redact(text) if kind is ConnectionErrorKind.UNKNOWN else None,
    )


def classify_parts(sqlstate: str | None, text: str) -> ConnectionErrorKind:
    """Pure mapping from SQLSTATE and driver text to a kind."""
    for code in native_error_codes(text):
        if code in NATIVE_ERROR_KINDS:
            return NATIVE_ERROR_KINDS[code]

    lowered = text.lower()
    for marker, kind in MESSAGE_MARKER_KINDS:
        if marker in lowered:
            return kind

    if sqlstate and sqlstate.upper() in SQLSTATE_KINDS:
        return SQLSTATE_KINDS[sqlstate.upper()]

    return ConnectionErrorKind.UNKNOWN


def native_error_codes(text: str) -> list[int]:
    """Extract ``(NNNN)`` error numbers from an ODBC message, in order."""
    return [int(code) for code in _NATIVE_CODE_RE.findall(text)]


def _driver_error_parts(exc: BaseException) -> tuple[str | None, str]:
    """Return (sqlstate, message) from a driver error.

    pyodbc errors carry ``args == (sqlstate, message)``.
    """
    orig = getattr(exc, "orig", None) or exc
    args = getattr(orig, "args", ())
    if len(args) >= 2 and isinstance(args[0], str) and _SQLSTATE_RE.match(args[0]):
        return args[0].strip("[]"), str(args[1])
    return None, str(orig)
