"""Target connection handling: descriptors, classification, redaction."""

from acto_sync.connection.classification import (
    ClassifiedError,
    ConnectionErrorKind,
    classify_error,
)
from acto_sync.connection.descriptor import (
    ConnectionDescriptor,
    Credential,
    ServerInfo,
    build_descriptor,
    descriptor_from_connection_string,
    parse_connection_string,
)
from acto_sync.connection.redaction import REDACTED, redact
from acto_sync.connection.resolver import ConnectionResolver, ConnectionResult

__all__ = [
    "ClassifiedError",
    "ConnectionDescriptor",
    "ConnectionErrorKind",
    "ConnectionResolver",
    "ConnectionResult",
    "Credential",
    "REDACTED",
    "ServerInfo",
    "build_descriptor",
    "classify_error",
    "descriptor_from_connection_string",
    "parse_connection_string",
    "redact",
]
