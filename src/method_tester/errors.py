"""Exception types and error categories.

Transports and store adapters raise; the execution controller and the schema
linker catch at their boundary and report failures on result objects.
"""

from enum import Enum


class ErrorKind(str, Enum):
    COMPOSITION = "composition"
    TRANSPORT = "transport"
    HTTP = "http"
    PERSISTENCE = "persistence"


class MethodTesterError(Exception):
    """Base class for all library errors."""


class TransportError(MethodTesterError):
    """Network-level failure: DNS, connection, timeout."""


class CancelledError(MethodTesterError):
    """The in-flight call noticed its cancel token."""


class PersistenceError(MethodTesterError):
    """A store read or write failed."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class InvalidStateError(MethodTesterError):
    """Programmer error, e.g. saving before any schema was inferred."""
