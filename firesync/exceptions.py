"""Error taxonomy for the sync core."""

from enum import Enum
from typing import Optional


class FiresyncError(Exception):
    """Base class for all sync errors."""


class ConfigurationError(FiresyncError):
    """Connection or target settings are missing or invalid."""


class CredentialError(FiresyncError):
    """The service-account credential could not be parsed or loaded."""


class AuthExchangeError(FiresyncError):
    """The token endpoint rejected the assertion or could not be reached."""


class TransportErrorKind(str, Enum):
    """Failure categories reported by document transports."""
    UNREACHABLE = "unreachable"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"
    REMOTE_REJECTED = "remote_rejected"


class TransportError(FiresyncError):
    """A document operation against the remote store failed."""

    def __init__(
        self,
        kind: TransportErrorKind,
        message: str,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.kind.value} ({self.status_code}): {self.message}"
        return f"{self.kind.value}: {self.message}"
