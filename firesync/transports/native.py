"""Native transport using the google-cloud-firestore client library."""

import base64
import itertools
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, TypeVar

from google.api_core import exceptions as gexc
from google.auth import credentials as gauth_credentials
from google.cloud import firestore
from google.cloud.firestore_v1.field_path import FieldPath

from .base import BaseTransport
from ..exceptions import ConfigurationError, TransportError, TransportErrorKind
from ..models.config import EMULATOR_HOST_ENV, ConnectionSettings, EmulatorSettings
from ..models.document import RemoteDocument
from ..services.codec import normalize_value
from ..services.token_provider import AccessTokenProvider, ServiceAccountCredential

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ENV_LOCK = threading.Lock()


@contextmanager
def _emulator_environment(address: str) -> Iterator[None]:
    """
    Expose the emulator address to the client library while it is built.

    firestore.Client only takes the emulator endpoint from
    FIRESTORE_EMULATOR_HOST and reads it once in its constructor, so the
    variable is set for the duration of the block and then restored.
    """
    with _ENV_LOCK:
        previous = os.environ.get(EMULATOR_HOST_ENV)
        os.environ[EMULATOR_HOST_ENV] = address
        try:
            yield
        finally:
            if previous is None:
                os.environ.pop(EMULATOR_HOST_ENV, None)
            else:
                os.environ[EMULATOR_HOST_ENV] = previous


class ProviderCredentials(gauth_credentials.Credentials):
    """google-auth credentials that draw tokens from an AccessTokenProvider."""

    def __init__(self, provider: AccessTokenProvider, credential: ServiceAccountCredential):
        super().__init__()
        self._provider = provider
        self._credential = credential

    def refresh(self, request: Any) -> None:
        self._apply_token(self._provider.get_token(self._credential))

    def force_refresh(self) -> None:
        """Drop the cached token and fetch a new one."""
        self._provider.invalidate(self._credential)
        self._apply_token(self._provider.get_token(self._credential, force_refresh=True))

    def ensure_token(self) -> None:
        """Fetch a token up front so exchange errors surface to the caller."""
        if not self.valid:
            self.refresh(None)

    def _apply_token(self, token) -> None:
        self.token = token.value
        # google-auth compares against naive UTC
        self.expiry = datetime.fromtimestamp(token.expires_at, tz=timezone.utc).replace(tzinfo=None)


def _from_native(value: Any) -> Any:
    """Convert values returned by the client library into document values."""
    if isinstance(value, firestore.GeoPoint):
        return {"latitude": value.latitude, "longitude": value.longitude}
    if isinstance(value, firestore.DocumentReference):
        return value.path
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _from_native(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_from_native(v) for v in value]
    return normalize_value(value)


class NativeTransport(BaseTransport):
    """
    Document store client backed by google-cloud-firestore.

    Selected when the client library is importable. Tokens still come
    from the shared AccessTokenProvider through ProviderCredentials.
    """

    name = "native"

    def __init__(
        self,
        project_id: str,
        database_id: str = "(default)",
        credential: Optional[ServiceAccountCredential] = None,
        token_provider: Optional[AccessTokenProvider] = None,
        emulator: Optional[EmulatorSettings] = None,
        timeout: float = 30.0,
        client: Optional[firestore.Client] = None
    ):
        """
        Initialize the native transport.

        Args:
            project_id: Firebase project ID
            database_id: Firestore database ID
            credential: Service-account credential (not needed for the emulator)
            token_provider: Shared token provider
            emulator: Emulator settings
            timeout: Timeout in seconds for each call
            client: Pre-built client, mainly for tests
        """
        super().__init__(project_id, database_id, timeout)
        self.emulator = emulator or EmulatorSettings()
        self._credentials: Optional[ProviderCredentials] = None

        if client is not None:
            self._client = client
            return

        if self.emulator.enabled:
            logger.info(f"Native client using emulator at {self.emulator.address}")
            with _emulator_environment(self.emulator.address):
                self._client = firestore.Client(
                    project=project_id,
                    credentials=gauth_credentials.AnonymousCredentials(),
                    database=database_id,
                )
            return

        if credential is None or token_provider is None:
            raise ConfigurationError("A service account and token provider are required outside the emulator")

        self._credentials = ProviderCredentials(token_provider, credential)
        self._client = firestore.Client(
            project=project_id,
            credentials=self._credentials,
            database=database_id,
        )

    @classmethod
    def from_settings(
        cls,
        settings: ConnectionSettings,
        token_provider: Optional[AccessTokenProvider] = None
    ) -> "NativeTransport":
        """Build a transport from connection settings."""
        settings.require_valid()
        credential = None
        if not settings.emulator.enabled:
            credential = ServiceAccountCredential.from_json(settings.service_account)
            token_provider = token_provider or AccessTokenProvider(timeout=settings.timeout)
        return cls(
            project_id=settings.project_id,
            database_id=settings.database_id,
            credential=credential,
            token_provider=token_provider,
            emulator=settings.emulator,
            timeout=settings.timeout,
        )

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["emulator"] = self.emulator.enabled
        return info

    def _translate(self, error: Exception, action: str) -> TransportError:
        """Map a client library exception onto a TransportError."""
        code = getattr(error, "code", None)
        status_code = code if isinstance(code, int) else None

        if isinstance(error, (gexc.Unauthenticated, gexc.PermissionDenied)):
            kind = TransportErrorKind.UNAUTHORIZED
        elif isinstance(error, gexc.NotFound):
            kind = TransportErrorKind.NOT_FOUND
        elif isinstance(error, (gexc.InvalidArgument, ValueError, TypeError)):
            kind = TransportErrorKind.INVALID_ARGUMENT
        elif isinstance(error, (gexc.ServiceUnavailable, gexc.DeadlineExceeded, gexc.RetryError)):
            kind = TransportErrorKind.UNREACHABLE
        else:
            kind = TransportErrorKind.REMOTE_REJECTED

        return TransportError(kind, f"{action} failed: {error}", status_code=status_code)

    def _call(self, action: str, operation: Callable[[], T]) -> T:
        """Run a client call, refreshing the token and retrying once if it is rejected."""
        for attempt in range(2):
            if self._credentials is not None:
                self._credentials.ensure_token()
            try:
                return operation()
            except (gexc.Unauthenticated, gexc.PermissionDenied) as e:
                if attempt == 0 and self._credentials is not None:
                    logger.warning(f"Token rejected during {action}, refreshing")
                    self._credentials.force_refresh()
                    continue
                raise self._translate(e, action) from e
            except (gexc.GoogleAPICallError, gexc.RetryError, ValueError, TypeError) as e:
                raise self._translate(e, action) from e

        raise TransportError(TransportErrorKind.UNAUTHORIZED, f"{action} failed: token rejected")

    def probe(self) -> bool:
        self._call(
            "Connection probe",
            lambda: list(itertools.islice(self._client.collections(timeout=self.timeout), 1)),
        )
        return True

    def list_collections(self) -> List[str]:
        collections = self._call(
            "List collections",
            lambda: list(self._client.collections(timeout=self.timeout)),
        )
        return [c.id for c in collections]

    def get(self, path: str) -> RemoteDocument:
        path = self._check_path(path)
        snapshot = self._call(f"Get {path}", lambda: self._client.document(path).get(timeout=self.timeout))

        if not snapshot.exists:
            return RemoteDocument.missing(path)

        update_time = snapshot.update_time
        return RemoteDocument(
            path=path,
            exists=True,
            fields=_from_native(snapshot.to_dict() or {}),
            update_time=update_time.isoformat() if update_time else None,
        )

    def upsert(self, path: str, fields: Mapping[str, Any], merge: bool = False) -> None:
        path = self._check_path(path)
        self._check_fields(fields)
        document = self._client.document(path)
        data = dict(fields)

        if merge and not data:
            if not self.get(path).exists:
                self._call(f"Create {path}", lambda: document.set({}, timeout=self.timeout))
            return

        if merge:
            # Explicit top-level paths: replace these fields whole, keep the rest
            merge_paths = [FieldPath(name) for name in data]
            self._call(f"Update {path}", lambda: document.set(data, merge=merge_paths, timeout=self.timeout))
        else:
            self._call(f"Write {path}", lambda: document.set(data, timeout=self.timeout))
        logger.debug(f"Wrote {path} (merge={merge})")

    def delete(self, path: str) -> None:
        path = self._check_path(path)
        self._call(f"Delete {path}", lambda: self._client.document(path).delete(timeout=self.timeout))
