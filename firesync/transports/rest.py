"""REST transport for the Firestore document API."""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

import requests

from .base import BaseTransport
from ..exceptions import ConfigurationError, TransportError, TransportErrorKind
from ..models.config import ConnectionSettings, EmulatorSettings
from ..models.document import RemoteDocument
from ..services.codec import decode_document, encode_document
from ..services.token_provider import AccessTokenProvider, ServiceAccountCredential

logger = logging.getLogger(__name__)

PRODUCTION_BASE_URL = "https://firestore.googleapis.com/v1"

_SIMPLE_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_AUTH_FAILURES = (401, 403)


def quote_field_path(name: str) -> str:
    """Quote a top-level field name for use in an update mask."""
    if _SIMPLE_FIELD_NAME.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


class RestTransport(BaseTransport):
    """
    Document store client over the public REST API.

    Used whenever the native client library is not installed. Every
    request carries a bearer token from the shared token provider, except
    against the local emulator which takes unauthenticated requests.
    """

    name = "rest"

    def __init__(
        self,
        project_id: str,
        database_id: str = "(default)",
        credential: Optional[ServiceAccountCredential] = None,
        token_provider: Optional[AccessTokenProvider] = None,
        emulator: Optional[EmulatorSettings] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the REST transport.

        Args:
            project_id: Firebase project ID
            database_id: Firestore database ID
            credential: Service-account credential (not needed for the emulator)
            token_provider: Shared token provider
            emulator: Emulator settings; when enabled, requests go to the
                emulator host without an Authorization header
            timeout: Timeout in seconds for each request
            session: HTTP session to send requests with
        """
        super().__init__(project_id, database_id, timeout)
        self.emulator = emulator or EmulatorSettings()
        self.credential = credential
        self.token_provider = token_provider
        self._session = session or requests.Session()

        if not self.emulator.enabled and (credential is None or token_provider is None):
            raise ConfigurationError("A service account and token provider are required outside the emulator")

    @classmethod
    def from_settings(
        cls,
        settings: ConnectionSettings,
        token_provider: Optional[AccessTokenProvider] = None,
        session: Optional[requests.Session] = None
    ) -> "RestTransport":
        """Build a transport from connection settings."""
        settings.require_valid()
        credential = None
        if not settings.emulator.enabled:
            credential = ServiceAccountCredential.from_json(settings.service_account)
            token_provider = token_provider or AccessTokenProvider(session=session, timeout=settings.timeout)
        return cls(
            project_id=settings.project_id,
            database_id=settings.database_id,
            credential=credential,
            token_provider=token_provider,
            emulator=settings.emulator,
            timeout=settings.timeout,
            session=session,
        )

    @property
    def base_url(self) -> str:
        if self.emulator.enabled:
            return f"http://{self.emulator.host}:{self.emulator.port}/v1"
        return PRODUCTION_BASE_URL

    @property
    def database_root(self) -> str:
        return f"projects/{self.project_id}/databases/{self.database_id}"

    @property
    def documents_url(self) -> str:
        return f"{self.base_url}/{self.database_root}/documents"

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["base_url"] = self.base_url
        info["emulator"] = self.emulator.enabled
        return info

    def _url(self, path: str) -> str:
        segments = [quote(segment, safe="") for segment in path.split("/")]
        return f"{self.documents_url}/{'/'.join(segments)}"

    def _headers(self, force_refresh: bool = False) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if not self.emulator.enabled:
            token = self.token_provider.get_token(self.credential, force_refresh=force_refresh)
            headers["Authorization"] = f"Bearer {token.value}"
        return headers

    def _send_once(
        self,
        method: str,
        url: str,
        params: Any = None,
        body: Optional[Dict[str, Any]] = None,
        force_refresh: bool = False
    ) -> requests.Response:
        headers = self._headers(force_refresh)
        try:
            return self._session.request(
                method,
                url,
                params=params,
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(
                TransportErrorKind.UNREACHABLE,
                f"{method} {url} timed out after {self.timeout}s",
            ) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(TransportErrorKind.UNREACHABLE, f"{method} {url} failed: {e}") from e

    def _send(
        self,
        method: str,
        url: str,
        params: Any = None,
        body: Optional[Dict[str, Any]] = None
    ) -> requests.Response:
        """Send a request, refreshing the token and retrying once if it is rejected."""
        response = self._send_once(method, url, params, body)

        if response.status_code in _AUTH_FAILURES and not self.emulator.enabled:
            logger.warning(f"Token rejected ({response.status_code}) for {method} {url}, refreshing")
            self.token_provider.invalidate(self.credential)
            response = self._send_once(method, url, params, body, force_refresh=True)

        return response

    def _error_for(self, response: requests.Response, action: str) -> TransportError:
        """Build a TransportError from a non-2xx response."""
        detail = response.text
        try:
            error_data = response.json().get("error", {})
            if isinstance(error_data, dict):
                detail = error_data.get("message") or error_data.get("status") or detail
            elif error_data:
                detail = str(error_data)
        except (ValueError, AttributeError):
            pass

        status = response.status_code
        if status in _AUTH_FAILURES:
            kind = TransportErrorKind.UNAUTHORIZED
        elif status == 404:
            kind = TransportErrorKind.NOT_FOUND
        elif status == 400:
            kind = TransportErrorKind.INVALID_ARGUMENT
        else:
            kind = TransportErrorKind.REMOTE_REJECTED

        return TransportError(kind, f"{action} failed: {detail}", status_code=status)

    @staticmethod
    def _ok(response: requests.Response) -> bool:
        return 200 <= response.status_code < 300

    def probe(self) -> bool:
        """List at most one collection ID."""
        response = self._send("POST", f"{self.documents_url}:listCollectionIds", body={"pageSize": 1})
        if not self._ok(response):
            raise self._error_for(response, "Connection probe")
        return True

    def list_collections(self) -> List[str]:
        collection_ids: List[str] = []
        page_token = None

        while True:
            body: Dict[str, Any] = {"pageSize": 100}
            if page_token:
                body["pageToken"] = page_token

            response = self._send("POST", f"{self.documents_url}:listCollectionIds", body=body)
            if not self._ok(response):
                raise self._error_for(response, "List collections")

            data = response.json() if response.text else {}
            collection_ids.extend(data.get("collectionIds", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return collection_ids

    def get(self, path: str) -> RemoteDocument:
        path = self._check_path(path)
        response = self._send("GET", self._url(path))

        if response.status_code == 404:
            return RemoteDocument.missing(path)
        if not self._ok(response):
            raise self._error_for(response, f"Get {path}")

        body = response.json() if response.text else {}
        return RemoteDocument(
            path=path,
            exists=True,
            fields=decode_document(body),
            update_time=body.get("updateTime"),
        )

    def upsert(self, path: str, fields: Mapping[str, Any], merge: bool = False) -> None:
        path = self._check_path(path)
        self._check_fields(fields)

        existing = self.get(path)
        if not existing.exists:
            if self._create(path, fields):
                logger.debug(f"Created {path}")
                return
            logger.debug(f"{path} was created concurrently, updating instead")

        if merge and not fields:
            logger.debug(f"Nothing to merge into {path}")
            return

        self._update(path, fields, merge)
        logger.debug(f"Updated {path} (merge={merge})")

    def _create(self, path: str, fields: Mapping[str, Any]) -> bool:
        """
        Create a document through its parent collection.

        Returns:
            False if the document already exists
        """
        parent, document_id = path.rsplit("/", 1)
        response = self._send(
            "POST",
            self._url(parent),
            params={"documentId": document_id},
            body=encode_document(fields),
        )

        if response.status_code == 409:
            return False
        if not self._ok(response):
            raise self._error_for(response, f"Create {path}")
        return True

    def _update(self, path: str, fields: Mapping[str, Any], merge: bool) -> None:
        """Update a document with PATCH, retrying once with PUT."""
        params: Optional[List[Tuple[str, str]]] = None
        if merge:
            params = [("updateMask.fieldPaths", quote_field_path(name)) for name in fields]

        body = encode_document(fields)
        url = self._url(path)

        response = self._send("PATCH", url, params=params, body=body)
        if self._ok(response):
            return

        error = self._error_for(response, f"Update {path}")
        if error.kind == TransportErrorKind.UNAUTHORIZED:
            raise error

        logger.warning(f"PATCH {path} rejected ({response.status_code}), retrying with PUT")
        retry = self._send("PUT", url, params=params, body=body)
        if self._ok(retry):
            return
        raise error

    def delete(self, path: str) -> None:
        path = self._check_path(path)
        response = self._send("DELETE", self._url(path))

        if response.status_code == 404:
            logger.debug(f"{path} already absent")
            return
        if not self._ok(response):
            raise self._error_for(response, f"Delete {path}")
