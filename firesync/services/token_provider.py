"""Service-account access tokens for the document store."""

import json
import logging
import threading
import time
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Union

import jwt
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.exceptions import UnsupportedAlgorithm

from ..exceptions import AuthExchangeError, CredentialError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
DATASTORE_SCOPE = "https://www.googleapis.com/auth/datastore"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME = 3600
REFRESH_MARGIN = 300


@dataclass
class ServiceAccountCredential:
    """A parsed service-account key."""
    client_email: str
    private_key: str = field(repr=False)
    private_key_id: str = ""
    project_id: str = ""
    token_uri: str = DEFAULT_TOKEN_URI

    @property
    def identity(self) -> str:
        """Cache key for tokens minted from this credential."""
        return f"{self.client_email}#{self.private_key_id}"

    @classmethod
    def from_json(cls, data: Union[str, bytes, Mapping[str, Any]]) -> "ServiceAccountCredential":
        """
        Parse a service-account key from JSON text or a dict.

        Raises:
            CredentialError: if the JSON is malformed, required keys are
                missing, or the private key cannot be loaded.
        """
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise CredentialError(f"Invalid service account JSON: {e}") from e

        if not isinstance(data, Mapping):
            raise CredentialError("Service account JSON must be an object")

        missing = [k for k in ("client_email", "private_key") if not data.get(k)]
        if missing:
            raise CredentialError(f"Service account JSON is missing: {', '.join(missing)}")

        private_key = data["private_key"]
        try:
            serialization.load_pem_private_key(private_key.encode("utf-8"), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CredentialError(f"Service account private key could not be loaded: {e}") from e

        return cls(
            client_email=data["client_email"],
            private_key=private_key,
            private_key_id=data.get("private_key_id") or "",
            project_id=data.get("project_id") or "",
            token_uri=data.get("token_uri") or DEFAULT_TOKEN_URI,
        )


@dataclass
class AccessToken:
    """A bearer token and the epoch second it expires at."""
    value: str = field(repr=False)
    expires_at: float = 0.0

    def is_valid(self, now: float, margin: float = 0.0) -> bool:
        return bool(self.value) and now < self.expires_at - margin


class AccessTokenProvider:
    """
    Mints and caches bearer tokens from service-account credentials.

    Tokens are cached per credential identity and reused until
    `refresh_margin` seconds before they expire. Concurrent callers that
    find the cache stale share one in-flight exchange.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        refresh_margin: float = REFRESH_MARGIN,
        scope: str = DATASTORE_SCOPE,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the provider.

        Args:
            session: HTTP session used for the token exchange
            timeout: Timeout in seconds for the exchange request
            refresh_margin: Seconds before expiry at which a token is refreshed
            scope: OAuth scope requested
            clock: Source of the current epoch time
        """
        self._session = session or requests.Session()
        self.timeout = timeout
        self.refresh_margin = refresh_margin
        self.scope = scope
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Dict[str, AccessToken] = {}
        self._inflight: Dict[str, Future] = {}
        self.exchange_count = 0

    def get_token(
        self,
        credential: ServiceAccountCredential,
        force_refresh: bool = False
    ) -> AccessToken:
        """
        Get a valid token for the credential.

        Args:
            credential: Service-account credential
            force_refresh: Ignore the cached token (e.g. after it was rejected)

        Raises:
            AuthExchangeError: if the token endpoint rejects the request or
                cannot be reached.
            CredentialError: if the assertion cannot be signed.
        """
        key = credential.identity

        with self._lock:
            cached = self._cache.get(key)
            if not force_refresh and cached and cached.is_valid(self._clock(), self.refresh_margin):
                return cached

            pending = self._inflight.get(key)
            owner = pending is None
            if owner:
                pending = Future()
                self._inflight[key] = pending

        if not owner:
            logger.debug(f"Waiting for in-flight token exchange for {credential.client_email}")
            try:
                return pending.result(timeout=self.timeout * 2)
            except FutureTimeoutError as e:
                raise AuthExchangeError("Timed out waiting for token exchange") from e

        try:
            token = self._exchange(credential)
        except BaseException as e:
            with self._lock:
                self._inflight.pop(key, None)
            pending.set_exception(e)
            raise

        with self._lock:
            self._cache[key] = token
            self._inflight.pop(key, None)
        pending.set_result(token)
        return token

    def invalidate(self, credential: ServiceAccountCredential) -> None:
        """Drop the cached token for a credential."""
        with self._lock:
            self._cache.pop(credential.identity, None)

    def clear(self) -> None:
        """Drop every cached token."""
        with self._lock:
            self._cache.clear()

    def _build_assertion(self, credential: ServiceAccountCredential, now: int) -> str:
        """Sign the JWT assertion sent to the token endpoint."""
        payload = {
            "iss": credential.client_email,
            "sub": credential.client_email,
            "aud": credential.token_uri,
            "scope": self.scope,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME,
        }
        headers = {"kid": credential.private_key_id} if credential.private_key_id else None

        try:
            return jwt.encode(payload, credential.private_key, algorithm="RS256", headers=headers)
        except (jwt.exceptions.PyJWTError, ValueError, TypeError) as e:
            raise CredentialError(f"Could not sign token assertion: {e}") from e

    def _exchange(self, credential: ServiceAccountCredential) -> AccessToken:
        """Exchange a signed assertion for a bearer token."""
        now = int(self._clock())
        assertion = self._build_assertion(credential, now)

        logger.info(f"Requesting access token for {credential.client_email}")
        with self._lock:
            self.exchange_count += 1

        try:
            response = self._session.post(
                credential.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AuthExchangeError(f"Token endpoint unreachable: {e}") from e

        if response.status_code >= 400:
            detail = response.text
            try:
                error_data = response.json()
                detail = error_data.get("error_description") or error_data.get("error") or detail
            except ValueError:
                pass
            raise AuthExchangeError(f"Token exchange rejected ({response.status_code}): {detail}")

        try:
            data = response.json()
        except ValueError as e:
            raise AuthExchangeError("Token endpoint returned invalid JSON") from e

        access_token = data.get("access_token")
        if not access_token:
            raise AuthExchangeError("Token endpoint response has no access_token")

        try:
            expires_in = int(data.get("expires_in", ASSERTION_LIFETIME))
        except (TypeError, ValueError) as e:
            raise AuthExchangeError(f"Token endpoint returned invalid expires_in: {data.get('expires_in')!r}") from e
        return AccessToken(value=access_token, expires_at=now + expires_in)
