"""Document store transports."""

import importlib.util
import logging
from typing import Optional

import requests

from .base import BaseTransport
from .rest import RestTransport
from ..exceptions import ConfigurationError
from ..models.config import ConnectionSettings
from ..services.token_provider import AccessTokenProvider

logger = logging.getLogger(__name__)

NATIVE_MODULE = "google.cloud.firestore"


def native_available() -> bool:
    """Check whether the native client library can be imported."""
    try:
        return importlib.util.find_spec(NATIVE_MODULE) is not None
    except (ImportError, ValueError):
        return False


def create_transport(
    settings: ConnectionSettings,
    token_provider: Optional[AccessTokenProvider] = None,
    session: Optional[requests.Session] = None
) -> BaseTransport:
    """
    Pick and build a transport for the connection settings.

    The choice is made here once; the returned transport is used for every
    operation of the client it is handed to.

    Args:
        settings: Connection settings (transport = auto, rest or native)
        token_provider: Shared token provider
        session: HTTP session for the REST transport and token exchange

    Returns:
        A NativeTransport or RestTransport
    """
    settings.require_valid()
    if token_provider is None and not settings.emulator.enabled:
        token_provider = AccessTokenProvider(session=session, timeout=settings.timeout)

    choice = settings.transport
    if choice == "auto":
        choice = "native" if native_available() else "rest"

    if choice == "native":
        if not native_available():
            raise ConfigurationError("Native transport requested but google-cloud-firestore is not installed")
        from .native import NativeTransport
        logger.info("Using native Firestore transport")
        return NativeTransport.from_settings(settings, token_provider)

    logger.info("Using REST Firestore transport")
    return RestTransport.from_settings(settings, token_provider, session=session)


__all__ = [
    "BaseTransport",
    "RestTransport",
    "create_transport",
    "native_available",
]
