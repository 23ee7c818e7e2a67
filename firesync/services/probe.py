"""Connectivity check against the document store."""

import logging
import time
from typing import Any, Callable, Dict, Optional

from ..exceptions import AuthExchangeError, CredentialError, TransportError
from ..transports.base import BaseTransport

logger = logging.getLogger(__name__)

TEST_COLLECTION = "test-connection"


class ConnectivityProbe:
    """
    Answers "is the store reachable and does it accept our credentials".

    Used standalone by the operator surfaces and as a pre-flight gate before
    a full resync. Failures are logged here with their detail and kept on
    `last_error`; callers only get a boolean.
    """

    def __init__(self, transport: BaseTransport, clock: Callable[[], float] = time.time):
        self.transport = transport
        self._clock = clock
        self.last_error: Optional[str] = None
        self.last_checked_at: Optional[float] = None

    def check(self, write_test: bool = False) -> bool:
        """
        Probe the store.

        Args:
            write_test: Also write and delete a document in the
                "test-connection" collection

        Returns:
            True if the store answered
        """
        self.last_checked_at = self._clock()
        self.last_error = None

        try:
            self.transport.probe()
            if write_test:
                self._write_test()
        except (TransportError, AuthExchangeError, CredentialError) as e:
            self.last_error = str(e)
            logger.error(f"Connection check against {self.transport.name} transport failed: {e}")
            return False

        logger.info(f"Connection check passed ({self.transport.name} transport)")
        return True

    def _write_test(self) -> None:
        timestamp = int(self._clock())
        path = f"{TEST_COLLECTION}/test-{timestamp}"
        self.transport.upsert(path, {
            "timestamp": timestamp,
            "message": "Connection test from firesync",
        })
        logger.debug(f"Wrote test document {path}")
        self.transport.delete(path)

    def to_dict(self) -> Dict[str, Any]:
        info = self.transport.describe()
        info["last_error"] = self.last_error
        info["last_checked_at"] = self.last_checked_at
        return info
