"""Base transport interface for the document store."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping
import logging

from ..exceptions import TransportError, TransportErrorKind
from ..models.document import RemoteDocument, validate_document_path

logger = logging.getLogger(__name__)


class BaseTransport(ABC):
    """
    Base class for document store clients.

    Transports persist already-mapped documents. They know nothing about
    taxonomies or content types; paths are opaque slash-delimited strings
    such as "taxonomies/category".
    """

    name = "base"

    def __init__(self, project_id: str, database_id: str = "(default)", timeout: float = 30.0):
        """
        Initialize the transport.

        Args:
            project_id: Firebase project ID
            database_id: Firestore database ID
            timeout: Timeout in seconds for each request
        """
        self.project_id = project_id
        self.database_id = database_id
        self.timeout = timeout

    @abstractmethod
    def probe(self) -> bool:
        """
        Check that the store is reachable and accepts our credentials.

        Returns:
            True if a lightweight read succeeded

        Raises:
            TransportError: with the reason the store could not be reached
        """
        pass

    @abstractmethod
    def list_collections(self) -> List[str]:
        """List the root collection IDs."""
        pass

    @abstractmethod
    def get(self, path: str) -> RemoteDocument:
        """
        Read a document.

        Args:
            path: Document path

        Returns:
            RemoteDocument, with exists=False when the document is not found
        """
        pass

    @abstractmethod
    def upsert(self, path: str, fields: Mapping[str, Any], merge: bool = False) -> None:
        """
        Create the document if absent, otherwise update it.

        Args:
            path: Document path
            fields: Document values keyed by field name
            merge: If True, only the given top-level fields are written and
                other remote fields are kept; if False the document is replaced
        """
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        pass

    def describe(self) -> Dict[str, Any]:
        """Summary used by status reporting."""
        return {
            "transport": self.name,
            "project_id": self.project_id,
            "database_id": self.database_id,
        }

    def _check_path(self, path: str) -> str:
        """Validate a document path before any I/O."""
        problem = validate_document_path(path)
        if problem:
            raise TransportError(TransportErrorKind.INVALID_ARGUMENT, problem)
        return path.strip("/")

    def _check_fields(self, fields: Mapping[str, Any]) -> None:
        """Reject field names the store cannot address."""
        if not isinstance(fields, Mapping):
            raise TransportError(TransportErrorKind.INVALID_ARGUMENT, "Document fields must be a mapping")
        for name in fields:
            if not isinstance(name, str) or not name:
                raise TransportError(TransportErrorKind.INVALID_ARGUMENT, f"Invalid field name: {name!r}")
