"""Shared test fixtures: a fake Firestore REST backend, RSA keys, content and transports."""

import json
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import unquote

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from firesync.exceptions import TransportError, TransportErrorKind
from firesync.models.config import MemoryConfigStore, SyncConfig
from firesync.models.document import RemoteDocument
from firesync.services.token_provider import DEFAULT_TOKEN_URI
from firesync.sources.memory import InMemoryContentSource, InMemoryCustomFields
from firesync.transports.base import BaseTransport


# --- Fake HTTP ----------------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        self._json = json_data
        if text is None:
            text = json.dumps(json_data) if json_data is not None else ""
        self.text = text

    def json(self):
        if self._json is None:
            return json.loads(self.text)
        return self._json


def _mask_names(params: Any) -> Optional[List[str]]:
    """Field names from an updateMask in a params list of tuples."""
    if not params or isinstance(params, Mapping):
        return None
    names = []
    for key, value in params:
        if key == "updateMask.fieldPaths":
            if value.startswith("`") and value.endswith("`"):
                value = value[1:-1].replace("\\`", "`").replace("\\\\", "\\")
            names.append(value)
    return names


class FakeFirestoreSession:
    """
    requests.Session stand-in that behaves like the Firestore REST API.

    Documents are kept in wire format. Every call is recorded in `calls`.
    """

    def __init__(self, put_status: int = 405, delete_missing_status: int = 200):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.token_calls: List[Dict[str, Any]] = []
        self.put_status = put_status
        self.delete_missing_status = delete_missing_status
        self.valid_tokens: Optional[set] = None  # None accepts any token
        self._failures: List[Dict[str, Any]] = []
        self._token_counter = 0
        self.token_response: Optional[FakeResponse] = None

    def fail_next(self, method: str, status: int = 500, times: int = 1, exc: Optional[Exception] = None):
        for _ in range(times):
            self._failures.append({"method": method, "status": status, "exc": exc})

    # Token endpoint

    def post(self, url, data=None, timeout=None, **kwargs):
        self.token_calls.append({"url": url, "data": data, "timeout": timeout})
        if self.token_response is not None:
            return self.token_response
        self._token_counter += 1
        token = f"token-{self._token_counter}"
        if self.valid_tokens is not None:
            self.valid_tokens.add(token)
        return FakeResponse(200, {"access_token": token, "expires_in": 3600, "token_type": "Bearer"})

    # Document API

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append({
            "method": method,
            "url": url,
            "params": params,
            "json": json,
            "headers": dict(headers or {}),
            "timeout": timeout,
        })

        for i, failure in enumerate(self._failures):
            if failure["method"] == method:
                del self._failures[i]
                if failure["exc"] is not None:
                    raise failure["exc"]
                return FakeResponse(failure["status"], {"error": {"message": f"injected {failure['status']}"}})

        if self.valid_tokens is not None:
            auth = (headers or {}).get("Authorization", "")
            if auth.replace("Bearer ", "") not in self.valid_tokens:
                return FakeResponse(401, {"error": {"message": "invalid token", "status": "UNAUTHENTICATED"}})

        _, rest = url.split("/documents", 1)
        if rest.startswith(":listCollectionIds"):
            ids = sorted({path.split("/")[0] for path in self.documents})
            return FakeResponse(200, {"collectionIds": ids[: (json or {}).get("pageSize", 100)]})

        path = "/".join(unquote(segment) for segment in rest.strip("/").split("/"))
        handler = getattr(self, f"_{method.lower()}")
        return handler(path, params, json)

    def _get(self, path, params, body):
        if path not in self.documents:
            return FakeResponse(404, {"error": {"message": "not found", "status": "NOT_FOUND"}})
        return FakeResponse(200, {
            "name": path,
            "fields": self.documents[path],
            "updateTime": "2024-01-01T00:00:00Z",
        })

    def _post(self, parent, params, body):
        document_id = params["documentId"]
        path = f"{parent}/{document_id}"
        if path in self.documents:
            return FakeResponse(409, {"error": {"message": "already exists", "status": "ALREADY_EXISTS"}})
        self.documents[path] = dict(body.get("fields", {}))
        return FakeResponse(200, {"name": path, "fields": self.documents[path]})

    def _patch(self, path, params, body):
        fields = dict(body.get("fields", {}))
        mask = _mask_names(params)
        if mask is None:
            self.documents[path] = fields
        else:
            current = self.documents.setdefault(path, {})
            for name in mask:
                if name in fields:
                    current[name] = fields[name]
                else:
                    current.pop(name, None)
        return FakeResponse(200, {"name": path, "fields": self.documents[path]})

    def _put(self, path, params, body):
        if self.put_status >= 300:
            return FakeResponse(self.put_status, {"error": {"message": "method not allowed"}})
        self.documents[path] = dict(body.get("fields", {}))
        return FakeResponse(200, {"name": path, "fields": self.documents[path]})

    def _delete(self, path, params, body):
        if path not in self.documents:
            return FakeResponse(self.delete_missing_status, {} if self.delete_missing_status < 300 else {
                "error": {"message": "not found"}
            })
        del self.documents[path]
        return FakeResponse(200, {})

    def methods(self) -> List[str]:
        return [c["method"] for c in self.calls]


@pytest.fixture
def fake_session():
    return FakeFirestoreSession()


# --- Credentials --------------------------------------------------------------------------------

@pytest.fixture(scope="session")
def rsa_private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def service_account_info(rsa_private_key_pem) -> Dict[str, Any]:
    return {
        "type": "service_account",
        "project_id": "demo-project",
        "private_key_id": "key-1",
        "private_key": rsa_private_key_pem,
        "client_email": "sync@demo-project.iam.gserviceaccount.com",
        "token_uri": DEFAULT_TOKEN_URI,
    }


# --- In-memory transport ------------------------------------------------------------------------

class MemoryTransport(BaseTransport):
    """Transport keeping documents in a dict, with per-path failure injection."""

    name = "memory"

    def __init__(self):
        super().__init__("demo-project")
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.fail_paths: Dict[str, TransportError] = {}
        self.probe_error: Optional[TransportError] = None

    def probe(self) -> bool:
        self.calls.append(("probe",))
        if self.probe_error:
            raise self.probe_error
        return True

    def list_collections(self) -> List[str]:
        return sorted({p.split("/")[0] for p in self.documents})

    def get(self, path: str) -> RemoteDocument:
        path = self._check_path(path)
        if path not in self.documents:
            return RemoteDocument.missing(path)
        return RemoteDocument(path=path, exists=True, fields=dict(self.documents[path]))

    def upsert(self, path: str, fields: Mapping[str, Any], merge: bool = False) -> None:
        path = self._check_path(path)
        self.calls.append(("upsert", path, dict(fields), merge))
        if path in self.fail_paths:
            raise self.fail_paths[path]
        if merge:
            self.documents.setdefault(path, {}).update(fields)
        else:
            self.documents[path] = dict(fields)

    def delete(self, path: str) -> None:
        path = self._check_path(path)
        self.calls.append(("delete", path))
        if path in self.fail_paths:
            raise self.fail_paths[path]
        self.documents.pop(path, None)

    def operations(self, kind: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == kind]


@pytest.fixture
def memory_transport():
    return MemoryTransport()


def unreachable(message: str = "connection refused") -> TransportError:
    return TransportError(TransportErrorKind.UNREACHABLE, message)


# --- Content ------------------------------------------------------------------------------------

SNAPSHOT = {
    "taxonomies": {
        "category": [
            {"term_id": 1, "name": "News", "slug": "news", "count": 2, "meta": {"color": "\"red\""}},
            {"term_id": 2, "name": "Arts", "slug": "arts", "count": 1, "meta": {}},
            {"term_id": 3, "name": "Books", "slug": "books", "parent": 2,
             "meta": {"settings": "{\"featured\": true, \"rank\": 3}", "note": "plain text"}},
        ],
        "post_tag": [
            {"term_id": 10, "name": "python", "slug": "python"},
        ],
    },
    "content_types": {
        "post": [
            {
                "id": 100,
                "status": "publish",
                "title": "Hello World",
                "excerpt": "First post",
                "meta": {"price": 12.5, "sku": "A-1"},
                "terms": {"category": [1, 3], "post_tag": [10]},
                "image": {"id": 501, "url": "https://cdn.example.com/hello.jpg", "width": 800, "height": 600},
                "custom_fields": {"subtitle": "A greeting", "rating": 5},
            },
            {
                "id": 101,
                "status": "draft",
                "title": "Work in progress",
                "meta": {},
            },
            {
                "id": 102,
                "status": "publish",
                "title": "Second",
                "meta": {"price": 3},
                "terms": {},
            },
        ],
        "page": [
            {"id": 200, "status": "publish", "title": "About"},
        ],
    },
    "custom_fields": {
        "active": True,
        "fields": {
            "post": [
                {"key": "subtitle", "label": "Subtitle", "type": "text"},
                {"key": "rating", "label": "Rating", "type": "number"},
            ],
        },
    },
}


@pytest.fixture
def snapshot():
    return json.loads(json.dumps(SNAPSHOT))


@pytest.fixture
def content_source(snapshot):
    return InMemoryContentSource.from_dict(snapshot)


@pytest.fixture
def custom_fields(content_source, snapshot):
    return InMemoryCustomFields.from_dict(content_source, snapshot["custom_fields"])


@pytest.fixture
def sync_config():
    config = SyncConfig()
    config.connection.project_id = "demo-project"
    config.connection.emulator.enabled = True
    config.enable_taxonomy("category")
    config.enable_content_type("post", ["title", "meta_price", "tax_category", "acf_subtitle", "featured_image"])
    config.get_content_type("post").field_mapping = {"meta_price": "price", "tax_category": "categories"}
    return config


@pytest.fixture
def config_store(sync_config):
    return MemoryConfigStore(sync_config)
