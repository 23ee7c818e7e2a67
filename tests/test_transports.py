"""Tests for transport selection and the native transport."""

import json
import os

import pytest

from firesync import transports
from firesync.exceptions import ConfigurationError, CredentialError, TransportError, TransportErrorKind
from firesync.models.config import EMULATOR_HOST_ENV, ConnectionSettings, EmulatorSettings
from firesync.transports import create_transport
from firesync.transports.rest import RestTransport

from conftest import FakeFirestoreSession


def emulator_settings(**kwargs):
    return ConnectionSettings(
        project_id="demo-project",
        emulator=EmulatorSettings(enabled=True),
        **kwargs,
    )


def test_auto_uses_rest_without_native_library(monkeypatch):
    monkeypatch.setattr(transports, "native_available", lambda: False)

    transport = create_transport(emulator_settings(), session=FakeFirestoreSession())

    assert isinstance(transport, RestTransport)
    assert transport.describe()["emulator"] is True


def test_native_requested_without_library(monkeypatch):
    monkeypatch.setattr(transports, "native_available", lambda: False)

    with pytest.raises(ConfigurationError, match="google-cloud-firestore"):
        create_transport(emulator_settings(transport="native"))


def test_rest_can_be_forced(monkeypatch):
    monkeypatch.setattr(transports, "native_available", lambda: True)

    transport = create_transport(emulator_settings(transport="rest"), session=FakeFirestoreSession())

    assert transport.name == "rest"


def test_invalid_settings_are_rejected_before_building():
    with pytest.raises(ConfigurationError):
        create_transport(ConnectionSettings())


def test_bad_service_account_is_credential_error(monkeypatch):
    monkeypatch.setattr(transports, "native_available", lambda: False)
    settings = ConnectionSettings(project_id="demo-project", service_account="{not json")

    with pytest.raises(CredentialError):
        create_transport(settings, session=FakeFirestoreSession())


def test_rest_transport_from_service_account(monkeypatch, service_account_info):
    monkeypatch.setattr(transports, "native_available", lambda: False)
    session = FakeFirestoreSession()
    settings = ConnectionSettings(project_id="demo-project", service_account=json.dumps(service_account_info))

    transport = create_transport(settings, session=session)
    transport.upsert("items/1", {"a": 1})

    assert len(session.token_calls) == 1
    assert session.calls[0]["headers"]["Authorization"] == "Bearer token-1"


class FakeSnapshot:
    def __init__(self, data):
        self._data = data
        self.exists = data is not None
        self.update_time = None

    def to_dict(self):
        return self._data


class FakeDocumentRef:
    def __init__(self, client, path):
        self.client = client
        self.path = path

    def get(self, timeout=None):
        return FakeSnapshot(self.client.data.get(self.path))

    def set(self, data, merge=False, timeout=None):
        self.client.sets.append((self.path, data, merge))
        if merge:
            current = self.client.data.setdefault(self.path, {})
            for field_path in merge:
                name = field_path.parts[0]
                current[name] = data[name]
        else:
            self.client.data[self.path] = dict(data)

    def delete(self, timeout=None):
        self.client.data.pop(self.path, None)


class FakeCollection:
    def __init__(self, collection_id):
        self.id = collection_id


class FakeClient:
    def __init__(self, error=None):
        self.data = {}
        self.sets = []
        self.error = error

    def document(self, path):
        return FakeDocumentRef(self, path)

    def collections(self, timeout=None):
        if self.error:
            raise self.error
        return iter([FakeCollection(p.split("/")[0]) for p in sorted(self.data)])


def test_native_transport_merge_and_replace():
    pytest.importorskip("google.cloud.firestore")
    from firesync.transports.native import NativeTransport

    client = FakeClient()
    transport = NativeTransport("demo-project", emulator=EmulatorSettings(enabled=True), client=client)

    transport.upsert("items/1", {"a": 1, "b": 2})
    transport.upsert("items/1", {"a": 3}, merge=True)
    assert transport.get("items/1").fields == {"a": 3, "b": 2}

    transport.upsert("items/1", {"a": 4})
    assert transport.get("items/1").fields == {"a": 4}

    transport.delete("items/1")
    assert not transport.get("items/1").exists


def test_native_transport_translates_errors():
    pytest.importorskip("google.cloud.firestore")
    from google.api_core import exceptions as gexc
    from firesync.transports.native import NativeTransport

    client = FakeClient(error=gexc.ServiceUnavailable("backend down"))
    transport = NativeTransport("demo-project", emulator=EmulatorSettings(enabled=True), client=client)

    with pytest.raises(TransportError) as exc_info:
        transport.probe()

    assert exc_info.value.kind == TransportErrorKind.UNREACHABLE


def test_native_transport_rejects_invalid_path():
    pytest.importorskip("google.cloud.firestore")
    from firesync.transports.native import NativeTransport

    transport = NativeTransport("demo-project", emulator=EmulatorSettings(enabled=True), client=FakeClient())

    with pytest.raises(TransportError) as exc_info:
        transport.upsert("items", {"a": 1})

    assert exc_info.value.kind == TransportErrorKind.INVALID_ARGUMENT


def test_native_emulator_environment_is_restored(monkeypatch):
    pytest.importorskip("google.cloud.firestore")
    from firesync.transports import native

    seen = []

    class RecordingClient:
        def __init__(self, project=None, credentials=None, database=None):
            seen.append(os.environ.get(EMULATOR_HOST_ENV))

    monkeypatch.setattr(native.firestore, "Client", RecordingClient)
    monkeypatch.delenv(EMULATOR_HOST_ENV, raising=False)

    native.NativeTransport("demo-project", emulator=EmulatorSettings(enabled=True, port=8181))
    assert seen == ["localhost:8181"]
    assert EMULATOR_HOST_ENV not in os.environ

    monkeypatch.setenv(EMULATOR_HOST_ENV, "emulator:9000")
    native.NativeTransport("demo-project", emulator=EmulatorSettings(enabled=True, port=8181))
    assert seen[-1] == "localhost:8181"
    assert os.environ[EMULATOR_HOST_ENV] == "emulator:9000"
