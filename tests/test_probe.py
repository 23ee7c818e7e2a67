"""Tests for the connectivity probe."""

from firesync.exceptions import AuthExchangeError
from firesync.services.probe import TEST_COLLECTION, ConnectivityProbe

from conftest import MemoryTransport, unreachable


def test_check_passes():
    transport = MemoryTransport()
    probe = ConnectivityProbe(transport)

    assert probe.check() is True
    assert probe.last_error is None
    assert transport.calls == [("probe",)]


def test_check_reports_unreachable_store():
    transport = MemoryTransport()
    transport.probe_error = unreachable("connect timeout")
    probe = ConnectivityProbe(transport)

    assert probe.check() is False
    assert "connect timeout" in probe.last_error


def test_check_reports_token_exchange_failure():
    class NoTokenTransport(MemoryTransport):
        def probe(self):
            raise AuthExchangeError("Token exchange rejected (400): invalid_grant")

    probe = ConnectivityProbe(NoTokenTransport())

    assert probe.check() is False
    assert "invalid_grant" in probe.last_error


def test_write_test_creates_and_removes_document():
    transport = MemoryTransport()
    probe = ConnectivityProbe(transport, clock=lambda: 1700000000.0)

    assert probe.check(write_test=True) is True

    path = f"{TEST_COLLECTION}/test-1700000000"
    assert transport.operations("upsert")[0][1] == path
    assert transport.operations("upsert")[0][2]["timestamp"] == 1700000000
    assert transport.operations("delete") == [("delete", path)]
    assert transport.documents == {}


def test_write_failure_is_reported():
    transport = MemoryTransport()
    transport.fail_paths[f"{TEST_COLLECTION}/test-5"] = unreachable("write timed out")
    probe = ConnectivityProbe(transport, clock=lambda: 5.0)

    assert probe.check(write_test=True) is False
    assert "write timed out" in probe.last_error


def test_to_dict_includes_transport_and_error():
    transport = MemoryTransport()
    transport.probe_error = unreachable()
    probe = ConnectivityProbe(transport, clock=lambda: 10.0)
    probe.check()

    info = probe.to_dict()

    assert info["transport"] == "memory"
    assert info["project_id"] == "demo-project"
    assert info["last_checked_at"] == 10.0
    assert "connection refused" in info["last_error"]
