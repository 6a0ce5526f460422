import json

import httpx
import pytest

import license_client as license_mod
from config_store import ConfigStore
from license_client import LicenseClient, get_outbound_ip
from models import LicenseStatus, LicenseType


class FakeLicenseServer:
    """Records every request and answers /verify with a canned response."""

    def __init__(self, verify=None, request_error=None):
        self.verify = verify
        self.request_error = request_error
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if request.url.path == "/verify":
            if isinstance(self.verify, Exception):
                raise self.verify
            return self.verify
        if request.url.path == "/request":
            if self.request_error is not None:
                raise self.request_error
            return httpx.Response(202, json={"queued": True})
        return httpx.Response(404)

    def posted(self):
        return [r for r in self.requests if r.method == "POST"]


def _client(store, logger, test_settings, server, ip="203.0.113.7"):
    http = httpx.Client(transport=httpx.MockTransport(server))
    return LicenseClient(
        store,
        logger,
        settings=test_settings,
        http_client=http,
        ip_resolver=lambda: ip,
    )


def test_valid_license_is_committed_and_persisted(store, logger, test_settings):
    server = FakeLicenseServer(verify=httpx.Response(200, json={"valid": True, "licenseType": 1}))

    status = _client(store, logger, test_settings, server).check_license(False)

    assert status is LicenseStatus.VALID
    assert store.configuration.license.valid_license is True
    assert store.configuration.license.license_type is LicenseType.FULL

    on_disk = ConfigStore.open(store.path).configuration
    assert on_disk.license.valid_license is True
    assert on_disk.license.license_type == 1
    assert server.posted() == []


def test_verify_sends_outbound_ip_as_query(store, logger, test_settings):
    server = FakeLicenseServer(verify=httpx.Response(200, json={"valid": True, "licenseType": 2}))

    _client(store, logger, test_settings, server).check_license(False)

    verify = server.requests[0]
    assert verify.method == "GET"
    assert verify.url.host == "licenses.test"
    assert verify.url.params["ip"] == "203.0.113.7"


def test_invalid_license_is_still_recorded(store, logger, test_settings):
    server = FakeLicenseServer(verify=httpx.Response(200, json={"valid": False, "licenseType": 4}))

    status = _client(store, logger, test_settings, server).check_license(True)

    assert status is LicenseStatus.INVALID
    assert store.configuration.license.valid_license is False
    assert store.configuration.license.license_type is LicenseType.TRIAL


def test_unknown_license_type_is_treated_as_dnsonly(store, logger, test_settings):
    server = FakeLicenseServer(verify=httpx.Response(200, json={"valid": True, "licenseType": 99}))

    _client(store, logger, test_settings, server).check_license(False)

    assert store.configuration.license.license_type is LicenseType.DNSONLY


def test_unreachable_server_requests_dnsonly_license(store, logger, test_settings):
    server = FakeLicenseServer(verify=httpx.ConnectError("connection refused"))
    before = store.configuration.license

    status = _client(store, logger, test_settings, server).check_license(True)

    assert status is LicenseStatus.REQUEST_SENT
    posted = server.posted()
    assert len(posted) == 1
    assert posted[0].url.path == "/request"
    assert posted[0].headers["content-type"] == "application/json"
    assert json.loads(posted[0].content) == {"type": 3, "ip": "203.0.113.7"}
    assert store.configuration.license == before


def test_unreachable_server_requests_trial_license(store, logger, test_settings):
    server = FakeLicenseServer(verify=httpx.ConnectTimeout("timed out"))

    _client(store, logger, test_settings, server).check_license(False)

    assert json.loads(server.posted()[0].content)["type"] == 4


def test_failed_verify_keeps_existing_license(write_config, logger, test_settings):
    path = write_config("license:\n  validlicense: true\n  licensetype: 2\n")
    store = ConfigStore.open(path, logger)
    server = FakeLicenseServer(verify=httpx.ReadError("reset by peer"))

    _client(store, logger, test_settings, server).check_license(True)

    assert store.configuration.license.valid_license is True
    assert store.configuration.license.license_type is LicenseType.LITE


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"licenseType": 1}),
        httpx.Response(200, json=["valid"]),
        httpx.Response(500, json={"valid": True, "licenseType": 1}),
        httpx.Response(200, json={"valid": "yes", "licenseType": 1}),
        httpx.Response(200, json={"valid": 1, "licenseType": 1}),
        httpx.Response(200, json={"valid": True, "licenseType": "1"}),
        httpx.Response(200, json={"valid": True, "licenseType": True}),
    ],
)
def test_bad_verify_responses_fall_back_to_request(store, logger, test_settings, response):
    server = FakeLicenseServer(verify=response)

    status = _client(store, logger, test_settings, server).check_license(True)

    assert status is LicenseStatus.REQUEST_SENT
    assert len(server.posted()) == 1
    assert store.configuration.license is None


def test_no_outbound_ip_skips_check(store, logger, test_settings):
    server = FakeLicenseServer(verify=httpx.Response(200, json={"valid": True, "licenseType": 1}))

    status = _client(store, logger, test_settings, server, ip="").check_license(True)

    assert status is LicenseStatus.UNKNOWN
    assert server.requests == []
    assert store.configuration.license is None


def test_request_transport_error_is_logged_not_raised(store, logger, test_settings, caplog):
    server = FakeLicenseServer(
        verify=httpx.ConnectError("down"),
        request_error=httpx.ConnectError("still down"),
    )

    with caplog.at_level("ERROR", logger=logger.name):
        status = _client(store, logger, test_settings, server).check_license(False)

    assert status is LicenseStatus.REQUEST_SENT
    assert "License request failed" in caplog.text
    assert len(server.posted()) == 1


def test_request_license_without_ip_sends_nothing(store, logger, test_settings):
    server = FakeLicenseServer()

    sent = _client(store, logger, test_settings, server, ip="").request_dns_only_license()

    assert sent is False
    assert server.requests == []


def test_request_trial_license(store, logger, test_settings):
    server = FakeLicenseServer()

    assert _client(store, logger, test_settings, server).request_trial_license() is True
    assert json.loads(server.posted()[0].content) == {"type": 4, "ip": "203.0.113.7"}


def test_client_uses_configured_timeout(store, logger, test_settings):
    client = LicenseClient(store, logger, settings=test_settings, ip_resolver=lambda: "")
    try:
        assert client.http_client.timeout.connect == 5
    finally:
        client.close()


class _FakeSocket:
    def __init__(self, *args, fail=False):
        self.fail = fail
        self.address = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def connect(self, address):
        if self.fail:
            raise OSError("Network is unreachable")
        self.address = address

    def getsockname(self):
        return ("192.0.2.10", 54321)


def test_get_outbound_ip_returns_local_address(monkeypatch):
    monkeypatch.setattr(license_mod.socket, "socket", lambda *a: _FakeSocket(*a))
    assert get_outbound_ip("8.8.8.8", 80) == "192.0.2.10"


def test_get_outbound_ip_without_route_is_empty(monkeypatch):
    monkeypatch.setattr(license_mod.socket, "socket", lambda *a: _FakeSocket(*a, fail=True))
    assert get_outbound_ip("8.8.8.8", 80) == ""


def test_default_resolver_uses_probe_settings(store, logger, test_settings, monkeypatch):
    seen = []

    def fake(host, port):
        seen.append((host, port))
        return ""

    monkeypatch.setattr(license_mod, "get_outbound_ip", fake)
    with LicenseClient(store, logger, settings=test_settings) as client:
        assert client.check_license(True) is LicenseStatus.UNKNOWN

    assert seen == [("8.8.8.8", 80)]
