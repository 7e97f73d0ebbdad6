from __future__ import annotations

import hashlib
import json

import httpx
import pytest

from tvguide.exceptions import (
    ApiResponseError,
    AuthenticationError,
    ConnectivityError,
    HttpStatusError,
    ServiceOffline,
)
from tvguide.services.decoder import decode_station
from tvguide.services.fetch_types import BatchRequest
from tvguide.services.guide_client import GuideClient
from tvguide.services.transport import HttpTransport, hash_password, parse_records


BASE_URL = "https://guide.test"


class Upstream:
    """Scripted upstream behind httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, list[httpx.Response]] = {}
        self.tokens = iter(["tok-1", "tok-2", "tok-3"])

    def queue(self, path: str, *responses: httpx.Response) -> None:
        self.routes.setdefault(path, []).extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/token") and path not in self.routes:
            return httpx.Response(200, json={"code": 0, "message": "OK", "token": next(self.tokens)})
        responses = self.routes.get(path)
        if not responses:
            return httpx.Response(404, text="not found")
        scripted = responses.pop(0) if len(responses) > 1 else responses[0]
        return httpx.Response(scripted.status_code, headers=scripted.headers, content=scripted.content)

    def to(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def http_transport(upstream, sleeps):
    client = httpx.Client(transport=httpx.MockTransport(upstream.handler))
    transport = HttpTransport(
        "tester",
        "secret",
        base_url=BASE_URL,
        api_version="20141201",
        max_retries=3,
        backoff_factor=2.0,
        client=client,
        sleep=sleeps.append,
    )
    yield transport
    client.close()


def test_password_is_sent_as_sha1_hex():
    assert hash_password("secret") == hashlib.sha1(b"secret").hexdigest()


def test_login_then_token_header(http_transport, upstream):
    upstream.queue("/20141201/programs", httpx.Response(200, json=[{"programID": "EP1"}]))

    records = http_transport.submit(BatchRequest("POST", "programs", body=["EP1"]))

    assert records == [{"programID": "EP1"}]
    login = upstream.to("/20141201/token")[0]
    assert json.loads(login.content) == {"username": "tester", "password": hash_password("secret")}
    programs = upstream.to("/20141201/programs")[0]
    assert programs.headers["token"] == "tok-1"
    assert json.loads(programs.content) == ["EP1"]


def test_token_is_reused(http_transport, upstream):
    upstream.queue("/20141201/programs", httpx.Response(200, json=[]))

    http_transport.submit(BatchRequest("POST", "programs", body=["EP1"]))
    http_transport.submit(BatchRequest("POST", "programs", body=["EP2"]))

    assert len(upstream.to("/20141201/token")) == 1


def test_refused_login_raises_authentication_error(http_transport, upstream):
    upstream.queue("/20141201/token", httpx.Response(200, json={"code": 4003, "response": "INVALID_USER"}))

    with pytest.raises(AuthenticationError) as excinfo:
        http_transport.submit(BatchRequest("GET", "status"))

    assert excinfo.value.code == 4003


def test_offline_login_stays_service_offline(http_transport, upstream):
    upstream.queue("/20141201/token", httpx.Response(200, json={"code": 3000, "message": "Offline"}))

    with pytest.raises(ServiceOffline):
        http_transport.submit(BatchRequest("GET", "status"))


def test_server_errors_are_retried_with_backoff(http_transport, upstream, sleeps):
    upstream.queue(
        "/20141201/status",
        httpx.Response(503, text="busy"),
        httpx.Response(502, text="busy"),
        httpx.Response(200, json={"code": 0, "lastDataUpdate": "2014-06-28T05:16:29Z"}),
    )

    records = http_transport.submit(BatchRequest("GET", "status"))

    assert records[0]["lastDataUpdate"] == "2014-06-28T05:16:29Z"
    assert len(upstream.to("/20141201/status")) == 3
    assert sleeps == [1.0, 2.0]


def test_server_errors_exhaust_retries(http_transport, upstream):
    upstream.queue("/20141201/status", httpx.Response(500, text="boom"))

    with pytest.raises(HttpStatusError) as excinfo:
        http_transport.submit(BatchRequest("GET", "status"))

    assert excinfo.value.status == 500
    assert len(upstream.to("/20141201/status")) == 3


def test_client_errors_are_not_retried(http_transport, upstream, sleeps):
    upstream.queue("/20141201/lineups/NOPE", httpx.Response(404, text="not found"))

    with pytest.raises(HttpStatusError) as excinfo:
        http_transport.submit(BatchRequest("GET", "/20141201/lineups/NOPE"))

    assert excinfo.value.status == 404
    assert excinfo.value.details == "not found"
    assert len(upstream.to("/20141201/lineups/NOPE")) == 1
    assert sleeps == []


def test_error_document_on_client_error(http_transport, upstream):
    upstream.queue("/20141201/lineups", httpx.Response(400, json={"code": 4102, "response": "NO_LINEUPS"}))

    with pytest.raises(ApiResponseError) as excinfo:
        http_transport.submit(BatchRequest("GET", "lineups"))

    assert excinfo.value.code == 4102


def test_service_offline_document(http_transport, upstream):
    upstream.queue("/20141201/status", httpx.Response(200, json={"code": 3000, "message": "Down for maintenance"}))

    with pytest.raises(ServiceOffline, match="Down for maintenance"):
        http_transport.submit(BatchRequest("GET", "status"))


def test_expired_token_logs_in_again(http_transport, upstream):
    upstream.queue(
        "/20141201/status",
        httpx.Response(403, json={"code": 4006, "response": "TOKEN_EXPIRED"}),
        httpx.Response(200, json={"code": 0}),
    )

    http_transport.submit(BatchRequest("GET", "status"))

    status_calls = upstream.to("/20141201/status")
    assert [request.headers["token"] for request in status_calls] == ["tok-1", "tok-2"]
    assert http_transport.token == "tok-2"


def test_per_record_errors_are_returned(http_transport, upstream):
    upstream.queue(
        "/20141201/programs",
        httpx.Response(200, json=[{"programID": "EP1", "code": 6000, "response": "INVALID_PROGID"}]),
    )

    records = http_transport.submit(BatchRequest("POST", "programs", body=["EP1"]))

    assert records[0]["code"] == 6000


def test_ndjson_body(http_transport, upstream):
    body = '{"stationID": "1"}\n\n{"stationID": "2"}\n'
    upstream.queue("/20141201/schedules", httpx.Response(200, text=body))

    records = http_transport.submit(BatchRequest("POST", "schedules", body=[{"stationID": "1"}]))

    assert [record["stationID"] for record in records] == ["1", "2"]


def test_unparseable_body(http_transport, upstream):
    upstream.queue("/20141201/status", httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(ApiResponseError) as excinfo:
        http_transport.submit(BatchRequest("GET", "status"))

    assert excinfo.value.code == 1001


def test_connection_failures_become_connectivity_error(sleeps):
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(refuse))
    transport = HttpTransport("tester", "secret", base_url=BASE_URL, client=client, sleep=sleeps.append)

    with pytest.raises(ConnectivityError):
        transport.submit(BatchRequest("GET", "status"))

    assert len(sleeps) == 2
    client.close()


def test_url_for_strips_version_prefix(http_transport):
    assert http_transport.url_for("programs") == f"{BASE_URL}/20141201/programs"
    assert http_transport.url_for("/20141201/lineups/X") == f"{BASE_URL}/20141201/lineups/X"


def test_parse_records_shapes():
    assert parse_records('[{"a": 1}, {"a": 2}]') == [{"a": 1}, {"a": 2}]
    assert parse_records('{"a": 1}') == [{"a": 1}]
    assert parse_records("") == []


def test_download_fetches_absolute_url_without_login(http_transport, upstream):
    upstream.queue("/logos/s1.png", httpx.Response(200, content=b"\x89PNG logo"))

    data = http_transport.download("https://img.test/logos/s1.png")

    assert data == b"\x89PNG logo"
    assert [request.url.host for request in upstream.requests] == ["img.test"]
    assert "token" not in upstream.requests[0].headers


def test_download_missing_file_is_not_retried(http_transport, upstream, sleeps):
    with pytest.raises(HttpStatusError) as excinfo:
        http_transport.download("https://img.test/logos/gone.png")

    assert excinfo.value.status == 404
    assert len(upstream.requests) == 1
    assert sleeps == []


def test_download_retries_server_errors(http_transport, upstream, sleeps):
    upstream.queue(
        "/logos/s1.png",
        httpx.Response(503, text="busy"),
        httpx.Response(200, content=b"logo"),
    )

    assert http_transport.download("https://img.test/logos/s1.png") == b"logo"
    assert sleeps == [1.0]


def test_write_logo_over_http(http_transport, upstream, tmp_path):
    upstream.queue("/logos/s1.png", httpx.Response(200, content=b"\x89PNG logo"))
    client = GuideClient(http_transport)
    station = decode_station(
        {"stationID": "1", "callsign": "KABC", "name": "KABC-DT", "logo": {"URL": "https://img.test/logos/s1.png"}}
    )

    path = client.write_logo(station, tmp_path / "KABC.png")

    assert path.read_bytes() == b"\x89PNG logo"
