from __future__ import annotations

import pytest
import requests

from geoenrich.common.config_loader import GeocoderSettings
from geoenrich.common.models import CoordinatePair, ResolvedLocation
from geoenrich.pipeline.geocode import (
    GeocodeClient,
    MalformedResponseError,
    NetworkError,
    NoResultError,
    RateLimitedError,
    UpstreamError,
    UpstreamServerError,
    retry_delay,
)

STUNG_TRENG = CoordinatePair(13.536964, 105.927722)
VALID_PAYLOAD = {
    "display_name": "Stung Treng, Stung Treng, Cambodia",
    "address": {"district": "Stung Treng", "province": "Stung Treng", "country": "Cambodia"},
}


class FakeResponse:
    def __init__(self, status_code: int, payload=None, raises_json: bool = False, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self._raises_json = raises_json
        self.text = text

    def json(self):
        if self._raises_json:
            raise ValueError("bad json")
        return self._payload


def _client():
    sleeps: list[float] = []
    return GeocodeClient(GeocoderSettings(), sleep=sleeps.append), sleeps


def _script(monkeypatch, client, responses):
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs)
        item = responses[len(calls) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    monkeypatch.setattr(client.session, "request", fake_request)
    return calls


def test_resolve_success_single_call(monkeypatch):
    client, sleeps = _client()
    calls = _script(monkeypatch, client, [FakeResponse(200, VALID_PAYLOAD)])

    location = client.resolve(STUNG_TRENG)

    assert location == ResolvedLocation("Stung Treng, Stung Treng, Cambodia", "Stung Treng", "Stung Treng")
    assert len(calls) == 1
    assert sleeps == []
    assert client.request_count == 1


def test_request_carries_client_tag_language_and_timeout(monkeypatch):
    client, _ = _client()
    calls = _script(monkeypatch, client, [FakeResponse(200, VALID_PAYLOAD)])

    client.resolve(STUNG_TRENG)

    call = calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://nominatim.openstreetmap.org/reverse"
    assert call["params"] == {
        "lat": "13.536964",
        "lon": "105.927722",
        "format": "json",
        "addressdetails": "1",
        "accept-language": "en",
    }
    assert call["headers"]["User-Agent"] == "latlng-address-enricher/1.0"
    assert call["headers"]["Accept-Language"] == "en"
    assert call["timeout"] == 15.0


def test_rate_limited_twice_then_success(monkeypatch):
    client, sleeps = _client()
    calls = _script(monkeypatch, client, [FakeResponse(429), FakeResponse(429), FakeResponse(200, VALID_PAYLOAD)])

    location = client.resolve(STUNG_TRENG)

    assert location.district == "Stung Treng"
    assert len(calls) == 3
    # backoff 2s/4s plus rate-limit penalty 10s/20s
    assert sleeps == [12.0, 24.0]


def test_rate_limited_on_every_attempt(monkeypatch):
    client, sleeps = _client()
    calls = _script(monkeypatch, client, [FakeResponse(429)] * 3)

    with pytest.raises(RateLimitedError):
        client.resolve(STUNG_TRENG)

    assert len(calls) == 3
    assert sleeps == [12.0, 24.0]


def test_server_error_is_retried_with_backoff(monkeypatch):
    client, sleeps = _client()
    calls = _script(monkeypatch, client, [FakeResponse(503, text="busy"), FakeResponse(200, VALID_PAYLOAD)])

    client.resolve(STUNG_TRENG)

    assert len(calls) == 2
    assert sleeps == [2.0]


def test_server_error_exhausts_attempts(monkeypatch):
    client, sleeps = _client()
    calls = _script(monkeypatch, client, [FakeResponse(502, text="bad gateway")] * 3)

    with pytest.raises(UpstreamServerError) as excinfo:
        client.resolve(STUNG_TRENG)

    assert excinfo.value.status == 502
    assert excinfo.value.body == "bad gateway"
    assert len(calls) == 3
    assert sleeps == [2.0, 4.0]


def test_client_error_is_not_retried(monkeypatch):
    client, sleeps = _client()
    calls = _script(monkeypatch, client, [FakeResponse(400, text="Parameter 'lat' invalid")])

    with pytest.raises(UpstreamError) as excinfo:
        client.resolve(STUNG_TRENG)

    assert not isinstance(excinfo.value, UpstreamServerError)
    assert excinfo.value.status == 400
    assert len(calls) == 1
    assert sleeps == []


def test_network_failure_exhausts_attempts(monkeypatch):
    client, sleeps = _client()
    calls = _script(monkeypatch, client, [requests.ConnectionError("refused")] * 2 + [requests.Timeout("slow")])

    with pytest.raises(NetworkError):
        client.resolve(STUNG_TRENG)

    assert len(calls) == 3
    assert sleeps == [2.0, 4.0]


def test_empty_display_name_is_a_final_negative(monkeypatch):
    client, sleeps = _client()
    calls = _script(monkeypatch, client, [FakeResponse(200, {"error": "Unable to geocode"})])

    with pytest.raises(NoResultError):
        client.resolve(STUNG_TRENG)

    assert len(calls) == 1
    assert sleeps == []


def test_malformed_body_is_retried(monkeypatch):
    client, _ = _client()
    calls = _script(monkeypatch, client, [FakeResponse(200, raises_json=True), FakeResponse(200, VALID_PAYLOAD)])

    assert client.resolve(STUNG_TRENG).province == "Stung Treng"
    assert len(calls) == 2


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "an", "object"],
        {"display_name": "X", "address": "flat string"},
        {"display_name": "X", "address": {"postcode": 10200}},
    ],
)
def test_unexpected_shapes_are_malformed(monkeypatch, payload):
    client, _ = _client()
    calls = _script(monkeypatch, client, [FakeResponse(200, payload)] * 3)

    with pytest.raises(MalformedResponseError):
        client.resolve(STUNG_TRENG)

    assert len(calls) == 3


def test_retry_delay_policy():
    kwargs = {"backoff_base": 2.0, "rate_limit_penalty": 10.0}

    assert retry_delay(1, NetworkError("x"), **kwargs) == 2.0
    assert retry_delay(2, NetworkError("x"), **kwargs) == 4.0
    assert retry_delay(3, None, **kwargs) == 8.0
    assert retry_delay(1, RateLimitedError("x"), **kwargs) == 12.0
    assert retry_delay(2, RateLimitedError("x"), **kwargs) == 24.0
