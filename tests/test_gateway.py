import asyncio
import logging
import sys
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from price_api.errors import ServiceUnavailable, UpstreamError
from price_api.gateway import PriceGateway
from price_api.models import PricePoint

TICK_TIME = 1705612800000


def ticker(symbol, price, time=TICK_TIME):
    return {"symbol": symbol, "price": price, "time": time}


def status_error(status, body):
    request = httpx.Request("GET", "https://fapi.binance.com/fapi/v1/ticker/price")
    response = httpx.Response(status, json=body, request=request)
    return httpx.HTTPStatusError("upstream error", request=request, response=response)


class StubClient:
    """Returns canned payloads per symbol; exceptions are raised instead."""

    def __init__(self, payloads=None, ping_error=None, delays=None):
        self.payloads = payloads or {}
        self.ping_error = ping_error
        self.delays = delays or {}
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def ticker_price(self, symbol):
        self.calls.append(symbol)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(symbol, 0))
            outcome = self.payloads[symbol]
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1

    async def ping(self):
        if self.ping_error is not None:
            raise self.ping_error


def test_fetch_one_normalizes_payload():
    client = StubClient({"BTCUSDT": ticker("BTCUSDT", "45000.50")})
    point = asyncio.run(PriceGateway(client).fetch_one("BTCUSDT"))
    assert point == PricePoint(symbol="BTCUSDT", price=45000.5, timestamp=TICK_TIME)
    assert client.calls == ["BTCUSDT"]


def test_fetch_one_defaults_timestamp_when_missing():
    client = StubClient({"BTCUSDT": {"symbol": "BTCUSDT", "price": "1.25"}})
    point = asyncio.run(PriceGateway(client).fetch_one("BTCUSDT"))
    assert point.price == 1.25
    assert point.timestamp > TICK_TIME


@pytest.mark.parametrize(
    "payload, fragment",
    [
        ({"symbol": "BTCUSDT"}, "No price data"),
        ({"symbol": "BTCUSDT", "price": ""}, "No price data"),
        ({"symbol": "BTCUSDT", "price": "abc"}, "Invalid price"),
        ({"symbol": "BTCUSDT", "price": "-1"}, "Invalid price"),
        ({"symbol": "BTCUSDT", "price": "nan"}, "Invalid price"),
        (["BTCUSDT", "1.0"], "Invalid response"),
        (None, "Invalid response"),
    ],
)
def test_fetch_one_rejects_malformed_payload(payload, fragment):
    client = StubClient({"BTCUSDT": payload})
    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(PriceGateway(client).fetch_one("BTCUSDT"))
    assert fragment in exc_info.value.message
    assert exc_info.value.status_code == 502


@pytest.mark.parametrize(
    "error, fragment",
    [
        (httpx.ReadTimeout("timed out"), "timed out"),
        (httpx.ConnectTimeout("connect timed out"), "timed out"),
        (asyncio.TimeoutError(), "timed out"),
        (httpx.ConnectError("[Errno 111] Connection refused"), "Unable to connect"),
        (ConnectionRefusedError("refused"), "Unable to connect"),
    ],
)
def test_fetch_one_maps_transport_failures_to_service_unavailable(error, fragment):
    client = StubClient({"BTCUSDT": error})
    with pytest.raises(ServiceUnavailable) as exc_info:
        asyncio.run(PriceGateway(client).fetch_one("BTCUSDT"))
    assert fragment in exc_info.value.message
    assert exc_info.value.code == "SERVICE_UNAVAILABLE"
    assert exc_info.value.details["symbol"] == "BTCUSDT"


def test_fetch_one_includes_upstream_message_for_http_errors():
    client = StubClient({"INVALIDXXX": status_error(400, {"code": -1121, "msg": "Invalid symbol."})})
    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(PriceGateway(client).fetch_one("INVALIDXXX"))
    err = exc_info.value
    assert err.message == "Failed to fetch price for INVALIDXXX: Invalid symbol."
    assert err.details["statusCode"] == 400


def test_fetch_one_wraps_unexpected_errors_with_original_message():
    client = StubClient({"BTCUSDT": RuntimeError("boom")})
    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(PriceGateway(client).fetch_one("BTCUSDT"))
    assert exc_info.value.message == "Failed to fetch price for BTCUSDT"
    assert exc_info.value.details["originalError"] == "boom"


def test_fetch_batch_preserves_order_with_mixed_outcomes():
    client = StubClient(
        {
            "BTCUSDT": ticker("BTCUSDT", "45000.50"),
            "INVALIDXXX": status_error(400, {"code": -1121, "msg": "Invalid symbol."}),
            "ETHUSDT": ticker("ETHUSDT", "2500.75"),
            "BNBUSDT": httpx.ReadTimeout("timed out"),
        },
        # later symbols finish first; output order must still follow input order
        delays={"BTCUSDT": 0.03, "INVALIDXXX": 0.02, "ETHUSDT": 0.01},
    )
    symbols = ["BTCUSDT", "INVALIDXXX", "ETHUSDT", "BNBUSDT"]
    results = asyncio.run(PriceGateway(client).fetch_batch(symbols))

    assert [r.symbol for r in results] == symbols
    assert [r.ok for r in results] == [True, False, True, False]
    assert results[0].price == 45000.5
    assert results[0].timestamp == TICK_TIME
    assert results[1].error == "Failed to fetch price for INVALIDXXX: Invalid symbol."
    assert results[1].price is None
    assert results[2].price == 2500.75
    assert results[3].error == "Request to Binance API timed out"


def test_fetch_batch_runs_lookups_concurrently():
    symbols = ["AAUSDT", "BBUSDT", "CCUSDT"]
    client = StubClient(
        {s: ticker(s, "1") for s in symbols},
        delays={s: 0.02 for s in symbols},
    )
    asyncio.run(PriceGateway(client).fetch_batch(symbols))
    assert client.max_in_flight == len(symbols)


def test_fetch_batch_survives_total_failure():
    symbols = ["AAUSDT", "BBUSDT"]
    client = StubClient({s: httpx.ConnectError("refused") for s in symbols})
    results = asyncio.run(PriceGateway(client).fetch_batch(symbols))
    assert len(results) == 2
    assert all(not r.ok for r in results)
    assert sorted(client.calls) == sorted(symbols)


def test_check_health_reports_healthy():
    health = asyncio.run(PriceGateway(StubClient()).check_health())
    assert health.status == "healthy"
    assert health.upstream_connected is True
    assert health.timestamp > 0


@pytest.mark.parametrize(
    "error", [httpx.ConnectTimeout("timeout"), httpx.ConnectError("refused"), RuntimeError("boom")]
)
def test_check_health_degrades_instead_of_raising(error, caplog):
    with caplog.at_level(logging.WARNING):
        health = asyncio.run(PriceGateway(StubClient(ping_error=error)).check_health())
    assert health.status == "degraded"
    assert health.upstream_connected is False
    assert any("probe failed" in rec.message for rec in caplog.records)


def test_health_serializes_with_camel_case_key():
    health = asyncio.run(PriceGateway(StubClient()).check_health())
    body = health.model_dump(by_alias=True)
    assert body["upstreamConnected"] is True
    assert set(body) == {"status", "upstreamConnected", "timestamp"}


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(502, text="<html><body>Bad Gateway</body></html>"),
        httpx.Response(500, json=["not", "an", "object"]),
        httpx.Response(503, json={"code": -1001, "msg": 42}),
    ],
)
def test_fetch_one_http_error_without_binance_message(response):
    request = httpx.Request("GET", "https://fapi.binance.com/fapi/v1/ticker/price")
    response.request = request
    error = httpx.HTTPStatusError("upstream error", request=request, response=response)
    client = StubClient({"BTCUSDT": error})
    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(PriceGateway(client).fetch_one("BTCUSDT"))
    assert exc_info.value.message == "Failed to fetch price for BTCUSDT"
    assert exc_info.value.details["upstreamMessage"] is None
    assert exc_info.value.details["statusCode"] == response.status_code


def test_fetch_batch_logs_each_failure_once(caplog):
    client = StubClient(
        {
            "BTCUSDT": ticker("BTCUSDT", "1"),
            "ETHUSDT": httpx.ConnectError("refused"),
            "BNBUSDT": status_error(400, {"code": -1121, "msg": "Invalid symbol."}),
        }
    )
    with caplog.at_level(logging.DEBUG, logger="price_api.gateway"):
        asyncio.run(PriceGateway(client).fetch_batch(["BTCUSDT", "ETHUSDT", "BNBUSDT"]))
    for symbol in ("ETHUSDT", "BNBUSDT"):
        loud = [
            r for r in caplog.records
            if r.levelno >= logging.WARNING and symbol in r.getMessage()
        ]
        assert len(loud) == 1
        assert loud[0].levelno == logging.WARNING
