"""Price gateway: the only code that talks to the upstream client.

Single fetches raise from the :mod:`price_api.errors` taxonomy. Batch fetches
never raise; every symbol gets its own slot in the outcome, in request order.
Health checks never raise either.
"""

import asyncio
import logging
import math
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from price_api.errors import AppError, ServiceUnavailable, UpstreamError
from price_api.models import BatchItem, HealthStatus, PricePoint

logger = logging.getLogger(__name__)


class TickerClient(Protocol):
    async def ticker_price(self, symbol: str) -> Dict[str, Any]: ...

    async def ping(self) -> None: ...


def now_ms() -> int:
    return int(time.time() * 1000)


def _upstream_message(response: httpx.Response) -> Optional[str]:
    # Binance error bodies look like {"code": -1121, "msg": "Invalid symbol."}
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("msg"), str):
        return body["msg"]
    return None


class PriceGateway:
    def __init__(self, client: TickerClient):
        self.client = client

    async def fetch_one(self, symbol: str) -> PricePoint:
        """Fetch the current price of an already validated ``symbol``."""
        logger.debug("Fetching price for %s", symbol)
        try:
            payload = await self.client.ticker_price(symbol)
        except (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError) as exc:
            logger.debug("Timed out fetching %s: %s", symbol, exc)
            raise ServiceUnavailable(
                "Request to Binance API timed out",
                {"symbol": symbol, "originalError": str(exc) or type(exc).__name__},
            ) from exc
        except (httpx.ConnectError, ConnectionError) as exc:
            logger.debug("Cannot reach upstream for %s: %s", symbol, exc)
            raise ServiceUnavailable(
                "Unable to connect to Binance API",
                {"symbol": symbol, "originalError": str(exc) or type(exc).__name__},
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            upstream_msg = _upstream_message(exc.response)
            logger.debug("Upstream returned %d for %s: %s", status, symbol, upstream_msg)
            message = f"Failed to fetch price for {symbol}"
            if upstream_msg:
                message = f"{message}: {upstream_msg}"
            raise UpstreamError(
                message, {"symbol": symbol, "statusCode": status, "upstreamMessage": upstream_msg}
            ) from exc
        except Exception as exc:
            logger.debug("Unexpected error fetching %s", symbol, exc_info=exc)
            raise UpstreamError(
                f"Failed to fetch price for {symbol}",
                {"symbol": symbol, "originalError": str(exc) or type(exc).__name__},
            ) from exc

        return self._to_price_point(symbol, payload)

    def _to_price_point(self, symbol: str, payload: Any) -> PricePoint:
        if not isinstance(payload, dict):
            raise UpstreamError("Invalid response from Binance API", {"symbol": symbol})

        raw_price = payload.get("price")
        if raw_price is None or raw_price == "":
            raise UpstreamError(f"No price data returned for symbol: {symbol}", {"symbol": symbol})

        try:
            price = float(raw_price)
        except (TypeError, ValueError):
            price = math.nan
        if not math.isfinite(price) or price < 0:
            raise UpstreamError(
                f"Invalid price returned for symbol: {symbol}",
                {"symbol": symbol, "price": str(raw_price)},
            )

        timestamp = payload.get("time")
        if not isinstance(timestamp, int) or isinstance(timestamp, bool) or timestamp <= 0:
            timestamp = now_ms()

        logger.debug("Price fetched for %s: %s", symbol, price)
        return PricePoint(symbol=symbol, price=price, timestamp=timestamp)

    async def fetch_batch(self, symbols: Sequence[str]) -> List[BatchItem]:
        """Fetch all ``symbols`` concurrently and wait for every one to settle."""
        outcomes = await asyncio.gather(
            *(self.fetch_one(symbol) for symbol in symbols), return_exceptions=True
        )

        results = []
        for symbol, outcome in zip(symbols, outcomes):
            if isinstance(outcome, PricePoint):
                results.append(BatchItem.from_price(outcome))
                continue
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, AppError):
                message = outcome.message
            else:
                message = str(outcome) or "Unknown error occurred"
            logger.warning("Failed to fetch price for %s: %s", symbol, message)
            results.append(BatchItem.failed(symbol, message))

        successful = sum(1 for r in results if r.ok)
        logger.info(
            "Batch fetch completed: total=%d successful=%d failed=%d",
            len(results),
            successful,
            len(results) - successful,
        )
        return results

    async def check_health(self) -> HealthStatus:
        try:
            await self.client.ping()
            connected = True
        except Exception as exc:
            logger.warning("Upstream connectivity probe failed: %s", str(exc) or type(exc).__name__)
            connected = False
        return HealthStatus(
            status="healthy" if connected else "degraded",
            upstream_connected=connected,
            timestamp=now_ms(),
        )
