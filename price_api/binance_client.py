import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

TICKER_PRICE_PATH = "/fapi/v1/ticker/price"
PING_PATH = "/fapi/v1/ping"


class BinanceClient:
    """Thin async wrapper over the Binance USD-M futures REST API.

    Only the two public endpoints the gateway needs are exposed. Transport
    errors propagate unchanged; classifying them is the gateway's job.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 5.0,
        api_key: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["X-MBX-APIKEY"] = api_key
        self.base_url = base_url
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_s,
            headers=headers,
            transport=transport,
        )
        logger.info("BinanceClient initialized (base_url=%s, timeout=%.1fs)", base_url, timeout_s)

    async def ticker_price(self, symbol: str) -> Dict[str, Any]:
        """Return the raw ``{symbol, price, time}`` ticker payload."""
        response = await self.client.get(TICKER_PRICE_PATH, params={"symbol": symbol})
        response.raise_for_status()
        return response.json()

    async def ping(self) -> None:
        response = await self.client.get(PING_PATH)
        response.raise_for_status()

    async def aclose(self) -> None:
        await self.client.aclose()
