from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import RateUnavailable
from .base import PriceProvider


class CoingeckoProvider(PriceProvider):
    """Coingecko API provider for the native asset price"""

    name = "coingecko"
    timeout_s = 15

    def __init__(
        self,
        *,
        asset_id: Optional[str] = None,
        vs_currency: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = settings.coingecko_api_key
        self.base_url = (base_url or settings.coingecko_base_url).rstrip("/")
        self.asset_id = asset_id or settings.rate_asset_id
        self.vs_currency = vs_currency or settings.rate_vs_currency
        self._client = client

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.api_key:
            headers["X-CG-Demo-API-Key"] = self.api_key
        return headers

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(
                f"{self.base_url}{path}",
                headers=self._build_headers(),
                params=params,
                timeout=self.timeout_s,
            )
        async with httpx.AsyncClient() as client:
            return await client.get(
                f"{self.base_url}{path}",
                headers=self._build_headers(),
                params=params,
                timeout=self.timeout_s,
            )

    async def ready(self) -> bool:
        return True  # API key is optional for basic tier

    async def health_check(self) -> Dict[str, Any]:
        try:
            response = await self._get("/ping")
            response.raise_for_status()
            return {"status": "healthy", "latency_ms": int(response.elapsed.total_seconds() * 1000)}
        except Exception as e:
            return {"status": "error", "reason": str(e)}

    async def get_asset_price(self) -> Decimal:
        """
        Get the native asset price, e.g. SOL in USD.

        Raises: RateUnavailable on a schema deviation; httpx errors propagate.
        """
        params = {
            "ids": self.asset_id,
            "vs_currencies": self.vs_currency,
        }
        response = await self._get("/simple/price", params=params)
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as exc:
            raise RateUnavailable("Price feed returned invalid JSON") from exc

        entry = data.get(self.asset_id) if isinstance(data, dict) else None
        raw = entry.get(self.vs_currency) if isinstance(entry, dict) else None
        if raw is None or isinstance(raw, bool):
            raise RateUnavailable(f"Price feed has no {self.asset_id}/{self.vs_currency} quote")

        try:
            price = Decimal(str(raw))
        except (InvalidOperation, ValueError) as exc:
            raise RateUnavailable("Price feed returned a non-numeric price") from exc
        if not price.is_finite() or price <= 0:
            raise RateUnavailable("Price feed returned a non-positive price")
        return price
