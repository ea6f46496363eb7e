import asyncio
import logging
from typing import Iterable, List, Optional

from coingecko_client import CoinGeckoClient, PendingRequest
from config import Settings
from errors import CoinNotFound, InvalidRequest
from models import MarketCoin, SearchResult, TrendingResponse

logger = logging.getLogger(__name__)


def _lifetime(override: Optional[float], default: float) -> float:
    return default if override is None else override


class CoinService:
    """Fixed CoinGecko endpoints on top of the throttled/cached client."""

    def __init__(self, client: CoinGeckoClient, settings: Optional[Settings] = None):
        self._client = client
        self._settings = settings or Settings()

    def _currency(self, vs_currency: Optional[str]) -> str:
        return vs_currency or self._settings.vs_currency

    async def fetch_coins(
        self,
        page: int = 1,
        vs_currency: Optional[str] = None,
        cache_lifetime: Optional[float] = None,
    ) -> List[MarketCoin]:
        request = PendingRequest.build(
            "/coins/markets",
            vs_currency=self._currency(vs_currency),
            order="market_cap_desc",
            per_page=100,
            page=page,
            sparkline="true",
        )
        logger.info(f"Fetching coins with endpoint: {request.endpoint}")
        return await self._client.fetch(
            request,
            List[MarketCoin],
            cache_lifetime=_lifetime(cache_lifetime, self._settings.coins_cache_ttl_s),
        )

    async def fetch_coin_detail(
        self,
        coin_id: str,
        vs_currency: Optional[str] = None,
        cache_lifetime: Optional[float] = None,
    ) -> MarketCoin:
        if not coin_id:
            raise InvalidRequest("coin id is empty")
        request = PendingRequest.build(
            "/coins/markets",
            vs_currency=self._currency(vs_currency),
            ids=coin_id,
            order="market_cap_desc",
            per_page=1,
            page=1,
            sparkline="true",
        )
        logger.info(f"Fetching coin detail with endpoint: {request.endpoint}")
        coins = await self._client.fetch(
            request,
            List[MarketCoin],
            cache_lifetime=_lifetime(cache_lifetime, self._settings.detail_cache_ttl_s),
        )
        if not coins:
            raise CoinNotFound(coin_id)
        return coins[0]

    async def fetch_coin_details(
        self, coin_ids: Iterable[str], vs_currency: Optional[str] = None
    ) -> List[MarketCoin]:
        """Detail of every id, fetched concurrently. Order follows coin_ids."""
        ids = list(coin_ids)
        if not ids:
            return []
        return list(
            await asyncio.gather(
                *(self.fetch_coin_detail(coin_id, vs_currency=vs_currency) for coin_id in ids)
            )
        )

    async def search_coins(
        self, query: str, cache_lifetime: Optional[float] = None
    ) -> SearchResult:
        query = query.strip()
        if not query:
            return SearchResult()
        request = PendingRequest.build("/search", query=query)
        logger.info(f"Searching coins with endpoint: {request.endpoint}")
        return await self._client.fetch(
            request,
            SearchResult,
            cache_lifetime=_lifetime(cache_lifetime, self._settings.search_cache_ttl_s),
        )

    async def fetch_trending(self, cache_lifetime: Optional[float] = None) -> TrendingResponse:
        request = PendingRequest("/search/trending")
        logger.info(f"Fetching trending coins and NFTs with endpoint: {request.endpoint}")
        return await self._client.fetch(
            request,
            TrendingResponse,
            cache_lifetime=_lifetime(cache_lifetime, self._settings.trending_cache_ttl_s),
        )

    def clear_cache(self):
        self._client.clear_cache()
