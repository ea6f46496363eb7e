from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


# -----------------------------
# /coins/markets
# -----------------------------
class Sparkline(BaseModel):
    price: List[float] = []


class MarketCoin(BaseModel):
    id: str
    symbol: str
    name: str
    image: str
    current_price: float
    market_cap: Optional[float] = None
    market_cap_rank: Optional[int] = None
    price_change_percentage_24h: Optional[float] = None
    total_volume: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    sparkline_in_7d: Optional[Sparkline] = None


# -----------------------------
# /search
# -----------------------------
class SearchCoin(BaseModel):
    id: str
    name: str
    symbol: str
    market_cap_rank: Optional[int] = None
    thumb: str
    large: str


class SearchResult(BaseModel):
    coins: List[SearchCoin] = []


# -----------------------------
# /search/trending
# -----------------------------
class TrendingCoinItem(BaseModel):
    id: str
    name: str
    symbol: str
    market_cap_rank: Optional[int] = None
    thumb: str
    small: Optional[str] = None
    large: Optional[str] = None
    score: Optional[int] = None


class TrendingCoin(BaseModel):
    item: TrendingCoinItem


class TrendingNFT(BaseModel):
    id: str
    name: str
    symbol: str
    thumb: str
    native_currency_symbol: Optional[str] = None
    floor_price_in_native_currency: Optional[float] = None
    floor_price_24h_percentage_change: Optional[float] = None


class TrendingResponse(BaseModel):
    coins: List[TrendingCoin] = []
    nfts: List[TrendingNFT] = []


# -----------------------------
# Bookmarks
# -----------------------------
class Bookmark(BaseModel):
    """A bookmarked coin as shown on the bookmark screen."""

    id: str
    name: str
    symbol: str
    image: str
    current_price: float
    price_change_percentage_24h: Optional[float] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_market_coin(cls, coin: MarketCoin) -> "Bookmark":
        return cls(
            id=coin.id,
            name=coin.name,
            symbol=coin.symbol,
            image=coin.image,
            current_price=coin.current_price,
            price_change_percentage_24h=coin.price_change_percentage_24h,
        )
