import os
from typing import Optional

from pydantic import BaseModel

COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"
DEFAULT_KEY_HEADER = "x-cg-demo-api-key"


class Settings(BaseModel):
    base_url: str = COINGECKO_BASE_URL
    api_key: Optional[str] = None
    vs_currency: str = "krw"

    # Throttle / cache knobs (seconds)
    min_request_interval_s: float = 1.0
    default_cache_ttl_s: float = 300.0
    coins_cache_ttl_s: float = 60.0
    detail_cache_ttl_s: float = 300.0
    search_cache_ttl_s: float = 300.0
    trending_cache_ttl_s: float = 300.0

    timeout_s: float = 30.0
    bookmarks_path: str = "bookmarks.json"

    @classmethod
    def from_env(cls) -> "Settings":
        env = {
            "base_url": os.getenv("COINGECKO_BASE_URL"),
            "api_key": os.getenv("COINGECKO_API_KEY"),
            "vs_currency": os.getenv("VS_CURRENCY"),
            "min_request_interval_s": os.getenv("MIN_REQUEST_INTERVAL_S"),
            "default_cache_ttl_s": os.getenv("DEFAULT_CACHE_TTL_S"),
            "coins_cache_ttl_s": os.getenv("COINS_CACHE_TTL_S"),
            "detail_cache_ttl_s": os.getenv("DETAIL_CACHE_TTL_S"),
            "search_cache_ttl_s": os.getenv("SEARCH_CACHE_TTL_S"),
            "trending_cache_ttl_s": os.getenv("TRENDING_CACHE_TTL_S"),
            "timeout_s": os.getenv("HTTP_TIMEOUT_S"),
            "bookmarks_path": os.getenv("BOOKMARKS_PATH"),
        }
        # unset variables fall back to the field defaults
        return cls(**{k: v for k, v in env.items() if v})
