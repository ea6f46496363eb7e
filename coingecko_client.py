import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar
from urllib.parse import parse_qsl, urlencode, urlsplit

import httpx
from pydantic import TypeAdapter, ValidationError

from config import COINGECKO_BASE_URL, DEFAULT_KEY_HEADER
from errors import DecodingError, InvalidRequest, NetworkError, RateLimited, ServerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PendingRequest:
    """Request identity: endpoint path plus ordered query params. Doubles as the cache key."""

    path: str
    params: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self):
        if not self.path or not self.path.startswith("/"):
            raise InvalidRequest(f"path must start with '/': {self.path!r}")
        parts = urlsplit(self.path)
        if parts.scheme or parts.netloc or parts.query or parts.fragment:
            raise InvalidRequest(f"path must be a bare endpoint path: {self.path!r}")

    @classmethod
    def build(cls, path: str, **params: Any) -> "PendingRequest":
        return cls(path, tuple((k, str(v)) for k, v in params.items()))

    @classmethod
    def from_endpoint(cls, endpoint: str) -> "PendingRequest":
        """Parse "/coins/markets?vs_currency=krw&page=1" keeping param order."""
        path, _, query = endpoint.partition("?")
        return cls(path, tuple(parse_qsl(query, keep_blank_values=True)))

    @property
    def endpoint(self) -> str:
        if not self.params:
            return self.path
        return f"{self.path}?{urlencode(self.params)}"


@dataclass
class CacheEntry:
    payload: bytes
    stored_at: float
    expiration: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at <= self.expiration


class ResponseCache:
    """Raw-payload cache with per-entry expiry, evicted lazily on lookup."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._entries: Dict[PendingRequest, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: PendingRequest) -> Optional[bytes]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_fresh(self.clock()):
                logger.debug(f"Evicting expired cache entry {key.endpoint}")
                del self._entries[key]
                return None
            return entry.payload

    def set(self, key: PendingRequest, payload: bytes, expiration: float):
        with self._lock:
            self._entries[key] = CacheEntry(payload, self.clock(), expiration)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: PendingRequest) -> bool:
        with self._lock:
            return key in self._entries


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    # HTTP-date form and nan/inf/negative values are ignored
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds


@lru_cache(maxsize=None)
def _adapter(shape: Any) -> TypeAdapter:
    return TypeAdapter(shape)


class CoinGeckoClient:
    def __init__(
        self,
        base_url: str = COINGECKO_BASE_URL,
        api_key: Optional[str] = None,
        timeout_s: float = 30.0,
        min_interval_s: float = 1.0,
        default_cache_lifetime_s: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._timeout = timeout_s
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=self._timeout, transport=transport
        )
        self.min_interval_s = min_interval_s
        self.default_cache_lifetime_s = default_cache_lifetime_s
        self._clock = clock
        self._cache = ResponseCache(clock=clock)

        # Throttle state: dispatch start of the most recent outbound call.
        self._throttle_lock = asyncio.Lock()
        self._last_request_at: Optional[float] = None

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            return {}
        return {DEFAULT_KEY_HEADER: self._api_key}

    async def fetch(
        self,
        request: PendingRequest,
        shape: Type[T],
        use_cache: bool = True,
        cache_lifetime: Optional[float] = None,
    ) -> T:
        if use_cache:
            cached = self._cache.get(request)
            if cached is not None:
                logger.debug(f"Cache hit for {request.endpoint}")
                return self._decode(cached, shape)

        payload = await self._dispatch(request)

        if use_cache:
            lifetime = self.default_cache_lifetime_s if cache_lifetime is None else cache_lifetime
            self._cache.set(request, payload, lifetime)

        return self._decode(payload, shape)

    def clear_cache(self):
        self._cache.clear()

    async def _wait_for_slot(self):
        async with self._throttle_lock:
            if self._last_request_at is not None:
                elapsed = self._clock() - self._last_request_at
                if elapsed < self.min_interval_s:
                    wait_s = self.min_interval_s - elapsed
                    logger.debug(f"Throttling outbound request for {wait_s:.3f}s")
                    await asyncio.sleep(wait_s)
            self._last_request_at = self._clock()

    async def _dispatch(self, request: PendingRequest) -> bytes:
        await self._wait_for_slot()
        logger.debug(f"GET {request.endpoint}")

        try:
            r = await self._client.get(
                request.path, params=list(request.params), headers=self._headers()
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise InvalidRequest(str(e)) from e
        except httpx.TransportError as e:
            logger.warning(f"Transport failure for {request.endpoint}: {e}")
            raise NetworkError(e) from e

        if r.status_code == 429:
            logger.warning(f"Rate limited on {request.endpoint}")
            raise RateLimited(_retry_after(r))
        if not 200 <= r.status_code <= 299:
            logger.warning(f"HTTP {r.status_code} for {request.endpoint}")
            raise ServerError(r.status_code)
        return r.content

    @staticmethod
    def _decode(payload: bytes, shape: Type[T]) -> T:
        try:
            return _adapter(shape).validate_json(payload)
        except ValidationError as e:
            raise DecodingError(e) from e

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self) -> "CoinGeckoClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
