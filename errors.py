from __future__ import annotations

from typing import Optional


class APIError(Exception):
    """Base class for every failure surfaced by the CoinGecko client."""


class InvalidRequest(APIError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Invalid request: {detail}")


class NetworkError(APIError):
    """Transport failure, or a response that carried no usable result."""

    def __init__(self, cause: Optional[BaseException] = None, message: Optional[str] = None):
        self.cause = cause
        super().__init__(message or f"Network error: {cause}")


class CoinNotFound(NetworkError):
    def __init__(self, coin_id: str):
        self.coin_id = coin_id
        super().__init__(message=f"Coin not found: {coin_id}")


class RateLimited(APIError):
    """HTTP 429 from upstream. Kept apart from ServerError so callers can back off."""

    def __init__(self, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__("API rate limit exceeded")


class ServerError(APIError):
    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Server error: HTTP {status_code}")


class DecodingError(APIError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Could not decode response: {cause}")
