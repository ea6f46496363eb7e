from __future__ import annotations

import json
import time

import httpx
import pytest

BASE_URL = "https://api.coingecko.test/api/v3"


def market_coin(coin_id: str, price: float = 100.0, change: float | None = 1.5, sparkline=None) -> dict:
    return {
        "id": coin_id,
        "symbol": coin_id[:3],
        "name": coin_id.title(),
        "image": f"https://img.test/{coin_id}.png",
        "current_price": price,
        "market_cap": price * 1000,
        "market_cap_rank": 1,
        "price_change_percentage_24h": change,
        "total_volume": 5000.0,
        "high_24h": price * 1.1,
        "low_24h": price * 0.9,
        "sparkline_in_7d": {"price": sparkline if sparkline is not None else [price, price * 1.02]},
    }


def _endpoint_path(request: httpx.Request) -> str:
    return request.url.path[len(httpx.URL(BASE_URL).path):]


class FakeUpstream:
    """Records outbound requests and answers them from a route table keyed by path."""

    def __init__(self):
        self.routes: dict[str, tuple[int, bytes, dict]] = {}
        self.calls: list[httpx.Request] = []
        self.dispatched_at: list[float] = []
        self.transport = httpx.MockTransport(self._handle)

    def route(self, path, status=200, json_body=None, content=None, headers=None):
        if content is None:
            content = json.dumps(json_body if json_body is not None else {}).encode()
        self.routes[path] = (status, content, headers or {})

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.dispatched_at.append(time.monotonic())
        self.calls.append(request)
        path = _endpoint_path(request)
        status, content, headers = self.routes.get(path, (200, b"{}", {}))
        return httpx.Response(status, content=content, headers=headers)

    @property
    def paths(self) -> list[str]:
        return [_endpoint_path(r) for r in self.calls]


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()
