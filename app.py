import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from bookmarks import BookmarkStore
from coin_service import CoinService
from coingecko_client import CoinGeckoClient
from config import Settings
from errors import APIError, CoinNotFound, InvalidRequest, RateLimited
from features import build_sparkline_frame, summarize_sparkline, top_movers
from models import Bookmark, MarketCoin, SearchResult, TrendingResponse

logger = logging.getLogger(__name__)


def _error_response(e: APIError) -> JSONResponse:
    if isinstance(e, RateLimited):
        headers = {"Retry-After": str(int(e.retry_after))} if e.retry_after is not None else None
        return JSONResponse(status_code=429, content={"detail": str(e)}, headers=headers)
    if isinstance(e, CoinNotFound):
        return JSONResponse(status_code=404, content={"detail": str(e)})
    if isinstance(e, InvalidRequest):
        return JSONResponse(status_code=400, content={"detail": str(e)})
    return JSONResponse(status_code=502, content={"detail": str(e)})


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[CoinGeckoClient] = None,
    bookmarks: Optional[BookmarkStore] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cg = client or CoinGeckoClient(
            base_url=settings.base_url,
            api_key=settings.api_key,
            timeout_s=settings.timeout_s,
            min_interval_s=settings.min_request_interval_s,
            default_cache_lifetime_s=settings.default_cache_ttl_s,
        )
        app.state.service = CoinService(cg, settings)
        app.state.bookmarks = bookmarks or BookmarkStore(settings.bookmarks_path)
        try:
            yield
        finally:
            await cg.aclose()

    app = FastAPI(title="Coin Market API", version="1.0.0", lifespan=lifespan)

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, e: APIError):
        logger.warning(f"{request.method} {request.url.path} failed: {e}")
        return _error_response(e)

    def get_service(request: Request) -> CoinService:
        return request.app.state.service

    def get_bookmarks(request: Request) -> BookmarkStore:
        return request.app.state.bookmarks

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.get("/coins", response_model=List[MarketCoin])
    async def list_coins(
        page: int = Query(1, ge=1),
        vs_currency: Optional[str] = Query(None),
        service: CoinService = Depends(get_service),
    ):
        return await service.fetch_coins(page=page, vs_currency=vs_currency)

    @app.get("/coins/movers")
    async def movers(
        n: int = Query(5, ge=1, le=50),
        vs_currency: Optional[str] = Query(None),
        service: CoinService = Depends(get_service),
    ):
        coins = await service.fetch_coins(page=1, vs_currency=vs_currency)
        return top_movers(coins, n)

    @app.get("/coins/{coin_id}")
    async def coin_detail(
        coin_id: str,
        vs_currency: Optional[str] = Query(None),
        service: CoinService = Depends(get_service),
        store: BookmarkStore = Depends(get_bookmarks),
    ):
        coin = await service.fetch_coin_detail(coin_id, vs_currency=vs_currency)
        return {"coin": coin, "is_bookmarked": await run_in_threadpool(store.is_bookmarked, coin_id)}

    @app.get("/coins/{coin_id}/sparkline")
    async def coin_sparkline(
        coin_id: str,
        vs_currency: Optional[str] = Query(None),
        service: CoinService = Depends(get_service),
    ):
        coin = await service.fetch_coin_detail(coin_id, vs_currency=vs_currency)
        try:
            frame = build_sparkline_frame(coin)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {
            "coin_id": coin.id,
            "points": frame["normalized"].astype(float).tolist(),
            "summary": summarize_sparkline(frame),
        }

    @app.get("/search", response_model=SearchResult)
    async def search(
        query: str = Query(""),
        service: CoinService = Depends(get_service),
    ):
        return await service.search_coins(query)

    @app.get("/trending", response_model=TrendingResponse)
    async def trending(service: CoinService = Depends(get_service)):
        return await service.fetch_trending()

    @app.get("/bookmarks")
    def list_bookmarks(store: BookmarkStore = Depends(get_bookmarks)):
        return {"coin_ids": sorted(store.get_bookmarked_coins())}

    @app.get("/bookmarks/coins", response_model=List[Bookmark])
    async def bookmarked_coins(
        service: CoinService = Depends(get_service),
        store: BookmarkStore = Depends(get_bookmarks),
    ):
        coin_ids = await run_in_threadpool(store.get_bookmarked_coins)
        coins = await service.fetch_coin_details(sorted(coin_ids))
        return [Bookmark.from_market_coin(c) for c in coins]

    @app.post("/bookmarks/{coin_id}/toggle")
    def toggle_bookmark(coin_id: str, store: BookmarkStore = Depends(get_bookmarks)):
        return {"coin_id": coin_id, "is_bookmarked": store.toggle_bookmark(coin_id)}

    @app.delete("/cache")
    async def clear_cache(service: CoinService = Depends(get_service)):
        service.clear_cache()
        return {"ok": True}

    return app


logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
app = create_app()
