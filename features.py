from typing import Dict, Iterable, List

import numpy as np
import pandas as pd

from models import MarketCoin


def _safe_log(x: pd.Series) -> pd.Series:
    return np.log(np.clip(x.astype(float), 1e-18, None))


def build_sparkline_frame(coin: MarketCoin) -> pd.DataFrame:
    """
    Convert a coin's 7d sparkline into a dataframe:
    step, price, log_price, ret1, normalized

    normalized maps the price range onto 0..1 the same way the detail chart
    scales its y axis. A flat series maps to 0.
    """
    prices = coin.sparkline_in_7d.price if coin.sparkline_in_7d else []
    if not prices:
        raise ValueError(f"No sparkline data for {coin.id}")

    df = pd.DataFrame({"price": prices}, dtype=float)
    df.insert(0, "step", np.arange(len(df)))

    df["log_price"] = _safe_log(df["price"])
    df["ret1"] = df["log_price"].diff()

    lo, hi = df["price"].min(), df["price"].max()
    span = hi - lo
    df["normalized"] = (df["price"] - lo) / span if span > 0 else 0.0
    return df


def summarize_sparkline(df: pd.DataFrame) -> Dict[str, float]:
    first = float(df["price"].iloc[0])
    last = float(df["price"].iloc[-1])
    change_pct = (last - first) / first * 100 if first else 0.0
    vol = df["ret1"].std()
    return {
        "first": first,
        "last": last,
        "min": float(df["price"].min()),
        "max": float(df["price"].max()),
        "change_pct": float(change_pct),
        "volatility": 0.0 if pd.isna(vol) else float(vol),
    }


def market_frame(coins: Iterable[MarketCoin]) -> pd.DataFrame:
    cols = ["id", "symbol", "name", "current_price", "market_cap_rank", "price_change_percentage_24h"]
    rows = [c.model_dump(include=set(cols)) for c in coins]
    return pd.DataFrame(rows, columns=cols)


def top_movers(coins: Iterable[MarketCoin], n: int = 5) -> Dict[str, List[dict]]:
    """
    Biggest 24h gainers and losers. Coins without a 24h change are left out.
    """
    coins = list(coins)
    by_id = {c.id: c for c in coins}

    df = market_frame(coins).dropna(subset=["price_change_percentage_24h"])
    df = df.sort_values("price_change_percentage_24h", ascending=False, kind="stable")

    gainers = df[df["price_change_percentage_24h"] > 0].head(n)
    losers = df[df["price_change_percentage_24h"] < 0].iloc[::-1].head(n)

    def _records(frame: pd.DataFrame) -> List[dict]:
        # back to plain dicts so numpy scalars never reach the JSON encoder
        return [
            by_id[coin_id].model_dump(include=set(frame.columns))
            for coin_id in frame["id"]
        ]

    return {"gainers": _records(gainers), "losers": _records(losers)}
