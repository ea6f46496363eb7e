from __future__ import annotations

import math

import pytest

from conftest import market_coin
from features import build_sparkline_frame, market_frame, summarize_sparkline, top_movers
from models import MarketCoin


def _coin(coin_id, **kwargs) -> MarketCoin:
    return MarketCoin.model_validate(market_coin(coin_id, **kwargs))


def test_sparkline_frame_normalizes_to_unit_range():
    df = build_sparkline_frame(_coin("bitcoin", sparkline=[10.0, 20.0, 15.0, 30.0]))
    assert list(df.columns) == ["step", "price", "log_price", "ret1", "normalized"]
    assert df["step"].tolist() == [0, 1, 2, 3]
    assert df["normalized"].tolist() == pytest.approx([0.0, 0.5, 0.25, 1.0])
    assert math.isnan(df["ret1"].iloc[0])
    assert df["ret1"].iloc[1] == pytest.approx(math.log(2))


def test_flat_sparkline_normalizes_to_zero():
    df = build_sparkline_frame(_coin("tether", sparkline=[1.0, 1.0, 1.0]))
    assert df["normalized"].tolist() == [0.0, 0.0, 0.0]


def test_missing_sparkline_raises():
    with pytest.raises(ValueError):
        build_sparkline_frame(_coin("bitcoin", sparkline=[]))


def test_summarize_sparkline():
    summary = summarize_sparkline(build_sparkline_frame(_coin("bitcoin", sparkline=[100.0, 80.0, 120.0])))
    assert summary["first"] == 100.0
    assert summary["last"] == 120.0
    assert summary["min"] == 80.0
    assert summary["max"] == 120.0
    assert summary["change_pct"] == pytest.approx(20.0)
    assert summary["volatility"] > 0


def test_single_point_summary_has_zero_volatility():
    summary = summarize_sparkline(build_sparkline_frame(_coin("bitcoin", sparkline=[5.0])))
    assert summary["volatility"] == 0.0
    assert summary["change_pct"] == 0.0


def test_market_frame_columns():
    df = market_frame([_coin("bitcoin"), _coin("ethereum")])
    assert df["id"].tolist() == ["bitcoin", "ethereum"]
    assert "price_change_percentage_24h" in df.columns


def test_top_movers_orders_gainers_and_losers():
    coins = [
        _coin("a", change=5.0),
        _coin("b", change=-7.5),
        _coin("c", change=12.0),
        _coin("d", change=None),
        _coin("e", change=-1.0),
        _coin("f", change=0.0),
    ]
    movers = top_movers(coins, n=2)
    assert [m["id"] for m in movers["gainers"]] == ["c", "a"]
    assert [m["id"] for m in movers["losers"]] == ["b", "e"]
    assert movers["gainers"][0]["price_change_percentage_24h"] == 12.0


def test_top_movers_of_empty_market():
    assert top_movers([], n=3) == {"gainers": [], "losers": []}
