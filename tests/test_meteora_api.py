"""Tests for pair price normalization and pool stats parsing."""

import pytest

from dlmm_bot.services.meteora_api import normalize_pair_price, parse_pool_stats


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"price": 150.25}, ("price", 150.25)),
        ({"price": "150.25"}, ("price", 150.25)),
        ({"current_price": 99.5, "price_usd": 100.0}, ("current_price", 99.5)),
        ({"price": 0, "price_usd": "142.1"}, ("price_usd", 142.1)),
        ({"price": "n/a", "current_price": 7}, ("current_price", 7.0)),
        ({"price": float("nan"), "price_usd": 3}, ("price_usd", 3.0)),
    ],
)
def test_first_usable_price_key(payload, expected):
    result = normalize_pair_price(payload)
    assert (result.field, result.value) == expected


@pytest.mark.parametrize(
    "payload",
    [{}, {"price": 0}, {"price": None}, {"price": True}, {"other": 5}, None, [150.0], "150"],
)
def test_no_usable_price(payload):
    assert normalize_pair_price(payload) is None


def test_pool_stats_primary_keys():
    stats = parse_pool_stats({"trade_volume_24h": "125000.5", "base_fee_bps": 10, "liquidity": "2500000"})
    assert stats.volume_24h == 125000.5
    assert stats.fee_bps == 10.0
    assert stats.liquidity == 2_500_000.0


def test_pool_stats_alternate_keys():
    stats = parse_pool_stats({"volume_24h": 10, "baseFeeBps": 20, "tvl": 30})
    assert (stats.volume_24h, stats.fee_bps, stats.liquidity) == (10.0, 20.0, 30.0)


def test_pool_stats_defaults():
    stats = parse_pool_stats({})
    assert (stats.volume_24h, stats.fee_bps, stats.liquidity) == (0.0, 5.0, 0.0)
