"""Tests for DexScreener and PumpPortal payload parsing."""

from datetime import datetime, timedelta, timezone

import pytest

from metapulse.core.parsers import market_from_pair, snapshot_from_pair, summarize_trades

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _pair(**overrides):
    pair = {
        "chainId": "solana",
        "url": "https://dexscreener.com/solana/pairaddr",
        "baseToken": {"address": "FrogMint111", "name": "Frog King", "symbol": "FROGK"},
        "priceUsd": "0.002",
        "priceNative": "0.00001",
        "liquidity": {"usd": 12_000},
        "volume": {"h24": 30_000},
        "marketCap": 80_000,
        "fdv": 90_000,
        "txns": {"h1": {"buys": 40, "sells": 20}, "h24": {"buys": 300, "sells": 120}},
        "priceChange": {"h24": -12.5},
        "pairCreatedAt": int((NOW - timedelta(hours=30)).timestamp() * 1000),
    }
    pair.update(overrides)
    return pair


TRADES = [
    {"txType": "create", "mint": "FrogMint111", "traderPublicKey": "dev", "solAmount": 1.0,
     "name": "Frog King", "symbol": "FROGK", "marketCapSol": 30.0},
    {"txType": "buy", "mint": "FrogMint111", "traderPublicKey": "alice", "solAmount": 2.0, "marketCapSol": 32.0},
    {"txType": "buy", "mint": "FrogMint111", "traderPublicKey": "bob", "solAmount": 1.5, "marketCapSol": 33.0},
    {"txType": "buy", "mint": "FrogMint111", "traderPublicKey": "alice", "solAmount": 1.0, "marketCapSol": 34.0},
    {"txType": "sell", "mint": "FrogMint111", "traderPublicKey": "carol", "solAmount": 0.4, "marketCapSol": 35.0},
]


class TestSummarizeTrades:
    def test_counts_buyers_and_whale_share(self):
        stats = summarize_trades(TRADES)
        assert stats["unique_buyers"] == 3
        assert stats["buy_count"] == 4
        assert stats["sell_count"] == 1
        assert stats["initial_buy_sol"] == 1.0
        # alice bought 3.0 of 5.5 SOL
        assert stats["whale_share"] == pytest.approx(54.5454, abs=1e-3)
        assert stats["market_cap"] == 35.0

    def test_zero_sol_create_does_not_count_as_buyer(self):
        stats = summarize_trades([{"txType": "create", "traderPublicKey": "dev", "solAmount": 0}])
        assert stats["unique_buyers"] == 0
        assert stats["initial_buy_sol"] == 0
        assert stats["whale_share"] is None


class TestSnapshotFromPair:
    def test_converts_usd_amounts_to_sol(self):
        snapshot = snapshot_from_pair(_pair(), now=NOW)
        assert snapshot.mint == "FrogMint111"
        assert snapshot.symbol == "FROGK"
        assert snapshot.liquidity == pytest.approx(60.0)
        assert snapshot.volume_24h == pytest.approx(150.0)
        assert snapshot.market_cap == pytest.approx(400.0)
        assert snapshot.tx_count_1h == 60
        assert snapshot.buyer_seller_ratio == pytest.approx(2.5)
        assert snapshot.age_hours == pytest.approx(30.0)
        assert snapshot.dex_url == "https://dexscreener.com/solana/pairaddr"

    def test_merges_trade_statistics(self):
        snapshot = snapshot_from_pair(_pair(), TRADES, now=NOW)
        assert snapshot.unique_buyers == 3
        assert snapshot.initial_buy_sol == 1.0
        assert snapshot.whale_share == pytest.approx(54.5454, abs=1e-3)
        # pair counts take precedence for the ratio
        assert snapshot.buyer_seller_ratio == pytest.approx(2.5)

    def test_trades_alone_are_enough(self):
        snapshot = snapshot_from_pair(None, TRADES, now=NOW)
        assert snapshot.mint == "FrogMint111"
        assert snapshot.market_cap == 35.0
        assert snapshot.buyer_seller_ratio == 4.0
        assert snapshot.tx_count_1h is None
        assert snapshot.liquidity is None
        assert snapshot.age_hours is None

    def test_missing_native_price_leaves_amounts_unknown(self):
        snapshot = snapshot_from_pair(_pair(priceNative=None), now=NOW)
        assert snapshot.liquidity is None
        assert snapshot.market_cap is None

    def test_requires_a_mint(self):
        with pytest.raises(ValueError):
            snapshot_from_pair({"priceUsd": "1"})

    def test_explicit_mint_wins(self):
        assert snapshot_from_pair({}, mint="Explicit111").mint == "Explicit111"


class TestMarketFromPair:
    def test_reads_usd_view(self):
        market = market_from_pair(_pair())
        assert market.price_usd == 0.002
        assert market.liquidity_usd == 12_000
        assert market.market_cap_usd == 90_000
        assert market.price_change_24h_pct == -12.5
        assert market.transactions_24h == 420

    def test_empty_pair_reads_as_zero(self):
        market = market_from_pair(None)
        assert market.liquidity_usd == 0
        assert market.transactions_24h == 0
