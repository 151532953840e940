"""Build snapshots and market views from DexScreener pairs and PumpPortal trades.

DexScreener pair docs: https://docs.dexscreener.com/api/reference
PumpPortal trade stream: https://pumpportal.fun/data-api/real-time

USD amounts are converted to SOL through the pair's native/USD price, since
snapshots are denominated in SOL.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .models import MarketData, TokenSnapshot, _to_number

logger = logging.getLogger(__name__)


def _get(data: Optional[dict], *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _txns(pair: Optional[dict], window: str) -> tuple[int, int]:
    buys = _to_number(_get(pair, "txns", window, "buys")) or 0
    sells = _to_number(_get(pair, "txns", window, "sells")) or 0
    return int(buys), int(sells)


def _sol_price_usd(pair: Optional[dict]) -> Optional[float]:
    price_usd = _to_number(_get(pair, "priceUsd"))
    price_native = _to_number(_get(pair, "priceNative"))
    if not price_usd or not price_native:
        return None
    return price_usd / price_native


def _to_sol(value: Any, sol_usd: Optional[float]) -> Optional[float]:
    amount = _to_number(value)
    if amount is None or not sol_usd:
        return None
    return amount / sol_usd


def summarize_trades(trades: Iterable[dict]) -> dict:
    """Aggregate PumpPortal trade events into snapshot counters."""
    buyers: dict[str, float] = {}
    buy_count = 0
    sell_count = 0
    initial_buy: Optional[float] = None
    market_cap: Optional[float] = None
    name = symbol = None

    for trade in trades:
        kind = str(trade.get("txType", "")).lower()
        trader = trade.get("traderPublicKey")
        sol = _to_number(trade.get("solAmount")) or 0.0
        market_cap = _to_number(trade.get("marketCapSol")) or market_cap
        name = trade.get("name") or name
        symbol = trade.get("symbol") or symbol

        if kind == "create":
            initial_buy = sol
            if sol <= 0:
                continue
        elif kind == "sell":
            sell_count += 1
            continue
        elif kind != "buy":
            continue

        buy_count += 1
        if trader:
            buyers[trader] = buyers.get(trader, 0.0) + sol

    total_bought = sum(buyers.values())
    whale_share = max(buyers.values()) / total_bought * 100 if total_bought > 0 else None
    return {
        "name": name,
        "symbol": symbol,
        "unique_buyers": len(buyers),
        "buy_count": buy_count,
        "sell_count": sell_count,
        "initial_buy_sol": initial_buy,
        "whale_share": whale_share,
        "market_cap": market_cap,
    }


def snapshot_from_pair(
    pair: Optional[dict],
    trades: Iterable[dict] = (),
    now: Optional[datetime] = None,
    mint: Optional[str] = None,
) -> TokenSnapshot:
    """Build a TokenSnapshot from a DexScreener pair and optional trade events."""
    trades = list(trades)
    now = now or datetime.now(timezone.utc)

    mint = mint or _get(pair, "baseToken", "address")
    if not mint:
        mint = next((t.get("mint") for t in trades if t.get("mint")), None)
    if not mint:
        raise ValueError("Cannot build a snapshot without a mint address")

    stats = summarize_trades(trades) if trades else {}
    sol_usd = _sol_price_usd(pair)

    buys_1h, sells_1h = _txns(pair, "h1")
    buys_24h, sells_24h = _txns(pair, "h24")
    if buys_24h or sells_24h:
        ratio = buys_24h / max(sells_24h, 1)
    elif stats.get("buy_count") or stats.get("sell_count"):
        ratio = stats["buy_count"] / max(stats["sell_count"], 1)
    else:
        ratio = None

    age_hours = None
    created_ms = _to_number(_get(pair, "pairCreatedAt"))
    if created_ms:
        age_hours = (now.timestamp() * 1000 - created_ms) / 3_600_000

    market_cap = _to_sol(_get(pair, "marketCap") or _get(pair, "fdv"), sol_usd)
    if market_cap is None:
        market_cap = stats.get("market_cap")

    return TokenSnapshot(
        mint=mint,
        name=stats.get("name") or _get(pair, "baseToken", "name"),
        symbol=stats.get("symbol") or _get(pair, "baseToken", "symbol"),
        dex_url=_get(pair, "url"),
        price=_get(pair, "priceNative"),
        market_cap=market_cap,
        liquidity=_to_sol(_get(pair, "liquidity", "usd"), sol_usd),
        volume_24h=_to_sol(_get(pair, "volume", "h24"), sol_usd),
        tx_count_1h=buys_1h + sells_1h if pair else None,
        age_hours=age_hours,
        unique_buyers=stats.get("unique_buyers"),
        buyer_seller_ratio=ratio,
        whale_share=stats.get("whale_share"),
        buy_count=stats.get("buy_count"),
        sell_count=stats.get("sell_count"),
        initial_buy_sol=stats.get("initial_buy_sol"),
    )


def market_from_pair(pair: Optional[dict]) -> MarketData:
    """USD market view of a DexScreener pair; missing fields read as zero."""
    buys, sells = _txns(pair, "h24")
    return MarketData(
        price_usd=_get(pair, "priceUsd"),
        liquidity_usd=_get(pair, "liquidity", "usd"),
        volume_24h_usd=_get(pair, "volume", "h24"),
        market_cap_usd=_get(pair, "fdv") or _get(pair, "marketCap"),
        price_change_24h_pct=_get(pair, "priceChange", "h24"),
        buys_24h=buys,
        sells_24h=sells,
    )
