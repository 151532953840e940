"""Heuristic risk analysis of a freshly launched token.

Independent of the AI consensus. Starts from a safety score of 100 and
subtracts fixed penalties for each detected risk factor.
"""

from __future__ import annotations

import logging

from .models import (
    ActivitySignal,
    DistributionSignal,
    LiquiditySignal,
    RiskAnalysis,
    RiskLevel,
    RiskSignals,
    TokenSnapshot,
)

logger = logging.getLogger(__name__)

# Hard flags
FLAG_VERY_LOW_INITIAL_BUY = "Very low initial buy"
FLAG_NO_BUYERS = "No buyers - dead token"
FLAG_SINGLE_BUYER = "Single buyer - highly centralized"
FLAG_HEAVY_SELLING = "Heavy selling pressure"
FLAG_SPAM_KEYWORDS = "Spam keywords detected"
FLAG_NO_ACTIVITY = "No trading activity"

# Soft warnings
WARN_LOW_LIQUIDITY = "Low liquidity"
WARN_WHALE_ENTRY = "Whale entry - watch for dumps"
WARN_FEW_BUYERS = "Few buyers - low distribution"
WARN_STRONG_BUYING = "Strong buying - no sellers yet"
WARN_BOT_PATTERN = "Suspicious pattern - bots possible"
WARN_LONG_SYMBOL = "Unusually long symbol"
WARN_TINY_MARKET_CAP = "Very low market cap - high volatility"
WARN_ESTABLISHED_MARKET_CAP = "Established market cap"

SPAM_WORDS = ("test", "sample", "xxx", "scam", "rug", "moon", "safe")

# Initial buy, in SOL
VERY_LOW_INITIAL_BUY = 0.1
LOW_INITIAL_BUY = 0.5
WHALE_INITIAL_BUY = 5.0
# Market cap, in SOL
TINY_MARKET_CAP = 10
ESTABLISHED_MARKET_CAP = 1000
MAX_SYMBOL_LENGTH = 10


def risk_level_for(score: int) -> RiskLevel:
    if score >= 70:
        return RiskLevel.LOW
    if score >= 50:
        return RiskLevel.MEDIUM
    if score >= 30:
        return RiskLevel.HIGH
    return RiskLevel.EXTREME


def analyze_risk(snapshot: TokenSnapshot) -> RiskAnalysis:
    """Classify a snapshot's safety. Missing fields count as zero; never raises."""
    flags: list[str] = []
    warnings: list[str] = []
    score = 100
    signals = RiskSignals()

    # Liquidity: creator's initial buy
    initial_buy = snapshot.initial_buy_sol or 0.0
    if initial_buy < VERY_LOW_INITIAL_BUY:
        score -= 30
        flags.append(FLAG_VERY_LOW_INITIAL_BUY)
        signals.liquidity = LiquiditySignal.LOW
    elif initial_buy < LOW_INITIAL_BUY:
        score -= 15
        warnings.append(WARN_LOW_LIQUIDITY)
        signals.liquidity = LiquiditySignal.MEDIUM
    elif initial_buy >= WHALE_INITIAL_BUY:
        warnings.append(WARN_WHALE_ENTRY)

    # Distribution
    unique_buyers = snapshot.unique_buyers or 0
    if unique_buyers == 0:
        score -= 40
        flags.append(FLAG_NO_BUYERS)
        signals.distribution = DistributionSignal.CENTRALIZED
    elif unique_buyers == 1:
        score -= 25
        flags.append(FLAG_SINGLE_BUYER)
        signals.distribution = DistributionSignal.CENTRALIZED
    elif unique_buyers < 5:
        score -= 10
        warnings.append(WARN_FEW_BUYERS)
        signals.distribution = DistributionSignal.CONCERNING

    # Activity
    buys = snapshot.buy_count or 0
    sells = snapshot.sell_count or 0
    if buys > 0 and sells == 0:
        if unique_buyers >= 5:
            warnings.append(WARN_STRONG_BUYING)
        else:
            score -= 15
            warnings.append(WARN_BOT_PATTERN)
            signals.activity = ActivitySignal.SUSPICIOUS
    elif sells > buys * 2:
        score -= 20
        flags.append(FLAG_HEAVY_SELLING)
    elif buys == 0 and sells == 0 and not snapshot.tx_count_1h:
        score -= 10
        flags.append(FLAG_NO_ACTIVITY)

    # Name and symbol
    name = (snapshot.name or "").lower()
    symbol = (snapshot.symbol or "").lower()
    if any(word in name or word in symbol for word in SPAM_WORDS):
        score -= 25
        flags.append(FLAG_SPAM_KEYWORDS)
        signals.activity = ActivitySignal.BOT_DRIVEN

    if len(symbol) > MAX_SYMBOL_LENGTH:
        score -= 10
        warnings.append(WARN_LONG_SYMBOL)

    market_cap = snapshot.market_cap or 0.0
    if market_cap < TINY_MARKET_CAP:
        warnings.append(WARN_TINY_MARKET_CAP)
    elif market_cap > ESTABLISHED_MARKET_CAP:
        warnings.append(WARN_ESTABLISHED_MARKET_CAP)

    score = max(0, min(100, score))
    level = risk_level_for(score)
    logger.debug("Risk for %s: %s (%d) flags=%s", snapshot.mint, level.value, score, flags)
    return RiskAnalysis(risk_level=level, score=score, flags=flags, warnings=warnings, signals=signals)
