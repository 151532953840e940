"""Deterministic score assembly.

Market, social and on-chain subscores are fixed step functions of the
snapshot, so every point of the final score can be traced back to a field.
The AI consensus enters as one weighted term plus a bonus.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

from .models import ConsensusResult, ScoreBreakdown, TokenSnapshot

logger = logging.getLogger(__name__)

MARKET_MAX = 40
SOCIAL_MAX = 30
SOCIAL_PROXY_MAX = 10
ONCHAIN_MAX = 30
AI_BONUS_MAX = 15
FINAL_MAX = 100
MAX_DATA_QUALITY_PENALTY = 0.4

# (minimum value, points), highest threshold first
LIQUIDITY_TIERS = [(100, 15), (50, 12), (20, 8), (5, 4), (1, 2)]
VOLUME_MCAP_TIERS = [(0.5, 10), (0.3, 8), (0.1, 6), (0.05, 4), (0.01, 2)]
TX_ACTIVITY_TIERS = [(100, 10), (50, 8), (20, 6), (10, 4), (5, 2)]
MENTION_TIERS = [(50, 20), (20, 15), (10, 10), (5, 6), (1, 3)]
ENGAGEMENT_TIERS = [(0.1, 10), (0.05, 8), (0.02, 6), (0.01, 4), (0.005, 2)]
BUYER_MOMENTUM_TIERS = [(20, 6), (10, 4), (5, 2), (2, 1)]
TX_CADENCE_TIERS = [(30, 4), (15, 3), (8, 2), (3, 1)]
UNIQUE_BUYER_TIERS = [(50, 12), (25, 10), (15, 8), (8, 6), (4, 4), (2, 2)]
BUYER_SELLER_TIERS = [(3.0, 10), (2.0, 8), (1.5, 6), (1.2, 4), (1.0, 2)]
# (maximum whale share %, points), lowest ceiling first
WHALE_SHARE_TIERS = [(10, 8), (20, 6), (35, 4), (50, 2)]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def tier(value: Optional[float], steps: Sequence[tuple[float, int]]) -> int:
    """Points of the first step whose minimum ``value`` reaches."""
    if value is None:
        return 0
    for minimum, points in steps:
        if value >= minimum:
            return points
    return 0


def age_bonus(age_hours: Optional[float]) -> int:
    """Peak bonus for 1-7 day old tokens; nothing under an hour or past a week."""
    if age_hours is None:
        return 0
    if 24 <= age_hours <= 168:
        return 5
    if 12 <= age_hours < 24:
        return 3
    if 6 <= age_hours < 12:
        return 2
    if 1 <= age_hours < 6:
        return 1
    return 0


def score_market(snapshot: TokenSnapshot) -> int:
    score = tier(snapshot.liquidity, LIQUIDITY_TIERS)
    if snapshot.market_cap:
        ratio = (snapshot.volume_24h or 0) / snapshot.market_cap
        score += tier(ratio, VOLUME_MCAP_TIERS)
    score += tier(snapshot.tx_count_1h, TX_ACTIVITY_TIERS)
    score += age_bonus(snapshot.age_hours)
    return min(MARKET_MAX, score)


def score_social(snapshot: TokenSnapshot) -> int:
    """Social telemetry when present, otherwise weaker on-chain momentum proxies."""
    if snapshot.x_mentions_1h is not None and snapshot.x_engagement_rate is not None:
        score = tier(snapshot.x_mentions_1h, MENTION_TIERS) + tier(snapshot.x_engagement_rate, ENGAGEMENT_TIERS)
        return min(SOCIAL_MAX, score)

    score = tier(snapshot.unique_buyers, BUYER_MOMENTUM_TIERS) + tier(snapshot.tx_count_1h, TX_CADENCE_TIERS)
    return min(SOCIAL_PROXY_MAX, score)


def score_whale_share(whale_share: Optional[float]) -> int:
    if whale_share is None:
        return 0
    for ceiling, points in WHALE_SHARE_TIERS:
        if whale_share <= ceiling:
            return points
    return 0


def score_onchain(snapshot: TokenSnapshot) -> int:
    score = tier(snapshot.unique_buyers, UNIQUE_BUYER_TIERS)
    score += tier(snapshot.buyer_seller_ratio, BUYER_SELLER_TIERS)
    score += score_whale_share(snapshot.whale_share)
    return min(ONCHAIN_MAX, score)


def data_quality_penalty(snapshot: TokenSnapshot) -> float:
    """Fractional confidence reduction for missing key metrics, capped at 40%."""
    penalty = 0.0
    if not snapshot.liquidity:
        penalty += 0.1
    if not snapshot.volume_24h:
        penalty += 0.1
    if not snapshot.unique_buyers or snapshot.unique_buyers <= 1:
        penalty += 0.15
    if not snapshot.tx_count_1h:
        penalty += 0.1
    if not snapshot.age_hours:
        penalty += 0.05
    return min(MAX_DATA_QUALITY_PENALTY, penalty)


def assemble_score(snapshot: TokenSnapshot, consensus: ConsensusResult) -> ScoreBreakdown:
    """Blend the deterministic subscores with the consensus probability."""
    market = score_market(snapshot)
    social = score_social(snapshot)
    onchain = score_onchain(snapshot)
    prob = consensus.consensus.prob_enterable

    ai_bonus = min(AI_BONUS_MAX, round_half_up(prob * AI_BONUS_MAX))
    raw_final = round_half_up(0.4 * market + 0.3 * social + 0.3 * onchain + 0.15 * (prob * 100))
    # The weighted terms can nominally exceed 100
    final_score = max(0, min(FINAL_MAX, raw_final))

    confidence = consensus.confidence
    confidence *= 1 - data_quality_penalty(snapshot)
    confidence *= 1 - consensus.prob_delta
    confidence = max(0.0, min(1.0, confidence))

    logger.debug(
        "Score for %s: market=%d social=%d onchain=%d ai=%d final=%d confidence=%.3f",
        snapshot.mint, market, social, onchain, ai_bonus, final_score, confidence,
    )
    return ScoreBreakdown(
        market_score=market,
        social_score=social,
        onchain_score=onchain,
        ai_bonus=ai_bonus,
        final_score=final_score,
        confidence=confidence,
    )
