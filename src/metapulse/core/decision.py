"""Buy decision engine.

Combines the assembled score, the heuristic risk analysis, the meta label and
live market data into one weighted confidence. A buy is recommended only when
that confidence reaches the threshold AND the basic filters pass.
"""

from __future__ import annotations

import logging
from typing import Optional

from .models import (
    BuyDecision,
    BuyDecisionCriteria,
    MarketData,
    MetaLabel,
    RiskAnalysis,
    RiskLevel,
    ScoreBreakdown,
)
from .scoring import round_half_up

logger = logging.getLogger(__name__)

# Integer percent weights; the weighted sum is divided by 100
AI_WEIGHT = 40
MARKET_WEIGHT = 30
RISK_WEIGHT = 20
META_WEIGHT = 10

# Substring of a risk flag or warning -> risk component deduction
RISK_FLAG_PENALTIES = [
    ("very low initial buy", 20),
    ("single buyer", 25),
    ("low liquidity", 15),
]


def _usd_k(value: float) -> str:
    return f"${value / 1000:.1f}K"


class BuyDecisionEngine:
    """Turns one evaluated token into a sized, bounded trade recommendation."""

    def __init__(self, criteria: Optional[BuyDecisionCriteria] = None):
        self._criteria = criteria or BuyDecisionCriteria()

    @property
    def criteria(self) -> BuyDecisionCriteria:
        return self._criteria.model_copy(deep=True)

    def update_criteria(self, **changes) -> BuyDecisionCriteria:
        """Apply a partial update. The merged criteria are validated before use."""
        unknown = set(changes) - set(BuyDecisionCriteria.model_fields)
        if unknown:
            raise ValueError(f"Unknown buy criteria: {', '.join(sorted(unknown))}")
        self._criteria = BuyDecisionCriteria.model_validate({**self._criteria.model_dump(), **changes})
        logger.info("Buy criteria updated: %s", changes)
        return self.criteria

    # ─── Components ──────────────────────────────────────────────────────────

    def ai_component(self, breakdown: ScoreBreakdown, reasons: list[str]) -> int:
        total = breakdown.final_score
        if total >= 85:
            reasons.append(f"Exceptional AI score: {total}/100")
            return 95
        if total >= 75:
            reasons.append(f"High AI score: {total}/100")
            return 80
        if total >= 65:
            reasons.append(f"Good AI score: {total}/100")
            return 65
        if total >= 50:
            reasons.append(f"Decent AI score: {total}/100")
            return 55
        if total >= 40:
            reasons.append(f"Fair AI score: {total}/100")
            return 45
        reasons.append(f"Low AI score: {total}/100")
        return 25

    def market_component(self, market: MarketData, reasons: list[str]) -> int:
        liquidity = market.liquidity_usd
        if liquidity >= 50_000:
            reasons.append(f"Strong liquidity: {_usd_k(liquidity)}")
            score = 30
        elif liquidity >= 20_000:
            reasons.append(f"Good liquidity: {_usd_k(liquidity)}")
            score = 20
        elif liquidity >= 10_000:
            reasons.append(f"Adequate liquidity: {_usd_k(liquidity)}")
            score = 10
        else:
            reasons.append(f"Low liquidity: {_usd_k(liquidity)}")
            return 20

        volume = market.volume_24h_usd
        if volume >= 50_000:
            reasons.append(f"High volume: {_usd_k(volume)}")
            score += 25
        elif volume >= 20_000:
            reasons.append(f"Good volume: {_usd_k(volume)}")
            score += 15
        elif volume >= 5_000:
            reasons.append(f"Moderate volume: {_usd_k(volume)}")
            score += 10

        change = market.price_change_24h_pct
        if change > 20:
            reasons.append(f"Strong momentum: +{change:.1f}%")
            score += 20
        elif change > 10:
            reasons.append(f"Good momentum: +{change:.1f}%")
            score += 15
        elif change > 0:
            reasons.append(f"Positive trend: +{change:.1f}%")
            score += 10

        market_cap = market.market_cap_usd
        if market_cap < 100_000:
            reasons.append(f"Micro cap potential: {_usd_k(market_cap)}")
            score += 15
        elif market_cap < 500_000:
            reasons.append(f"Small cap: {_usd_k(market_cap)}")
            score += 10

        return min(100, score)

    def risk_component(self, risk: RiskAnalysis, market: MarketData, reasons: list[str]) -> int:
        score = 100
        for flag in risk.flags + risk.warnings:
            lowered = flag.lower()
            for needle, penalty in RISK_FLAG_PENALTIES:
                if needle in lowered:
                    reasons.append(f"Risk: {flag}")
                    score -= penalty
                    break

        transactions = market.transactions_24h
        if transactions < 20:
            reasons.append(f"Low activity: {transactions} transactions")
            score -= 20
        elif transactions >= 100:
            reasons.append(f"Good activity: {transactions} transactions")
            score += 10

        if market.liquidity_usd < 5_000:
            reasons.append(f"Liquidity risk: {_usd_k(market.liquidity_usd)}")
            score -= 30

        return max(0, score)

    def meta_component(self, meta: MetaLabel, reasons: list[str]) -> int:
        trending = meta.label in self._criteria.trending_categories
        if trending and meta.meta_score >= 70:
            reasons.append(f"Trending {meta.label} meta with {meta.meta_score} score")
            return 90
        if trending:
            reasons.append(f"{meta.label} meta trend")
            return 70
        if meta.meta_score >= 80:
            reasons.append(f"High meta score: {meta.meta_score}")
            return 60
        reasons.append(f"Meta: {meta.label} ({meta.meta_score})")
        return 40

    # ─── Gates and sizing ────────────────────────────────────────────────────

    def passes_basic_filters(self, breakdown: ScoreBreakdown, market: MarketData) -> bool:
        c = self._criteria
        return (
            breakdown.final_score >= c.min_ai_score
            and market.liquidity_usd >= c.min_liquidity_usd
            and market.market_cap_usd <= c.max_market_cap_usd
            and market.volume_24h_usd >= c.min_volume_24h_usd
        )

    def should_buy(self, confidence: float, breakdown: ScoreBreakdown, market: MarketData) -> bool:
        """Both the confidence threshold and the basic filters must pass."""
        return confidence >= self._criteria.min_confidence and self.passes_basic_filters(breakdown, market)

    def risk_level(self, risk: RiskAnalysis, market: MarketData) -> RiskLevel:
        if risk.risk_level == RiskLevel.EXTREME:
            return RiskLevel.EXTREME
        flags = len(risk.flags)
        liquidity = market.liquidity_usd
        transactions = market.transactions_24h
        if flags >= 3 or liquidity < 10_000 or transactions < 20:
            return RiskLevel.HIGH
        if flags >= 1 or liquidity < 25_000 or transactions < 50:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def position_size(self, confidence: float, market: MarketData) -> float:
        c = self._criteria
        liquidity_factor = min(1.0, market.liquidity_usd / c.full_size_liquidity_usd)
        amount = c.max_investment_per_token * (confidence / 100) * liquidity_factor
        return round_half_up(amount * 100) / 100

    def max_price(self, market: MarketData) -> float:
        return market.price_usd * (1 + self._criteria.max_slippage_pct / 100)

    @staticmethod
    def stop_loss(confidence: float) -> float:
        if confidence >= 85:
            return 15.0
        if confidence >= 75:
            return 20.0
        return 25.0

    @staticmethod
    def take_profit(confidence: float, meta_score: int) -> float:
        take_profit = 50.0
        if confidence >= 85:
            take_profit += 50
        if meta_score >= 80:
            take_profit += 25
        return min(200.0, take_profit)

    # ─── Decision ────────────────────────────────────────────────────────────

    def weighted_confidence(
        self,
        breakdown: ScoreBreakdown,
        risk: RiskAnalysis,
        meta: MetaLabel,
        market: MarketData,
        reasons: Optional[list[str]] = None,
    ) -> float:
        reasons = reasons if reasons is not None else []
        weighted = (
            AI_WEIGHT * self.ai_component(breakdown, reasons)
            + MARKET_WEIGHT * self.market_component(market, reasons)
            + RISK_WEIGHT * self.risk_component(risk, market, reasons)
            + META_WEIGHT * self.meta_component(meta, reasons)
        )
        return weighted / 100

    def decide(
        self,
        breakdown: ScoreBreakdown,
        risk: RiskAnalysis,
        meta: MetaLabel,
        market: MarketData,
    ) -> BuyDecision:
        reasons: list[str] = []
        confidence = self.weighted_confidence(breakdown, risk, meta, market, reasons)
        buy = self.should_buy(confidence, breakdown, market)

        if buy:
            verdict = f"Strong buy signal with {confidence:.1f}% confidence"
        elif confidence >= self._criteria.min_confidence:
            verdict = f"No buy signal - basic filters failed at {confidence:.1f}% confidence"
        else:
            verdict = f"No buy signal - confidence only {confidence:.1f}%"
        reasons.insert(0, verdict)

        decision = BuyDecision(
            should_buy=buy,
            confidence=max(0, min(100, round_half_up(confidence))),
            reasons=reasons,
            risk_level=self.risk_level(risk, market),
            suggested_amount=self.position_size(confidence, market),
            max_price=self.max_price(market),
            stop_loss_pct=self.stop_loss(confidence),
            take_profit_pct=self.take_profit(confidence, meta.meta_score),
        )
        logger.info(
            "Decision: buy=%s confidence=%.1f risk=%s amount=%.2f",
            decision.should_buy, confidence, decision.risk_level.value, decision.suggested_amount,
        )
        return decision
