"""Pydantic data models, the shared business objects.

Every stage of the evaluation pipeline speaks in these types. Raw snapshot
and market payloads are coerced and clamped here, once, so that scoring,
risk and decision code can read fields directly.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RiskTier(str, Enum):
    """Risk tier reported by an AI provider."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RiskLevel(str, Enum):
    """Discrete risk level of the heuristic analyzer and the final decision."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


class LiquiditySignal(str, Enum):
    GOOD = "good"
    MEDIUM = "medium"
    LOW = "low"


class DistributionSignal(str, Enum):
    HEALTHY = "healthy"
    CONCERNING = "concerning"
    CENTRALIZED = "centralized"


class ActivitySignal(str, Enum):
    ORGANIC = "organic"
    SUSPICIOUS = "suspicious"
    BOT_DRIVEN = "bot-driven"


def _to_number(value: Any) -> Optional[float]:
    """Parse a loosely-typed numeric value, returning None when unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _non_negative(value: Any) -> Optional[float]:
    number = _to_number(value)
    if number is None:
        return None
    return max(0.0, number)


def _non_negative_int(value: Any) -> Optional[int]:
    number = _non_negative(value)
    if number is None:
        return None
    return int(number)


# ─── Inputs ──────────────────────────────────────────────────────────────────


class TokenSnapshot(BaseModel):
    """Point-in-time market and on-chain facts about one token.

    Monetary fields are denominated in the base trading asset (SOL).
    Everything except the mint is optional; missing data degrades scores
    instead of failing the evaluation.
    """

    model_config = ConfigDict(frozen=True)

    mint: str = Field(min_length=1, description="Token mint address")
    name: Optional[str] = None
    symbol: Optional[str] = None
    description: Optional[str] = None
    dex_url: Optional[str] = None

    price: Optional[float] = None
    market_cap: Optional[float] = None
    liquidity: Optional[float] = None
    volume_24h: Optional[float] = None
    tx_count_1h: Optional[int] = None
    age_hours: Optional[float] = None

    x_mentions_1h: Optional[float] = Field(None, description="Social mention velocity (mentions per hour)")
    x_engagement_rate: Optional[float] = None

    unique_buyers: Optional[int] = None
    buyer_seller_ratio: Optional[float] = None
    whale_share: Optional[float] = Field(None, description="Share held by the largest holders, in percent")
    buy_count: Optional[int] = None
    sell_count: Optional[int] = None
    initial_buy_sol: Optional[float] = Field(None, description="Creator's initial buy, in SOL")

    @field_validator(
        "price", "market_cap", "liquidity", "volume_24h", "age_hours",
        "x_mentions_1h", "x_engagement_rate", "buyer_seller_ratio", "initial_buy_sol",
        mode="before",
    )
    @classmethod
    def _coerce_amount(cls, value: Any) -> Optional[float]:
        return _non_negative(value)

    @field_validator("tx_count_1h", "unique_buyers", "buy_count", "sell_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> Optional[int]:
        return _non_negative_int(value)

    @field_validator("whale_share", mode="before")
    @classmethod
    def _coerce_share(cls, value: Any) -> Optional[float]:
        number = _non_negative(value)
        if number is None:
            return None
        return min(100.0, number)

    @field_validator("name", "symbol", "description", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class MarketData(BaseModel):
    """Live USD market view of a token's main trading pair."""

    model_config = ConfigDict(frozen=True)

    price_usd: float = 0.0
    liquidity_usd: float = 0.0
    volume_24h_usd: float = 0.0
    market_cap_usd: float = 0.0
    price_change_24h_pct: float = 0.0
    buys_24h: int = 0
    sells_24h: int = 0

    @field_validator("price_usd", "liquidity_usd", "volume_24h_usd", "market_cap_usd", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> float:
        return _non_negative(value) or 0.0

    @field_validator("price_change_24h_pct", mode="before")
    @classmethod
    def _coerce_change(cls, value: Any) -> float:
        number = _to_number(value)
        return number if number is not None else 0.0

    @field_validator("buys_24h", "sells_24h", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        return _non_negative_int(value) or 0

    @property
    def transactions_24h(self) -> int:
        return self.buys_24h + self.sells_24h


# ─── AI provider contract ────────────────────────────────────────────────────


class AiScore(BaseModel):
    """One provider's opinion on a token. Numbers and text are validated strictly."""

    prob_enterable: float = Field(ge=0.0, le=1.0, strict=True, description="Probability the token is worth entering")
    risk: RiskTier
    expected_roi_p50: float = Field(ge=0.0, strict=True)
    expected_roi_p90: float = Field(ge=0.0, strict=True)
    reasoning: str = Field(min_length=6, max_length=800, strict=True)


class ProviderScore(BaseModel):
    """Result of a single adapter call."""

    response: AiScore
    tokens_used: Optional[int] = None
    latency_ms: float = 0.0


class ModelResponse(BaseModel):
    """An AiScore tagged with the provider that produced it."""

    model: str
    response: AiScore
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tokens_used: Optional[int] = None
    latency_ms: float = 0.0
    fallback: bool = Field(False, description="True when synthesized after a provider failure")


class ConsensusResult(BaseModel):
    """Merged, conservatively-biased opinion of both providers."""

    groq: ModelResponse
    gemini: ModelResponse
    consensus: AiScore
    prob_delta: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)


# ─── Scores and analysis ─────────────────────────────────────────────────────


class ScoreBreakdown(BaseModel):
    """Deterministic subscores blended with the AI consensus."""

    market_score: int = Field(ge=0, le=40)
    social_score: int = Field(ge=0, le=30)
    onchain_score: int = Field(ge=0, le=30)
    ai_bonus: int = Field(ge=0, le=15)
    final_score: int = Field(ge=0, le=100)
    confidence: float = Field(ge=0.0, le=1.0)


class RiskSignals(BaseModel):
    liquidity: LiquiditySignal = LiquiditySignal.GOOD
    distribution: DistributionSignal = DistributionSignal.HEALTHY
    activity: ActivitySignal = ActivitySignal.ORGANIC


class RiskAnalysis(BaseModel):
    """Heuristic safety check. Lower score means riskier."""

    risk_level: RiskLevel
    score: int = Field(ge=0, le=100)
    flags: list[str] = Field(default_factory=list, description="Hard risk flags, in detection order")
    warnings: list[str] = Field(default_factory=list, description="Soft warnings, in detection order")
    signals: RiskSignals = Field(default_factory=RiskSignals)


class MetaLabel(BaseModel):
    """Narrative category a token belongs to, with a trend strength score."""

    label: str = "unknown"
    meta_score: int = Field(45, ge=0, le=100)
    reason: str = ""


# ─── Decision ────────────────────────────────────────────────────────────────


DEFAULT_TRENDING_CATEGORIES = ["ai-agents", "frogs", "gaming", "meme", "defi"]


class BuyDecisionCriteria(BaseModel):
    """Tunable thresholds of the buy decision engine."""

    min_confidence: float = Field(55.0, ge=0.0, le=100.0)
    min_ai_score: float = Field(45.0, ge=0.0, le=100.0)
    min_liquidity_usd: float = Field(8000.0, ge=0.0)
    max_market_cap_usd: float = Field(2_000_000.0, ge=0.0)
    min_volume_24h_usd: float = Field(3000.0, ge=0.0)
    max_investment_per_token: float = Field(1.0, ge=0.0, description="Position cap in the base trading asset")
    full_size_liquidity_usd: float = Field(25_000.0, gt=0.0, description="Liquidity at which positions reach full size")
    max_slippage_pct: float = Field(5.0, ge=0.0)
    trending_categories: list[str] = Field(default_factory=lambda: list(DEFAULT_TRENDING_CATEGORIES))


class BuyDecision(BaseModel):
    """Final trade recommendation."""

    should_buy: bool
    confidence: int = Field(ge=0, le=100)
    reasons: list[str]
    risk_level: RiskLevel
    suggested_amount: float = Field(ge=0.0, description="Position size in the base trading asset")
    max_price: float = Field(ge=0.0)
    stop_loss_pct: float
    take_profit_pct: float = Field(le=200.0)


class Evaluation(BaseModel):
    """Everything one pass of the pipeline produced for a token."""

    snapshot: TokenSnapshot
    consensus: ConsensusResult
    breakdown: ScoreBreakdown
    risk: RiskAnalysis
    meta: MetaLabel
    decision: BuyDecision
    evaluated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ─── Rate limiting ───────────────────────────────────────────────────────────


class RateLimitConfig(BaseModel):
    """Quota for one external service."""

    max_requests: int = Field(gt=0)
    window_ms: int = Field(gt=0)
    retry_after_ms: int = Field(0, ge=0)
    burst_limit: Optional[int] = Field(None, gt=0, description="Spreads the window into at most this many evenly spaced requests")

    @property
    def min_spacing_ms(self) -> float:
        if not self.burst_limit:
            return 0.0
        return self.window_ms / self.burst_limit


class RateLimitEntry(BaseModel):
    """Live counter state for one service."""

    count: int = 0
    reset_time: float = 0.0
    last_request: float = 0.0


class LimitCheck(BaseModel):
    allowed: bool
    retry_after_ms: Optional[float] = None
    remaining: Optional[int] = None


class RateLimitStatus(BaseModel):
    remaining: int
    reset_time: float
    is_limited: bool


class ProviderUsage(BaseModel):
    provider: str
    day: str
    requests: int = 0
    tokens: int = 0
    daily_token_budget: Optional[int] = None
