"""Dual-provider consensus.

Both providers are asked concurrently and joined all-settled. Their opinions
are merged conservatively: disagreement pulls probability down, the riskier
tier wins, and ROI is combined with a geometric mean.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from datetime import datetime, timezone

from .clients.base import ChatProvider
from .errors import ConsensusUnavailable
from .models import AiScore, ConsensusResult, ModelResponse, RiskTier, TokenSnapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_DELTA = 0.3
BASE_CONFIDENCE = 0.6
AGREEMENT_WEIGHT = 0.3
DATA_QUALITY_WEIGHT = 0.1
MAX_REASONING_LENGTH = 800

RISK_RANK = {RiskTier.LOW: 1, RiskTier.MEDIUM: 2, RiskTier.HIGH: 3}

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def merge_probability(p_a: float, p_b: float, max_delta: float = DEFAULT_MAX_DELTA) -> float:
    """Mean when the providers agree; biased toward the lower estimate otherwise."""
    delta = abs(p_a - p_b)
    if delta > max_delta:
        low, high = min(p_a, p_b), max(p_a, p_b)
        merged = low + (high - low) * (1 - delta)
    else:
        merged = (p_a + p_b) / 2
    return max(0.0, min(1.0, merged))


def merge_risk(a: RiskTier, b: RiskTier) -> RiskTier:
    return a if RISK_RANK[a] >= RISK_RANK[b] else b


def geometric_mean(a: float, b: float) -> float:
    if a == b:
        return a
    return math.sqrt(a * b)


def _key_points(reasoning: str) -> list[str]:
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(reasoning)]
    return [s for s in sentences if len(s) > 10][:3]


def compress_reasoning(first: str, second: str) -> str:
    """Deduplicated bullet summary of both reasonings, at most 800 characters."""
    if first.strip() == second.strip():
        return first[:MAX_REASONING_LENGTH]

    themes: list[str] = []
    for point in _key_points(first) + _key_points(second):
        theme = point.lower()
        if theme not in themes:
            themes.append(theme)

    if not themes:
        # Neither side had a full sentence; keep the raw text instead
        summary = f"{first.strip()} | {second.strip()}"
    else:
        summary = "• " + " • ".join(themes[:5])

    if len(summary) > MAX_REASONING_LENGTH:
        summary = summary[:MAX_REASONING_LENGTH - 3] + "..."
    return summary


def merge_scores(a: AiScore, b: AiScore, max_delta: float = DEFAULT_MAX_DELTA) -> tuple[AiScore, float]:
    """Merge two opinions into one. Returns (consensus, prob_delta)."""
    delta = abs(a.prob_enterable - b.prob_enterable)
    consensus = AiScore(
        prob_enterable=merge_probability(a.prob_enterable, b.prob_enterable, max_delta),
        risk=merge_risk(a.risk, b.risk),
        expected_roi_p50=geometric_mean(a.expected_roi_p50, b.expected_roi_p50),
        expected_roi_p90=geometric_mean(a.expected_roi_p90, b.expected_roi_p90),
        reasoning=compress_reasoning(a.reasoning, b.reasoning),
    )
    return consensus, min(1.0, delta)


def data_completeness(snapshot: TokenSnapshot) -> float:
    """Fraction of the key snapshot metrics present and non-zero."""
    fields = (
        snapshot.market_cap,
        snapshot.liquidity,
        snapshot.volume_24h,
        snapshot.unique_buyers,
        snapshot.age_hours,
    )
    return sum(1 for value in fields if value) / len(fields)


def fallback_score(provider: str, exc: BaseException) -> AiScore:
    """Low-trust stand-in for a provider that failed."""
    reasoning = f"{provider.capitalize()} provider failed: {exc}"
    return AiScore(
        prob_enterable=0.1,
        risk=RiskTier.HIGH,
        expected_roi_p50=0.0,
        expected_roi_p90=0.0,
        reasoning=reasoning[:MAX_REASONING_LENGTH],
    )


class ConsensusRouter:
    """Asks both providers about a snapshot and merges the answers."""

    def __init__(self, groq: ChatProvider, gemini: ChatProvider, max_delta: float = DEFAULT_MAX_DELTA):
        self.groq = groq
        self.gemini = gemini
        self.max_delta = max_delta

    async def get_consensus(self, snapshot: TokenSnapshot) -> ConsensusResult:
        timestamp = datetime.now(timezone.utc)
        results = await asyncio.gather(
            self.groq.get_score(snapshot),
            self.gemini.get_score(snapshot),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        if len(failures) == len(results):
            raise ConsensusUnavailable(failures)

        groq_response, gemini_response = (
            self._to_response(provider.name, result, timestamp)
            for provider, result in zip((self.groq, self.gemini), results)
        )

        consensus, delta = merge_scores(groq_response.response, gemini_response.response, self.max_delta)
        confidence = (
            BASE_CONFIDENCE
            + (1 - delta) * AGREEMENT_WEIGHT
            + data_completeness(snapshot) * DATA_QUALITY_WEIGHT
        )
        confidence = max(0.0, min(1.0, confidence))

        logger.info(
            "Consensus for %s: prob=%.3f risk=%s delta=%.3f confidence=%.3f",
            snapshot.mint, consensus.prob_enterable, consensus.risk.value, delta, confidence,
        )
        return ConsensusResult(
            groq=groq_response,
            gemini=gemini_response,
            consensus=consensus,
            prob_delta=delta,
            confidence=confidence,
        )

    @staticmethod
    def _to_response(name: str, result, timestamp: datetime) -> ModelResponse:
        if isinstance(result, BaseException):
            logger.warning("%s provider failed, using low-confidence fallback: %s", name, result)
            return ModelResponse(
                model=name,
                response=fallback_score(name, result),
                timestamp=timestamp,
                fallback=True,
            )
        return ModelResponse(
            model=name,
            response=result.response,
            timestamp=timestamp,
            tokens_used=result.tokens_used,
            latency_ms=result.latency_ms,
        )
