"""Shared fixtures and fakes for the MetaPulse test suite."""

from __future__ import annotations

import pytest

from metapulse.core.models import (
    AiScore,
    ConsensusResult,
    ModelResponse,
    ProviderScore,
    RiskTier,
    TokenSnapshot,
)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSleep:
    """Async sleep stand-in. Optionally advances a FakeClock by the slept time."""

    def __init__(self, clock: FakeClock | None = None):
        self.calls: list[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds * 1000)


class StubProvider:
    """Provider double returning a fixed score or raising a fixed error."""

    def __init__(self, name: str, score: AiScore | None = None, error: Exception | None = None):
        self.name = name
        self.score = score
        self.error = error
        self.calls = 0

    async def get_score(self, snapshot: TokenSnapshot) -> ProviderScore:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return ProviderScore(response=self.score, tokens_used=100, latency_ms=12.5)


def make_score(**overrides) -> AiScore:
    fields = {
        "prob_enterable": 0.8,
        "risk": RiskTier.LOW,
        "expected_roi_p50": 0.2,
        "expected_roi_p90": 0.5,
        "reasoning": "Healthy liquidity and steady organic buying. Distribution looks broad.",
    }
    fields.update(overrides)
    return AiScore(**fields)


def make_consensus(prob: float = 0.5, delta: float = 0.0, confidence: float = 0.9) -> ConsensusResult:
    score = make_score(prob_enterable=prob)
    return ConsensusResult(
        groq=ModelResponse(model="groq", response=score),
        gemini=ModelResponse(model="gemini", response=score),
        consensus=score,
        prob_delta=delta,
        confidence=confidence,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def full_snapshot() -> TokenSnapshot:
    return TokenSnapshot(
        mint="So1aNaMint1111111111111111111111111111111111",
        name="Pepe Agent",
        symbol="PAGENT",
        price=0.00002,
        market_cap=400.0,
        liquidity=60.0,
        volume_24h=150.0,
        tx_count_1h=60,
        age_hours=30.0,
        unique_buyers=30,
        buyer_seller_ratio=2.5,
        whale_share=15.0,
        buy_count=40,
        sell_count=12,
        initial_buy_sol=1.0,
    )


@pytest.fixture
def empty_snapshot() -> TokenSnapshot:
    return TokenSnapshot(mint="DeadMint111", liquidity=0, volume_24h=0, unique_buyers=0)
