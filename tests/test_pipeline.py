"""Tests for the evaluation pipeline wiring."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from metapulse.config import Settings
from metapulse.core.consensus import ConsensusRouter
from metapulse.core.errors import ProviderError
from metapulse.core.models import MarketData, ProviderUsage, RateLimitConfig, RiskLevel, TokenSnapshot
from metapulse.core.ratelimit import RateLimiter
from metapulse.core.store import MemoryCounterStore
from metapulse.pipeline import TokenEvaluator, build_evaluator
from tests.conftest import RecordingSleep, StubProvider, make_score

SETTINGS = Settings(groq_api_key="gsk-test", gemini_api_key="AIza-test")

MARKET = MarketData(
    price_usd=0.0004,
    liquidity_usd=30_000,
    volume_24h_usd=25_000,
    market_cap_usd=80_000,
    price_change_24h_pct=12,
    buys_24h=90,
    sells_24h=30,
)


class FailingForMint(StubProvider):
    def __init__(self, name, score, bad_mint):
        super().__init__(name, score)
        self.bad_mint = bad_mint

    async def get_score(self, snapshot):
        if snapshot.mint == self.bad_mint:
            self.calls += 1
            raise ProviderError(self.name, "upstream down")
        return await super().get_score(snapshot)


def _permissive_limiter(store):
    configs = {
        "groq:chat": RateLimitConfig(max_requests=100, window_ms=60_000),
        "gemini:chat": RateLimitConfig(max_requests=100, window_ms=60_000),
    }
    return RateLimiter(configs=configs, store=store, sleep=RecordingSleep())


class TestTokenEvaluator:
    @pytest.mark.asyncio
    async def test_evaluate_produces_full_record(self, full_snapshot):
        score = make_score(prob_enterable=0.8)
        evaluator = TokenEvaluator(ConsensusRouter(StubProvider("groq", score), StubProvider("gemini", score)))

        evaluation = await evaluator.evaluate(full_snapshot, MARKET)

        assert evaluation.snapshot == full_snapshot
        assert evaluation.consensus.consensus.prob_enterable == pytest.approx(0.8)
        assert evaluation.meta.label == "ai-agents"
        assert evaluation.risk.risk_level == RiskLevel.LOW
        assert evaluation.decision.reasons[0].startswith(("Strong buy signal", "No buy signal"))
        assert 0 <= evaluation.breakdown.final_score <= 100

    @pytest.mark.asyncio
    async def test_missing_market_reads_as_empty(self, full_snapshot):
        score = make_score()
        evaluator = TokenEvaluator(ConsensusRouter(StubProvider("groq", score), StubProvider("gemini", score)))
        evaluation = await evaluator.evaluate(full_snapshot)
        assert not evaluation.decision.should_buy
        assert evaluation.decision.suggested_amount == 0

    @pytest.mark.asyncio
    async def test_evaluate_pair_builds_snapshot_from_pair_and_trades(self):
        score = make_score()
        router = ConsensusRouter(StubProvider("groq", score), StubProvider("gemini", score))
        pair = {
            "baseToken": {"address": "FrogMint111", "name": "Frog King", "symbol": "FROGK"},
            "priceUsd": "0.002",
            "priceNative": "0.00001",
            "liquidity": {"usd": 12_000},
            "volume": {"h24": 30_000},
            "txns": {"h24": {"buys": 300, "sells": 120}},
        }
        trades = [
            {"txType": "buy", "mint": "FrogMint111", "traderPublicKey": "alice", "solAmount": 2.0},
            {"txType": "buy", "mint": "FrogMint111", "traderPublicKey": "bob", "solAmount": 1.0},
        ]

        evaluation = await TokenEvaluator(router).evaluate_pair(pair, trades)

        assert evaluation.snapshot.mint == "FrogMint111"
        assert evaluation.snapshot.liquidity == pytest.approx(60.0)
        assert evaluation.snapshot.unique_buyers == 2
        assert evaluation.meta.label == "frogs"
        assert router.groq.calls == 1

    @pytest.mark.asyncio
    async def test_evaluate_pair_without_mint_skips_providers(self):
        router = ConsensusRouter(StubProvider("groq", make_score()), StubProvider("gemini", make_score()))
        with pytest.raises(ValueError, match="mint"):
            await TokenEvaluator(router).evaluate_pair({"priceUsd": "1"})
        assert router.groq.calls == 0

    @pytest.mark.asyncio
    async def test_evaluate_many_skips_failed_tokens(self, full_snapshot):
        score = make_score()
        router = ConsensusRouter(
            FailingForMint("groq", score, "BadMint111"),
            FailingForMint("gemini", score, "BadMint111"),
        )
        evaluator = TokenEvaluator(router)
        bad = TokenSnapshot(mint="BadMint111")

        evaluations = await evaluator.evaluate_many([(full_snapshot, MARKET), (bad, None)])

        assert [e.snapshot.mint for e in evaluations] == [full_snapshot.mint]
        assert router.groq.calls == 2

    @pytest.mark.asyncio
    async def test_provider_usage_reports_both_clients(self):
        groq = StubProvider("groq")
        gemini = StubProvider("gemini")
        groq.usage = AsyncMock(return_value=ProviderUsage(provider="groq", day="2026-03-01", requests=4, tokens=400))
        gemini.usage = AsyncMock(return_value=ProviderUsage(provider="gemini", day="2026-03-01", requests=4, tokens=360))

        usage = await TokenEvaluator(ConsensusRouter(groq, gemini)).provider_usage()

        assert [u.provider for u in usage] == ["groq", "gemini"]
        groq.usage.assert_awaited_once()


class TestBuildEvaluator:
    def test_both_clients_share_one_limiter(self):
        limiter = RateLimiter()
        evaluator = build_evaluator(SETTINGS, limiter=limiter)
        assert evaluator.router.groq._limiter is limiter
        assert evaluator.router.gemini._limiter is limiter
        assert evaluator.router.max_delta == SETTINGS.consensus_max_delta

    def test_missing_key_is_a_configuration_error(self):
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            build_evaluator(Settings(groq_api_key="gsk-test"))

    def test_position_cap_comes_from_settings(self):
        settings = Settings(groq_api_key="g", gemini_api_key="k", max_investment_per_token=0.25)
        assert build_evaluator(settings).engine.criteria.max_investment_per_token == 0.25

    @pytest.mark.asyncio
    async def test_end_to_end_over_mock_transport(self, full_snapshot):
        reply = {
            "prob_enterable": 0.7,
            "risk": "MEDIUM",
            "expected_roi_p50": 0.4,
            "expected_roi_p90": 1.5,
            "reasoning": "Broad distribution and rising volume. Liquidity is adequate for entry.",
        }
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            if request.url.host == "api.groq.com":
                body = {"choices": [{"message": {"content": json.dumps(reply)}}], "usage": {"total_tokens": 210}}
            else:
                body = {
                    "candidates": [{"content": {"parts": [{"text": json.dumps(reply)}]}}],
                    "usageMetadata": {"totalTokenCount": 180},
                }
            return httpx.Response(200, json=body)

        store = MemoryCounterStore()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            evaluator = build_evaluator(SETTINGS, limiter=_permissive_limiter(store), store=store, client=client)
            evaluation = await evaluator.evaluate(full_snapshot, MARKET)
            usage = await evaluator.provider_usage()

        assert sorted(hosts) == ["api.groq.com", "generativelanguage.googleapis.com"]
        assert evaluation.consensus.consensus == evaluation.consensus.groq.response
        assert evaluation.consensus.prob_delta == 0
        assert not evaluation.consensus.groq.fallback
        assert {u.provider: u.tokens for u in usage} == {"groq": 210, "gemini": 180}
