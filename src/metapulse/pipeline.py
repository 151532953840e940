"""Token evaluation pipeline.

Wires the rate limiter, both AI clients, the consensus router and the decision
engine together, and runs one evaluation per token:

    consensus ──┐
                ├─> score ──┐
    risk ───────┘           ├─> decision
    meta ───────────────────┘
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Iterable, Optional

import httpx

from .config import Settings
from .core.clients.gemini import GeminiProvider
from .core.clients.groq import GroqProvider
from .core.consensus import ConsensusRouter
from .core.decision import BuyDecisionEngine
from .core.meta import label_meta
from .core.models import BuyDecisionCriteria, Evaluation, MarketData, ProviderUsage, TokenSnapshot
from .core.parsers import market_from_pair, snapshot_from_pair
from .core.ratelimit import RateLimiter
from .core.risk import analyze_risk
from .core.scoring import assemble_score
from .core.store import CounterStore, MemoryCounterStore

logger = logging.getLogger(__name__)


class TokenEvaluator:
    """Evaluates token snapshots independently of one another."""

    def __init__(self, router: ConsensusRouter, engine: Optional[BuyDecisionEngine] = None):
        self.router = router
        self.engine = engine or BuyDecisionEngine()

    async def evaluate(self, snapshot: TokenSnapshot, market: Optional[MarketData] = None) -> Evaluation:
        """Run one token through consensus, scoring, risk, meta labelling and the decision.

        Raises ConsensusUnavailable when both AI providers fail.
        """
        market = market or MarketData()
        consensus_task = asyncio.create_task(self.router.get_consensus(snapshot))
        risk = analyze_risk(snapshot)
        meta = label_meta(snapshot.name, snapshot.symbol, snapshot.description)
        consensus = await consensus_task

        breakdown = assemble_score(snapshot, consensus)
        decision = self.engine.decide(breakdown, risk, meta, market)
        logger.info(
            "Evaluated %s (%s): score=%d risk=%s buy=%s",
            snapshot.mint, snapshot.symbol or "?", breakdown.final_score, risk.risk_level.value, decision.should_buy,
        )
        return Evaluation(
            snapshot=snapshot,
            consensus=consensus,
            breakdown=breakdown,
            risk=risk,
            meta=meta,
            decision=decision,
        )

    async def evaluate_pair(
        self,
        pair: Optional[dict],
        trades: Iterable[dict] = (),
        now: Optional[datetime] = None,
    ) -> Evaluation:
        """Evaluate a DexScreener pair, enriched with PumpPortal trade events when given.

        Raises ValueError when neither the pair nor the trades carry a mint address.
        """
        snapshot = snapshot_from_pair(pair, trades, now=now)
        return await self.evaluate(snapshot, market_from_pair(pair))

    async def evaluate_many(
        self,
        items: Iterable[tuple[TokenSnapshot, Optional[MarketData]]],
    ) -> list[Evaluation]:
        """Evaluate concurrently. Failed tokens are logged and left out of the result."""
        items = list(items)
        results = await asyncio.gather(
            *(self.evaluate(snapshot, market) for snapshot, market in items),
            return_exceptions=True,
        )
        evaluations = []
        for (snapshot, _), result in zip(items, results):
            if isinstance(result, Exception):
                logger.error("Evaluation failed for %s: %s", snapshot.mint, result)
                continue
            if isinstance(result, BaseException):
                raise result
            evaluations.append(result)
        return evaluations

    async def provider_usage(self) -> list[ProviderUsage]:
        return [await self.router.groq.usage(), await self.router.gemini.usage()]


def build_evaluator(
    settings: Settings,
    limiter: Optional[RateLimiter] = None,
    store: Optional[CounterStore] = None,
    engine: Optional[BuyDecisionEngine] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> TokenEvaluator:
    """Build the evaluator with one RateLimiter shared by both AI clients."""
    settings.require_api_keys()
    store = store or MemoryCounterStore()
    limiter = limiter or RateLimiter(store=store)
    timeout = httpx.Timeout(settings.provider_timeout_seconds, connect=settings.provider_connect_timeout_seconds)

    common = dict(
        limiter=limiter,
        store=store,
        timeout=timeout,
        client=client,
        max_retries=settings.provider_max_retries,
        backoff_ms=settings.provider_backoff_ms,
    )
    groq = GroqProvider(
        settings.groq_api_key,
        settings.groq_model,
        daily_token_budget=settings.groq_daily_token_budget,
        **common,
    )
    gemini = GeminiProvider(
        settings.gemini_api_key,
        settings.gemini_model,
        daily_token_budget=settings.gemini_daily_token_budget,
        **common,
    )
    router = ConsensusRouter(groq, gemini, max_delta=settings.consensus_max_delta)

    if engine is None:
        engine = BuyDecisionEngine(BuyDecisionCriteria(max_investment_per_token=settings.max_investment_per_token))
    return TokenEvaluator(router, engine)
