"""MetaPulse MCP Server.

FastMCP server exposing token evaluation, risk analysis, meta labelling,
rate-limit introspection and buy-criteria tuning as tools.
Run: metapulse-mcp
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from .config import Settings
from .core.decision import BuyDecisionEngine
from .core.meta import label_meta
from .core.models import BuyDecisionCriteria, Evaluation, MarketData, TokenSnapshot
from .core.ratelimit import RateLimiter
from .core.risk import analyze_risk
from .core.store import CounterStore, MemoryCounterStore
from .counters import SqlCounterStore
from .db import close_db, init_db
from .pipeline import TokenEvaluator, build_evaluator

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=False)
SCORING = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=False, openWorldHint=True)
TUNING = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=True, openWorldHint=False)


class Runtime:
    """Process-wide state: settings, the counter store, one RateLimiter and the decision engine."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.store: Optional[CounterStore] = None
        self.limiter: Optional[RateLimiter] = None
        self.engine: Optional[BuyDecisionEngine] = None
        self._evaluator: Optional[TokenEvaluator] = None
        self._uses_db = False

    async def start(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings.from_env()
        if self.settings.rate_limit_store == "sqlite":
            await init_db(self.settings.data_dir)
            self.store = SqlCounterStore()
            self._uses_db = True
            purged = await self.store.purge_expired()
            if purged:
                logger.info("Removed %d expired counter(s) left by earlier runs", purged)
        else:
            self.store = MemoryCounterStore()
        self.limiter = RateLimiter(store=self.store)
        self.engine = BuyDecisionEngine(
            BuyDecisionCriteria(max_investment_per_token=self.settings.max_investment_per_token)
        )
        self._evaluator = None
        logger.info("MetaPulse runtime started (counter store: %s)", self.settings.rate_limit_store)

    async def stop(self) -> None:
        if self._uses_db:
            await close_db()
            self._uses_db = False
        self._evaluator = None

    async def ensure_started(self) -> None:
        if self.settings is None:
            await self.start()

    @property
    def evaluator(self) -> TokenEvaluator:
        if self._evaluator is None:
            self._evaluator = build_evaluator(self.settings, limiter=self.limiter, store=self.store, engine=self.engine)
        return self._evaluator


runtime = Runtime()


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Configure logging, open the counter store and share one rate limiter across tools."""
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    await runtime.start(settings)
    try:
        yield
    finally:
        await runtime.stop()


mcp = FastMCP(
    "MetaPulse",
    instructions="Evaluate newly launched Solana tokens: dual-model AI consensus, deterministic scoring, heuristic risk analysis and sized buy/no-buy decisions.",
    lifespan=lifespan,
)


# ─── Tool 1: Evaluate ────────────────────────────────────────────────────────


@mcp.tool(annotations=SCORING)
async def evaluate_token(snapshot: dict, market: Optional[dict] = None) -> dict:
    """Full evaluation of one token: AI consensus, score breakdown, risk, meta and buy decision.

    Args:
        snapshot: Token snapshot. 'mint' is required; amounts are in SOL. Other fields:
                  name, symbol, description, price, market_cap, liquidity, volume_24h,
                  tx_count_1h, age_hours, x_mentions_1h, x_engagement_rate, unique_buyers,
                  buyer_seller_ratio, whale_share (percent), buy_count, sell_count, initial_buy_sol.
        market: Live USD market data: price_usd, liquidity_usd, volume_24h_usd, market_cap_usd,
                price_change_24h_pct, buys_24h, sells_24h. Missing fields read as zero.
    """
    await runtime.ensure_started()
    token = TokenSnapshot.model_validate(snapshot)
    market_data = MarketData.model_validate(market or {})
    return _evaluation_result(await runtime.evaluator.evaluate(token, market_data))


@mcp.tool(annotations=SCORING)
async def evaluate_pair(pair: dict, trades: Optional[list] = None) -> dict:
    """Evaluate a token straight from a DexScreener pair, optionally enriched with PumpPortal trades.

    Args:
        pair: DexScreener pair object (baseToken, priceUsd, priceNative, liquidity, volume,
              txns, fdv, marketCap, pairCreatedAt, url). USD amounts are converted to SOL.
        trades: PumpPortal trade events (txType, traderPublicKey, solAmount, marketCapSol, mint).
                Used for unique buyers, whale share, buy/sell counts and initial buy.
    """
    await runtime.ensure_started()
    return _evaluation_result(await runtime.evaluator.evaluate_pair(pair, trades or ()))


def _evaluation_result(evaluation: Evaluation) -> dict:
    token = evaluation.snapshot
    decision = evaluation.decision
    verdict = "BUY" if decision.should_buy else "PASS"
    return {
        "title": f"Evaluation: {token.symbol or token.mint}",
        **evaluation.model_dump(mode="json"),
        "summary": (
            f"{verdict} at {decision.confidence}% confidence. Score {evaluation.breakdown.final_score}/100, "
            f"risk {decision.risk_level.value}, meta {evaluation.meta.label} ({evaluation.meta.meta_score}). "
            f"Suggested size {decision.suggested_amount} SOL."
        ),
    }


# ─── Tool 2: Risk ────────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def analyze_token_risk(snapshot: dict) -> dict:
    """Heuristic risk analysis of a token. No AI calls.

    Args:
        snapshot: Token snapshot with at least 'mint'. Uses initial_buy_sol, unique_buyers,
                  buy_count, sell_count, tx_count_1h, market_cap, name and symbol.
    """
    token = TokenSnapshot.model_validate(snapshot)
    risk = analyze_risk(token)
    return {
        "title": f"Risk: {token.symbol or token.mint}",
        **risk.model_dump(mode="json"),
        "summary": f"{risk.risk_level.value} risk (safety score {risk.score}/100). "
        + (f"Flags: {'; '.join(risk.flags)}." if risk.flags else "No hard flags."),
    }


# ─── Tool 3: Meta ────────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def label_token_meta(name: str = "", symbol: str = "", description: str = "") -> dict:
    """Narrative category ("meta") of a token from its name, symbol and description.

    Args:
        name: Token name.
        symbol: Token ticker symbol.
        description: Free-text token description.
    """
    meta = label_meta(name, symbol, description)
    return {**meta.model_dump(mode="json"), "summary": f"{meta.label} ({meta.meta_score}): {meta.reason}"}


# ─── Tool 4: Rate Limits ─────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def rate_limit_status(service: str = "") -> dict:
    """Remaining quota and window reset time per external service.

    Args:
        service: A single service such as 'groq:chat'. Leave empty for all services.
    """
    await runtime.ensure_started()
    if service:
        statuses = {service: await runtime.limiter.get_status(service)}
    else:
        statuses = await runtime.limiter.get_all_statuses()

    limited = [name for name, status in statuses.items() if status.is_limited]
    return {
        "title": "Rate Limits",
        "services": {name: status.model_dump(mode="json") for name, status in statuses.items()},
        "limited": limited,
        "summary": f"{len(limited)} of {len(statuses)} service(s) currently limited"
        + (f": {', '.join(limited)}." if limited else "."),
    }


# ─── Tool 5: Provider Usage ──────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def provider_usage() -> dict:
    """Today's AI provider request and token counts, with any daily token budget."""
    await runtime.ensure_started()
    usage = await runtime.evaluator.provider_usage()
    return {
        "title": "AI Provider Usage",
        "providers": [u.model_dump(mode="json") for u in usage],
        "summary": " | ".join(f"{u.provider}: {u.requests} requests, {u.tokens} tokens" for u in usage),
    }


# ─── Tool 6-7: Buy Criteria ──────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def get_buy_criteria() -> dict:
    """Current thresholds of the buy decision engine."""
    await runtime.ensure_started()
    return {"title": "Buy Criteria", "criteria": runtime.engine.criteria.model_dump(mode="json")}


@mcp.tool(annotations=TUNING)
async def update_buy_criteria(changes: dict) -> dict:
    """Update buy decision thresholds for subsequent evaluations.

    Args:
        changes: Partial criteria, e.g. {"min_liquidity_usd": 10000, "max_slippage_pct": 3}.
                 Fields: min_confidence, min_ai_score, min_liquidity_usd, max_market_cap_usd,
                 min_volume_24h_usd, max_investment_per_token, full_size_liquidity_usd,
                 max_slippage_pct, trending_categories.
    """
    await runtime.ensure_started()
    criteria = runtime.engine.update_criteria(**changes)
    return {
        "title": "Buy Criteria",
        "criteria": criteria.model_dump(mode="json"),
        "summary": f"Updated {', '.join(sorted(changes))}." if changes else "No changes.",
    }


def main():
    """Entry point for the CLI command."""
    mcp.run()


if __name__ == "__main__":
    main()
