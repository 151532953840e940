"""Tests for deterministic score assembly."""

import pytest

from metapulse.core.models import TokenSnapshot
from metapulse.core.scoring import (
    age_bonus,
    assemble_score,
    data_quality_penalty,
    round_half_up,
    score_market,
    score_onchain,
    score_social,
)
from tests.conftest import make_consensus


class TestSubscores:
    def test_empty_snapshot_scores_zero_market_and_onchain(self, empty_snapshot):
        assert score_market(empty_snapshot) == 0
        assert score_onchain(empty_snapshot) == 0
        assert score_social(empty_snapshot) == 0

    def test_market_score_maxes_at_40(self):
        snapshot = TokenSnapshot(mint="m", liquidity=500, market_cap=100, volume_24h=80, tx_count_1h=250, age_hours=48)
        assert score_market(snapshot) == 40

    def test_market_tiers_are_stepped(self):
        snapshot = TokenSnapshot(mint="m", liquidity=20, market_cap=1000, volume_24h=100, tx_count_1h=12, age_hours=8)
        # liquidity 8 + vol/mcap 0.1 -> 6 + tx 4 + age 2
        assert score_market(snapshot) == 20

    def test_volume_ratio_needs_market_cap(self):
        assert score_market(TokenSnapshot(mint="m", volume_24h=1000)) == 0

    @pytest.mark.parametrize(
        "age, expected",
        [(None, 0), (0.5, 0), (1, 1), (5.9, 1), (6, 2), (12, 3), (23, 3), (24, 5), (168, 5), (169, 0)],
    )
    def test_age_sweet_spot(self, age, expected):
        assert age_bonus(age) == expected

    def test_social_uses_telemetry_when_present(self):
        snapshot = TokenSnapshot(mint="m", x_mentions_1h=60, x_engagement_rate=0.2)
        assert score_social(snapshot) == 30

    def test_social_proxy_is_capped_at_ten(self):
        snapshot = TokenSnapshot(mint="m", unique_buyers=500, tx_count_1h=500)
        assert score_social(snapshot) == 10

    def test_partial_telemetry_falls_back_to_proxies(self):
        snapshot = TokenSnapshot(mint="m", x_mentions_1h=60, unique_buyers=10, tx_count_1h=8)
        assert score_social(snapshot) == 4 + 2

    def test_onchain_inverts_whale_share(self):
        base = dict(mint="m", unique_buyers=50, buyer_seller_ratio=3.0)
        assert score_onchain(TokenSnapshot(**base, whale_share=5)) == 30
        assert score_onchain(TokenSnapshot(**base, whale_share=30)) == 26
        assert score_onchain(TokenSnapshot(**base, whale_share=51)) == 22

    def test_missing_whale_share_earns_nothing(self):
        assert score_onchain(TokenSnapshot(mint="m")) == 0
        assert score_onchain(TokenSnapshot(mint="m", whale_share=0)) == 8


class TestAssembleScore:
    def test_empty_snapshot_only_gets_ai_weight(self, empty_snapshot):
        breakdown = assemble_score(empty_snapshot, make_consensus(prob=0.5))
        assert breakdown.market_score == 0
        assert breakdown.onchain_score == 0
        # 0.15 * 50 = 7.5 rounds half up
        assert breakdown.final_score == 8
        assert breakdown.ai_bonus == 8

    def test_final_score_is_weighted_blend(self, full_snapshot):
        breakdown = assemble_score(full_snapshot, make_consensus(prob=0.8))
        expected = round_half_up(
            0.4 * breakdown.market_score
            + 0.3 * breakdown.social_score
            + 0.3 * breakdown.onchain_score
            + 0.15 * 80
        )
        assert breakdown.final_score == expected
        assert breakdown.ai_bonus == 12

    def test_final_score_stays_bounded_for_extreme_inputs(self):
        snapshot = TokenSnapshot(
            mint="m",
            liquidity=1e12,
            market_cap=1,
            volume_24h=1e12,
            tx_count_1h=10**9,
            age_hours=48,
            x_mentions_1h=1e9,
            x_engagement_rate=50,
            unique_buyers=10**9,
            buyer_seller_ratio=1e6,
            whale_share=-20,
        )
        breakdown = assemble_score(snapshot, make_consensus(prob=1.0))
        assert 0 <= breakdown.final_score <= 100
        assert breakdown.market_score == 40
        assert breakdown.social_score == 30
        assert breakdown.onchain_score == 30
        assert breakdown.ai_bonus == 15

    def test_confidence_penalized_by_missing_data_and_disagreement(self, empty_snapshot):
        breakdown = assemble_score(empty_snapshot, make_consensus(prob=0.5, delta=0.2, confidence=0.9))
        # penalty capped at 0.4, then disagreement 0.2
        assert breakdown.confidence == pytest.approx(0.9 * 0.6 * 0.8)

    def test_complete_data_keeps_consensus_confidence(self, full_snapshot):
        assert data_quality_penalty(full_snapshot) == 0
        breakdown = assemble_score(full_snapshot, make_consensus(confidence=0.85))
        assert breakdown.confidence == pytest.approx(0.85)

    def test_single_buyer_counts_as_missing(self):
        snapshot = TokenSnapshot(mint="m", liquidity=10, volume_24h=10, unique_buyers=1, tx_count_1h=5, age_hours=3)
        assert data_quality_penalty(snapshot) == pytest.approx(0.15)


def test_round_half_up():
    assert round_half_up(7.5) == 8
    assert round_half_up(8.5) == 9
    assert round_half_up(7.49) == 7
