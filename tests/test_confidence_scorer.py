"""Tests for the confidence scorer."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from deal_scorer.config import ScorerConfig, StageScoringConfig
from deal_scorer.schema import Deal
from deal_scorer.scorer import ConfidenceScorer, pick_created_date


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_deal(stage="lead", days_old=0, value=None, **extra) -> Deal:
    return Deal(
        id="deal-1",
        stage=stage,
        created_at=NOW - timedelta(days=days_old),
        value=value,
        **extra,
    )


@pytest.fixture
def scorer():
    return ConfidenceScorer(ScorerConfig(), clock=lambda: NOW)


class TestStageScore:
    """Tests for the stage base score."""

    def test_known_stage(self, scorer):
        result = scorer.score(make_deal(stage="proposal_sent"))
        assert result.stage_score == 60
        assert result.known_stage is True
        assert result.stage_reason == 'Deal is in "Proposal Sent" stage'

    def test_unknown_stage_uses_default(self, scorer):
        result = scorer.score(make_deal(stage="mystery_stage"))
        assert result.stage_score == 30
        assert result.known_stage is False
        assert "default score applied" in result.stage_reason
        assert "Mystery Stage" in result.stage_reason

    def test_missing_stage_uses_default(self, scorer):
        result = scorer.score(Deal(id="x", created_at=NOW))
        assert result.stage_score == 30
        assert result.known_stage is False

    def test_mapped_zero_score_is_kept(self, scorer):
        """A lost stage scores 0, not the unmapped default."""
        result = scorer.score(make_deal(stage="deal_lost"))
        assert result.stage_score == 0
        assert result.known_stage is True

    @pytest.mark.parametrize("stage,expected", [
        ("lead", 30),
        ("lead_captured", 25),
        ("lead_generation", 25),
        ("deal_sourced", 20),
        ("property_showing", 50),
        ("lead_identified", 25),
        ("prospecting", 20),
        ("deal_won", 100),
        ("investment_closed", 100),
    ])
    def test_every_template_is_covered(self, scorer, stage, expected):
        assert scorer.score(make_deal(stage=stage)).stage_score == expected

    def test_custom_stage_table(self):
        config = ScorerConfig(stage_scoring=StageScoringConfig(
            templates={"custom": {"alpha": 10, "beta": 90}},
        ))
        scorer = ConfidenceScorer(config, clock=lambda: NOW)

        assert scorer.score(make_deal(stage="beta")).stage_score == 90
        # Stages from the built-in tables are unknown once the table is swapped
        assert scorer.score(make_deal(stage="lead")).stage_score == 30


class TestAgeModifier:
    """Tests for the age penalty tiers."""

    @pytest.mark.parametrize("days_old,expected", [
        (0, 0),
        (30, 0),
        (31, -5),
        (60, -5),
        (61, -10),
        (90, -10),
        (91, -20),
        (400, -20),
    ])
    def test_tier_boundaries(self, scorer, days_old, expected):
        result = scorer.score(make_deal(days_old=days_old))
        assert result.days_old == days_old
        assert result.age_modifier == expected

    def test_partial_days_are_floored(self, scorer):
        deal = Deal(stage="lead", created_at=NOW - timedelta(days=30, hours=23))
        result = scorer.score(deal)
        assert result.days_old == 30
        assert result.age_modifier == 0

    def test_modifier_never_improves_with_age(self, scorer):
        modifiers = [scorer.score(make_deal(days_old=d)).age_modifier for d in range(0, 200)]
        assert all(later <= earlier for earlier, later in zip(modifiers, modifiers[1:]))

    def test_reason_restates_days_and_tier(self, scorer):
        assert scorer.score(make_deal(days_old=95)).age_reason == (
            "Deal is 95 days old - significant age penalty applied"
        )
        assert scorer.score(make_deal(days_old=45)).age_reason == (
            "Deal is 45 days old - minor age penalty applied"
        )
        assert scorer.score(make_deal(days_old=3)).age_reason == (
            "Deal is 3 days old - no age penalty applied"
        )

    def test_missing_date_means_no_penalty(self, scorer):
        result = scorer.score(Deal(stage="lead"))
        assert result.days_old is None
        assert result.age_modifier == 0
        assert result.age_reason == "Deal age unknown - no age penalty applied"

    def test_unparseable_date_means_no_penalty(self, scorer):
        result = scorer.score(Deal(stage="lead", created_at="not a date"))
        assert result.days_old is None
        assert result.age_modifier == 0

    def test_legacy_created_field_preferred(self, scorer):
        deal = Deal(
            stage="lead",
            created=NOW - timedelta(days=70),
            created_at=NOW - timedelta(days=5),
        )
        assert pick_created_date(deal) == deal.created
        assert scorer.score(deal).age_modifier == -10

    def test_naive_timestamp_treated_as_utc(self, scorer):
        deal = Deal(stage="lead", created_at="2024-03-01T12:00:00")
        assert scorer.score(deal).days_old == 106

    def test_unix_epoch_timestamp(self, scorer):
        # 2024-03-01T12:00:00Z
        deal = Deal(stage="lead", created_at=1709294400)
        assert deal.created_at == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert scorer.score(deal).days_old == 106

    @pytest.mark.parametrize("text", [
        "2024-03-01T12:00:00+00",
        "2024-03-01T11:59:59.250+00",
        "2024-03-01T14:00:00+02",
        "2024-03-01T12:00:00Z",
        "2024-03-01T12:00:00+00:00",
    ])
    def test_offset_forms(self, scorer, text):
        deal = Deal(stage="lead", created_at=text)
        assert deal.created_at is not None
        assert scorer.score(deal).days_old == 106

    def test_bare_date(self, scorer):
        assert scorer.score(Deal(stage="lead", created_at="2024-03-01")).days_old == 106

    @pytest.mark.parametrize("value", ["", "   ", "not a date", "2024-13-45", [1, 2]])
    def test_malformed_timestamps_become_none(self, value):
        assert Deal(created_at=value).created_at is None

    def test_future_creation_date_clamps_to_zero(self, scorer):
        result = scorer.score(make_deal(days_old=-5))
        assert result.days_old == 0
        assert result.age_modifier == 0


class TestValueModifier:
    """Tests for the value bonus tiers."""

    @pytest.mark.parametrize("value,expected", [
        (None, 0),
        (0, 0),
        (10000, 0),
        ("10000.01", 3),
        (50000, 3),
        (50001, 5),
        (1_000_000, 5),
    ])
    def test_tier_boundaries(self, scorer, value, expected):
        assert scorer.score(make_deal(value=value)).value_modifier == expected

    def test_non_numeric_value_treated_as_zero(self, scorer):
        result = scorer.score(make_deal(value="lots"))
        assert result.value_modifier == 0
        assert result.value_reason == "Deal value $0 - standard scoring"

    def test_formatted_value_string_is_parsed(self, scorer):
        assert scorer.score(make_deal(value="$75,000")).value_modifier == 5

    def test_reasons(self, scorer):
        assert scorer.score(make_deal(value=75000)).value_reason == (
            "High-value deal ($75,000) - bonus applied"
        )
        assert scorer.score(make_deal(value=Decimal("12500.50"))).value_reason == (
            "Mid-value deal ($12,500.50) - bonus applied"
        )


class TestFinalScore:
    """Tests for combining and clamping."""

    def test_won_deal_clamped_at_100(self, scorer):
        result = scorer.score(make_deal(stage="deal_won", days_old=10, value=75000))
        assert result.stage_score == 100
        assert result.age_modifier == 0
        assert result.value_modifier == 5
        assert result.final_score == 100

    def test_old_small_lead(self, scorer):
        result = scorer.score(make_deal(stage="lead", days_old=95, value=5000))
        assert (result.stage_score, result.age_modifier, result.value_modifier) == (30, -20, 0)
        assert result.final_score == 10

    def test_lost_deal_clamped_at_zero(self, scorer):
        result = scorer.score(make_deal(stage="deal_lost", days_old=120))
        assert result.final_score == 0

    def test_always_clamped_over_grid(self, scorer):
        stages = list(scorer.stage_scores) + ["unknown_stage", None]
        for stage in stages:
            for days_old in (0, 31, 61, 91, 1000):
                for value in (None, 0, 10001, 50001, 10 ** 12):
                    result = scorer.score(make_deal(stage=stage, days_old=days_old, value=value))
                    expected = max(0, min(100, result.stage_score + result.age_modifier + result.value_modifier))
                    assert 0 <= result.final_score <= 100
                    assert result.final_score == expected


class TestClockAndBatch:
    """Tests for clock injection and batch scoring."""

    def test_explicit_now_overrides_clock(self, scorer):
        deal = make_deal(days_old=0)
        later = NOW + timedelta(days=100)
        assert scorer.score(deal, now=later).age_modifier == -20

    def test_score_many_preserves_order(self, scorer):
        deals = [
            make_deal(stage="lead"),
            make_deal(stage="deal_won"),
            make_deal(stage="negotiation"),
        ]
        results = scorer.score_many(deals)
        assert [r.stage for r in results] == ["lead", "deal_won", "negotiation"]

    def test_scoring_does_not_mutate_deal(self, scorer):
        deal = make_deal(stage="lead", days_old=95, value=5000)
        before = deal.model_dump()
        scorer.score(deal)
        assert deal.model_dump() == before
