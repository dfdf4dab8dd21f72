"""Tests for the deal engine facade and file loaders."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from deal_scorer.config import ScorerConfig
from deal_scorer.engine import (
    DealEngine,
    load_deals_file,
    load_targets_file,
    validate_deals_file,
)
from deal_scorer.schema import Deal, RevenueTargets, TargetPeriod


NOW = datetime(2024, 9, 11, 12, 0, tzinfo=timezone.utc)

SAMPLE_DEALS = [
    {
        "id": 1,
        "name": "Acme renewal",
        "stage": "negotiation",
        "status": "active",
        "value": "75000",
        "created_at": "2024-08-20T09:00:00Z",
    },
    {
        "id": 2,
        "name": "Globex",
        "stage": "deal_won",
        "status": "won",
        "value": 4000,
        "created_at": "2024-07-01T09:00:00Z",
        "closed_at": "2024-09-05T15:00:00Z",
    },
    {
        "id": 3,
        "name": "Initech",
        "stage": "lead",
        "status": "active",
        "value": 500,
        "created_at": "2024-03-01T09:00:00Z",
        "updated_at": "2024-09-06T10:00:00Z",
    },
    {
        "id": 4,
        "name": "Umbrella",
        "stage": "deal_lost",
        "status": "lost",
        "value": 20000,
        "lost_reason": "Other: went with spreadsheets",
        "updated_at": "2024-09-02T10:00:00Z",
    },
]


@pytest.fixture
def engine():
    return DealEngine(ScorerConfig(), clock=lambda: NOW)


@pytest.fixture
def deals_file(tmp_path):
    path = tmp_path / "deals.json"
    path.write_text(json.dumps(SAMPLE_DEALS), encoding="utf-8")
    return path


class TestLoadDealsFile:
    """Tests for reading deal snapshots."""

    def test_array(self, deals_file):
        deals = load_deals_file(str(deals_file))
        assert len(deals) == 4
        assert deals[0].id == "1"
        assert deals[0].value == Decimal("75000")

    def test_wrapped_object(self, tmp_path):
        path = tmp_path / "deals.json"
        path.write_text(json.dumps({"deals": SAMPLE_DEALS[:2]}), encoding="utf-8")
        assert [d.name for d in load_deals_file(str(path))] == ["Acme renewal", "Globex"]

    def test_single_object(self, tmp_path):
        path = tmp_path / "deal.json"
        path.write_text(json.dumps(SAMPLE_DEALS[0]), encoding="utf-8")
        assert len(load_deals_file(str(path))) == 1

    def test_extra_fields_kept(self, tmp_path):
        path = tmp_path / "deals.json"
        path.write_text(json.dumps([{"id": "x", "pipeline_template": "saas"}]), encoding="utf-8")
        deal = load_deals_file(str(path))[0]
        assert deal.model_extra == {"pipeline_template": "saas"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValueError, match="not found"):
            load_deals_file(str(tmp_path / "nope.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "deals.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_deals_file(str(path))

    def test_non_object_record(self, tmp_path):
        path = tmp_path / "deals.json"
        path.write_text(json.dumps([{"id": "a"}, "oops"]), encoding="utf-8")
        with pytest.raises(ValueError, match="#1"):
            load_deals_file(str(path))

    def test_scalar_document(self, tmp_path):
        path = tmp_path / "deals.json"
        path.write_text("42", encoding="utf-8")
        with pytest.raises(ValueError, match="Expected a list"):
            load_deals_file(str(path))


class TestValidateDealsFile:
    """Tests for deals file validation."""

    def test_valid(self, deals_file):
        is_valid, issues = validate_deals_file(str(deals_file))
        assert is_valid
        assert issues == []

    def test_reports_every_issue(self, tmp_path):
        path = tmp_path / "deals.json"
        path.write_text(json.dumps([
            {"id": "a", "stage": "lead", "status": "pending"},
            {"id": "b"},
        ]), encoding="utf-8")

        is_valid, issues = validate_deals_file(str(path))
        assert not is_valid
        assert issues == [
            "Deal a: unknown status 'pending'",
            "Deal b: missing stage",
        ]

    def test_terminal_stage_must_match_status(self, tmp_path):
        path = tmp_path / "deals.json"
        path.write_text(json.dumps([
            {"id": "a", "stage": "deal_won", "status": "active"},
            {"id": "b", "stage": "deal_lost", "status": "won"},
            {"id": "c", "stage": "deal_lost", "status": "disqualified"},
            {"id": "d", "stage": "negotiation", "status": "won"},
        ]), encoding="utf-8")

        is_valid, issues = validate_deals_file(str(path))
        assert not is_valid
        assert issues == [
            "Deal a: stage 'deal_won' implies status 'won' but status is 'active'",
            "Deal b: stage 'deal_lost' implies status 'lost' but status is 'won'",
        ]

    def test_unreadable_file(self, tmp_path):
        is_valid, issues = validate_deals_file(str(tmp_path / "missing.json"))
        assert not is_valid
        assert len(issues) == 1


class TestLoadTargetsFile:
    """Tests for reading revenue targets."""

    def test_yaml(self, tmp_path):
        path = tmp_path / "targets.yaml"
        path.write_text("annual_target: 120000\nmonthly_target: '$10,000'\n", encoding="utf-8")

        targets = load_targets_file(str(path))
        assert targets.annual_target == Decimal("120000")
        assert targets.quarterly_target is None
        assert targets.monthly_target == Decimal("10000")

    def test_empty(self, tmp_path):
        path = tmp_path / "targets.yaml"
        path.write_text("", encoding="utf-8")
        assert not load_targets_file(str(path)).has_any()

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "targets.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            load_targets_file(str(path))


class TestDealEngine:
    """Tests for the batch facade."""

    def test_score_pipeline_sorted(self, engine, deals_file):
        scored = engine.score_pipeline(load_deals_file(str(deals_file)))

        assert [s.deal_id for s in scored] == ["2", "1", "3", "4"]
        # won -10 for age, negotiation +5 for value, stale lead -20, lost +3 for value
        assert [s.score for s in scored] == [90, 75, 10, 3]

    def test_score_pipeline_explicit_now(self, engine):
        deal = Deal(id="x", stage="lead", created_at=NOW)
        later = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert engine.score_pipeline([deal], now=later)[0].breakdown.age_modifier == -20

    def test_project_targets_counts_only_won(self, engine, deals_file):
        targets = RevenueTargets(monthly_target=10000, quarterly_target=0)
        progress = engine.project_targets(targets, load_deals_file(str(deals_file)))

        assert list(progress) == [TargetPeriod.MONTHLY]
        monthly = progress[TargetPeriod.MONTHLY]
        assert monthly.achieved == Decimal("4000")
        assert monthly.deal_count == 1

    def test_audit_outcomes(self, engine):
        deals = [
            Deal(id="ok", status="lost", outcome_reason_category="budget"),
            Deal(id="legacy", status="lost", lost_reason="Other: went with spreadsheets"),
            Deal(id="won", status="won", outcome_reason_category="timing"),
            Deal(id="fine", status="active"),
        ]
        audits = engine.audit_outcomes(deals)

        assert [a.deal_id for a in audits] == ["legacy", "won"]
        legacy = audits[0]
        assert legacy.errors == ["lost deals require an outcome reason category"]
        assert legacy.unified.outcome_reason_category == "other"
        assert legacy.unified.outcome_notes == "went with spreadsheets"
