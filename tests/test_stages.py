"""Tests for stage display names and stage/status mapping."""

import pytest

from deal_scorer.config import StageScoringConfig
from deal_scorer.schema import DealStatus
from deal_scorer.stages import (
    LOST_STAGES,
    WON_STAGES,
    snake_case_to_title,
    stage_agrees_with_status,
    stage_display_name,
    status_for_stage,
)


class TestDisplayNames:
    """Tests for stage display names."""

    @pytest.mark.parametrize("stage_id,expected", [
        ("proposal_sent", "Proposal Sent"),
        ("renewal_upsell", "Renewal / Upsell"),
        ("portfolio_mgmt", "Portfolio Management"),
        ("client_followup", "Client Follow-up"),
    ])
    def test_known(self, stage_id, expected):
        assert stage_display_name(stage_id) == expected

    def test_custom_stage_title_cased(self):
        assert stage_display_name("awaiting_board_sign_off") == "Awaiting Board Sign Off"

    @pytest.mark.parametrize("stage_id", [None, ""])
    def test_missing(self, stage_id):
        assert stage_display_name(stage_id) == "Unknown"

    def test_snake_case_to_title_skips_empty_parts(self):
        assert snake_case_to_title("double__underscore_") == "Double Underscore"
        assert snake_case_to_title("___") == "Unknown"

    def test_every_template_stage_has_a_name(self):
        for stage_id in StageScoringConfig().stage_table():
            assert "_" not in stage_display_name(stage_id)


class TestStatusForStage:
    """Tests for deriving status from stage."""

    @pytest.mark.parametrize("stage_id", ["deal_won", "contract_signed", "investment_closed", "closed"])
    def test_won(self, stage_id):
        assert status_for_stage(stage_id) == DealStatus.WON

    @pytest.mark.parametrize("stage_id", ["deal_lost", "lost", "closed_lost"])
    def test_lost(self, stage_id):
        assert status_for_stage(stage_id) == DealStatus.LOST

    @pytest.mark.parametrize("stage_id", ["lead", "negotiation", "custom", None])
    def test_active(self, stage_id):
        assert status_for_stage(stage_id) == DealStatus.ACTIVE

    def test_won_and_lost_disjoint(self):
        assert not WON_STAGES & LOST_STAGES

    @pytest.mark.parametrize("stage_id,status,expected", [
        ("deal_won", DealStatus.WON, True),
        ("deal_won", DealStatus.ACTIVE, False),
        ("deal_lost", DealStatus.LOST, True),
        ("deal_lost", DealStatus.DISQUALIFIED, True),
        ("closed_lost", DealStatus.WON, False),
        ("negotiation", DealStatus.WON, True),
        (None, DealStatus.LOST, True),
    ])
    def test_stage_agrees_with_status(self, stage_id, status, expected):
        assert stage_agrees_with_status(stage_id, status) is expected
