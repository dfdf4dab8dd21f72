"""Confidence Scorer.

Maps a single deal's stage, age and value into a 0-100 confidence score
with a human-readable rationale for each component.

Scoring never raises for malformed deals: unknown stages, missing dates
and missing values all degrade to documented defaults.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from .clock import Clock, as_utc, resolve_now, utc_now
from .config import ScorerConfig, get_config
from .schema import ConfidenceBreakdown, Deal
from .stages import stage_display_name

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def pick_created_date(deal: Deal) -> Optional[datetime]:
    """Creation timestamp of a deal: `created`, then `created_at`."""
    return deal.created or deal.created_at


def format_amount(value: Decimal) -> str:
    """Format a currency amount for rationale text."""
    if value == value.to_integral_value():
        return f"${value:,.0f}"
    return f"${value:,.2f}"


def clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


class ConfidenceScorer:
    """Scores deals by stage, age and value.

    Scoring principles:
    - Stage sets the base score from the configured template tables
    - Unmapped stages get a deliberately low default, not the midpoint
    - Ageing deals are penalised in non-overlapping tiers
    - Larger deals get a small bonus
    """

    def __init__(self, config: Optional[ScorerConfig] = None, clock: Clock = utc_now):
        """Initialize scorer with optional configuration and clock."""
        self.config = config or get_config()
        self.clock = clock
        self.stage_scores = self.config.stage_scoring.stage_table()
        self.default_stage_score = self.config.stage_scoring.default_stage_score

    def score(self, deal: Deal, now: Optional[datetime] = None) -> ConfidenceBreakdown:
        """Score a single deal.

        Args:
            deal: Deal snapshot from the store
            now: Reference time (defaults to the scorer's clock)

        Returns:
            Breakdown with each component, the clamped final score and
            rationale strings
        """
        current = resolve_now(now, self.clock)

        stage_score, known_stage, stage_reason = self._score_stage(deal.stage)
        days_old, age_modifier, age_reason = self._score_age(deal, current)
        value_modifier, value_reason = self._score_value(deal)

        final_score = clamp(stage_score + age_modifier + value_modifier)

        return ConfidenceBreakdown(
            stage=deal.stage,
            stage_score=stage_score,
            age_modifier=age_modifier,
            value_modifier=value_modifier,
            final_score=final_score,
            days_old=days_old,
            known_stage=known_stage,
            stage_reason=stage_reason,
            age_reason=age_reason,
            value_reason=value_reason,
        )

    def score_many(self, deals: Iterable[Deal], now: Optional[datetime] = None) -> list[ConfidenceBreakdown]:
        """Score several deals against the same reference time, in input order."""
        current = resolve_now(now, self.clock)
        return [self.score(deal, current) for deal in deals]

    def _score_stage(self, stage: Optional[str]) -> tuple[int, bool, str]:
        """Look up the stage base score."""
        if stage is not None and stage in self.stage_scores:
            return (
                clamp(self.stage_scores[stage]),
                True,
                f'Deal is in "{stage_display_name(stage)}" stage',
            )

        logger.debug("Unmapped stage %r, using default score %d", stage, self.default_stage_score)
        if stage is None:
            reason = "Deal has no stage - default score applied"
        else:
            reason = (
                f'Deal is in "{stage_display_name(stage)}" stage, which is not part of a known '
                f"pipeline template - default score applied"
            )
        return self.default_stage_score, False, reason

    def _score_age(self, deal: Deal, now: datetime) -> tuple[Optional[int], int, str]:
        """Apply the age penalty tier, highest threshold first."""
        created = pick_created_date(deal)
        if created is None:
            logger.debug("Deal %s has no creation date, skipping age penalty", deal.id)
            return None, 0, "Deal age unknown - no age penalty applied"

        elapsed = (now - as_utc(created)).total_seconds()
        days_old = max(0, int(elapsed // SECONDS_PER_DAY))

        for tier in self.config.age_penalties:
            if days_old > tier.over_days:
                return (
                    days_old,
                    tier.modifier,
                    f"Deal is {days_old} days old - {tier.label} age penalty applied",
                )

        return days_old, 0, f"Deal is {days_old} days old - no age penalty applied"

    def _score_value(self, deal: Deal) -> tuple[int, str]:
        """Apply the value bonus tier, highest threshold first."""
        amount = deal.amount
        for tier in self.config.value_bonuses:
            if amount > Decimal(str(tier.over_amount)):
                return (
                    tier.modifier,
                    f"{tier.label} deal ({format_amount(amount)}) - bonus applied",
                )
        return 0, f"Deal value {format_amount(amount)} - standard scoring"
