"""Target Progress Projector.

Maps a revenue target and a set of won deals into progress for the
current calendar period, a run-rate and a pace status.

The run-rate is a linear extrapolation of achieved revenue over the
elapsed days of the period. It is not a forecast model and ignores
seasonality.
"""

import calendar
import logging
from datetime import date, datetime
from decimal import Decimal, localcontext
from typing import Any, Iterable, Optional

from .clock import Clock, as_utc, in_zone_of, utc_now
from .config import ScorerConfig, get_config
from .schema import (
    Deal,
    PaceStatus,
    ProgressSnapshot,
    RevenueTargets,
    TargetPeriod,
    to_decimal,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def pick_closed_date(deal: Deal) -> Optional[datetime]:
    """Close timestamp of a deal.

    Fallback chain: `closed_at`, `updated_at`, `created`, `created_at`.
    """
    return deal.closed_at or deal.updated_at or deal.created or deal.created_at


def to_cents(amount: Decimal) -> Decimal:
    """Round an amount to cents, widening the context for very large amounts."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        return amount.quantize(CENTS)


def quarter_of(month: int) -> int:
    """Calendar quarter (1-4) of a month (1-12)."""
    return (month - 1) // 3 + 1


def period_bounds(period: TargetPeriod, today: date) -> tuple[date, date]:
    """First and last day (inclusive) of the period containing `today`."""
    year = today.year
    if period == TargetPeriod.ANNUAL:
        return date(year, 1, 1), date(year, 12, 31)
    if period == TargetPeriod.QUARTERLY:
        first_month = (quarter_of(today.month) - 1) * 3 + 1
        last_month = first_month + 2
        return (
            date(year, first_month, 1),
            date(year, last_month, calendar.monthrange(year, last_month)[1]),
        )
    return (
        date(year, today.month, 1),
        date(year, today.month, calendar.monthrange(year, today.month)[1]),
    )


def in_period(period: TargetPeriod, when: date, today: date) -> bool:
    """Check whether `when` falls in the same period as `today`."""
    if when.year != today.year:
        return False
    if period == TargetPeriod.ANNUAL:
        return True
    if period == TargetPeriod.QUARTERLY:
        return quarter_of(when.month) == quarter_of(today.month)
    return when.month == today.month


class TargetProgressProjector:
    """Projects progress against revenue targets.

    Principles:
    - Unset or zero targets produce no snapshot
    - The display percentage is capped at 100; pace uses the raw ratio
    - A +/- band around the expected pace avoids flapping between states
    - Day zero of a period reports a zero run-rate
    """

    def __init__(self, config: Optional[ScorerConfig] = None, clock: Clock = utc_now):
        """Initialize projector with optional configuration and clock."""
        self.config = config or get_config()
        self.clock = clock
        self.band = self.config.pace.band_points

    def project(
        self,
        target_amount: Any,
        period: Any,
        won_deals: Iterable[Deal],
        now: Optional[datetime] = None,
    ) -> Optional[ProgressSnapshot]:
        """Compute progress for one target period.

        Args:
            target_amount: Target for the period (None/0 means unset)
            period: annual, quarterly or monthly
            won_deals: Won deals (status filtering is the caller's job)
            now: Reference time (defaults to the projector's clock)

        Returns:
            ProgressSnapshot, or None when the target is unset or the
            period is unknown
        """
        target = to_decimal(target_amount)
        if target is None or target <= 0:
            logger.debug("No target set for %s period", period)
            return None

        target_period = TargetPeriod.from_string(period)
        if target_period is None:
            logger.debug("Unknown target period %r", period)
            return None

        current = now if now is not None else self.clock()
        today = current.date()

        period_start, period_end = period_bounds(target_period, today)
        total_days = (period_end - period_start).days + 1
        days_elapsed = (today - period_start).days
        if total_days <= 0:
            return None

        period_deals = self.filter_period_deals(won_deals, target_period, current)
        achieved = sum((deal.amount for deal in period_deals), Decimal("0"))

        raw_percentage = float(achieved / target * 100)
        expected_percentage = days_elapsed / total_days * 100

        run_rate = to_cents(achieved / days_elapsed * total_days) if days_elapsed > 0 else Decimal("0.00")

        return ProgressSnapshot(
            period=target_period,
            achieved=achieved,
            target=target,
            percentage=max(0.0, min(100.0, raw_percentage)),
            run_rate=run_rate,
            status=self._pace_status(raw_percentage, expected_percentage),
            days_elapsed=days_elapsed,
            total_days=total_days,
            expected_percentage=expected_percentage,
            remaining=max(Decimal("0"), target - achieved),
            period_start=period_start,
            period_end=period_end,
            deal_count=len(period_deals),
        )

    def project_all(
        self,
        targets: RevenueTargets,
        won_deals: Iterable[Deal],
        now: Optional[datetime] = None,
    ) -> dict[TargetPeriod, ProgressSnapshot]:
        """Project every configured period; unset periods are omitted."""
        deals = list(won_deals)
        current = now if now is not None else self.clock()
        results: dict[TargetPeriod, ProgressSnapshot] = {}
        for period in TargetPeriod:
            snapshot = self.project(targets.amount_for(period), period, deals, current)
            if snapshot is not None:
                results[period] = snapshot
        return results

    def filter_period_deals(
        self,
        deals: Iterable[Deal],
        period: TargetPeriod,
        now: datetime,
    ) -> list[Deal]:
        """Deals whose close date falls in the current period."""
        today = now.date()
        selected = []
        for deal in deals:
            closed = pick_closed_date(deal)
            if closed is None:
                logger.debug("Won deal %s has no usable date, excluded from %s", deal.id, period.value)
                continue
            if now.tzinfo is None:
                closed_day = as_utc(closed).replace(tzinfo=None).date()
            else:
                closed_day = in_zone_of(closed, now).date()
            if in_period(period, closed_day, today):
                selected.append(deal)
        return selected

    def _pace_status(self, percentage: float, expected: float) -> PaceStatus:
        """Classify pace using the unclamped percentage."""
        if percentage >= expected + self.band:
            return PaceStatus.AHEAD
        if percentage < expected - self.band:
            return PaceStatus.BEHIND
        return PaceStatus.ON_TRACK
