"""Deal Scoring Engine.

Wires the confidence scorer, target projector and outcome normalizer
together for batch use, and loads deal snapshots from JSON files. The
components stay independent: the engine only composes their results.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

import yaml
from pydantic import ValidationError

from .clock import Clock, utc_now
from .config import ScorerConfig, get_config
from .outcomes import OutcomeNormalizer
from .projector import TargetProgressProjector
from .schema import (
    Deal,
    DealStatus,
    OutcomeAudit,
    ProgressSnapshot,
    RevenueTargets,
    ScoredDeal,
    TargetPeriod,
)
from .scorer import ConfidenceScorer
from .stages import stage_agrees_with_status, status_for_stage

logger = logging.getLogger(__name__)


class DealEngine:
    """Batch facade over the three scoring components."""

    def __init__(self, config: Optional[ScorerConfig] = None, clock: Clock = utc_now):
        self.config = config or get_config()
        self.clock = clock
        self.scorer = ConfidenceScorer(self.config, clock)
        self.projector = TargetProgressProjector(self.config, clock)
        self.outcomes = OutcomeNormalizer()

    def score_pipeline(self, deals: Iterable[Deal], now: Optional[datetime] = None) -> list[ScoredDeal]:
        """Score every deal, highest confidence first.

        Ordering is for display only; each score is independent.
        """
        deals = list(deals)
        breakdowns = self.scorer.score_many(deals, now)
        scored = [
            ScoredDeal(
                deal_id=deal.id,
                name=deal.name,
                stage=deal.stage,
                value=deal.amount,
                breakdown=breakdown,
            )
            for deal, breakdown in zip(deals, breakdowns)
        ]
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored

    def project_targets(
        self,
        targets: RevenueTargets,
        deals: Iterable[Deal],
        now: Optional[datetime] = None,
    ) -> dict[TargetPeriod, ProgressSnapshot]:
        """Project progress for every configured target from the won deals."""
        won = [deal for deal in deals if deal.status_enum == DealStatus.WON]
        return self.projector.project_all(targets, won, now)

    def audit_outcomes(self, deals: Iterable[Deal]) -> list[OutcomeAudit]:
        """List every deal whose outcome fields fail validation."""
        audits = []
        for deal in deals:
            result = self.outcomes.validate(deal)
            if result.is_valid:
                continue
            audits.append(OutcomeAudit(
                deal_id=deal.id,
                status=deal.status,
                errors=result.errors,
                unified=self.outcomes.unify(deal),
            ))
        return audits


def _read_records(path: Path) -> list:
    if not path.exists():
        raise ValueError(f"Deals file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e

    # Accept a bare array or an object wrapping it
    if isinstance(data, dict):
        data = data.get("deals", [data])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of deals in {path}")
    return data


def load_deals_file(file_path: str) -> list[Deal]:
    """Load deal records from a JSON file.

    Args:
        file_path: Path to a JSON array of deals (or {"deals": [...]}).

    Returns:
        Parsed deals.

    Raises:
        ValueError: If the file is missing, not JSON, or not a list of
            objects.
    """
    path = Path(file_path)
    records = _read_records(path)

    deals = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise ValueError(f"Deal #{index} in {path} is not an object")
        try:
            deals.append(Deal.model_validate(record))
        except ValidationError as e:
            raise ValueError(f"Deal #{index} in {path} is invalid: {e}") from e

    logger.info("Loaded %d deals from %s", len(deals), path)
    return deals


def validate_deals_file(file_path: str) -> tuple[bool, list[str]]:
    """Check that a deals file can be loaded and that terminal stages match statuses.

    Returns:
        (is_valid, issues)
    """
    issues: list[str] = []
    try:
        deals = load_deals_file(file_path)
    except ValueError as e:
        return False, [str(e)]

    for index, deal in enumerate(deals):
        label = deal.id or f"#{index}"
        if deal.status_enum is None:
            issues.append(f"Deal {label}: unknown status '{deal.status}'")
        if deal.stage is None:
            issues.append(f"Deal {label}: missing stage")
        elif deal.status_enum is not None and not stage_agrees_with_status(deal.stage, deal.status_enum):
            issues.append(
                f"Deal {label}: stage '{deal.stage}' implies status "
                f"'{status_for_stage(deal.stage).value}' but status is '{deal.status}'"
            )

    return len(issues) == 0, issues


def load_targets_file(file_path: str) -> RevenueTargets:
    """Load revenue targets from a YAML (or JSON) file.

    Expected keys: annual_target, quarterly_target, monthly_target.
    """
    path = Path(file_path)
    if not path.exists():
        raise ValueError(f"Targets file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is not None and not isinstance(data, dict):
        raise ValueError(f"Expected a mapping of targets in {path}")
    return RevenueTargets.model_validate(data or {})
