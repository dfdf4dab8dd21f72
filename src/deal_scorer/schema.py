"""Pydantic models for the Deal Scoring Engine.

Input schemas mirror the deal records held by the external data store,
including the legacy field shapes still present in older rows. Output
schemas are the derived, ephemeral results of scoring, projection and
outcome normalization.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)


# =============================================================================
# Enums
# =============================================================================


class DealStatus(str, Enum):
    """Lifecycle status of a deal, owned by the external store."""
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"
    DISQUALIFIED = "disqualified"

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional["DealStatus"]:
        """Parse a status, returning None for unknown values."""
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class TargetPeriod(str, Enum):
    """Revenue target period."""
    ANNUAL = "annual"
    QUARTERLY = "quarterly"
    MONTHLY = "monthly"

    @classmethod
    def from_string(cls, value: Any) -> Optional["TargetPeriod"]:
        """Parse a period, returning None for unknown values."""
        if isinstance(value, cls):
            return value
        if not value:
            return None
        mapping = {
            "annual": cls.ANNUAL,
            "annually": cls.ANNUAL,
            "yearly": cls.ANNUAL,
            "quarterly": cls.QUARTERLY,
            "quarter": cls.QUARTERLY,
            "monthly": cls.MONTHLY,
            "month": cls.MONTHLY,
        }
        return mapping.get(str(value).strip().lower())


class PaceStatus(str, Enum):
    """Progress against the time-proportional expectation."""
    AHEAD = "ahead"
    ON_TRACK = "on-track"
    BEHIND = "behind"


class OutcomeReasonCategory(str, Enum):
    """Unified reason categories for negative outcomes (lost/disqualified)."""
    COMPETITOR = "competitor"
    BUDGET = "budget"
    TIMING = "timing"
    NO_FIT = "no_fit"
    UNRESPONSIVE = "unresponsive"
    NO_INTEREST = "no_interest"
    OTHER = "other"


# =============================================================================
# Coercion helpers
# =============================================================================


def to_decimal(value: Any) -> Optional[Decimal]:
    """Coerce a store value to Decimal, or None when it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        value = str(value)
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "").lstrip("$")
        if not cleaned:
            return None
        try:
            parsed = Decimal(cleaned)
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None


# Postgres renders UTC offsets as "+00"; pydantic expects "+00:00"
SHORT_OFFSET = re.compile(r"(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)([+-]\d{2})$")


def prepare_timestamp(value: Any) -> Any:
    """Normalize store timestamp shapes before pydantic parses them.

    Only blank strings, bare dates and short "+HH" offsets are touched.
    Everything else, including Unix epoch numbers, goes to pydantic's
    datetime parsing.
    """
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return SHORT_OFFSET.sub(r"\1\2:00", text)
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    return value


# =============================================================================
# Input Models
# =============================================================================


class Deal(BaseModel):
    """A deal record as read from the external store.

    Unknown keys are kept so that callers can pass raw rows through.
    Malformed values degrade to None rather than failing validation.
    """
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    stage: Optional[str] = None
    status: str = DealStatus.ACTIVE.value
    value: Optional[Decimal] = None

    # Timestamps (several historical names for the same concept)
    created_at: Optional[datetime] = None
    created: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    # Unified outcome fields
    outcome_reason_category: Optional[str] = None
    outcome_notes: Optional[str] = None
    outcome_recorded_at: Optional[datetime] = None
    outcome_recorded_by: Optional[str] = None

    # Legacy lost fields
    lost_reason: Optional[str] = None
    lost_reason_notes: Optional[str] = None

    # Legacy disqualified fields
    disqualified_reason_category: Optional[str] = None
    disqualified_reason_notes: Optional[str] = None
    disqualified_at: Optional[datetime] = None
    disqualified_by: Optional[str] = None

    @field_validator("id", "name", "outcome_recorded_by", "disqualified_by", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("stage", mode="before")
    @classmethod
    def _clean_stage(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("status", mode="before")
    @classmethod
    def _clean_status(cls, v: Any) -> str:
        if v is None or v == "":
            return DealStatus.ACTIVE.value
        if isinstance(v, Enum):
            v = v.value
        return str(v).strip().lower()

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v: Any) -> Optional[Decimal]:
        return to_decimal(v)

    @field_validator(
        "created_at", "created", "updated_at", "closed_at",
        "outcome_recorded_at", "disqualified_at",
        mode="wrap",
    )
    @classmethod
    def _coerce_timestamp(cls, v: Any, handler: ValidatorFunctionWrapHandler) -> Optional[datetime]:
        try:
            return handler(prepare_timestamp(v))
        except ValidationError:
            return None

    @field_validator(
        "outcome_reason_category", "outcome_notes",
        "lost_reason", "lost_reason_notes",
        "disqualified_reason_category", "disqualified_reason_notes",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        if isinstance(v, Enum):
            v = v.value
        text = str(v)
        return text if text.strip() else None

    @property
    def status_enum(self) -> Optional[DealStatus]:
        """Parsed status, or None for values outside the known lifecycle."""
        return DealStatus.from_string(self.status)

    @property
    def amount(self) -> Decimal:
        """Deal value with missing values treated as zero."""
        return self.value if self.value is not None else Decimal("0")


class RevenueTargets(BaseModel):
    """A user's revenue targets, one amount per period."""
    annual_target: Optional[Decimal] = None
    quarterly_target: Optional[Decimal] = None
    monthly_target: Optional[Decimal] = None

    @field_validator("annual_target", "quarterly_target", "monthly_target", mode="before")
    @classmethod
    def _coerce_amount(cls, v: Any) -> Optional[Decimal]:
        return to_decimal(v)

    def amount_for(self, period: TargetPeriod) -> Optional[Decimal]:
        """Target amount configured for a period."""
        return {
            TargetPeriod.ANNUAL: self.annual_target,
            TargetPeriod.QUARTERLY: self.quarterly_target,
            TargetPeriod.MONTHLY: self.monthly_target,
        }[period]

    def has_any(self) -> bool:
        """Check whether at least one period has a positive target."""
        return any(
            amount is not None and amount > 0
            for amount in (self.annual_target, self.quarterly_target, self.monthly_target)
        )


# =============================================================================
# Confidence Output Models
# =============================================================================


class ConfidenceBreakdown(BaseModel):
    """Score components for a single deal.

    final_score == clamp(stage_score + age_modifier + value_modifier, 0, 100)
    """
    stage: Optional[str] = None
    stage_score: int = Field(ge=0, le=100)
    age_modifier: int = Field(ge=-20, le=0)
    value_modifier: int = Field(ge=0, le=5)
    final_score: int = Field(ge=0, le=100)
    days_old: Optional[int] = None
    known_stage: bool = True

    # Rationale strings shown in breakdown displays
    stage_reason: str
    age_reason: str
    value_reason: str


class ScoredDeal(BaseModel):
    """A deal paired with its confidence breakdown."""
    deal_id: Optional[str] = None
    name: Optional[str] = None
    stage: Optional[str] = None
    value: Decimal = Decimal("0")
    breakdown: ConfidenceBreakdown

    @property
    def score(self) -> int:
        return self.breakdown.final_score


# =============================================================================
# Projection Output Models
# =============================================================================


class ProgressSnapshot(BaseModel):
    """Progress against a revenue target for the current period.

    percentage is capped at 100 for display; status is derived from the
    unclamped ratio. run_rate is a linear extrapolation and may exceed
    the target.
    """
    period: TargetPeriod
    achieved: Decimal
    target: Decimal
    percentage: float = Field(ge=0, le=100)
    run_rate: Decimal
    status: PaceStatus
    days_elapsed: int
    total_days: int
    expected_percentage: float
    remaining: Decimal
    period_start: date
    period_end: date
    deal_count: int = 0


# =============================================================================
# Outcome Models
# =============================================================================


class ReasonDisplay(BaseModel):
    """Display metadata for a reason category."""
    category: str
    label: str
    short_label: str
    icon: str = ""
    description: str = ""


class UnifiedOutcome(BaseModel):
    """Canonical representation of why a deal ended negatively.

    Canonical fields already on the deal are passed through as stored, so
    the category is a plain string; use validation to check it.
    """
    outcome_reason_category: Optional[str] = None
    outcome_notes: Optional[str] = None
    outcome_recorded_at: Optional[datetime] = None
    outcome_recorded_by: Optional[str] = None


class OutcomeValidation(BaseModel):
    """Result of validating a deal's outcome fields."""
    is_valid: bool
    errors: list[str] = Field(default_factory=list)


class OutcomeSummary(BaseModel):
    """Analytics-friendly outcome summary for a deal."""
    status: str
    is_negative: bool
    is_final: bool
    reason_category: Optional[str] = None
    reason_label: Optional[str] = None
    reason_icon: Optional[str] = None
    notes: Optional[str] = None
    recorded_at: Optional[datetime] = None
    recorded_by: Optional[str] = None


class OutcomeAudit(BaseModel):
    """A deal whose stored outcome fails validation."""
    deal_id: Optional[str] = None
    status: str
    errors: list[str]
    unified: UnifiedOutcome
