"""Outcome Taxonomy Normalizer.

Unifies the historically separate "lost" and "disqualified" reason
vocabularies into one taxonomy of seven categories, validates outcome
fields against a deal's status and synthesizes the unified outcome for
rows that only carry legacy fields.

Key rules:
- A deal is either lost OR disqualified, never both
- Won deals carry no reason; active deals carry no outcome data at all
- Unrecognized reason codes map to "other" instead of failing
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from .schema import (
    Deal,
    DealStatus,
    OutcomeReasonCategory,
    OutcomeSummary,
    OutcomeValidation,
    ReasonDisplay,
    UnifiedOutcome,
)
from .stages import snake_case_to_title

logger = logging.getLogger(__name__)

LEGACY_OTHER_PREFIX = "other:"
MAX_NOTES_LABEL = 50

OUTCOME_FIELDS = (
    "outcome_reason_category",
    "outcome_notes",
    "outcome_recorded_at",
    "outcome_recorded_by",
)


DEFAULT_REASON_DISPLAY: dict[OutcomeReasonCategory, ReasonDisplay] = {
    OutcomeReasonCategory.COMPETITOR: ReasonDisplay(
        category="competitor",
        label="Lost to Competitor",
        short_label="Competitor",
        icon="🏆",
        description="Prospect chose a competing solution",
    ),
    OutcomeReasonCategory.BUDGET: ReasonDisplay(
        category="budget",
        label="Budget Constraints",
        short_label="Budget",
        icon="💰",
        description="Financial limitations prevented the deal",
    ),
    OutcomeReasonCategory.TIMING: ReasonDisplay(
        category="timing",
        label="Wrong Timing",
        short_label="Timing",
        icon="⏰",
        description="Not the right time for the prospect",
    ),
    OutcomeReasonCategory.NO_FIT: ReasonDisplay(
        category="no_fit",
        label="Not a Fit",
        short_label="No Fit",
        icon="🎯",
        description="Product or service doesn't match prospect needs",
    ),
    OutcomeReasonCategory.UNRESPONSIVE: ReasonDisplay(
        category="unresponsive",
        label="Unresponsive",
        short_label="Unresponsive",
        icon="📵",
        description="Prospect stopped responding to outreach",
    ),
    OutcomeReasonCategory.NO_INTEREST: ReasonDisplay(
        category="no_interest",
        label="No Longer Interested",
        short_label="No Interest",
        icon="❌",
        description="Prospect lost interest or deprioritized",
    ),
    OutcomeReasonCategory.OTHER: ReasonDisplay(
        category="other",
        label="Other",
        short_label="Other",
        icon="📝",
        description="Other reason not listed above",
    ),
}


@dataclass(frozen=True)
class LegacyOutcome:
    """Outcome fields read from a legacy field set."""
    reason: Optional[str]
    notes: Optional[str]
    recorded_at: Optional[datetime]
    recorded_by: Optional[str]


def pick_legacy_reason(deal: Deal) -> Optional[LegacyOutcome]:
    """Legacy outcome fields matching the deal's current status.

    Lost deals read `lost_reason`/`lost_reason_notes` stamped with
    `updated_at`. Disqualified deals read `disqualified_reason_category`/
    `disqualified_reason_notes`, stamped with `disqualified_at` then
    `updated_at`, and attributed to `disqualified_by`.
    """
    status = deal.status_enum
    if status == DealStatus.LOST and deal.lost_reason:
        notes = deal.lost_reason_notes
        if not notes and deal.lost_reason.lower().startswith(LEGACY_OTHER_PREFIX):
            notes = deal.lost_reason[len(LEGACY_OTHER_PREFIX):].strip() or None
        return LegacyOutcome(
            reason=deal.lost_reason,
            notes=notes,
            recorded_at=deal.updated_at,
            recorded_by=None,
        )
    if status == DealStatus.DISQUALIFIED and deal.disqualified_reason_category:
        return LegacyOutcome(
            reason=deal.disqualified_reason_category,
            notes=deal.disqualified_reason_notes,
            recorded_at=deal.disqualified_at or deal.updated_at,
            recorded_by=deal.disqualified_by,
        )
    return None


def _truncate(text: str, limit: int = MAX_NOTES_LABEL) -> str:
    return text if len(text) <= limit else text[:limit - 3] + "..."


class OutcomeNormalizer:
    """Maps legacy and current outcome data onto the unified taxonomy."""

    LOST_REASON_OPTIONS = (
        OutcomeReasonCategory.COMPETITOR,
        OutcomeReasonCategory.NO_INTEREST,
        OutcomeReasonCategory.BUDGET,
        OutcomeReasonCategory.TIMING,
        OutcomeReasonCategory.OTHER,
    )

    DISQUALIFIED_REASON_OPTIONS = (
        OutcomeReasonCategory.BUDGET,
        OutcomeReasonCategory.NO_FIT,
        OutcomeReasonCategory.TIMING,
        OutcomeReasonCategory.COMPETITOR,
        OutcomeReasonCategory.UNRESPONSIVE,
        OutcomeReasonCategory.OTHER,
    )

    # Legacy reason ids from the separate lost/disqualify vocabularies
    LEGACY_REASON_MAP = {
        # Lost
        "competitor": OutcomeReasonCategory.COMPETITOR,
        "no_interest": OutcomeReasonCategory.NO_INTEREST,
        "budget": OutcomeReasonCategory.BUDGET,
        "timing": OutcomeReasonCategory.TIMING,
        # Disqualified
        "no_budget": OutcomeReasonCategory.BUDGET,
        "not_a_fit": OutcomeReasonCategory.NO_FIT,
        "wrong_timing": OutcomeReasonCategory.TIMING,
        "went_with_competitor": OutcomeReasonCategory.COMPETITOR,
        "unresponsive": OutcomeReasonCategory.UNRESPONSIVE,
        # Common
        "other": OutcomeReasonCategory.OTHER,
    }

    def __init__(self, reason_display: Optional[dict[OutcomeReasonCategory, ReasonDisplay]] = None):
        """Initialize normalizer with optional display metadata overrides."""
        self._reason_display = dict(DEFAULT_REASON_DISPLAY)
        if reason_display:
            self._reason_display.update(reason_display)

    # ------------------------------------------------------------------
    # Taxonomy
    # ------------------------------------------------------------------

    def normalize_reason_category(self, code: Any) -> Optional[OutcomeReasonCategory]:
        """Map a legacy or current reason code onto the unified taxonomy.

        Returns None only for None or "". Any other input, whitespace-only
        strings included, maps to a category; unrecognized codes are "other".
        """
        if isinstance(code, OutcomeReasonCategory):
            return code
        if code is None or code == "":
            return None
        text = str(code).strip()
        if not text:
            return OutcomeReasonCategory.OTHER

        key = text.lower()
        if key.startswith(LEGACY_OTHER_PREFIX):
            return OutcomeReasonCategory.OTHER
        key = key.replace("-", "_").replace(" ", "_")

        try:
            return OutcomeReasonCategory(key)
        except ValueError:
            pass

        mapped = self.LEGACY_REASON_MAP.get(key)
        if mapped is None:
            logger.debug("Unrecognized reason code %r, mapping to other", code)
            return OutcomeReasonCategory.OTHER
        return mapped

    def reason_options_for(self, outcome_type: Any) -> list[OutcomeReasonCategory]:
        """Ordered reason categories valid for a lost or disqualified outcome.

        Other statuses have no valid reasons and get an empty list.
        """
        status = DealStatus.from_string(getattr(outcome_type, "value", outcome_type))
        if status == DealStatus.LOST:
            return list(self.LOST_REASON_OPTIONS)
        if status == DealStatus.DISQUALIFIED:
            return list(self.DISQUALIFIED_REASON_OPTIONS)
        return []

    def reason_display(self, category: Any, notes: Optional[str] = None) -> Optional[ReasonDisplay]:
        """Display metadata for a reason code.

        - Legacy "Other: custom text" codes show the custom text
        - "other" with notes shows the (truncated) notes
        - Unknown codes fall back to a Title Case label
        """
        if category is None:
            return None
        raw = str(getattr(category, "value", category)).strip()
        if not raw:
            return None

        other = self._reason_display[OutcomeReasonCategory.OTHER]
        if raw.lower().startswith(LEGACY_OTHER_PREFIX):
            custom = raw[len(LEGACY_OTHER_PREFIX):].strip()
            return other.model_copy(update={"label": _truncate(custom) if custom else other.label})

        key = raw.lower().replace("-", "_").replace(" ", "_")
        known = key in self.LEGACY_REASON_MAP or key in {c.value for c in OutcomeReasonCategory}
        if not known:
            return ReasonDisplay(
                category=raw,
                label=snake_case_to_title(raw),
                short_label=snake_case_to_title(raw),
                icon="📋",
            )

        normalized = self.normalize_reason_category(key)
        display = self._reason_display[normalized]
        if normalized == OutcomeReasonCategory.OTHER and notes and notes.strip():
            return display.model_copy(update={"label": _truncate(notes.strip())})
        return display

    # ------------------------------------------------------------------
    # Validation and unification
    # ------------------------------------------------------------------

    def validate(self, deal: Deal) -> OutcomeValidation:
        """Check outcome fields against the deal's status.

        Every violation is reported, not just the first.
        """
        errors: list[str] = []
        status = deal.status_enum
        category = deal.outcome_reason_category

        if status is None:
            errors.append(f'Unknown deal status "{deal.status}"')

        elif status == DealStatus.WON:
            if category:
                errors.append("Won deals should not have an outcome reason category")

        elif status in (DealStatus.LOST, DealStatus.DISQUALIFIED):
            if not category:
                errors.append(f"{status.value} deals require an outcome reason category")
            elif category not in [c.value for c in self.reason_options_for(status)]:
                errors.append(f'Invalid reason category "{category}" for {status.value} deals')

        elif status == DealStatus.ACTIVE:
            for name in OUTCOME_FIELDS:
                if getattr(deal, name) is not None:
                    errors.append(f"Active deals should not have outcome data ({name})")

        return OutcomeValidation(is_valid=not errors, errors=errors)

    def unify(self, deal: Deal) -> UnifiedOutcome:
        """Build the unified outcome for a deal.

        Canonical fields pass through unchanged. Otherwise the legacy field
        set for the deal's status is normalized. Deals with neither get
        all-null fields.
        """
        if deal.outcome_reason_category:
            return UnifiedOutcome(
                outcome_reason_category=deal.outcome_reason_category,
                outcome_notes=deal.outcome_notes,
                outcome_recorded_at=deal.outcome_recorded_at,
                outcome_recorded_by=deal.outcome_recorded_by,
            )

        legacy = pick_legacy_reason(deal)
        if legacy is None:
            return UnifiedOutcome()

        category = self.normalize_reason_category(legacy.reason)
        return UnifiedOutcome(
            outcome_reason_category=category.value if category else None,
            outcome_notes=legacy.notes,
            outcome_recorded_at=legacy.recorded_at,
            outcome_recorded_by=legacy.recorded_by,
        )

    def summarize(self, deal: Deal) -> OutcomeSummary:
        """Analytics-friendly outcome summary for a deal."""
        unified = self.unify(deal)
        display = self.reason_display(unified.outcome_reason_category) if unified.outcome_reason_category else None
        return OutcomeSummary(
            status=deal.status,
            is_negative=has_negative_outcome(deal),
            is_final=is_final_outcome(deal),
            reason_category=unified.outcome_reason_category,
            reason_label=display.label if display else None,
            reason_icon=display.icon if display else None,
            notes=unified.outcome_notes,
            recorded_at=unified.outcome_recorded_at,
            recorded_by=unified.outcome_recorded_by,
        )


def has_negative_outcome(deal: Deal) -> bool:
    """Check if a deal is lost or disqualified."""
    return deal.status_enum in (DealStatus.LOST, DealStatus.DISQUALIFIED)


def is_final_outcome(deal: Deal) -> bool:
    """Check if a deal is won, lost or disqualified."""
    return deal.status_enum in (DealStatus.WON, DealStatus.LOST, DealStatus.DISQUALIFIED)


_default_normalizer = OutcomeNormalizer()


def normalize_reason_category(code: Any) -> Optional[OutcomeReasonCategory]:
    return _default_normalizer.normalize_reason_category(code)


def reason_options_for(outcome_type: Any) -> list[OutcomeReasonCategory]:
    return _default_normalizer.reason_options_for(outcome_type)


def validate_outcome(deal: Deal) -> OutcomeValidation:
    return _default_normalizer.validate(deal)


def unify_outcome(deal: Deal) -> UnifiedOutcome:
    return _default_normalizer.unify(deal)


def outcome_summary(deal: Deal) -> OutcomeSummary:
    return _default_normalizer.summarize(deal)
