"""Centralized configuration management for the deal scorer."""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


DEFAULT_STAGE_TEMPLATES: dict[str, dict[str, int]] = {
    "legacy": {
        "lead": 30,
        "quote": 50,
        "approval": 65,
        "invoice": 80,
        "onboarding": 90,
        "delivery": 95,
        "retention": 100,
        "lost": 0,
    },
    "default": {
        "lead_captured": 25,
        "lead_qualified": 35,
        "contacted": 40,
        "needs_identified": 50,
        "proposal_sent": 60,
        "negotiation": 70,
        "deal_won": 100,
        "deal_lost": 0,
        "invoice_sent": 85,
        "payment_received": 95,
        "customer_onboarded": 98,
        "retention": 100,
    },
    "healthcare": {
        "lead_generation": 25,
        "lead_qualification": 35,
        "discovery": 45,
        "scope_defined": 55,
        "proposal_sent": 60,
        "contract_sent": 65,
        "negotiation": 70,
        "deal_won": 100,
        "deal_lost": 0,
        "invoice_sent": 85,
        "payment_received": 95,
        "client_onboarding": 90,
        "renewal_upsell": 100,
    },
    "vc_pe": {
        "deal_sourced": 20,
        "initial_screening": 35,
        "due_diligence": 50,
        "term_sheet_presented": 65,
        "negotiation": 70,
        "investment_closed": 100,
        "capital_call_sent": 85,
        "capital_received": 95,
        "portfolio_mgmt": 100,
    },
    "real_estate": {
        "lead_captured": 25,
        "qualification": 35,
        "property_showing": 50,
        "negotiation": 70,
        "contract_signed": 100,
        "deal_lost": 0,
        "closing_statement_sent": 85,
        "escrow_completed": 95,
        "client_followup": 100,
    },
    "professional_services": {
        "lead_identified": 25,
        "lead_qualified": 35,
        "discovery": 45,
        "scope_defined": 55,
        "proposal_sent": 60,
        "contract_sent": 65,
        "negotiation": 70,
        "contract_signed": 100,
        "deal_won": 100,
        "deal_lost": 0,
        "invoice_sent": 85,
        "payment_received": 95,
        "client_onboarding": 90,
        "renewal_upsell": 100,
    },
    "saas": {
        "prospecting": 20,
        "qualification": 35,
        "contact": 35,
        "discovery": 45,
        "proposal": 60,
        "negotiation": 70,
        "closed": 100,
        "onboarding": 90,
        "adoption": 95,
        "renewal": 100,
    },
}


class StageScoringConfig(BaseModel):
    """Stage base scores, grouped by pipeline template.

    A stage id may appear in several templates (e.g. "negotiation"), but it
    must carry the same score in each of them: the merged lookup table has
    a single entry per stage id.

    Scores are not required to rise through a template. Post-close stages
    follow the winning stage with lower scores (e.g. "deal_won" 100, then
    "invoice_sent" 85), so only the 0-100 range and cross-template
    agreement are checked.
    """
    default_stage_score: int = Field(
        30,
        ge=0,
        le=100,
        description="Score for stages not mapped by any template (kept low so unclassified deals are not over-stated)"
    )
    templates: dict[str, dict[str, int]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_STAGE_TEMPLATES.items()},
        description="Pipeline template id -> ordered stage id -> base score (0-100)"
    )

    @model_validator(mode="after")
    def _check_templates(self) -> "StageScoringConfig":
        seen: dict[str, tuple[str, int]] = {}
        for template_id, stages in self.templates.items():
            for stage_id, score in stages.items():
                if not 0 <= score <= 100:
                    raise ValueError(
                        f"Stage '{stage_id}' in template '{template_id}' has score {score}; must be 0-100"
                    )
                if stage_id in seen and seen[stage_id][1] != score:
                    other_template, other_score = seen[stage_id]
                    raise ValueError(
                        f"Stage '{stage_id}' is scored {other_score} in template '{other_template}' "
                        f"but {score} in template '{template_id}'"
                    )
                seen.setdefault(stage_id, (template_id, score))
        return self

    def stage_table(self) -> dict[str, int]:
        """Merged stage id -> base score table across all templates."""
        table: dict[str, int] = {}
        for stages in self.templates.values():
            table.update(stages)
        return table

    def templates_for(self, stage_id: str) -> list[str]:
        """Template ids that define a stage."""
        return [t for t, stages in self.templates.items() if stage_id in stages]


class AgePenaltyTier(BaseModel):
    """Penalty applied when a deal is strictly older than over_days."""
    over_days: int = Field(ge=0)
    modifier: int = Field(ge=-20, le=0)
    label: str


class ValueBonusTier(BaseModel):
    """Bonus applied when a deal's value is strictly above over_amount."""
    over_amount: float = Field(ge=0)
    modifier: int = Field(ge=0, le=5)
    label: str


def _default_age_penalties() -> list[AgePenaltyTier]:
    return [
        AgePenaltyTier(over_days=90, modifier=-20, label="significant"),
        AgePenaltyTier(over_days=60, modifier=-10, label="moderate"),
        AgePenaltyTier(over_days=30, modifier=-5, label="minor"),
    ]


def _default_value_bonuses() -> list[ValueBonusTier]:
    return [
        ValueBonusTier(over_amount=50000, modifier=5, label="High-value"),
        ValueBonusTier(over_amount=10000, modifier=3, label="Mid-value"),
    ]


class PaceConfig(BaseModel):
    """Thresholds for ahead / on-track / behind classification."""
    band_points: float = Field(
        10.0,
        ge=0,
        description="Percentage points above/below the expected pace before a period counts as ahead/behind"
    )


class ScorerConfig(BaseModel):
    """Complete configuration for the deal scorer."""
    stage_scoring: StageScoringConfig = Field(default_factory=StageScoringConfig)
    age_penalties: list[AgePenaltyTier] = Field(default_factory=_default_age_penalties)
    value_bonuses: list[ValueBonusTier] = Field(default_factory=_default_value_bonuses)
    pace: PaceConfig = Field(default_factory=PaceConfig)

    @field_validator("age_penalties")
    @classmethod
    def _sort_age_penalties(cls, tiers: list[AgePenaltyTier]) -> list[AgePenaltyTier]:
        ordered = sorted(tiers, key=lambda t: t.over_days, reverse=True)
        # Older deals must never receive a smaller penalty.
        for older, younger in zip(ordered, ordered[1:]):
            if older.modifier > younger.modifier:
                raise ValueError(
                    f"Age penalty for >{older.over_days} days ({older.modifier}) is weaker "
                    f"than for >{younger.over_days} days ({younger.modifier})"
                )
        return ordered

    @field_validator("value_bonuses")
    @classmethod
    def _sort_value_bonuses(cls, tiers: list[ValueBonusTier]) -> list[ValueBonusTier]:
        return sorted(tiers, key=lambda t: t.over_amount, reverse=True)


# Global config instance
_config: Optional[ScorerConfig] = None


def get_config() -> ScorerConfig:
    """Get the current configuration.

    Returns the global config, initializing with defaults if not yet loaded.
    """
    global _config
    if _config is None:
        _config = ScorerConfig()
    return _config


def load_config(path: Path) -> ScorerConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        The loaded ScorerConfig.

    Raises:
        ValueError: If the file does not describe a valid configuration
            (including conflicting stage scores across templates).
    """
    global _config

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    _config = ScorerConfig.model_validate(data or {})
    logger.info(
        "Loaded scorer config from %s (%d pipeline templates)",
        path,
        len(_config.stage_scoring.templates),
    )
    return _config


def reset_config() -> None:
    """Reset configuration to defaults."""
    global _config
    _config = ScorerConfig()


def find_config_file() -> Optional[Path]:
    """Find a scorer configuration file.

    Looks in (order of priority):
    1. DEAL_SCORER_CONFIG environment variable
    2. ./deal-scorer.yaml
    3. ./deal-scorer.yml
    4. ~/.config/deal-scorer/config.yaml
    """
    env_path = os.environ.get("DEAL_SCORER_CONFIG")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path

    for name in ["deal-scorer.yaml", "deal-scorer.yml"]:
        path = Path(name)
        if path.exists():
            return path

    user_config = Path.home() / ".config" / "deal-scorer" / "config.yaml"
    if user_config.exists():
        return user_config

    return None


def save_default_config(path: Path) -> None:
    """Save the default configuration to a YAML file.

    Args:
        path: Path where to save the configuration.
    """
    config = ScorerConfig()
    data = config.model_dump()

    yaml_content = """# Deal Scorer Configuration
# =========================
#
# Stage base scores per pipeline template, age penalties, value bonuses
# and the pace band used for target progress.
#
# A stage id listed in several templates must use the same score in each.
#
# Copy this file to one of these locations:
#   - ./deal-scorer.yaml (current directory)
#   - ~/.config/deal-scorer/config.yaml (user config)
#
# Or set the DEAL_SCORER_CONFIG environment variable.

"""
    yaml_content += yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(yaml_content)
