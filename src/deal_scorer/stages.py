"""Stage display names and stage/status mapping.

Custom stages that are not in the lookup table are auto-formatted, so
callers never show a raw snake_case id.
"""

from typing import Optional

from .schema import DealStatus


STAGE_DISPLAY_NAMES: dict[str, str] = {
    # Default pipeline
    "lead": "Lead",
    "lead_captured": "Lead Captured",
    "lead_qualified": "Lead Qualified",
    "contacted": "Contacted",
    "needs_identified": "Needs Identified",
    "proposal_sent": "Proposal Sent",
    "negotiation": "Negotiation",
    "deal_won": "Deal Won",
    "deal_lost": "Deal Lost",
    "invoice_sent": "Invoice Sent",
    "payment_received": "Payment Received",
    "customer_onboarded": "Customer Onboarded",

    # Legacy stages
    "quote": "Quote",
    "approval": "Approval",
    "invoice": "Invoice",
    "onboarding": "Onboarding",
    "delivery": "Delivery",
    "retention": "Retention",
    "lost": "Lost",

    # Healthcare
    "lead_generation": "Lead Generation",
    "lead_qualification": "Lead Qualification",
    "discovery": "Discovery",
    "scope_defined": "Scope Defined",
    "contract_sent": "Contract Sent",
    "client_onboarding": "Client Onboarding",
    "renewal_upsell": "Renewal / Upsell",

    # VC/PE
    "deal_sourced": "Deal Sourced",
    "initial_screening": "Initial Screening",
    "due_diligence": "Due Diligence",
    "term_sheet_presented": "Term Sheet Presented",
    "investment_closed": "Investment Closed",
    "capital_call_sent": "Capital Call Sent",
    "capital_received": "Capital Received",
    "portfolio_mgmt": "Portfolio Management",

    # Real estate
    "qualification": "Qualification",
    "property_showing": "Property Showing",
    "contract_signed": "Contract Signed",
    "closing_statement_sent": "Closing Statement Sent",
    "escrow_completed": "Escrow Completed",
    "client_followup": "Client Follow-up",

    # Professional services
    "lead_identified": "Lead Identified",

    # SaaS
    "prospecting": "Prospecting",
    "contact": "Contact",
    "proposal": "Proposal",
    "closed": "Closed",
    "adoption": "Adoption",
    "renewal": "Renewal",

    # Terminal aliases
    "closed_won": "Closed Won",
    "closed_lost": "Closed Lost",
    "won": "Won",
}

WON_STAGES = frozenset({
    "deal_won", "closed_won", "won", "closed",
    "contract_signed", "escrow_completed",
    "investment_closed", "capital_received",
    "payment_received", "invoice_sent",
    "retention", "retention_renewal", "client_retention", "customer_retained", "portfolio_mgmt",
})

LOST_STAGES = frozenset({
    "lost", "deal_lost", "closed_lost", "investment_lost", "passed",
})


def snake_case_to_title(text: Optional[str]) -> str:
    """Convert snake_case to Title Case."""
    if not text:
        return "Unknown"
    return " ".join(word.capitalize() for word in text.split("_") if word) or "Unknown"


def stage_display_name(stage_id: Optional[str]) -> str:
    """Get the display name for a stage.

    Known stages use the lookup table; custom stages fall back to
    Title Case conversion.
    """
    if not stage_id:
        return "Unknown"
    return STAGE_DISPLAY_NAMES.get(stage_id) or snake_case_to_title(stage_id)


def status_for_stage(stage_id: Optional[str]) -> DealStatus:
    """Deal status implied by a stage id."""
    if stage_id in WON_STAGES:
        return DealStatus.WON
    if stage_id in LOST_STAGES:
        return DealStatus.LOST
    return DealStatus.ACTIVE


def stage_agrees_with_status(stage_id: Optional[str], status: DealStatus) -> bool:
    """Check that a terminal stage matches the deal's status.

    Won stages need a won deal and lost stages a lost or disqualified one.
    Non-terminal stages agree with any status.
    """
    implied = status_for_stage(stage_id)
    if implied == DealStatus.WON:
        return status == DealStatus.WON
    if implied == DealStatus.LOST:
        return status in (DealStatus.LOST, DealStatus.DISQUALIFIED)
    return True
