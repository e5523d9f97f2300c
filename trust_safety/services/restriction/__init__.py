# trust_safety/services/restriction/__init__.py
from trust_safety.services.restriction.policy import (
    RESTRICTION_HOURS_DEFAULT,
    RISK_RESTRICT_THRESHOLD,
    RISK_REVIEW_THRESHOLD,
    RestrictionDecision,
    ShadowHideDecision,
    apply_user_restriction,
    compute_escalating_restriction_minutes,
    compute_restricted_until,
    decide_restriction_from_recent_security_events,
    decide_shadow_hide_from_risk,
)

__all__ = [
    "RESTRICTION_HOURS_DEFAULT",
    "RISK_RESTRICT_THRESHOLD",
    "RISK_REVIEW_THRESHOLD",
    "RestrictionDecision",
    "ShadowHideDecision",
    "apply_user_restriction",
    "compute_escalating_restriction_minutes",
    "compute_restricted_until",
    "decide_restriction_from_recent_security_events",
    "decide_shadow_hide_from_risk",
]
