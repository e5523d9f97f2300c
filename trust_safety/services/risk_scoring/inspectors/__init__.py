# trust_safety/services/risk_scoring/inspectors/__init__.py
from trust_safety.services.risk_scoring.inspectors.base import BaseInspector
from trust_safety.services.risk_scoring.inspectors.contact_inspector import ContactInfoInspector
from trust_safety.services.risk_scoring.inspectors.keyword_inspector import (
    BANNED_KEYWORDS,
    KeywordInspector,
)

__all__ = [
    "BANNED_KEYWORDS",
    "BaseInspector",
    "ContactInfoInspector",
    "KeywordInspector",
]
