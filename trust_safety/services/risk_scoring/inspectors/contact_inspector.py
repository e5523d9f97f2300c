# trust_safety/services/risk_scoring/inspectors/contact_inspector.py
"""
Инспектор контактных данных (email / телефон).
"""
import re
from typing import List

from trust_safety.services.risk_scoring.inspectors.base import BaseInspector
from trust_safety.services.risk_scoring.models import RiskCode, RiskSignal


EMAIL_PATTERN = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE | re.ASCII)
# Ориентирован на США, только ASCII-цифры; короткие числовые диапазоны ("10-15") не совпадают
PHONE_PATTERN = re.compile(r"(?:\+?1[\s.-]?)?(?:\(\d{3}\)|\d{3})[\s.-]?\d{3}[\s.-]?\d{4}", re.ASCII)

SINGLE_CONTACT_SCORE = 35
BOTH_CONTACTS_SCORE = 55


class ContactInfoInspector(BaseInspector):
    """
    Один сигнал CONTACT_INFO на текст: 35, если найден email или телефон,
    55, если найдены оба.
    """

    def inspect(self, text: str, normalized: str) -> List[RiskSignal]:
        has_email = EMAIL_PATTERN.search(text) is not None
        has_phone = PHONE_PATTERN.search(text) is not None

        if not (has_email or has_phone):
            return []

        kinds = [kind for kind, found in (("email", has_email), ("phone", has_phone)) if found]
        score = BOTH_CONTACTS_SCORE if has_email and has_phone else SINGLE_CONTACT_SCORE
        return [RiskSignal(code=RiskCode.CONTACT_INFO, score=score, detail=",".join(kinds))]
