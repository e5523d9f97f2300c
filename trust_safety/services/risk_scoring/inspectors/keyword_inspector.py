# trust_safety/services/risk_scoring/inspectors/keyword_inspector.py
"""
Инспектор запрещенных фраз (платежный фрод и уход с площадки).
"""
from typing import List, Sequence, Tuple

from trust_safety.services.risk_scoring.inspectors.base import BaseInspector
from trust_safety.services.risk_scoring.models import RiskCode, RiskSignal


# Фраза -> вес. Пересекающиеся фразы ("cashapp" / "cash app") срабатывают обе.
BANNED_KEYWORDS: Tuple[Tuple[str, int], ...] = (
    ("western union", 50),
    ("moneygram", 50),
    ("gift card", 40),
    ("steam card", 40),
    ("wire transfer", 45),
    ("bank transfer", 45),
    ("crypto", 35),
    ("bitcoin", 35),
    ("zelle", 25),
    ("telegram", 25),
    ("whatsapp", 20),
    ("whats app", 20),
    ("cashapp", 20),
    ("cash app", 20),
    ("venmo", 20),
    ("venmo me", 20),
    ("paypal", 20),
)


class KeywordInspector(BaseInspector):
    """
    Ищет фразы из банка как подстроки нормализованного текста.

    Каждое совпадение дает отдельный сигнал BANNED_KEYWORD с фразой в detail.
    """

    def __init__(self, keyword_bank: Sequence[Tuple[str, int]] = BANNED_KEYWORDS):
        self.keyword_bank = tuple((phrase.lower(), score) for phrase, score in keyword_bank)

    def inspect(self, text: str, normalized: str) -> List[RiskSignal]:
        return [
            RiskSignal(code=RiskCode.BANNED_KEYWORD, score=score, detail=phrase)
            for phrase, score in self.keyword_bank
            if phrase in normalized
        ]
