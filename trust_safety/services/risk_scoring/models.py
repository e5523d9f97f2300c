# trust_safety/services/risk_scoring/models.py
"""
Модели данных для оценки риска текста.
"""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


class RiskCode(str, Enum):
    BANNED_KEYWORD = "BANNED_KEYWORD"
    CONTACT_INFO = "CONTACT_INFO"
    TOO_MANY_JOBS = "TOO_MANY_JOBS"
    REPEATED_MESSAGE = "REPEATED_MESSAGE"
    REPEATED_BID_MESSAGE = "REPEATED_BID_MESSAGE"


@dataclass(frozen=True)
class RiskSignal:
    """
    Один взвешенный сигнал риска.

    Attributes:
        code: Тип сигнала
        score: Неотрицательный вес сигнала
        detail: Пояснение (совпавшая фраза, "email,phone", "3 repeats in 10m")
    """
    code: RiskCode
    score: int
    detail: Optional[str] = None

    def __post_init__(self) -> None:
        if self.score < 0:
            raise ValueError(f"RiskSignal.score не может быть отрицательным: {self.score}")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["code"] = self.code.value
        return data


@dataclass(frozen=True)
class RiskAssessment:
    """
    Результат сканирования одного текста.

    Создавайте через `RiskAssessment.from_signals`, чтобы total_score
    всегда совпадал с суммой сигналов.
    """
    total_score: int = 0
    signals: Tuple[RiskSignal, ...] = field(default_factory=tuple)

    @classmethod
    def from_signals(cls, signals: Iterable[RiskSignal]) -> "RiskAssessment":
        signals = tuple(signals)
        return cls(total_score=sum(s.score for s in signals), signals=signals)

    def with_signals(self, *extra: RiskSignal) -> "RiskAssessment":
        return RiskAssessment.from_signals(self.signals + tuple(extra))

    def has_code(self, code: RiskCode) -> bool:
        return any(s.code is code for s in self.signals)

    def signals_as_dicts(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self.signals]
