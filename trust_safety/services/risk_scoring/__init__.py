# trust_safety/services/risk_scoring/__init__.py
"""
Модуль оценки риска текста.

Компоненты:
- assess_text_risk - чистое сканирование (фразы + контакты)
- RiskScanner - варианты с окнами повторов из хранилища
"""
from trust_safety.services.risk_scoring.models import RiskAssessment, RiskCode, RiskSignal
from trust_safety.services.risk_scoring.scanner import (
    RiskScanner,
    assess_text_risk,
    scan_message_risk,
)

__all__ = [
    "RiskAssessment",
    "RiskCode",
    "RiskScanner",
    "RiskSignal",
    "assess_text_risk",
    "scan_message_risk",
]
