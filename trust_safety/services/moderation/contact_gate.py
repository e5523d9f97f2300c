# trust_safety/services/moderation/contact_gate.py
"""
Шлюз контактов вне площадки.

"Контактные" сигналы: телефон/email (CONTACT_INFO) и мессенджеры
(telegram/whatsapp). Остальные BANNED_KEYWORD означают платежный фрод: такие
сообщения остаются заблокированными при любом статусе заказа.
"""
from typing import Optional

from trust_safety.services.moderation.models import (
    GateDecision,
    GateReason,
    OffPlatformClassification,
)
from trust_safety.services.risk_scoring.models import RiskAssessment, RiskCode, RiskSignal

OFF_PLATFORM_KEYWORDS = frozenset({"telegram", "whatsapp"})

# Единственный статус до выбора исполнителя
PRE_AWARD_STATUS = "OPEN"


def _keyword_detail(signal: RiskSignal) -> str:
    return str(signal.detail or "").lower()


def _is_contact_like(signal: RiskSignal) -> bool:
    if signal.code is RiskCode.CONTACT_INFO:
        return True
    return signal.code is RiskCode.BANNED_KEYWORD and _keyword_detail(signal) in OFF_PLATFORM_KEYWORDS


def classify_off_platform_risk(risk: RiskAssessment) -> OffPlatformClassification:
    has_contact_info = risk.has_code(RiskCode.CONTACT_INFO)

    details = []
    for signal in risk.signals:
        if signal.code is RiskCode.BANNED_KEYWORD:
            detail = _keyword_detail(signal)
            if detail and detail not in details:
                details.append(detail)

    off_platform = tuple(d for d in details if d in OFF_PLATFORM_KEYWORDS)
    scam = tuple(d for d in details if d not in OFF_PLATFORM_KEYWORDS)

    return OffPlatformClassification(
        has_contact_info=has_contact_info,
        off_platform_keywords=off_platform,
        scam_keywords=scam,
        is_only_contact_like=(has_contact_info or bool(off_platform)) and not scam,
    )


def job_status_allows_off_platform_contact(job_status: Optional[str]) -> bool:
    """Заказ выбран (AWARDED) или продвинулся дальше по жизненному циклу."""
    if not job_status:
        return False
    return str(job_status).upper() != PRE_AWARD_STATUS


def should_bypass_off_platform_contact_block(
    risk: RiskAssessment,
    job_status: Optional[str],
    contact_exchange_approved: bool,
    sender_verified_low_risk: bool,
) -> GateDecision:
    """
    Решает, можно ли пропустить заблокированное "контактное" сообщение.

    Условия проверяются по порядку, побеждает первое выполненное:
    1. статус заказа AWARDED или дальше;
    2. есть одобренный запрос обмена контактами;
    3. отправитель: проверенный исполнитель с низким риском.

    Любая платежная фраза (zelle, crypto ...) дает bypass=False.
    """
    if not classify_off_platform_risk(risk).is_only_contact_like:
        return GateDecision()

    if job_status_allows_off_platform_contact(job_status):
        return GateDecision(bypass=True, reason=GateReason.JOB_STATUS_AWARDED_OR_LATER)

    if contact_exchange_approved:
        return GateDecision(bypass=True, reason=GateReason.CONTACT_EXCHANGE_APPROVED)

    if sender_verified_low_risk:
        return GateDecision(bypass=True, reason=GateReason.SENDER_VERIFIED_LOW_RISK)

    return GateDecision()


def compute_risk_score_excluding_contact_like(risk: RiskAssessment) -> int:
    """Оценка без контактных сигналов: пользователь не штрафуется за разрешенное."""
    return sum(signal.score for signal in risk.signals if not _is_contact_like(signal))
