# trust_safety/services/moderation/decision.py
from typing import List

from trust_safety.services.moderation.models import BLOCKING_CODES, ModerationDecision
from trust_safety.services.risk_scoring.models import RiskAssessment, RiskCode


def decide_message_moderation(risk: RiskAssessment) -> ModerationDecision:
    """
    Решение по сообщению: BLOCK при любом CONTACT_INFO или BANNED_KEYWORD.

    Величина оценки не учитывается. Сигналы повторов сами по себе никогда
    не блокируют: они влияют только на накопленный риск.
    """
    reason_codes: List[RiskCode] = [code for code in BLOCKING_CODES if risk.has_code(code)]
    if reason_codes:
        return ModerationDecision.block(tuple(reason_codes))
    return ModerationDecision.allow()
