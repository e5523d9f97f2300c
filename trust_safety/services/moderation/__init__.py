# trust_safety/services/moderation/__init__.py
"""
Модуль модерации сообщений, ставок и заказов.

Компоненты:
- ModerationService - оркестрация проверок
- decide_message_moderation - решение ALLOW/BLOCK по оценке риска
- should_bypass_off_platform_contact_block - шлюз контактов вне площадки
"""
from trust_safety.services.moderation.contact_gate import (
    classify_off_platform_risk,
    compute_risk_score_excluding_contact_like,
    job_status_allows_off_platform_contact,
    should_bypass_off_platform_contact_block,
)
from trust_safety.services.moderation.decision import decide_message_moderation
from trust_safety.services.moderation.models import (
    BlockCode,
    GateDecision,
    GateReason,
    JobPostModerationResult,
    ModerationDecision,
    ModerationOutcome,
)
from trust_safety.services.moderation.service import ModerationService

__all__ = [
    "BlockCode",
    "GateDecision",
    "GateReason",
    "JobPostModerationResult",
    "ModerationDecision",
    "ModerationOutcome",
    "ModerationService",
    "classify_off_platform_risk",
    "compute_risk_score_excluding_contact_like",
    "decide_message_moderation",
    "job_status_allows_off_platform_contact",
    "should_bypass_off_platform_contact_block",
]
