# trust_safety/config/models/security.py
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EscalationStep(BaseModel):
    """Ступень лестницы эскалации: от `at_or_above` нарушений: блокировка на `minutes`."""

    model_config = ConfigDict(frozen=True)

    at_or_above: int = Field(ge=1)
    minutes: int = Field(ge=0)


def default_escalation_steps() -> List[EscalationStep]:
    return [
        EscalationStep(at_or_above=3, minutes=30),
        EscalationStep(at_or_above=5, minutes=6 * 60),
        EscalationStep(at_or_above=8, minutes=24 * 60),
    ]


class ModerationConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    # Пороги накопленного риска
    risk_review_threshold: int = 60
    risk_restrict_threshold: int = 100
    restriction_hours_default: int = 24

    # Обход блокировки контактов для проверенных исполнителей
    verified_low_risk_max: int = 25

    # Окна подсчета (минуты)
    job_post_window_minutes: int = 30
    job_post_burst_threshold: int = 3
    repeated_message_window_minutes: int = 10
    repeated_message_min_prior: int = 2
    repeated_bid_window_minutes: int = 60
    repeated_bid_min_prior: int = 1
    repeated_text_min_length: int = 20

    # Эскалация по частоте заблокированных сообщений
    blocked_message_window_minutes: int = 60
    blocked_message_restrict_at: int = 3
    blocked_bid_window_minutes: int = 60
    escalation_steps: List[EscalationStep] = Field(default_factory=default_escalation_steps)

    shadow_hide_at_or_above: int = 40

    appeal_url: str = "/support/appeals"
    text_preview_chars: int = 200

    # Повторы записи riskScore / restrictedUntil
    store_retry_attempts: int = 3
    store_retry_max_wait: float = 0.5
    # Хранение окон сообщений/ставок/заказов в Redis (сек)
    window_retention_seconds: int = 86400

    @field_validator("escalation_steps")
    @classmethod
    def ensure_ascending_steps(cls, v: List[EscalationStep]) -> List[EscalationStep]:
        thresholds = [step.at_or_above for step in v]
        if thresholds != sorted(thresholds):
            raise ValueError("escalation_steps: пороги at_or_above должны идти по возрастанию.")
        return v
