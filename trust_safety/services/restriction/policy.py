# trust_safety/services/restriction/policy.py
"""
Политика эскалации и ограничений аккаунта.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Literal, Optional, Sequence

from loguru import logger

from trust_safety.config.models import EscalationStep, default_escalation_steps
from trust_safety.services.fault_policy import guarded_store_call
from trust_safety.services.ledger.base import ModerationStore
from trust_safety.utils.models import utcnow

RISK_REVIEW_THRESHOLD = 60
RISK_RESTRICT_THRESHOLD = 100
RESTRICTION_HOURS_DEFAULT = 24
SHADOW_HIDE_AT_OR_ABOVE = 40


@dataclass(frozen=True)
class RestrictionDecision:
    action: Literal["NONE", "RESTRICT"] = "NONE"
    restricted_until: Optional[datetime] = None
    minutes: Optional[int] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_restrict(self) -> bool:
        return self.action == "RESTRICT"


@dataclass(frozen=True)
class ShadowHideDecision:
    action: Literal["NONE", "HIDE"] = "NONE"
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_hide(self) -> bool:
        return self.action == "HIDE"


def compute_restricted_until(
    hours: float = RESTRICTION_HOURS_DEFAULT, now: Optional[datetime] = None
) -> datetime:
    return (now or utcnow()) + timedelta(hours=hours)


def compute_escalating_restriction_minutes(
    violation_count_including_this: int,
    steps: Optional[Sequence[EscalationStep]] = None,
) -> Optional[int]:
    """
    Выбирает длительность блокировки по лестнице эскалации.

    Побеждает последняя выполненная ступень: при ступенях 3→30, 5→360,
    8→1440 счетчик 6 дает 360, а 10 дает 1440.

    Args:
        violation_count_including_this: Нарушения в окне, включая текущее
        steps: Упорядоченная лестница (по умолчанию из конфигурации)

    Returns:
        Минуты блокировки или None, если ни одна ступень не достигнута
    """
    if steps is None:
        steps = default_escalation_steps()

    picked: Optional[int] = None
    for step in steps:
        if violation_count_including_this >= step.at_or_above:
            picked = step.minutes
    return picked


async def decide_restriction_from_recent_security_events(
    store: ModerationStore,
    actor_user_id: int,
    action_type: str,
    window_minutes: int,
    reason: str,
    steps: Optional[Sequence[EscalationStep]] = None,
    now: Optional[datetime] = None,
) -> RestrictionDecision:
    """
    Решение об ограничении по частоте событий актора в журнале.

    Счетчик обычно уже включает только что записанное событие. Ошибка
    запроса не блокирует вызывающего: возвращается NONE.

    Args:
        store: Хранилище модерации
        actor_user_id: Пользователь
        action_type: Тип события ("message.blocked", "bid.blocked" ...)
        window_minutes: Окно подсчета
        reason: Причина для RESTRICT
        steps: Лестница эскалации
        now: Текущее время (для тестов)

    Returns:
        RestrictionDecision
    """
    now = now or utcnow()
    since = now - timedelta(minutes=window_minutes)

    recent_count = await guarded_store_call(
        "window.recent_violations",
        lambda: store.count_events(actor_user_id, action_type, since),
        None,
        user_id=actor_user_id,
        action_type=action_type,
    )
    if recent_count is None:
        return RestrictionDecision()

    minutes = compute_escalating_restriction_minutes(recent_count, steps)
    if not minutes:
        return RestrictionDecision()

    return RestrictionDecision(
        action="RESTRICT",
        restricted_until=compute_restricted_until(minutes / 60, now),
        minutes=minutes,
        reason=reason,
        metadata={"recent_count": recent_count, "window_minutes": window_minutes},
    )


async def apply_user_restriction(
    store: ModerationStore,
    user_id: int,
    restricted_until: datetime,
    risk_score_increment: Optional[int] = None,
    now: Optional[datetime] = None,
    max_tries: int = 3,
) -> bool:
    """
    Записывает ограничение пользователя (best-effort).

    Прошедшее время не записывается никогда. Ошибки записи повторяются,
    затем логируются и проглатываются.

    Returns:
        True, если ограничение записано
    """
    if restricted_until < (now or utcnow()):
        logger.warning(
            f"⚠️ Отклонено ограничение в прошлом для user_id={user_id}: {restricted_until.isoformat()}"
        )
        return False

    if risk_score_increment:
        await guarded_store_call(
            "user.increment_risk",
            lambda: store.increment_user_risk(user_id, risk_score_increment),
            None,
            max_tries=max_tries,
            user_id=user_id,
        )

    async def write() -> bool:
        await store.set_restricted_until(user_id, restricted_until)
        return True

    applied = await guarded_store_call(
        "user.set_restricted_until",
        write,
        False,
        max_tries=max_tries,
        user_id=user_id,
    )
    if applied:
        logger.warning(f"🔒 user_id={user_id} ограничен до {restricted_until.isoformat()}")
    return applied


def decide_shadow_hide_from_risk(
    risk_total_score: int,
    reason: str,
    hide_at_or_above: int = SHADOW_HIDE_AT_OR_ABOVE,
    metadata: Optional[Dict[str, Any]] = None,
) -> ShadowHideDecision:
    """Тихое скрытие контента без уведомления автора при риске >= порога."""
    if risk_total_score >= hide_at_or_above:
        return ShadowHideDecision(action="HIDE", reason=reason, metadata=dict(metadata or {}))
    return ShadowHideDecision()
