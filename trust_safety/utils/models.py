# trust_safety/utils/models.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    """Роли пользователей площадки"""
    CONSUMER = "CONSUMER"
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"


class Actor(BaseModel):
    """Аутентифицированный автор запроса"""
    user_id: int
    role: UserRole = UserRole.CONSUMER
    # Если не передан, берется из хранилища
    risk_score: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


class RequestContext(BaseModel):
    """Корреляционные данные запроса для журнала аудита"""
    request_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None


class SecurityEvent(BaseModel):
    """Неизменяемая запись журнала событий безопасности"""
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    actor_user_id: Optional[int] = None
    actor_role: Optional[str] = None
    actor_email: Optional[str] = None
    action_type: str
    created_at: datetime = Field(default_factory=utcnow)
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UserRiskState(BaseModel):
    """Накопленный риск и блокировка пользователя"""
    user_id: int
    risk_score: int = 0
    restricted_until: Optional[datetime] = None

    def is_restricted(self, now: Optional[datetime] = None) -> bool:
        if self.restricted_until is None:
            return False
        return self.restricted_until > (now or utcnow())


class OffenderSummary(BaseModel):
    """Строка админского отчета о нарушителях"""
    user_id: int
    block_count: int
    last_blocked_at: Optional[datetime] = None
    risk_score: Optional[int] = None
    restricted_until: Optional[datetime] = None
