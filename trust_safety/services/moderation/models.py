# trust_safety/services/moderation/models.py
"""
Модели решений модерации и ответов для клиента.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from trust_safety.services.risk_scoring.models import RiskAssessment, RiskCode

# Коды, которые могут быть причиной блокировки
BLOCKING_CODES: Tuple[RiskCode, ...] = (RiskCode.CONTACT_INFO, RiskCode.BANNED_KEYWORD)


@dataclass(frozen=True)
class ModerationDecision:
    """ALLOW или BLOCK с непустым набором причин из BLOCKING_CODES."""
    action: Literal["ALLOW", "BLOCK"] = "ALLOW"
    reason_codes: Tuple[RiskCode, ...] = ()

    def __post_init__(self) -> None:
        if self.action == "BLOCK":
            if not self.reason_codes:
                raise ValueError("BLOCK требует хотя бы одну причину")
            if any(code not in BLOCKING_CODES for code in self.reason_codes):
                raise ValueError(f"Недопустимые причины блокировки: {self.reason_codes}")
        elif self.reason_codes:
            raise ValueError("ALLOW не содержит причин")

    @classmethod
    def allow(cls) -> "ModerationDecision":
        return cls()

    @classmethod
    def block(cls, reason_codes: Tuple[RiskCode, ...]) -> "ModerationDecision":
        return cls(action="BLOCK", reason_codes=tuple(reason_codes))

    @property
    def is_block(self) -> bool:
        return self.action == "BLOCK"

    def to_dict(self) -> Dict[str, Any]:
        if not self.is_block:
            return {"action": "ALLOW"}
        return {"action": "BLOCK", "reasonCodes": [code.value for code in self.reason_codes]}


@dataclass(frozen=True)
class OffPlatformClassification:
    has_contact_info: bool = False
    off_platform_keywords: Tuple[str, ...] = ()
    scam_keywords: Tuple[str, ...] = ()
    is_only_contact_like: bool = False


class GateReason(str, Enum):
    JOB_STATUS_AWARDED_OR_LATER = "job_status_awarded_or_later"
    CONTACT_EXCHANGE_APPROVED = "contact_exchange_approved"
    SENDER_VERIFIED_LOW_RISK = "sender_verified_low_risk"


@dataclass(frozen=True)
class GateDecision:
    bypass: bool = False
    reason: Optional[GateReason] = None


class BlockCode(str, Enum):
    CONTACT_INFO_NOT_ALLOWED = "CONTACT_INFO_NOT_ALLOWED"
    MESSAGE_BLOCKED = "MESSAGE_BLOCKED"


class BlockedMessageBody(BaseModel):
    """Тело ответа 400 при блокировке. Клиент ветвит UI по `code`."""
    model_config = ConfigDict(populate_by_name=True)

    error: str
    code: BlockCode
    blocked: Literal[True] = True
    reason_codes: List[str] = Field(alias="reasonCodes")
    appeal_url: str = Field(alias="appealUrl")


@dataclass(frozen=True)
class ModerationOutcome:
    """
    Итог модерации для вызывающего кода.

    Attributes:
        action: ALLOW / BLOCK (400) / RESTRICTED (403)
        status: HTTP-статус для клиента
        body: Тело ответа при BLOCK
        restricted_until: До какого момента аккаунт ограничен (RESTRICTED)
        message: Текст для клиента при RESTRICTED
    """
    action: Literal["ALLOW", "BLOCK", "RESTRICTED"] = "ALLOW"
    status: int = 200
    body: Optional[BlockedMessageBody] = None
    restricted_until: Optional[datetime] = None
    message: Optional[str] = None

    @classmethod
    def allow(cls) -> "ModerationOutcome":
        return cls()

    @classmethod
    def block(cls, body: BlockedMessageBody) -> "ModerationOutcome":
        return cls(action="BLOCK", status=400, body=body)

    @classmethod
    def restricted(cls, restricted_until: datetime, message: str) -> "ModerationOutcome":
        return cls(action="RESTRICTED", status=403, restricted_until=restricted_until, message=message)

    def to_payload(self) -> Dict[str, Any]:
        if self.action == "BLOCK" and self.body is not None:
            return self.body.model_dump(mode="json", by_alias=True)
        if self.action == "RESTRICTED":
            return {
                "message": self.message,
                "restrictedUntil": self.restricted_until.isoformat() if self.restricted_until else None,
            }
        return {"action": "ALLOW"}


@dataclass(frozen=True)
class JobPostModerationResult:
    hidden: bool
    risk: RiskAssessment
    outcome: ModerationOutcome = field(default_factory=ModerationOutcome.allow)

    def to_payload(self) -> Dict[str, Any]:
        if self.outcome.action != "ALLOW":
            return self.outcome.to_payload()
        return {"action": "ALLOW", "hidden": self.hidden, "riskScore": self.risk.total_score}
