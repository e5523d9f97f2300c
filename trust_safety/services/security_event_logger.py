# trust_safety/services/security_event_logger.py
"""
Запись событий безопасности в журнал аудита (best-effort).
"""
import json
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from loguru import logger

from trust_safety.services.fault_policy import guarded_store_call
from trust_safety.services.ledger.base import ModerationStore
from trust_safety.utils.models import Actor, RequestContext, SecurityEvent, utcnow

SENSITIVE_KEY = re.compile(
    r"(password|pass|pwd|token|secret|jwt|authorization|cookie|set-cookie|stripe|clientsecret|webhooksecret)",
    re.IGNORECASE,
)
SENSITIVE_VALUE = re.compile(
    r"^(Bearer\s+.+|sk_(live|test)_.+|whsec_.+|eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+)$"
)

MAX_DEPTH = 6
MAX_STRING = 2000
MAX_ITEMS = 200
MAX_METADATA_JSON = 20_000

# Хранятся в отдельных полях события и удаляются из metadata
RESERVED_KEYS = ("actor_user_id", "actor_role", "actor_email", "target_type", "target_id")


def _scrub(value: Any, depth: int) -> Any:
    if depth <= 0:
        return "[TRUNCATED]"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, Enum):
        return _scrub(value.value, depth)

    if isinstance(value, datetime):
        return value.isoformat()

    if isinstance(value, str):
        if SENSITIVE_VALUE.match(value):
            return "[REDACTED]"
        return f"{value[:MAX_STRING]}…" if len(value) > MAX_STRING else value

    if isinstance(value, (list, tuple)):
        return [_scrub(v, depth - 1) for v in list(value)[:MAX_ITEMS]]

    if isinstance(value, dict):
        keys = list(value.keys())
        out: Dict[str, Any] = {}
        for key in keys[:MAX_ITEMS]:
            name = str(key)
            out[name] = "[REDACTED]" if SENSITIVE_KEY.search(name) else _scrub(value[key], depth - 1)
        if len(keys) > MAX_ITEMS:
            out["__truncated_keys"] = True
            out["__original_key_count"] = len(keys)
        return out

    return "[UNSERIALIZABLE]"


def scrub_security_metadata(metadata: Any) -> Dict[str, Any]:
    """
    Очищает metadata события перед записью.

    - Маскирует секреты по имени ключа и по виду значения
    - Обрезает длинные строки, списки и словари
    - Заменяет слишком большой результат маркером усечения
    """
    scrubbed = _scrub(metadata, MAX_DEPTH)
    if not isinstance(scrubbed, dict):
        scrubbed = {"value": scrubbed}

    try:
        if len(json.dumps(scrubbed)) <= MAX_METADATA_JSON:
            return scrubbed
    except (TypeError, ValueError):
        return {"__truncated": True, "__reason": "metadata_unserializable"}

    keys = list(scrubbed.keys())
    return {
        "__truncated": True,
        "__reason": "metadata_too_large",
        "__keys": keys[:100],
        "__key_count": len(keys),
    }


class SecurityEventLogger:
    """
    Пишет события безопасности в журнал.

    Ошибка записи никогда не прерывает модерацию: событие логируется
    как предупреждение и теряется.
    """

    def __init__(self, store: ModerationStore):
        self.store = store

    def build_event(
        self,
        action_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        actor: Optional[Actor] = None,
        request_context: Optional[RequestContext] = None,
        created_at: Optional[datetime] = None,
    ) -> SecurityEvent:
        payload = dict(metadata or {})
        if request_context and request_context.request_id and not isinstance(payload.get("request_id"), str):
            payload["request_id"] = request_context.request_id

        reserved = {key: payload.pop(key, None) for key in RESERVED_KEYS}

        actor_user_id = reserved["actor_user_id"]
        if not isinstance(actor_user_id, int):
            actor_user_id = actor.user_id if actor else None

        actor_role = reserved["actor_role"]
        if not isinstance(actor_role, str):
            actor_role = actor.role.value if actor else None

        target_id = reserved["target_id"]
        if isinstance(target_id, (int, str)) and not isinstance(target_id, bool):
            target_id = str(target_id)
        else:
            target_id = None

        return SecurityEvent(
            action_type=action_type,
            created_at=created_at or utcnow(),
            actor_user_id=actor_user_id,
            actor_role=actor_role,
            actor_email=reserved["actor_email"] if isinstance(reserved["actor_email"], str) else None,
            target_type=reserved["target_type"] if isinstance(reserved["target_type"], str) else None,
            target_id=target_id,
            ip=request_context.ip if request_context else None,
            user_agent=request_context.user_agent if request_context else None,
            metadata=scrub_security_metadata(payload),
        )

    async def log(
        self,
        action_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        actor: Optional[Actor] = None,
        request_context: Optional[RequestContext] = None,
        created_at: Optional[datetime] = None,
    ) -> Optional[SecurityEvent]:
        """
        Записывает событие безопасности.

        Зарезервированные ключи metadata (actor_user_id, actor_role,
        actor_email, target_type, target_id) переносятся в поля события.

        Returns:
            Сохраненное событие или None, если запись не удалась
        """
        try:
            event = self.build_event(action_type, metadata, actor, request_context, created_at)
        except Exception as e:
            logger.warning(f"[securityEvent] не удалось собрать событие {action_type}: {e}")
            return None

        stored = await guarded_store_call(
            "ledger.insert_event",
            lambda: self.store.insert_event(event),
            None,
            action_type=action_type,
            user_id=event.actor_user_id,
        )
        if stored is not None:
            logger.info(
                f"🛡️ security event {action_type}: actor={stored.actor_user_id}, "
                f"target={stored.target_type}:{stored.target_id}"
            )
        return stored
