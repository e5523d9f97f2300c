# trust_safety/services/fault_policy.py
"""
Политика отказов хранилища для каждого места вызова.

Вся позиция безопасности собрана в одной таблице STORE_CALL_POLICIES:
- FAIL_OPEN: вспомогательные запросы (окна, проверки, аудит): при ошибке
  возвращаем разрешающее значение по умолчанию и логируем;
- RETRY_THEN_SWALLOW: записи riskScore / restrictedUntil: повторяем с
  экспоненциальной паузой, затем логируем и проглатываем.

Ошибки схемы (миграция в процессе) не повторяются никогда.
"""
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, TypeVar

import backoff
from loguru import logger

from trust_safety.services.ledger.base import is_missing_column_error

T = TypeVar("T")


class FaultPolicy(str, Enum):
    FAIL_OPEN = "fail_open"
    RETRY_THEN_SWALLOW = "retry_then_swallow"


STORE_CALL_POLICIES: Dict[str, FaultPolicy] = {
    # Окна повторов при сканировании
    "window.repeated_message": FaultPolicy.FAIL_OPEN,
    "window.repeated_bid": FaultPolicy.FAIL_OPEN,
    "window.job_posts": FaultPolicy.FAIL_OPEN,
    # Запись трафика в окна после ALLOW
    "window.record": FaultPolicy.FAIL_OPEN,
    # Эскалация по частоте блокировок
    "window.recent_violations": FaultPolicy.FAIL_OPEN,
    # Обход блокировки контактов
    "lookup.contact_exchange": FaultPolicy.FAIL_OPEN,
    "lookup.verification_status": FaultPolicy.FAIL_OPEN,
    "lookup.user_risk_state": FaultPolicy.FAIL_OPEN,
    # Журнал аудита
    "ledger.insert_event": FaultPolicy.FAIL_OPEN,
    # Обязательные записи
    "user.increment_risk": FaultPolicy.RETRY_THEN_SWALLOW,
    "user.set_restricted_until": FaultPolicy.RETRY_THEN_SWALLOW,
}

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_MAX_WAIT = 0.5


def backoff_hdlr(details: Dict[str, Any]) -> None:
    """Логирует информацию о повторных попытках записи."""
    logger.warning(
        "Backing off {wait:0.2f}s after {tries} tries calling {target.__name__} due to {exception}".format(
            **details
        )
    )


def _format_context(context: Dict[str, Any]) -> str:
    return ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)


async def guarded_store_call(
    site: str,
    call: Callable[[], Awaitable[T]],
    default: T,
    *,
    max_tries: int = DEFAULT_RETRY_ATTEMPTS,
    max_wait: float = DEFAULT_RETRY_MAX_WAIT,
    **context: Any,
) -> T:
    """
    Выполняет обращение к хранилищу по политике места вызова.

    Args:
        site: Ключ из STORE_CALL_POLICIES
        call: Фабрика корутины обращения к хранилищу
        default: Значение при отказе
        max_tries: Максимум попыток для RETRY_THEN_SWALLOW
        max_wait: Потолок паузы между попытками (сек)
        **context: Контекст для логов (user_id, job_id, action_type ...)

    Returns:
        Результат вызова или default при отказе
    """
    policy = STORE_CALL_POLICIES[site]

    if policy is FaultPolicy.RETRY_THEN_SWALLOW:

        @backoff.on_exception(
            backoff.expo,
            Exception,
            max_tries=max_tries,
            giveup=is_missing_column_error,
            on_backoff=backoff_hdlr,
            factor=0.05,
            max_value=max_wait,
        )
        async def attempt() -> T:
            return await call()

    else:

        async def attempt() -> T:
            return await call()

    try:
        return await attempt()
    except Exception as e:
        if is_missing_column_error(e):
            logger.warning(
                f"⚠️ [{site}] схема хранилища отстает, пропускаем: {e} ({_format_context(context)})"
            )
        elif policy is FaultPolicy.RETRY_THEN_SWALLOW:
            logger.error(
                f"❌ [{site}] запись не удалась после {max_tries} попыток: {e} ({_format_context(context)})"
            )
        else:
            logger.warning(
                f"⚠️ [{site}] ошибка хранилища, используем {default!r}: {e} ({_format_context(context)})"
            )
        return default
