# trust_safety/services/ledger/base.py
"""
Контракт хранилища, которым пользуется движок модерации.
"""
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from trust_safety.utils.models import OffenderSummary, SecurityEvent, UserRiskState


_MISSING_COLUMN_CODES = {"P2022", "42703"}
_COLUMN_RE = re.compile(r"column", re.IGNORECASE)
_NOT_EXIST_RE = re.compile(r"does not exist", re.IGNORECASE)


class StoreSchemaError(Exception):
    """Схема хранилища отстает от кода (идет миграция)."""

    code = "P2022"


def is_missing_column_error(err: BaseException) -> bool:
    """
    Определяет ошибку "колонка не существует" во время незавершенной миграции.

    Распознает StoreSchemaError, коды P2022 / 42703 и текст сообщения.
    """
    if isinstance(err, StoreSchemaError):
        return True
    code = str(getattr(err, "code", "") or getattr(err, "pgcode", "") or "")
    if code in _MISSING_COLUMN_CODES:
        return True
    message = str(err)
    return bool(_COLUMN_RE.search(message) and _NOT_EXIST_RE.search(message))


class ModerationStore(ABC):
    """
    Минимальный набор операций, которые движок требует от слоя хранения.

    Все операции являются точечными или диапазонными запросами. Инкремент риска обязан
    быть атомарным на стороне хранилища.
    """

    # --- Журнал событий ---
    @abstractmethod
    async def count_events(self, actor_user_id: int, action_type: str, since: datetime) -> int:
        """События актора данного типа с created_at > since."""

    @abstractmethod
    async def insert_event(self, event: SecurityEvent) -> SecurityEvent:
        """Добавляет событие и возвращает его с присвоенным id."""

    @abstractmethod
    async def list_event_offenders(
        self,
        action_type: str,
        since: datetime,
        min_count: int,
        limit: int,
    ) -> List[OffenderSummary]:
        """Акторы с >= min_count событиями в окне, последние нарушители первыми."""

    # --- Окна повторов ---
    @abstractmethod
    async def count_matching_messages(
        self, job_id: int, sender_id: int, text: str, since: datetime
    ) -> int:
        """Сообщения с точно таким же текстом от отправителя по заказу."""

    @abstractmethod
    async def count_matching_bids(
        self, job_id: int, provider_id: int, message_text: str, since: datetime
    ) -> int:
        """Ставки с точно таким же сообщением от исполнителя по заказу."""

    @abstractmethod
    async def count_matching_jobs(self, consumer_id: int, since: datetime) -> int:
        """Заказы, опубликованные заказчиком после since."""

    # --- Пользователи ---
    @abstractmethod
    async def get_user_risk_state(self, user_id: int) -> UserRiskState:
        ...

    @abstractmethod
    async def increment_user_risk(self, user_id: int, amount: int) -> int:
        """Атомарно увеличивает risk_score и возвращает новое значение."""

    @abstractmethod
    async def set_restricted_until(self, user_id: int, restricted_until: datetime) -> None:
        ...

    # --- Обмен контактами и верификация ---
    @abstractmethod
    async def find_approved_exchange(self, job_id: int) -> Optional[str]:
        """id одобренного запроса обмена контактами по заказу или None."""

    @abstractmethod
    async def get_verification_status(self, provider_id: int) -> Optional[str]:
        ...
