# trust_safety/services/risk_scoring/scanner.py
"""
Сканер риска: чистая оценка текста и контекстные варианты с окнами.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from loguru import logger

from trust_safety.config.models import ModerationConfig
from trust_safety.services.fault_policy import guarded_store_call
from trust_safety.services.ledger.base import ModerationStore
from trust_safety.services.risk_scoring.inspectors import (
    BaseInspector,
    ContactInfoInspector,
    KeywordInspector,
)
from trust_safety.services.risk_scoring.models import RiskAssessment, RiskCode, RiskSignal
from trust_safety.utils.models import utcnow
from trust_safety.utils.text import normalize_for_scan

# Порядок важен: сначала ключевые фразы, затем контакты
DEFAULT_INSPECTORS: List[BaseInspector] = [KeywordInspector(), ContactInfoInspector()]


def assess_text_risk(text: str) -> RiskAssessment:
    """
    Оценивает риск текста: ключевые фразы + контактные данные.

    Чистая функция: без I/O, регистронезависимая, пробелы схлопываются.
    """
    text = text or ""
    normalized = normalize_for_scan(text)

    signals: List[RiskSignal] = []
    for inspector in DEFAULT_INSPECTORS:
        signals.extend(inspector.inspect(text, normalized))

    return RiskAssessment.from_signals(signals)


# Псевдоним для антискам-проверок сообщений
scan_message_risk = assess_text_risk


class RiskScanner:
    """
    Контекстные варианты оценки риска.

    Поверх базового сканирования добавляют сигналы, требующие подсчета окна
    в хранилище: всплеск заказов, повтор сообщения, повтор сообщения ставки.
    Ошибка подсчета окна трактуется как 0.
    """

    def __init__(self, store: ModerationStore, config: Optional[ModerationConfig] = None):
        """
        Args:
            store: Хранилище модерации
            config: Параметры окон и порогов
        """
        self.store = store
        self.config = config or ModerationConfig()

    def _window_start(self, minutes: int, now: Optional[datetime]) -> datetime:
        return (now or utcnow()) - timedelta(minutes=minutes)

    async def assess_job_post_risk(
        self,
        consumer_id: int,
        title: str,
        description: str,
        location: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RiskAssessment:
        """
        Оценка публикации заказа с учетом частоты публикаций.

        Args:
            consumer_id: Заказчик
            title: Заголовок
            description: Описание
            location: Адрес (опционально)
            now: Текущее время (для тестов)

        Returns:
            Оценка с сигналом TOO_MANY_JOBS при >= 3 заказах за 30 минут
        """
        base = assess_text_risk(f"{title}\n{description}\n{location or ''}")

        window = self.config.job_post_window_minutes
        since = self._window_start(window, now)
        recent_count = await guarded_store_call(
            "window.job_posts",
            lambda: self.store.count_matching_jobs(consumer_id, since),
            0,
            user_id=consumer_id,
        )

        if recent_count < self.config.job_post_burst_threshold:
            return base

        extra = recent_count - (self.config.job_post_burst_threshold - 1)
        logger.info(f"🧾 Всплеск публикаций: consumer_id={consumer_id}, {recent_count} за {window}m")
        return base.with_signals(
            RiskSignal(
                code=RiskCode.TOO_MANY_JOBS,
                score=15 * extra,
                detail=f"{recent_count} jobs in {window}m",
            )
        )

    async def assess_repeated_message_risk(
        self,
        job_id: int,
        sender_id: int,
        text: str,
        now: Optional[datetime] = None,
    ) -> RiskAssessment:
        """
        Оценка сообщения в чате заказа с учетом повторов.

        REPEATED_MESSAGE добавляется, если тот же текст уже был отправлен
        >= 2 раз за 10 минут и нормализованный текст не короче 20 символов
        (короткие "ok" не штрафуются).
        """
        base = assess_text_risk(text)

        window = self.config.repeated_message_window_minutes
        since = self._window_start(window, now)
        same_count = await guarded_store_call(
            "window.repeated_message",
            lambda: self.store.count_matching_messages(job_id, sender_id, text, since),
            0,
            user_id=sender_id,
            job_id=job_id,
        )

        min_prior = self.config.repeated_message_min_prior
        if same_count < min_prior or len(normalize_for_scan(text)) < self.config.repeated_text_min_length:
            return base

        return base.with_signals(
            RiskSignal(
                code=RiskCode.REPEATED_MESSAGE,
                score=25 + (same_count - min_prior) * 10,
                detail=f"{same_count + 1} repeats in {window}m",
            )
        )

    async def assess_repeated_bid_message_risk(
        self,
        job_id: int,
        provider_id: int,
        message_text: str,
        now: Optional[datetime] = None,
    ) -> RiskAssessment:
        """Оценка сообщения ставки: повтор за 60 минут дает REPEATED_BID_MESSAGE."""
        base = assess_text_risk(message_text)

        window = self.config.repeated_bid_window_minutes
        since = self._window_start(window, now)
        same_count = await guarded_store_call(
            "window.repeated_bid",
            lambda: self.store.count_matching_bids(job_id, provider_id, message_text, since),
            0,
            user_id=provider_id,
            job_id=job_id,
        )

        min_prior = self.config.repeated_bid_min_prior
        if same_count < min_prior or len(normalize_for_scan(message_text)) < self.config.repeated_text_min_length:
            return base

        return base.with_signals(
            RiskSignal(
                code=RiskCode.REPEATED_BID_MESSAGE,
                score=20 + (same_count - min_prior) * 10,
                detail=f"{same_count + 1} repeats in {window}m",
            )
        )
