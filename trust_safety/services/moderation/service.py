# trust_safety/services/moderation/service.py
"""
Сервис модерации: сообщения в чате заказа, сообщения ставок и публикации заказов.

Вердикты (BLOCK / RESTRICTED) возвращаются как ModerationOutcome, а не
исключения. Ошибки хранилища обрабатываются по таблице STORE_CALL_POLICIES.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from trust_safety.config.models import EscalationStep, ModerationConfig
from trust_safety.services.fault_policy import guarded_store_call
from trust_safety.services.ledger.base import ModerationStore
from trust_safety.services.moderation.contact_gate import (
    classify_off_platform_risk,
    compute_risk_score_excluding_contact_like,
    should_bypass_off_platform_contact_block,
)
from trust_safety.services.moderation.decision import decide_message_moderation
from trust_safety.services.moderation.models import (
    BlockCode,
    BlockedMessageBody,
    JobPostModerationResult,
    ModerationDecision,
    ModerationOutcome,
)
from trust_safety.services.restriction import (
    apply_user_restriction,
    compute_restricted_until,
    decide_restriction_from_recent_security_events,
    decide_shadow_hide_from_risk,
)
from trust_safety.services.risk_scoring import RiskScanner
from trust_safety.services.risk_scoring.models import RiskAssessment, RiskCode
from trust_safety.services.security_event_logger import SecurityEventLogger
from trust_safety.utils.models import Actor, OffenderSummary, RequestContext, UserRole, utcnow

# Типы событий журнала
MESSAGE_BLOCKED_EVENT = "message.blocked"
MESSAGE_OFFPLATFORM_ALLOWED_EVENT = "message.offplatform_allowed"
BID_BLOCKED_EVENT = "bid.blocked"
JOB_SHADOW_HIDDEN_EVENT = "job.shadow_hidden"
USER_RESTRICTED_EVENT = "user.restricted"

VERIFIED_STATUS = "VERIFIED"
MAX_OFFENDERS_LIMIT = 200

CONTACT_INFO_ERROR = (
    "For your safety, sharing phone numbers or emails in messages is not allowed. "
    "Please keep communication in-app."
)
MESSAGE_BLOCKED_ERROR = (
    "For your safety, messages asking to move off-platform or use risky payment methods are blocked. "
    "Please keep communication in-app."
)
ACCOUNT_RESTRICTED_MESSAGE = "Your account is temporarily restricted. Please try again later."
RISK_THRESHOLD_MESSAGE = "Your account is temporarily restricted due to suspicious activity."
REPEATED_MESSAGE_BLOCKS_MESSAGE = (
    "Your account is temporarily restricted due to repeated blocked messages. Please try again later."
)
REPEATED_BID_BLOCKS_MESSAGE = (
    "Your account is temporarily restricted due to repeated blocked bids. Please try again later."
)


class ModerationService:
    """
    Оркестрация модерации поверх сканера, шлюза контактов и политики ограничений.
    """

    def __init__(
        self,
        store: ModerationStore,
        event_logger: Optional[SecurityEventLogger] = None,
        scanner: Optional[RiskScanner] = None,
        config: Optional[ModerationConfig] = None,
    ):
        """
        Args:
            store: Хранилище модерации
            event_logger: Журнал событий безопасности
            scanner: Контекстный сканер риска
            config: Пороги, окна и лестница эскалации
        """
        self.store = store
        self.config = config or ModerationConfig()
        self.event_logger = event_logger or SecurityEventLogger(store)
        self.scanner = scanner or RiskScanner(store, self.config)
        logger.info("Сервис ModerationService инициализирован.")

    # ------------------------------------------------------------------
    # Ограничение аккаунта
    # ------------------------------------------------------------------

    async def check_account_restriction(
        self, user_id: int, now: Optional[datetime] = None
    ) -> Optional[ModerationOutcome]:
        """
        Возвращает RESTRICTED, пока restricted_until пользователя в будущем.

        Ошибка хранилища не блокирует пользователя: возвращается None.
        """
        state = await guarded_store_call(
            "lookup.user_risk_state",
            lambda: self.store.get_user_risk_state(user_id),
            None,
            user_id=user_id,
        )
        if state is None or not state.is_restricted(now):
            return None
        return ModerationOutcome.restricted(state.restricted_until, ACCOUNT_RESTRICTED_MESSAGE)

    # ------------------------------------------------------------------
    # Сообщения в чате заказа
    # ------------------------------------------------------------------

    async def moderate_job_message_send(
        self,
        actor: Actor,
        job_id: int,
        job_status: Optional[str],
        message_text: str,
        request_context: Optional[RequestContext] = None,
        now: Optional[datetime] = None,
    ) -> ModerationOutcome:
        """
        Модерация сообщения перед отправкой в чат заказа.

        Args:
            actor: Отправитель
            job_id: Заказ
            job_status: Текущий статус заказа (OPEN, AWARDED ...)
            message_text: Текст сообщения
            request_context: Данные запроса для журнала
            now: Текущее время (для тестов)

        Returns:
            ALLOW, BLOCK (400) или RESTRICTED (403)
        """
        if actor.is_admin:
            return ModerationOutcome.allow()

        now = now or utcnow()
        risk = await self.scanner.assess_repeated_message_risk(job_id, actor.user_id, message_text, now=now)
        decision = decide_message_moderation(risk)
        context = {"job_id": job_id}

        if not decision.is_block:
            restricted = await self._apply_risk_score(
                actor, risk.total_score, "message_risk_threshold", context, request_context, now
            )
            return restricted or ModerationOutcome.allow()

        metadata: Dict[str, Any] = {
            "target_type": "JOB",
            "target_id": job_id,
            "job_id": job_id,
            "sender_id": actor.user_id,
            "job_status": job_status,
            "risk_total_score": risk.total_score,
            "risk_signals": risk.signals_as_dicts(),
            "text_preview": self._preview(message_text),
        }

        if classify_off_platform_risk(risk).is_only_contact_like:
            exchange_approved = await self._contact_exchange_approved(job_id)
            verified_low_risk = await self._sender_verified_low_risk(actor)
            gate = should_bypass_off_platform_contact_block(
                risk, job_status, exchange_approved, verified_low_risk
            )
            metadata["contact_exchange_approved"] = exchange_approved
            metadata["sender_verified_low_risk"] = verified_low_risk

            if gate.bypass:
                applied = compute_risk_score_excluding_contact_like(risk)
                logger.info(
                    f"🔓 Контакт вне площадки разрешен: user_id={actor.user_id}, job_id={job_id}, "
                    f"reason={gate.reason.value}"
                )
                await self._log_event(
                    MESSAGE_OFFPLATFORM_ALLOWED_EVENT,
                    actor,
                    {**metadata, "gate_reason": gate.reason, "applied_risk_score": applied},
                    request_context,
                    now,
                )
                restricted = await self._apply_risk_score(
                    actor, applied, "message_risk_threshold", context, request_context, now
                )
                return restricted or ModerationOutcome.allow()

        return await self._block_and_escalate(
            actor,
            risk,
            decision,
            blocked_event=MESSAGE_BLOCKED_EVENT,
            metadata=metadata,
            threshold_reason="message_risk_threshold",
            window_minutes=self.config.blocked_message_window_minutes,
            steps=[
                EscalationStep(
                    at_or_above=self.config.blocked_message_restrict_at,
                    minutes=self.config.restriction_hours_default * 60,
                )
            ],
            escalation_reason="repeated_message_blocks",
            escalation_message=REPEATED_MESSAGE_BLOCKS_MESSAGE,
            request_context=request_context,
            now=now,
        )

    # ------------------------------------------------------------------
    # Сообщения ставок
    # ------------------------------------------------------------------

    async def moderate_bid_message(
        self,
        actor: Actor,
        job_id: int,
        message_text: str,
        request_context: Optional[RequestContext] = None,
        now: Optional[datetime] = None,
    ) -> ModerationOutcome:
        """
        Модерация сообщения, приложенного к ставке.

        Ставка всегда делается до выбора исполнителя, поэтому шлюза контактов
        здесь нет: любой контакт блокируется.
        """
        if actor.is_admin:
            return ModerationOutcome.allow()

        now = now or utcnow()
        risk = await self.scanner.assess_repeated_bid_message_risk(
            job_id, actor.user_id, message_text, now=now
        )
        decision = decide_message_moderation(risk)

        if not decision.is_block:
            restricted = await self._apply_risk_score(
                actor, risk.total_score, "bid_risk_threshold", {"job_id": job_id}, request_context, now
            )
            return restricted or ModerationOutcome.allow()

        metadata = {
            "target_type": "JOB",
            "target_id": job_id,
            "job_id": job_id,
            "provider_id": actor.user_id,
            "risk_total_score": risk.total_score,
            "risk_signals": risk.signals_as_dicts(),
            "text_preview": self._preview(message_text),
        }
        return await self._block_and_escalate(
            actor,
            risk,
            decision,
            blocked_event=BID_BLOCKED_EVENT,
            metadata=metadata,
            threshold_reason="bid_risk_threshold",
            window_minutes=self.config.blocked_bid_window_minutes,
            steps=self.config.escalation_steps,
            escalation_reason="repeated_bid_blocks",
            escalation_message=REPEATED_BID_BLOCKS_MESSAGE,
            request_context=request_context,
            now=now,
        )

    # ------------------------------------------------------------------
    # Публикация заказа
    # ------------------------------------------------------------------

    async def moderate_job_post(
        self,
        actor: Actor,
        title: str,
        description: str,
        location: Optional[str] = None,
        job_id: Optional[int] = None,
        request_context: Optional[RequestContext] = None,
        now: Optional[datetime] = None,
    ) -> JobPostModerationResult:
        """
        Оценка публикации заказа: тихое скрытие при риске >= 40.

        Заказ не блокируется, автор не узнает о скрытии.
        """
        now = now or utcnow()
        risk = await self.scanner.assess_job_post_risk(
            actor.user_id, title, description, location, now=now
        )
        hide = decide_shadow_hide_from_risk(
            risk.total_score,
            "job_post_risk",
            hide_at_or_above=self.config.shadow_hide_at_or_above,
            metadata={"risk_total_score": risk.total_score, "risk_signals": risk.signals_as_dicts()},
        )

        if hide.is_hide:
            logger.warning(
                f"🙈 Заказ скрыт: consumer_id={actor.user_id}, job_id={job_id}, risk={risk.total_score}"
            )
            await self._log_event(
                JOB_SHADOW_HIDDEN_EVENT,
                actor,
                {
                    "target_type": "JOB",
                    "target_id": job_id,
                    "job_id": job_id,
                    "consumer_id": actor.user_id,
                    "reason": hide.reason,
                    "text_preview": self._preview(title),
                    **hide.metadata,
                },
                request_context,
                now,
            )

        outcome = await self._apply_risk_score(
            actor, risk.total_score, "job_post_risk_threshold", {"job_id": job_id}, request_context, now
        )
        return JobPostModerationResult(
            hidden=hide.is_hide, risk=risk, outcome=outcome or ModerationOutcome.allow()
        )

    # ------------------------------------------------------------------
    # Админский отчет
    # ------------------------------------------------------------------

    async def list_message_violation_offenders(
        self,
        window_minutes: int = 10,
        min_blocks: int = 3,
        limit: int = 50,
        now: Optional[datetime] = None,
    ) -> List[OffenderSummary]:
        """
        Пользователи с частыми блокировками сообщений, последние первыми.

        Args:
            window_minutes: Окно подсчета
            min_blocks: Минимум событий message.blocked в окне
            limit: Размер выдачи (не больше 200)

        Returns:
            Список OffenderSummary
        """
        limit = max(1, min(int(limit), MAX_OFFENDERS_LIMIT))
        since = (now or utcnow()) - timedelta(minutes=window_minutes)
        try:
            return await self.store.list_event_offenders(MESSAGE_BLOCKED_EVENT, since, min_blocks, limit)
        except Exception as e:
            logger.error(f"❌ Не удалось получить список нарушителей за {window_minutes}m: {e}")
            raise

    # ------------------------------------------------------------------
    # Вспомогательные методы
    # ------------------------------------------------------------------

    async def _block_and_escalate(
        self,
        actor: Actor,
        risk: RiskAssessment,
        decision: ModerationDecision,
        *,
        blocked_event: str,
        metadata: Dict[str, Any],
        threshold_reason: str,
        window_minutes: int,
        steps: Sequence[EscalationStep],
        escalation_reason: str,
        escalation_message: str,
        request_context: Optional[RequestContext],
        now: datetime,
    ) -> ModerationOutcome:
        """Штраф, запись события блокировки и эскалация по частоте блокировок."""
        reason_codes = [code.value for code in decision.reason_codes]
        logger.warning(
            f"🚫 {blocked_event}: user_id={actor.user_id}, job_id={metadata.get('job_id')}, "
            f"reasons={reason_codes}, risk={risk.total_score}"
        )
        await self._log_event(
            blocked_event, actor, {**metadata, "reason_codes": reason_codes}, request_context, now
        )

        threshold = await self._apply_risk_score(
            actor, risk.total_score, threshold_reason, {"job_id": metadata.get("job_id")}, request_context, now
        )

        escalation = await decide_restriction_from_recent_security_events(
            self.store,
            actor.user_id,
            blocked_event,
            window_minutes,
            escalation_reason,
            steps=steps,
            now=now,
        )
        if escalation.is_restrict:
            await apply_user_restriction(
                self.store,
                actor.user_id,
                escalation.restricted_until,
                now=now,
                max_tries=self.config.store_retry_attempts,
            )
            await self._log_event(
                USER_RESTRICTED_EVENT,
                actor,
                {
                    "target_type": "USER",
                    "target_id": actor.user_id,
                    "job_id": metadata.get("job_id"),
                    "reason": escalation.reason,
                    "restricted_until": escalation.restricted_until,
                    "minutes": escalation.minutes,
                    **escalation.metadata,
                },
                request_context,
                now,
            )
            return ModerationOutcome.restricted(escalation.restricted_until, escalation_message)

        if threshold is not None:
            return threshold

        code = (
            BlockCode.CONTACT_INFO_NOT_ALLOWED
            if RiskCode.CONTACT_INFO in decision.reason_codes
            else BlockCode.MESSAGE_BLOCKED
        )
        return ModerationOutcome.block(
            BlockedMessageBody(
                error=CONTACT_INFO_ERROR if code is BlockCode.CONTACT_INFO_NOT_ALLOWED else MESSAGE_BLOCKED_ERROR,
                code=code,
                reason_codes=reason_codes,
                appeal_url=self.config.appeal_url,
            )
        )

    async def _apply_risk_score(
        self,
        actor: Actor,
        score: int,
        reason: str,
        context: Dict[str, Any],
        request_context: Optional[RequestContext],
        now: datetime,
    ) -> Optional[ModerationOutcome]:
        """
        Начисляет риск и ограничивает аккаунт при достижении порога.

        Returns:
            RESTRICTED, если это начисление пересекло порог, иначе None
        """
        if score <= 0:
            return None

        new_total = await guarded_store_call(
            "user.increment_risk",
            lambda: self.store.increment_user_risk(actor.user_id, score),
            None,
            max_tries=self.config.store_retry_attempts,
            max_wait=self.config.store_retry_max_wait,
            user_id=actor.user_id,
            **context,
        )
        if new_total is None:
            return None
        threshold = self.config.risk_restrict_threshold
        # Только начисление, пересекающее порог
        if not (new_total - score < threshold <= new_total):
            if self.config.risk_review_threshold <= new_total < threshold:
                logger.warning(
                    f"👀 user_id={actor.user_id}: риск {new_total} >= {self.config.risk_review_threshold}, "
                    f"нужна ручная проверка ({reason})"
                )
            return None

        restricted_until = compute_restricted_until(self.config.restriction_hours_default, now)
        await apply_user_restriction(
            self.store,
            actor.user_id,
            restricted_until,
            now=now,
            max_tries=self.config.store_retry_attempts,
        )
        await self._log_event(
            USER_RESTRICTED_EVENT,
            actor,
            {
                "target_type": "USER",
                "target_id": actor.user_id,
                "reason": reason,
                "risk_score": new_total,
                "applied_risk_score": score,
                "restricted_until": restricted_until,
                **context,
            },
            request_context,
            now,
        )
        return ModerationOutcome.restricted(restricted_until, RISK_THRESHOLD_MESSAGE)

    async def _contact_exchange_approved(self, job_id: int) -> bool:
        request_id = await guarded_store_call(
            "lookup.contact_exchange",
            lambda: self.store.find_approved_exchange(job_id),
            None,
            job_id=job_id,
        )
        return request_id is not None

    async def _sender_verified_low_risk(self, actor: Actor) -> bool:
        """Только для исполнителей: статус VERIFIED и риск не выше порога."""
        if actor.role is not UserRole.PROVIDER:
            return False

        status = await guarded_store_call(
            "lookup.verification_status",
            lambda: self.store.get_verification_status(actor.user_id),
            None,
            user_id=actor.user_id,
        )
        if str(status or "").upper() != VERIFIED_STATUS:
            return False

        risk_score = actor.risk_score
        if risk_score is None:
            state = await guarded_store_call(
                "lookup.user_risk_state",
                lambda: self.store.get_user_risk_state(actor.user_id),
                None,
                user_id=actor.user_id,
            )
            if state is None:
                return False
            risk_score = state.risk_score
        return risk_score <= self.config.verified_low_risk_max

    async def _log_event(
        self,
        action_type: str,
        actor: Actor,
        metadata: Dict[str, Any],
        request_context: Optional[RequestContext],
        now: datetime,
    ) -> None:
        await self.event_logger.log(action_type, metadata, actor, request_context, created_at=now)

    def _preview(self, text: str) -> str:
        return (text or "")[: self.config.text_preview_chars]
