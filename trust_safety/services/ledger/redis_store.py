# trust_safety/services/ledger/redis_store.py
"""
Реализация хранилища модерации поверх Redis.

Окна считаются через ZSET (score = unix timestamp), журнал событий:
JSON-строка на событие плюс индексы по актору и по типу действия.
"""
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from loguru import logger
from redis.asyncio import Redis

from trust_safety.services.ledger.base import ModerationStore
from trust_safety.utils.keys import KeyFactory
from trust_safety.utils.models import OffenderSummary, SecurityEvent, UserRiskState, utcnow

APPROVED_STATUS = "APPROVED"


def _to_str(value: Union[bytes, str, None]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _exclusive_min(since: datetime) -> str:
    # created_at > since
    return f"({since.timestamp()}"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class RedisModerationStore(ModerationStore):
    """
    Хранилище движка модерации в Redis.

    Помимо контракта ModerationStore отдает хост-приложению методы записи
    (record_message, record_bid, record_job, upsert_contact_exchange,
    set_verification_status), чтобы окна повторов видели реальный трафик.
    """

    def __init__(self, redis: Redis, window_retention_seconds: int = 86400):
        """
        Args:
            redis: Клиент Redis
            window_retention_seconds: Сколько хранить записи окон повторов
        """
        self.redis = redis
        self.keys = KeyFactory
        self.window_retention_seconds = window_retention_seconds

    # ------------------------------------------------------------------
    # Журнал событий безопасности
    # ------------------------------------------------------------------

    async def count_events(self, actor_user_id: int, action_type: str, since: datetime) -> int:
        key = self.keys.security_events_by_actor(actor_user_id, action_type)
        return int(await self.redis.zcount(key, _exclusive_min(since), "+inf"))

    async def insert_event(self, event: SecurityEvent) -> SecurityEvent:
        event_id = int(await self.redis.incr(self.keys.security_event_sequence()))
        stored = event.model_copy(update={"id": event_id})
        created_ts = stored.created_at.timestamp()

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(self.keys.security_event(event_id), stored.model_dump_json())
            pipe.zadd(self.keys.security_events_by_action(stored.action_type), {str(event_id): created_ts})
            if stored.actor_user_id is not None:
                pipe.zadd(
                    self.keys.security_events_by_actor(stored.actor_user_id, stored.action_type),
                    {str(event_id): created_ts},
                )
            await pipe.execute()

        return stored

    async def get_event(self, event_id: int) -> Optional[SecurityEvent]:
        raw = await self.redis.get(self.keys.security_event(event_id))
        if raw is None:
            return None
        return SecurityEvent.model_validate_json(_to_str(raw))

    async def list_events(self, action_type: str, since: datetime) -> List[SecurityEvent]:
        ids = await self.redis.zrangebyscore(
            self.keys.security_events_by_action(action_type), _exclusive_min(since), "+inf"
        )
        if not ids:
            return []
        raw_events = await self.redis.mget([self.keys.security_event(int(_to_str(i))) for i in ids])
        return [SecurityEvent.model_validate_json(_to_str(raw)) for raw in raw_events if raw is not None]

    async def list_event_offenders(
        self,
        action_type: str,
        since: datetime,
        min_count: int,
        limit: int,
    ) -> List[OffenderSummary]:
        counts: Dict[int, int] = defaultdict(int)
        last_seen: Dict[int, datetime] = {}

        for event in await self.list_events(action_type, since):
            if event.actor_user_id is None:
                continue
            counts[event.actor_user_id] += 1
            previous = last_seen.get(event.actor_user_id)
            if previous is None or event.created_at > previous:
                last_seen[event.actor_user_id] = event.created_at

        offenders = sorted(
            (user_id for user_id, count in counts.items() if count >= min_count),
            key=lambda user_id: last_seen[user_id],
            reverse=True,
        )[:limit]

        result = []
        for user_id in offenders:
            state = await self.get_user_risk_state(user_id)
            result.append(
                OffenderSummary(
                    user_id=user_id,
                    block_count=counts[user_id],
                    last_blocked_at=last_seen[user_id],
                    risk_score=state.risk_score,
                    restricted_until=state.restricted_until,
                )
            )
        return result

    # ------------------------------------------------------------------
    # Окна повторов
    # ------------------------------------------------------------------

    async def count_matching_messages(
        self, job_id: int, sender_id: int, text: str, since: datetime
    ) -> int:
        key = self.keys.job_messages(job_id, sender_id, text)
        return int(await self.redis.zcount(key, _exclusive_min(since), "+inf"))

    async def count_matching_bids(
        self, job_id: int, provider_id: int, message_text: str, since: datetime
    ) -> int:
        key = self.keys.job_bids(job_id, provider_id, message_text)
        return int(await self.redis.zcount(key, _exclusive_min(since), "+inf"))

    async def count_matching_jobs(self, consumer_id: int, since: datetime) -> int:
        key = self.keys.consumer_jobs(consumer_id)
        return int(await self.redis.zcount(key, _exclusive_min(since), "+inf"))

    async def record_message(
        self,
        job_id: int,
        sender_id: int,
        text: str,
        created_at: Optional[datetime] = None,
        message_id: Optional[str] = None,
    ) -> None:
        """Фиксирует отправленное сообщение в окне повторов."""
        await self._record_window_entry(
            self.keys.job_messages(job_id, sender_id, text), created_at, message_id
        )

    async def record_bid(
        self,
        job_id: int,
        provider_id: int,
        message_text: str,
        created_at: Optional[datetime] = None,
        bid_id: Optional[str] = None,
    ) -> None:
        await self._record_window_entry(
            self.keys.job_bids(job_id, provider_id, message_text), created_at, bid_id
        )

    async def record_job(
        self,
        consumer_id: int,
        job_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        await self._record_window_entry(
            self.keys.consumer_jobs(consumer_id),
            created_at,
            str(job_id) if job_id is not None else None,
        )

    async def _record_window_entry(
        self, key: str, created_at: Optional[datetime], member: Optional[str]
    ) -> None:
        created_ts = (created_at or utcnow()).timestamp()
        cutoff = utcnow().timestamp() - self.window_retention_seconds

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zadd(key, {member or uuid.uuid4().hex: created_ts})
            pipe.zremrangebyscore(key, "-inf", cutoff)
            pipe.expire(key, self.window_retention_seconds)
            await pipe.execute()

    # ------------------------------------------------------------------
    # Пользователи
    # ------------------------------------------------------------------

    async def get_user_risk_state(self, user_id: int) -> UserRiskState:
        data = await self.redis.hgetall(self.keys.user_risk(user_id))
        data = {_to_str(k): _to_str(v) for k, v in (data or {}).items()}
        return UserRiskState(
            user_id=user_id,
            risk_score=int(data.get("risk_score") or 0),
            restricted_until=_parse_datetime(data.get("restricted_until")),
        )

    async def increment_user_risk(self, user_id: int, amount: int) -> int:
        new_total = int(await self.redis.hincrby(self.keys.user_risk(user_id), "risk_score", amount))
        logger.debug(f"risk_score user_id={user_id}: +{amount} -> {new_total}")
        return new_total

    async def set_restricted_until(self, user_id: int, restricted_until: datetime) -> None:
        await self.redis.hset(
            self.keys.user_risk(user_id), "restricted_until", restricted_until.isoformat()
        )

    # ------------------------------------------------------------------
    # Обмен контактами и верификация исполнителей
    # ------------------------------------------------------------------

    async def find_approved_exchange(self, job_id: int) -> Optional[str]:
        requests = await self.redis.hgetall(self.keys.contact_exchange(job_id))
        for request_id, status in (requests or {}).items():
            if _to_str(status) == APPROVED_STATUS:
                return _to_str(request_id)
        return None

    async def upsert_contact_exchange(self, job_id: int, request_id: str, status: str) -> None:
        await self.redis.hset(self.keys.contact_exchange(job_id), str(request_id), status.upper())

    async def get_verification_status(self, provider_id: int) -> Optional[str]:
        return _to_str(await self.redis.get(self.keys.provider_verification(provider_id)))

    async def set_verification_status(self, provider_id: int, status: str) -> None:
        await self.redis.set(self.keys.provider_verification(provider_id), status.upper())
