from datetime import timedelta

import pytest

from trust_safety.services.ledger import RedisModerationStore, StoreSchemaError
from trust_safety.services.moderation import ModerationService
from trust_safety.services.moderation.service import (
    ACCOUNT_RESTRICTED_MESSAGE,
    CONTACT_INFO_ERROR,
    REPEATED_MESSAGE_BLOCKS_MESSAGE,
    RISK_THRESHOLD_MESSAGE,
)
from trust_safety.utils.models import Actor, RequestContext, UserRole

PROVIDER = Actor(user_id=10, role=UserRole.PROVIDER)
CONSUMER = Actor(user_id=20, role=UserRole.CONSUMER)
ADMIN = Actor(user_id=1, role=UserRole.ADMIN)


async def _events(store, action_type, now):
    return await store.list_events(action_type, now - timedelta(hours=1))


@pytest.mark.asyncio
async def test_provider_contact_before_award_is_blocked(service, store, now):
    await store.increment_user_risk(PROVIDER.user_id, 10)

    outcome = await service.moderate_job_message_send(
        PROVIDER, 42, "OPEN", "call me at 555-222-1111", RequestContext(request_id="r-1"), now=now
    )

    assert outcome.action == "BLOCK"
    assert outcome.status == 400
    assert outcome.to_payload() == {
        "error": CONTACT_INFO_ERROR,
        "code": "CONTACT_INFO_NOT_ALLOWED",
        "blocked": True,
        "reasonCodes": ["CONTACT_INFO"],
        "appealUrl": "/support/appeals",
    }

    state = await store.get_user_risk_state(PROVIDER.user_id)
    assert state.risk_score == 45
    assert state.restricted_until is None

    [event] = await _events(store, "message.blocked", now)
    assert event.actor_user_id == PROVIDER.user_id
    assert event.target_type == "JOB" and event.target_id == "42"
    assert event.metadata["reason_codes"] == ["CONTACT_INFO"]
    assert event.metadata["contact_exchange_approved"] is False
    assert event.metadata["sender_verified_low_risk"] is False
    assert event.metadata["request_id"] == "r-1"


@pytest.mark.asyncio
async def test_admin_bypasses_everything(service, store, now):
    outcome = await service.moderate_job_message_send(ADMIN, 1, "OPEN", "western union 555-222-1111", now=now)
    assert outcome.action == "ALLOW"
    assert (await store.get_user_risk_state(ADMIN.user_id)).risk_score == 0
    assert await _events(store, "message.blocked", now) == []


@pytest.mark.asyncio
async def test_clean_message_allowed(service, store, now):
    outcome = await service.moderate_job_message_send(CONSUMER, 1, "OPEN", "When can you start?", now=now)
    assert outcome.to_payload() == {"action": "ALLOW"}
    assert (await store.get_user_risk_state(CONSUMER.user_id)).risk_score == 0


@pytest.mark.asyncio
async def test_contact_after_award_is_allowed_without_penalty(service, store, now):
    outcome = await service.moderate_job_message_send(
        CONSUMER, 42, "AWARDED", "call me at 555-222-1111", now=now
    )
    assert outcome.action == "ALLOW"
    assert (await store.get_user_risk_state(CONSUMER.user_id)).risk_score == 0

    [event] = await _events(store, "message.offplatform_allowed", now)
    assert event.metadata["gate_reason"] == "job_status_awarded_or_later"
    assert event.metadata["applied_risk_score"] == 0
    assert event.metadata["job_status"] == "AWARDED"
    assert event.metadata["text_preview"] == "call me at 555-222-1111"
    assert event.metadata["risk_signals"][0]["code"] == "CONTACT_INFO"


@pytest.mark.asyncio
async def test_approved_contact_exchange_allows_contact(service, store, now):
    await store.upsert_contact_exchange(42, "req-7", "APPROVED")
    outcome = await service.moderate_job_message_send(CONSUMER, 42, "OPEN", "my email is a@b.co", now=now)
    assert outcome.action == "ALLOW"
    [event] = await _events(store, "message.offplatform_allowed", now)
    assert event.metadata["gate_reason"] == "contact_exchange_approved"


@pytest.mark.asyncio
async def test_messenger_penalty_excludes_contact_like_signals(service, store, now):
    outcome = await service.moderate_job_message_send(
        CONSUMER, 42, "IN_PROGRESS", "message me on telegram 555-222-1111", now=now
    )
    assert outcome.action == "ALLOW"
    assert (await store.get_user_risk_state(CONSUMER.user_id)).risk_score == 0


@pytest.mark.asyncio
async def test_verified_low_risk_provider_bypass(service, store, now):
    await store.set_verification_status(PROVIDER.user_id, "VERIFIED")
    await store.increment_user_risk(PROVIDER.user_id, 10)

    outcome = await service.moderate_job_message_send(PROVIDER, 42, "OPEN", "text 555-222-1111", now=now)
    assert outcome.action == "ALLOW"
    [event] = await _events(store, "message.offplatform_allowed", now)
    assert event.metadata["gate_reason"] == "sender_verified_low_risk"


@pytest.mark.asyncio
async def test_verified_provider_with_high_risk_is_blocked(service, store, now):
    await store.set_verification_status(PROVIDER.user_id, "VERIFIED")
    await store.increment_user_risk(PROVIDER.user_id, 30)

    outcome = await service.moderate_job_message_send(PROVIDER, 42, "OPEN", "text 555-222-1111", now=now)
    assert outcome.action == "BLOCK"


@pytest.mark.asyncio
async def test_verified_consumer_gets_no_bypass(service, store, now):
    await store.set_verification_status(CONSUMER.user_id, "VERIFIED")
    outcome = await service.moderate_job_message_send(CONSUMER, 42, "OPEN", "text 555-222-1111", now=now)
    assert outcome.action == "BLOCK"


@pytest.mark.asyncio
async def test_scam_keyword_blocks_even_after_award(service, store, now):
    await store.upsert_contact_exchange(42, "req-7", "APPROVED")
    outcome = await service.moderate_job_message_send(
        CONSUMER, 42, "AWARDED", "pay the deposit via zelle", now=now
    )
    assert outcome.action == "BLOCK"
    assert outcome.body.code.value == "MESSAGE_BLOCKED"
    assert outcome.body.reason_codes == ["BANNED_KEYWORD"]
    assert (await store.get_user_risk_state(CONSUMER.user_id)).risk_score == 25


@pytest.mark.asyncio
async def test_third_blocked_message_restricts_for_a_day(service, store, now):
    outcomes = []
    for _ in range(3):
        outcomes.append(
            await service.moderate_job_message_send(CONSUMER, 42, "OPEN", "pay the deposit via zelle", now=now)
        )

    assert [o.action for o in outcomes] == ["BLOCK", "BLOCK", "RESTRICTED"]
    restricted = outcomes[-1]
    assert restricted.status == 403
    assert restricted.message == REPEATED_MESSAGE_BLOCKS_MESSAGE
    assert restricted.restricted_until == now + timedelta(hours=24)
    assert restricted.to_payload()["restrictedUntil"] == (now + timedelta(hours=24)).isoformat()

    state = await store.get_user_risk_state(CONSUMER.user_id)
    assert state.restricted_until == now + timedelta(hours=24)
    assert state.risk_score == 75

    [event] = await _events(store, "user.restricted", now)
    assert event.target_type == "USER"
    assert event.metadata["reason"] == "repeated_message_blocks"
    assert event.metadata["recent_count"] == 3


@pytest.mark.asyncio
async def test_risk_threshold_restricts_on_block(service, store, now):
    await store.increment_user_risk(CONSUMER.user_id, 90)
    outcome = await service.moderate_job_message_send(
        CONSUMER, 42, "OPEN", "pay with western union", now=now
    )
    assert outcome.action == "RESTRICTED"
    assert outcome.message == RISK_THRESHOLD_MESSAGE
    assert outcome.restricted_until == now + timedelta(hours=24)

    [event] = await _events(store, "user.restricted", now)
    assert event.metadata["reason"] == "message_risk_threshold"
    assert event.metadata["risk_score"] == 140
    # событие блокировки записано до ограничения
    assert len(await _events(store, "message.blocked", now)) == 1


@pytest.mark.asyncio
async def test_risk_threshold_restricts_on_allowed_repeat(service, store, now):
    text = "Please check my profile and reviews before deciding"
    await store.increment_user_risk(CONSUMER.user_id, 80)
    for minutes in (3, 2):
        await store.record_message(42, CONSUMER.user_id, text, created_at=now - timedelta(minutes=minutes))

    outcome = await service.moderate_job_message_send(CONSUMER, 42, "OPEN", text, now=now)
    assert outcome.action == "RESTRICTED"
    assert (await store.get_user_risk_state(CONSUMER.user_id)).risk_score == 105


@pytest.mark.asyncio
async def test_store_outage_fails_open(broken_store, moderation_config, now):
    service = ModerationService(broken_store, config=moderation_config)

    outcome = await service.moderate_job_message_send(PROVIDER, 42, "OPEN", "call 555-222-1111", now=now)
    assert outcome.action == "BLOCK"
    assert broken_store.calls.count("increment_user_risk") == moderation_config.store_retry_attempts

    outcome = await service.moderate_job_message_send(PROVIDER, 42, "OPEN", "Sounds good, thanks", now=now)
    assert outcome.action == "ALLOW"
    assert await service.check_account_restriction(PROVIDER.user_id, now=now) is None


@pytest.mark.asyncio
async def test_check_account_restriction(service, store, now):
    assert await service.check_account_restriction(CONSUMER.user_id, now=now) is None

    await store.set_restricted_until(CONSUMER.user_id, now + timedelta(hours=2))
    outcome = await service.check_account_restriction(CONSUMER.user_id, now=now)
    assert outcome.status == 403
    assert outcome.message == ACCOUNT_RESTRICTED_MESSAGE

    assert await service.check_account_restriction(CONSUMER.user_id, now=now + timedelta(hours=3)) is None


@pytest.mark.asyncio
async def test_list_message_violation_offenders(service, store, now):
    for _ in range(3):
        await service.moderate_job_message_send(CONSUMER, 42, "OPEN", "pay the deposit via zelle", now=now)
    await service.moderate_job_message_send(PROVIDER, 42, "OPEN", "use crypto", now=now)

    offenders = await service.list_message_violation_offenders(now=now)
    assert [o.user_id for o in offenders] == [CONSUMER.user_id]
    assert offenders[0].block_count == 3
    assert offenders[0].restricted_until == now + timedelta(hours=24)


@pytest.mark.asyncio
async def test_list_offenders_caps_limit(service, store, monkeypatch, now):
    captured = {}

    async def fake_list(action_type, since, min_count, limit):
        captured.update(action_type=action_type, since=since, min_count=min_count, limit=limit)
        return []

    monkeypatch.setattr(store, "list_event_offenders", fake_list)
    await service.list_message_violation_offenders(window_minutes=15, min_blocks=2, limit=1000, now=now)
    assert captured == {
        "action_type": "message.blocked",
        "since": now - timedelta(minutes=15),
        "min_count": 2,
        "limit": 200,
    }


@pytest.mark.asyncio
async def test_list_offenders_propagates_store_errors(broken_store):
    service = ModerationService(broken_store)
    with pytest.raises(ConnectionError):
        await service.list_message_violation_offenders()


@pytest.mark.asyncio
async def test_risk_above_threshold_does_not_restrict_again(service, store, now):
    text = "Please check my profile and reviews before deciding"
    expired = now - timedelta(hours=1)
    await store.increment_user_risk(CONSUMER.user_id, 120)
    await store.set_restricted_until(CONSUMER.user_id, expired)
    for minutes in (3, 2):
        await store.record_message(42, CONSUMER.user_id, text, created_at=now - timedelta(minutes=minutes))

    outcome = await service.moderate_job_message_send(CONSUMER, 42, "OPEN", text, now=now)
    assert outcome.action == "ALLOW"

    state = await store.get_user_risk_state(CONSUMER.user_id)
    assert state.risk_score == 145
    assert state.restricted_until == expired
    assert await _events(store, "user.restricted", now) == []


@pytest.mark.asyncio
async def test_block_above_threshold_stays_a_block(service, store, now):
    await store.increment_user_risk(CONSUMER.user_id, 120)
    outcome = await service.moderate_job_message_send(CONSUMER, 42, "OPEN", "use crypto", now=now)
    assert outcome.action == "BLOCK"


class _LaggingSchemaStore(RedisModerationStore):
    """Колонки riskScore / restrictedUntil еще не созданы миграцией."""

    def __init__(self, redis):
        super().__init__(redis)
        self.calls = []

    async def increment_user_risk(self, user_id, amount):
        self.calls.append("increment_user_risk")
        raise StoreSchemaError('column "riskScore" does not exist')

    async def set_restricted_until(self, user_id, restricted_until):
        self.calls.append("set_restricted_until")
        raise StoreSchemaError('column "restrictedUntil" does not exist')


@pytest.mark.asyncio
async def test_schema_lag_keeps_verdicts_without_retries(redis, moderation_config, now):
    store = _LaggingSchemaStore(redis)
    service = ModerationService(store, config=moderation_config)

    outcome = await service.moderate_job_message_send(CONSUMER, 42, "OPEN", "call me at 555-222-1111", now=now)
    assert outcome.action == "BLOCK"
    assert store.calls == ["increment_user_risk"]

    outcome = await service.moderate_job_message_send(CONSUMER, 42, "OPEN", "Sounds good, see you then", now=now)
    assert outcome.action == "ALLOW"

    store.calls.clear()
    outcomes = [
        await service.moderate_job_message_send(CONSUMER, 43, "OPEN", "pay the deposit via zelle", now=now)
        for _ in range(2)
    ]
    # третья блокировка за час: ограничение не записано, но вердикт возвращается
    assert [o.action for o in outcomes] == ["BLOCK", "RESTRICTED"]
    assert store.calls == ["increment_user_risk", "increment_user_risk", "set_restricted_until"]
