import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import fakeredis.aioredis
import pytest
import pytest_asyncio

# Minimal env variables so importing settings does not fail
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("LOGGING__LEVEL", "DEBUG")

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from trust_safety.config.models import ModerationConfig  # noqa: E402
from trust_safety.services.ledger import ModerationStore, RedisModerationStore  # noqa: E402
from trust_safety.services.moderation import ModerationService  # noqa: E402


@pytest_asyncio.fixture
async def redis():
    r = fakeredis.aioredis.FakeRedis(decode_responses=True)
    await r.flushall()
    yield r
    await r.flushall()
    await r.aclose()


@pytest.fixture
def moderation_config():
    # Без пауз между повторами записи
    return ModerationConfig(store_retry_max_wait=0.0)


@pytest.fixture
def store(redis):
    return RedisModerationStore(redis)


@pytest.fixture
def service(store, moderation_config):
    return ModerationService(store, config=moderation_config)


@pytest.fixture
def now():
    return datetime.now(timezone.utc).replace(microsecond=0)


class BrokenStore(ModerationStore):
    """Хранилище, у которого падает каждый вызов."""

    def __init__(self, error: Exception = None):
        self.error = error or ConnectionError("redis is down")
        self.calls = []

    def _fail(self, name):
        self.calls.append(name)
        raise self.error

    async def count_events(self, actor_user_id, action_type, since):
        self._fail("count_events")

    async def insert_event(self, event):
        self._fail("insert_event")

    async def list_event_offenders(self, action_type, since, min_count, limit):
        self._fail("list_event_offenders")

    async def count_matching_messages(self, job_id, sender_id, text, since):
        self._fail("count_matching_messages")

    async def count_matching_bids(self, job_id, provider_id, message_text, since):
        self._fail("count_matching_bids")

    async def count_matching_jobs(self, consumer_id, since):
        self._fail("count_matching_jobs")

    async def get_user_risk_state(self, user_id):
        self._fail("get_user_risk_state")

    async def increment_user_risk(self, user_id, amount):
        self._fail("increment_user_risk")

    async def set_restricted_until(self, user_id, restricted_until):
        self._fail("set_restricted_until")

    async def find_approved_exchange(self, job_id):
        self._fail("find_approved_exchange")

    async def get_verification_status(self, provider_id):
        self._fail("get_verification_status")


@pytest.fixture
def broken_store():
    return BrokenStore()
