# trust_safety/containers.py
from dependency_injector import containers, providers
from loguru import logger
from redis.asyncio import Redis

from trust_safety.config.settings import settings
from trust_safety.services.ledger import RedisModerationStore
from trust_safety.services.moderation import ModerationService
from trust_safety.services.risk_scoring import RiskScanner
from trust_safety.services.security_event_logger import SecurityEventLogger


class Container(containers.DeclarativeContainer):
    """DI контейнер движка модерации"""

    moderation_config = providers.Object(settings.moderation)

    redis_client = providers.Singleton(
        Redis.from_url,
        url=settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        health_check_interval=30,
    )

    store = providers.Singleton(
        RedisModerationStore,
        redis=redis_client,
        window_retention_seconds=settings.moderation.window_retention_seconds,
    )

    event_logger = providers.Singleton(
        SecurityEventLogger,
        store=store,
    )

    risk_scanner = providers.Singleton(
        RiskScanner,
        store=store,
        config=moderation_config,
    )

    moderation_service = providers.Singleton(
        ModerationService,
        store=store,
        event_logger=event_logger,
        scanner=risk_scanner,
        config=moderation_config,
    )


async def init_resources(container: Container) -> None:
    logger.info("🔧 Initializing container resources...")

    try:
        redis = container.redis_client()
        await redis.ping()
        logger.info("✅ Redis connected")
    except Exception as e:
        logger.error(f"❌ Redis connection failed: {e}")
        raise


async def shutdown_resources(container: Container) -> None:
    logger.info("🛑 Shutting down container resources...")

    try:
        redis = container.redis_client()
        await redis.aclose()
        logger.info("✅ Redis client closed")
    except Exception as e:
        logger.error(f"Error closing Redis: {e}")
