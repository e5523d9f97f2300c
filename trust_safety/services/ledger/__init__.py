# trust_safety/services/ledger/__init__.py
from trust_safety.services.ledger.base import (
    ModerationStore,
    StoreSchemaError,
    is_missing_column_error,
)
from trust_safety.services.ledger.redis_store import RedisModerationStore

__all__ = [
    "ModerationStore",
    "RedisModerationStore",
    "StoreSchemaError",
    "is_missing_column_error",
]
