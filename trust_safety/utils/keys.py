# trust_safety/utils/keys.py
import hashlib


def text_digest(text: str) -> str:
    """Стабильный отпечаток точного текста (без нормализации) для ключей окон."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


class KeyFactory:
    """Генерирует стандартизированные ключи для Redis."""

    # --- Журнал событий безопасности ---
    @staticmethod
    def security_event_sequence() -> str:
        return "security:events:seq"

    @staticmethod
    def security_event(event_id: int) -> str:
        return f"security:event:{event_id}"

    @staticmethod
    def security_events_by_actor(actor_user_id: int, action_type: str) -> str:
        """ZSET event_id -> created_at для подсчета окон по пользователю."""
        return f"security:events:actor:{actor_user_id}:{action_type}"

    @staticmethod
    def security_events_by_action(action_type: str) -> str:
        return f"security:events:action:{action_type}"

    # --- Пользователи ---
    @staticmethod
    def user_risk(user_id: int) -> str:
        """HASH с полями risk_score и restricted_until."""
        return f"moderation:user:{user_id}"

    # --- Окна повторов ---
    @staticmethod
    def job_messages(job_id: int, sender_id: int, text: str) -> str:
        return f"moderation:messages:{job_id}:{sender_id}:{text_digest(text)}"

    @staticmethod
    def job_bids(job_id: int, provider_id: int, message_text: str) -> str:
        return f"moderation:bids:{job_id}:{provider_id}:{text_digest(message_text)}"

    @staticmethod
    def consumer_jobs(consumer_id: int) -> str:
        return f"moderation:jobs:{consumer_id}"

    # --- Обмен контактами и верификация ---
    @staticmethod
    def contact_exchange(job_id: int) -> str:
        """HASH request_id -> status."""
        return f"moderation:contact_exchange:{job_id}"

    @staticmethod
    def provider_verification(provider_id: int) -> str:
        return f"moderation:provider_verification:{provider_id}"
