# checkout/services/event_ledger.py
import redis
from redis.exceptions import RedisError

from checkout.utils.retry import redis_retry
from checkout.utils.settings import REDIS_URL, WEBHOOK_EVENT_TTL_SECONDS
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class WebhookEventLedger:
    """
    Pamieta id w pelni przetworzonych eventow webhooka, zeby ponowne
    doreczenia konczyly sie od razu.
    Poprawnosc od tego nie zalezy - rekonsyliacja jest idempotentna,
    wiec awaria redisa to tylko warning.
    """

    def __init__(self, url: str | None = None, ttl: int = WEBHOOK_EVENT_TTL_SECONDS):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )
        self.ttl = ttl

    @staticmethod
    def _key(event_id: str) -> str:
        return f"webhook:event:{event_id}"

    def seen(self, event_id: str) -> bool:
        try:
            return self._exists(event_id)
        except RedisError as e:
            logger.warning(f"Ledger lookup failed for event {event_id}: {e}")
            return False

    def mark_processed(self, event_id: str, outcome: str) -> None:
        try:
            self._set(event_id, outcome)
        except RedisError as e:
            logger.warning(f"Ledger write failed for event {event_id}: {e}")

    @redis_retry()
    def _exists(self, event_id: str) -> bool:
        return bool(self.redis.exists(self._key(event_id)))

    @redis_retry()
    def _set(self, event_id: str, outcome: str) -> None:
        # SET NX EX - pierwszy zapis wygrywa, klucz wygasa sam
        self.redis.set(name=self._key(event_id), value=outcome, nx=True, ex=self.ttl)
