# shopcore/services/lock_service.py
import uuid
from contextlib import contextmanager

import redis
from tenacity import RetryError

from shopcore.domain.errors import LockTimeout
from shopcore.utils.logging import get_logger
from shopcore.utils.retry import poll_until_true, redis_retry
from shopcore.utils.settings import PAYMENT_LOCK_TTL_SECONDS, REDIS_URL, TRANSACTION_TIMEOUT_MS

logger = get_logger(__name__)

# compare-and-delete: only the holder's token may release the key.
# Redis runs the script atomically, nothing can slip in between GET and DEL.
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


def payment_lock_key(intent_id: str) -> str:
    return f"payment-intent:{intent_id}:lock"


class LockService:
    """
    Distributed mutex shared by every worker process.
    Webhook reconciliation and client refunds for the same payment intent
    take the same key, so they never interleave.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)

    @redis_retry()
    def acquire(self, key: str, token: str, ttl: int) -> bool:
        logger.info(f"Acquire lock {key}")
        # SET key token NX EX ttl: the key expires even if the holder dies
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release(self, key: str, token: str) -> bool:
        logger.info(f"Release lock {key}")
        return bool(self.redis.eval(_RELEASE_LUA, 1, key, token))

    @contextmanager
    def hold(
        self,
        key: str,
        timeout: float = TRANSACTION_TIMEOUT_MS / 1000,
        ttl: int = PAYMENT_LOCK_TTL_SECONDS,
    ):
        """Block until ``key`` is ours or ``timeout`` seconds pass."""
        token = uuid.uuid4().hex
        try:
            poll_until_true(timeout)(self.acquire)(key, token, ttl)
        except RetryError as e:
            raise LockTimeout(f"Timed out waiting for lock {key}") from e

        try:
            yield token
        finally:
            self.release(key, token)
