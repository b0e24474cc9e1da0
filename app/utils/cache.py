"""
Redis cache utility for leaderboard rankings
"""
import redis
import json
import logging
from typing import Optional, Any

logger = logging.getLogger(__name__)


class LeaderboardCache:
    """
    Redis-backed cache for computed rankings

    Injected into the leaderboard service; every entry carries an explicit
    TTL. When Redis is unreachable the cache degrades to a no-op.

    Keys embed a generation number bumped on every invalidation, so a ranking
    computed before an invalidation is written under a key nobody reads again.
    """

    KEY_PREFIX = "leaderboard"
    GENERATION_KEY = "leaderboard_generation"

    def __init__(self, redis_url: str, ttl: int, client: Optional[Any] = None):
        self.ttl = ttl

        if client is not None:
            self.redis_client = client
            return

        try:
            self.redis_client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5
            )
            # Test connection
            self.redis_client.ping()
            logger.info("Redis connection established")
        except redis.RedisError as e:
            logger.warning(f"Redis connection failed: {str(e)}. Leaderboard caching disabled.")
            self.redis_client = None

    def key(self, *parts: Any) -> str:
        generation = f"g{self._generation()}"
        return ":".join([self.KEY_PREFIX, generation, *(str(part) for part in parts)])

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache

        Args:
            key: Cache key

        Returns:
            Cached value or None
        """
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(key)
            if value:
                logger.debug(f"Cache hit: {key}")
                return json.loads(value)
            logger.debug(f"Cache miss: {key}")
            return None
        except redis.RedisError as e:
            logger.error(f"Cache get error: {str(e)}")
            return None

    def set(self, key: str, value: Any) -> bool:
        """
        Set value in cache with the configured TTL

        Args:
            key: Cache key
            value: Value to cache (must be JSON serializable)

        Returns:
            Success status
        """
        if not self.redis_client:
            return False

        try:
            self.redis_client.setex(key, self.ttl, json.dumps(value))
            logger.debug(f"Cache set: {key} (TTL: {self.ttl}s)")
            return True
        except redis.RedisError as e:
            logger.error(f"Cache set error: {str(e)}")
            return False

    def invalidate(self) -> bool:
        """Drop every cached leaderboard ranking"""
        if not self.redis_client:
            return False

        try:
            self.redis_client.incr(self.GENERATION_KEY)
            keys = self.redis_client.keys(f"{self.KEY_PREFIX}:*")
            if keys:
                self.redis_client.delete(*keys)
                logger.info(f"Cleared {len(keys)} leaderboard cache entries")
            return True
        except redis.RedisError as e:
            logger.error(f"Cache clear error: {str(e)}")
            return False

    def _generation(self) -> int:
        if not self.redis_client:
            return 0

        try:
            return int(self.redis_client.get(self.GENERATION_KEY) or 0)
        except redis.RedisError as e:
            logger.error(f"Cache generation error: {str(e)}")
            return 0

    def close(self) -> None:
        if self.redis_client:
            self.redis_client.close()
            self.redis_client = None
