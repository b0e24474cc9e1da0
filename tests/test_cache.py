import json
import redis
from unittest.mock import MagicMock

from app.utils.cache import LeaderboardCache


def _cache(client=None):
    return LeaderboardCache("redis://unused", ttl=60, client=client or MagicMock())


class TestLeaderboardCache:
    def test_key_carries_generation(self):
        client = MagicMock()
        client.get.return_value = "3"

        assert _cache(client).key("shared", 12) == "leaderboard:g3:shared:12"
        client.get.assert_called_once_with("leaderboard_generation")

    def test_key_before_first_invalidation(self):
        client = MagicMock()
        client.get.return_value = None

        assert _cache(client).key("global") == "leaderboard:g0:global"

    def test_ranking_computed_across_invalidation_is_not_served(self):
        """A write-back keyed before an invalidation is never read afterwards."""
        generation = {"value": 0}
        client = MagicMock()
        client.get.side_effect = lambda key: str(generation["value"]) if key == "leaderboard_generation" else None
        client.incr.side_effect = lambda key: generation.update(value=generation["value"] + 1)
        client.keys.return_value = []
        cache = _cache(client)

        stale_key = cache.key("global")
        cache.invalidate()
        cache.set(stale_key, [{"rank": 1, "user_id": 1}])

        assert cache.key("global") != stale_key
        client.setex.assert_called_once_with(stale_key, 60, json.dumps([{"rank": 1, "user_id": 1}]))

    def test_set_uses_ttl(self):
        client = MagicMock()
        cache = _cache(client)

        assert cache.set("leaderboard:global", [{"rank": 1}]) is True
        client.setex.assert_called_once_with("leaderboard:global", 60, json.dumps([{"rank": 1}]))

    def test_get_hit_and_miss(self):
        client = MagicMock()
        client.get.side_effect = [json.dumps([{"rank": 1}]), None]
        cache = _cache(client)

        assert cache.get("leaderboard:global") == [{"rank": 1}]
        assert cache.get("leaderboard:global") is None

    def test_redis_errors_degrade_to_miss(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        client.setex.side_effect = redis.ConnectionError("down")
        cache = _cache(client)

        assert cache.get("leaderboard:global") is None
        assert cache.set("leaderboard:global", []) is False

    def test_invalidate_deletes_leaderboard_keys(self):
        client = MagicMock()
        client.keys.return_value = ["leaderboard:global", "leaderboard:shared:3"]
        cache = _cache(client)

        assert cache.invalidate() is True
        client.incr.assert_called_once_with("leaderboard_generation")
        client.keys.assert_called_once_with("leaderboard:*")
        client.delete.assert_called_once_with("leaderboard:global", "leaderboard:shared:3")

    def test_unreachable_redis_disables_cache(self, monkeypatch):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("down")
        monkeypatch.setattr(redis, "from_url", lambda *args, **kwargs: client)

        cache = LeaderboardCache("redis://nowhere:6379/0", ttl=60)

        assert cache.redis_client is None
        assert cache.get("leaderboard:global") is None
        assert cache.invalidate() is False

    def test_close_releases_client(self):
        client = MagicMock()
        cache = _cache(client)

        cache.close()

        client.close.assert_called_once_with()
        assert cache.redis_client is None
