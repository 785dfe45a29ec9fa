from unittest.mock import MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.cache import HybridCacheManager


class FakeTimer:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestMemoryFallback:
    def test_first_add_wins(self):
        store = HybridCacheManager()
        assert store.add("auth_nonce:a", 60) is True
        assert store.add("auth_nonce:a", 60) is False
        assert store.add("auth_nonce:b", 60) is True

    def test_key_expires(self):
        timer = FakeTimer()
        store = HybridCacheManager(timer=timer)
        store.add("k", 10)
        timer.now += 10
        assert store.add("k", 10) is True
        assert list(store.memory_cache) == ["k"]


class TestRedisBackend:
    def test_uses_set_nx(self):
        store = HybridCacheManager("redis.local", 6379)
        client = MagicMock()
        client.ping.return_value = True
        client.set.side_effect = [True, None]

        with patch("app.core.cache.Redis", return_value=client):
            assert store.add("k", 30) is True
            assert store.add("k", 30) is False

        client.set.assert_called_with("k", b"1", nx=True, ex=30)
        assert store.memory_cache == {}

    def test_falls_back_when_unreachable(self):
        timer = FakeTimer()
        store = HybridCacheManager("redis.local", 6379, timer=timer)
        client = MagicMock()
        client.ping.side_effect = RedisConnectionError("down")

        with patch("app.core.cache.Redis", return_value=client):
            assert store.add("k", 30) is True
            assert store.add("k", 30) is False

        # within the recheck cooldown only the first call probes redis
        assert client.ping.call_count == 1
        assert "k" in store.memory_cache


class TestDiscard:
    def test_discarded_key_can_be_added_again(self):
        store = HybridCacheManager()
        store.add("auth_nonce:a", 60)
        store.discard("auth_nonce:a")
        assert store.add("auth_nonce:a", 60) is True

    def test_discard_unknown_key(self):
        store = HybridCacheManager()
        store.discard("missing")
        assert store.memory_cache == {}

    def test_discard_deletes_from_redis(self):
        store = HybridCacheManager("redis.local", 6379)
        client = MagicMock()
        client.ping.return_value = True

        with patch("app.core.cache.Redis", return_value=client):
            store.discard("k")

        client.delete.assert_called_once_with("k")
