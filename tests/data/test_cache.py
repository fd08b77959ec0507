"""Tests for the TTL cache."""

from unittest.mock import patch

from modimport.data.cache import TTLCache


class TestTTLCache:
    """Tests for expiry and invalidation."""

    def test_get_set(self):
        cache = TTLCache[int](ttl_s=60)
        cache.set("a", 1)
        assert cache.get("a") == 1
        assert cache.get("b") is None

    def test_expiry(self):
        cache = TTLCache[str](ttl_s=10)
        with patch("modimport.data.cache.monotonic", return_value=100.0):
            cache.set("scope", "index")
        with patch("modimport.data.cache.monotonic", return_value=105.0):
            assert cache.get("scope") == "index"
            assert cache.age("scope") == 5.0
        with patch("modimport.data.cache.monotonic", return_value=110.0):
            assert cache.get("scope") is None
            assert cache.age("scope") is None

    def test_zero_ttl_never_expires(self):
        cache = TTLCache[str](ttl_s=0)
        with patch("modimport.data.cache.monotonic", return_value=0.0):
            cache.set("scope", "index")
        with patch("modimport.data.cache.monotonic", return_value=1e9):
            assert cache.get("scope") == "index"

    def test_invalidate_and_clear(self):
        cache = TTLCache[int](ttl_s=60)
        cache.set("a", 1)
        cache.set("b", 2)

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        cache.clear()
        assert cache.get("b") is None
