"""Tests for the local record cache."""
from lifesprint.db.local_cache import LocalCache


class TestLocalCache:
    def test_load_missing(self, cache):
        assert cache.load("u1", "progress") is None

    def test_save_and_load(self, cache):
        cache.save("u1", "progress", {"currentDay": 3})
        assert cache.load("u1", "progress") == {"currentDay": 3}

    def test_save_overwrites(self, cache):
        cache.save("u1", "settings", {"theme": "light"})
        cache.save("u1", "settings", {"theme": "dark"})
        assert cache.load("u1", "settings") == {"theme": "dark"}

    def test_kinds_and_users_are_separate(self, cache):
        cache.save("u1", "progress", {"currentDay": 1})
        cache.save("u1", "user", {"name": "Ann"})
        cache.save("u2", "progress", {"currentDay": 9})
        assert cache.load("u1", "progress") == {"currentDay": 1}
        assert cache.load("u2", "progress") == {"currentDay": 9}
        assert cache.load("u2", "user") is None

    def test_delete(self, cache):
        cache.save("u1", "user", {"name": "Ann"})
        cache.delete("u1", "user")
        cache.delete("u1", "user")
        assert cache.load("u1", "user") is None

    def test_clear(self, engine, cache):
        cache.save("u1", "progress", {})
        cache.save("u1", "settings", {})
        cache.save("u2", "settings", {"theme": "dark"})
        cache.clear("u1")
        assert cache.load("u1", "progress") is None
        assert cache.load("u1", "settings") is None
        assert LocalCache(engine).load("u2", "settings") == {"theme": "dark"}
