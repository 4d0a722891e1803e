"""
Tests for BoundedTTLCache.

A fake clock makes expiry deterministic: the test moves time forward
instead of sleeping.
"""

import pytest

from cache.ttl import BoundedTTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_get_returns_stored_value():
    cache = BoundedTTLCache(maxsize=4, ttl=10)
    cache.set("a", 1)
    assert cache.get("a") == 1
    assert cache.get("missing", "default") == "default"


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = BoundedTTLCache(maxsize=4, ttl=10, clock=clock)
    cache.set("a", 1)

    clock.now += 9.9
    assert cache.get("a") == 1

    clock.now += 1
    assert cache.get("a") is None
    assert len(cache) == 0


def test_least_recently_used_entry_is_evicted():
    cache = BoundedTTLCache(maxsize=2, ttl=10)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")          # "b" is now the least recently used
    cache.set("c", 3)

    assert cache.get("a") == 1
    assert cache.get("b") is None
    assert cache.get("c") == 3
    assert len(cache) == 2


def test_invalidate_by_key_and_prefix():
    cache = BoundedTTLCache(maxsize=8, ttl=10)
    cache.set("name:landscape", 1)
    cache.set("name:portrait", 2)
    cache.set("id:123", 3)

    assert cache.invalidate("id:123") is True
    assert cache.invalidate("id:123") is False
    assert cache.invalidate_prefix("name:") == 2
    assert len(cache) == 0


def test_clear():
    cache = BoundedTTLCache(maxsize=8, ttl=10)
    cache.set("a", 1)
    cache.clear()
    assert cache.get("a") is None


def test_maxsize_must_be_positive():
    with pytest.raises(ValueError):
        BoundedTTLCache(maxsize=0, ttl=10)
