"""Tests for the Redis cache wrapper."""
import json
from unittest.mock import MagicMock

import redis

from storefront.utils.cache import CacheService


def make_cache(**kwargs):
    client = MagicMock()
    return CacheService(client=client, ttl=60, **kwargs), client


def test_get_hit():
    cache, client = make_cache()
    client.get.return_value = json.dumps({"id": "p1"})

    assert cache.get("product", "p1") == {"id": "p1"}
    client.get.assert_called_once_with("product:p1")


def test_get_miss():
    cache, client = make_cache()
    client.get.return_value = None

    assert cache.get("product", "p1") is None


def test_set_uses_ttl():
    cache, client = make_cache()

    assert cache.set("product", "p1", {"id": "p1"}) is True
    client.setex.assert_called_once_with("product:p1", 60, json.dumps({"id": "p1"}))


def test_redis_errors_are_cache_misses():
    cache, client = make_cache()
    client.get.side_effect = redis.ConnectionError("down")
    client.setex.side_effect = redis.ConnectionError("down")
    client.delete.side_effect = redis.ConnectionError("down")

    assert cache.get("product", "p1") is None
    assert cache.set("product", "p1", {"id": "p1"}) is False
    assert cache.delete("product", "p1") is False
    assert cache.delete_many("product", ["p1", "p2"]) == 0


def test_delete_many_single_round_trip():
    cache, client = make_cache()
    client.delete.return_value = 2

    assert cache.delete_many("product", ["p1", "p2"]) == 2
    client.delete.assert_called_once_with("product:p1", "product:p2")


def test_delete_many_without_keys():
    cache, client = make_cache()

    assert cache.delete_many("product", []) == 0
    client.delete.assert_not_called()


def test_disabled_cache_never_calls_redis():
    cache, client = make_cache(enabled=False)

    assert cache.get("product", "p1") is None
    assert cache.set("product", "p1", {}) is False
    assert cache.delete("product", "p1") is False
    assert cache.delete_many("product", ["p1"]) == 0
    assert client.method_calls == []
