from conftest import bearer, make_order
from storefront.core import cache
from storefront.core.cache import ResponseCache


def test_get_set_and_stats():
    store = ResponseCache(default_ttl=60)

    assert store.get("cache_/api/products") is None
    store.set("cache_/api/products", [{"id": 1}])
    assert store.get("cache_/api/products") == [{"id": 1}]

    assert store.stats() == {
        "keys": 1,
        "hits": 1,
        "misses": 1,
        "sets": 1,
        "evictions": 0,
        "hitRate": 0.5,
    }


def test_entries_expire(mocker):
    clock = mocker.patch.object(cache.time, "monotonic", return_value=1000.0)
    store = ResponseCache()
    store.set("cache_/api/orders/statistics", {"totalOrders": 3}, ttl=60)

    clock.return_value = 1059.0
    assert store.get("cache_/api/orders/statistics") == {"totalOrders": 3}

    clock.return_value = 1060.0
    assert store.get("cache_/api/orders/statistics") is None
    assert store.stats()["evictions"] == 1
    assert store.stats()["keys"] == 0


def test_clear_by_substring():
    store = ResponseCache()
    store.set("cache_/api/products", [])
    store.set("cache_/api/products/featured", [])
    store.set("cache_/api/orders/myorders_user_4", [])

    assert store.clear("products") == 2
    assert store.get("cache_/api/orders/myorders_user_4") == []
    assert store.clear("products") == 0


def test_clear_all_resets_counters():
    store = ResponseCache()
    store.set("a", 1)
    store.get("a")

    store.clear_all()

    assert store.stats() == {"keys": 0, "hits": 0, "misses": 0, "sets": 0, "evictions": 0, "hitRate": 0.0}


def test_cached_endpoint_is_scoped_per_user(client, db_session, test_user, admin_user):
    make_order(db_session, test_user)

    mine = client.get("/api/orders/myorders", headers=bearer(test_user))
    theirs = client.get("/api/orders/myorders", headers=bearer(admin_user))

    assert mine.headers["X-Cache"] == "MISS"
    assert theirs.headers["X-Cache"] == "MISS"
    assert len(mine.json()) == 1
    assert theirs.json() == []
