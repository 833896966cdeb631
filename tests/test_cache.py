import logging

from cache import (
    OWNER_VIEW_TTL,
    SHARED_VIEW_TTL,
    CacheInvalidator,
    CacheKeys,
    InMemoryQueryCache,
    NullQueryCache,
    build_query_cache,
)


def test_get_returns_stored_value(cache):
    cache.set("listing_1", {"title": "Bread"}, 10)

    assert cache.get("listing_1") == {"title": "Bread"}


def test_get_unknown_key_is_a_miss(cache):
    assert cache.get("nope") is None


def test_set_replaces_existing_entry(cache, timer):
    cache.set("k", "old", 1)
    cache.set("k", "new", 10)
    timer.advance(5)

    assert cache.get("k") == "new"


def test_entry_is_live_up_to_and_including_expiry(cache, timer):
    cache.set("k", "v", 5)

    timer.advance(5)

    assert cache.get("k") == "v"


def test_entry_expires_after_ttl(cache, timer):
    cache.set("k", "v", 5)

    timer.advance(5.001)

    assert cache.get("k") is None


def test_late_get_removes_expired_entries(cache, timer):
    cache.set("short", 1, 1)
    cache.set("long", 2, 60)
    timer.advance(2)

    assert cache.get("short") is None
    assert len(cache) == 1
    assert cache.get("long") == 2


def test_invalidate_removes_entry(cache):
    cache.set("k", "v", 10)

    cache.invalidate("k")

    assert cache.get("k") is None


def test_invalidate_missing_key_is_a_noop(cache):
    cache.invalidate("never-set")

    assert len(cache) == 0


def test_falsy_values_are_cached(cache):
    cache.set("unread_count_u1", 0, 5)
    cache.set("all_listings", [], 5)

    assert cache.get("unread_count_u1") == 0
    assert cache.get("all_listings") == []


def test_null_cache_never_stores():
    cache = NullQueryCache()
    cache.set("k", "v", 10)

    assert cache.get("k") is None
    cache.invalidate("k")


def test_build_query_cache_respects_flag():
    assert isinstance(build_query_cache(True), InMemoryQueryCache)
    assert isinstance(build_query_cache(False), NullQueryCache)


def test_invalidator_drops_each_key_once(cache, caplog):
    cache.set("a", 1, 10)
    cache.set("b", 2, 10)
    cache.set("c", 3, 10)

    with caplog.at_level(logging.DEBUG, logger="cache"):
        CacheInvalidator(cache).apply(["b", "a", "a"])

    assert cache.get("a") is None
    assert cache.get("b") is None
    assert cache.get("c") == 3
    assert "a, b" in caplog.text


def test_key_builders():
    assert CacheKeys.all_listings() == "all_listings"
    assert CacheKeys.business_listings("u1") == "business_listings_u1"
    assert CacheKeys.listing("l1") == "listing_l1"
    assert CacheKeys.listing_requests("l1") == "listing_requests_l1"
    assert CacheKeys.business_requests("u1") == "business_requests_u1"
    assert CacheKeys.shelter_requests("u2") == "shelter_requests_u2"
    assert CacheKeys.unread_count("u2") == "unread_count_u2"


def test_view_ttls():
    assert SHARED_VIEW_TTL == 5.0
    assert OWNER_VIEW_TTL == 10.0
