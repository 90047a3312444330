"""Unit tests for the persistent config overlay."""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

import pytest

from src.config.repository import ConfigRepository
from src.domain.config import ConfigItem, ItemRegistry
from src.domain.errors import CacheError, ConfigurationError, StorageError, ValidationError
from src.logger.types import Level
from src.persistent.repository import FOREVER, PersistentRepository
from tests.doubles import BrokenStorage, CountingCache, CountingStorage, FailingCache

CACHE_KEY = "test.persistent.config"

ITEMS = {
    "mail.contact.address": {
        "label": "Email address receiving contact messages",
        "rules": ["sometimes", "required", "email"],
    },
    "site.per_page": {
        "label": "Items per page",
        "rules": ["integer", "min:1", "max:100"],
        "cast": "int",
    },
}


def _base() -> ConfigRepository:
    return ConfigRepository({"app": {"name": "Demo"}, "site": {"per_page": 20}})


def _build(
    storage: Any = None,
    cache: Any = None,
    base: ConfigRepository | None = None,
    items: Any = None,
    cache_ttl: Any = 60,
) -> PersistentRepository:
    return PersistentRepository(
        base=base if base is not None else _base(),
        storage=storage if storage is not None else CountingStorage(),
        items=items if items is not None else ITEMS,
        cache=cache,
        cache_key=CACHE_KEY,
        cache_ttl=cache_ttl,
    )


def _cached(cache: CountingCache) -> dict[str, Any] | None:
    payload = cache.get(CACHE_KEY)
    return None if payload is None else json.loads(payload)


def test_get_returns_persisted_value_over_default() -> None:
    """Persisted value should win over the base default for registered keys."""
    repository = _build(storage=CountingStorage({"site.per_page": "50"}))

    assert repository.get("site.per_page") == 50


def test_get_passes_through_unregistered_keys() -> None:
    """Keys outside the registry should ignore storage contents."""
    repository = _build(storage=CountingStorage({"app.name": "Overridden"}))

    assert repository.get("app.name") == "Demo"


def test_get_never_invents_value_for_empty_storage() -> None:
    """Registered key without default or persisted value should stay absent."""
    repository = _build(storage=CountingStorage({}))

    assert repository.get("mail.contact.address") is None
    assert repository.has("mail.contact.address") is False


def test_get_applies_caller_default_for_missing_key() -> None:
    """Missing keys should follow the base config default policy."""
    repository = _build()

    assert repository.get("app.missing", "fallback") == "fallback"


def test_load_twice_reads_storage_once() -> None:
    """Repeated loads should perform a single storage round trip."""
    storage = CountingStorage({"site.per_page": "50"})
    repository = _build(storage=storage, cache=CountingCache())

    repository.load()
    repository.load()
    repository.get("site.per_page")

    assert storage.read_calls == 1


def test_load_without_cache_reads_storage_once() -> None:
    """Lazy load should be single round trip even without a cache."""
    storage = CountingStorage({"site.per_page": "50"})
    repository = _build(storage=storage)

    repository.get("site.per_page")
    repository.get("app.name")

    assert storage.read_calls == 1


def test_load_writes_overridden_subset_to_cache() -> None:
    """Cache entry should hold only persisted keys, with the configured TTL."""
    cache = CountingCache()
    repository = _build(
        storage=CountingStorage({"mail.contact.address": "a@b.com"}),
        cache=cache,
    )

    repository.load()

    assert repository.get("mail.contact.address") == "a@b.com"
    assert _cached(cache) == {"mail.contact.address": "a@b.com"}
    assert cache.set_calls[0][2] == 60


def test_load_serves_cache_hit_without_storage() -> None:
    """Cache hit should skip the storage round trip."""
    storage = CountingStorage({"mail.contact.address": "stored@b.com"})
    cache = CountingCache()
    cache.set(CACHE_KEY, b'{"mail.contact.address": "cached@b.com"}', None)
    repository = _build(storage=storage, cache=cache)

    value = repository.get("mail.contact.address")

    assert value == "cached@b.com"
    assert storage.read_calls == 0


def test_cached_unregistered_keys_are_ignored() -> None:
    """Cache payload should not override keys outside the registry."""
    cache = CountingCache()
    cache.set(CACHE_KEY, b'{"app.name": "FromCache"}', None)
    repository = _build(cache=cache)

    assert repository.get("app.name") == "Demo"


def test_undecodable_cache_entry_falls_back_to_storage() -> None:
    """Corrupt cache payload should be treated as a miss."""
    storage = CountingStorage({"site.per_page": "30"})
    cache = CountingCache()
    cache.set(CACHE_KEY, b"not json", None)
    repository = _build(storage=storage, cache=cache)

    assert repository.get("site.per_page") == 30
    assert storage.read_calls == 1


def test_invalidate_makes_next_load_requery_storage() -> None:
    """After invalidate the next read should go back to storage."""
    storage = CountingStorage({"mail.contact.address": "old@b.com"})
    cache = CountingCache()
    repository = _build(storage=storage, cache=cache)
    repository.load()
    storage.values["mail.contact.address"] = "new@b.com"

    assert repository.invalidate() is None
    assert storage.read_calls == 1

    assert repository.get("mail.contact.address") == "new@b.com"
    assert storage.read_calls == 2
    assert _cached(cache) == {"mail.contact.address": "new@b.com"}


def test_invalidate_restores_default_for_removed_value() -> None:
    """Keys deleted from storage should fall back to defaults on reload."""
    storage = CountingStorage({"site.per_page": "50"})
    repository = _build(storage=storage, cache=CountingCache())
    repository.load()
    storage.values.clear()

    repository.invalidate()

    assert repository.get("site.per_page") == 20


@pytest.mark.parametrize("error", [CacheError("down"), RuntimeError("boom")])
def test_failing_cache_does_not_block_storage(error: Exception) -> None:
    """Cache raising on every call should not prevent storage reads."""
    cache = FailingCache(error)
    repository = _build(
        storage=CountingStorage({"x.y": "1"}),
        cache=cache,
        items={"x.y": {"label": "X"}},
    )

    assert repository.get("x.y") == "1"
    assert cache.calls >= 2


def test_storage_failure_degrades_to_defaults(log_writer) -> None:
    """Unavailable storage should leave defaults in place and not poison the cache."""
    storage = CountingStorage({"site.per_page": "50"})
    storage.fail_reads = True
    cache = CountingCache()
    repository = _build(storage=storage, cache=cache)

    value = repository.get("site.per_page")

    assert value == 20
    assert repository.is_degraded is True
    assert cache.set_calls == []
    assert "Persistent config storage unavailable, using defaults" in log_writer.messages(
        Level.WARN
    )
    assert any(ctx.get("error_type") == "StorageError" for ctx in log_writer.contexts())


def test_cache_hit_after_invalidate_clears_degraded_mode() -> None:
    """A reload served from cache should leave degraded mode and rewrite the cache on set."""
    storage = CountingStorage()
    storage.fail_reads = True
    cache = CountingCache()
    repository = _build(storage=storage, cache=cache)
    repository.load()
    assert repository.is_degraded is True

    storage.fail_reads = False
    repository.invalidate()
    cache.set(CACHE_KEY, b'{"site.per_page": 30}', None)

    assert repository.get("site.per_page") == 30
    assert repository.is_degraded is False

    repository.set("mail.contact.address", "ops@example.com")

    assert _cached(cache) == {"mail.contact.address": "ops@example.com", "site.per_page": 30}


def test_non_contract_storage_error_also_degrades() -> None:
    """Driver errors leaking from a storage should still degrade the load."""
    repository = _build(storage=BrokenStorage())

    assert repository.get("site.per_page") == 20


def test_set_rejects_invalid_value_without_side_effects() -> None:
    """Rejected value should leave storage, cache and in-process value unchanged."""
    storage = CountingStorage({"mail.contact.address": "a@b.com"})
    cache = CountingCache()
    repository = _build(storage=storage, cache=cache)
    repository.load()
    cached_before = cache.get(CACHE_KEY)

    with pytest.raises(ValidationError) as exc_info:
        repository.set("mail.contact.address", "not-an-email")

    assert exc_info.value.rule == "email"
    assert exc_info.value.key == "mail.contact.address"
    assert storage.values == {"mail.contact.address": "a@b.com"}
    assert storage.write_calls == 0
    assert repository.get("mail.contact.address") == "a@b.com"
    assert cache.get(CACHE_KEY) == cached_before


def test_set_rejects_empty_required_value() -> None:
    """Blank value for a required item should fail the required rule."""
    repository = _build()

    with pytest.raises(ValidationError) as exc_info:
        repository.set("mail.contact.address", "  ")

    assert exc_info.value.rule == "required"


def test_set_rejects_out_of_range_number() -> None:
    """Numeric max rule should compare values, not text length."""
    repository = _build()

    with pytest.raises(ValidationError) as exc_info:
        repository.set("site.per_page", "500")

    assert exc_info.value.rule == "max"


def test_set_writes_through_and_updates_cache() -> None:
    """Valid value should reach storage, the in-process config and the cache."""
    storage = CountingStorage()
    cache = CountingCache()
    repository = _build(storage=storage, cache=cache)

    repository.set("site.per_page", "40")

    assert storage.values == {"site.per_page": "40"}
    assert repository.get("site.per_page") == 40
    assert _cached(cache) == {"site.per_page": 40}


def test_set_storage_failure_leaves_state_unchanged() -> None:
    """Failed write-through should surface StorageError and change nothing."""
    storage = CountingStorage()
    storage.fail_writes = True
    cache = CountingCache()
    repository = _build(storage=storage, cache=cache)
    repository.load()
    cached_before = cache.get(CACHE_KEY)

    with pytest.raises(StorageError):
        repository.set("site.per_page", "40")

    assert repository.get("site.per_page") == 20
    assert cache.get(CACHE_KEY) == cached_before


def test_set_wraps_driver_errors_as_storage_error() -> None:
    """Non-contract exceptions during write should become StorageError."""
    repository = _build(storage=BrokenStorage())

    with pytest.raises(StorageError):
        repository.set("site.per_page", "40")


def test_set_unregistered_key_changes_process_only() -> None:
    """Keys outside the registry should never be persisted."""
    storage = CountingStorage()
    repository = _build(storage=storage)

    repository.set("app.name", "Other")

    assert repository.get("app.name") == "Other"
    assert storage.values == {}


def test_save_validates_all_values_before_writing() -> None:
    """One invalid value should prevent every write in the batch."""
    storage = CountingStorage()
    repository = _build(storage=storage)

    with pytest.raises(ValidationError) as exc_info:
        repository.save({"site.per_page": "10", "mail.contact.address": "bad"})

    assert storage.values == {}
    assert exc_info.value.errors.keys() == {"mail.contact.address"}


def test_validate_reports_errors_without_writing() -> None:
    """validate() should only report failures."""
    storage = CountingStorage()
    repository = _build(storage=storage)

    result = repository.validate({"site.per_page": "abc", "app.name": "anything"})

    assert result.is_valid is False
    assert result.failed_rules == {"site.per_page": "integer"}
    assert storage.write_calls == 0


def test_reset_value_restores_default() -> None:
    """Resetting a key should delete it from storage and restore the default."""
    storage = CountingStorage({"site.per_page": "50"})
    cache = CountingCache()
    repository = _build(storage=storage, cache=cache)
    repository.load()

    repository.reset_value("site.per_page")

    assert repository.get("site.per_page") == 20
    assert "site.per_page" not in storage.values
    assert _cached(cache) == {}


def test_reset_value_forgets_key_absent_from_base() -> None:
    """Default of a key missing in the base config is absence, not None."""
    repository = _build(storage=CountingStorage({"mail.contact.address": "a@b.com"}))
    repository.load()

    repository.reset_value("mail.contact.address")

    assert repository.has("mail.contact.address") is False


def test_reset_value_rejects_unregistered_key() -> None:
    """Only registered items can be reset."""
    repository = _build()

    with pytest.raises(ConfigurationError):
        repository.reset_value("app.name")


def test_reset_clears_storage_and_cache() -> None:
    """Full reset should restore every default and drop the cache entry."""
    storage = CountingStorage({"site.per_page": "50", "mail.contact.address": "a@b.com"})
    cache = CountingCache()
    repository = _build(storage=storage, cache=cache)
    repository.load()

    repository.reset()

    assert storage.values == {}
    assert cache.get(CACHE_KEY) is None
    assert repository.get("site.per_page") == 20
    assert repository.overrides() == {}


def test_rebuild_cache_rewrites_stale_entry() -> None:
    """Rebuild should replace a stale cache entry with storage contents."""
    storage = CountingStorage({"site.per_page": "50"})
    cache = CountingCache()
    cache.set(CACHE_KEY, b'{"site.per_page": 99}', None)
    repository = _build(storage=storage, cache=cache)

    overrides = repository.rebuild_cache()

    assert overrides == {"site.per_page": 50}
    assert _cached(cache) == {"site.per_page": 50}
    assert repository.get("site.per_page") == 50


def test_rebuild_cache_propagates_storage_error() -> None:
    """Maintenance rebuild should report storage failures."""
    storage = CountingStorage()
    storage.fail_reads = True
    repository = _build(storage=storage, cache=CountingCache())

    with pytest.raises(StorageError):
        repository.rebuild_cache()


def test_rebuild_cache_propagates_cache_error() -> None:
    """Maintenance rebuild should report cache failures."""
    repository = _build(storage=CountingStorage(), cache=FailingCache(RuntimeError("down")))

    with pytest.raises(CacheError):
        repository.rebuild_cache()


def test_overrides_and_default_expose_both_layers() -> None:
    """Overlay should keep track of persisted values and original defaults."""
    repository = _build(storage=CountingStorage({"site.per_page": "50"}))

    assert repository.overrides() == {"site.per_page": 50}
    assert repository.default("site.per_page") == 20


def test_constructor_rejects_empty_cache_key() -> None:
    """Blank cache key should fail fast."""
    with pytest.raises(ConfigurationError):
        PersistentRepository(_base(), CountingStorage(), ITEMS, cache_key=" ")


@pytest.mark.parametrize("ttl", [0, -5, timedelta(0), "60", True, 1.5])
def test_constructor_rejects_invalid_ttl(ttl: Any) -> None:
    """TTL must be positive seconds, a timedelta or FOREVER."""
    with pytest.raises(ConfigurationError):
        _build(cache_ttl=ttl)


def test_constructor_rejects_malformed_item_key() -> None:
    """Item keys must be dotted paths."""
    with pytest.raises(ConfigurationError):
        _build(items={"bad key": {}})


@pytest.mark.parametrize(
    ("ttl", "expected"),
    [(FOREVER, None), (timedelta(minutes=5), 300), (3600, 3600)],
)
def test_cache_ttl_is_normalized_to_seconds(ttl: Any, expected: int | None) -> None:
    """Cache writes should use whole seconds, None meaning forever."""
    cache = CountingCache()
    repository = _build(cache=cache, cache_ttl=ttl)

    repository.load()

    assert cache.set_calls[-1][2] == expected


def test_json_cast_round_trips_through_storage() -> None:
    """Array items should be stored as JSON text and read back as lists."""
    storage = CountingStorage()
    repository = _build(
        storage=storage,
        items={"mail.bcc": {"label": "Bcc", "rules": ["array"], "cast": "json"}},
    )

    repository.set("mail.bcc", ["a@b.com", "c@d.com"])

    assert storage.values == {"mail.bcc": '["a@b.com", "c@d.com"]'}
    assert repository.get("mail.bcc") == ["a@b.com", "c@d.com"]


def test_registry_changes_after_construction_do_not_reach_overlay() -> None:
    """The overlay should keep its own copy of the item registry."""
    registry = ItemRegistry.from_mapping(ITEMS)
    storage = CountingStorage({"app.name": "Stored"})
    repository = _build(storage=storage, items=registry)
    repository.load()

    registry.add(ConfigItem(key="app.name"))

    assert "app.name" not in repository.items
    assert repository.get("app.name") == "Demo"
    with pytest.raises(ConfigurationError):
        repository.reset_value("app.name")
