"""Tests for the recipe cache.

Validates that:
1. Reads within the TTL are served without touching the store
2. Invalidation is immediate and scoped to the affected kind
3. Concurrent loads for the same kind are coalesced into one store read
4. A load that races an invalidation never repopulates the cache
5. Load failures degrade to empty results and are retried
6. Waiters are always released, even when the loading thread blows up
"""
from __future__ import annotations

import threading
import time
from io import StringIO

import pytest

from CraftCalc.cache import CacheState, RecipeCache
from CraftCalc.calc_logging import CraftLogger, LogLevel
from CraftCalc.catalog_store import InMemoryCatalogStore
from CraftCalc.errors import CatalogLoadError, InvalidKindError
from CraftCalc.models import CatalogSnapshot, ItemKind
from CraftCalc.tests.factories import make_catalog, raw


class BlockingStore(InMemoryCatalogStore):
    """Store whose reads park until the test releases them."""

    def __init__(self, catalog):
        super().__init__(catalog)
        self.started = threading.Event()
        self.release = threading.Event()

    def load_all(self) -> CatalogSnapshot:
        self.started.set()
        assert self.release.wait(timeout=5), "test never released the store"
        return super().load_all()


class FlakyStore(InMemoryCatalogStore):
    """Store that fails until ``healthy`` is set."""

    def __init__(self, catalog):
        super().__init__(catalog)
        self.healthy = False

    def load_all(self) -> CatalogSnapshot:
        if not self.healthy:
            self.load_count += 1
            raise CatalogLoadError(self.source, "connection refused")
        return super().load_all()


class Abort(BaseException):
    pass


class AbortingStore(InMemoryCatalogStore):
    """Store whose first read raises a BaseException."""

    def __init__(self, catalog):
        super().__init__(catalog)
        self.aborted = False

    def load_all(self) -> CatalogSnapshot:
        if not self.aborted:
            self.aborted = True
            raise Abort()
        return super().load_all()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def cache(store, clock, logger) -> RecipeCache:
    cache = RecipeCache(store, ttl_seconds=60, logger=logger, clock=clock)
    yield cache
    cache.close()


def add_raw_item(store: InMemoryCatalogStore, item_id: int, name: str) -> None:
    snapshot = store.load_all()
    snapshot.raw_components.append(raw(item_id, name, "mining"))
    store.persist(snapshot)


# ---------------------------------------------------------------------------
# Tests: TTL behaviour
# ---------------------------------------------------------------------------

class TestTimeToLive:

    def test_second_read_within_ttl_is_cached(self, cache, store):
        first = cache.get_type(ItemKind.RAW)
        second = cache.get_type(ItemKind.RAW)
        assert [i.name for i in first] == [i.name for i in second]
        assert store.load_count == 1

    def test_expired_entry_is_reloaded(self, cache, store, clock):
        cache.get_type(ItemKind.RAW)
        clock.advance(59.9)
        cache.get_type(ItemKind.RAW)
        assert store.load_count == 1
        clock.advance(0.1)
        cache.get_type(ItemKind.RAW)
        assert store.load_count == 2

    def test_zero_ttl_always_reloads(self, store, clock):
        cache = RecipeCache(store, ttl_seconds=0, clock=clock)
        cache.get_type("raw")
        cache.get_type("raw")
        assert store.load_count == 2

    def test_returned_list_is_a_copy(self, cache):
        items = cache.get_type(ItemKind.RAW)
        items.clear()
        assert len(cache.get_type(ItemKind.RAW)) == 5

    @pytest.mark.parametrize("kind", ["raw", "raw_components", ItemKind.RAW, " RAW "])
    def test_kind_spellings(self, cache, kind):
        assert len(cache.get_type(kind)) == 5

    def test_invalid_kind(self, cache):
        with pytest.raises(InvalidKindError):
            cache.get_type("potions")


# ---------------------------------------------------------------------------
# Tests: combined, metadata and lookup reads
# ---------------------------------------------------------------------------

class TestCombinedReads:

    def test_get_all_in_kind_order(self, cache):
        items = cache.get_all()
        kinds = [i.kind for i in items]
        assert kinds == [ItemKind.RAW] * 5 + [ItemKind.INTERMEDIATE] * 2 + [ItemKind.CRAFTED] * 2

    def test_get_all_is_cached(self, cache, store):
        cache.get_all()
        assert store.load_count == 3
        cache.get_all()
        cache.get_type(ItemKind.CRAFTED)
        assert store.load_count == 3

    def test_find_across_kinds(self, cache):
        assert cache.find("Oak Timber").kind is ItemKind.INTERMEDIATE
        assert cache.find(20).name == "Novice Hunting Bow"
        assert cache.find("snowdrop").id == 4
        assert cache.find("Unobtainium") is None

    def test_metadata(self, cache):
        metadata = cache.get_metadata()
        assert metadata.artisan_levels == [{"level": "novice", "order": 1}]
        assert metadata.gathering_skills == [{"skill": "hunting"}, {"skill": "herbalism"}]
        assert metadata.statistics["total"] == 9
        assert metadata.statistics["by_type"] == {"raw": 5, "intermediate": 2, "crafted": 2}


# ---------------------------------------------------------------------------
# Tests: Invalidation
# ---------------------------------------------------------------------------

class TestInvalidation:

    def test_read_after_mutation_sees_new_data(self, cache, store):
        assert cache.find("Copper Ore") is None
        add_raw_item(store, 50, "Copper Ore")
        # Still cached until invalidated
        assert cache.find("Copper Ore") is None
        cache.invalidate(ItemKind.RAW)
        assert cache.find("Copper Ore").id == 50

    def test_invalidate_is_scoped_to_kind(self, cache, store):
        cache.get_type(ItemKind.RAW)
        cache.get_type(ItemKind.CRAFTED)
        assert store.load_count == 2
        cache.invalidate(ItemKind.RAW)
        cache.get_type(ItemKind.CRAFTED)
        assert store.load_count == 2
        cache.get_type(ItemKind.RAW)
        assert store.load_count == 3

    def test_invalidate_clears_combined_and_metadata(self, cache):
        cache.get_all()
        cache.get_metadata()
        cache.invalidate(ItemKind.CRAFTED)
        assert cache.state() is CacheState.EMPTY
        assert cache.state(ItemKind.CRAFTED) is CacheState.EMPTY
        assert cache.state(ItemKind.RAW) is CacheState.READY

    def test_invalidate_all(self, cache, store):
        cache.get_all()
        cache.invalidate_all()
        for kind in ItemKind:
            assert cache.state(kind) is CacheState.EMPTY
        cache.get_all()
        assert store.load_count == 6

    def test_invalidation_logged(self, cache, logger):
        cache.invalidate("crafted")
        entry = logger.get_entries_by_category("CACHE")[-1]
        assert entry.data == {"keys": ["crafted", "all", "metadata"]}


# ---------------------------------------------------------------------------
# Tests: Load state and failures
# ---------------------------------------------------------------------------

class TestLoadState:

    def test_states(self, cache, clock):
        assert cache.state(ItemKind.RAW) is CacheState.EMPTY
        cache.get_type(ItemKind.RAW)
        assert cache.state(ItemKind.RAW) is CacheState.READY
        clock.advance(61)
        assert cache.state(ItemKind.RAW) is CacheState.EMPTY

    def test_failure_degrades_to_empty(self, clock, logger):
        store = FlakyStore(make_catalog())
        cache = RecipeCache(store, logger=logger, clock=clock)
        assert cache.get_type(ItemKind.RAW) == []
        assert cache.get_all() == []
        assert cache.find("Oak Wood") is None
        assert cache.get_metadata().statistics == {}
        assert cache.state(ItemKind.RAW) is CacheState.FAILED
        errors = [e for e in logger.get_entries_by_category("CACHE") if e.message.startswith("ERROR")]
        assert errors and errors[0].data["error"] == "CatalogLoadError"

    def test_failure_is_not_cached(self, clock):
        store = FlakyStore(make_catalog())
        cache = RecipeCache(store, clock=clock)
        assert cache.get_type(ItemKind.RAW) == []
        store.healthy = True
        assert len(cache.get_type(ItemKind.RAW)) == 5
        assert cache.state(ItemKind.RAW) is CacheState.READY

    def test_partial_get_all_is_not_cached(self, clock):
        store = FlakyStore(make_catalog())
        cache = RecipeCache(store, clock=clock)
        assert cache.get_all() == []
        store.healthy = True
        assert len(cache.get_all()) == 9

    def test_base_exception_releases_the_load(self, clock):
        store = AbortingStore(make_catalog())
        cache = RecipeCache(store, clock=clock)
        with pytest.raises(Abort):
            cache.get_type(ItemKind.RAW)
        assert not cache.is_loading()
        assert cache.state(ItemKind.RAW) is CacheState.FAILED
        assert len(cache.get_type(ItemKind.RAW)) == 5


# ---------------------------------------------------------------------------
# Tests: Concurrency
# ---------------------------------------------------------------------------

class TestConcurrentLoads:

    def test_concurrent_reads_share_one_load(self, clock):
        store = BlockingStore(make_catalog())
        cache = RecipeCache(store, clock=clock)
        results = []

        def read():
            results.append(len(cache.get_type(ItemKind.RAW)))

        threads = [threading.Thread(target=read) for _ in range(4)]
        threads[0].start()
        assert store.started.wait(timeout=5)
        assert cache.state(ItemKind.RAW) is CacheState.LOADING
        assert cache.is_loading()
        for t in threads[1:]:
            t.start()
        time.sleep(0.05)
        store.release.set()
        for t in threads:
            t.join(timeout=5)

        assert results == [5, 5, 5, 5]
        assert store.load_count == 1

    def test_load_racing_invalidation_is_discarded(self, clock):
        store = BlockingStore(make_catalog())
        cache = RecipeCache(store, clock=clock)
        reader = threading.Thread(target=cache.get_type, args=(ItemKind.RAW,))
        reader.start()
        assert store.started.wait(timeout=5)

        cache.invalidate(ItemKind.RAW)
        store.release.set()
        reader.join(timeout=5)

        assert cache.state(ItemKind.RAW) is CacheState.EMPTY
        cache.get_type(ItemKind.RAW)
        assert store.load_count == 2

    def test_waiters_are_released_when_logging_fails(self, clock):
        store = BlockingStore(make_catalog())
        buffer = StringIO()
        logger = CraftLogger(level=LogLevel.SUMMARY, output=buffer)
        cache = RecipeCache(store, logger=logger, clock=clock)
        owner_errors, results = [], []

        def owner():
            try:
                cache.get_type(ItemKind.RAW)
            except ValueError as exc:
                owner_errors.append(exc)

        def waiter():
            results.append(len(cache.get_type(ItemKind.RAW)))

        first = threading.Thread(target=owner)
        first.start()
        assert store.started.wait(timeout=5)
        second = threading.Thread(target=waiter)
        second.start()
        time.sleep(0.05)
        # The owner's "Cached ..." line hits a closed stream
        buffer.close()
        store.release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert not second.is_alive()
        assert results == [5]
        assert len(owner_errors) == 1
        assert not cache.is_loading()
        assert cache.state(ItemKind.RAW) is CacheState.READY

    def test_write_lock_is_reentrant(self, cache, store):
        cache.get_type(ItemKind.RAW)
        with cache.write_lock():
            add_raw_item(store, 50, "Copper Ore")
            cache.invalidate(ItemKind.RAW)
        assert cache.find("Copper Ore") is not None


class TestPreload:

    def test_preload_warms_every_entry(self, cache, store):
        cache.preload()
        assert len(cache.get_type(ItemKind.CRAFTED)) == 2
        cache.get_metadata()
        for kind in ItemKind:
            assert cache.state(kind) is CacheState.READY
        # Three slices plus metadata, nothing more
        assert store.load_count == 4

    def test_preload_is_idempotent(self, cache, store):
        cache.preload()
        cache.get_all()
        cache.get_metadata()
        cache.preload()
        cache.get_all()
        assert store.load_count == 4
