"""
Read-through TTL cache in front of a catalog store.

Holds one entry per catalog slice (raw, intermediate, crafted), one combined
entry and one metadata entry. Each slice entry carries the lookup index
built from it, so identifier resolution never touches the store while the
entry is fresh.

Loads for the same key are coalesced: the first caller registers a Future
under the cache lock and performs the load; everyone else waits on that
Future. ``preload()`` starts the same loads on a background worker.

Invalidation is synchronous. It drops the entries, forgets any in-flight
load and bumps the key's generation, so a load that started earlier can
never repopulate the cache with pre-mutation data.
"""
from __future__ import annotations

import threading
import time
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from .calc_logging import CraftLogger, LogLevel, create_logger
from .catalog_store import CatalogStore
from .config import DEFAULT_TTL_SECONDS
from .errors import InvalidKindError
from .lookup import LookupIndex
from .models import KIND_ORDER, CatalogItem, CatalogMetadata, Identifier, ItemKind
from .statistics import compute_statistics

ALL_KEY = "all"
METADATA_KEY = "metadata"


class CacheState(str, Enum):
    """Load state of one cache key."""
    EMPTY = "empty"      # Never loaded, expired or invalidated
    LOADING = "loading"  # A load is in flight
    READY = "ready"      # Fresh data is resident
    FAILED = "failed"    # The last load raised; the next read retries


@dataclass
class CacheEntry:
    """Cached data plus the clock reading it was stored at."""
    data: Any
    timestamp: float
    index: Optional[LookupIndex] = None


class RecipeCache:
    """
    TTL cache over a CatalogStore.

    Usage:
        cache = RecipeCache(JsonFileCatalogStore(path), ttl_seconds=60)
        cache.preload()                      # optional, warms in background
        bows = cache.get_type(ItemKind.CRAFTED)
        item = cache.find("Oak Timber")
    """

    def __init__(
        self,
        store: CatalogStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        logger: Optional[CraftLogger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Parameters
        ----------
        store : CatalogStore
            Data source to read through to.
        ttl_seconds : float
            How long an entry stays fresh. 0 disables caching.
        logger : CraftLogger, optional
            Defaults to a silent logger.
        clock : callable
            Monotonic time source, injectable for tests.
        """
        self._store = store
        self._ttl = ttl_seconds
        self._logger = logger or create_logger(level=LogLevel.SILENT)
        self._clock = clock

        self._lock = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, Future] = {}
        self._generations: Dict[str, int] = defaultdict(int)
        self._states: Dict[str, CacheState] = {}
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def store(self) -> CatalogStore:
        return self._store

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_type(self, kind: Union[ItemKind, str]) -> List[CatalogItem]:
        """Items of one kind; an empty list if the store cannot be read."""
        entry = self._get_slice_entry(self._parse_kind(kind))
        return list(entry.data) if entry else []

    def get_index(self, kind: Union[ItemKind, str]) -> LookupIndex:
        """Lookup index over one kind's fresh slice."""
        entry = self._get_slice_entry(self._parse_kind(kind))
        return entry.index if entry and entry.index is not None else LookupIndex([])

    def get_all(self) -> List[CatalogItem]:
        """All items, raw first, then intermediate, then crafted."""
        with self._lock:
            entry = self._fresh_entry(ALL_KEY)
            if entry is not None:
                self._logger.log_cache_hit(ALL_KEY)
                return list(entry.data)
            generation = self._generations[ALL_KEY]

        combined: List[CatalogItem] = []
        complete = True
        for kind in KIND_ORDER:
            slice_entry = self._get_slice_entry(kind)
            if slice_entry is None:
                complete = False
                continue
            combined.extend(slice_entry.data)

        # A partial result is returned but not cached, so the next call retries
        if complete:
            with self._lock:
                if self._generations[ALL_KEY] == generation:
                    self._entries[ALL_KEY] = CacheEntry(tuple(combined), self._clock())
                    self._states[ALL_KEY] = CacheState.READY
        return combined

    def get_metadata(self) -> CatalogMetadata:
        """Artisan levels, gathering skills and aggregate catalog statistics."""
        entry = self._get_entry(METADATA_KEY, self._load_metadata)
        return entry.data if entry else CatalogMetadata()

    def find(self, identifier: Optional[Identifier]) -> Optional[CatalogItem]:
        """Look an identifier up across kinds: raw, then intermediate, then crafted."""
        for kind in KIND_ORDER:
            item = self.get_index(kind).find(identifier)
            if item is not None:
                return item
        return None

    def state(self, kind: Union[ItemKind, str, None] = None) -> CacheState:
        """
        Load state for one kind, or for the combined entry when kind is None.

        A resident entry past its TTL reports EMPTY.
        """
        key = ALL_KEY if kind is None else self._parse_kind(kind).value
        with self._lock:
            state = self._states.get(key, CacheState.EMPTY)
            if state is CacheState.READY and self._fresh_entry(key) is None:
                return CacheState.EMPTY
            return state

    def is_loading(self) -> bool:
        with self._lock:
            return bool(self._in_flight)

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def invalidate(self, kind: Union[ItemKind, str]) -> None:
        """Drop one kind's entry plus the combined and metadata entries."""
        self._drop([self._parse_kind(kind).value, ALL_KEY, METADATA_KEY])

    def invalidate_all(self) -> None:
        self._drop([kind.value for kind in KIND_ORDER] + [ALL_KEY, METADATA_KEY])

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        """
        Hold the cache lock across a store mutation and its invalidation.

        Readers in other threads block until the block exits, so none can
        observe the mutated store through a stale entry. Do not read through
        the cache inside the block: a load running on another thread needs
        the lock to publish.
        """
        with self._lock:
            yield

    def _drop(self, keys: List[str]) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)
                self._in_flight.pop(key, None)
                self._generations[key] += 1
                self._states[key] = CacheState.EMPTY
        self._logger.log_cache_invalidate(keys)

    # -------------------------------------------------------------------------
    # Background preload
    # -------------------------------------------------------------------------

    def preload(self) -> None:
        """
        Start background loads for every slice and the metadata.

        Idempotent: keys that are fresh or already loading are skipped.
        Reads issued meanwhile wait on the in-flight loads.
        """
        jobs = [(kind.value, self._slice_loader(kind)) for kind in KIND_ORDER]
        jobs.append((METADATA_KEY, self._load_metadata))

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="RecipeCache")
            for key, loader in jobs:
                if self._fresh_entry(key) is not None or key in self._in_flight:
                    continue
                future, generation = self._register_load(key)
                self._executor.submit(self._run_load, key, generation, future, loader)

    def close(self) -> None:
        """Shut down the background worker, waiting for running loads."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _parse_kind(kind: Union[ItemKind, str]) -> ItemKind:
        try:
            return ItemKind.parse(kind)
        except ValueError as exc:
            raise InvalidKindError(kind) from exc

    def _fresh_entry(self, key: str) -> Optional[CacheEntry]:
        """Entry for key if still within its TTL. Caller holds the lock."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp < self._ttl:
            return entry
        return None

    def _register_load(self, key: str) -> Tuple[Future, int]:
        """Record an in-flight load for key. Caller holds the lock."""
        future: Future = Future()
        self._in_flight[key] = future
        self._states[key] = CacheState.LOADING
        return future, self._generations[key]

    def _slice_loader(self, kind: ItemKind) -> Callable[[], CacheEntry]:
        def load() -> CacheEntry:
            items = tuple(self._store.load_slice(kind))
            return CacheEntry(items, 0.0, LookupIndex(items))
        return load

    def _load_metadata(self) -> CacheEntry:
        snapshot = self._store.load_all()
        items = [item for kind in KIND_ORDER for item in snapshot.items(kind)]
        metadata = CatalogMetadata(
            artisan_levels=list(snapshot.artisan_levels),
            gathering_skills=list(snapshot.gathering_skills),
            statistics=compute_statistics(items),
        )
        return CacheEntry(metadata, 0.0)

    def _get_slice_entry(self, kind: ItemKind) -> Optional[CacheEntry]:
        return self._get_entry(kind.value, self._slice_loader(kind))

    def _get_entry(self, key: str, loader: Callable[[], CacheEntry]) -> Optional[CacheEntry]:
        """Fresh entry for key, loading it (or joining the in-flight load) if needed."""
        with self._lock:
            entry = self._fresh_entry(key)
            if entry is not None:
                self._logger.log_cache_hit(key)
                return entry
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future, generation = self._register_load(key)

        if owner:
            self._run_load(key, generation, future, loader)
        else:
            self._logger.log_cache_wait(key)
        return future.result()

    def _run_load(self, key: str, generation: int, future: Future,
                  loader: Callable[[], CacheEntry]) -> None:
        """
        Perform a load and publish it to waiters.

        Failures of any kind are logged and published as None; nothing is
        cached for them, so the next read starts a fresh load. The future is
        always resolved, even when logging or the loader raises past this.
        """
        loaded: Optional[CacheEntry] = None
        try:
            try:
                loaded = loader()
            except Exception as exc:
                self._finish_load(key, future, failed=True)
                self._logger.log_cache_failure(key, exc)
                return

            with self._lock:
                loaded.timestamp = self._clock()
                # Invalidated while loading: waiters get the result, the cache does not
                current = self._generations[key] == generation
                if current:
                    self._entries[key] = loaded
                    self._states[key] = CacheState.READY
            self._finish_load(key, future, failed=False)
            if current:
                count = len(loaded.data) if isinstance(loaded.data, tuple) else 1
                self._logger.log_cache_load(key, count)
        finally:
            if loaded is None:
                self._finish_load(key, future, failed=True)
            if not future.done():
                future.set_result(loaded)

    def _finish_load(self, key: str, future: Future, failed: bool) -> None:
        """Drop key's in-flight marker if it is still this load's."""
        with self._lock:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]
                if failed:
                    self._states[key] = CacheState.FAILED
