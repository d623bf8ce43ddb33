"""
Catalog stores: the swappable data sources behind the recipe cache.

Every store speaks the catalog JSON shape (``raw_components``,
``intermediate_recipes``, ``crafted_items``, ``artisan_levels``,
``gathering_skills``) and hands out independent ``CatalogSnapshot`` copies,
so a caller can mutate a snapshot freely and only ``persist()`` makes the
change visible.
"""
from __future__ import annotations

import copy
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PayloadValidationError

from .calc_logging import CraftLogger
from .errors import CatalogLoadError
from .models import SLICE_KEYS, CatalogItem, CatalogSnapshot, ItemKind, empty_catalog

CATALOG_PAYLOAD_ADAPTER: TypeAdapter = TypeAdapter(Dict[str, Any])
LIST_OF_DICTS_ADAPTER: TypeAdapter = TypeAdapter(List[Dict[str, Any]])
LIST_ADAPTER: TypeAdapter = TypeAdapter(List[Any])

METADATA_KEYS = ("artisan_levels", "gathering_skills")


def snapshot_from_payload(payload: Any, source: str) -> CatalogSnapshot:
    """
    Validate a decoded catalog payload and build a snapshot from it.

    Missing or null slices are treated as empty. A slice that is present
    but is not a list of objects is an error.

    Raises
    ------
    CatalogLoadError
        If the payload does not have the catalog JSON shape.
    """
    try:
        data = CATALOG_PAYLOAD_ADAPTER.validate_python(payload)
        for key in SLICE_KEYS.values():
            if data.get(key) is not None:
                LIST_OF_DICTS_ADAPTER.validate_python(data[key])
        for key in METADATA_KEYS:
            if data.get(key) is not None:
                LIST_ADAPTER.validate_python(data[key])
    except PayloadValidationError as exc:
        raise CatalogLoadError(source, f"unexpected catalog shape: {exc}") from exc
    return CatalogSnapshot.from_dict(data)


def encode_snapshot(snapshot: CatalogSnapshot, source: str) -> str:
    """
    Catalog JSON text for a snapshot, as written to disk and sent over HTTP.

    Raises
    ------
    CatalogLoadError
        If an item holds a value JSON cannot represent.
    """
    try:
        return json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False) + "\n"
    except (TypeError, ValueError) as exc:
        raise CatalogLoadError(source, f"unable to encode: {exc}") from exc


def _slice_counts(snapshot: CatalogSnapshot) -> Dict[str, int]:
    return {kind.value: len(snapshot.slice(kind)) for kind in SLICE_KEYS}


class CatalogStore(ABC):
    """Abstract base class for catalog stores."""

    def __init__(self, logger: Optional[CraftLogger] = None):
        self._logger = logger

    @property
    @abstractmethod
    def source(self) -> str:
        """Human-readable description of where the catalog lives."""

    @abstractmethod
    def load_all(self) -> CatalogSnapshot:
        """Read the whole catalog. The returned snapshot is the caller's to mutate."""

    @abstractmethod
    def persist(self, snapshot: CatalogSnapshot) -> None:
        """Replace the stored catalog with ``snapshot``."""

    def load_slice(self, kind: ItemKind) -> List[CatalogItem]:
        """Read one catalog slice as parsed items."""
        return self.load_all().items(kind)

    def _log_read(self, snapshot: CatalogSnapshot) -> None:
        if self._logger:
            self._logger.log_store_read(self.source, _slice_counts(snapshot))

    def _log_write(self) -> None:
        if self._logger:
            self._logger.log_store_write(self.source)


class InMemoryCatalogStore(CatalogStore):
    """
    Catalog held in process memory.

    Reads and writes go through deep copies, so nothing handed out by
    ``load_all`` aliases the stored catalog.
    """

    def __init__(
        self,
        catalog: Optional[Union[CatalogSnapshot, Dict[str, Any]]] = None,
        logger: Optional[CraftLogger] = None,
    ):
        super().__init__(logger)
        if catalog is None:
            catalog = empty_catalog()
        elif isinstance(catalog, dict):
            catalog = snapshot_from_payload(catalog, self.source)
        self._catalog = copy.deepcopy(catalog)
        self.load_count = 0
        self.persist_count = 0

    @property
    def source(self) -> str:
        return "<memory>"

    def load_all(self) -> CatalogSnapshot:
        self.load_count += 1
        snapshot = copy.deepcopy(self._catalog)
        self._log_read(snapshot)
        return snapshot

    def persist(self, snapshot: CatalogSnapshot) -> None:
        self._catalog = copy.deepcopy(snapshot)
        self.persist_count += 1
        self._log_write()


class JsonFileCatalogStore(CatalogStore):
    """
    Catalog stored as a JSON file on disk.

    A missing file reads as the empty catalog skeleton; the first
    ``persist`` creates it.
    """

    def __init__(self, path: Path, logger: Optional[CraftLogger] = None):
        super().__init__(logger)
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def source(self) -> str:
        return str(self._path)

    def load_all(self) -> CatalogSnapshot:
        if not self._path.exists():
            snapshot = empty_catalog()
            self._log_read(snapshot)
            return snapshot

        try:
            with self._path.open("r", encoding="utf-8") as fh:
                payload = json.load(fh)
        except OSError as exc:
            raise CatalogLoadError(self.source, f"unable to read: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise CatalogLoadError(self.source, f"invalid JSON: {exc}") from exc

        snapshot = snapshot_from_payload(payload, self.source)
        self._log_read(snapshot)
        return snapshot

    def persist(self, snapshot: CatalogSnapshot) -> None:
        text = encode_snapshot(snapshot, self.source)

        # Write atomically via temp file
        temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(text, encoding="utf-8")
            temp_path.replace(self._path)
        except OSError as exc:
            raise CatalogLoadError(self.source, f"unable to write: {exc}") from exc
        finally:
            if temp_path.exists():
                temp_path.unlink()
        self._log_write()


class HttpCatalogStore(CatalogStore):
    """
    Catalog served over HTTP.

    ``load_all`` issues a GET on ``url``; ``persist`` PUTs the full catalog
    JSON back to the same URL.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
        logger: Optional[CraftLogger] = None,
    ):
        super().__init__(logger)
        self._url = url
        self._timeout = httpx.Timeout(timeout)
        self._client = client

    @property
    def source(self) -> str:
        return self._url

    def _request(self, method: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._client is not None:
                response = self._client.request(method, self._url, timeout=self._timeout, **kwargs)
            else:
                with httpx.Client(timeout=self._timeout, follow_redirects=True) as client:
                    response = client.request(method, self._url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise CatalogLoadError(
                self.source,
                f"{method} returned {exc.response.status_code} {exc.response.reason_phrase}",
            ) from exc
        except httpx.HTTPError as exc:
            raise CatalogLoadError(self.source, f"{method} failed: {exc}") from exc
        return response

    def load_all(self) -> CatalogSnapshot:
        response = self._request("GET")
        try:
            payload = response.json()
        except ValueError as exc:
            raise CatalogLoadError(self.source, f"invalid JSON: {exc}") from exc
        snapshot = snapshot_from_payload(payload, self.source)
        self._log_read(snapshot)
        return snapshot

    def persist(self, snapshot: CatalogSnapshot) -> None:
        body = encode_snapshot(snapshot, self.source)
        self._request("PUT", content=body.encode("utf-8"),
                      headers={"Content-Type": "application/json"})
        self._log_write()
