"""Id- and name-keyed lookup maps over one catalog slice."""
from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from .models import CatalogItem, Identifier


def _name_key(name: str) -> str:
    return name.strip().casefold()


class LookupIndex:
    """
    Lookup maps over a catalog slice.

    ``find`` accepts either an item id or a name. Names match
    case-insensitively; numeric ids also match their string form ("12"),
    since catalog files written by hand mix the two.

    The index is immutable: build a new one whenever the slice changes.
    """

    def __init__(self, items: Iterable[CatalogItem]):
        self._items: List[CatalogItem] = list(items)
        self.by_id: Dict[Identifier, CatalogItem] = {}
        self.by_name: Dict[str, CatalogItem] = {}
        self.name_to_id: Dict[str, Identifier] = {}

        for item in self._items:
            # First occurrence wins, matching the linear scan order
            if item.id is not None:
                self.by_id.setdefault(item.id, item)
            if item.name:
                key = _name_key(item.name)
                self.by_name.setdefault(key, item)
                self.name_to_id.setdefault(key, item.id)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[CatalogItem]:
        return iter(self._items)

    def __contains__(self, identifier: object) -> bool:
        return self.find(identifier) is not None  # type: ignore[arg-type]

    @property
    def items(self) -> List[CatalogItem]:
        return list(self._items)

    def find(self, identifier: Optional[Identifier]) -> Optional[CatalogItem]:
        """Find an item by id, then by name, then by a linear scan."""
        if identifier is None or isinstance(identifier, bool):
            return None

        item = self._find_by_id(identifier)
        if item is not None:
            return item

        if isinstance(identifier, str):
            item = self.by_name.get(_name_key(identifier))
            if item is not None:
                return item

        return self._scan(identifier)

    def _find_by_id(self, identifier: Identifier) -> Optional[CatalogItem]:
        try:
            item = self.by_id.get(identifier)
        except TypeError:
            # Unhashable identifier from a malformed recipe
            return None
        if item is None and isinstance(identifier, str) and identifier.strip().isdigit():
            item = self.by_id.get(int(identifier))
        return item

    def _scan(self, identifier: Identifier) -> Optional[CatalogItem]:
        """Fallback for identifiers the maps do not cover."""
        wanted = str(identifier).strip()
        wanted_name = wanted.casefold()
        for item in self._items:
            if item.id is not None and str(item.id) == wanted:
                return item
            if item.name and _name_key(item.name) == wanted_name:
                return item
        return None
