"""Bill of Materials (BOM) resolution for crafting recipes.

This module provides:
1. Resolver: recursive expansion of one item into raw leaf contributions
2. consolidate: deduplication and summation of leaf contributions
3. BillProcessor: resolution and consolidation of a multi-line bill
4. Rendering of a consolidated result as a DataFrame or a text table

Resolution degrades instead of failing: cycles, unknown components and
craftable items without components are logged as warnings and show up in
the result as truncated branches or flagged leaves.
"""
from __future__ import annotations

import locale
from dataclasses import replace
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Protocol, Sequence, Tuple

import pandas as pd

from .calc_logging import CraftLogger, LogLevel, create_logger
from .config import DEFAULT_MAX_DEPTH
from .errors import (
    CircularDependencyWarning,
    DepthLimitWarning,
    MalformedBillEntryWarning,
    TerminalItemWarning,
    UnknownComponentWarning,
)
from .models import (
    BillEntry,
    CatalogItem,
    Identifier,
    ItemKind,
    ResolvedComponent,
    is_positive_int,
)


class ItemFinder(Protocol):
    """Anything that can look a catalog item up by id or name."""

    def find(self, identifier: Optional[Identifier]) -> Optional[CatalogItem]:
        ...


def _canonical_key(item: CatalogItem) -> Identifier:
    return item.id if item.id is not None else item.name


class Resolver:
    """
    Expands (identifier, quantity) pairs into raw material leaves.

    Quantities multiply down each path. The visited path holds the canonical
    ids of the items being expanded above the current call, so an item
    referenced by name in one recipe and by id in another is still caught
    as a cycle. A shared dependency in sibling branches is not a cycle.
    """

    def __init__(
        self,
        finder: ItemFinder,
        logger: Optional[CraftLogger] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        """
        Parameters
        ----------
        finder : ItemFinder
            Usually the RecipeCache; a LookupIndex works for a fixed catalog.
        logger : CraftLogger, optional
            Receives resolution warnings. Defaults to a silent logger.
        max_depth : int
            Deepest recipe nesting expanded; deeper branches contribute nothing.
        """
        self._finder = finder
        self._logger = logger or create_logger(level=LogLevel.SILENT)
        self._max_depth = max_depth

    @property
    def max_depth(self) -> int:
        return self._max_depth

    def resolve(
        self,
        identifier: Identifier,
        quantity: int = 1,
        visited_path: FrozenSet[Identifier] = frozenset(),
        depth: int = 0,
    ) -> List[ResolvedComponent]:
        """
        Expand one identifier into leaf contributions, in recipe order.

        Never raises for data problems. Returns [] for a cyclic or too-deep
        branch, an ``is_unknown`` leaf for an identifier not in the catalog.
        """
        if depth > self._max_depth:
            self._warn(DepthLimitWarning(identifier, self._max_depth), depth=depth)
            return []

        item = self._finder.find(identifier)
        if item is None:
            self._warn(UnknownComponentWarning(identifier))
            self._logger.log_resolve_step(identifier, quantity, depth, "unknown")
            leaf_id = identifier if isinstance(identifier, (int, str)) else repr(identifier)
            return [ResolvedComponent(
                id=leaf_id,
                name=str(leaf_id),
                quantity=quantity,
                is_unknown=True,
            )]

        key = _canonical_key(item)
        if key in visited_path:
            self._warn(CircularDependencyWarning(item.name or identifier, visited_path))
            self._logger.log_resolve_step(identifier, quantity, depth, "cycle, truncated")
            return []

        if item.kind is ItemKind.RAW:
            self._logger.log_resolve_step(identifier, quantity, depth, "raw")
            return [ResolvedComponent(
                id=key,
                name=item.name,
                quantity=quantity,
                is_raw=True,
                source_skill=item.gathering.skill if item.gathering else None,
            )]

        if item.is_expandable:
            self._logger.log_resolve_step(
                identifier, quantity, depth, f"expand {len(item.components)} components")
            path = visited_path | {key}
            leaves: List[ResolvedComponent] = []
            for component in item.components:
                leaves.extend(self.resolve(
                    component.identifier,
                    component.quantity * quantity,
                    path,
                    depth + 1,
                ))
            return leaves

        self._warn(TerminalItemWarning(item.name or identifier, item.kind.value))
        self._logger.log_resolve_step(identifier, quantity, depth, "terminal")
        return [ResolvedComponent(id=key, name=item.name, quantity=quantity)]

    def _warn(self, warning: Warning, **data: Any) -> None:
        self._logger.log_warning("RESOLVE", warning, data or None)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def _sort_key(component: ResolvedComponent) -> Tuple[str, str]:
    # Locale-aware on the folded name; the raw name breaks ties deterministically
    return (locale.strxfrm(component.name.casefold()), component.name)


def consolidate(components: Sequence[ResolvedComponent]) -> List[ResolvedComponent]:
    """
    Merge leaves sharing an id, summing quantities.

    The first leaf seen for an id supplies the name and flags. The result is
    sorted by name, so ``consolidate(consolidate(x)) == consolidate(x)``.
    """
    groups: Dict[Identifier, ResolvedComponent] = {}
    for component in components:
        existing = groups.get(component.id)
        if existing is None:
            groups[component.id] = component
        else:
            groups[component.id] = replace(existing, quantity=existing.quantity + component.quantity)
    return sorted(groups.values(), key=_sort_key)


# ---------------------------------------------------------------------------
# Bill processing
# ---------------------------------------------------------------------------

class BillProcessor:
    """
    Resolves every line of a bill and consolidates the leaves.

    Usage:
        processor = BillProcessor(cache, logger=logger)
        materials = processor.process([BillEntry("Novice Hunting Bow", 2)])
    """

    def __init__(
        self,
        finder: ItemFinder,
        logger: Optional[CraftLogger] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self._logger = logger or create_logger(level=LogLevel.SILENT)
        self._resolver = Resolver(finder, logger=self._logger, max_depth=max_depth)

    @property
    def resolver(self) -> Resolver:
        return self._resolver

    def process(self, bill_entries: Any) -> List[ResolvedComponent]:
        """
        Raw materials for a bill, consolidated and sorted by name.

        Parameters
        ----------
        bill_entries : list
            BillEntry objects or ``{"item": ..., "quantity": ...}`` mappings.
            Anything that is not a non-empty list or tuple yields [].

        Returns
        -------
        list[ResolvedComponent]
        """
        if not isinstance(bill_entries, (list, tuple)) or not bill_entries:
            return []

        self._logger.log_bill_start(len(bill_entries))
        leaves: List[ResolvedComponent] = []
        for position, raw_entry in enumerate(bill_entries):
            entry = self._coerce_entry(raw_entry, position)
            if entry is None:
                continue
            contributions = self._resolver.resolve(entry.identifier, entry.quantity)
            self._logger.log_bill_entry(entry.identifier, entry.quantity, len(contributions))
            leaves.extend(contributions)

        result = consolidate(leaves)
        self._logger.log_bill_result(result)
        return result

    def _coerce_entry(self, raw_entry: Any, position: int) -> Optional[BillEntry]:
        """A validated BillEntry, or None (with a warning) for malformed input."""
        if isinstance(raw_entry, BillEntry):
            entry = raw_entry
        elif isinstance(raw_entry, Mapping):
            entry = BillEntry.from_dict(dict(raw_entry))
        else:
            self._skip(position, f"expected a bill entry, got {type(raw_entry).__name__}")
            return None

        identifier = entry.identifier
        if identifier is None or identifier == "" or isinstance(identifier, bool):
            self._skip(position, "no item identifier")
            return None

        if entry.quantity is None:
            return BillEntry(item=entry.item, quantity=1)
        if not is_positive_int(entry.quantity):
            self._skip(position, f"quantity must be a positive integer, got {entry.quantity!r}")
            return None
        return entry

    def _skip(self, position: int, reason: str) -> None:
        self._logger.log_warning("BILL", MalformedBillEntryWarning(position, reason))


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

RESULT_COLUMNS = ["id", "name", "quantity", "is_raw", "is_unknown", "source_skill"]


def components_to_frame(components: Sequence[ResolvedComponent]) -> pd.DataFrame:
    """Consolidated result as a DataFrame, one row per material, in result order."""
    rows = [
        {
            "id": c.id,
            "name": c.name,
            "quantity": c.quantity,
            "is_raw": c.is_raw,
            "is_unknown": c.is_unknown,
            "source_skill": c.source_skill,
        }
        for c in components
    ]
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def format_bill(components: Sequence[ResolvedComponent]) -> str:
    """
    Render a consolidated result as a text table.

    Unknown materials are marked with ``?`` and terminal craftables (items
    with no recipe to expand) with ``*``.
    """
    if not components:
        return "No materials required."

    rows: List[List[str]] = []
    for c in components:
        marker = "?" if c.is_unknown else ("" if c.is_raw else "*")
        rows.append([f"{c.name}{marker}", str(c.quantity), c.source_skill or ""])

    headers = ["Material", "Quantity", "Source"]
    widths = [max(len(row[i]) for row in [headers] + rows) for i in range(len(headers))]

    lines = ["=== Raw Materials ===", ""]
    lines.append("  ".join(h.ljust(w) for h, w in zip(headers, widths)).rstrip())
    lines.append("  ".join("-" * w for w in widths))
    for row in rows:
        # Right-align quantities
        cells = [row[0].ljust(widths[0]), row[1].rjust(widths[1]), row[2].ljust(widths[2])]
        lines.append("  ".join(cells).rstrip())

    footnotes = []
    if any(c.is_unknown for c in components):
        footnotes.append("? not found in catalog")
    if any(not c.is_raw and not c.is_unknown for c in components):
        footnotes.append("* craftable item without recipe components")
    if footnotes:
        lines.append("")
        lines.extend(footnotes)
    return "\n".join(lines)
