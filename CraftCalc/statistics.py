"""
Catalog statistics, item queries and sorting.

Statistics are computed over a pandas DataFrame with one row per catalog
item; the recipe cache keeps the result in its metadata entry.
"""
from __future__ import annotations

import locale
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .lookup import LookupIndex
from .models import KIND_ORDER, CatalogItem, Identifier, ItemKind

FRAME_COLUMNS = [
    "id",
    "name",
    "kind",
    "artisan_skill",
    "artisan_level",
    "work_station",
    "gathering_skill",
    "gathering_level",
    "player_level",
    "component_count",
]


def items_to_frame(items: Iterable[CatalogItem]) -> pd.DataFrame:
    """One row per item; missing attributes are None/NaN."""
    rows = []
    for item in items:
        recipe = item.recipe
        gathering = item.gathering
        requirements = item.requirements
        rows.append({
            "id": item.id,
            "name": item.name,
            "kind": item.kind.value,
            "artisan_skill": recipe.artisan_skill if recipe else None,
            "artisan_level": requirements.artisan_level if requirements else None,
            "work_station": recipe.work_station if recipe else None,
            "gathering_skill": gathering.skill if gathering else None,
            "gathering_level": gathering.skill_level if gathering else None,
            "player_level": requirements.player_level if requirements else None,
            "component_count": len(recipe.components) if recipe else None,
        })
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def _count_by(df: pd.DataFrame, column: str) -> Dict[str, int]:
    """Occurrences of each non-empty value, most common first."""
    values = df[column].dropna()
    values = values[values.astype(str).str.strip() != ""]
    counts = values.astype(str).value_counts()
    return {str(key): int(count) for key, count in counts.items()}


def _level_statistics(df: pd.DataFrame) -> Dict[str, Any]:
    levels = pd.to_numeric(df["player_level"], errors="coerce")
    levels = levels[levels > 0]
    if levels.empty:
        return {
            "min_player_level": 0,
            "max_player_level": 0,
            "average_player_level": 0.0,
            "player_level_distribution": {},
        }
    distribution = levels.astype(int).value_counts().sort_index()
    return {
        "min_player_level": int(levels.min()),
        "max_player_level": int(levels.max()),
        "average_player_level": round(float(levels.mean()), 2),
        "player_level_distribution": {int(k): int(v) for k, v in distribution.items()},
    }


def _component_statistics(df: pd.DataFrame) -> Dict[str, Any]:
    counts = df["component_count"].dropna()
    if counts.empty:
        return {
            "average_component_count": 0.0,
            "max_component_count": 0,
            "total_components": 0,
            "component_count_distribution": {},
        }
    counts = counts.astype(int)
    distribution = counts.value_counts().sort_index()
    return {
        "average_component_count": round(float(counts.mean()), 2),
        "max_component_count": int(counts.max()),
        "total_components": int(counts.sum()),
        "component_count_distribution": {int(k): int(v) for k, v in distribution.items()},
    }


def compute_statistics(items: Sequence[CatalogItem]) -> Dict[str, Any]:
    """
    Aggregate statistics over catalog items.

    Returns
    -------
    dict
        ``total`` and ``by_type`` counts; counts by artisan skill, artisan
        level, gathering skill, gathering level and work station; player
        level min/max/average/distribution; recipe component-count stats.
    """
    df = items_to_frame(items)
    by_type = df["kind"].value_counts()
    stats: Dict[str, Any] = {
        "total": int(len(df)),
        "by_type": {kind.value: int(by_type.get(kind.value, 0)) for kind in KIND_ORDER},
        "by_artisan_skill": _count_by(df, "artisan_skill"),
        "by_artisan_level": _count_by(df, "artisan_level"),
        "by_gathering_skill": _count_by(df, "gathering_skill"),
        "by_gathering_level": _count_by(df, "gathering_level"),
        "by_work_station": _count_by(df, "work_station"),
    }
    stats.update(_level_statistics(df))
    stats.update(_component_statistics(df))
    return stats


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _same_text(value: Optional[str], wanted: str) -> bool:
    return value is not None and str(value).casefold() == wanted.casefold()


def _player_level(item: CatalogItem) -> int:
    level = item.requirements.player_level if item.requirements else None
    return level if isinstance(level, int) and not isinstance(level, bool) else 0


def filter_items(
    items: Iterable[CatalogItem],
    name: Optional[str] = None,
    name_contains: Optional[str] = None,
    kind: Optional[Union[ItemKind, str]] = None,
    artisan_skill: Optional[str] = None,
    artisan_level: Optional[str] = None,
    gathering_skill: Optional[str] = None,
    gathering_level: Optional[str] = None,
    work_station: Optional[str] = None,
    min_player_level: Optional[int] = None,
    max_player_level: Optional[int] = None,
    keywords: Optional[Union[str, Sequence[str]]] = None,
) -> List[CatalogItem]:
    """
    Return the items matching every given criterion (text matches ignore case).

    ``keywords`` matches when any keyword occurs in the name or description.
    Items without a player level count as level 0 for the level bounds.
    """
    wanted_kind = ItemKind.parse(kind) if kind is not None else None
    if isinstance(keywords, str):
        keywords = [keywords]

    result = []
    for item in items:
        recipe = item.recipe
        gathering = item.gathering
        requirements = item.requirements

        if name is not None and not _same_text(item.name, name):
            continue
        if name_contains is not None and name_contains.casefold() not in item.name.casefold():
            continue
        if wanted_kind is not None and item.kind is not wanted_kind:
            continue
        if artisan_skill is not None and not (recipe and _same_text(recipe.artisan_skill, artisan_skill)):
            continue
        if artisan_level is not None and not (
            requirements and _same_text(requirements.artisan_level, artisan_level)
        ):
            continue
        if gathering_skill is not None and not (gathering and _same_text(gathering.skill, gathering_skill)):
            continue
        if gathering_level is not None and not (
            gathering and _same_text(gathering.skill_level, gathering_level)
        ):
            continue
        if work_station is not None and not (recipe and _same_text(recipe.work_station, work_station)):
            continue
        if min_player_level is not None and _player_level(item) < min_player_level:
            continue
        if max_player_level is not None and _player_level(item) > max_player_level:
            continue
        if keywords:
            text = f"{item.name} {item.description or ''}".casefold()
            if not any(k.casefold() in text for k in keywords):
                continue
        result.append(item)
    return result


def items_using_component(items: Iterable[CatalogItem], identifier: Identifier) -> List[CatalogItem]:
    """
    Items whose recipe lists the given component directly.

    A component may be referenced by id in one recipe and by name in
    another; both count when they resolve to the same catalog item.
    """
    items = list(items)
    index = LookupIndex(items)
    target = index.find(identifier)

    def _refers_to_target(component_identifier: Identifier) -> bool:
        if target is None:
            return component_identifier == identifier
        found = index.find(component_identifier)
        return found is not None and found.id == target.id

    return [
        item for item in items
        if any(_refers_to_target(c.identifier) for c in item.components)
    ]


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

SORT_FIELDS: Dict[str, Callable[[CatalogItem], Any]] = {
    "name": lambda item: item.name,
    "id": lambda item: item.id,
    "kind": lambda item: KIND_ORDER.index(item.kind),
    "artisan_skill": lambda item: item.recipe.artisan_skill if item.recipe else None,
    "artisan_level": lambda item: item.requirements.artisan_level if item.requirements else None,
    "work_station": lambda item: item.recipe.work_station if item.recipe else None,
    "gathering_skill": lambda item: item.gathering.skill if item.gathering else None,
    "gathering_level": lambda item: item.gathering.skill_level if item.gathering else None,
    "player_level": lambda item: item.requirements.player_level if item.requirements else None,
    "component_count": lambda item: len(item.recipe.components) if item.recipe else None,
}

# Catalog JSON spellings
SORT_ALIASES = {
    "type": "kind",
    "artisanSkill": "artisan_skill",
    "artisanLevel": "artisan_level",
    "workStation": "work_station",
    "gatheringSkill": "gathering_skill",
    "gatheringLevel": "gathering_level",
    "playerLevel": "player_level",
}

SortKey = Union[str, Tuple[str, str]]  # field, or (field, "asc" | "desc")


def _field_getter(field: str) -> Callable[[CatalogItem], Any]:
    """Named field, or a dotted path into the item's catalog dict."""
    name = SORT_ALIASES.get(field, field)
    if name in SORT_FIELDS:
        return SORT_FIELDS[name]

    def dotted(item: CatalogItem) -> Any:
        value: Any = item.raw
        for part in field.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part)
        return value
    return dotted


def _sortable(value: Any) -> Tuple[int, Any]:
    # Numbers before text so mixed id types still compare
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    return (1, locale.strxfrm(str(value).casefold()))


def _parse_order(order: str) -> bool:
    """True for descending."""
    normalised = str(order).strip().lower()
    if normalised not in ("asc", "desc"):
        raise ValueError(f"Sort order must be 'asc' or 'desc', got {order!r}")
    return normalised == "desc"


def sort_items(
    items: Iterable[CatalogItem],
    by: Union[str, Sequence[SortKey]] = "name",
    order: str = "asc",
) -> List[CatalogItem]:
    """
    Return the items sorted by one or more fields.

    Parameters
    ----------
    items : iterable of CatalogItem
        Left untouched; a new list is returned.
    by : str or sequence
        One field, or several keys where each is a field or a
        ``(field, order)`` tuple. Earlier keys take precedence. A field is
        one of ``SORT_FIELDS``, a catalog JSON spelling such as
        ``"playerLevel"``, or a dotted path into the item dict
        (``"requirements.artisanLevel"``).
    order : {"asc", "desc"}
        Direction for keys that do not name their own.

    Items missing a value (None or "") sort last in either direction. Ties
    keep their input order. Text compares case-insensitively; ``kind``
    follows catalog order (raw, intermediate, crafted).

    Raises
    ------
    ValueError
        For an order other than "asc" or "desc".
    """
    if isinstance(by, str):
        by = [by]
    keys = []
    for key in by:
        field, key_order = key if isinstance(key, tuple) else (key, order)
        keys.append((_field_getter(field), _parse_order(key_order)))

    result = list(items)
    # Stable sorts applied from the least significant key up
    for getter, descending in reversed(keys):
        present, missing = [], []
        for item in result:
            value = getter(item)
            (missing if value is None or value == "" else present).append((value, item))
        present.sort(key=lambda pair: _sortable(pair[0]), reverse=descending)
        result = [item for _, item in present + missing]
    return result
