"""
Validated catalog mutations.

Every call loads a fresh snapshot from the store, applies the change to the
snapshot, persists it and invalidates the affected cache entries, all while
holding the cache's write lock. Failures come back as an unsuccessful
MutationResult; calculator errors never escape the gateway.
"""
from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .cache import RecipeCache
from .calc_logging import CraftLogger, LogLevel, create_logger
from .catalog_store import CatalogStore
from .errors import (
    CalculatorError,
    DuplicateIdError,
    InvalidKindError,
    MutationResult,
    NotFoundError,
    ValidationError,
)
from .models import CatalogSnapshot, Identifier, ItemKind, component_identifier, is_positive_int

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _require_text(value: Any, field: str, message: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, message)


def _validate_component(component: Any, field: str) -> None:
    if not isinstance(component, Mapping):
        raise ValidationError(field, "Component must be an object")
    identifier = component_identifier(component)
    if identifier is None:
        raise ValidationError(field, "Component must name its item by 'name', 'item' or 'id'")
    if "id" in component and component["id"] is not None and not is_positive_int(component["id"]):
        raise ValidationError(f"{field}.id", "Component ID must be a positive integer")
    if "quantity" in component and not is_positive_int(component["quantity"]):
        raise ValidationError(f"{field}.quantity", "Quantity must be a positive integer")


def _validate_recipe(recipe: Any) -> None:
    if not isinstance(recipe, Mapping):
        raise ValidationError("recipe", "Recipe composition must be an object")
    if "artisanSkill" in recipe:
        _require_text(recipe["artisanSkill"], "recipe.artisanSkill",
                      "Artisan skill must be a non-empty string")
    if "workStation" in recipe:
        _require_text(recipe["workStation"], "recipe.workStation",
                      "Work station must be a non-empty string")
    components = recipe.get("components")
    if not isinstance(components, list):
        raise ValidationError("recipe.components", "Components must be an array")
    for position, component in enumerate(components):
        _validate_component(component, f"recipe.components[{position}]")


def _validate_gathering(gathering: Any) -> None:
    if not isinstance(gathering, Mapping):
        raise ValidationError("gathering", "Raw components must have gathering information")
    _require_text(gathering.get("skill"), "gathering.skill",
                  "Gathering skill must be a non-empty string")


def validate_item(kind: ItemKind, item: Any) -> None:
    """
    Check one catalog item dict against the rules for its kind.

    Raises
    ------
    ValidationError
        On the first rule the item breaks.
    """
    if not isinstance(item, Mapping):
        raise ValidationError("item", "Item must be an object")

    if "id" not in item or item["id"] is None:
        raise ValidationError("id", "ID is required")
    if not is_positive_int(item["id"]):
        raise ValidationError("id", "ID must be a positive integer")

    _require_text(item.get("name"), "name", "Name must be a non-empty string")
    if len(item["name"]) > MAX_NAME_LENGTH:
        raise ValidationError("name", f"Name must be {MAX_NAME_LENGTH} characters or less")

    if item.get("description") is not None:
        description = item["description"]
        if not isinstance(description, str):
            raise ValidationError("description", "Description must be a string")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                "description", f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less")

    if item.get("requirements") is not None and not isinstance(item["requirements"], Mapping):
        raise ValidationError("requirements", "Requirements must be an object")

    if kind is ItemKind.RAW:
        _validate_gathering(item.get("gathering"))
    else:
        if item.get("recipe") is None:
            raise ValidationError("recipe", f"{kind.value.capitalize()} items must have recipe information")
        _validate_recipe(item["recipe"])

    try:
        json.dumps(item)
    except (TypeError, ValueError) as exc:
        raise ValidationError("item", f"Item must be JSON-serializable: {exc}") from exc


def _same_id(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return False
    return a is not None and a == b


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class MutationGateway:
    """
    The only writer of the catalog.

    Usage:
        gateway = MutationGateway(store, cache)
        result = gateway.add("raw", {"id": 7, "name": "Copper Ore",
                                     "gathering": {"skill": "mining"}})
        if not result:
            print(result.message)
    """

    def __init__(self, store: CatalogStore, cache: RecipeCache,
                 logger: Optional[CraftLogger] = None):
        self._store = store
        self._cache = cache
        self._logger = logger or create_logger(level=LogLevel.SILENT)

    def add(self, kind: Union[ItemKind, str], item: Mapping[str, Any]) -> MutationResult:
        """Append a new item to a kind's slice."""
        try:
            parsed = self._parse_kind(kind)
            new_item = self._copy_item(item)
            validate_item(parsed, new_item)
            with self._cache.write_lock():
                snapshot = self._store.load_all()
                self._check_unique(snapshot, [new_item["id"]])
                snapshot.slice(parsed).append(new_item)
                self._commit(snapshot, parsed)
        except CalculatorError as exc:
            return self._failed("add", kind, exc)
        return self._succeeded(
            "add", parsed, f"Added {parsed.value} item '{new_item['name']}'", copy.deepcopy(new_item))

    def bulk_add(self, kind: Union[ItemKind, str],
                 items: Sequence[Mapping[str, Any]]) -> MutationResult:
        """Add several items of one kind; either all are added or none."""
        try:
            parsed = self._parse_kind(kind)
            if not isinstance(items, (list, tuple)) or not items:
                raise ValidationError("items", "Items must be a non-empty array")
            new_items = []
            for position, item in enumerate(items):
                new_item = self._copy_item(item)
                try:
                    validate_item(parsed, new_item)
                except ValidationError as exc:
                    raise ValidationError(f"items[{position}].{exc.field}", exc.detail) from exc
                new_items.append(new_item)
            with self._cache.write_lock():
                snapshot = self._store.load_all()
                self._check_unique(snapshot, [i["id"] for i in new_items])
                snapshot.slice(parsed).extend(new_items)
                self._commit(snapshot, parsed)
        except CalculatorError as exc:
            return self._failed("bulk_add", kind, exc)
        return self._succeeded(
            "bulk_add", parsed, f"Added {len(new_items)} {parsed.value} items",
            copy.deepcopy(new_items))

    def update(self, kind: Union[ItemKind, str], item_id: Identifier,
               partial_updates: Mapping[str, Any]) -> MutationResult:
        """
        Merge top-level keys into an existing item.

        The merged item is validated as a whole; ``id`` cannot change.
        """
        try:
            parsed = self._parse_kind(kind)
            if not isinstance(partial_updates, Mapping):
                raise ValidationError("updates", "Updates must be an object")
            if "id" in partial_updates:
                raise ValidationError("id", "ID cannot be updated")
            with self._cache.write_lock():
                snapshot = self._store.load_all()
                items = snapshot.slice(parsed)
                position = self._locate(items, parsed, item_id)
                merged = dict(items[position])
                merged.update(copy.deepcopy(dict(partial_updates)))
                validate_item(parsed, merged)
                items[position] = merged
                self._commit(snapshot, parsed)
        except CalculatorError as exc:
            return self._failed("update", kind, exc)
        return self._succeeded(
            "update", parsed, f"Updated {parsed.value} item '{merged['name']}'", copy.deepcopy(merged))

    def remove(self, kind: Union[ItemKind, str], item_id: Identifier) -> MutationResult:
        """Delete an item; the result data is the removed item."""
        try:
            parsed = self._parse_kind(kind)
            with self._cache.write_lock():
                snapshot = self._store.load_all()
                items = snapshot.slice(parsed)
                removed = items.pop(self._locate(items, parsed, item_id))
                self._commit(snapshot, parsed)
        except CalculatorError as exc:
            return self._failed("remove", kind, exc)
        return self._succeeded(
            "remove", parsed, f"Removed {parsed.value} item '{removed.get('name')}'", removed)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _parse_kind(kind: Union[ItemKind, str]) -> ItemKind:
        try:
            return ItemKind.parse(kind)
        except ValueError as exc:
            raise InvalidKindError(kind) from exc

    @staticmethod
    def _copy_item(item: Any) -> Dict[str, Any]:
        if not isinstance(item, Mapping):
            raise ValidationError("item", "Item must be an object")
        return copy.deepcopy(dict(item))

    @staticmethod
    def _check_unique(snapshot: CatalogSnapshot, new_ids: List[Identifier]) -> None:
        """IDs are unique across every slice, and within the batch being added."""
        seen = list(snapshot.all_ids())
        for new_id in new_ids:
            for existing in seen:
                if _same_id(existing, new_id):
                    raise DuplicateIdError(new_id)
            seen.append(new_id)

    @staticmethod
    def _locate(items: List[Dict[str, Any]], kind: ItemKind, item_id: Identifier) -> int:
        for position, entry in enumerate(items):
            if isinstance(entry, dict) and _same_id(entry.get("id"), item_id):
                return position
        raise NotFoundError(kind.value, item_id)

    def _commit(self, snapshot: CatalogSnapshot, kind: ItemKind) -> None:
        """Persist and invalidate. Caller holds the cache write lock."""
        self._store.persist(snapshot)
        self._cache.invalidate(kind)

    def _succeeded(self, operation: str, kind: ItemKind, message: str, data: Any) -> MutationResult:
        result = MutationResult.ok(message, data)
        self._logger.log_mutation(operation, kind.value, result)
        return result

    def _failed(self, operation: str, kind: Any, exc: CalculatorError) -> MutationResult:
        result = MutationResult.fail(str(exc), exc)
        label = kind.value if isinstance(kind, ItemKind) else str(kind)
        self._logger.log_mutation(operation, label, result)
        return result
