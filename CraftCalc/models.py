"""
Domain models for the crafting catalog and bill-of-materials results.

Catalog items are parsed from the catalog JSON shape (``raw_components``,
``intermediate_recipes``, ``crafted_items``). The raw dictionaries stay the
source of truth for persistence; these dataclasses are the typed view the
resolver and cache work with.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

Identifier = Union[int, str]


class ItemKind(str, Enum):
    """Discriminator for catalog items, one per catalog slice."""
    RAW = "raw"
    INTERMEDIATE = "intermediate"
    CRAFTED = "crafted"

    @property
    def slice_key(self) -> str:
        """Top-level key of this kind's slice in the catalog JSON."""
        return SLICE_KEYS[self]

    @property
    def is_craftable(self) -> bool:
        return self is not ItemKind.RAW

    @classmethod
    def parse(cls, value: Union["ItemKind", str]) -> "ItemKind":
        """
        Accept an ItemKind, its value ("raw") or its slice key ("raw_components").

        Raises
        ------
        ValueError
            If the value names no known kind.
        """
        if isinstance(value, ItemKind):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            for kind, key in SLICE_KEYS.items():
                if lowered in (kind.value, key):
                    return kind
        raise ValueError(f"Unknown item kind: {value!r}")


SLICE_KEYS: Dict[ItemKind, str] = {
    ItemKind.RAW: "raw_components",
    ItemKind.INTERMEDIATE: "intermediate_recipes",
    ItemKind.CRAFTED: "crafted_items",
}

# Resolution and lookup order
KIND_ORDER = (ItemKind.RAW, ItemKind.INTERMEDIATE, ItemKind.CRAFTED)


@dataclass(frozen=True)
class ComponentRef:
    """One line of a recipe: which item, and how many per craft."""
    identifier: Identifier
    quantity: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentRef":
        """
        Build a ComponentRef from a recipe component dict.

        Missing or unusable quantities fall back to 1; the mutation gateway
        rejects them on write, this only keeps hand-edited files resolvable.
        """
        identifier = component_identifier(data)
        return cls(
            identifier=identifier if identifier is not None else "",
            quantity=_coerce_quantity(data.get("quantity")),
        )


def is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _coerce_quantity(value: Any) -> int:
    if is_positive_int(value):
        return value
    if isinstance(value, str) and value.strip().isdigit() and int(value) > 0:
        return int(value)
    return 1


def component_identifier(data: Dict[str, Any]) -> Optional[Identifier]:
    """Target of a component dict: ``name``, then ``item``, then ``id``."""
    for key in ("name", "item", "id"):
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


@dataclass
class Recipe:
    artisan_skill: Optional[str] = None
    work_station: Optional[str] = None
    components: List[ComponentRef] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recipe":
        raw_components = data.get("components") or []
        components = [
            ComponentRef.from_dict(c) for c in raw_components if isinstance(c, dict)
        ]
        return cls(
            artisan_skill=data.get("artisanSkill"),
            work_station=data.get("workStation"),
            components=components,
        )


@dataclass
class Gathering:
    skill: Optional[str] = None
    skill_level: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Gathering":
        return cls(skill=data.get("skill"), skill_level=data.get("skillLevel"))


@dataclass
class Requirements:
    player_level: Optional[int] = None
    artisan_level: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Requirements":
        return cls(
            player_level=data.get("playerLevel"),
            artisan_level=data.get("artisanLevel"),
        )


@dataclass
class CatalogItem:
    """
    A single catalog entry.

    ``kind`` comes from the slice the item was loaded from, not from the
    presence of a ``recipe`` key. ``raw`` keeps the original dictionary so
    unknown keys survive a load/persist round-trip.
    """
    id: Identifier
    name: str
    kind: ItemKind
    description: Optional[str] = None
    requirements: Optional[Requirements] = None
    recipe: Optional[Recipe] = None
    gathering: Optional[Gathering] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_expandable(self) -> bool:
        """True for intermediate/crafted items with at least one component."""
        return (
            self.kind.is_craftable
            and self.recipe is not None
            and len(self.recipe.components) > 0
        )

    @property
    def components(self) -> List[ComponentRef]:
        return list(self.recipe.components) if self.recipe else []

    @classmethod
    def from_dict(cls, data: Dict[str, Any], kind: ItemKind) -> "CatalogItem":
        """
        Create a CatalogItem from a catalog dictionary.

        This does not validate; the mutation gateway does that.
        """
        recipe_data = data.get("recipe")
        gathering_data = data.get("gathering")
        requirements_data = data.get("requirements")
        return cls(
            id=data.get("id"),
            name=str(data.get("name") or ""),
            kind=kind,
            description=data.get("description"),
            requirements=(
                Requirements.from_dict(requirements_data)
                if isinstance(requirements_data, dict) else None
            ),
            recipe=Recipe.from_dict(recipe_data) if isinstance(recipe_data, dict) else None,
            gathering=(
                Gathering.from_dict(gathering_data)
                if isinstance(gathering_data, dict) else None
            ),
            raw=data,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a copy of the catalog dictionary this item was built from."""
        return dict(self.raw)


@dataclass(frozen=True)
class ResolvedComponent:
    """One leaf contribution produced by resolution."""
    id: Identifier
    name: str
    quantity: int
    is_raw: bool = False
    is_unknown: bool = False
    source_skill: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "isRaw": self.is_raw,
            "isUnknown": self.is_unknown,
            "sourceSkill": self.source_skill,
        }


@dataclass
class BillEntry:
    """One line of the user's selection."""
    item: Union[Identifier, CatalogItem]
    quantity: int = 1

    @property
    def identifier(self) -> Optional[Identifier]:
        if isinstance(self.item, CatalogItem):
            return self.item.id
        return self.item

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BillEntry":
        item = data.get("item")
        if isinstance(item, dict):
            # A catalog item dict; resolve it by id, falling back to name
            item = item.get("id") if item.get("id") is not None else item.get("name")
        return cls(item=item, quantity=data.get("quantity", 1))


@dataclass
class CatalogSnapshot:
    """
    The whole catalog as exchanged with a store.

    Slices hold the raw item dictionaries in file order.
    """
    raw_components: List[Dict[str, Any]] = field(default_factory=list)
    intermediate_recipes: List[Dict[str, Any]] = field(default_factory=list)
    crafted_items: List[Dict[str, Any]] = field(default_factory=list)
    artisan_levels: List[Any] = field(default_factory=list)
    gathering_skills: List[Any] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def slice(self, kind: ItemKind) -> List[Dict[str, Any]]:
        """The mutable list of raw item dicts for a kind."""
        return getattr(self, kind.slice_key)

    def items(self, kind: ItemKind) -> List[CatalogItem]:
        return [
            CatalogItem.from_dict(entry, kind)
            for entry in self.slice(kind)
            if isinstance(entry, dict)
        ]

    def all_ids(self) -> List[Identifier]:
        ids: List[Identifier] = []
        for kind in KIND_ORDER:
            for entry in self.slice(kind):
                if isinstance(entry, dict) and entry.get("id") is not None:
                    ids.append(entry["id"])
        return ids

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogSnapshot":
        known = set(SLICE_KEYS.values()) | {"artisan_levels", "gathering_skills"}

        def _list(key: str) -> List[Any]:
            value = data.get(key)
            return list(value) if isinstance(value, list) else []

        return cls(
            raw_components=_list("raw_components"),
            intermediate_recipes=_list("intermediate_recipes"),
            crafted_items=_list("crafted_items"),
            artisan_levels=_list("artisan_levels"),
            gathering_skills=_list("gathering_skills"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialise in the catalog JSON key order."""
        result: Dict[str, Any] = {
            "raw_components": self.raw_components,
            "intermediate_recipes": self.intermediate_recipes,
            "crafted_items": self.crafted_items,
            "artisan_levels": self.artisan_levels,
            "gathering_skills": self.gathering_skills,
        }
        result.update(self.extra)
        return result


@dataclass
class CatalogMetadata:
    """Non-item catalog data plus aggregate statistics."""
    artisan_levels: List[Any] = field(default_factory=list)
    gathering_skills: List[Any] = field(default_factory=list)
    statistics: Dict[str, Any] = field(default_factory=dict)


def empty_catalog() -> CatalogSnapshot:
    """Default catalog skeleton: no items, standard levels and skills."""
    return CatalogSnapshot(
        artisan_levels=[
            {"level": "novice", "order": 1, "description": "Entry level crafting"},
            {"level": "apprentice", "order": 2, "description": "Intermediate crafting skills"},
            {"level": "journeyman", "order": 3, "description": "Advanced crafting techniques"},
            {"level": "expert", "order": 4, "description": "Master level crafting"},
        ],
        gathering_skills=[
            {"skill": "mining", "description": "Extract ores and stones from nodes"},
            {"skill": "lumberjacking", "description": "Harvest wood from trees"},
            {"skill": "herbalism", "description": "Gather herbs and plants"},
            {"skill": "fishing", "description": "Catch fish from rivers, lakes, and oceans"},
            {"skill": "hunting", "description": "Hunt animals for hides, bones, and meat"},
            {"skill": "vendor", "description": "Items purchased from vendors"},
        ],
    )
