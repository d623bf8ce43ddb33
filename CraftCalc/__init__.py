"""CraftCalc package: recipe resolution and raw-material totals for crafting."""
from .config import load_config, save_config, build_store, CalculatorConfig
from .models import (
    ItemKind,
    CatalogItem,
    ComponentRef,
    ResolvedComponent,
    BillEntry,
    CatalogSnapshot,
    CatalogMetadata,
    empty_catalog,
)
from .errors import (
    CalculatorError,
    NotFoundError,
    ValidationError,
    DuplicateIdError,
    InvalidKindError,
    CatalogLoadError,
    MutationResult,
)
from .catalog_store import CatalogStore, InMemoryCatalogStore, JsonFileCatalogStore, HttpCatalogStore
from .lookup import LookupIndex
from .cache import RecipeCache, CacheState
from .bom import Resolver, BillProcessor, consolidate, components_to_frame, format_bill
from .gateway import MutationGateway, validate_item
from .statistics import compute_statistics, filter_items, items_using_component
from .calc_logging import LogLevel, CraftLogger, create_logger, create_string_logger

__all__ = [
    "load_config",
    "save_config",
    "build_store",
    "CalculatorConfig",
    # Models
    "ItemKind",
    "CatalogItem",
    "ComponentRef",
    "ResolvedComponent",
    "BillEntry",
    "CatalogSnapshot",
    "CatalogMetadata",
    "empty_catalog",
    # Errors
    "CalculatorError",
    "NotFoundError",
    "ValidationError",
    "DuplicateIdError",
    "InvalidKindError",
    "CatalogLoadError",
    "MutationResult",
    # Stores and cache
    "CatalogStore",
    "InMemoryCatalogStore",
    "JsonFileCatalogStore",
    "HttpCatalogStore",
    "LookupIndex",
    "RecipeCache",
    "CacheState",
    # Resolution
    "Resolver",
    "BillProcessor",
    "consolidate",
    "components_to_frame",
    "format_bill",
    "MutationGateway",
    "validate_item",
    "compute_statistics",
    "filter_items",
    "items_using_component",
    "LogLevel",
    "CraftLogger",
    "create_logger",
    "create_string_logger",
]
