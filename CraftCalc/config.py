"""Load, normalise, and save calculator configuration from DefaultConfig.yaml."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .calc_logging import CraftLogger, LogLevel
from .catalog_store import CatalogStore, HttpCatalogStore, JsonFileCatalogStore
from .resources import get_resource_path

DEFAULT_CONFIG_PATH = get_resource_path("CraftCalc/DefaultConfig.yaml")
DEFAULT_CATALOG_PATH = get_resource_path("CraftCalc/data/recipes.json")

DEFAULT_TTL_SECONDS = 60.0
DEFAULT_MAX_DEPTH = 64
DEFAULT_HTTP_TIMEOUT = 10.0


@dataclass
class CatalogSettings:
    path: Optional[Path] = None  # None = bundled sample catalog
    url: Optional[str] = None  # When set, the HTTP store is used instead of the file
    timeout: float = DEFAULT_HTTP_TIMEOUT


@dataclass
class CacheSettings:
    ttl_seconds: float = DEFAULT_TTL_SECONDS


@dataclass
class ResolverSettings:
    max_depth: int = DEFAULT_MAX_DEPTH


@dataclass
class LoggingSettings:
    level: LogLevel = LogLevel.MINIMAL
    file: Optional[Path] = None
    max_entries: Optional[int] = None  # Cap on records kept in memory; None = unbounded


@dataclass
class CalculatorConfig:
    catalog: CatalogSettings = field(default_factory=CatalogSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    resolver: ResolverSettings = field(default_factory=ResolverSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: Optional[Path] = None  # File the config was read from

    @property
    def catalog_path(self) -> Path:
        return self.catalog.path or DEFAULT_CATALOG_PATH


def _parse_level(raw: Any) -> LogLevel:
    """Accept a level name ("DEBUG") or number; unknown values fall back to MINIMAL."""
    if not isinstance(raw, (str, int)) or isinstance(raw, bool):
        return LogLevel.MINIMAL
    try:
        return LogLevel.coerce(raw)
    except (KeyError, ValueError):
        return LogLevel.MINIMAL


def _parse_float(raw: Any, default: float, minimum: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return max(minimum, value)


def _parse_int(raw: Any, default: int, minimum: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return max(minimum, value)


def _optional_int(raw: Any, minimum: int) -> Optional[int]:
    """Blank or unparseable values mean no limit."""
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return None


def _optional_path(raw: Any, base_dir: Path) -> Optional[Path]:
    """Relative paths in the config are resolved against the config file's folder."""
    if not raw:
        return None
    path = Path(str(raw)).expanduser()
    return path if path.is_absolute() else (base_dir / path).resolve()


def load_config(path: Optional[Path] = None) -> CalculatorConfig:
    """Load and normalise configuration YAML into CalculatorConfig."""
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        return CalculatorConfig()

    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    base_dir = cfg_path.resolve().parent

    catalog_raw = raw.get("catalog", {}) or {}
    catalog = CatalogSettings(
        path=_optional_path(catalog_raw.get("path"), base_dir),
        url=catalog_raw.get("url") or None,
        timeout=_parse_float(catalog_raw.get("timeout", DEFAULT_HTTP_TIMEOUT),
                             DEFAULT_HTTP_TIMEOUT, 0.1),
    )

    cache_raw = raw.get("cache", {}) or {}
    cache = CacheSettings(
        ttl_seconds=_parse_float(cache_raw.get("ttlSeconds", DEFAULT_TTL_SECONDS),
                                 DEFAULT_TTL_SECONDS, 0.0),
    )

    resolver_raw = raw.get("resolver", {}) or {}
    resolver = ResolverSettings(
        max_depth=_parse_int(resolver_raw.get("maxDepth", DEFAULT_MAX_DEPTH),
                             DEFAULT_MAX_DEPTH, 1),
    )

    logging_raw = raw.get("logging", {}) or {}
    logging_settings = LoggingSettings(
        level=_parse_level(logging_raw.get("level", "MINIMAL")),
        file=_optional_path(logging_raw.get("file"), base_dir),
        max_entries=_optional_int(logging_raw.get("maxEntries"), 1),
    )

    return CalculatorConfig(
        catalog=catalog,
        cache=cache,
        resolver=resolver,
        logging=logging_settings,
        source=cfg_path,
    )


def save_config(config: CalculatorConfig, path: Optional[Path] = None) -> None:
    """
    Save CalculatorConfig back to a YAML file.

    Parameters
    ----------
    config : CalculatorConfig
        The configuration to save
    path : Path, optional
        Path to save to. Defaults to DefaultConfig.yaml
    """
    cfg_path = path or DEFAULT_CONFIG_PATH

    data: Dict[str, Any] = {
        "catalog": {
            "path": str(config.catalog.path) if config.catalog.path else None,
            "url": config.catalog.url,
            "timeout": config.catalog.timeout,
        },
        "cache": {
            "ttlSeconds": config.cache.ttl_seconds,
        },
        "resolver": {
            "maxDepth": config.resolver.max_depth,
        },
        "logging": {
            "level": config.logging.level.name,
            "file": str(config.logging.file) if config.logging.file else None,
            "maxEntries": config.logging.max_entries,
        },
    }

    with cfg_path.open("w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, allow_unicode=True, sort_keys=False)


def build_store(config: CalculatorConfig, logger: Optional[CraftLogger] = None) -> CatalogStore:
    """The HTTP store when ``catalog.url`` is set, otherwise the JSON file store."""
    if config.catalog.url:
        return HttpCatalogStore(config.catalog.url, timeout=config.catalog.timeout, logger=logger)
    return JsonFileCatalogStore(config.catalog_path, logger=logger)
