#!/usr/bin/env python
"""CLI entry point for the crafting calculator."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .bom import BillProcessor, format_bill
from .cache import RecipeCache
from .calc_logging import LogLevel, create_logger
from .catalog_store import JsonFileCatalogStore
from .config import build_store, load_config
from .models import BillEntry


def parse_bill_spec(spec: str) -> BillEntry:
    """
    Parse an item specification string.

    Format: "Item Name:Quantity" or "Item Name" (quantity 1). A purely
    numeric item is treated as an item id.

    Examples:
        "Novice Hunting Bow:2"
        "Oak Timber"
        "12:5"
    """
    name, sep, tail = spec.rpartition(":")
    if sep and tail.strip().isdigit():
        quantity = int(tail.strip())
    else:
        name, quantity = spec, 1

    name = name.strip()
    if not name:
        raise ValueError(f"Invalid item spec: {spec!r}\nExpected format: 'Item Name:Quantity'")
    if quantity <= 0:
        raise ValueError(f"Quantity must be positive in item spec: {spec!r}")

    item: Any = int(name) if name.isdigit() else name
    return BillEntry(item=item, quantity=quantity)


def format_statistics(stats: Dict[str, Any]) -> str:
    """Format catalog statistics for display."""
    lines = ["=== Catalog Statistics ===", ""]
    lines.append(f"Total items: {stats.get('total', 0)}")
    for kind, count in stats.get("by_type", {}).items():
        lines.append(f"  {kind}: {count}")

    sections = [
        ("Artisan skills", "by_artisan_skill"),
        ("Gathering skills", "by_gathering_skill"),
        ("Work stations", "by_work_station"),
    ]
    for title, key in sections:
        counts = stats.get(key) or {}
        if counts:
            lines.append(f"\n{title}:")
            for name, count in counts.items():
                lines.append(f"  {name}: {count}")

    if stats.get("max_player_level"):
        lines.append(
            f"\nPlayer level: {stats['min_player_level']}-{stats['max_player_level']} "
            f"(average {stats['average_player_level']:.1f})"
        )
    if stats.get("total_components"):
        lines.append(
            f"Recipe components: {stats['total_components']} total, "
            f"max {stats['max_component_count']} per recipe "
            f"(average {stats['average_component_count']:.1f})"
        )
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Calculate the raw materials needed to craft a list of items.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  craftcalc "Novice Hunting Bow:1"
  craftcalc "Novice Hunting Bow:2" "Magic Powder:5"
  craftcalc --catalog my_recipes.json --log-level DETAILED "Oak Timber:10"
  craftcalc --stats
        """,
    )
    parser.add_argument(
        "items",
        nargs="*",
        help="Items to craft: 'Item Name:Quantity' or 'Item Name'",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to config YAML (default: CraftCalc/DefaultConfig.yaml)",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="Catalog JSON file, overriding the configured catalog",
    )
    parser.add_argument(
        "-l",
        "--log-level",
        type=str.upper,
        default=None,
        choices=[level.name for level in LogLevel],
        help="Logging verbosity (default: from config)",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show catalog statistics",
    )

    args = parser.parse_args(argv)
    if not args.items and not args.stats:
        parser.error("give at least one item to craft, or --stats")

    try:
        bill = [parse_bill_spec(spec) for spec in args.items]
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    config = load_config(args.config)
    level = LogLevel[args.log_level] if args.log_level else config.logging.level

    with create_logger(level=level, log_file=config.logging.file,
                       max_entries=config.logging.max_entries) as logger:
        logger.log_config(config.source, config.cache.ttl_seconds, config.resolver.max_depth)

        if args.catalog is not None:
            store = JsonFileCatalogStore(args.catalog, logger=logger)
        else:
            store = build_store(config, logger=logger)

        cache = RecipeCache(store, ttl_seconds=config.cache.ttl_seconds, logger=logger)
        try:
            if args.stats:
                print(format_statistics(cache.get_metadata().statistics))
                if bill:
                    print()

            if bill:
                processor = BillProcessor(cache, logger=logger, max_depth=config.resolver.max_depth)
                print(format_bill(processor.process(bill)))
        finally:
            cache.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
