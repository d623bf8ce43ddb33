"""Tests for calculator logging.

Validates that:
1. Entries above the configured level are dropped
2. Warnings are recorded with their class name for later querying
3. Output goes to the stream and, when configured, to a log file
4. max_entries bounds the records kept in memory
"""
from __future__ import annotations

from io import StringIO

import pytest

from CraftCalc.calc_logging import CraftLogger, LogLevel, create_logger, create_string_logger
from CraftCalc.errors import CatalogLoadError, CircularDependencyWarning, UnknownComponentWarning
from CraftCalc.models import ResolvedComponent


def material(name, quantity, is_raw=True, is_unknown=False, skill=None) -> ResolvedComponent:
    return ResolvedComponent(id=name, name=name, quantity=quantity, is_raw=is_raw,
                             is_unknown=is_unknown, source_skill=skill)


# ---------------------------------------------------------------------------
# Tests: Levels
# ---------------------------------------------------------------------------

class TestLevels:

    def test_entries_above_level_dropped(self):
        logger, buffer = create_string_logger(LogLevel.SUMMARY)
        logger.log_cache_load("raw", 5)
        logger.log_cache_hit("raw")
        logger.log_resolve_step("Oak Timber", 2, 1, "expand")
        assert len(logger.entries) == 1
        assert "[CACHE] Cached 5 raw items" in buffer.getvalue()

    def test_silent_logs_nothing(self):
        logger, buffer = create_string_logger(LogLevel.SILENT)
        logger.log_error("CACHE", "Error loading raw", CatalogLoadError("<memory>", "gone"))
        assert logger.entries == []
        assert buffer.getvalue() == ""

    @pytest.mark.parametrize("level, expected", [
        ("debug", LogLevel.DEBUG),
        (20, LogLevel.SUMMARY),
        (LogLevel.TRACE, LogLevel.TRACE),
    ])
    def test_create_logger_levels(self, level, expected):
        assert create_logger(level=level).level is expected

    def test_resolve_steps_indented_by_depth(self):
        logger, _ = create_string_logger(LogLevel.TRACE)
        logger.log_resolve_step("Oak Wood", 8, 2, "raw")
        assert logger.entries[0].message == "    'Oak Wood' x8: raw"

    def test_max_entries_keeps_newest(self):
        buffer = StringIO()
        logger = create_logger(LogLevel.DETAILED, output=buffer, max_entries=3)
        for count in range(5):
            logger.log_cache_load("raw", count)
        assert [e.data["count"] for e in logger.entries] == [2, 3, 4]
        # Echoed output is not capped
        assert len(buffer.getvalue().splitlines()) == 5


# ---------------------------------------------------------------------------
# Tests: Warnings and errors
# ---------------------------------------------------------------------------

class TestWarnings:

    def test_warning_class_recorded(self):
        logger, _ = create_string_logger(LogLevel.MINIMAL)
        logger.log_warning("RESOLVE", UnknownComponentWarning("Mithril Bar"), {"quantity": 2})
        logger.log_warning("RESOLVE", CircularDependencyWarning("Oak Timber", ["Oak Timber"]))

        assert len(logger.get_warnings()) == 2
        unknown = logger.get_warnings("UnknownComponentWarning")
        assert len(unknown) == 1
        assert unknown[0].data == {"warning": "UnknownComponentWarning", "quantity": 2}
        assert unknown[0].message.startswith("WARNING: ")

    def test_error_carries_exception_details(self):
        logger, buffer = create_string_logger(LogLevel.MINIMAL)
        logger.log_error("CACHE", "Error loading raw", CatalogLoadError("recipes.json", "invalid JSON"))
        entry = logger.entries[0]
        assert entry.data == {"error": "CatalogLoadError",
                              "detail": "Catalog load failed for recipes.json: invalid JSON"}
        assert "ERROR: Error loading raw: Catalog load failed" in buffer.getvalue()


# ---------------------------------------------------------------------------
# Tests: Bill results
# ---------------------------------------------------------------------------

class TestBillResult:

    def test_summary_line(self):
        logger, _ = create_string_logger(LogLevel.SUMMARY)
        logger.log_bill_result([material("Oak Wood", 8), material("Mithril Bar", 1, False, True)])
        assert [e.message for e in logger.entries] == ["Bill resolved to 2 materials (1 unknown)"]

    def test_detailed_table(self):
        logger, _ = create_string_logger(LogLevel.DETAILED)
        logger.log_bill_result([material("Oak Wood", 8, skill="lumberjacking")])
        lines = [e.message for e in logger.get_entries_by_category("BILL")]
        assert lines[1] == "Raw Materials"
        assert lines[3].split(" | ")[0].strip() == "Material"
        assert lines[-1].split(" | ")[2].strip() == "raw"


# ---------------------------------------------------------------------------
# Tests: Outputs
# ---------------------------------------------------------------------------

class TestOutputs:

    def test_log_file(self, tmp_path):
        path = tmp_path / "calc.log"
        with create_logger(LogLevel.SUMMARY, output=None, log_file=path) as logger:
            logger.log_store_write("recipes.json")
        assert "[STORE] Persisted catalog to recipes.json" in path.read_text(encoding="utf-8")

    def test_to_string_without_timestamps(self):
        logger = CraftLogger(level=LogLevel.SUMMARY, output=None, include_timestamp=False)
        logger.log_bill_start(3)
        assert logger.to_string().endswith("[BILL] Processing bill with 3 entries")
        logger.clear()
        assert logger.to_string() == ""
