"""Tests for the command line entry point."""
from __future__ import annotations

import json
import re

import pytest

from CraftCalc.config import DEFAULT_CATALOG_PATH
from CraftCalc.models import BillEntry
from CraftCalc.run_calculator import format_statistics, main, parse_bill_spec
from CraftCalc.tests.factories import make_catalog


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "recipes.json"
    path.write_text(json.dumps(make_catalog()), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Tests: Bill specs
# ---------------------------------------------------------------------------

class TestParseBillSpec:

    @pytest.mark.parametrize("spec, expected", [
        ("Novice Hunting Bow:2", BillEntry("Novice Hunting Bow", 2)),
        ("Oak Timber", BillEntry("Oak Timber", 1)),
        ("Oak Timber : 3", BillEntry("Oak Timber", 3)),
        ("2200:5", BillEntry(2200, 5)),
        ("2200", BillEntry(2200, 1)),
        # Only a trailing number is a quantity
        ("Scroll: Fire", BillEntry("Scroll: Fire", 1)),
        ("Ratio 1:2:3", BillEntry("Ratio 1:2", 3)),
    ])
    def test_valid(self, spec, expected):
        assert parse_bill_spec(spec) == expected

    @pytest.mark.parametrize("spec", ["", "   ", ":4", "Oak Timber:0"])
    def test_invalid(self, spec):
        with pytest.raises(ValueError):
            parse_bill_spec(spec)


# ---------------------------------------------------------------------------
# Tests: main
# ---------------------------------------------------------------------------

class TestMain:

    def test_bill_from_bundled_catalog(self, capsys):
        code = main(["--catalog", str(DEFAULT_CATALOG_PATH), "Novice Hunting Bow:1", "Copper Dagger:2"])
        out = capsys.readouterr().out
        assert code == 0
        assert out.startswith("=== Raw Materials ===")
        assert re.search(r"Copper Ore\s+12\s+mining", out)
        assert re.search(r"Flux\s+6\s+vendor", out)
        assert re.search(r"Oak Wood\s+10\s+lumberjacking", out)
        assert re.search(r"Rabbit Hide\s+2\s+hunting", out)

    def test_unknown_item_marked(self, capsys, catalog_file):
        assert main(["--catalog", str(catalog_file), "Mithril Bar:2", "Oak Timber"]) == 0
        out = capsys.readouterr().out
        assert re.search(r"Mithril Bar\?\s+2", out)
        assert "? not found in catalog" in out

    def test_stats(self, capsys):
        assert main(["--catalog", str(DEFAULT_CATALOG_PATH), "--stats"]) == 0
        out = capsys.readouterr().out
        assert "=== Catalog Statistics ===" in out
        assert "Total items: 13" in out
        assert "Player level: 1-8 (average 3.3)" in out

    def test_config_file_selects_catalog(self, capsys, tmp_path, catalog_file):
        config = tmp_path / "config.yaml"
        config.write_text(f"catalog:\n  path: {catalog_file.name}\n", encoding="utf-8")
        assert main(["-c", str(config), "Magic Powder:3"]) == 0
        out = capsys.readouterr().out
        assert re.search(r"Snowdrop\s+3\s+herbalism", out)

    def test_log_level_written_to_stderr(self, capsys, catalog_file):
        assert main(["--catalog", str(catalog_file), "-l", "summary", "Oak Timber:4"]) == 0
        err = capsys.readouterr().err
        assert "[BILL] Processing bill with 1 entries" in err
        assert "[BILL] Bill resolved to 1 materials" in err

    def test_bad_spec(self, capsys):
        assert main(["Oak Timber:0"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_nothing_to_do(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2


def test_format_statistics_without_recipes():
    text = format_statistics({"total": 0, "by_type": {"raw": 0}})
    assert text.splitlines()[:3] == ["=== Catalog Statistics ===", "", "Total items: 0"]
    assert "Player level" not in text
