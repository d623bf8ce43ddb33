"""Tests for the id/name lookup index."""
from __future__ import annotations

import pytest

from CraftCalc.lookup import LookupIndex
from CraftCalc.models import CatalogItem, ItemKind
from CraftCalc.tests.factories import raw


def item(item_id, name, kind=ItemKind.RAW) -> CatalogItem:
    return CatalogItem.from_dict(raw(item_id, name), kind)


@pytest.fixture
def index() -> LookupIndex:
    return LookupIndex([
        item(1, "Oak Wood"),
        item(2, "Rabbit Hide"),
        item("15", "Spider Silk"),
        item(10, "Oak Timber", ItemKind.INTERMEDIATE),
    ])


class TestFind:

    @pytest.mark.parametrize("identifier, expected", [
        (1, "Oak Wood"),
        ("Oak Wood", "Oak Wood"),
        ("oak wood", "Oak Wood"),
        ("  RABBIT HIDE ", "Rabbit Hide"),
        (10, "Oak Timber"),
    ])
    def test_by_id_or_name(self, index, identifier, expected):
        assert index.find(identifier).name == expected

    def test_numeric_string_matches_int_id(self, index):
        assert index.find("10").name == "Oak Timber"
        assert index.find(" 2 ").name == "Rabbit Hide"

    def test_int_matches_string_id(self, index):
        assert index.find(15).name == "Spider Silk"
        assert index.find("15").name == "Spider Silk"

    @pytest.mark.parametrize("identifier", [None, True, False, "", 99, "Oak", ["Oak Wood"], {"id": 1}])
    def test_no_match(self, index, identifier):
        assert index.find(identifier) is None

    def test_first_occurrence_wins(self):
        index = LookupIndex([item(1, "Oak Wood"), item(1, "Birch Wood"), item(2, "oak wood")])
        assert index.find(1).name == "Oak Wood"
        assert index.find("OAK WOOD").id == 1
        assert index.find("Birch Wood").id == 1


class TestCollection:

    def test_len_iter_contains(self, index):
        assert len(index) == 4
        assert [i.name for i in index][:2] == ["Oak Wood", "Rabbit Hide"]
        assert "oak timber" in index
        assert 404 not in index

    def test_items_is_a_copy(self, index):
        index.items.clear()
        assert len(index) == 4

    def test_name_to_id(self, index):
        assert index.name_to_id["oak timber"] == 10
        assert index.name_to_id["spider silk"] == "15"

    def test_empty_index(self):
        index = LookupIndex([])
        assert len(index) == 0
        assert index.find("Oak Wood") is None
