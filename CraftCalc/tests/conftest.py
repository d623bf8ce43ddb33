"""Shared fixtures for the calculator tests."""
from __future__ import annotations

from typing import Any, Dict

import pytest

from CraftCalc.calc_logging import CraftLogger, LogLevel, create_string_logger
from CraftCalc.catalog_store import InMemoryCatalogStore
from CraftCalc.tests.factories import FakeClock, make_catalog


@pytest.fixture
def catalog() -> Dict[str, Any]:
    return make_catalog()


@pytest.fixture
def store(catalog) -> InMemoryCatalogStore:
    return InMemoryCatalogStore(catalog)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def logger() -> CraftLogger:
    """Logger that records everything, including resolution steps."""
    log, _ = create_string_logger(LogLevel.TRACE)
    return log
