"""Shared test fixtures."""

from __future__ import annotations

import sqlite3
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from database.connection import get_db, init_database
from database.models import create_brand, create_category, create_product
from services.cache import CacheUnavailableError, MemoryCache, SharedCache
from services.catalog import SqliteCatalog
from services.sku_service import SkuService

_SCHEMA_PATH = Path(__file__).resolve().parent.parent / "database" / "schema.sql"


class FakeClock:
    """Manually advanced monotonic clock for MemoryCache TTL tests."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class UnavailableCache(SharedCache):
    """A cache whose every operation fails like an unreachable Redis."""

    def _fail(self, *args: object, **kwargs: object):
        raise CacheUnavailableError("connection refused")

    increment = _fail
    increment_to_at_least = _fail
    set_if_absent = _fail
    get = _fail
    delete = _fail
    delete_if_equals = _fail
    expire = _fail
    ttl = _fail

    def ping(self) -> bool:
        return False


@pytest.fixture
def db() -> Generator[sqlite3.Connection, None, None]:
    """In-memory SQLite database with the full schema applied."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    schema = _SCHEMA_PATH.read_text()
    conn.executescript(schema)
    yield conn
    conn.close()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Path to an initialised on-disk catalog, shareable across threads."""
    path = str(tmp_path / "catalog.db")
    init_database(path)
    return path


@pytest.fixture
def catalog_db(db_path: str) -> Generator[sqlite3.Connection, None, None]:
    """Connection to the on-disk catalog for seeding test data."""
    conn = get_db(db_path)
    yield conn
    conn.close()


@pytest.fixture
def catalog(db_path: str) -> SqliteCatalog:
    return SqliteCatalog(db_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> MemoryCache:
    return MemoryCache(clock=clock)


@pytest.fixture
def service(catalog: SqliteCatalog, cache: MemoryCache) -> SkuService:
    return SkuService(catalog, cache)


@pytest.fixture
def brands(catalog_db: sqlite3.Connection) -> dict[str, dict[str, Any]]:
    """Seed brands: Nike, Adidas, Puma, and a brand with no code."""
    return {
        "nike": create_brand(catalog_db, "Nike", "NIKE"),
        "adidas": create_brand(catalog_db, "Adidas", "ADIDAS"),
        "puma": create_brand(catalog_db, "Puma", "PUMA"),
        "nocode": create_brand(catalog_db, "Generic"),
    }


@pytest.fixture
def categories(catalog_db: sqlite3.Connection) -> dict[str, dict[str, Any]]:
    """Seed categories: Shoes, T-Shirts, Accessories, and one with no code."""
    return {
        "shoes": create_category(catalog_db, "Shoes", "SHO"),
        "tshirts": create_category(catalog_db, "T-Shirts", "TSH"),
        "accessories": create_category(catalog_db, "Accessories", "ACC"),
        "nocode": create_category(catalog_db, "Misc"),
    }


@pytest.fixture
def commit_product(catalog_db: sqlite3.Connection):
    """Commit a product with the given SKU, as a creation workflow would."""

    def _commit(sku: str, name: str = "Test product") -> dict[str, Any]:
        product = create_product(catalog_db, sku=sku, name=name)
        assert product is not None
        return product

    return _commit


@pytest.fixture
def unavailable_cache() -> UnavailableCache:
    """A cache that fails every call, simulating a Redis outage."""
    return UnavailableCache()


@pytest.fixture
def app(service: SkuService):
    """Flask app wired to the test service."""
    from api.app import create_app

    application = create_app(sku_service=service)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()
