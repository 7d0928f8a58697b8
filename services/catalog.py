"""Read-only view of the catalog store for the SKU engine.

Each call opens its own SQLite connection so the catalog can be shared by
concurrent threads and processes.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

import database.models as models
from database.connection import get_db


class SqliteCatalog:
    """Catalog lookups against the SQLite database at *db_path*."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = get_db(self.db_path)
        try:
            yield conn
        finally:
            conn.close()

    def find_max_sequence(self, prefix: str) -> int | None:
        """Highest numeric sequence committed under ``BRAND-CATEGORY-``."""
        with self._connect() as conn:
            return models.find_max_sequence(conn, prefix)

    def exists(self, sku: str, exclude_product_id: int | None = None) -> bool:
        return self.find_product_by_sku(sku, exclude_product_id) is not None

    def find_product_by_sku(
        self,
        sku: str,
        exclude_product_id: int | None = None,
    ) -> dict[str, Any] | None:
        with self._connect() as conn:
            return models.get_product_by_sku(conn, sku, exclude_product_id)

    def find_brand(self, ref: str | int) -> dict[str, Any] | None:
        with self._connect() as conn:
            return models.find_brand(conn, ref)

    def find_category(self, ref: str | int) -> dict[str, Any] | None:
        with self._connect() as conn:
            return models.find_category(conn, ref)

    def find_brands(self, refs: Iterable[str | int]) -> dict[str, dict[str, Any] | None]:
        with self._connect() as conn:
            return models.find_brands(conn, refs)

    def find_categories(self, refs: Iterable[str | int]) -> dict[str, dict[str, Any] | None]:
        with self._connect() as conn:
            return models.find_categories(conn, refs)

    def list_brands(self) -> list[dict[str, Any]]:
        with self._connect() as conn:
            return models.list_brands(conn)

    def list_categories(self) -> list[dict[str, Any]]:
        with self._connect() as conn:
            return models.list_categories(conn)
