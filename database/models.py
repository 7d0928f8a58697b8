"""Database CRUD operations.

Implements the catalog data-access functions for brands, categories and
products. The SKU engine only reads through these; the insert helpers are
for the product-creation workflow that commits SKUs.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from typing import Any

from utils.sku import parse_sku, sequence_value

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _row_to_dict(row: sqlite3.Row | None) -> dict[str, Any] | None:
    """Convert a sqlite3.Row to a plain dict, or return None."""
    if row is None:
        return None
    return dict(row)


def _rows_to_list(rows: list[sqlite3.Row]) -> list[dict[str, Any]]:
    """Convert a list of sqlite3.Row to a list of dicts."""
    return [dict(r) for r in rows]


# Brands and categories share a shape, so lookups are written once against a
# whitelisted table name.
_REFERENCE_TABLES = {"brands", "categories"}


def _check_table(table: str) -> None:
    if table not in _REFERENCE_TABLES:
        msg = f"Unknown reference table: {table}"
        raise ValueError(msg)


def _create_reference(
    conn: sqlite3.Connection,
    table: str,
    name: str,
    code: str | None,
    is_active: bool,
) -> dict[str, Any]:
    _check_table(table)
    cur = conn.execute(
        f"INSERT INTO {table} (name, code, is_active) VALUES (?, ?, ?)",  # noqa: S608
        (name, code, int(is_active)),
    )
    conn.commit()
    return _row_to_dict(
        conn.execute(f"SELECT * FROM {table} WHERE id = ?", (cur.lastrowid,)).fetchone()  # noqa: S608
    )


def _find_reference(
    conn: sqlite3.Connection,
    table: str,
    ref: str | int,
) -> dict[str, Any] | None:
    """Resolve a reference by numeric id, then code, then case-insensitive name."""
    _check_table(table)
    text = str(ref).strip()
    if not text:
        return None
    if text.isdigit():
        row = conn.execute(
            f"SELECT * FROM {table} WHERE id = ?", (int(text),)  # noqa: S608
        ).fetchone()
        if row is not None:
            return dict(row)
    row = conn.execute(
        f"SELECT * FROM {table} WHERE code = ? ORDER BY id LIMIT 1",  # noqa: S608
        (text.upper(),),
    ).fetchone()
    if row is None:
        row = conn.execute(
            f"SELECT * FROM {table} WHERE name = ? COLLATE NOCASE ORDER BY id LIMIT 1",  # noqa: S608
            (text,),
        ).fetchone()
    return _row_to_dict(row)


def _list_references(
    conn: sqlite3.Connection,
    table: str,
    active_only: bool,
) -> list[dict[str, Any]]:
    _check_table(table)
    sql = f"SELECT * FROM {table}"  # noqa: S608
    if active_only:
        sql += " WHERE is_active = 1"
    sql += " ORDER BY name"
    return _rows_to_list(conn.execute(sql).fetchall())


# ---------------------------------------------------------------------------
# Brands
# ---------------------------------------------------------------------------


def create_brand(
    conn: sqlite3.Connection,
    name: str,
    code: str | None = None,
    is_active: bool = True,
) -> dict[str, Any]:
    """Insert a new brand and return it."""
    return _create_reference(conn, "brands", name, code, is_active)


def find_brand(conn: sqlite3.Connection, ref: str | int) -> dict[str, Any] | None:
    """Return a brand by id, code or name."""
    return _find_reference(conn, "brands", ref)


def find_brands(
    conn: sqlite3.Connection,
    refs: Iterable[str | int],
) -> dict[str, dict[str, Any] | None]:
    """Resolve several brand references, each distinct reference once."""
    return {str(ref): find_brand(conn, ref) for ref in dict.fromkeys(refs)}


def list_brands(conn: sqlite3.Connection, active_only: bool = True) -> list[dict[str, Any]]:
    """Return brands ordered by name."""
    return _list_references(conn, "brands", active_only)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def create_category(
    conn: sqlite3.Connection,
    name: str,
    code: str | None = None,
    is_active: bool = True,
) -> dict[str, Any]:
    """Insert a new category and return it."""
    return _create_reference(conn, "categories", name, code, is_active)


def find_category(conn: sqlite3.Connection, ref: str | int) -> dict[str, Any] | None:
    """Return a category by id, code or name."""
    return _find_reference(conn, "categories", ref)


def find_categories(
    conn: sqlite3.Connection,
    refs: Iterable[str | int],
) -> dict[str, dict[str, Any] | None]:
    """Resolve several category references, each distinct reference once."""
    return {str(ref): find_category(conn, ref) for ref in dict.fromkeys(refs)}


def list_categories(conn: sqlite3.Connection, active_only: bool = True) -> list[dict[str, Any]]:
    """Return categories ordered by name."""
    return _list_references(conn, "categories", active_only)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def create_product(
    conn: sqlite3.Connection,
    sku: str,
    name: str = "",
    brand_id: int | None = None,
    category_id: int | None = None,
    size: str | None = None,
    color: str | None = None,
) -> dict[str, Any] | None:
    """Insert a new product and return it, or None on duplicate SKU."""
    try:
        cur = conn.execute(
            """
            INSERT INTO products
                (sku, name, brand_id, category_id, size, color)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (sku, name, brand_id, category_id, size, color),
        )
        conn.commit()
    except sqlite3.IntegrityError:
        return None
    return _row_to_dict(
        conn.execute("SELECT * FROM products WHERE id = ?", (cur.lastrowid,)).fetchone()
    )


def get_product_by_sku(
    conn: sqlite3.Connection,
    sku: str,
    exclude_product_id: int | None = None,
) -> dict[str, Any] | None:
    """Return a single product by SKU, optionally ignoring one product id."""
    if exclude_product_id is None:
        row = conn.execute("SELECT * FROM products WHERE sku = ?", (sku,)).fetchone()
    else:
        row = conn.execute(
            "SELECT * FROM products WHERE sku = ? AND id != ?",
            (sku, exclude_product_id),
        ).fetchone()
    return _row_to_dict(row)


def list_skus_with_prefix(conn: sqlite3.Connection, prefix: str) -> list[str]:
    """Return every committed SKU starting with *prefix* (case-sensitive)."""
    rows = conn.execute(
        "SELECT sku FROM products WHERE substr(sku, 1, length(?)) = ?",
        (prefix, prefix),
    ).fetchall()
    return [row["sku"] for row in rows]


def find_max_sequence(conn: sqlite3.Connection, prefix: str) -> int | None:
    """Return the highest numeric sequence among SKUs under *prefix*.

    Sequences are compared as integers, so ``010`` beats ``9``. SKUs whose
    sequence is not purely numeric (custom suffixes) are ignored.
    """
    best: int | None = None
    for sku in list_skus_with_prefix(conn, prefix):
        components = parse_sku(sku)
        if components is None:
            continue
        value = sequence_value(components.sequence)
        if value is not None and (best is None or value > best):
            best = value
    return best
