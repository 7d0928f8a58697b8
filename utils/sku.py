"""SKU formatting and parsing.

Format: BRAND-CATEGORY-SIZE-COLOR-SEQUENCE, e.g. ``NIKE-SHO-L-BLK-001``.
All fields are uppercase alphanumerics; inputs to :func:`build_sku` must
already be normalised (see ``utils.codes``).
"""

from __future__ import annotations

import re

from pydantic import BaseModel

from api.exceptions import InvalidComponentError

SKU_PATTERN = re.compile(r"^[A-Z0-9]+-[A-Z0-9]+-[A-Z0-9]+-[A-Z0-9]+-[A-Z0-9]+$")
SKU_TEMPLATE = "BRAND-CATEGORY-SIZE-COLOR-SEQUENCE"
SKU_EXAMPLE = "NIKE-SHO-L-BLK-001"
SEQUENCE_WIDTH = 3

_FIELD_PATTERN = re.compile(r"^[A-Z0-9]+$")
_FIELD_NAMES = ("brand", "category", "size", "color", "sequence")


class SkuComponents(BaseModel):
    """The five fields of a SKU."""

    brand: str
    category: str
    size: str
    color: str
    sequence: str


def build_sku(brand: str, category: str, size: str, color: str, sequence: str) -> str:
    """Join normalised components into a SKU string.

    Raises InvalidComponentError if any field is empty or not [A-Z0-9].
    """
    values = (brand, category, size, color, sequence)
    for name, value in zip(_FIELD_NAMES, values):
        if not value:
            msg = f"SKU {name} must not be empty"
            raise InvalidComponentError(msg)
        if not _FIELD_PATTERN.match(value):
            msg = f"SKU {name} {value!r} must contain only A-Z and 0-9"
            raise InvalidComponentError(msg)
    return "-".join(values)


def is_valid_sku(sku: str) -> bool:
    """Return True if *sku* has five hyphen-joined uppercase alphanumeric groups."""
    return bool(SKU_PATTERN.match(sku or ""))


def parse_sku(sku: str) -> SkuComponents | None:
    """Split a SKU into its components, or return None if it is malformed.

    The sequence absorbs everything after the fourth hyphen.
    """
    if not is_valid_sku(sku):
        return None
    parts = sku.split("-")
    return SkuComponents(
        brand=parts[0],
        category=parts[1],
        size=parts[2],
        color=parts[3],
        sequence="-".join(parts[4:]),
    )


def format_sequence(number: int) -> str:
    """Zero-pad a sequence number to at least three digits."""
    if number < 1:
        msg = f"SKU sequence must be positive, got {number}"
        raise InvalidComponentError(msg)
    return f"{number:0{SEQUENCE_WIDTH}d}"


def sequence_value(sequence: str) -> int | None:
    """Return the numeric value of a sequence field, or None if it is not a number."""
    if not sequence.isdigit():
        return None
    return int(sequence)


def sku_prefix(brand: str, category: str) -> str:
    """Return the ``BRAND-CATEGORY-`` prefix shared by a sequence family."""
    return f"{brand}-{category}-"
