"""Size and color code normalisation for SKU fields.

Known synonyms map to fixed short codes. Anything else falls back to the
first three alphanumeric characters, uppercased, so normalisation never fails.
"""

from __future__ import annotations

import re

NO_SIZE = "OS"
NO_COLOR = "NON"

COLOR_CODES: dict[str, str] = {
    # Basic
    "black": "BLK",
    "white": "WHT",
    "red": "RED",
    "blue": "BLU",
    "green": "GRN",
    "yellow": "YEL",
    "orange": "ORG",
    "purple": "PUR",
    "pink": "PNK",
    "brown": "BRN",
    "gray": "GRY",
    "grey": "GRY",
    # Extended
    "navy": "NVY",
    "maroon": "MAR",
    "olive": "OLV",
    "lime": "LIM",
    "aqua": "AQU",
    "teal": "TEL",
    "silver": "SLV",
    "gold": "GLD",
    "beige": "BEG",
    "tan": "TAN",
    "cream": "CRM",
    "ivory": "IVY",
    # Multi-color
    "multicolor": "MUL",
    "mixed": "MIX",
    "rainbow": "RNB",
    # No color
    "default": "DEF",
    "none": "NON",
    "transparent": "TRN",
}

SIZE_CODES: dict[str, str] = {
    # Clothing
    "extra small": "XS",
    "x-small": "XS",
    "xs": "XS",
    "small": "S",
    "s": "S",
    "medium": "M",
    "m": "M",
    "large": "L",
    "l": "L",
    "extra large": "XL",
    "x-large": "XL",
    "xl": "XL",
    "2xl": "XXL",
    "xxl": "XXL",
    "xx-large": "XXL",
    "3xl": "XXXL",
    "xxxl": "XXXL",
    # US shoe sizes
    "6": "06",
    "6.5": "065",
    "7": "07",
    "7.5": "075",
    "8": "08",
    "8.5": "085",
    "9": "09",
    "9.5": "095",
    "10": "10",
    "10.5": "105",
    "11": "11",
    "11.5": "115",
    "12": "12",
    "13": "13",
    # Universal
    "one size": "OS",
    "onesize": "OS",
    "free size": "FS",
    "freesize": "FS",
    "adjustable": "ADJ",
    "default": "DEF",
    "none": "NON",
}

# Legends returned with the SKU reference data
SIZE_LEGEND: dict[str, str] = {
    "XS": "Extra Small",
    "S": "Small",
    "M": "Medium",
    "L": "Large",
    "XL": "Extra Large",
    "XXL": "Double Extra Large",
    "OS": "One Size",
}

COLOR_LEGEND: dict[str, str] = {
    "BLK": "Black",
    "WHT": "White",
    "RED": "Red",
    "BLU": "Blue",
    "GRN": "Green",
    "NVY": "Navy",
    "GRY": "Gray",
}

_NON_ALNUM = re.compile(r"[^A-Z0-9]+")
_FALLBACK_LENGTH = 3


def _fallback_code(text: str) -> str:
    """First three alphanumeric characters of *text*, uppercased."""
    return _NON_ALNUM.sub("", text.upper())[:_FALLBACK_LENGTH]


def _lookup(text: str | float | None, table: dict[str, str], absent: str) -> str:
    if text is None or not str(text).strip():
        return absent
    key = str(text).strip().lower()
    if key in table:
        return table[key]
    return _fallback_code(key) or absent


def normalize_color(text: str | float | None) -> str:
    """Map a free-text color to its short code ("NON" when absent)."""
    return _lookup(text, COLOR_CODES, NO_COLOR)


def normalize_size(text: str | float | None) -> str:
    """Map a free-text size to its short code ("OS" when absent)."""
    return _lookup(text, SIZE_CODES, NO_SIZE)


def normalize_code(text: str | int) -> str:
    """Upper-case and trim a brand or category code."""
    return str(text).strip().upper()


def detect_attributes(product_name: str) -> tuple[str | None, str | None]:
    """Find the first known size and color words in a product name.

    Returns the raw matched words (not codes), either of which may be None.
    """
    words = product_name.lower().split()
    size = next((w for w in words if w in SIZE_CODES), None)
    color = next((w for w in words if w in COLOR_CODES), None)
    return size, color
