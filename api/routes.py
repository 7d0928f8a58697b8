"""SKU API endpoints.

Thin HTTP callers of :class:`services.sku_service.SkuService`. The service
instance lives in ``current_app.extensions["sku_service"]``.
"""

from __future__ import annotations

import logging
from datetime import date

from flask import Blueprint, current_app, jsonify, request

from api.errors import error_response, handle_errors
from services.sku_service import SkuService

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")

MAX_BULK_REQUESTS = 100

_TRUE_STRINGS = frozenset({"true", "1", "yes"})
_FALSE_STRINGS = frozenset({"false", "0", "no"})


def _service() -> SkuService:
    return current_app.extensions["sku_service"]


def _missing(data: dict, *fields: str) -> str | None:
    """Return the first required field absent from *data*."""
    for field in fields:
        if data.get(field) in (None, ""):
            return field
    return None


def _optional_str(data: dict, field: str) -> str | None:
    """Read a text field, accepting JSON numbers (e.g. a shoe size of 9.5)."""
    value = data.get(field)
    if value in (None, ""):
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        msg = f"{field} must be a string or number"
        raise ValueError(msg)
    return str(value)


def _reference(data: dict, field: str) -> str | int:
    value = data[field]
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        msg = f"{field} must be an id, code or name"
        raise ValueError(msg)
    return value


def _optional_bool(data: dict, field: str, default: bool) -> bool:
    value = data.get(field)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS:
        return True
    if isinstance(value, str) and value.strip().lower() in _FALSE_STRINGS:
        return False
    msg = f"{field} must be a boolean"
    raise ValueError(msg)


def _optional_int(data: dict, field: str) -> int | None:
    value = data.get(field)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        msg = f"{field} must be an integer"
        raise ValueError(msg) from None


def _parse_date(value: str | None, name: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        msg = f"{name} must be a date in YYYY-MM-DD format"
        raise ValueError(msg) from None


# ===========================================================================
# Generation
# ===========================================================================


@api_bp.route("/sku/generate", methods=["POST"])
@handle_errors
def generate_sku() -> tuple:
    """Generate a SKU for a brand/category, reserving it when holder_id is given."""
    data = request.get_json(silent=True)
    if not data:
        return error_response("Request body must be JSON", 400)

    field = _missing(data, "brand", "category")
    if field:
        return error_response(f"Missing required field: {field}", 400)

    result = _service().generate(
        _reference(data, "brand"),
        _reference(data, "category"),
        size=_optional_str(data, "size"),
        color=_optional_str(data, "color"),
        custom_suffix=_optional_str(data, "custom_suffix"),
        holder_id=_optional_str(data, "holder_id"),
        force_sequence=_optional_int(data, "force_sequence"),
        ttl_seconds=_optional_int(data, "ttl_seconds"),
    )
    return jsonify(result.model_dump()), 201


@api_bp.route("/sku/suggest", methods=["POST"])
@handle_errors
def suggest_sku() -> tuple:
    """Generate a SKU using size/color words found in a product name."""
    data = request.get_json(silent=True)
    if not data:
        return error_response("Request body must be JSON", 400)

    field = _missing(data, "brand", "category", "product_name")
    if field:
        return error_response(f"Missing required field: {field}", 400)

    result = _service().suggest(
        _reference(data, "brand"),
        _reference(data, "category"),
        str(data["product_name"]),
        holder_id=_optional_str(data, "holder_id"),
    )
    return jsonify(result.model_dump()), 200


@api_bp.route("/sku/bulk-generate", methods=["POST"])
@handle_errors
def bulk_generate_skus() -> tuple:
    """Generate SKUs for a list of products; each item succeeds or fails alone."""
    data = request.get_json(silent=True) or {}
    items = data.get("products")
    if not isinstance(items, list) or not items:
        return error_response("products must be a non-empty list", 400)
    if len(items) > MAX_BULK_REQUESTS:
        return error_response(f"At most {MAX_BULK_REQUESTS} products per request", 400)

    # Items are validated one by one so a malformed entry only fails itself
    results = _service().bulk_generate(items)
    succeeded = sum(1 for r in results if r.success)
    return jsonify({
        "results": [r.model_dump() for r in results],
        "summary": {
            "total": len(results),
            "successful": succeeded,
            "failed": len(results) - succeeded,
        },
    }), 200


# ===========================================================================
# Validation & reference
# ===========================================================================


@api_bp.route("/sku/validate", methods=["POST"])
@handle_errors
def validate_sku() -> tuple:
    """Check a SKU's format, uniqueness and reservation state."""
    data = request.get_json(silent=True)
    if not data or not data.get("sku"):
        return error_response("Missing required field: sku", 400)

    result = _service().validate(
        data["sku"],
        exclude_product_id=_optional_int(data, "exclude_product_id"),
        check_reservation=_optional_bool(data, "check_reservation", default=True),
    )
    return jsonify(result.model_dump()), 200


@api_bp.route("/sku/reference", methods=["GET"])
@handle_errors
def sku_reference() -> tuple:
    """Return the SKU pattern plus the available brand/category/size/color codes."""
    return jsonify(_service().reference_data().model_dump()), 200


@api_bp.route("/sku/analytics", methods=["GET"])
@handle_errors
def sku_analytics() -> tuple:
    """Return SKU event totals for ?from=YYYY-MM-DD&to=YYYY-MM-DD."""
    summary = _service().analytics_summary(
        _parse_date(request.args.get("from"), "from"),
        _parse_date(request.args.get("to"), "to"),
    )
    return jsonify(summary.model_dump(mode="json")), 200


# ===========================================================================
# Reservations
# ===========================================================================


@api_bp.route("/sku/reserve", methods=["POST"])
@handle_errors
def reserve_sku() -> tuple:
    """Reserve a SKU for a holder while its product is being created."""
    data = request.get_json(silent=True)
    if not data:
        return error_response("Request body must be JSON", 400)

    field = _missing(data, "sku", "holder_id")
    if field:
        return error_response(f"Missing required field: {field}", 400)

    result = _service().reserve(
        data["sku"], str(data["holder_id"]), _optional_int(data, "ttl_seconds")
    )
    return jsonify(result.model_dump(mode="json")), 200


@api_bp.route("/sku/release", methods=["POST"])
@handle_errors
def release_sku() -> tuple:
    """Release a reservation. Idempotent."""
    data = request.get_json(silent=True)
    if not data or not data.get("sku"):
        return error_response("Missing required field: sku", 400)

    released = _service().release(data["sku"], _optional_str(data, "holder_id"))
    return jsonify({"sku": data["sku"], "released": released}), 200
