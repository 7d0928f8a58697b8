"""SKU generation and reservation service.

Ties the formatter, code normaliser, sequence allocator, uniqueness verifier
and reservation manager together behind the operations a product-creation
workflow calls: generate a SKU (optionally reserving it), validate one,
reserve/release one, and bulk-generate.

The service never writes the catalog. Committing a product with the SKU is
the caller's job, after which it should call :meth:`SkuService.release`.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, timedelta
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from api.exceptions import (
    AppError,
    MissingCodeError,
    ReferenceNotFoundError,
    ValidationError,
)
from config import Config, settings
from services.analytics import (
    EVENT_BULK_GENERATED,
    EVENT_GENERATED,
    EVENT_RELEASED,
    EVENT_RESERVED,
    EVENT_VALIDATED,
    AnalyticsSummary,
    SkuAnalytics,
)
from services.cache import CacheUnavailableError, SharedCache, create_cache
from services.catalog import SqliteCatalog
from services.reservations import ReservationManager, ReservationResult
from services.sequence_allocator import SequenceAllocator
from services.uniqueness import UniquenessVerifier
from utils.codes import (
    COLOR_LEGEND,
    SIZE_LEGEND,
    detect_attributes,
    normalize_code,
    normalize_color,
    normalize_size,
)
from utils.sku import (
    SKU_EXAMPLE,
    SKU_TEMPLATE,
    SkuComponents,
    build_sku,
    format_sequence,
    is_valid_sku,
    parse_sku,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class GenerationResult(BaseModel):
    sku: str
    components: SkuComponents
    reserved: bool = False
    is_custom: bool = False


class BulkRequest(BaseModel):
    """One bulk item. Accepts ``brand``/``category`` as aliases for the refs."""

    brand_ref: str | int = Field(validation_alias=AliasChoices("brand_ref", "brand"))
    category_ref: str | int = Field(
        validation_alias=AliasChoices("category_ref", "category")
    )
    size: str | None = None
    color: str | None = None
    product_name: str | None = None

    @field_validator("size", "color", "product_name", mode="before")
    @classmethod
    def _numbers_as_text(cls, value: Any) -> Any:
        # Shoe sizes arrive as JSON numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class BulkResult(BaseModel):
    success: bool
    sku: str | None = None
    error: str | None = None
    components: SkuComponents | None = None
    product_name: str | None = None


class ValidationResult(BaseModel):
    is_valid: bool
    is_unique: bool
    is_reserved: bool
    format_valid: bool
    components: SkuComponents | None = None
    existing_product: dict[str, Any] | None = None


class ReferenceEntry(BaseModel):
    id: int
    name: str
    code: str


class ReferenceData(BaseModel):
    pattern: str
    example: str
    description: str
    brands: list[ReferenceEntry]
    categories: list[ReferenceEntry]
    size_codes: dict[str, str]
    color_codes: dict[str, str]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def _require_code(record: dict[str, Any] | None, kind: str, ref: str | int) -> str:
    """Return the short code of a brand/category record or raise."""
    if record is None:
        msg = f"{kind} not found: {ref}"
        raise ReferenceNotFoundError(msg)
    code = (record.get("code") or "").strip()
    if not code:
        msg = f"{kind} {record['name']!r} must have a code for SKU generation"
        raise MissingCodeError(msg)
    return normalize_code(code)


def _parse_bulk_item(item: BulkRequest | dict[str, Any]) -> BulkRequest | str:
    """Validate one raw bulk entry, returning an error message if it is malformed."""
    if isinstance(item, BulkRequest):
        return item
    if not isinstance(item, dict):
        return "Invalid product entry: expected an object"
    try:
        return BulkRequest.model_validate(item)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return f"Invalid product entry: {problems}"


class SkuService:
    """Caller-facing SKU operations."""

    def __init__(
        self,
        catalog: SqliteCatalog,
        cache: SharedCache,
        sequence_ttl: int = 86400,
        lock_ttl: int = 300,
        max_attempts: int = 10,
        analytics_ttl: int = 86400 * 30,
    ) -> None:
        self.catalog = catalog
        self.cache = cache
        self.allocator = SequenceAllocator(cache, catalog, ttl_seconds=sequence_ttl)
        self.reservations = ReservationManager(cache, default_ttl=lock_ttl)
        self.verifier = UniquenessVerifier(catalog, self.reservations, max_attempts)
        self.analytics = SkuAnalytics(cache, ttl_seconds=analytics_ttl)

    @classmethod
    def from_config(cls, config: Config = settings) -> SkuService:
        """Wire the service from application settings."""
        return cls(
            SqliteCatalog(config.database_path),
            create_cache(config.redis_url, config.redis_socket_timeout),
            sequence_ttl=config.sku_sequence_ttl,
            lock_ttl=config.sku_lock_ttl,
            max_attempts=config.sku_max_attempts,
            analytics_ttl=config.sku_analytics_ttl,
        )

    # -- generation ---------------------------------------------------------

    def generate(
        self,
        brand_ref: str | int,
        category_ref: str | int,
        size: str | None = None,
        color: str | None = None,
        custom_suffix: str | None = None,
        holder_id: str | None = None,
        force_sequence: int | None = None,
        ttl_seconds: int | None = None,
    ) -> GenerationResult:
        """Generate a unique SKU for a brand/category, optionally reserving it.

        When *holder_id* is given the returned SKU is reserved for that
        holder (``reserved=True``) unless the cache is down, in which case
        the SKU is still returned unreserved.
        """
        brand_code = _require_code(self.catalog.find_brand(brand_ref), "Brand", brand_ref)
        category_code = _require_code(
            self.catalog.find_category(category_ref), "Category", category_ref
        )
        return self._generate_for_codes(
            brand_code,
            category_code,
            size=size,
            color=color,
            custom_suffix=custom_suffix,
            holder_id=holder_id,
            force_sequence=force_sequence,
            ttl_seconds=ttl_seconds,
            event=EVENT_GENERATED,
        )

    def suggest(
        self,
        brand_ref: str | int,
        category_ref: str | int,
        product_name: str,
        holder_id: str | None = None,
    ) -> GenerationResult:
        """Generate a SKU using size and color words found in *product_name*."""
        size, color = detect_attributes(product_name)
        return self.generate(brand_ref, category_ref, size=size, color=color, holder_id=holder_id)

    def bulk_generate(
        self, requests: list[BulkRequest | dict[str, Any]]
    ) -> list[BulkResult]:
        """Generate one SKU per request; a failing request does not stop the rest.

        Raw dicts are validated per item, so a malformed entry only fails
        itself. Brand and category references are resolved once per
        distinct value.
        """
        parsed: list[BulkRequest | str] = [_parse_bulk_item(item) for item in requests]
        valid = [p for p in parsed if isinstance(p, BulkRequest)]
        brands = self.catalog.find_brands(r.brand_ref for r in valid)
        categories = self.catalog.find_categories(r.category_ref for r in valid)

        results: list[BulkResult] = []
        for item, req in zip(requests, parsed):
            if isinstance(req, str):
                name = item.get("product_name") if isinstance(item, dict) else None
                results.append(
                    BulkResult(
                        success=False,
                        error=req,
                        product_name=name if isinstance(name, str) else None,
                    )
                )
                continue
            try:
                brand_code = _require_code(
                    brands.get(str(req.brand_ref)), "Brand", req.brand_ref
                )
                category_code = _require_code(
                    categories.get(str(req.category_ref)), "Category", req.category_ref
                )
                generated = self._generate_for_codes(
                    brand_code,
                    category_code,
                    size=req.size,
                    color=req.color,
                    event=EVENT_BULK_GENERATED,
                )
            except AppError as exc:
                logger.warning(
                    "Bulk SKU generation failed for %s/%s: %s",
                    req.brand_ref, req.category_ref, exc,
                )
                results.append(
                    BulkResult(success=False, error=str(exc), product_name=req.product_name)
                )
                continue
            except Exception:
                logger.exception(
                    "Unexpected error in bulk SKU generation for %s/%s",
                    req.brand_ref, req.category_ref,
                )
                results.append(
                    BulkResult(
                        success=False,
                        error="Internal error generating SKU",
                        product_name=req.product_name,
                    )
                )
                continue
            results.append(
                BulkResult(
                    success=True,
                    sku=generated.sku,
                    components=generated.components,
                    product_name=req.product_name,
                )
            )
        return results

    def _generate_for_codes(
        self,
        brand_code: str,
        category_code: str,
        *,
        size: str | None = None,
        color: str | None = None,
        custom_suffix: str | None = None,
        holder_id: str | None = None,
        force_sequence: int | None = None,
        ttl_seconds: int | None = None,
        event: str,
    ) -> GenerationResult:
        size_code = normalize_size(size)
        color_code = normalize_color(color)

        if force_sequence is not None:
            sequence = format_sequence(force_sequence)
        elif custom_suffix:
            sequence = normalize_code(custom_suffix)
        else:
            sequence = self.allocator.next_sequence(brand_code, category_code)

        candidate = build_sku(brand_code, category_code, size_code, color_code, sequence)

        reserved = False

        def claim(sku: str) -> bool:
            nonlocal reserved
            try:
                result = self.reservations.reserve(sku, holder_id, ttl_seconds)
                if result.success or self.reservations.holder_of(sku) == holder_id:
                    reserved = True
                    return True
                return False
            except CacheUnavailableError as exc:
                logger.warning("Could not reserve SKU %s, cache unavailable: %s", sku, exc)
                return True

        sku = self.verifier.ensure_unique(
            candidate, holder_id=holder_id, claim=claim if holder_id else None
        )
        components = parse_sku(sku)

        self.analytics.record(
            event, sku, brand=brand_code, category=category_code, holder=holder_id
        )
        logger.info(
            "Generated SKU %s (brand=%s category=%s reserved=%s holder=%s)",
            sku, brand_code, category_code, reserved, holder_id,
        )
        return GenerationResult(
            sku=sku,
            components=components,
            reserved=reserved,
            is_custom=bool(custom_suffix) or force_sequence is not None,
        )

    # -- validation ---------------------------------------------------------

    def validate(
        self,
        sku: str,
        exclude_product_id: int | None = None,
        check_reservation: bool = True,
    ) -> ValidationResult:
        """Check format, catalog uniqueness and (optionally) reservation state."""
        if not is_valid_sku(sku):
            return ValidationResult(
                is_valid=False, is_unique=False, is_reserved=False, format_valid=False
            )

        existing = self.catalog.find_product_by_sku(sku, exclude_product_id)
        is_unique = existing is None

        is_reserved = False
        if check_reservation:
            try:
                is_reserved = self.reservations.is_reserved(sku)
            except CacheUnavailableError as exc:
                logger.warning("Reservation check for %s skipped, cache unavailable: %s", sku, exc)

        self.analytics.record(
            EVENT_VALIDATED, sku, unique=is_unique, reserved=is_reserved
        )
        return ValidationResult(
            is_valid=is_unique and not is_reserved,
            is_unique=is_unique,
            is_reserved=is_reserved,
            format_valid=True,
            components=parse_sku(sku),
            existing_product=(
                {"id": existing["id"], "name": existing["name"]} if existing else None
            ),
        )

    # -- reservations -------------------------------------------------------

    def reserve(
        self,
        sku: str,
        holder_id: str,
        ttl_seconds: int | None = None,
    ) -> ReservationResult:
        """Reserve *sku* for *holder_id*; raises ReservationConflictError if held."""
        if not is_valid_sku(sku):
            msg = f"Invalid SKU format: {sku!r}"
            raise ValidationError(msg)
        result = self.reservations.reserve_or_raise(sku, holder_id, ttl_seconds)
        self.analytics.record(EVENT_RESERVED, sku, holder=holder_id)
        return result

    def release(self, sku: str, holder_id: str | None = None) -> bool:
        """Release the reservation on *sku* (idempotent)."""
        removed = self.reservations.release(sku, holder_id)
        if removed:
            self.analytics.record(EVENT_RELEASED, sku, holder=holder_id)
        return removed

    # -- reference & analytics ---------------------------------------------

    def reference_data(self) -> ReferenceData:
        """Describe the SKU format and the codes available for it."""

        def entries(records: list[dict[str, Any]]) -> list[ReferenceEntry]:
            return [
                ReferenceEntry(id=r["id"], name=r["name"], code=r.get("code") or "")
                for r in records
            ]

        return ReferenceData(
            pattern=SKU_TEMPLATE,
            example=SKU_EXAMPLE,
            description="Auto-generated based on brand, category, size, color, and sequence",
            brands=entries(self.catalog.list_brands()),
            categories=entries(self.catalog.list_categories()),
            size_codes=dict(SIZE_LEGEND),
            color_codes=dict(COLOR_LEGEND),
        )

    def analytics_summary(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> AnalyticsSummary:
        """Event totals between two dates (default: the last seven days)."""
        date_to = date_to or datetime.now(UTC).date()
        date_from = date_from or date_to - timedelta(days=6)
        return self.analytics.summary(date_from, date_to)
