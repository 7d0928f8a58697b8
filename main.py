"""CLI entry point for the SKU Generation and Reservation Engine."""

from __future__ import annotations

import json
import logging

import click

from config import settings
from database import init_database


def _service():
    from services.sku_service import SkuService

    return SkuService.from_config(settings)


def _require_shared_cache(action: str) -> None:
    """Refuse reservation commands when holds would die with this process."""
    if not settings.redis_url:
        raise click.ClickException(
            f"Cannot {action} without a shared cache: REDIS_URL is not set, so the "
            "reservation would vanish when this command exits"
        )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """SKU Generation and Reservation Engine."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@cli.command()
def init_db() -> None:
    """Initialise the SQLite catalog (creates tables if missing)."""
    init_database(settings.database_path)
    print(f"Database initialised at {settings.database_path}")


@cli.command()
def web() -> None:
    """Start the Flask API server."""
    from api.app import create_app

    app = create_app()
    app.run(
        host=settings.flask_host,
        port=settings.flask_port,
        debug=settings.flask_debug,
    )


@cli.command()
@click.argument("brand")
@click.argument("category")
@click.option("--size", default=None, help="Size (free text, e.g. 'Large').")
@click.option("--color", default=None, help="Color (free text, e.g. 'Navy').")
@click.option("--suffix", "custom_suffix", default=None, help="Custom sequence suffix.")
@click.option("--holder", "holder_id", default=None, help="Reserve the SKU for this holder.")
def generate(
    brand: str,
    category: str,
    size: str | None,
    color: str | None,
    custom_suffix: str | None,
    holder_id: str | None,
) -> None:
    """Generate a SKU for BRAND and CATEGORY (id, code or name)."""
    from api.exceptions import AppError

    if holder_id:
        _require_shared_cache("reserve a SKU")
    try:
        result = _service().generate(
            brand,
            category,
            size=size,
            color=color,
            custom_suffix=custom_suffix,
            holder_id=holder_id,
        )
    except AppError as exc:
        raise click.ClickException(str(exc)) from exc

    print(result.sku)
    if result.reserved:
        print(f"  reserved for {holder_id}")


@cli.command()
@click.argument("json_path", type=click.Path(exists=True, dir_okay=False))
def bulk_generate(json_path: str) -> None:
    """Generate SKUs for every product listed in a JSON file.

    The file holds a list of objects with brand, category and optional
    size, color and product_name keys.
    """
    with open(json_path, encoding="utf-8") as fh:
        items = json.load(fh)
    if not isinstance(items, list):
        raise click.ClickException("JSON file must contain a list of products")

    results = _service().bulk_generate(items)

    failed = 0
    for i, result in enumerate(results, 1):
        label = result.product_name or f"#{i}"
        if result.success:
            print(f"{label:<30} {result.sku}")
        else:
            failed += 1
            print(f"{label:<30} ERROR: {result.error}")
    print(f"\nTotal: {len(results)}, failed: {failed}")


@cli.command()
@click.argument("sku")
def validate(sku: str) -> None:
    """Check a SKU's format, uniqueness and reservation state."""
    result = _service().validate(sku)
    print(f"Format valid: {result.format_valid}")
    print(f"Unique:       {result.is_unique}")
    print(f"Reserved:     {result.is_reserved}")
    print(f"Valid:        {result.is_valid}")
    if result.existing_product:
        print(f"Used by product #{result.existing_product['id']} ({result.existing_product['name']})")


@cli.command()
@click.argument("sku")
def parse(sku: str) -> None:
    """Split a SKU into its components."""
    from utils.sku import parse_sku

    components = parse_sku(sku)
    if components is None:
        raise click.ClickException(f"Not a valid SKU: {sku}")
    for name, value in components.model_dump().items():
        print(f"{name:<10} {value}")


@cli.command()
@click.argument("brand")
@click.argument("category")
def sequence(brand: str, category: str) -> None:
    """Show the last sequence issued for BRAND and CATEGORY codes."""
    from utils.codes import normalize_code

    service = _service()
    brand_code, category_code = normalize_code(brand), normalize_code(category)
    current = service.allocator.peek_sequence(brand_code, category_code)
    if current is None:
        print(f"No live counter for {brand_code}-{category_code}")
    else:
        print(f"{brand_code}-{category_code} last issued {current}")


@cli.command()
@click.argument("sku")
@click.argument("holder_id")
@click.option("--ttl", default=None, type=int, help="Reservation lifetime in seconds.")
def reserve(sku: str, holder_id: str, ttl: int | None) -> None:
    """Reserve SKU for HOLDER_ID."""
    from api.exceptions import AppError

    _require_shared_cache("reserve a SKU")
    try:
        result = _service().reserve(sku, holder_id, ttl)
    except AppError as exc:
        raise click.ClickException(str(exc)) from exc
    print(f"Reserved {sku} for {holder_id} until {result.expires_at:%Y-%m-%d %H:%M:%S} UTC")


@cli.command()
@click.argument("sku")
@click.option("--holder", "holder_id", default=None, help="Only release if held by this holder.")
def release(sku: str, holder_id: str | None) -> None:
    """Release the reservation on SKU."""
    from api.exceptions import AppError

    _require_shared_cache("release a SKU")
    try:
        released = _service().release(sku, holder_id)
    except AppError as exc:
        raise click.ClickException(str(exc)) from exc
    print(f"Released {sku}" if released else f"No reservation held on {sku}")


if __name__ == "__main__":
    cli()
