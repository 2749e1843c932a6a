# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

# backend/stockledger/routes/stock.py
"""
Stock ledger routes (product catalog + stock quantities).

Lookups that find nothing answer 404 with {"error", "code"}; malformed
input answers 400. Stock adjustments against an unknown (code, batch) key
are not an error: they answer 200 with {"success": false}.
"""
from flask import Blueprint, Response, request

from ..errors import LedgerError, NotFoundError, ValidationError
from ..services import stock_service
from ..time_utils import parse_day
from ..validation import coerce_int, enforce_rules_stock_adjust


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _as_of_arg():
    raw = request.args.get("as_of")
    if not raw:
        return None
    try:
        return parse_day(raw)
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 date")


# =============================================================================
# CATALOG CRUD
# =============================================================================

@stock_bp.get("/products")
def list_products_route():
    """List all products, newest first. ?q= switches to a cross-field search."""
    term = request.args.get("q")
    if term is not None:
        return {"items": stock_service.search_products(term)}
    return {"items": stock_service.list_products()}


@stock_bp.post("/products")
def upsert_product_route():
    payload = request.get_json(silent=True)
    try:
        product = stock_service.upsert_product(payload)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return product, 201


@stock_bp.get("/products/<product_id>")
def get_product_route(product_id: str):
    product = stock_service.get_product(product_id)
    if product is None:
        return NotFoundError("Product not found").to_dict(), 404
    return product


@stock_bp.get("/products/by-code/<code>")
def get_product_by_code_route(code: str):
    product = stock_service.get_product_by_code(code)
    if product is None:
        return NotFoundError("Product not found").to_dict(), 404
    return product


@stock_bp.put("/products/<product_id>")
@stock_bp.patch("/products/<product_id>")
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        updated = stock_service.update_product(product_id, payload)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    if updated is None:
        return NotFoundError("Product not found").to_dict(), 404
    return updated


@stock_bp.delete("/products/<product_id>")
def delete_product_route(product_id: str):
    if not stock_service.delete_product(product_id):
        return NotFoundError("Product not found").to_dict(), 404
    return {"ok": True}


# =============================================================================
# STOCK QUANTITIES
# =============================================================================

@stock_bp.post("/adjust")
def adjust_stock_route():
    """
    Increase or decrease stock for a (code, batch) key.

    Body: {"code": str, "batch": str|null, "qty": int > 0, "direction": "increase"|"decrease"}
    """
    payload = request.get_json(silent=True)
    try:
        req = enforce_rules_stock_adjust(payload)
        result = stock_service.adjust_stock_by_code_batch(
            req["code"], req["batch"], req["qty"], req["direction"]
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return result


@stock_bp.get("/level")
def stock_level_route():
    code = request.args.get("code") or ""
    return stock_service.get_stock_by_code_batch(code, request.args.get("batch"))


@stock_bp.post("/products/<product_id>/stock")
def update_stock_route(product_id: str):
    """Body: {"qty": int > 0, "type": "add"|"subtract"}"""
    payload = request.get_json(silent=True) or {}
    try:
        updated = stock_service.update_stock(product_id, payload.get("qty"), payload.get("type"))
    except LedgerError as e:
        return e.to_dict(), e.status_code
    if updated is None:
        return NotFoundError("Product not found").to_dict(), 404
    return updated


# =============================================================================
# AGGREGATES
# =============================================================================

@stock_bp.get("/stats")
def stats_route():
    try:
        return stock_service.inventory_stats(as_of=_as_of_arg())
    except LedgerError as e:
        return e.to_dict(), e.status_code


@stock_bp.get("/low-stock")
def low_stock_route():
    return {"items": stock_service.low_stock_products()}


@stock_bp.get("/out-of-stock")
def out_of_stock_route():
    return {"items": stock_service.out_of_stock_products()}


@stock_bp.get("/expiring")
def expiring_route():
    try:
        days = request.args.get("days")
        items = stock_service.expiring_products(
            days=coerce_int(days, "days") if days is not None else None,
            as_of=_as_of_arg(),
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return {"items": items}


@stock_bp.get("/expired")
def expired_route():
    try:
        items = stock_service.expired_products(as_of=_as_of_arg())
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return {"items": items}


@stock_bp.get("/categories")
def categories_route():
    return {"items": stock_service.unique_categories()}


@stock_bp.get("/by-category/<category>")
def by_category_route(category: str):
    return {"items": stock_service.products_by_category(category)}


@stock_bp.get("/by-manufacturer/<manufacturer>")
def by_manufacturer_route(manufacturer: str):
    return {"items": stock_service.products_by_manufacturer(manufacturer)}


@stock_bp.get("/by-batch/<batch>")
def by_batch_route(batch: str):
    return {"items": stock_service.products_by_batch(batch)}


@stock_bp.get("/tax-included/<kind>")
def tax_included_route(kind: str):
    try:
        return {"items": stock_service.products_with_tax_included(kind)}
    except LedgerError as e:
        return e.to_dict(), e.status_code


@stock_bp.get("/value")
def stock_value_route():
    return {"stockValue": stock_service.stock_value()}


# =============================================================================
# BULK
# =============================================================================

@stock_bp.post("/bulk")
def bulk_add_route():
    payload = request.get_json(silent=True)
    items = payload.get("items") if isinstance(payload, dict) else payload
    try:
        created = stock_service.bulk_add_products(items)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return {"items": created, "count": len(created)}, 201


@stock_bp.get("/export")
def export_route():
    return Response(stock_service.export_products(), mimetype="application/json")


@stock_bp.post("/import")
def import_route():
    """Raw JSON body as produced by GET /api/stock/export."""
    try:
        result = stock_service.import_products(request.get_data(as_text=True))
    except LedgerError as e:
        return {"success": False, **e.to_dict()}, e.status_code
    return result


@stock_bp.delete("/products")
def clear_all_route():
    if request.args.get("confirm") != "yes":
        return ValidationError("Pass ?confirm=yes to delete every product").to_dict(), 400
    return {"deleted": stock_service.clear_all_products()}
