# Overview: Service-layer operations for the stock ledger (product catalog + stock quantities).

# backend/stockledger/services/stock_service.py

from __future__ import annotations

import json
import uuid
from datetime import date, timedelta

from flask import current_app
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from ..errors import DuplicateKeyError, ValidationError
from ..extensions import db
from ..models import Product, SEARCH_COLUMNS, normalize_batch, normalize_code
from ..money import as_number, round2
from ..time_utils import today, utcnow, parse_iso_datetime
from ..validation import coerce_positive_quantity, validate_product_fields
from .concurrency import run_atomic
"""
Stock Ledger Invariants (authoritative)

Quantity model:
- stock_quantity is a stored integer, mutated in place (not ledger-derived).
- stock_quantity >= 0 always. Decrements clamp at zero under the default
  "clamp" policy; under "reject" an over-decrement raises ValidationError
  and nothing changes.

Keying:
- (item_code, batch) is matched case-insensitively after trimming; empty and
  absent batch are the same key. The normalized pair is unique per row.
- Lookups order by updated_at DESC so that the most recently touched row
  wins should duplicate keys ever exist in an older database file.

Atomicity:
- Every stock mutation is a single UPDATE ... SET stock_quantity = <expr>
  followed by a read-back in the same transaction. The UPDATE takes the
  write lock first, so concurrent adjustments of one key serialize.
"""

DIRECTIONS = ("increase", "decrease")


def _new_product_id() -> str:
    return f"PROD-{uuid.uuid4().hex}"


def _decrement_policy() -> str:
    return current_app.config.get("STOCK_DECREMENT_POLICY", "clamp")


def _integrity_failure(exc: IntegrityError, duplicate_message: str):
    """Only a (code, batch) unique violation is a duplicate; anything else is bad input."""
    text = str(getattr(exc, "orig", exc)).lower()
    if "uq_products_code_batch" in text or ("unique" in text and "code_key" in text):
        return DuplicateKeyError(duplicate_message)
    return ValidationError(f"Product rejected by the catalog store: {getattr(exc, 'orig', exc)}")


def _derive_fields(p: Product) -> None:
    """Re-derive normalized keys and legacy aliases from canonical fields."""
    p.code_key = normalize_code(p.item_code)
    p.batch_key = normalize_batch(p.batch)
    p.product_code = p.item_code
    p.product_name = p.item_name
    p.selling_price = p.selling_price_tab


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        setattr(p, k, v)
    _derive_fields(p)


def _ensure_key_available(p: Product) -> None:
    # p may be pending; an autoflush here would hit the unique constraint first
    with db.session.no_autoflush:
        clash = (
            db.session.query(Product.id)
            .filter(
                Product.code_key == p.code_key,
                Product.batch_key == p.batch_key,
                Product.id != p.id,
            )
            .first()
        )
    if clash:
        raise DuplicateKeyError(
            f"A product with item code {p.item_code!r} and batch {p.batch or ''!r} already exists",
            details={"existingId": clash.id},
        )


def _fill_create_defaults(p: Product, patch: dict) -> None:
    for col in Product.__table__.columns:
        if getattr(p, col.key) is None and col.default is not None and not callable(col.default.arg):
            setattr(p, col.key, col.default.arg)
    if "min_stock_level" not in patch:
        p.min_stock_level = p.rol or 0


# =============================================================================
# CRUD
# =============================================================================

def list_products() -> list[dict]:
    products = (
        db.session.query(Product)
        .order_by(Product.created_at.desc(), Product.id.asc())
        .all()
    )
    return [p.to_dict() for p in products]


def get_product(product_id: str) -> dict | None:
    p = db.session.get(Product, product_id)
    return p.to_dict() if p else None


def get_product_by_code(item_code: str) -> dict | None:
    p = (
        db.session.query(Product)
        .filter(Product.code_key == normalize_code(item_code))
        .order_by(Product.updated_at.desc())
        .first()
    )
    return p.to_dict() if p else None


def upsert_product(fields: dict) -> dict:
    """
    Create a product, or replace the product with the same id.

    Aliases (productCode, productName, sellingPrice) are always re-derived;
    caller-supplied values for them are ignored.

    Raises:
        ValidationError: malformed fields or missing itemCode / itemName
        DuplicateKeyError: (itemCode, batch) already used by another product
    """
    patch = validate_product_fields(fields, partial=False)
    product_id = str(fields.get("id") or "").strip() or None

    def _op():
        now = utcnow()
        p = db.session.get(Product, product_id) if product_id else None
        if p is None:
            p = Product(id=product_id or _new_product_id(), created_at=now)
            apply_product_patch(p, patch)
            _fill_create_defaults(p, patch)
            db.session.add(p)
        else:
            apply_product_patch(p, patch)
        p.updated_at = now

        _ensure_key_available(p)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise _integrity_failure(exc, "Product key already exists") from exc
        return p.to_dict()

    return run_atomic(_op)


def update_product(product_id: str, partial: dict) -> dict | None:
    """
    Merge a partial update into a product.

    Returns:
        Updated product dict, or None if not found (batch loops keep going
        past a single missing product).
    """
    patch = validate_product_fields(partial, partial=True)

    def _op():
        p = db.session.get(Product, product_id)
        if p is None:
            return None

        apply_product_patch(p, patch)
        p.updated_at = utcnow()
        _ensure_key_available(p)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise _integrity_failure(exc, "Product key already exists") from exc
        return p.to_dict()

    return run_atomic(_op)


def delete_product(product_id: str) -> bool:
    """Hard delete; there is no soft-delete for catalog rows."""
    def _op():
        deleted = db.session.query(Product).filter(Product.id == product_id).delete()
        db.session.commit()
        return deleted > 0

    return run_atomic(_op)


# =============================================================================
# STOCK MUTATIONS
# =============================================================================

def _new_stock_expr(qty: int, direction: str, policy: str):
    if direction == "increase":
        return Product.stock_quantity + qty
    if policy == "reject":
        return Product.stock_quantity - qty
    return case(
        (Product.stock_quantity > qty, Product.stock_quantity - qty),
        else_=0,
    )


def _apply_stock_delta(target_id, qty: int, direction: str):
    """
    UPDATE the target row in one statement. Returns the rowcount.

    target_id is either a literal id or a scalar subquery resolving the key.
    """
    policy = _decrement_policy()
    stmt = (
        update(Product)
        .where(Product.id == target_id)
        .values(
            stock_quantity=_new_stock_expr(qty, direction, policy),
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if direction == "decrease" and policy == "reject":
        stmt = stmt.where(Product.stock_quantity >= qty)
    return db.session.execute(stmt).rowcount


def _key_target(code: str, batch):
    # Aliased so the subquery is not correlated to the UPDATE's own table
    p2 = aliased(Product)
    return (
        select(p2.id)
        .where(p2.code_key == normalize_code(code), p2.batch_key == normalize_batch(batch))
        .order_by(p2.updated_at.desc(), p2.id.desc())
        .limit(1)
        .scalar_subquery()
    )


def _read_back_by_key(code: str, batch):
    return (
        db.session.query(Product.id, Product.item_name, Product.stock_quantity)
        .filter(
            Product.code_key == normalize_code(code),
            Product.batch_key == normalize_batch(batch),
        )
        .order_by(Product.updated_at.desc(), Product.id.desc())
        .first()
    )


def adjust_stock_by_code_batch(code: str, batch, qty, direction: str) -> dict:
    """
    Atomically increase or decrease stock for the (code, batch) key.

    Returns:
        {"success": True, "newStock": n, "itemName": name, "productId": id}
        {"success": False, "newStock": 0, "itemName": ""} when no row matches
        (nothing is mutated).

    Raises:
        ValidationError: qty not a positive integer, unknown direction, or
            insufficient stock under the "reject" decrement policy
    """
    if direction not in DIRECTIONS:
        raise ValidationError("direction must be 'increase' or 'decrease'")
    qty = coerce_positive_quantity(qty, "qty")
    code = (code or "").strip()

    def _op():
        changed = _apply_stock_delta(_key_target(code, batch), qty, direction)
        if not changed:
            row = _read_back_by_key(code, batch)
            db.session.rollback()
            if row is not None:
                raise ValidationError(
                    "insufficient stock",
                    details={"itemName": row.item_name, "available": row.stock_quantity, "requested": qty},
                )
            return {"success": False, "newStock": 0, "itemName": ""}

        row = _read_back_by_key(code, batch)
        db.session.commit()
        return {
            "success": True,
            "newStock": row.stock_quantity,
            "itemName": row.item_name,
            "productId": row.id,
        }

    return run_atomic(_op)


def update_stock(product_id: str, qty, kind: str) -> dict | None:
    """
    Add to / subtract from one product by id. Subtraction follows the same
    decrement policy as adjust_stock_by_code_batch.

    Returns:
        Updated product dict, or None if not found
    """
    if kind not in ("add", "subtract"):
        raise ValidationError("type must be 'add' or 'subtract'")
    qty = coerce_positive_quantity(qty, "qty")
    direction = "increase" if kind == "add" else "decrease"

    def _op():
        changed = _apply_stock_delta(product_id, qty, direction)
        if not changed:
            p = db.session.get(Product, product_id)
            db.session.rollback()
            if p is not None:
                raise ValidationError("insufficient stock")
            return None
        db.session.commit()
        p = db.session.get(Product, product_id)
        return p.to_dict()

    return run_atomic(_op)


def get_stock_by_code_batch(code: str, batch) -> dict:
    row = _read_back_by_key((code or "").strip(), batch)
    if row is None:
        return {"id": "", "stock": 0}
    return {"id": row.id, "stock": row.stock_quantity}


# =============================================================================
# QUERIES
# =============================================================================

def _as_dicts(query) -> list[dict]:
    return [p.to_dict() for p in query.all()]


def search_products(term: str) -> list[dict]:
    """Case-insensitive substring match across the searchable text columns."""
    needle = (term or "").strip().lower()
    q = db.session.query(Product)
    if needle:
        q = q.filter(or_(*[
            func.lower(func.coalesce(col, "")).contains(needle, autoescape=True)
            for col in SEARCH_COLUMNS
        ]))
    return _as_dicts(q.order_by(func.lower(Product.item_name), Product.id))


def low_stock_products() -> list[dict]:
    return _as_dicts(
        db.session.query(Product)
        .filter(Product.stock_quantity > 0, Product.stock_quantity <= Product.rol)
        .order_by(func.lower(Product.item_name))
    )


def out_of_stock_products() -> list[dict]:
    return _as_dicts(
        db.session.query(Product)
        .filter(Product.stock_quantity == 0)
        .order_by(func.lower(Product.item_name))
    )


def _expiring_query(days: int, as_of: date):
    horizon = as_of + timedelta(days=days)
    return db.session.query(Product).filter(
        Product.has_expiry_date.is_(True),
        Product.expiry_date.isnot(None),
        Product.expiry_date >= as_of,
        Product.expiry_date <= horizon,
    )


def _expired_query(as_of: date):
    return db.session.query(Product).filter(
        Product.has_expiry_date.is_(True),
        Product.expiry_date.isnot(None),
        Product.expiry_date < as_of,
    )


def expiring_products(days: int | None = None, as_of: date | None = None) -> list[dict]:
    """Products whose expiry date falls within [as_of, as_of + days] (inclusive)."""
    if days is None:
        days = current_app.config.get("EXPIRY_WARNING_DAYS", 30)
    if days < 0:
        raise ValidationError("days must be >= 0")
    as_of = as_of or today()
    return _as_dicts(_expiring_query(days, as_of).order_by(Product.expiry_date, Product.id))


def expired_products(as_of: date | None = None) -> list[dict]:
    as_of = as_of or today()
    return _as_dicts(_expired_query(as_of).order_by(Product.expiry_date, Product.id))


def products_by_category(category: str) -> list[dict]:
    return _as_dicts(
        db.session.query(Product).filter(func.lower(Product.category) == (category or "").strip().lower())
    )


def products_by_manufacturer(manufacturer: str) -> list[dict]:
    return _as_dicts(
        db.session.query(Product).filter(func.lower(Product.manufacturer) == (manufacturer or "").strip().lower())
    )


def products_by_batch(batch: str) -> list[dict]:
    return _as_dicts(db.session.query(Product).filter(Product.batch_key == normalize_batch(batch)))


def products_with_tax_included(kind: str) -> list[dict]:
    if kind == "purchase":
        column = Product.pr_tax_included
    elif kind == "selling":
        column = Product.sl_tax_included
    else:
        raise ValidationError("kind must be 'purchase' or 'selling'")
    return _as_dicts(db.session.query(Product).filter(column.is_(True)))


def unique_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.category.isnot(None), Product.category != "")
        .distinct()
        .all()
    )
    return sorted({r.category for r in rows}, key=str.lower)


def stock_value() -> float:
    """Cost value of stock on hand: SUM(stock_quantity * purchase_price)."""
    total = db.session.query(
        func.coalesce(func.sum(Product.stock_quantity * Product.purchase_price), 0)
    ).scalar()
    return as_number(round2(total))


def inventory_stats(as_of: date | None = None) -> dict:
    as_of = as_of or today()
    totals = db.session.query(
        func.count(Product.id).label("products"),
        func.coalesce(func.sum(Product.stock_quantity), 0).label("quantity"),
        func.coalesce(func.sum(Product.stock_quantity * Product.selling_price_tab), 0).label("stock_value"),
        func.coalesce(func.sum(Product.stock_quantity * Product.purchase_price), 0).label("cost_value"),
        func.coalesce(func.sum(Product.stock_quantity * Product.mrp), 0).label("mrp_value"),
    ).one()

    low_stock = (
        db.session.query(func.count(Product.id))
        .filter(Product.stock_quantity > 0, Product.stock_quantity <= Product.rol)
        .scalar()
    )
    out_of_stock = db.session.query(func.count(Product.id)).filter(Product.stock_quantity == 0).scalar()
    expiring = _expiring_query(current_app.config.get("EXPIRY_WARNING_DAYS", 30), as_of).count()
    expired = _expired_query(as_of).count()

    return {
        "totalProducts": int(totals.products or 0),
        "totalQuantity": int(totals.quantity or 0),
        "totalStockValue": as_number(round2(totals.stock_value)),
        "totalCostValue": as_number(round2(totals.cost_value)),
        "totalMRPValue": as_number(round2(totals.mrp_value)),
        "lowStockCount": int(low_stock or 0),
        "outOfStockCount": int(out_of_stock or 0),
        "expiredCount": int(expired or 0),
        "expiringCount": int(expiring or 0),
        "categoriesCount": len(unique_categories()),
    }


# =============================================================================
# BULK OPERATIONS
# =============================================================================

def _build_product(fields: dict, *, now, keep_identity: bool) -> Product:
    patch = validate_product_fields(fields, partial=False)
    product_id = str(fields.get("id") or "").strip() if keep_identity else ""
    p = Product(id=product_id or _new_product_id())
    apply_product_patch(p, patch)
    _fill_create_defaults(p, patch)

    created = updated = None
    if keep_identity:
        created = parse_iso_datetime(fields.get("createdAt")) if isinstance(fields.get("createdAt"), str) else None
        updated = parse_iso_datetime(fields.get("updatedAt")) if isinstance(fields.get("updatedAt"), str) else None
    p.created_at = created or now
    p.updated_at = updated or now
    return p


def _validate_all(items: list, *, now, keep_identity: bool) -> list[Product]:
    built = []
    for i, fields in enumerate(items):
        if not isinstance(fields, dict):
            raise ValidationError(f"row {i}: expected an object")
        try:
            built.append(_build_product(fields, now=now, keep_identity=keep_identity))
        except ValueError as e:
            raise ValidationError(f"row {i}: {e}") from e
    return built


def bulk_add_products(items: list) -> list[dict]:
    """
    Insert many new products in one transaction (spreadsheet import).

    All-or-nothing: any invalid row or key collision rejects the whole batch.
    """
    if not isinstance(items, list):
        raise ValidationError("Expected a list of products")

    def _op():
        products = _validate_all(items, now=utcnow(), keep_identity=False)
        db.session.add_all(products)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise _integrity_failure(exc, "Bulk add contains an (itemCode, batch) key that already exists") from exc
        return [p.to_dict() for p in products]

    return run_atomic(_op)


def export_products() -> str:
    """JSON backup of the whole catalog (newest first)."""
    return json.dumps(list_products(), indent=2, ensure_ascii=False)


def import_products(json_text: str) -> dict:
    """
    Restore products from an export; rows are replaced by id.

    Parsing is structural only: a non-JSON payload, a non-list, a non-object
    row or a row missing itemCode/itemName fails the whole import and nothing
    is applied.
    """
    try:
        payload = json.loads(json_text)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Import payload is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise ValidationError("Import payload must be a JSON array of products")

    def _op():
        products = _validate_all(payload, now=utcnow(), keep_identity=True)
        ids = [p.id for p in products]
        if len(set(ids)) != len(ids):
            raise ValidationError("Import payload contains duplicate ids")

        # INSERT OR REPLACE: drop the rows being replaced first, flush, then insert
        if ids:
            db.session.query(Product).filter(Product.id.in_(ids)).delete(synchronize_session=False)
            db.session.flush()
            db.session.expunge_all()
        db.session.add_all(products)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ValidationError("Import payload collides with an existing (itemCode, batch) key") from exc
        return {"success": True, "imported": len(products)}

    return run_atomic(_op)


def clear_all_products() -> int:
    def _op():
        deleted = db.session.query(Product).delete()
        db.session.commit()
        return deleted

    return run_atomic(_op)
