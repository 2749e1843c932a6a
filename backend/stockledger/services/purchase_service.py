# Overview: Service-layer operations for purchase invoices and supplier returns.

# backend/stockledger/services/purchase_service.py

from __future__ import annotations

import uuid
from collections import OrderedDict

from flask import current_app
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import DuplicateKeyError, LedgerError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    PurchaseInvoice,
    PurchaseInvoiceLine,
    PurchaseReturn,
    PurchaseReturnLine,
    line_key,
    normalize_batch,
    normalize_code,
)
from ..money import ZERO, as_number, percent_of, round2, to_decimal
from ..time_utils import parse_day, today, utcnow
from ..validation import coerce_int, coerce_number, coerce_positive_quantity
from . import stock_service
from .concurrency import run_atomic
"""
Purchase Reconciliation Invariants (authoritative)

Documents:
- A purchase invoice is an immutable snapshot (header, party, lines, totals).
- Returns reference the invoice by invoice_no. Any number of returns may be
  recorded against one invoice.

Remaining quantity:
- Per (productName, batch) key: remaining = original qty - SUM(returned qty)
  across all returns of the invoice. The remaining view is derived on read
  and never stored.

State machine:
- ACTIVE (no returns) -> PARTIALLY_RETURNED -> FULLY_RETURNED (terminal).

Refund arithmetic (per returned line, from the invoice's stored line):
- gross = qty * rate
- taxable = gross * (1 - dis / 100)
- cgst_amt = taxable * cgst / 100, sgst_amt = taxable * sgst / 100
- refund = taxable + cgst_amt + sgst_amt

Cross-store saga:
- Step 1 commits the return (purchase store), stock_sync_status = PENDING.
- Step 2 decreases stock per returned line (catalog store, one commit each)
  and marks each line stock_applied.
- The return ends APPLIED, or FAILED with stock_sync_error. FAILED and
  stale PENDING returns are listed by pending_stock_reconciliations() and
  re-driven by retry_stock_sync(), which only touches lines not yet applied.

Concurrency:
- Recording a return starts by stamping purchase_invoices.last_return_at, so
  returns against one invoice take the store write lock before reading the
  remaining quantities and numbering the return.
"""

STATE_ACTIVE = "ACTIVE"
STATE_PARTIALLY_RETURNED = "PARTIALLY_RETURNED"
STATE_FULLY_RETURNED = "FULLY_RETURNED"

SYNC_PENDING = "PENDING"
SYNC_APPLIED = "APPLIED"
SYNC_FAILED = "FAILED"

RETURN_CAP_POLICIES = ("reject", "clamp", "warn")


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def product_key_label(product_name, batch) -> str:
    """Display form of the (productName, batch) key, as used by selection UIs."""
    return f"{product_name or ''}_{batch or ''}"


# =============================================================================
# INVOICES
# =============================================================================

def _parse_line(raw, position: int) -> PurchaseInvoiceLine:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{position}] must be an object")

    product_name = str(raw.get("productName") or "").strip()
    if not product_name:
        raise ValidationError(f"items[{position}].productName is required")

    def num(field):
        return coerce_number(raw.get(field), f"items[{position}].{field}")

    def optional_num(field):
        value = raw.get(field)
        return None if value is None else num(field)

    qty = coerce_int(raw.get("qty", 0), f"items[{position}].qty")
    free = coerce_int(raw.get("free") or 0, f"items[{position}].free")
    if qty < 0 or free < 0:
        raise ValidationError(f"items[{position}]: qty and free must be >= 0")

    line = PurchaseInvoiceLine(
        position=position,
        sl_no=coerce_int(raw["slNo"], f"items[{position}].slNo") if raw.get("slNo") is not None else position + 1,
        item_code=(str(raw.get("itemCode")).strip() or None) if raw.get("itemCode") is not None else None,
        product_name=product_name,
        mfr=raw.get("mfr"),
        pack=optional_num("pack"),
        batch=(str(raw.get("batch")).strip() if raw.get("batch") is not None else None),
        exp=(str(raw.get("exp")) if raw.get("exp") is not None else None),
        hsn=(str(raw.get("hsn")) if raw.get("hsn") is not None else None),
        qty=qty,
        free=free,
        rate=num("rate"),
        dis=num("dis"),
        cgst=num("cgst"),
        sgst=num("sgst"),
        mrp=num("mrp"),
        cgst_value=optional_num("cgstValue"),
        sgst_value=optional_num("sgstValue"),
        value=optional_num("value"),
    )
    if line.rate < 0 or not (0 <= line.dis <= 100):
        raise ValidationError(f"items[{position}]: rate must be >= 0 and dis between 0 and 100")
    return line


def _line_amounts(qty, rate, dis, cgst, sgst) -> dict:
    gross = to_decimal(qty) * to_decimal(rate)
    taxable = gross * (1 - to_decimal(dis) / 100)
    cgst_amt = percent_of(taxable, cgst)
    sgst_amt = percent_of(taxable, sgst)
    return {
        "taxable": taxable,
        "cgst": cgst_amt,
        "sgst": sgst_amt,
        "amount": taxable + cgst_amt + sgst_amt,
    }


def _verify_totals(lines: list[PurchaseInvoiceLine], totals: dict) -> None:
    """Compare caller totals against a recomputation from the lines."""
    tolerance = to_decimal(current_app.config.get("PURCHASE_TOTALS_TOLERANCE", 0.05))
    sums = {"taxable": ZERO, "cgst": ZERO, "sgst": ZERO, "amount": ZERO}
    for line in lines:
        for k, v in _line_amounts(line.qty, line.rate, line.dis, line.cgst, line.sgst).items():
            sums[k] += v

    expected = {
        "cgst": sums["cgst"],
        "sgst": sums["sgst"],
        "totalGST": sums["cgst"] + sums["sgst"],
        "total": sums["amount"],
        "grandTotal": sums["amount"],
    }
    mismatches = {}
    for field, value in expected.items():
        if totals.get(field) is None:
            continue
        try:
            supplied = to_decimal(totals[field], field)
        except ValueError as exc:
            raise ValidationError(f"totals.{field}: {exc}") from exc
        if abs(supplied - value) > tolerance:
            mismatches[field] = {"supplied": as_number(round2(supplied)), "computed": as_number(round2(value))}

    if mismatches:
        raise ValidationError("Invoice totals do not match line items", details=mismatches)


def create_purchase_invoice(
    invoice_no: str,
    header: dict | None = None,
    party: dict | None = None,
    items: list | None = None,
    totals: dict | None = None,
) -> dict:
    """
    Store a purchase invoice snapshot.

    Totals are stored as supplied; with PURCHASE_TOTALS_POLICY = "verify"
    they are first compared against a recomputation from the lines.

    Returns:
        {"id": <invoice id>, "invoiceNo": ...}

    Raises:
        ValidationError: malformed payload
        DuplicateKeyError: invoice_no already recorded
    """
    invoice_no = str(invoice_no or "").strip()
    if not invoice_no:
        raise ValidationError("invoiceNo is required")
    header = header or {}
    party = party or {}
    totals = totals or {}
    if not isinstance(header, dict) or not isinstance(party, dict) or not isinstance(totals, dict):
        raise ValidationError("header, party and totals must be objects")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    lines = [_parse_line(raw, i) for i, raw in enumerate(items)]

    if current_app.config.get("PURCHASE_TOTALS_POLICY", "trust") == "verify":
        _verify_totals(lines, totals)

    invoice_date = None
    if header.get("invoiceDate"):
        try:
            invoice_date = parse_day(header["invoiceDate"])
        except ValueError as exc:
            raise ValidationError("header.invoiceDate must be an ISO-8601 date") from exc

    def _op():
        exists = db.session.query(PurchaseInvoice.id).filter_by(invoice_no=invoice_no).first()
        if exists:
            raise DuplicateKeyError(f"Purchase invoice {invoice_no} already exists")

        invoice = PurchaseInvoice(
            id=_new_id("PINV"),
            invoice_no=invoice_no,
            invoice_date=invoice_date,
            party_name=str(party.get("name") or "").strip(),
            header=dict(header),
            party=dict(party),
            totals=dict(totals),
            created_at=utcnow(),
        )
        invoice.lines = lines
        db.session.add(invoice)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise DuplicateKeyError(f"Purchase invoice {invoice_no} already exists") from exc
        return {"id": invoice.id, "invoiceNo": invoice.invoice_no}

    return run_atomic(_op)


def _find_invoice(invoice_ref) -> PurchaseInvoice | None:
    ref = str(invoice_ref or "").strip()
    if not ref:
        return None
    invoice = db.session.query(PurchaseInvoice).filter_by(invoice_no=ref).first()
    if invoice is None:
        invoice = db.session.get(PurchaseInvoice, ref)
    return invoice


def _require_invoice(invoice_ref) -> PurchaseInvoice:
    invoice = _find_invoice(invoice_ref)
    if invoice is None:
        raise NotFoundError(f"Purchase invoice {invoice_ref} not found")
    return invoice


def list_purchase_invoices() -> list[dict]:
    invoices = (
        db.session.query(PurchaseInvoice)
        .order_by(PurchaseInvoice.created_at.desc(), PurchaseInvoice.id)
        .all()
    )
    return [inv.to_dict() for inv in invoices]


def get_purchase_invoice(invoice_ref) -> dict | None:
    invoice = _find_invoice(invoice_ref)
    return invoice.to_dict() if invoice else None


def search_purchase_invoices(query: str) -> list[dict]:
    """Match invoice number or party name, case-insensitively."""
    needle = (query or "").strip().lower()
    q = db.session.query(PurchaseInvoice)
    if needle:
        q = q.filter(or_(
            func.lower(PurchaseInvoice.invoice_no).contains(needle, autoescape=True),
            func.lower(PurchaseInvoice.party_name).contains(needle, autoescape=True),
        ))
    return [inv.to_dict() for inv in q.order_by(PurchaseInvoice.created_at.desc()).all()]


def purchase_invoices_for_product(code: str, batch=None) -> list[dict]:
    """Invoices with a line for the product (item code or product name), optionally one batch."""
    needle = normalize_code(code)
    if not needle:
        return []
    q = db.session.query(PurchaseInvoiceLine.invoice_id).filter(or_(
        func.lower(func.trim(PurchaseInvoiceLine.item_code)) == needle,
        func.lower(func.trim(PurchaseInvoiceLine.product_name)) == needle,
    ))
    if batch is not None:
        q = q.filter(func.lower(func.trim(func.coalesce(PurchaseInvoiceLine.batch, ""))) == normalize_batch(batch))
    ids = {row.invoice_id for row in q.all()}
    if not ids:
        return []
    invoices = (
        db.session.query(PurchaseInvoice)
        .filter(PurchaseInvoice.id.in_(ids))
        .order_by(PurchaseInvoice.created_at.desc())
        .all()
    )
    return [inv.to_dict() for inv in invoices]


def delete_purchase_invoice(invoice_ref) -> bool:
    """Administrative delete; removes the invoice and every return recorded against it."""
    def _op():
        invoice = _find_invoice(invoice_ref)
        if invoice is None:
            return False
        for ret in db.session.query(PurchaseReturn).filter_by(original_invoice_no=invoice.invoice_no).all():
            db.session.delete(ret)
        db.session.delete(invoice)
        db.session.commit()
        return True

    return run_atomic(_op)


# =============================================================================
# REMAINING VIEW
# =============================================================================

def _returns_for(invoice_no: str) -> list[PurchaseReturn]:
    return (
        db.session.query(PurchaseReturn)
        .filter_by(original_invoice_no=invoice_no)
        .order_by(PurchaseReturn.created_at, PurchaseReturn.return_no)
        .all()
    )


def _returned_by_key(returns: list[PurchaseReturn]) -> dict:
    returned: dict = {}
    for ret in returns:
        for rl in ret.lines:
            returned[rl.key] = returned.get(rl.key, 0) + rl.qty
    return returned


def _allocate_returned(invoice: PurchaseInvoice, returned: dict) -> list[tuple[PurchaseInvoiceLine, int]]:
    """
    Spread the returned quantity of each key over the invoice lines carrying
    that key, in line order. Returns (line, returned_qty) pairs.
    """
    left = dict(returned)
    out = []
    for line in invoice.lines:
        take = min(line.qty, left.get(line.key, 0))
        left[line.key] = left.get(line.key, 0) - take
        out.append((line, take))

    # Over-returns (warn policy) land on the last line of the key
    for key, extra in left.items():
        if extra <= 0:
            continue
        for i in range(len(out) - 1, -1, -1):
            if out[i][0].key == key:
                out[i] = (out[i][0], out[i][1] + extra)
                break
    return out


def _state(allocated: list[tuple[PurchaseInvoiceLine, int]], returns: list) -> str:
    if not returns:
        return STATE_ACTIVE
    if all(line.qty - qty <= 0 for line, qty in allocated):
        return STATE_FULLY_RETURNED
    return STATE_PARTIALLY_RETURNED


def _build_view(invoice: PurchaseInvoice, returns: list[PurchaseReturn]) -> dict:
    allocated = _allocate_returned(invoice, _returned_by_key(returns))

    active_lines = []
    sums = {"taxable": ZERO, "cgst": ZERO, "sgst": ZERO, "amount": ZERO}
    total_qty = 0
    total_free = 0

    for line, returned_qty in allocated:
        remaining = line.qty - returned_qty
        if remaining <= 0:
            continue
        amounts = _line_amounts(remaining, line.rate, line.dis, line.cgst, line.sgst)
        for k in sums:
            sums[k] += amounts[k]
        total_qty += remaining
        total_free += line.free or 0

        active = line.to_dict()
        active.update({
            "productKey": product_key_label(line.product_name, line.batch),
            "returnedQty": returned_qty,
            "remainingQty": remaining,
            "taxable": as_number(round2(amounts["taxable"])),
            "amount": as_number(round2(amounts["amount"])),
        })
        active_lines.append(active)

    total_refunded = sum((to_decimal(r.total_return_amount) for r in returns), ZERO)

    return {
        "invoiceNo": invoice.invoice_no,
        "activeLines": active_lines,
        "recalculatedTotals": {
            "totalQty": total_qty,
            "totalFree": total_free,
            "taxable": as_number(round2(sums["taxable"])),
            "cgst": as_number(round2(sums["cgst"])),
            "sgst": as_number(round2(sums["sgst"])),
            "totalGST": as_number(round2(sums["cgst"] + sums["sgst"])),
            "grandTotal": as_number(round2(sums["amount"])),
        },
        "totalRefunded": as_number(round2(total_refunded)),
        "state": _state(allocated, returns),
        "returns": [r.to_dict() for r in returns],
    }


def materialize_remaining_view(invoice_ref) -> dict:
    """
    What is left of an invoice after all returns recorded so far.

    Read-only: calling it twice with no intervening writes yields identical
    output.

    Raises:
        NotFoundError: unknown invoice
    """
    invoice = _require_invoice(invoice_ref)
    return _build_view(invoice, _returns_for(invoice.invoice_no))


def invoice_state(invoice_ref) -> str:
    return materialize_remaining_view(invoice_ref)["state"]


# =============================================================================
# RETURNS
# =============================================================================

def _resolve_selection(invoice: PurchaseInvoice, selected) -> "OrderedDict[tuple, dict]":
    """
    Map each selection entry to an invoice key and sum quantities per key.

    An entry names its line by productKey (the "<productName>_<batch>" label
    of the remaining view) or by productName + batch.
    """
    if not isinstance(selected, list) or not selected:
        raise ValidationError("Select at least one item to return")

    by_label = {}
    by_key = {}
    for line in invoice.lines:
        by_label.setdefault(product_key_label(line.product_name, line.batch).strip().lower(), line)
        by_key.setdefault(line.key, line)

    picked: "OrderedDict[tuple, dict]" = OrderedDict()
    for i, entry in enumerate(selected):
        if not isinstance(entry, dict):
            raise ValidationError(f"selected[{i}] must be an object")
        qty = coerce_positive_quantity(entry.get("qty"), f"selected[{i}].qty")

        line = None
        if entry.get("productKey"):
            line = by_label.get(str(entry["productKey"]).strip().lower())
        elif entry.get("productName"):
            line = by_key.get(line_key(entry.get("productName"), entry.get("batch")))
        else:
            raise ValidationError(f"selected[{i}] needs productKey or productName")

        if line is None:
            raise NotFoundError(
                f"Invoice {invoice.invoice_no} has no line for "
                f"{entry.get('productKey') or product_key_label(entry.get('productName'), entry.get('batch'))}"
            )
        slot = picked.setdefault(line.key, {"line": line, "qty": 0})
        slot["qty"] += qty
    return picked


def _apply_cap_policy(invoice_no: str, picked, remaining_by_key: dict) -> None:
    policy = current_app.config.get("RETURN_CAP_POLICY", "reject")
    if policy not in RETURN_CAP_POLICIES:
        policy = "reject"

    for key in list(picked):
        slot = picked[key]
        remaining = max(remaining_by_key.get(key, 0), 0)
        if slot["qty"] <= remaining:
            continue

        name = slot["line"].product_name
        if policy == "reject":
            raise ValidationError(
                f"Return quantity for {name} exceeds remaining quantity",
                details={"productName": name, "requested": slot["qty"], "remaining": remaining},
            )
        if policy == "clamp":
            if remaining == 0:
                del picked[key]
            else:
                slot["qty"] = remaining
        else:
            current_app.logger.warning(
                "Over-return on purchase invoice %s: %s requested=%s remaining=%s",
                invoice_no, name, slot["qty"], remaining,
            )

    if not picked:
        raise ValidationError("Nothing left to return on the selected lines")


def _next_return_no(invoice_no: str) -> str:
    count = (
        db.session.query(func.count(PurchaseReturn.id))
        .filter_by(original_invoice_no=invoice_no)
        .scalar()
    )
    n = (count or 0) + 1
    while db.session.query(PurchaseReturn.id).filter_by(return_no=f"RET-{invoice_no}-{n}").first():
        n += 1
    return f"RET-{invoice_no}-{n}"


def _record_return(invoice_ref, selected, reason: str, refund_method: str, return_date) -> str:
    now = utcnow()
    ref = str(invoice_ref or "").strip()
    # Stamp the invoice first: remaining quantities, the cap check and the
    # return number are then read under the purchases store write lock
    touched = db.session.execute(
        update(PurchaseInvoice)
        .where(or_(PurchaseInvoice.invoice_no == ref, PurchaseInvoice.id == ref))
        .values(last_return_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    if not touched:
        raise NotFoundError(f"Purchase invoice {invoice_ref} not found")

    invoice = _require_invoice(ref)
    returns = _returns_for(invoice.invoice_no)

    allocated = _allocate_returned(invoice, _returned_by_key(returns))
    if _state(allocated, returns) == STATE_FULLY_RETURNED:
        raise ValidationError(f"Purchase invoice {invoice.invoice_no} is fully returned")

    remaining_by_key: dict = {}
    for line, returned_qty in allocated:
        remaining_by_key[line.key] = remaining_by_key.get(line.key, 0) + line.qty - returned_qty

    picked = _resolve_selection(invoice, selected)
    _apply_cap_policy(invoice.invoice_no, picked, remaining_by_key)

    ret = PurchaseReturn(
        id=_new_id("PRET"),
        return_no=_next_return_no(invoice.invoice_no),
        original_invoice_no=invoice.invoice_no,
        return_date=return_date,
        reason=reason,
        refund_method=refund_method,
        status="Completed",
        stock_sync_status=SYNC_PENDING,
        created_at=now,
    )

    total = ZERO
    for slot in picked.values():
        line, qty = slot["line"], slot["qty"]
        refund = round2(_line_amounts(qty, line.rate, line.dis, line.cgst, line.sgst)["amount"])
        total += refund
        ret.lines.append(PurchaseReturnLine(
            item_code=line.item_code,
            product_name=line.product_name,
            batch=line.batch,
            qty=qty,
            rate=line.rate,
            dis=line.dis,
            cgst=line.cgst,
            sgst=line.sgst,
            amount=as_number(refund),
            stock_applied=False,
        ))
    ret.total_return_amount = as_number(round2(total))

    db.session.add(ret)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateKeyError(f"Return number {ret.return_no} already exists") from exc
    return ret.id


def _sync_return_stock(return_id: str) -> dict:
    """
    Decrease catalog stock for every return line not applied yet, then
    record the outcome on the return. Each line is its own catalog commit.
    """
    ret = db.session.get(PurchaseReturn, return_id)
    if ret is None:
        raise NotFoundError(f"Purchase return {return_id} not found")

    pending = [
        (rl.id, rl.stock_code, rl.batch, rl.qty)
        for rl in ret.lines
        if not rl.stock_applied
    ]

    results = []
    errors = []
    for line_id, code, batch, qty in pending:
        outcome = {"productKey": product_key_label(code, batch), "qty": qty}
        try:
            adjusted = stock_service.adjust_stock_by_code_batch(code, batch, qty, "decrease")
        except (LedgerError, SQLAlchemyError) as exc:
            adjusted = None
            errors.append(f"{code}/{batch or ''}: {exc}")
            outcome.update({"success": False, "error": str(exc)})
        else:
            if adjusted["success"]:
                outcome.update({"success": True, "newStock": adjusted["newStock"]})
            else:
                errors.append(f"{code}/{batch or ''}: no catalog row")
                outcome.update({"success": False, "error": "no catalog row"})
        results.append(outcome)

        if adjusted and adjusted["success"]:
            def _mark(line_id=line_id):
                rl = db.session.get(PurchaseReturnLine, line_id)
                rl.stock_applied = True
                db.session.commit()
            run_atomic(_mark)

    def _finish():
        r = db.session.get(PurchaseReturn, return_id)
        if errors:
            r.stock_sync_status = SYNC_FAILED
            r.stock_sync_error = "; ".join(errors)
        else:
            r.stock_sync_status = SYNC_APPLIED
            r.stock_sync_error = None
        db.session.commit()
        return r.stock_sync_status

    status = run_atomic(_finish)
    if status == SYNC_FAILED:
        current_app.logger.warning(
            "Stock sync failed for purchase return %s: %s", return_id, "; ".join(errors)
        )
    return {"status": status, "lines": results}


def process_return(
    invoice_ref,
    selected,
    reason: str = "",
    refund_method: str = "Cash",
    return_date=None,
) -> dict:
    """
    Record a supplier return and decrease stock for the returned lines.

    Refunds are priced from the invoice's stored rate/discount/tax, never from
    current catalog prices. The return is committed first; stock adjustment
    follows as a separate step whose outcome is reported under "stock" and
    kept on the return (stockSyncStatus).

    Raises:
        NotFoundError: unknown invoice or line
        ValidationError: bad selection, fully returned invoice, or a
            quantity above what remains (RETURN_CAP_POLICY = "reject")
    """
    try:
        day = parse_day(return_date) if return_date else today()
    except ValueError as exc:
        raise ValidationError("returnDate must be an ISO-8601 date") from exc

    return_id = run_atomic(lambda: _record_return(
        invoice_ref,
        selected,
        str(reason or "").strip(),
        str(refund_method or "Cash").strip() or "Cash",
        day,
    ))

    stock = _sync_return_stock(return_id)

    ret = db.session.get(PurchaseReturn, return_id)
    return {
        "returnId": ret.id,
        "returnNo": ret.return_no,
        "totalReturnAmount": ret.total_return_amount,
        "stock": stock,
    }


def list_returns() -> list[dict]:
    returns = (
        db.session.query(PurchaseReturn)
        .order_by(PurchaseReturn.created_at.desc(), PurchaseReturn.return_no)
        .all()
    )
    return [r.to_dict() for r in returns]


def returns_for_invoice(invoice_no: str) -> list[dict]:
    return [r.to_dict() for r in _returns_for(str(invoice_no or "").strip())]


def pending_stock_reconciliations() -> list[dict]:
    """Returns whose stock step has not (fully) gone through."""
    returns = (
        db.session.query(PurchaseReturn)
        .filter(PurchaseReturn.stock_sync_status.in_((SYNC_PENDING, SYNC_FAILED)))
        .order_by(PurchaseReturn.created_at)
        .all()
    )
    return [r.to_dict() for r in returns]


def retry_stock_sync(return_id: str) -> dict:
    """Re-apply the stock step for lines of a return not applied yet."""
    ret = db.session.get(PurchaseReturn, return_id)
    if ret is None:
        raise NotFoundError(f"Purchase return {return_id} not found")
    if ret.stock_sync_status == SYNC_APPLIED:
        return {"status": SYNC_APPLIED, "lines": []}
    return _sync_return_stock(return_id)
