# Overview: Service-layer operations for the sales invoice ledger.

# backend/stockledger/services/sales_service.py

from __future__ import annotations

from datetime import date

from sqlalchemy import update

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import SalesInvoice
from ..money import ZERO, as_number, percent_of, round2, round_whole, to_decimal
from ..time_utils import parse_day, to_utc_z, today, utcnow
from ..validation import coerce_int, coerce_number, coerce_positive_quantity
from .concurrency import run_atomic
from .sequence_service import SALES_INVOICE_COUNTER, allocate_sequence_value, peek_sequence_value
"""
Sales Ledger Invariants (authoritative)

Numbering:
- invoice_no is the string form of a durable counter in the sales store.
  Allocation and the invoice INSERT share one transaction, so a number is
  never handed out twice and never skipped by a failed save.

Line arithmetic (rounded half-up to 2 places):
- grossAmount = quantity * rate
- cgstAmount = grossAmount * cgstPercent / 100 (same for sgst)
- total = grossAmount + cgstAmount + sgstAmount

Aggregates:
- totalQty, grossTotal, totalCgst, totalSgst are sums over lines.
- totalTax = totalCgst + totalSgst; billAmount = grossTotal + totalTax.
- finalAmount = billAmount rounded to a whole number, roundOff the difference.
  On save a caller-supplied roundOff / finalAmount is kept verbatim.
  A return always recomputes them.

Returns:
- A return reduces one line by min(qty, line quantity) and appends
  {lineReference, quantityReturned, timestamp} to the returns journal.
"""

STATE_ACTIVE = "ACTIVE"
STATE_PARTIALLY_RETURNED = "PARTIALLY_RETURNED"
STATE_FULLY_RETURNED = "FULLY_RETURNED"


def next_invoice_number() -> int:
    """Allocate and commit the next sales invoice number."""
    def _op():
        n = allocate_sequence_value(SALES_INVOICE_COUNTER)
        db.session.commit()
        return n

    return run_atomic(_op)


def peek_next_invoice_number() -> int:
    return peek_sequence_value(SALES_INVOICE_COUNTER)


# =============================================================================
# ARITHMETIC
# =============================================================================

def compute_line(item: dict) -> dict:
    """Return a copy of the line with its derived amounts recomputed."""
    line = dict(item)
    qty = to_decimal(line.get("quantity"), "quantity")
    gross = round2(qty * to_decimal(line.get("rate"), "rate"))
    cgst = round2(percent_of(gross, line.get("cgstPercent")))
    sgst = round2(percent_of(gross, line.get("sgstPercent")))

    line["grossAmount"] = as_number(gross)
    line["cgstAmount"] = as_number(cgst)
    line["sgstAmount"] = as_number(sgst)
    line["total"] = as_number(round2(gross + cgst + sgst))
    return line


def compute_totals(lines: list[dict], supplied: dict | None = None) -> dict:
    """
    Aggregate totals from already computed lines.

    supplied: caller totals; its roundOff / finalAmount win when present.
    """
    qty = 0
    gross = cgst = sgst = ZERO
    for line in lines:
        qty += line.get("quantity") or 0
        gross += to_decimal(line.get("grossAmount"))
        cgst += to_decimal(line.get("cgstAmount"))
        sgst += to_decimal(line.get("sgstAmount"))

    tax = cgst + sgst
    bill = round2(gross + tax)
    final = round_whole(bill)

    totals = dict(supplied or {})
    totals.update({
        "totalQty": qty,
        "grossTotal": as_number(round2(gross)),
        "totalCgst": as_number(round2(cgst)),
        "totalSgst": as_number(round2(sgst)),
        "totalTax": as_number(round2(tax)),
        "billAmount": as_number(bill),
    })

    # Operator override of the rounding is kept as given; a lone
    # roundOff or finalAmount fixes the other so that bill + roundOff == final
    supplied = supplied or {}
    round_off = supplied.get("roundOff")
    final_amount = supplied.get("finalAmount")
    if round_off is None and final_amount is None:
        totals["roundOff"] = as_number(round2(final - bill))
        totals["finalAmount"] = as_number(final)
    elif round_off is None:
        totals["roundOff"] = as_number(round2(to_decimal(final_amount, "totals.finalAmount") - bill))
    elif final_amount is None:
        totals["finalAmount"] = as_number(round2(bill + to_decimal(round_off, "totals.roundOff")))
    return totals


def _normalize_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    used = set()
    for item in items:
        if isinstance(item, dict) and item.get("lineId") is not None:
            used.add(str(item["lineId"]))

    next_id = 1
    out = []
    for i, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object")
        item = dict(raw)

        if item.get("lineId") is None:
            while str(next_id) in used:
                next_id += 1
            item["lineId"] = next_id
            used.add(str(next_id))

        quantity = coerce_int(item.get("quantity", 0), f"items[{i}].quantity")
        if quantity < 0:
            raise ValidationError(f"items[{i}].quantity must be >= 0")
        item["quantity"] = quantity
        for field in ("rate", "cgstPercent", "sgstPercent"):
            item[field] = coerce_number(item.get(field), f"items[{i}].{field}")
        for field in ("mrp", "purchasePrice"):
            if item.get(field) is not None:
                item[field] = coerce_number(item[field], f"items[{i}].{field}")
        if item["rate"] < 0:
            raise ValidationError(f"items[{i}].rate must be >= 0")

        out.append(compute_line(item))
    return out


# =============================================================================
# SAVE / READ
# =============================================================================

def save_invoice(header: dict | None, items, totals: dict | None = None) -> dict:
    """
    Number and store a sales invoice.

    Returns:
        {"id": <row id>, "invoiceNo": "<n>"}
    """
    header = dict(header or {})
    if totals is not None and not isinstance(totals, dict):
        raise ValidationError("totals must be an object")

    lines = _normalize_items(items)
    doc_totals = compute_totals(lines, totals)
    for field in ("roundOff", "finalAmount"):
        try:
            to_decimal(doc_totals[field], field)
        except ValueError as exc:
            raise ValidationError(f"totals.{field} must be a number") from exc

    try:
        invoice_date = parse_day(header["invoiceDate"]) if header.get("invoiceDate") else today()
    except ValueError as exc:
        raise ValidationError("header.invoiceDate must be an ISO-8601 date") from exc
    header["invoiceDate"] = invoice_date.isoformat()

    def _op():
        # Counter UPDATE first: takes the sales store write lock for the insert too
        number = allocate_sequence_value(SALES_INVOICE_COUNTER)
        now = utcnow()
        invoice = SalesInvoice(
            invoice_no=str(number),
            invoice_date=invoice_date,
            customer_name=(str(header.get("patientName") or "").strip() or None),
            header=header,
            items=lines,
            totals=doc_totals,
            returns=[],
            created_at=now,
            updated_at=now,
        )
        db.session.add(invoice)
        db.session.commit()
        return {"id": invoice.id, "invoiceNo": invoice.invoice_no}

    return run_atomic(_op)


def get_invoice(invoice_id) -> dict | None:
    try:
        invoice_id = coerce_int(invoice_id, "id")
    except ValidationError:
        return None
    invoice = db.session.get(SalesInvoice, invoice_id)
    return _with_state(invoice) if invoice else None


def get_invoice_by_no(invoice_no) -> dict | None:
    invoice = db.session.query(SalesInvoice).filter_by(invoice_no=str(invoice_no).strip()).first()
    return _with_state(invoice) if invoice else None


def delete_invoice(invoice_id) -> bool:
    """Administrative delete; not part of the return flow."""
    def _op():
        deleted = db.session.query(SalesInvoice).filter(SalesInvoice.id == invoice_id).delete()
        db.session.commit()
        return deleted > 0

    return run_atomic(_op)


def invoice_state(invoice: dict) -> str:
    if not invoice.get("returns"):
        return STATE_ACTIVE
    if all((line.get("quantity") or 0) <= 0 for line in invoice.get("items") or []):
        return STATE_FULLY_RETURNED
    return STATE_PARTIALLY_RETURNED


def _with_state(invoice: SalesInvoice) -> dict:
    d = invoice.to_dict()
    d["state"] = invoice_state(d)
    return d


# =============================================================================
# RETURNS
# =============================================================================

def _resolve_line(items: list[dict], line_reference) -> int | None:
    """Index of the referenced line: by lineId first, then by position."""
    ref = str(line_reference).strip()
    for i, item in enumerate(items):
        if item.get("lineId") is not None and str(item["lineId"]) == ref:
            return i
    try:
        pos = int(ref)
    except ValueError:
        return None
    if 0 <= pos < len(items):
        return pos
    return None


def apply_return_to_line(invoice_id, line_reference, qty) -> dict:
    """
    Reduce one invoice line by a returned quantity (capped at the line's
    quantity) and recompute the invoice totals.

    Returns:
        {"success": True, "quantityReturned": n, "invoice": {...}}

    Raises:
        NotFoundError: unknown invoice or line
        ValidationError: non-positive qty, or the line has nothing left
    """
    qty = coerce_positive_quantity(qty, "qty")
    try:
        invoice_id = coerce_int(invoice_id, "id")
    except ValidationError as exc:
        raise NotFoundError(f"Sales invoice {invoice_id} not found") from exc

    def _op():
        now = utcnow()
        # Touch the row first so the read-modify-write runs under the write lock
        touched = db.session.execute(
            update(SalesInvoice)
            .where(SalesInvoice.id == invoice_id)
            .values(updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not touched:
            raise NotFoundError(f"Sales invoice {invoice_id} not found")

        invoice = db.session.get(SalesInvoice, invoice_id, populate_existing=True)
        items = [dict(item) for item in invoice.items or []]
        idx = _resolve_line(items, line_reference)
        if idx is None:
            raise NotFoundError(f"Invoice {invoice.invoice_no} has no line {line_reference}")

        line = items[idx]
        current = line.get("quantity") or 0
        returned = min(qty, current)
        if returned <= 0:
            raise ValidationError(f"Line {line_reference} has nothing left to return")

        line["quantity"] = current - returned
        line["returnedQty"] = (line.get("returnedQty") or 0) + returned
        items[idx] = compute_line(line)

        totals = dict(invoice.totals or {})
        totals.pop("roundOff", None)
        totals.pop("finalAmount", None)

        journal = list(invoice.returns or [])
        journal.append({
            "lineReference": line.get("lineId", line_reference),
            "quantityReturned": returned,
            "timestamp": to_utc_z(now),
        })

        invoice.items = items
        invoice.totals = compute_totals(items, totals)
        invoice.returns = journal
        invoice.updated_at = now
        db.session.commit()
        return {"success": True, "quantityReturned": returned, "invoice": _with_state(invoice)}

    return run_atomic(_op)


# =============================================================================
# RANGE QUERY
# =============================================================================

def _profit(items: list[dict]):
    total = ZERO
    for item in items:
        margin = to_decimal(item.get("rate")) - to_decimal(item.get("purchasePrice"))
        total += margin * to_decimal(item.get("quantity"))
    return round2(total)


def _matches(invoice: SalesInvoice, needle: str) -> bool:
    if needle in (invoice.invoice_no or "").lower():
        return True
    if needle in (invoice.customer_name or "").lower():
        return True
    for item in invoice.items or []:
        if needle in str(item.get("itemCode") or "").lower():
            return True
        if needle in str(item.get("itemName") or "").lower():
            return True
    return False


def summarize(invoice: SalesInvoice) -> dict:
    items = invoice.items or []
    totals = invoice.totals or {}
    doc = invoice.to_dict()
    return {
        "id": invoice.id,
        "invoiceNo": invoice.invoice_no,
        "invoiceDate": doc["invoiceDate"],
        "customer": invoice.customer_name,
        "itemsCount": len(items),
        "qtyTotal": totals.get("totalQty", 0),
        "gross": totals.get("grossTotal", 0),
        "cgst": totals.get("totalCgst", 0),
        "sgst": totals.get("totalSgst", 0),
        "billAmount": totals.get("billAmount", 0),
        "roundOff": totals.get("roundOff", 0),
        "finalAmount": totals.get("finalAmount", 0),
        "paymentMode": (invoice.header or {}).get("paymentMode"),
        "profit": as_number(_profit(items)),
        "state": invoice_state(doc),
    }


def query_range(from_date=None, to_date=None, text: str | None = None) -> list[dict]:
    """
    Invoice summaries for an inclusive day range, oldest first.

    text matches (case-insensitively) the invoice number, the customer name,
    or any line's item code / item name.
    """
    try:
        start: date | None = parse_day(from_date) if from_date else None
        end: date | None = parse_day(to_date) if to_date else None
    except ValueError as exc:
        raise ValidationError("from/to must be ISO-8601 dates") from exc
    if start and end and start > end:
        raise ValidationError("from must be on or before to")

    q = db.session.query(SalesInvoice)
    if start:
        q = q.filter(SalesInvoice.invoice_date >= start)
    if end:
        q = q.filter(SalesInvoice.invoice_date <= end)
    invoices = q.order_by(SalesInvoice.invoice_date, SalesInvoice.id).all()

    needle = (text or "").strip().lower()
    if needle:
        invoices = [inv for inv in invoices if _matches(inv, needle)]
    return [summarize(inv) for inv in invoices]
