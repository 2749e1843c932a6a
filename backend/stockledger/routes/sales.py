# Overview: Flask API routes for the sales ledger.

# backend/stockledger/routes/sales.py
"""
Sales ledger routes.

Invoice numbers are assigned by the server; a client never sends one.
GET /api/sales takes an inclusive day range (?from=YYYY-MM-DD&to=YYYY-MM-DD)
and an optional free-text filter (?q=).
"""
from flask import Blueprint, request

from ..errors import LedgerError, NotFoundError
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def query_range_route():
    try:
        rows = sales_service.query_range(
            request.args.get("from"),
            request.args.get("to"),
            request.args.get("q"),
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return {"items": rows, "count": len(rows)}


@sales_bp.post("")
def save_invoice_route():
    """Body: {"header": {...}, "items": [...], "totals": {...}}"""
    payload = request.get_json(silent=True) or {}
    try:
        saved = sales_service.save_invoice(
            payload.get("header"),
            payload.get("items"),
            payload.get("totals"),
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return saved, 201


@sales_bp.get("/next-number")
def next_number_route():
    """Preview only; the number is allocated when the invoice is saved."""
    return {"next": sales_service.peek_next_invoice_number()}


@sales_bp.get("/by-number/<invoice_no>")
def get_invoice_by_no_route(invoice_no: str):
    invoice = sales_service.get_invoice_by_no(invoice_no)
    if invoice is None:
        return NotFoundError("Sales invoice not found").to_dict(), 404
    return invoice


@sales_bp.get("/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    invoice = sales_service.get_invoice(invoice_id)
    if invoice is None:
        return NotFoundError("Sales invoice not found").to_dict(), 404
    return invoice


@sales_bp.delete("/<int:invoice_id>")
def delete_invoice_route(invoice_id: int):
    if not sales_service.delete_invoice(invoice_id):
        return NotFoundError("Sales invoice not found").to_dict(), 404
    return {"ok": True}


@sales_bp.post("/<int:invoice_id>/returns")
def apply_return_route(invoice_id: int):
    """Body: {"lineReference": lineId or position, "qty": int > 0}"""
    payload = request.get_json(silent=True) or {}
    line_reference = payload.get("lineReference", payload.get("lineId"))
    if line_reference is None:
        return {"error": "lineReference is required", "code": "VALIDATION_FAILURE"}, 400
    try:
        result = sales_service.apply_return_to_line(invoice_id, line_reference, payload.get("qty"))
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return result
