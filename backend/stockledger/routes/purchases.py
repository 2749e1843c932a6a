# Overview: Flask API routes for purchase invoices and supplier returns.

# backend/stockledger/routes/purchases.py
"""
Purchase reconciliation routes.

Invoices are addressed by invoice number (the business key); the internal
id is accepted too. A return answers 201 even when its stock step failed:
the return itself is recorded, and the "stock" block says what happened.
"""
from flask import Blueprint, request

from ..errors import LedgerError, NotFoundError
from ..services import purchase_service


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
def list_purchase_invoices_route():
    term = request.args.get("q")
    if term is not None:
        return {"items": purchase_service.search_purchase_invoices(term)}
    code = request.args.get("product")
    if code is not None:
        return {"items": purchase_service.purchase_invoices_for_product(code, request.args.get("batch"))}
    return {"items": purchase_service.list_purchase_invoices()}


@purchases_bp.post("")
def create_purchase_invoice_route():
    """
    Body: {"invoiceNo", "header", "party", "items": [...], "totals"}
    """
    payload = request.get_json(silent=True) or {}
    try:
        created = purchase_service.create_purchase_invoice(
            invoice_no=payload.get("invoiceNo"),
            header=payload.get("header"),
            party=payload.get("party"),
            items=payload.get("items"),
            totals=payload.get("totals"),
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return created, 201


@purchases_bp.get("/<invoice_ref>")
def get_purchase_invoice_route(invoice_ref: str):
    invoice = purchase_service.get_purchase_invoice(invoice_ref)
    if invoice is None:
        return NotFoundError("Purchase invoice not found").to_dict(), 404
    return invoice


@purchases_bp.delete("/<invoice_ref>")
def delete_purchase_invoice_route(invoice_ref: str):
    if not purchase_service.delete_purchase_invoice(invoice_ref):
        return NotFoundError("Purchase invoice not found").to_dict(), 404
    return {"ok": True}


@purchases_bp.get("/<invoice_ref>/remaining")
def remaining_view_route(invoice_ref: str):
    try:
        return purchase_service.materialize_remaining_view(invoice_ref)
    except LedgerError as e:
        return e.to_dict(), e.status_code


@purchases_bp.get("/<invoice_ref>/returns")
def invoice_returns_route(invoice_ref: str):
    invoice = purchase_service.get_purchase_invoice(invoice_ref)
    if invoice is None:
        return NotFoundError("Purchase invoice not found").to_dict(), 404
    return {"items": purchase_service.returns_for_invoice(invoice["invoiceNo"])}


@purchases_bp.post("/<invoice_ref>/returns")
def process_return_route(invoice_ref: str):
    """
    Body: {"selected": [{"productKey"|"productName", "batch", "qty"}],
           "reason": str, "refundMethod": str, "returnDate": "YYYY-MM-DD"}
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = purchase_service.process_return(
            invoice_ref,
            payload.get("selected"),
            reason=payload.get("reason", ""),
            refund_method=payload.get("refundMethod", "Cash"),
            return_date=payload.get("returnDate"),
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return result, 201


@purchases_bp.get("/returns")
def list_returns_route():
    return {"items": purchase_service.list_returns()}


@purchases_bp.get("/returns/pending")
def pending_reconciliations_route():
    return {"items": purchase_service.pending_stock_reconciliations()}


@purchases_bp.post("/returns/<return_id>/retry")
def retry_stock_sync_route(return_id: str):
    try:
        return purchase_service.retry_stock_sync(return_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code
