from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_day


def line_key(product_name, batch) -> tuple[str, str]:
    """Business key joining purchase lines and return lines."""
    return ((product_name or "").strip().lower(), (batch or "").strip().lower())


class PurchaseInvoice(db.Model):
    """
    Purchase invoice snapshot.

    Immutable once created (only last_return_at moves): header, party and totals are stored exactly as
    supplied; lines live in purchase_invoice_lines in their original order.
    Returns reference the invoice by invoice_no (business key), never by id.
    """
    __bind_key__ = "purchases"
    __tablename__ = "purchase_invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_no", name="uq_purchase_invoices_invoice_no"),
        db.Index("ix_purchase_invoices_invoice_date", "invoice_date"),
        db.Index("ix_purchase_invoices_party_name", "party_name"),
    )

    id = db.Column(db.String(64), primary_key=True)
    invoice_no = db.Column(db.String(64), nullable=False)

    invoice_date = db.Column(db.Date, nullable=True)
    party_name = db.Column(db.String(255), nullable=False, default="")

    header = db.Column(db.JSON, nullable=False, default=dict)
    party = db.Column(db.JSON, nullable=False, default=dict)
    totals = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, nullable=False)
    # Stamped by every recorded return; the stamp is the first write of that unit
    last_return_at = db.Column(db.DateTime, nullable=True)

    lines = db.relationship(
        "PurchaseInvoiceLine",
        backref="invoice",
        order_by="PurchaseInvoiceLine.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<PurchaseInvoice id={self.id} invoice_no={self.invoice_no!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoiceNo": self.invoice_no,
            "invoiceDate": to_iso_day(self.invoice_date),
            "header": self.header,
            "party": self.party,
            "items": [line.to_dict() for line in self.lines],
            "totals": self.totals,
            "createdAt": to_utc_z(self.created_at),
            "lastReturnAt": to_utc_z(self.last_return_at),
        }


class PurchaseInvoiceLine(db.Model):
    __bind_key__ = "purchases"
    __tablename__ = "purchase_invoice_lines"

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.String(64), db.ForeignKey("purchase_invoices.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    sl_no = db.Column(db.Integer, nullable=True)
    item_code = db.Column(db.String(64), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    mfr = db.Column(db.String(255), nullable=True)
    pack = db.Column(db.Float, nullable=True)
    batch = db.Column(db.String(64), nullable=True)
    exp = db.Column(db.String(32), nullable=True)
    hsn = db.Column(db.String(32), nullable=True)

    qty = db.Column(db.Integer, nullable=False, default=0)
    free = db.Column(db.Integer, nullable=False, default=0)
    rate = db.Column(db.Float, nullable=False, default=0)
    dis = db.Column(db.Float, nullable=False, default=0)
    cgst = db.Column(db.Float, nullable=False, default=0)
    sgst = db.Column(db.Float, nullable=False, default=0)
    mrp = db.Column(db.Float, nullable=False, default=0)

    # As supplied by the caller at creation time
    cgst_value = db.Column(db.Float, nullable=True)
    sgst_value = db.Column(db.Float, nullable=True)
    value = db.Column(db.Float, nullable=True)

    @property
    def key(self) -> tuple[str, str]:
        return line_key(self.product_name, self.batch)

    def to_dict(self) -> dict:
        return {
            "slNo": self.sl_no,
            "itemCode": self.item_code,
            "productName": self.product_name,
            "mfr": self.mfr,
            "pack": self.pack,
            "batch": self.batch,
            "exp": self.exp,
            "hsn": self.hsn,
            "qty": self.qty,
            "free": self.free,
            "rate": self.rate,
            "dis": self.dis,
            "cgst": self.cgst,
            "sgst": self.sgst,
            "mrp": self.mrp,
            "cgstValue": self.cgst_value,
            "sgstValue": self.sgst_value,
            "value": self.value,
        }


class PurchaseReturn(db.Model):
    """
    A return of goods to the supplier against one purchase invoice.

    Recording the return and decreasing stock are two separate commits on two
    separate stores. stock_sync_status records how far the second step got:
    PENDING (not attempted yet), APPLIED, FAILED (stock_sync_error says why;
    retry with purchase_service.retry_stock_sync).
    """
    __bind_key__ = "purchases"
    __tablename__ = "purchase_returns"
    __table_args__ = (
        db.UniqueConstraint("return_no", name="uq_purchase_returns_return_no"),
        db.Index("ix_purchase_returns_original_invoice_no", "original_invoice_no"),
        db.Index("ix_purchase_returns_stock_sync_status", "stock_sync_status"),
    )

    id = db.Column(db.String(64), primary_key=True)
    return_no = db.Column(db.String(96), nullable=False)
    original_invoice_no = db.Column(db.String(64), nullable=False)

    return_date = db.Column(db.Date, nullable=False)
    reason = db.Column(db.String(255), nullable=False, default="")
    refund_method = db.Column(db.String(32), nullable=False, default="Cash")
    status = db.Column(db.String(16), nullable=False, default="Completed")
    total_return_amount = db.Column(db.Float, nullable=False, default=0)

    stock_sync_status = db.Column(db.String(16), nullable=False, default="PENDING")
    stock_sync_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False)

    lines = db.relationship(
        "PurchaseReturnLine",
        backref="purchase_return",
        order_by="PurchaseReturnLine.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<PurchaseReturn id={self.id} return_no={self.return_no!r} status={self.stock_sync_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "returnNo": self.return_no,
            "originalInvoiceNo": self.original_invoice_no,
            "returnDate": to_iso_day(self.return_date),
            "reason": self.reason,
            "items": [line.to_dict() for line in self.lines],
            "totalReturnAmount": self.total_return_amount,
            "refundMethod": self.refund_method,
            "status": self.status,
            "stockSyncStatus": self.stock_sync_status,
            "stockSyncError": self.stock_sync_error,
            "createdAt": to_utc_z(self.created_at),
        }


class PurchaseReturnLine(db.Model):
    __bind_key__ = "purchases"
    __tablename__ = "purchase_return_lines"

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.String(64), db.ForeignKey("purchase_returns.id"), nullable=False, index=True)

    item_code = db.Column(db.String(64), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    batch = db.Column(db.String(64), nullable=True)
    qty = db.Column(db.Integer, nullable=False)

    # Rate/discount/tax copied from the original invoice line
    rate = db.Column(db.Float, nullable=False, default=0)
    dis = db.Column(db.Float, nullable=False, default=0)
    cgst = db.Column(db.Float, nullable=False, default=0)
    sgst = db.Column(db.Float, nullable=False, default=0)
    amount = db.Column(db.Float, nullable=False, default=0)

    stock_applied = db.Column(db.Boolean, nullable=False, default=False)

    @property
    def key(self) -> tuple[str, str]:
        return line_key(self.product_name, self.batch)

    @property
    def stock_code(self) -> str:
        # Catalog lookup code: explicit item code, else the product name
        return self.item_code or self.product_name

    def to_dict(self) -> dict:
        return {
            "itemCode": self.item_code,
            "productName": self.product_name,
            "batch": self.batch,
            "qty": self.qty,
            "rate": self.rate,
            "amount": self.amount,
            "stockApplied": self.stock_applied,
        }
