from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_day


class SalesInvoice(db.Model):
    """
    Sales ledger entry (document-first).

    The invoice is stored as JSON documents: header, items, totals and the
    append-only returns journal. invoice_date / customer_name are copied out
    of the header for range queries.

    Documents are replaced wholesale on every write (never mutated in place),
    so plain JSON columns are enough for change tracking. version_id guards
    the read-modify-write of return adjustments.
    """
    __bind_key__ = "sales"
    __tablename__ = "sales_invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_no", name="uq_sales_invoices_invoice_no"),
        db.Index("ix_sales_invoices_invoice_date", "invoice_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.String(32), nullable=False)

    invoice_date = db.Column(db.Date, nullable=False)
    customer_name = db.Column(db.String(255), nullable=True)

    header = db.Column(db.JSON, nullable=False, default=dict)
    items = db.Column(db.JSON, nullable=False, default=list)
    totals = db.Column(db.JSON, nullable=False, default=dict)
    returns = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SalesInvoice id={self.id} invoice_no={self.invoice_no!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoiceNo": self.invoice_no,
            "invoiceDate": to_iso_day(self.invoice_date),
            "header": self.header,
            "items": self.items,
            "totals": self.totals,
            "returns": self.returns,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class InvoiceCounter(db.Model):
    """
    Durable named counters for the sales store.

    WHY: invoice numbers must stay unique and monotonic across restarts, so
    the sequence is a row in the same store as the invoices it numbers.
    value is the NEXT number to hand out.
    """
    __bind_key__ = "sales"
    __tablename__ = "invoice_counters"

    name = db.Column(db.String(32), primary_key=True)
    value = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "value": self.value,
            "updatedAt": to_utc_z(self.updated_at),
        }
