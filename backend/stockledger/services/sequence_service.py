# Overview: Durable named counters for the sales store.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import InvoiceCounter
from ..time_utils import utcnow


SALES_INVOICE_COUNTER = "sales_invoice"


def _read_allocated(name: str) -> int:
    db.session.flush()
    current = (
        db.session.query(InvoiceCounter.value)
        .filter_by(name=name)
        .scalar()
    )
    return current - 1


def allocate_sequence_value(name: str = SALES_INVOICE_COUNTER) -> int:
    """
    Allocate the next value of a named counter inside the caller's transaction.

    The increment is a single UPDATE, so the write lock is taken before the
    read-back and concurrent callers serialize. Does NOT commit: the caller
    commits together with whatever consumes the number.
    """
    if not name:
        raise ValidationError("counter name is required")

    stmt = (
        update(InvoiceCounter)
        .where(InvoiceCounter.name == name)
        .values(value=InvoiceCounter.value + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return _read_allocated(name)

    # First use: counter starts at 1, so store 2 as the next value
    db.session.add(InvoiceCounter(name=name, value=2, updated_at=utcnow()))
    try:
        db.session.flush()
        return 1
    except IntegrityError:
        db.session.rollback()
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _read_allocated(name)


def peek_sequence_value(name: str = SALES_INVOICE_COUNTER) -> int:
    """Next value that would be handed out; does not allocate."""
    current = db.session.query(InvoiceCounter.value).filter_by(name=name).scalar()
    return current if current is not None else 1
