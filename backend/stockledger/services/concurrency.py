# Overview: Transaction boundary helpers shared by the ledger services.

from __future__ import annotations

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientBusyError
from ..extensions import db


def _is_lock_timeout(exc: OperationalError) -> bool:
    text = str(getattr(exc, "orig", exc)).lower()
    return "locked" in text or "busy" in text or "deadlock" in text or "lock wait" in text


def run_atomic(func):
    """
    Execute one unit of work; commit is the caller's job inside func.

    No retries happen here: the caller owns retry policy. Lock timeouts and
    optimistic-locking conflicts roll back and surface as TransientBusyError;
    everything else rolls back and propagates unchanged.
    """
    try:
        return func()
    except StaleDataError as exc:
        db.session.rollback()
        raise TransientBusyError("record was modified concurrently; try again") from exc
    except OperationalError as exc:
        db.session.rollback()
        if _is_lock_timeout(exc):
            raise TransientBusyError("store is busy; try again") from exc
        raise
    except Exception:
        db.session.rollback()
        raise
