# backend/stockledger/routes/system.py
"""
System health endpoint.

Checks each of the three stores (catalog, purchases, sales) independently:
one unreachable store makes the whole answer 503 while still reporting the
others.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")

# bind key -> label; None is the default (catalog) bind
STORES = ((None, "catalog"), ("purchases", "purchases"), ("sales", "sales"))


def check_store_health(bind_key) -> dict:
    """Run a trivial query on one bind and time it."""
    start_time = time.time()
    try:
        with db.engines[bind_key].connect() as conn:
            conn.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Store health check failed for bind %s", bind_key or "default")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: every store answers
    - 503: at least one store is unhealthy
    """
    start_time = time.time()
    checks = {label: check_store_health(key) for key, label in STORES}

    healthy = all(check["status"] == "healthy" for check in checks.values())
    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": checks,
    }
    return response, 200 if healthy else 503
