# backend/stockledger/config.py
from __future__ import annotations
import os


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Three independent stores:
    # - default bind: product catalog (relational)
    # - "purchases": purchase invoices + returns (relational)
    # - "sales": sales ledger documents + invoice counter
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "CATALOG_DATABASE_URL",
        "sqlite:///inventory.sqlite3",
    )
    SQLALCHEMY_BINDS = {
        "purchases": os.environ.get("PURCHASES_DATABASE_URL", "sqlite:///purchases.sqlite3"),
        "sales": os.environ.get("SALES_DATABASE_URL", "sqlite:///sales.sqlite3"),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SQLite waits this many seconds on a locked database before the
    # storage engine gives up and we report TRANSIENT_BUSY.
    SQLITE_BUSY_TIMEOUT_SECONDS = _env_float("SQLITE_BUSY_TIMEOUT_SECONDS", 5.0)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # "clamp": decrements below zero silently stop at zero
    # "reject": raise ValidationError("insufficient stock")
    STOCK_DECREMENT_POLICY = os.environ.get("STOCK_DECREMENT_POLICY", "clamp")

    # Purchase returns exceeding the remaining quantity of a line:
    # "reject" | "clamp" | "warn"
    RETURN_CAP_POLICY = os.environ.get("RETURN_CAP_POLICY", "reject")

    # "trust": store caller totals verbatim
    # "verify": recompute from lines and reject on mismatch beyond tolerance
    PURCHASE_TOTALS_POLICY = os.environ.get("PURCHASE_TOTALS_POLICY", "trust")
    PURCHASE_TOTALS_TOLERANCE = _env_float("PURCHASE_TOTALS_TOLERANCE", 0.05)

    EXPIRY_WARNING_DAYS = int(os.environ.get("EXPIRY_WARNING_DAYS", "30"))
