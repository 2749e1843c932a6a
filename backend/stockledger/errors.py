"""
Ledger error taxonomy.

Every failure that crosses the service boundary is one of these. Routes turn
them into {"error": ..., "code": ...} JSON with the matching HTTP status.

- NotFoundError:        no matching product / invoice / line
- DuplicateKeyError:    invoice number (or catalog key) collision
- ValidationError:      malformed payload, non-positive quantity, policy rejection
- UninitializedError:   stores not ready; fatal at startup
- TransientBusyError:   storage engine lock timeout; caller decides on retry
"""

from __future__ import annotations


class LedgerError(Exception):
    status_code = 500
    code = "LEDGER_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": str(self), "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(LedgerError):
    status_code = 404
    code = "NOT_FOUND"


class DuplicateKeyError(LedgerError):
    status_code = 409
    code = "DUPLICATE_KEY"


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_FAILURE"


class UninitializedError(LedgerError):
    status_code = 503
    code = "UNINITIALIZED"


class TransientBusyError(LedgerError):
    status_code = 503
    code = "TRANSIENT_BUSY"
