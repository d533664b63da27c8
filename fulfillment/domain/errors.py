"""Domain error taxonomy.

Every error is recoverable at the request boundary; the API layer maps each
class to an HTTP status. None of them is raised after a mutation has been
flushed, so a raised error always means "nothing changed".
"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    code = "domain_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "code": self.code, "retryable": self.retryable}
        body.update(self.details)
        return body


class GuardViolation(DomainError):
    """Caller lacks a capability or the current state forbids the transition."""
    code = "guard_violation"
    status_code = 403


class ValidationError(DomainError):
    """A required payment or shipment field is missing or invalid."""
    code = "validation_error"
    status_code = 422

    def __init__(self, message: str, fields: Dict[str, str]):
        super().__init__(message, {"fields": fields})
        self.fields = fields


class NotFound(DomainError):
    code = "not_found"
    status_code = 404


class StaleStateError(DomainError):
    """Another request changed the row first; re-read and retry."""
    code = "stale_state"
    status_code = 409
    retryable = True


class ExternalServiceFailure(DomainError):
    code = "external_service_failure"
    status_code = 502
    retryable = True


class MalformedLedgerData(DomainError):
    """Stored transaction_details could not be decoded. Never surfaced."""
    code = "malformed_ledger_data"
