"""
Error taxonomy for the lending engine.

Services raise these; the HTTP layer renders them as ``{"kind", "message"}``.
"""
from typing import Any, Dict


class LendingError(Exception):
    """Base class for every recoverable engine failure"""

    kind: str = "lending_error"
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(LendingError):
    """Malformed or out-of-range input"""

    kind = "validation_error"
    status_code = 400


class NotFoundError(LendingError):
    """Referenced user or loan does not exist"""

    kind = "not_found"
    status_code = 404


class StateError(LendingError):
    """Operation attempted against a loan in the wrong status"""

    kind = "invalid_state"
    status_code = 409


class AuthorizationError(LendingError):
    """Actor is not the party the operation requires"""

    kind = "unauthorized"
    status_code = 403


class InvariantViolation(LendingError):
    """Stored data contradicts a ledger invariant"""

    kind = "invariant_violation"
    status_code = 500
