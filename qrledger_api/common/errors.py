# qrledger_api/common/errors.py
from flask import Blueprint, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
from qrledger_api.common.http import fail

bp_errors = Blueprint("errors", __name__)


class APIError(Exception):
    """Custom API Error class."""
    def __init__(self, code, message, status_code=400, payload=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.payload = payload


# ---------- ledger error taxonomy ----------

class LedgerError(APIError):
    """Base for every failure the token protocol and the ledger report to a caller."""
    code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message, payload=None):
        super().__init__(self.code, message, self.status_code, payload)


class MalformedToken(LedgerError):
    code = "MALFORMED_TOKEN"
    status_code = 400


class NotFound(LedgerError):
    code = "NOT_FOUND"
    status_code = 404


class AlreadyRedeemed(LedgerError):
    """Lost the race for a token (or it was used before). Expected, never retried."""
    code = "ALREADY_REDEEMED"
    status_code = 409


class SubjectMismatch(LedgerError):
    code = "SUBJECT_MISMATCH"
    status_code = 403


class AlreadyComplete(LedgerError):
    code = "ALREADY_COMPLETE"
    status_code = 409


class InsufficientData(LedgerError):
    code = "INSUFFICIENT_DATA"
    status_code = 422


class ConsistencyViolation(LedgerError):
    code = "CONSISTENCY_VIOLATION"
    status_code = 409


class LeaveConflict(ConsistencyViolation):
    code = "LEAVE_CONFLICT"


class TokenInactive(LedgerError):
    """Token was cancelled by its issuer or has passed its expiry."""
    code = "TOKEN_INACTIVE"
    status_code = 410


class PayrollContractError(ValueError):
    """
    A payroll formula was called outside its domain (zero divisor, both or
    neither of deduction/tenure). This is a programming error: it is not a
    LedgerError and surfaces as a 500.
    """


# ---------- handlers ----------

@bp_errors.app_errorhandler(HTTPException)
def _http(e: HTTPException):
    return fail(message=e.description or "HTTP error", status=e.code or 400)

@bp_errors.app_errorhandler(IntegrityError)
def _integrity(e: IntegrityError):
    # 409 for unique/FK violations
    return fail(message="Conflict / integrity error", status=409, code="CONSTRAINT_ERROR",
                detail=str(e.orig) if getattr(e, "orig", None) else str(e))

@bp_errors.app_errorhandler(APIError)
def _api_error(e: APIError):
    return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

@bp_errors.app_errorhandler(Exception)
def _unhandled(e: Exception):
    current_app.logger.exception(e)
    return fail(message="Internal Server Error", status=500)
