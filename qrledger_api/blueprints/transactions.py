from datetime import date

from flask import Blueprint, request

from qrledger_api.common.auth import current_user_id, requires_roles
from qrledger_api.common.errors import InsufficientData
from qrledger_api.common.http import ok, fail
from qrledger_api.models.transaction import STATUSES, Transaction
from qrledger_api.models.user import ROLE_EMPLOYEE, ROLE_EMPLOYER
from qrledger_api.services import employment as employment_svc
from qrledger_api.services.ledger import LedgerOrchestrator
from qrledger_api.services.registry import RedeemerContext, TransactionRegistry

bp = Blueprint("transactions", __name__, url_prefix="/api/v1/transactions")


def _d(s):
    if not s:
        return None
    try:
        return date.fromisoformat(str(s))
    except ValueError:
        raise InsufficientData("attendance_date must be YYYY-MM-DD")


@bp.post("")
@requires_roles(ROLE_EMPLOYER)
def create_transaction():
    """
    Body: {kind, employment_id?, payload?, attendance_date?}
    Leaving out employment_id on mark_attendance issues a universal code.
    """
    data = request.get_json(silent=True) or {}
    kind = (data.get("kind") or "").strip()
    if not kind:
        return fail("kind is required", status=422)

    uid = current_user_id()
    emp = None
    if data.get("employment_id") is not None:
        try:
            emp_id = int(data["employment_id"])
        except (TypeError, ValueError):
            return fail("employment_id must be an integer", status=422)
        emp = employment_svc.get_employment(emp_id, employer_id=uid)

    payload = data.get("payload")
    if payload is not None and not isinstance(payload, dict):
        return fail("payload must be an object", status=422)

    tx = TransactionRegistry().create(kind, uid, emp, payload, _d(data.get("attendance_date")))
    return ok(tx.to_dict(), status=201)


@bp.post("/redeem")
@requires_roles(ROLE_EMPLOYEE)
def redeem_transaction():
    data = request.get_json(silent=True) or {}
    token = (data.get("token") or "").strip()
    if not token:
        return fail("token is required", status=422)
    result = LedgerOrchestrator().redeem(token, RedeemerContext(current_user_id()))
    return ok(result.to_dict())


@bp.get("")
@requires_roles(ROLE_EMPLOYER)
def list_transactions():
    status = (request.args.get("status") or "").strip() or None
    if status and status not in STATUSES:
        return fail(f"status must be one of {', '.join(STATUSES)}", status=422)
    q = Transaction.query.filter(Transaction.employer_id == current_user_id())
    if status:
        q = q.filter(Transaction.status == status)
    if request.args.get("employment_id", type=int):
        q = q.filter(Transaction.employment_id == request.args.get("employment_id", type=int))
    rows = q.order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()
    return ok([t.to_dict() for t in rows], total=len(rows))


@bp.get("/<int:transaction_id>")
@requires_roles(ROLE_EMPLOYER)
def get_transaction(transaction_id: int):
    return ok(TransactionRegistry().get(transaction_id, current_user_id()).to_dict())


@bp.post("/<int:transaction_id>/cancel")
@requires_roles(ROLE_EMPLOYER)
def cancel_transaction(transaction_id: int):
    return ok(TransactionRegistry().cancel(transaction_id, current_user_id()).to_dict())


@bp.post("/<int:transaction_id>/ack")
@requires_roles(ROLE_EMPLOYER)
def acknowledge_transaction(transaction_id: int):
    return ok(LedgerOrchestrator().acknowledge(transaction_id, current_user_id()).to_dict())
