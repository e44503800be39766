from flask import Blueprint, request

from qrledger_api.common.auth import current_user_id, requires_roles
from qrledger_api.common.http import ok
from qrledger_api.models.user import ROLE_EMPLOYEE, ROLE_EMPLOYER
from qrledger_api.services import statements as svc

bp = Blueprint("statements", __name__, url_prefix="/api/v1/statements")


@bp.get("")
@requires_roles(ROLE_EMPLOYER, ROLE_EMPLOYEE)
def list_statements():
    unread = (request.args.get("unread") or "").lower() in ("1", "true", "yes")
    rows = svc.list_for(current_user_id(), unread_only=unread)
    return ok([s.to_dict() for s in rows], total=len(rows), unread=sum(1 for s in rows if not s.is_read))


@bp.post("/<int:statement_id>/read")
@requires_roles(ROLE_EMPLOYER, ROLE_EMPLOYEE)
def mark_read(statement_id: int):
    return ok(svc.mark_read(statement_id, current_user_id()).to_dict())
