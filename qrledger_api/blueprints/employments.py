from flask import Blueprint, request

from qrledger_api.common.auth import current_user, requires_roles
from qrledger_api.common.errors import MalformedToken
from qrledger_api.common.http import ok, fail
from qrledger_api.models.user import ROLE_EMPLOYEE, ROLE_EMPLOYER
from qrledger_api.services import employment as svc
from qrledger_api.services.ledger import LedgerOrchestrator
from qrledger_api.services.notifications import get_bus
from qrledger_api.services.registry import RedeemerContext
from qrledger_api.services.token_codec import sniff

bp = Blueprint("employments", __name__, url_prefix="/api/v1")


def _row(emp):
    d = emp.to_dict()
    d["employer"] = emp.employer.to_dict() if emp.employer else None
    d["employee"] = emp.employee.to_dict() if emp.employee else None
    wage = svc.get_wage(emp)
    d["wage"] = wage.to_dict() if wage else None
    return d


# ---------- linking codes ----------

@bp.post("/links")
@requires_roles(ROLE_EMPLOYER)
def issue_link():
    data = request.get_json(silent=True) or {}
    token = svc.issue_link_token(
        current_user(),
        employment_type=data.get("employment_type") or None,
        hours_per_day=data.get("hours_per_day"),
        days_per_month=data.get("days_per_month"),
    )
    return ok({"token": token}, status=201)


@bp.post("/links/redeem")
@requires_roles(ROLE_EMPLOYEE)
def redeem_link():
    data = request.get_json(silent=True) or {}
    token = (data.get("token") or "").strip()
    if not token:
        return fail("token is required", status=422)
    emp = svc.redeem_link_token(token, current_user(), bus=get_bus())
    return ok(_row(emp), status=201)


# ---------- employments ----------

@bp.get("/employments")
@requires_roles(ROLE_EMPLOYER, ROLE_EMPLOYEE)
def list_employments():
    include_inactive = (request.args.get("include_inactive") or "").lower() in ("1", "true", "yes")
    rows = svc.list_employments(current_user(), include_inactive=include_inactive)
    return ok([_row(e) for e in rows], total=len(rows))


@bp.get("/employments/<int:employment_id>")
@requires_roles(ROLE_EMPLOYER, ROLE_EMPLOYEE)
def get_employment(employment_id: int):
    return ok(_row(svc.visible_employment(employment_id, current_user())))


@bp.delete("/employments/<int:employment_id>")
@requires_roles(ROLE_EMPLOYER)
def remove_employment(employment_id: int):
    emp = svc.get_employment(employment_id, employer_id=current_user().id)
    return ok(svc.remove_employment(emp).to_dict())


# ---------- scanner ----------

@bp.post("/scan")
@requires_roles(ROLE_EMPLOYEE)
def scan():
    """Route whatever the camera read to the right redemption by its prefix."""
    data = request.get_json(silent=True) or {}
    token = (data.get("token") or "").strip()
    family = sniff(token)
    if family == "link":
        return ok({"type": "link", "employment": _row(svc.redeem_link_token(token, current_user(), bus=get_bus()))})
    if family == "transaction":
        result = LedgerOrchestrator().redeem(token, RedeemerContext(current_user().id))
        return ok({"type": "transaction", **result.to_dict()})
    raise MalformedToken("Invalid QR code format")
