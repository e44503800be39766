from datetime import date

from flask import Blueprint, request

from qrledger_api.common.auth import current_user, current_user_id, requires_roles
from qrledger_api.common.clock import today
from qrledger_api.common.http import ok, fail
from qrledger_api.models.attendance import LEAVE, LEAVE_STATES
from qrledger_api.models.user import ROLE_EMPLOYEE, ROLE_EMPLOYER
from qrledger_api.services import attendance_tracker, employment as employment_svc
from qrledger_api.services.notifications import ATTENDANCE, ChangeEvent, get_bus

bp = Blueprint("attendance", __name__, url_prefix="/api/v1")


def _d(s):
    if not s:
        return None
    try:
        return date.fromisoformat(str(s))
    except ValueError:
        return None


@bp.post("/attendance/leave")
@requires_roles(ROLE_EMPLOYEE)
def mark_leave():
    """Body: {employment_id, date, kind: leave|sick_leave}"""
    data = request.get_json(silent=True) or {}
    day = _d(data.get("date"))
    kind = (data.get("kind") or LEAVE).strip()
    if day is None:
        return fail("date must be YYYY-MM-DD", status=422)
    if kind not in LEAVE_STATES:
        return fail(f"kind must be one of {', '.join(LEAVE_STATES)}", status=422)
    try:
        emp_id = int(data.get("employment_id"))
    except (TypeError, ValueError):
        return fail("employment_id is required", status=422)

    emp = employment_svc.get_employment(emp_id, employee_user_id=current_user_id())
    row = attendance_tracker.mark_leave(emp, day, kind)
    get_bus().publish(ChangeEvent(emp.employer_id, ATTENDANCE, "update", row.id,
                                  {"employment_id": emp.id, "status": row.status}))
    return ok(row.to_dict())


@bp.get("/employments/<int:employment_id>/attendance")
@requires_roles(ROLE_EMPLOYER, ROLE_EMPLOYEE)
def month_attendance(employment_id: int):
    emp = employment_svc.visible_employment(employment_id, current_user())
    t = today()
    year = request.args.get("year", type=int) or t.year
    month = request.args.get("month", type=int) or t.month
    if not 1 <= month <= 12:
        return fail("month must be 1..12", status=422)
    return ok({
        "days": attendance_tracker.month_view(emp, year, month, t),
        "summary": attendance_tracker.month_summary(emp, year, month, t),
    })
