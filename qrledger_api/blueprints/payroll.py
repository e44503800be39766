from flask import Blueprint, request

from qrledger_api.common.auth import current_user, current_user_id, requires_roles
from qrledger_api.common.clock import today
from qrledger_api.common.http import ok, fail
from qrledger_api.models.user import ROLE_EMPLOYEE, ROLE_EMPLOYER
from qrledger_api.services import employment as svc, payroll_calc
from qrledger_api.services.notifications import get_bus
from qrledger_api.services.tx_metadata import GrantLoanPayload

bp = Blueprint("payroll", __name__, url_prefix="/api/v1")


def _period():
    t = today()
    year = request.args.get("year", type=int) or t.year
    month = request.args.get("month", type=int) or t.month
    return year, month


@bp.put("/employments/<int:employment_id>/wage")
@requires_roles(ROLE_EMPLOYER)
def set_wage(employment_id: int):
    data = request.get_json(silent=True) or {}
    if data.get("monthly_wage") in (None, ""):
        return fail("monthly_wage is required", status=422)
    emp = svc.get_employment(employment_id, employer_id=current_user_id())
    wage = svc.set_wage(emp, data["monthly_wage"], currency=data.get("currency"), bus=get_bus())
    return ok(wage.to_dict())


@bp.post("/employments/<int:employment_id>/adjustments")
@requires_roles(ROLE_EMPLOYER)
def add_adjustment(employment_id: int):
    """Body: {category: merit|demerit|advance|loan_deduction, amount, reason?}"""
    data = request.get_json(silent=True) or {}
    emp = svc.get_employment(employment_id, employer_id=current_user_id())
    entry = svc.add_adjustment(
        emp,
        (data.get("category") or "").strip(),
        data.get("amount"),
        reason=data.get("reason"),
        created_by=current_user_id(),
        bus=get_bus(),
    )
    return ok(entry.to_dict(), status=201)


@bp.get("/employments/<int:employment_id>/adjustments")
@requires_roles(ROLE_EMPLOYER, ROLE_EMPLOYEE)
def list_adjustments(employment_id: int):
    emp = svc.visible_employment(employment_id, current_user())
    year, month = _period()
    rows = svc.period_entries(emp, f"{year:04d}-{month:02d}")
    return ok([e.to_dict() for e in rows], total=len(rows))


@bp.get("/employments/<int:employment_id>/payroll")
@requires_roles(ROLE_EMPLOYER, ROLE_EMPLOYEE)
def payroll_summary(employment_id: int):
    emp = svc.visible_employment(employment_id, current_user())
    year, month = _period()
    if not 1 <= month <= 12:
        return fail("month must be 1..12", status=422)
    return ok(svc.payroll_summary(emp, year, month))


@bp.get("/employments/<int:employment_id>/loans")
@requires_roles(ROLE_EMPLOYER, ROLE_EMPLOYEE)
def list_loans(employment_id: int):
    emp = svc.visible_employment(employment_id, current_user())
    rows = svc.list_loans(emp)
    active = [l for l in rows if l.is_active]
    return ok(
        [l.to_dict() for l in rows],
        total=len(rows),
        outstanding=float(payroll_calc.money(payroll_calc.foreclose_total(active))),
        monthly_deduction=float(payroll_calc.money(payroll_calc.monthly_loan_deduction(active))),
    )


@bp.post("/loans/quote")
@requires_roles(ROLE_EMPLOYER)
def quote_loan():
    """Preview a loan's amortization without issuing anything."""
    p = GrantLoanPayload.parse(request.get_json(silent=True) or {})
    am = payroll_calc.loan_amortization(p.amount, p.interest_rate, p.monthly_deduction, p.tenure_months)
    return ok({
        "principal": float(payroll_calc.money(am.principal)),
        "interest_rate": float(am.interest_rate),
        "total_amount": float(payroll_calc.money(am.total)),
        "monthly_deduction": float(payroll_calc.money(am.monthly_deduction)),
        "tenure_months": am.tenure_months,
    })
