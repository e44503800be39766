# qrledger_api/services/employment.py
"""
Employer-side ledger actions that do not go through a redemption token:
linking, wage setup, merits/demerits/advances/loan deductions, removal and
the per-period payroll summary.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from flask import current_app
from sqlalchemy import func

from qrledger_api.common.clock import utcnow
from qrledger_api.common.errors import ConsistencyViolation, InsufficientData, NotFound
from qrledger_api.extensions import db
from qrledger_api.models.bonus import CATEGORIES, DEMERIT, LOAN_DEDUCTION, BonusEntry
from qrledger_api.models.employment import CONTRACT, EMPLOYMENT_TYPES, PART_TIME, Employment
from qrledger_api.models.loan import LOAN_ACTIVE, LOAN_PAID, Loan
from qrledger_api.models.user import ROLE_EMPLOYEE, ROLE_EMPLOYER, User
from qrledger_api.models.wage import Payment, WageRecord
from qrledger_api.services import attendance_tracker, payroll_calc, statements
from qrledger_api.services.notifications import EMPLOYMENTS, STATEMENTS, ChangeBus, ChangeEvent
from qrledger_api.services.token_codec import LinkToken, decode_link, encode_link

log = logging.getLogger(__name__)

DEDUCTING = (DEMERIT, LOAN_DEDUCTION)


def _dec(x, name: str) -> Decimal:
    try:
        d = Decimal(str(x))
    except (InvalidOperation, ValueError):
        raise InsufficientData(f"'{name}' must be a number")
    if d <= 0:
        raise InsufficientData(f"'{name}' must be positive")
    return d


def period_of(dt) -> str:
    return f"{dt.year:04d}-{dt.month:02d}"


def _publish(bus: Optional[ChangeBus], events):
    if bus is not None:
        bus.publish_all(events)


# ---------- linking ----------

def issue_link_token(employer: User, employment_type: Optional[str] = None,
                     hours_per_day=None, days_per_month=None) -> str:
    if employer.role != ROLE_EMPLOYER:
        raise ConsistencyViolation("Only employers can issue linking codes")
    if employment_type is not None and employment_type not in EMPLOYMENT_TYPES:
        raise InsufficientData(f"employment_type must be one of {', '.join(EMPLOYMENT_TYPES)}")

    config = None
    if employment_type == PART_TIME:
        if hours_per_day is None or days_per_month is None:
            raise InsufficientData("part_time requires hours_per_day and days_per_month")
        config = {
            "workingHoursPerDay": float(_dec(hours_per_day, "hours_per_day")),
            "workingDaysPerMonth": int(_dec(days_per_month, "days_per_month")),
        }
    return encode_link(LinkToken(str(employer.id), employer.contact, employment_type, config))


def redeem_link_token(text: str, employee: User, bus: Optional[ChangeBus] = None) -> Employment:
    tok = decode_link(text)
    if employee.role != ROLE_EMPLOYEE:
        raise ConsistencyViolation("Only employees can scan linking codes")

    try:
        employer_id = int(tok.employer_id)
    except ValueError:
        raise NotFound("Employer not found")
    employer = db.session.get(User, employer_id)
    if employer is None or employer.role != ROLE_EMPLOYER:
        raise NotFound("Employer not found")

    emp = Employment.query.filter_by(employer_id=employer_id, employee_user_id=employee.id).first()
    if emp is not None and emp.is_active:
        raise ConsistencyViolation("You are already linked to this employer")
    if emp is None:
        emp = Employment(employer_id=employer_id, employee_user_id=employee.id)
        db.session.add(emp)

    emp.employment_type = tok.classification
    emp.status = "active"
    emp.linked_at = utcnow()
    emp.ended_at = None
    if tok.classification == PART_TIME:
        emp.working_hours_per_day = tok.hours_per_day
        emp.working_days_per_month = tok.days_per_month
    else:
        emp.working_hours_per_day = None
        emp.working_days_per_month = None

    db.session.commit()
    log.info("[employment] user=%s linked to employer=%s as %s", employee.id, employer_id, emp.employment_type)
    _publish(bus, [ChangeEvent(employer_id, EMPLOYMENTS, "insert", emp.id, {"employee_user_id": employee.id})])
    return emp


def get_employment(employment_id: int, employer_id: Optional[int] = None,
                   employee_user_id: Optional[int] = None) -> Employment:
    emp = db.session.get(Employment, employment_id)
    if emp is None:
        raise NotFound("Employee not found")
    if employer_id is not None and emp.employer_id != employer_id:
        raise NotFound("Employee not found")
    if employee_user_id is not None and emp.employee_user_id != employee_user_id:
        raise NotFound("Employee not found")
    return emp


def visible_employment(employment_id: int, user: User) -> Employment:
    """The employment as seen by either party to it."""
    if user.role == ROLE_EMPLOYER:
        return get_employment(employment_id, employer_id=user.id)
    return get_employment(employment_id, employee_user_id=user.id)


def list_employments(user: User, include_inactive: bool = False) -> List[Employment]:
    q = Employment.query
    if user.role == ROLE_EMPLOYER:
        q = q.filter(Employment.employer_id == user.id)
    else:
        q = q.filter(Employment.employee_user_id == user.id)
    if not include_inactive:
        q = q.filter(Employment.status == "active")
    return q.order_by(Employment.linked_at.desc(), Employment.id.desc()).all()


def remove_employment(emp: Employment) -> Employment:
    """Soft terminate; the ledger history stays."""
    if not emp.is_active:
        return emp
    emp.status = "inactive"
    emp.ended_at = utcnow()
    db.session.commit()
    log.info("[employment] #%s terminated", emp.id)
    return emp


# ---------- wages ----------

def get_wage(emp: Employment) -> Optional[WageRecord]:
    return WageRecord.query.filter_by(employment_id=emp.id).first()


def _deduction_entries_total(emp: Employment) -> Decimal:
    v = (
        db.session.query(func.coalesce(func.sum(BonusEntry.amount), 0))
        .filter(BonusEntry.employment_id == emp.id, BonusEntry.category.in_(DEDUCTING))
        .scalar()
    )
    return Decimal(str(v or 0))


def set_wage(emp: Employment, monthly_wage, currency: Optional[str] = None,
             now: Optional[datetime] = None, bus: Optional[ChangeBus] = None) -> WageRecord:
    if not emp.is_active:
        raise ConsistencyViolation("Employee is no longer linked to this employer")
    if emp.employment_type == CONTRACT:
        raise ConsistencyViolation("Contract employees are paid per contract payment, not a monthly wage")

    now = now or utcnow()
    amount = payroll_calc.money(_dec(monthly_wage, "monthly_wage"))
    currency = (currency or emp.employer.currency or current_app.config["DEFAULT_CURRENCY"]).upper()

    hours = emp.working_hours_per_day or current_app.config["DEFAULT_HOURS_PER_DAY"]
    days = emp.working_days_per_month or current_app.config["DEFAULT_DAYS_PER_MONTH"]
    rate = payroll_calc.monthly_hourly_rate(amount, hours, days, emp.employment_type)

    wage = get_wage(emp)
    updated = wage is not None
    if wage is None:
        wage = WageRecord(employment_id=emp.id, deductions_total=_deduction_entries_total(emp))
        db.session.add(wage)
    wage.monthly_wage = amount
    wage.currency = currency
    wage.hourly_rate = rate.quantize(Decimal("0.0001"))
    wage.updated_at = now

    st = statements.emit(
        emp.employee_user_id, "wage_setup",
        statements.wage_setup_text(now, emp.employee.full_name, amount, currency, updated),
    )
    db.session.commit()
    _publish(bus, [ChangeEvent(emp.employee_user_id, STATEMENTS, "insert", st.id, {"kind": st.kind})])
    return wage


# ---------- loans & adjustments ----------

def active_loans(emp: Employment) -> List[Loan]:
    return (
        Loan.query
        .filter(Loan.employment_id == emp.id, Loan.status == LOAN_ACTIVE)
        .order_by(Loan.granted_at.asc(), Loan.id.asc())
        .all()
    )


def list_loans(emp: Employment) -> List[Loan]:
    return Loan.query.filter_by(employment_id=emp.id).order_by(Loan.granted_at.desc(), Loan.id.desc()).all()


def add_adjustment(emp: Employment, category: str, amount, reason: Optional[str] = None,
                   created_by: Optional[int] = None, now: Optional[datetime] = None,
                   bus: Optional[ChangeBus] = None) -> BonusEntry:
    """
    Append a merit/demerit/advance/loan_deduction line. A loan deduction is
    also applied to active loans oldest first; loans reaching zero are paid.
    """
    if category not in CATEGORIES:
        raise InsufficientData(f"category must be one of {', '.join(CATEGORIES)}")
    if not emp.is_active:
        raise ConsistencyViolation("Employee is no longer linked to this employer")

    now = now or utcnow()
    value = payroll_calc.money(_dec(amount, "amount"))
    wage = get_wage(emp)
    currency = (wage.currency if wage else None) or emp.employer.currency or current_app.config["DEFAULT_CURRENCY"]

    if category == LOAN_DEDUCTION:
        loans = active_loans(emp)
        if not loans:
            raise NotFound("No active loans to deduct from")
        if value > payroll_calc.foreclose_total(loans):
            raise ConsistencyViolation("Deduction exceeds the outstanding loan balance")
        for loan, remaining in payroll_calc.apply_loan_deduction(loans, value):
            loan.remaining_amount = payroll_calc.money(remaining)
            if loan.remaining_amount == 0:
                loan.status = LOAN_PAID
                loan.closed_at = now

    entry = BonusEntry(
        employment_id=emp.id,
        period=period_of(now),
        category=category,
        amount=value,
        currency=currency,
        reason=(reason or "").strip() or None,
        created_by=created_by,
        created_at=now,
    )
    db.session.add(entry)
    if wage is not None and category in DEDUCTING:
        wage.deductions_total = Decimal(str(wage.deductions_total or 0)) + value

    st = statements.emit(
        emp.employee_user_id, category,
        statements.adjustment_text(now, emp.employee.full_name, category, currency, value, entry.reason),
    )
    db.session.commit()
    _publish(bus, [ChangeEvent(emp.employee_user_id, STATEMENTS, "insert", st.id, {"kind": st.kind})])
    return entry


def period_entries(emp: Employment, period: str) -> List[BonusEntry]:
    return (
        BonusEntry.query
        .filter(BonusEntry.employment_id == emp.id, BonusEntry.period == period)
        .order_by(BonusEntry.created_at.asc(), BonusEntry.id.asc())
        .all()
    )


# ---------- payroll ----------

def pay_breakdown(emp: Employment, year: int, month: int, wage: Optional[WageRecord] = None) -> dict:
    """PayrollCalculator inputs gathered from the ledger for one period."""
    wage = wage or get_wage(emp)
    if wage is None and emp.employment_type != CONTRACT:
        raise ConsistencyViolation("No wage record found for this employee")

    hours = None
    if emp.employment_type == PART_TIME:
        hours = attendance_tracker.hours_worked(emp, year, month)

    out = payroll_calc.pay_breakdown(
        emp.employment_type,
        wage.monthly_wage if wage else 0,
        hourly_rate=wage.hourly_rate if wage else 0,
        hours_worked=hours,
        entries=period_entries(emp, f"{year:04d}-{month:02d}"),
        active_loans=active_loans(emp),
    )
    out["hours_worked"] = hours
    return out


def payroll_summary(emp: Employment, year: int, month: int) -> dict:
    wage = get_wage(emp)
    b = pay_breakdown(emp, year, month, wage)
    period = f"{year:04d}-{month:02d}"
    paid = (
        Payment.query
        .filter(Payment.employment_id == emp.id, Payment.period == period)
        .order_by(Payment.paid_at.asc(), Payment.id.asc())
        .all()
    )
    return {
        "employment_id": emp.id,
        "employment_type": emp.employment_type,
        "period": period,
        "currency": wage.currency if wage else (emp.employer.currency or current_app.config["DEFAULT_CURRENCY"]),
        "monthly_wage": float(wage.monthly_wage) if wage else None,
        "hourly_rate": float(wage.hourly_rate or 0) if wage else 0.0,
        "hours_worked": float(b["hours_worked"]) if b["hours_worked"] is not None else None,
        "base": float(payroll_calc.money(b["base"])),
        "merits": float(b["merits"]),
        "advances": float(b["advances"]),
        "demerits": float(b["demerits"]),
        "loan_deductions": float(b["loan_deductions"]),
        "monthly_loan_deduction": float(payroll_calc.money(b["monthly_loan_deduction"])),
        "final_payable": float(payroll_calc.money(b["final_payable"])),
        "payments": [p.to_dict() for p in paid],
        "last_paid_at": wage.last_paid_at.isoformat() if wage and wage.last_paid_at else None,
    }
