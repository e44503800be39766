# qrledger_api/services/statements.py
from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from qrledger_api.common.clock import fmt_day
from qrledger_api.common.errors import NotFound
from qrledger_api.extensions import db
from qrledger_api.models.statement import Statement

SIGNATURE = "- Statement Personnel"


def _m(currency: str, amount) -> str:
    return f"{currency} {Decimal(str(amount)):.2f}"


def emit(user_id: int, kind: str, message: str, transaction_id: Optional[int] = None) -> Statement:
    """
    Append a statement to the current session. Never commits: the caller's
    unit of work decides whether the statement and its mutation land together.
    """
    st = Statement(user_id=user_id, kind=kind, message=message, transaction_id=transaction_id)
    db.session.add(st)
    db.session.flush()
    return st


def list_for(user_id: int, unread_only: bool = False) -> List[Statement]:
    q = Statement.query.filter(Statement.user_id == user_id)
    if unread_only:
        q = q.filter(Statement.is_read.is_(False))
    return q.order_by(Statement.created_at.desc(), Statement.id.desc()).all()


def mark_read(statement_id: int, user_id: int) -> Statement:
    st = Statement.query.filter_by(id=statement_id, user_id=user_id).first()
    if not st:
        raise NotFound("Statement not found")
    if not st.is_read:
        st.is_read = True
        db.session.commit()
    return st


# ---------- message templates ----------

def wage_payment_text(paid_at, wage, net_payable) -> str:
    return (
        "WAGE PAYMENT CONFIRMATION\n\n"
        f"Payment Date: {fmt_day(paid_at)}\n"
        f"Monthly Wage: {_m(wage.currency, wage.monthly_wage)}\n"
        f"Net Payable: {_m(wage.currency, net_payable)}\n"
        f"Currency: {wage.currency}\n"
        "Status: Paid\n\n"
        "Your wages have been paid successfully.\n\n"
        f"{SIGNATURE}"
    )


def wage_setup_text(when, employee_name, monthly_wage, currency, updated: bool) -> str:
    word = "UPDATE" if updated else "SETUP"
    return (
        f"WAGE {word} CONFIRMATION\n\n"
        f"Date: {fmt_day(when)}\n"
        f"Employee: {employee_name}\n"
        f"Monthly Wage: {_m(currency, monthly_wage)}\n"
        f"Currency: {currency}\n"
        f"Status: {'Updated' if updated else 'Set'}\n\n"
        f"Your monthly wage has been {'updated' if updated else 'set'} successfully.\n"
        "Payment will be processed separately.\n\n"
        f"{SIGNATURE}"
    )


def loan_settlement_text(when, currency, total, count) -> str:
    return (
        "LOAN SETTLEMENT CONFIRMATION\n\n"
        f"Date: {fmt_day(when)}\n"
        f"Total Amount Settled: {_m(currency, total)}\n"
        f"Number of Loans Closed: {count}\n\n"
        "All loans have been successfully closed and paid in full.\n\n"
        "Thank you for your prompt payment!\n"
        f"{SIGNATURE}"
    )


def loan_foreclosure_text(when, currency, total, count) -> str:
    return (
        "LOAN FORECLOSURE CONFIRMATION\n\n"
        f"Foreclosure Date: {fmt_day(when)}\n"
        f"Total Amount Settled: {_m(currency, total)}\n"
        f"Number of Loans Closed: {count}\n"
        "Status: Paid in Full\n\n"
        "All selected loans have been successfully foreclosed and paid.\n\n"
        "Thank you for your prompt settlement!\n\n"
        f"{SIGNATURE}"
    )


def loan_agreement_text(when, employee_name, loan) -> str:
    c = loan.currency
    return (
        "LOAN AGREEMENT\n\n"
        f"Date: {fmt_day(when)}\n"
        f"Employee: {employee_name}\n"
        f"Loan Amount: {_m(c, loan.principal)}\n"
        f"Interest Rate: {loan.interest_rate}%\n"
        f"Total to Repay: {_m(c, loan.total_amount)}\n"
        f"Monthly Deduction: {_m(c, loan.monthly_deduction)}\n"
        f"Tenure: {loan.tenure_months} months\n"
        "Status: Active\n\n"
        "Please ensure timely repayment as per agreement.\n\n"
        f"{SIGNATURE}"
    )


def contract_payment_text(when, currency, amount) -> str:
    return (
        "CONTRACT WAGE PAYMENT\n\n"
        f"Payment Date: {fmt_day(when)}\n"
        f"Amount Paid: {_m(currency, amount)}\n"
        "Status: Completed\n\n"
        "Your contract wage has been paid successfully.\n\n"
        f"{SIGNATURE}"
    )


def attendance_text(day, login_time) -> str:
    return (
        "ATTENDANCE CONFIRMATION\n\n"
        f"Date: {fmt_day(day)}\n"
        f"Login Time: {login_time.strftime('%H:%M') if login_time else '-'}\n"
        "Status: Present\n\n"
        f"{SIGNATURE}"
    )


def adjustment_text(when, employee_name, category, currency, amount, reason=None) -> str:
    if category == "merit":
        head, tail = "MERIT CONFIRMATION", "Congratulations! This merit has been added to your account."
    elif category == "demerit":
        head, tail = "DEMERIT CONFIRMATION", "This demerit has been deducted from your account."
    elif category == "advance":
        head, tail = "SALARY ADVANCE CONFIRMATION", "This advance has been recorded on your account."
    else:
        head, tail = "LOAN DEDUCTION CONFIRMATION", "This amount has been applied to your outstanding loans."
    lines = [
        head, "",
        f"Date: {fmt_day(when)}",
        f"Employee: {employee_name}",
        f"Amount: {_m(currency, amount)}",
    ]
    if reason:
        lines.append(f"Comment: {reason}")
    lines += ["", tail, "", SIGNATURE]
    return "\n".join(lines)
