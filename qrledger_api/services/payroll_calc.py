# qrledger_api/services/payroll_calc.py
"""
Pure payroll formulas. Nothing here touches the database; callers pass in
plain numbers (or model rows for the aggregate helpers) and get Decimals back.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from qrledger_api.common.errors import PayrollContractError
from qrledger_api.models.bonus import ADVANCE, CATEGORIES, DEMERIT, LOAN_DEDUCTION, MERIT
from qrledger_api.models.employment import PART_TIME

CENT = Decimal("0.01")
ZERO = Decimal("0")


def _dec(x) -> Decimal:
    if x is None or x == "":
        return ZERO
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def money(x) -> Decimal:
    return _dec(x).quantize(CENT, rounding=ROUND_HALF_UP)


# ---------- wages ----------

def monthly_hourly_rate(monthly_wage, hours_per_day, days_per_month, employment_type: str = PART_TIME) -> Decimal:
    """
    monthly_wage / (hours_per_day * days_per_month) for part-time employees,
    zero for full-time and contract.
    """
    if employment_type != PART_TIME:
        return ZERO
    hours = _dec(hours_per_day) * _dec(days_per_month)
    if hours <= 0:
        raise PayrollContractError("hours_per_day and days_per_month must be positive for part-time")
    return _dec(monthly_wage) / hours


def period_base(employment_type: str, monthly_wage, hourly_rate=None, hours_worked=None) -> Decimal:
    """Part-time earns hourly_rate * hours worked; everyone else the monthly wage."""
    if employment_type == PART_TIME:
        return _dec(hourly_rate) * _dec(hours_worked)
    return _dec(monthly_wage)


def final_payable(base, merits=0, advances=0, demerits=0, loan_deductions=0, monthly_loan_deduction=0) -> Decimal:
    """base + merits + advances - demerits - loan_deductions - monthly_loan_deduction"""
    return (
        _dec(base)
        + _dec(merits)
        + _dec(advances)
        - _dec(demerits)
        - _dec(loan_deductions)
        - _dec(monthly_loan_deduction)
    )


def split_adjustments(entries: Iterable) -> Dict[str, Decimal]:
    """Total BonusEntry-like rows (category, amount) per category."""
    out = {c: ZERO for c in CATEGORIES}
    for e in entries:
        if e.category not in out:
            raise PayrollContractError(f"unknown adjustment category '{e.category}'")
        out[e.category] += abs(_dec(e.amount))
    return out


# ---------- loans ----------

@dataclass(frozen=True)
class Amortization:
    principal: Decimal
    interest_rate: Decimal
    total: Decimal
    monthly_deduction: Decimal
    tenure_months: int


def loan_total(principal, rate) -> Decimal:
    return _dec(principal) * (1 + _dec(rate) / 100)


def loan_amortization(principal, rate, monthly_deduction=None, tenure_months=None) -> Amortization:
    """
    Exactly one of monthly_deduction / tenure_months must be given; the other is derived:

        tenure            = ceil(total / monthly_deduction)
        monthly_deduction = total / tenure_months, rounded up to the cent

    With the deduction rounded up, tenure is re-derived from it so the
    first relation always holds for what gets stored.
    """
    if (monthly_deduction is None) == (tenure_months is None):
        raise PayrollContractError("pass exactly one of monthly_deduction or tenure_months")

    principal = _dec(principal)
    rate = _dec(rate)
    if principal <= 0 or rate < 0:
        raise PayrollContractError("principal must be positive and rate non-negative")
    total = loan_total(principal, rate)

    if monthly_deduction is not None:
        deduction = money(monthly_deduction)
        if deduction <= 0:
            raise PayrollContractError("monthly_deduction must be positive")
        tenure = math.ceil(money(total) / deduction)
    else:
        tenure = int(tenure_months)
        if tenure <= 0:
            raise PayrollContractError("tenure_months must be positive")
        deduction = (money(total) / tenure).quantize(CENT, rounding=ROUND_CEILING)
        tenure = math.ceil(money(total) / deduction)

    return Amortization(principal, rate, total, deduction, tenure)


def foreclose_total(loans: Iterable) -> Decimal:
    """Sum remaining_amount across loans, falling back to total_amount where remaining is unset."""
    total = ZERO
    for loan in loans:
        remaining = loan.remaining_amount
        total += _dec(remaining if remaining is not None else loan.total_amount)
    return total


def apply_loan_deduction(loans: List, amount) -> List[Tuple[object, Decimal]]:
    """
    Spread a deduction over loans oldest first. Returns (loan, new_remaining)
    pairs for the loans touched; never takes a balance below zero.
    """
    left = _dec(amount)
    if left <= 0:
        raise PayrollContractError("deduction must be positive")
    outstanding = foreclose_total(loans)
    if left > outstanding:
        raise PayrollContractError("deduction exceeds outstanding balance")

    out = []
    for loan in loans:
        if left <= 0:
            break
        remaining = _dec(loan.remaining_amount if loan.remaining_amount is not None else loan.total_amount)
        take = min(remaining, left)
        out.append((loan, remaining - take))
        left -= take
    return out


def monthly_loan_deduction(loans: Iterable) -> Decimal:
    return sum((_dec(l.monthly_deduction) for l in loans), ZERO)


def pay_breakdown(
    employment_type: str,
    monthly_wage,
    hourly_rate=None,
    hours_worked=None,
    entries: Optional[Iterable] = None,
    active_loans: Optional[Iterable] = None,
) -> Dict[str, Decimal]:
    """Everything that goes into one period's final payable, as a dict of Decimals."""
    adj = split_adjustments(entries or [])
    loans = list(active_loans or [])
    base = period_base(employment_type, monthly_wage, hourly_rate, hours_worked)
    monthly = monthly_loan_deduction(loans)
    return {
        "base": base,
        "merits": adj[MERIT],
        "advances": adj[ADVANCE],
        "demerits": adj[DEMERIT],
        "loan_deductions": adj[LOAN_DEDUCTION],
        "monthly_loan_deduction": monthly,
        "final_payable": final_payable(
            base, adj[MERIT], adj[ADVANCE], adj[DEMERIT], adj[LOAN_DEDUCTION], monthly
        ),
    }
