from decimal import Decimal
from types import SimpleNamespace as NS

import pytest

from qrledger_api.common.errors import PayrollContractError
from qrledger_api.services import payroll_calc as pc


def _loan(total, remaining=None, monthly="0"):
    return NS(total_amount=Decimal(total), remaining_amount=None if remaining is None else Decimal(remaining),
              monthly_deduction=Decimal(monthly))


def test_part_time_hourly_rate():
    rate = pc.monthly_hourly_rate(2000, 8, 22)
    assert rate.quantize(Decimal("0.0001")) == Decimal("11.3636")


def test_hourly_rate_zero_for_salaried():
    assert pc.monthly_hourly_rate(2000, 8, 22, "full_time") == 0
    assert pc.monthly_hourly_rate(2000, None, None, "contract") == 0


def test_hourly_rate_rejects_zero_divisor():
    with pytest.raises(PayrollContractError):
        pc.monthly_hourly_rate(2000, 0, 22)


def test_loan_from_monthly_deduction():
    am = pc.loan_amortization(1000, 10, monthly_deduction=110)
    assert am.total == Decimal("1100")
    assert am.tenure_months == 10


def test_loan_tenure_rounds_up():
    am = pc.loan_amortization(1000, 10, monthly_deduction=300)
    assert am.tenure_months == 4


def test_loan_from_tenure():
    am = pc.loan_amortization(1200, 0, tenure_months=12)
    assert am.monthly_deduction == Decimal("100")


def test_loan_from_tenure_rounds_deduction_up_to_the_cent():
    am = pc.loan_amortization(1000, 0, tenure_months=3)
    assert am.monthly_deduction == Decimal("333.34")
    assert am.tenure_months == 3


@pytest.mark.parametrize("kwargs", [{}, {"monthly_deduction": 10, "tenure_months": 3}])
def test_loan_needs_exactly_one_of_deduction_or_tenure(kwargs):
    with pytest.raises(PayrollContractError):
        pc.loan_amortization(1000, 10, **kwargs)


def test_foreclose_total_falls_back_to_total_amount():
    loans = [_loan("1100", "400"), _loan("550")]
    assert pc.foreclose_total(loans) == Decimal("950")


def test_final_payable_formula():
    got = pc.final_payable(3000, merits=200, advances=100, demerits=50, loan_deductions=25, monthly_loan_deduction=110)
    assert got == Decimal("3115")


def test_final_payable_can_go_negative():
    assert pc.final_payable(100, demerits=150) == Decimal("-50")


def test_loan_deduction_spreads_oldest_first():
    a, b = _loan("100", "60"), _loan("200", "200")
    out = pc.apply_loan_deduction([a, b], 80)
    assert out == [(a, Decimal("0")), (b, Decimal("180"))]


def test_loan_deduction_beyond_outstanding_is_rejected():
    with pytest.raises(PayrollContractError):
        pc.apply_loan_deduction([_loan("100", "60")], 61)


def test_pay_breakdown_part_time_uses_hours():
    entries = [NS(category="merit", amount=Decimal("10")), NS(category="demerit", amount=Decimal("5"))]
    b = pc.pay_breakdown("part_time", 2000, hourly_rate=Decimal("12.5"), hours_worked=Decimal("40"),
                         entries=entries, active_loans=[_loan("1100", "1100", "110")])
    assert b["base"] == Decimal("500.0")
    assert b["monthly_loan_deduction"] == Decimal("110")
    assert b["final_payable"] == Decimal("395.0")


def test_split_adjustments_rejects_unknown_category():
    with pytest.raises(PayrollContractError):
        pc.split_adjustments([NS(category="tip", amount=1)])
