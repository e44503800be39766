from datetime import datetime
from decimal import Decimal

import pytest

from qrledger_api.common.errors import ConsistencyViolation, InsufficientData, MalformedToken, NotFound
from qrledger_api.extensions import db
from qrledger_api.models.loan import Loan
from qrledger_api.models.statement import Statement
from qrledger_api.models.transaction import GRANT_LOAN
from qrledger_api.models.user import ROLE_EMPLOYER
from qrledger_api.services import employment as svc
from qrledger_api.services.ledger import LedgerOrchestrator
from qrledger_api.services.registry import RedeemerContext, TransactionRegistry

from conftest import link, make_user

NOW = datetime(2026, 4, 3, 11, 0)


def test_part_time_link_carries_working_pattern(people):
    boss, bob = people["boss"], people["bob"]
    text = svc.issue_link_token(boss, "part_time", 4, 20)
    assert text.startswith(f"employer:{boss.id}:boss@acme.test:part_time:")

    emp = svc.redeem_link_token(text, bob)
    assert emp.employment_type == "part_time"
    assert float(emp.working_hours_per_day) == 4.0
    assert emp.working_days_per_month == 20


def test_part_time_link_needs_pattern(people):
    with pytest.raises(InsufficientData):
        svc.issue_link_token(people["boss"], "part_time")


def test_relinking_an_active_employee_is_rejected(people):
    with pytest.raises(ConsistencyViolation):
        link(people["boss"], people["alice"])


def test_relinking_after_removal_reactivates(people):
    emp = people["emp"]
    svc.remove_employment(emp)
    assert emp.status == "inactive"

    again = link(people["boss"], people["alice"], "contract")
    assert again.id == emp.id
    assert again.status == "active"
    assert again.employment_type == "contract"
    assert again.ended_at is None


def test_link_to_unknown_employer(people):
    with pytest.raises(NotFound):
        svc.redeem_link_token("employer:9999:ghost@acme.test", people["bob"])


def test_employer_cannot_redeem_link(people):
    other = make_user("other@acme.test", ROLE_EMPLOYER)
    with pytest.raises(ConsistencyViolation):
        svc.redeem_link_token(svc.issue_link_token(people["boss"]), other)


def test_malformed_link(people):
    with pytest.raises(MalformedToken):
        svc.redeem_link_token("employer:only-two", people["bob"])


def test_part_time_wage_sets_hourly_rate(people):
    emp = link(people["boss"], people["bob"], "part_time", 8, 22)
    wage = svc.set_wage(emp, "2000", now=NOW)
    assert wage.hourly_rate == Decimal("11.3636")

    updated = svc.set_wage(emp, "2200", now=NOW)
    assert updated.id == wage.id
    msgs = [s.message for s in Statement.query.filter_by(user_id=people["bob"].id, kind="wage_setup")]
    assert any(m.startswith("WAGE SETUP") for m in msgs)
    assert any(m.startswith("WAGE UPDATE") for m in msgs)


def test_contract_employment_has_no_monthly_wage(people):
    emp = link(people["boss"], people["bob"], "contract")
    with pytest.raises(ConsistencyViolation):
        svc.set_wage(emp, "2000")


def test_deductions_total_tracks_demerits_and_loan_deductions(people):
    emp, alice = people["emp"], people["alice"]
    svc.add_adjustment(emp, "demerit", 40, reason="late", now=NOW)
    wage = svc.set_wage(emp, "3000", now=NOW)
    assert wage.deductions_total == Decimal("40.00")

    tx = TransactionRegistry().create(GRANT_LOAN, people["boss"].id, emp,
                                      {"amount": 1000, "interest_rate": 10, "tenure_months": 10}, now=NOW)
    LedgerOrchestrator().redeem(tx.token, RedeemerContext(alice.id, now=NOW))

    svc.add_adjustment(emp, "loan_deduction", 100, now=NOW)
    svc.add_adjustment(emp, "merit", 15, now=NOW)
    db.session.refresh(wage)
    assert wage.deductions_total == Decimal("140.00")

    loan = Loan.query.filter_by(employment_id=emp.id).one()
    assert loan.remaining_amount == Decimal("1000.00")


def test_loan_deduction_pays_off_loan(people):
    emp = people["emp"]
    tx = TransactionRegistry().create(GRANT_LOAN, people["boss"].id, emp,
                                      {"amount": 100, "interest_rate": 0, "monthly_deduction": 50}, now=NOW)
    LedgerOrchestrator().redeem(tx.token, RedeemerContext(people["alice"].id, now=NOW))

    with pytest.raises(ConsistencyViolation):
        svc.add_adjustment(emp, "loan_deduction", 101, now=NOW)

    svc.add_adjustment(emp, "loan_deduction", 100, now=NOW)
    loan = Loan.query.filter_by(employment_id=emp.id).one()
    assert loan.status == "paid"
    assert loan.remaining_amount == 0

    with pytest.raises(NotFound):
        svc.add_adjustment(emp, "loan_deduction", 10, now=NOW)


def test_adjustment_validation(people):
    with pytest.raises(InsufficientData):
        svc.add_adjustment(people["emp"], "tip", 10)
    with pytest.raises(InsufficientData):
        svc.add_adjustment(people["emp"], "merit", -5)


def test_payroll_summary_part_time(people):
    from qrledger_api.services import attendance_tracker

    emp = link(people["boss"], people["bob"], "part_time", 4, 25)
    svc.set_wage(emp, "1000", now=NOW)
    attendance_tracker.record_scan(emp, datetime(2026, 4, 1, 9, 0))
    attendance_tracker.record_scan(emp, datetime(2026, 4, 1, 14, 0))
    svc.add_adjustment(emp, "advance", 20, now=NOW)

    s = svc.payroll_summary(emp, 2026, 4)
    assert s["hourly_rate"] == 10.0
    assert s["hours_worked"] == 5.0
    assert s["base"] == 50.0
    assert s["advances"] == 20.0
    assert s["final_payable"] == 70.0
    assert s["payments"] == []


def test_payroll_summary_requires_wage(people):
    with pytest.raises(ConsistencyViolation):
        svc.payroll_summary(people["emp"], 2026, 4)
