import math
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from qrledger_api.common.errors import (
    AlreadyRedeemed,
    ConsistencyViolation,
    InsufficientData,
    NotFound,
    SubjectMismatch,
    TokenInactive,
)
from qrledger_api.extensions import db
from qrledger_api.models.loan import Loan
from qrledger_api.models.statement import Statement
from qrledger_api.models.transaction import (
    FORECLOSE_LOAN,
    GRANT_LOAN,
    MARK_ATTENDANCE,
    PAY_CONTRACT_WAGES,
    PAY_WAGES,
    SETTLE_LOAN,
    Transaction,
)
from qrledger_api.models.user import ROLE_EMPLOYEE
from qrledger_api.models.wage import Payment
from qrledger_api.services import employment as employment_svc, statements
from qrledger_api.services.ledger import LedgerOrchestrator
from qrledger_api.services.notifications import STATEMENTS, TRANSACTIONS
from qrledger_api.services.registry import RedeemerContext, TransactionRegistry

from conftest import link, make_user

NOW = datetime(2026, 3, 15, 10, 0)


def _issue(people, kind, payload=None, emp=None, attendance_date=None, now=NOW, ttl=None):
    return TransactionRegistry(ttl).create(
        kind, people["boss"].id, emp if emp is not None else people["emp"], payload, attendance_date, now=now
    )


def _redeem(token, user, now=NOW):
    return LedgerOrchestrator().redeem(token, RedeemerContext(user.id, now=now))


def _statements(user, kind):
    return Statement.query.filter_by(user_id=user.id, kind=kind).all()


def _grant(people, amount=1000, rate=10, monthly=110):
    tx = _issue(people, GRANT_LOAN, {"amount": amount, "interest_rate": rate, "monthly_deduction": monthly})
    return _redeem(tx.token, people["alice"]).detail["loan"]["id"]


# ---------- wages ----------

def test_pay_wages_end_to_end(people):
    emp, alice = people["emp"], people["alice"]
    employment_svc.set_wage(emp, "3000", now=NOW)
    employment_svc.add_adjustment(emp, "merit", 200, now=NOW)
    employment_svc.add_adjustment(emp, "demerit", 50, now=NOW)

    tx = _issue(people, PAY_WAGES)
    assert tx.status == "pending"
    assert tx.token.startswith(f"qr:pay_wages:{people['boss'].id}:{emp.id}:")

    result = _redeem(tx.token, alice)
    assert result.transaction.status == "completed"
    assert result.transaction.redeemed_by == alice.id
    assert result.detail["paid"] == 3150.0

    pay = Payment.query.filter_by(employment_id=emp.id, kind="wage").one()
    assert pay.amount == Decimal("3150.00")
    assert pay.period == "2026-03"

    [st] = _statements(alice, "wage_payment")
    assert st.transaction_id == tx.id
    assert "Net Payable: USD 3150.00" in st.message
    assert "15/03/2026" in st.message


def test_second_redemption_is_rejected_without_side_effects(people):
    employment_svc.set_wage(people["emp"], "3000", now=NOW)
    tx = _issue(people, PAY_WAGES)
    _redeem(tx.token, people["alice"])

    with pytest.raises(AlreadyRedeemed):
        _redeem(tx.token, people["alice"])
    assert len(_statements(people["alice"], "wage_payment")) == 1
    assert Payment.query.count() == 1


def test_pay_wages_without_wage_record_leaves_token_pending(people):
    tx = _issue(people, PAY_WAGES)
    with pytest.raises(ConsistencyViolation):
        _redeem(tx.token, people["alice"])

    again = db.session.get(Transaction, tx.id)
    assert again.status == "pending"
    assert again.completed_at is None
    assert _statements(people["alice"], "wage_payment") == []


def _boom(*args, **kwargs):
    raise RuntimeError("statement store unavailable")


def test_statement_failure_rolls_back_wage_payment(people, monkeypatch):
    emp = people["emp"]
    employment_svc.set_wage(emp, "3000", now=NOW)
    tx = _issue(people, PAY_WAGES)
    monkeypatch.setattr(statements, "emit", _boom)

    with pytest.raises(RuntimeError):
        _redeem(tx.token, people["alice"])

    assert db.session.get(Transaction, tx.id).status == "pending"
    assert Payment.query.count() == 0
    assert employment_svc.get_wage(emp).last_paid_at is None
    assert _statements(people["alice"], "wage_payment") == []


def test_statement_failure_rolls_back_loan_grant(people, monkeypatch):
    tx = _issue(people, GRANT_LOAN, {"amount": 1000, "interest_rate": 10, "monthly_deduction": 110})
    monkeypatch.setattr(statements, "emit", _boom)

    with pytest.raises(RuntimeError):
        _redeem(tx.token, people["alice"])

    assert db.session.get(Transaction, tx.id).status == "pending"
    assert Loan.query.count() == 0


# ---------- addressing ----------

def test_token_for_someone_else_is_subject_mismatch(people):
    link(people["boss"], people["bob"])
    tx = _issue(people, PAY_WAGES)
    with pytest.raises(SubjectMismatch):
        _redeem(tx.token, people["bob"])
    assert db.session.get(Transaction, tx.id).status == "pending"


def test_unlinked_redeemer_is_not_found(people):
    tx = _issue(people, PAY_WAGES)
    with pytest.raises(NotFound):
        _redeem(tx.token, people["bob"])


def test_unknown_token_is_not_found(people):
    with pytest.raises(NotFound):
        _redeem(f"qr:pay_wages:{people['boss'].id}:{people['emp'].id}:1", people["alice"])


def test_tokens_issued_in_the_same_millisecond_differ(people):
    a = _issue(people, PAY_WAGES)
    b = _issue(people, PAY_WAGES)
    assert a.token != b.token


# ---------- loans ----------

def test_grant_loan_creates_amortized_loan(people):
    loan_id = _grant(people)
    loan = db.session.get(Loan, loan_id)
    assert loan.total_amount == Decimal("1100.00")
    assert loan.remaining_amount == Decimal("1100.00")
    assert loan.tenure_months == 10
    assert loan.status == "active"
    [st] = _statements(people["alice"], "loan_agreement")
    assert "Tenure: 10 months" in st.message


def test_grant_loan_by_tenure_keeps_schedule_whole(people):
    tx = _issue(people, GRANT_LOAN, {"amount": "1000", "interest_rate": "0", "tenure_months": 3})
    loan = db.session.get(Loan, _redeem(tx.token, people["alice"]).detail["loan"]["id"])
    assert loan.monthly_deduction == Decimal("333.34")
    assert loan.tenure_months == 3
    assert math.ceil(loan.total_amount / loan.monthly_deduction) == loan.tenure_months
    assert loan.monthly_deduction * loan.tenure_months >= loan.total_amount


def test_settle_closes_every_active_loan(people):
    first, second = _grant(people), _grant(people, amount=500, rate=0, monthly=100)
    tx = _issue(people, SETTLE_LOAN)
    result = _redeem(tx.token, people["alice"])

    assert result.detail["settled"] == 1600.0
    for loan_id in (first, second):
        loan = db.session.get(Loan, loan_id)
        assert loan.status == "paid"
        assert loan.remaining_amount == 0

    with pytest.raises(NotFound):
        _redeem(_issue(people, SETTLE_LOAN).token, people["alice"])


def test_foreclose_selected_loans_only(people):
    first, second = _grant(people), _grant(people, amount=500, rate=0, monthly=100)
    tx = _issue(people, FORECLOSE_LOAN, {"loan_ids": [first, first]})
    result = _redeem(tx.token, people["alice"])

    assert result.detail["loans_closed"] == [first]
    assert db.session.get(Loan, first).status == "foreclosed"
    assert db.session.get(Loan, second).status == "active"
    [st] = _statements(people["alice"], "loan_foreclosure")
    assert "Number of Loans Closed: 1" in st.message


def test_foreclose_already_closed_loans_is_rejected(people):
    first = _grant(people)
    _redeem(_issue(people, FORECLOSE_LOAN, {"loan_ids": [first]}).token, people["alice"])

    tx = _issue(people, FORECLOSE_LOAN, {"loan_ids": [first]})
    with pytest.raises(ConsistencyViolation):
        _redeem(tx.token, people["alice"])
    assert db.session.get(Transaction, tx.id).status == "pending"


def test_foreclose_unknown_loan_is_not_found(people):
    tx = _issue(people, FORECLOSE_LOAN, {"loan_ids": [999]})
    with pytest.raises(NotFound):
        _redeem(tx.token, people["alice"])


def test_foreclose_needs_loan_ids(people):
    with pytest.raises(InsufficientData):
        _issue(people, FORECLOSE_LOAN, {"loan_ids": []})


# ---------- contract ----------

def test_contract_payment(people):
    carol = make_user("carol@acme.test", ROLE_EMPLOYEE, "Carol")
    emp = link(people["boss"], carol, "contract")
    tx = _issue(people, PAY_CONTRACT_WAGES, {"amount": "500"}, emp=emp)
    _redeem(tx.token, carol)

    pay = Payment.query.filter_by(employment_id=emp.id).one()
    assert (pay.kind, pay.amount) == ("contract", Decimal("500.00"))
    assert len(_statements(carol, "contract_payment")) == 1


def test_contract_payment_only_for_contract_employees(people):
    with pytest.raises(ConsistencyViolation):
        _issue(people, PAY_CONTRACT_WAGES, {"amount": "500"})


# ---------- attendance ----------

def test_universal_attendance_token_is_single_use(people):
    tx = TransactionRegistry().create(MARK_ATTENDANCE, people["boss"].id, None, now=NOW)
    assert tx.subject == "universal"

    result = _redeem(tx.token, people["alice"])
    assert result.detail["to"] == "present_pending"
    assert result.transaction.employment_id == people["emp"].id
    assert len(_statements(people["alice"], "attendance")) == 1

    link(people["boss"], people["bob"])
    with pytest.raises(AlreadyRedeemed):
        _redeem(tx.token, people["bob"])


def test_logout_scan_completes_day_without_new_statement(people):
    _redeem(_issue(people, MARK_ATTENDANCE).token, people["alice"])
    later = NOW + timedelta(hours=8)
    result = _redeem(_issue(people, MARK_ATTENDANCE, now=later).token, people["alice"], now=later)

    assert result.detail["to"] == "present_complete"
    assert result.statement is None
    assert len(_statements(people["alice"], "attendance")) == 1


def test_backfill_attendance_token(people):
    tx = _issue(people, MARK_ATTENDANCE, attendance_date=date(2026, 3, 2))
    assert ":2026-03-02:" in tx.token
    result = _redeem(tx.token, people["alice"])
    assert result.detail["attendance"]["date"] == "2026-03-02"
    assert result.detail["attendance"]["total_hours"] == 8.0


# ---------- issuer side ----------

def test_cancelled_token_cannot_be_redeemed(people):
    tx = _issue(people, PAY_WAGES)
    registry = TransactionRegistry()
    assert registry.cancel(tx.id, people["boss"].id).status == "cancelled"

    with pytest.raises(TokenInactive):
        _redeem(tx.token, people["alice"])
    with pytest.raises(TokenInactive):
        registry.cancel(tx.id, people["boss"].id)


def test_completed_token_cannot_be_cancelled(people):
    employment_svc.set_wage(people["emp"], "3000", now=NOW)
    tx = _issue(people, PAY_WAGES)
    _redeem(tx.token, people["alice"])
    with pytest.raises(AlreadyRedeemed):
        TransactionRegistry().cancel(tx.id, people["boss"].id)


def test_expired_token_is_inactive(people):
    employment_svc.set_wage(people["emp"], "3000", now=NOW)
    tx = _issue(people, PAY_WAGES, ttl=60)
    assert tx.expires_at == NOW + timedelta(seconds=60)
    with pytest.raises(TokenInactive):
        _redeem(tx.token, people["alice"], now=NOW + timedelta(minutes=2))
    assert db.session.get(Transaction, tx.id).status == "pending"


def test_acknowledge_is_idempotent(people):
    employment_svc.set_wage(people["emp"], "3000", now=NOW)
    tx = _issue(people, PAY_WAGES)
    orch = LedgerOrchestrator()
    with pytest.raises(ConsistencyViolation):
        orch.acknowledge(tx.id, people["boss"].id)

    _redeem(tx.token, people["alice"])
    first = orch.acknowledge(tx.id, people["boss"].id).issuer_notified_at
    second = orch.acknowledge(tx.id, people["boss"].id).issuer_notified_at
    assert first is not None
    assert first == second
    assert Payment.query.count() == 1


def test_change_events_reach_both_parties(app, people):
    employment_svc.set_wage(people["emp"], "3000", now=NOW)
    bus = app.extensions["ledger_bus"]
    seen = []

    def broken(event):
        raise RuntimeError("subscriber down")

    bus.subscribe(people["boss"].id, TRANSACTIONS, broken)
    bus.subscribe(people["boss"].id, TRANSACTIONS, lambda e: seen.append(("boss", e.table, e.record_id)))
    bus.subscribe(people["alice"].id, STATEMENTS, lambda e: seen.append(("alice", e.table, e.data["kind"])))
    bus.subscribe(people["bob"].id, None, lambda e: seen.append(("bob", e.table)))

    tx = _issue(people, PAY_WAGES)
    _redeem(tx.token, people["alice"])

    assert ("boss", TRANSACTIONS, tx.id) in seen
    assert ("alice", STATEMENTS, "wage_payment") in seen
    assert not [s for s in seen if s[0] == "bob"]
