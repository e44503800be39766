# qrledger_api/services/ledger.py
"""
LedgerOrchestrator: claim a transaction token, apply its effect to the
ledger, emit the employee's statement, commit all of it as one unit of work,
then notify subscribers.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from flask import current_app
from sqlalchemy import update

from qrledger_api.common.clock import utcnow
from qrledger_api.common.errors import ConsistencyViolation, LedgerError, NotFound
from qrledger_api.extensions import db
from qrledger_api.models.loan import LOAN_ACTIVE, LOAN_FORECLOSED, LOAN_PAID, Loan
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
from qrledger_api.models.wage import Payment
from qrledger_api.services import attendance_tracker, employment as employment_svc, payroll_calc, statements
from qrledger_api.services.notifications import (
    ATTENDANCE,
    STATEMENTS,
    TRANSACTIONS,
    ChangeBus,
    ChangeEvent,
)
from qrledger_api.services.registry import RedeemedTransaction, RedeemerContext, TransactionRegistry

log = logging.getLogger(__name__)


@dataclass
class Effect:
    """What one redemption did to the ledger."""
    statement: Optional[Statement] = None
    detail: Dict[str, Any] = field(default_factory=dict)
    events: List[ChangeEvent] = field(default_factory=list)


@dataclass
class RedemptionResult:
    transaction: Transaction
    statement: Optional[Statement]
    detail: Dict[str, Any]

    def to_dict(self) -> dict:
        return {
            "transaction": self.transaction.to_dict(),
            "statement": self.statement.to_dict() if self.statement else None,
            "effect": self.detail,
        }


class LedgerOrchestrator:

    def __init__(self, registry: Optional[TransactionRegistry] = None, bus: Optional[ChangeBus] = None):
        self.registry = registry or TransactionRegistry()
        self._bus = bus
        self._handlers: Dict[str, Callable[[RedeemedTransaction], Effect]] = {
            PAY_WAGES: self._pay_wages,
            SETTLE_LOAN: self._settle_loan,
            FORECLOSE_LOAN: self._foreclose_loan,
            GRANT_LOAN: self._grant_loan,
            PAY_CONTRACT_WAGES: self._pay_contract_wages,
            MARK_ATTENDANCE: self._mark_attendance,
        }

    @property
    def bus(self) -> Optional[ChangeBus]:
        if self._bus is not None:
            return self._bus
        return current_app.extensions.get("ledger_bus")

    # ---------- redemption ----------

    def redeem(self, token_text: str, ctx: RedeemerContext) -> RedemptionResult:
        """
        Claim + apply + commit. Any failure after the claim rolls the whole
        unit back, so the token stays pending and nothing partial is written.
        """
        try:
            redeemed = self.registry.redeem(token_text, ctx)
            effect = self.apply(redeemed)
            db.session.commit()
        except LedgerError as e:
            db.session.rollback()
            log.info("[ledger] redemption rejected (%s): %s", e.code, e.message)
            raise
        except Exception:
            db.session.rollback()
            raise

        tx = redeemed.transaction
        log.info("[ledger] %s #%s applied for employment=%s", tx.kind, tx.id, redeemed.employment.id)

        events = [ChangeEvent(tx.employer_id, TRANSACTIONS, "update", tx.id,
                              {"kind": tx.kind, "status": tx.status, "employment_id": redeemed.employment.id})]
        if effect.statement is not None:
            events.append(ChangeEvent(effect.statement.user_id, STATEMENTS, "insert", effect.statement.id,
                                      {"kind": effect.statement.kind, "transaction_id": tx.id}))
        events.extend(effect.events)
        if self.bus is not None:
            self.bus.publish_all(events)

        return RedemptionResult(tx, effect.statement, effect.detail)

    def apply(self, redeemed: RedeemedTransaction) -> Effect:
        """Dispatch on the transaction kind. Never commits."""
        handler = self._handlers.get(redeemed.kind)
        if handler is None:
            raise NotFound(f"Unknown transaction kind '{redeemed.kind}'")
        return handler(redeemed)

    def _emit(self, r: RedeemedTransaction, kind: str, message: str) -> Statement:
        return statements.emit(r.employment.employee_user_id, kind, message, r.transaction.id)

    def _currency(self, r: RedeemedTransaction, explicit: Optional[str] = None) -> str:
        if explicit:
            return explicit
        wage = employment_svc.get_wage(r.employment)
        if wage is not None and wage.currency:
            return wage.currency
        return r.employment.employer.currency or current_app.config["DEFAULT_CURRENCY"]

    # ---------- per-kind effects ----------

    def _pay_wages(self, r: RedeemedTransaction) -> Effect:
        emp, now = r.employment, r.redeemed_at
        wage = employment_svc.get_wage(emp)
        if wage is None:
            raise ConsistencyViolation("No wage record found for this employee")

        b = employment_svc.pay_breakdown(emp, now.year, now.month, wage)
        net = payroll_calc.money(b["final_payable"])
        db.session.add(Payment(
            employment_id=emp.id,
            transaction_id=r.transaction.id,
            kind="wage",
            amount=net,
            currency=wage.currency,
            period=employment_svc.period_of(now),
            paid_at=now,
        ))
        wage.last_paid_at = now
        wage.updated_at = now

        st = self._emit(r, "wage_payment", statements.wage_payment_text(now, wage, net))
        return Effect(st, {"paid": float(net), "currency": wage.currency, "period": employment_svc.period_of(now)})

    def _settle_loan(self, r: RedeemedTransaction) -> Effect:
        loans = employment_svc.active_loans(r.employment)
        if not loans:
            raise NotFound("No active loans to settle")
        total = payroll_calc.money(payroll_calc.foreclose_total(loans))
        self._close(loans, LOAN_PAID, r.redeemed_at)

        currency = loans[0].currency or self._currency(r)
        st = self._emit(r, "loan_settlement",
                        statements.loan_settlement_text(r.redeemed_at, currency, total, len(loans)))
        return Effect(st, {"settled": float(total), "loans_closed": [l.id for l in loans]})

    def _foreclose_loan(self, r: RedeemedTransaction) -> Effect:
        ids = r.payload.loan_ids
        loans = (
            Loan.query
            .filter(Loan.id.in_(ids), Loan.employment_id == r.employment.id)
            .order_by(Loan.granted_at.asc(), Loan.id.asc())
            .all()
        )
        missing = sorted(set(ids) - {l.id for l in loans})
        if missing:
            raise NotFound(f"Loan(s) not found: {', '.join(str(i) for i in missing)}")

        active = [l for l in loans if l.status == LOAN_ACTIVE]
        if not active:
            raise ConsistencyViolation("Selected loans are already closed")
        skipped = [l.id for l in loans if l.status != LOAN_ACTIVE]
        total = payroll_calc.money(payroll_calc.foreclose_total(active))
        self._close(active, LOAN_FORECLOSED, r.redeemed_at)

        currency = active[0].currency or self._currency(r)
        st = self._emit(r, "loan_foreclosure",
                        statements.loan_foreclosure_text(r.redeemed_at, currency, total, len(active)))
        return Effect(st, {
            "foreclosed": float(total),
            "loans_closed": [l.id for l in active],
            "skipped": skipped,
        })

    @staticmethod
    def _close(loans: List[Loan], status: str, when):
        for loan in loans:
            loan.remaining_amount = payroll_calc.money(0)
            loan.status = status
            loan.closed_at = when

    def _grant_loan(self, r: RedeemedTransaction) -> Effect:
        p = r.payload
        am = payroll_calc.loan_amortization(p.amount, p.interest_rate, p.monthly_deduction, p.tenure_months)
        loan = Loan(
            employment_id=r.employment.id,
            transaction_id=r.transaction.id,
            principal=payroll_calc.money(am.principal),
            interest_rate=am.interest_rate,
            total_amount=payroll_calc.money(am.total),
            remaining_amount=payroll_calc.money(am.total),
            monthly_deduction=payroll_calc.money(am.monthly_deduction),
            tenure_months=am.tenure_months,
            currency=self._currency(r, p.currency),
            status=LOAN_ACTIVE,
            granted_at=r.redeemed_at,
        )
        db.session.add(loan)
        db.session.flush()

        st = self._emit(r, "loan_agreement",
                        statements.loan_agreement_text(r.redeemed_at, r.employment.employee.full_name, loan))
        return Effect(st, {"loan": loan.to_dict()})

    def _pay_contract_wages(self, r: RedeemedTransaction) -> Effect:
        p, now = r.payload, r.redeemed_at
        currency = self._currency(r, p.currency)
        amount = payroll_calc.money(p.amount)
        db.session.add(Payment(
            employment_id=r.employment.id,
            transaction_id=r.transaction.id,
            kind="contract",
            amount=amount,
            currency=currency,
            period=employment_svc.period_of(now),
            paid_at=now,
        ))
        st = self._emit(r, "contract_payment", statements.contract_payment_text(now, currency, amount))
        return Effect(st, {"paid": float(amount), "currency": currency})

    def _mark_attendance(self, r: RedeemedTransaction) -> Effect:
        day = r.token.attendance_date or r.payload.attendance_date
        t = attendance_tracker.record_scan(r.employment, r.redeemed_at, day)

        st = None
        if t.first_of_day:
            st = self._emit(r, "attendance", statements.attendance_text(t.record.work_date, t.record.login_time))
        ev = ChangeEvent(r.employment.employer_id, ATTENDANCE, "insert" if t.first_of_day else "update",
                         t.record.id, {"employment_id": r.employment.id, "status": t.to_state})
        return Effect(st, {"attendance": t.record.to_dict(), "from": t.from_state, "to": t.to_state}, [ev])

    # ---------- issuer acknowledgement ----------

    def acknowledge(self, transaction_id: int, issuer_id: int) -> Transaction:
        """
        The issuer has seen the completion. Idempotent; stamps
        issuer_notified_at the first time and touches nothing else.
        """
        tx = self.registry.get(transaction_id, issuer_id)
        if tx.completed_at is None:
            raise ConsistencyViolation("Transaction has not been redeemed yet")
        if tx.issuer_notified_at is None:
            db.session.execute(
                update(Transaction)
                .where(Transaction.id == tx.id, Transaction.issuer_notified_at.is_(None))
                .values(issuer_notified_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            db.session.refresh(tx)
        return tx
