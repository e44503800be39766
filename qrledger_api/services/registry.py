# qrledger_api/services/registry.py
"""
Transaction registry: issues pending transactions and claims them exactly once.

The claim is a single conditional UPDATE (... WHERE status = 'pending'). Of any
number of concurrent redemptions of one token, only the one whose UPDATE
matches a row proceeds; the rest see AlreadyRedeemed. Every ledger write is
reachable only through a successful claim, so no other locking is needed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional

from flask import current_app
from sqlalchemy import update

from qrledger_api.common.clock import epoch_ms, utcnow
from qrledger_api.common.errors import (
    AlreadyRedeemed,
    ConsistencyViolation,
    InsufficientData,
    NotFound,
    SubjectMismatch,
    TokenInactive,
)
from qrledger_api.extensions import db
from qrledger_api.models.employment import CONTRACT, Employment
from qrledger_api.models.transaction import (
    KINDS,
    MARK_ATTENDANCE,
    PAY_CONTRACT_WAGES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    UNIVERSAL,
    Transaction,
)
from qrledger_api.services import tx_metadata
from qrledger_api.services.token_codec import TxToken, decode_transaction, encode_transaction

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedeemerContext:
    user_id: int
    now: Optional[datetime] = None

    def at(self) -> datetime:
        return self.now or utcnow()


@dataclass(frozen=True)
class RedeemedTransaction:
    transaction: Transaction
    token: TxToken
    employment: Employment
    payload: tx_metadata.Payload
    redeemed_at: datetime

    @property
    def kind(self) -> str:
        return self.transaction.kind


def _active_employment(employer_id: int, employee_user_id: int) -> Optional[Employment]:
    return Employment.query.filter_by(
        employer_id=employer_id, employee_user_id=employee_user_id, status="active"
    ).first()


class TransactionRegistry:

    def __init__(self, ttl_seconds: Optional[int] = None):
        self._ttl = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        if self._ttl is not None:
            return self._ttl
        return int(current_app.config.get("TOKEN_TTL_SECONDS", 0) or 0)

    # ---------- issue ----------

    def create(
        self,
        kind: str,
        issuer_id: int,
        employment: Optional[Employment],
        payload: Optional[dict] = None,
        attendance_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Transaction:
        """
        Persist a pending transaction and commit. `employment=None` issues a
        universal attendance token that any active employee of the issuer may
        redeem (once).
        """
        if kind not in KINDS:
            raise InsufficientData(f"Unknown transaction kind '{kind}'")
        if employment is None and kind != MARK_ATTENDANCE:
            raise InsufficientData(f"{kind} must be addressed to an employee")
        if employment is not None:
            if employment.employer_id != issuer_id:
                raise NotFound("Employee not found")
            if not employment.is_active:
                raise ConsistencyViolation("Employee is no longer linked to this employer")
            if kind == PAY_CONTRACT_WAGES and employment.employment_type != CONTRACT:
                raise ConsistencyViolation("Contract payments are only for contract employees")
        if attendance_date is not None and kind != MARK_ATTENDANCE:
            raise InsufficientData("Only attendance tokens carry a date")

        raw = dict(payload or {})
        if attendance_date is not None:
            raw["attendance_date"] = attendance_date.isoformat()
        parsed = tx_metadata.parse_payload(kind, raw)

        now = now or utcnow()
        subject = str(employment.id) if employment is not None else UNIVERSAL
        tok = TxToken(kind, str(issuer_id), subject, epoch_ms(now), attendance_date)
        text = encode_transaction(tok)
        # same kind/subject twice in one millisecond: bump the timestamp
        while Transaction.query.filter_by(token=text).first() is not None:
            tok = TxToken(kind, tok.employer_id, subject, tok.timestamp_ms + 1, attendance_date)
            text = encode_transaction(tok)

        ttl = self.ttl_seconds
        tx = Transaction(
            token=text,
            kind=kind,
            status=STATUS_PENDING,
            employer_id=issuer_id,
            subject=subject,
            employment_id=employment.id if employment is not None else None,
            payload=tx_metadata.to_json(parsed),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl) if ttl > 0 else None,
        )
        db.session.add(tx)
        db.session.commit()
        log.info("[registry] issued %s #%s by employer=%s subject=%s", kind, tx.id, issuer_id, subject)
        return tx

    # ---------- redeem ----------

    def redeem(self, token_text: str, ctx: RedeemerContext) -> RedeemedTransaction:
        """
        Validate and claim a token. Does not commit: the caller applies the
        ledger effect in the same unit of work and commits (or rolls back,
        which also releases the claim).
        """
        tok = decode_transaction(token_text)
        now = ctx.at()

        tx = Transaction.query.filter_by(token=token_text.strip()).first()
        if tx is None:
            raise NotFound("QR code not found")
        if tx.status == STATUS_COMPLETED:
            raise AlreadyRedeemed("QR code already used")
        if tx.status == STATUS_CANCELLED:
            raise TokenInactive("QR code was cancelled by the issuer")
        if tx.expires_at is not None and now >= tx.expires_at:
            raise TokenInactive("QR code has expired")

        emp = _active_employment(tx.employer_id, ctx.user_id)
        if emp is None:
            raise NotFound("You are not linked to this employer")
        if not tx.is_universal and str(emp.id) != tx.subject:
            raise SubjectMismatch("This QR code is not for you")

        payload = tx_metadata.parse_payload(tx.kind, tx.payload)

        res = db.session.execute(
            update(Transaction)
            .where(Transaction.id == tx.id, Transaction.status == STATUS_PENDING)
            .values(status=STATUS_COMPLETED, completed_at=now, redeemed_by=ctx.user_id,
                    employment_id=emp.id)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            log.info("[registry] lost claim race on #%s (user=%s)", tx.id, ctx.user_id)
            raise AlreadyRedeemed("QR code already used")

        db.session.refresh(tx)
        log.info("[registry] claimed %s #%s by user=%s", tx.kind, tx.id, ctx.user_id)
        return RedeemedTransaction(tx, tok, emp, payload, now)

    # ---------- issuer-side helpers ----------

    def get(self, transaction_id: int, issuer_id: Optional[int] = None) -> Transaction:
        tx = db.session.get(Transaction, transaction_id)
        if tx is None or (issuer_id is not None and tx.employer_id != issuer_id):
            raise NotFound("Transaction not found")
        return tx

    def list_pending(self, issuer_id: int) -> List[Transaction]:
        return (
            Transaction.query
            .filter(Transaction.employer_id == issuer_id, Transaction.status == STATUS_PENDING)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .all()
        )

    def cancel(self, transaction_id: int, issuer_id: int) -> Transaction:
        tx = self.get(transaction_id, issuer_id)
        res = db.session.execute(
            update(Transaction)
            .where(Transaction.id == tx.id, Transaction.status == STATUS_PENDING)
            .values(status=STATUS_CANCELLED)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.session.rollback()
            db.session.refresh(tx)
            if tx.status == STATUS_CANCELLED:
                raise TokenInactive("Transaction is already cancelled")
            raise AlreadyRedeemed("Transaction was already redeemed")
        db.session.commit()
        db.session.refresh(tx)
        log.info("[registry] cancelled #%s by employer=%s", tx.id, issuer_id)
        return tx
