# qrledger_api/models/transaction.py
from __future__ import annotations

from typing import Any, Dict

from qrledger_api.common.clock import utcnow
from qrledger_api.extensions import db

PAY_WAGES = "pay_wages"
SETTLE_LOAN = "settle_loan"
FORECLOSE_LOAN = "foreclose_loan"
GRANT_LOAN = "grant_loan"
PAY_CONTRACT_WAGES = "pay_contract_wages"
MARK_ATTENDANCE = "mark_attendance"
KINDS = (PAY_WAGES, SETTLE_LOAN, FORECLOSE_LOAN, GRANT_LOAN, PAY_CONTRACT_WAGES, MARK_ATTENDANCE)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED)

UNIVERSAL = "universal"


class Transaction(db.Model):
    """
    One redeemable token. Created pending by the issuer; moves to completed
    exactly once through a conditional update, or to cancelled by the issuer.
    Neither terminal state ever goes back to pending.
    """

    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(255), nullable=False, unique=True, index=True)
    kind = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    employer_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    subject = db.Column(db.String(32), nullable=False)   # employment id or 'universal'
    employment_id = db.Column(db.Integer, db.ForeignKey("employments.id", ondelete="SET NULL"), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    redeemed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    issuer_notified_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.CheckConstraint("status in ('pending','completed','cancelled')", name="ck_tx_status"),
        db.Index("ix_tx_employer_status", "employer_id", "status"),
    )

    @property
    def is_universal(self) -> bool:
        return self.subject == UNIVERSAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "token": self.token,
            "kind": self.kind,
            "status": self.status,
            "employer_id": self.employer_id,
            "subject": self.subject,
            "employment_id": self.employment_id,
            "payload": self.payload or {},
            "redeemed_by": self.redeemed_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "issuer_notified_at": self.issuer_notified_at.isoformat() if self.issuer_notified_at else None,
        }
