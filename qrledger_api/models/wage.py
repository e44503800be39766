from qrledger_api.common.clock import utcnow
from qrledger_api.extensions import db


class WageRecord(db.Model):
    __tablename__ = "wage_records"

    id = db.Column(db.Integer, primary_key=True)
    employment_id = db.Column(db.Integer, db.ForeignKey("employments.id", ondelete="CASCADE"), nullable=False, unique=True)

    monthly_wage     = db.Column(db.Numeric(12, 2), nullable=False)
    currency         = db.Column(db.String(3), nullable=False, default="USD")
    hourly_rate      = db.Column(db.Numeric(12, 4), nullable=False, default=0)   # part-time only, 0 otherwise
    deductions_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)   # demerits + loan deductions
    last_paid_at     = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    employment = db.relationship("Employment", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "employment_id": self.employment_id,
            "monthly_wage": float(self.monthly_wage),
            "currency": self.currency,
            "hourly_rate": float(self.hourly_rate or 0),
            "deductions_total": float(self.deductions_total or 0),
            "last_paid_at": self.last_paid_at.isoformat() if self.last_paid_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Payment(db.Model):
    """Append-only payout line: regular wage payouts and one-off contract payments."""
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    employment_id  = db.Column(db.Integer, db.ForeignKey("employments.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)

    kind     = db.Column(db.String(16), nullable=False)   # wage | contract
    amount   = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    period   = db.Column(db.String(7), nullable=True)     # YYYY-MM for wage payouts
    paid_at  = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint("kind in ('wage','contract')", name="ck_payment_kind"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "employment_id": self.employment_id,
            "transaction_id": self.transaction_id,
            "kind": self.kind,
            "amount": float(self.amount),
            "currency": self.currency,
            "period": self.period,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
        }
