from qrledger_api.common.clock import utcnow
from qrledger_api.extensions import db

MERIT = "merit"
DEMERIT = "demerit"
ADVANCE = "advance"
LOAN_DEDUCTION = "loan_deduction"
CATEGORIES = (MERIT, DEMERIT, ADVANCE, LOAN_DEDUCTION)
ADDITIVE = (MERIT, ADVANCE)


class BonusEntry(db.Model):
    """
    Append-only adjustment line. `amount` is always the positive magnitude;
    the category decides the sign (merit/advance add, demerit/loan_deduction subtract).
    """
    __tablename__ = "bonus_entries"

    id = db.Column(db.Integer, primary_key=True)
    employment_id = db.Column(db.Integer, db.ForeignKey("employments.id", ondelete="CASCADE"), nullable=False, index=True)
    period   = db.Column(db.String(7), nullable=False)  # YYYY-MM (pay period tag)

    category = db.Column(db.String(20), nullable=False)
    amount   = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    reason   = db.Column(db.String(255))

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint("category in ('merit','demerit','advance','loan_deduction')", name="ck_bonus_category"),
        db.CheckConstraint("amount > 0", name="ck_bonus_amount_pos"),
        db.Index("ix_bonus_employment_period", "employment_id", "period"),
    )

    @property
    def signed_amount(self):
        return self.amount if self.category in ADDITIVE else -self.amount

    def to_dict(self):
        return {
            "id": self.id,
            "employment_id": self.employment_id,
            "period": self.period,
            "category": self.category,
            "amount": float(self.amount),
            "signed_amount": float(self.signed_amount),
            "currency": self.currency,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
