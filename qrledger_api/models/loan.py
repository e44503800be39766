from qrledger_api.common.clock import utcnow
from qrledger_api.extensions import db

LOAN_ACTIVE = "active"
LOAN_PAID = "paid"
LOAN_FORECLOSED = "foreclosed"
LOAN_CLOSED_STATES = (LOAN_PAID, LOAN_FORECLOSED)


class Loan(db.Model):
    __tablename__ = "loans"

    id = db.Column(db.Integer, primary_key=True)
    employment_id  = db.Column(db.Integer, db.ForeignKey("employments.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)

    principal         = db.Column(db.Numeric(12, 2), nullable=False)
    interest_rate     = db.Column(db.Numeric(6, 2), nullable=False, default=0)   # percent
    total_amount      = db.Column(db.Numeric(12, 2), nullable=False)            # principal * (1 + rate/100)
    remaining_amount  = db.Column(db.Numeric(12, 2), nullable=True)
    monthly_deduction = db.Column(db.Numeric(12, 2), nullable=False)
    tenure_months     = db.Column(db.Integer, nullable=False)
    currency          = db.Column(db.String(3), nullable=False, default="USD")
    status            = db.Column(db.String(16), nullable=False, default=LOAN_ACTIVE)  # active|paid|foreclosed

    granted_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    closed_at  = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.CheckConstraint("status in ('active','paid','foreclosed')", name="ck_loan_status"),
        db.CheckConstraint("remaining_amount is null or remaining_amount >= 0", name="ck_loan_remaining_nonneg"),
        db.Index("ix_loan_employment_status", "employment_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == LOAN_ACTIVE

    def to_dict(self):
        return {
            "id": self.id,
            "employment_id": self.employment_id,
            "principal": float(self.principal),
            "interest_rate": float(self.interest_rate),
            "total_amount": float(self.total_amount),
            "remaining_amount": float(self.remaining_amount) if self.remaining_amount is not None else None,
            "monthly_deduction": float(self.monthly_deduction),
            "tenure_months": self.tenure_months,
            "currency": self.currency,
            "status": self.status,
            "granted_at": self.granted_at.isoformat() if self.granted_at else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }
