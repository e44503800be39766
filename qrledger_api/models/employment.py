from qrledger_api.common.clock import utcnow
from qrledger_api.extensions import db

FULL_TIME = "full_time"
PART_TIME = "part_time"
CONTRACT = "contract"
EMPLOYMENT_TYPES = (FULL_TIME, PART_TIME, CONTRACT)


class Employment(db.Model):
    """Link between an employer and an employee, created by redeeming a linking token."""
    __tablename__ = "employments"

    id = db.Column(db.Integer, primary_key=True)
    employer_id      = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    employee_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    employment_type        = db.Column(db.String(20), nullable=False, default=FULL_TIME)  # full_time/part_time/contract
    working_hours_per_day  = db.Column(db.Numeric(5, 2), nullable=True)
    working_days_per_month = db.Column(db.Integer, nullable=True)   # part-time only
    status = db.Column(db.String(16), nullable=False, default="active")  # active/inactive

    linked_at  = db.Column(db.DateTime, nullable=False, default=utcnow)
    ended_at   = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.UniqueConstraint("employer_id", "employee_user_id", name="uq_employment_pair"),
        db.CheckConstraint("employment_type in ('full_time','part_time','contract')", name="ck_employment_type"),
    )

    employer = db.relationship("User", foreign_keys=[employer_id], lazy="joined")
    employee = db.relationship("User", foreign_keys=[employee_user_id], lazy="joined")

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self):
        return {
            "id": self.id,
            "employer_id": self.employer_id,
            "employee_user_id": self.employee_user_id,
            "employee_name": self.employee.full_name if self.employee else None,
            "employment_type": self.employment_type,
            "working_hours_per_day": float(self.working_hours_per_day) if self.working_hours_per_day is not None else None,
            "working_days_per_month": self.working_days_per_month,
            "status": self.status,
            "linked_at": self.linked_at.isoformat() if self.linked_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }
