from qrledger_api.common.clock import utcnow
from qrledger_api.extensions import db

ABSENT = "absent"                      # derived only, never stored
PRESENT_PENDING = "present_pending"
PRESENT_COMPLETE = "present_complete"
LEAVE = "leave"
SICK_LEAVE = "sick_leave"
LEAVE_STATES = (LEAVE, SICK_LEAVE)


class AttendanceRecord(db.Model):
    __tablename__ = "attendance_records"

    id = db.Column(db.Integer, primary_key=True)
    employment_id    = db.Column(db.Integer, db.ForeignKey("employments.id", ondelete="CASCADE"), nullable=False, index=True)
    employer_id      = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    employee_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    work_date        = db.Column(db.Date, nullable=False)

    status       = db.Column(db.String(20), nullable=False)
    login_time   = db.Column(db.DateTime, nullable=True)
    logout_time  = db.Column(db.DateTime, nullable=True)
    total_hours  = db.Column(db.Numeric(6, 2), nullable=True)
    scanned_at   = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.UniqueConstraint("employment_id", "work_date", name="uq_attendance_employment_date"),
        db.CheckConstraint(
            "status in ('present_pending','present_complete','leave','sick_leave')",
            name="ck_attendance_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "employment_id": self.employment_id,
            "date": self.work_date.isoformat(),
            "status": self.status,
            "login_time": self.login_time.isoformat() if self.login_time else None,
            "logout_time": self.logout_time.isoformat() if self.logout_time else None,
            "total_hours": float(self.total_hours) if self.total_hours is not None else None,
        }
