from qrledger_api.common.clock import utcnow
from werkzeug.security import generate_password_hash, check_password_hash

from qrledger_api.extensions import db

ROLE_EMPLOYER = "employer"
ROLE_EMPLOYEE = "employee"
ROLES = (ROLE_EMPLOYER, ROLE_EMPLOYEE)


class User(db.Model):
    __tablename__ = "users"

    id            = db.Column(db.Integer, primary_key=True)
    email         = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name     = db.Column(db.String(255), nullable=False)
    phone         = db.Column(db.String(32), nullable=True)
    role          = db.Column(db.String(16), nullable=False, default=ROLE_EMPLOYEE)  # employer/employee
    currency      = db.Column(db.String(3), nullable=False, default="USD")
    created_at    = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.CheckConstraint("role in ('employer','employee')", name="ck_user_role"),
    )

    # --- helpers ---
    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    @property
    def contact(self) -> str:
        """Contact string carried in linking tokens."""
        return self.email or self.phone or ""

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role,
            "currency": self.currency,
        }
