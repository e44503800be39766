from flask import Blueprint, current_app, request
from flask_jwt_extended import create_access_token, jwt_required

from qrledger_api.common.auth import current_user
from qrledger_api.common.http import ok, fail
from qrledger_api.extensions import db
from qrledger_api.models.user import ROLES, User

bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _token_for(u: User) -> str:
    return create_access_token(
        identity=str(u.id),
        additional_claims={"role": u.role, "email": u.email, "name": u.full_name},
    )


@bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    full_name = (data.get("full_name") or "").strip()
    role = (data.get("role") or "").strip().lower()

    errors = {}
    if not email or "@" not in email:
        errors["email"] = "valid email is required"
    if len(password) < 6:
        errors["password"] = "at least 6 characters"
    if not full_name:
        errors["full_name"] = "required"
    if role not in ROLES:
        errors["role"] = f"one of {', '.join(ROLES)}"
    if errors:
        return fail("Validation failed", status=422, errors=errors)

    if User.query.filter_by(email=email).first():
        return fail("Email already registered", status=409, code="EMAIL_TAKEN")

    u = User(
        email=email,
        full_name=full_name,
        role=role,
        phone=(data.get("phone") or "").strip() or None,
        currency=(data.get("currency") or current_app.config["DEFAULT_CURRENCY"]).strip().upper()[:3],
    )
    u.set_password(password)
    db.session.add(u)
    db.session.commit()
    return ok({"user": u.to_dict(), "access": _token_for(u)}, status=201)


@bp.post("/login")
def login():
    data = request.get_json(silent=True, force=True)
    if not isinstance(data, dict):
        data = {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    u = User.query.filter_by(email=email).first()
    if not u or not u.check_password(password):
        return fail("Invalid credentials", status=401)
    return ok({"user": u.to_dict(), "access": _token_for(u)})


@bp.get("/me")
@jwt_required()
def me():
    u = current_user()
    if not u:
        return fail("User not found", status=404)
    return ok(u.to_dict())
