# qrledger_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Optional

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from qrledger_api.common.http import fail
from qrledger_api.extensions import db
from qrledger_api.models.user import User


# ---------- helpers ----------

def current_user_id() -> Optional[int]:
    """
    Identity is issued as the stringified user id at login.
    """
    ident = get_jwt_identity()
    if ident is None:
        return None
    try:
        return int(ident)
    except (TypeError, ValueError):
        return None


def current_user() -> Optional[User]:
    uid = current_user_id()
    return db.session.get(User, uid) if uid is not None else None


# ---------- decorators ----------

def requires_roles(*codes: str):
    """
    Require that the current user has AT LEAST ONE of the given roles
    ('employer' | 'employee').
    - Uses the role claim in the JWT if present; falls back to DB.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            claims = get_jwt() or {}
            role = claims.get("role")

            if not role:
                # fallback DB
                user = current_user()
                if not user:
                    return fail("Unauthorized", status=401)
                role = user.role

            if codes and role not in codes:
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
