import os

import pytest

from qrledger_api import create_app
from qrledger_api.extensions import db
from qrledger_api.models.user import ROLE_EMPLOYEE, ROLE_EMPLOYER, User
from qrledger_api.services import employment as employment_svc


def _mk_app(uri="sqlite:///:memory:"):
    os.environ["DATABASE_URL"] = uri
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture
def app():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(email, role=ROLE_EMPLOYEE, name=None, currency="USD"):
    u = User(email=email, full_name=name or email.split("@")[0].title(), role=role, currency=currency)
    u.set_password("secret123")
    db.session.add(u)
    db.session.commit()
    return u


def link(employer, employee, employment_type=None, hours=None, days=None):
    text = employment_svc.issue_link_token(employer, employment_type, hours, days)
    return employment_svc.redeem_link_token(text, employee)


@pytest.fixture
def people(app):
    """An employer with one linked full-time employee and one stranger employee."""
    boss = make_user("boss@acme.test", ROLE_EMPLOYER, "Acme Boss")
    alice = make_user("alice@acme.test", ROLE_EMPLOYEE, "Alice Smith")
    bob = make_user("bob@acme.test", ROLE_EMPLOYEE, "Bob Jones")
    emp = link(boss, alice)
    return {"boss": boss, "alice": alice, "bob": bob, "emp": emp}
