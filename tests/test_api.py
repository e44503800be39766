from qrledger_api.extensions import db
from qrledger_api.models.transaction import Transaction


def _register(client, email, role, name="Someone"):
    r = client.post("/api/v1/auth/register", json={
        "email": email, "password": "secret123", "full_name": name, "role": role,
    })
    assert r.status_code == 201, r.get_json()
    return {"Authorization": f"Bearer {r.get_json()['data']['access']}"}


def _linked(client):
    boss = _register(client, "boss@acme.test", "employer", "Acme Boss")
    alice = _register(client, "alice@acme.test", "employee", "Alice Smith")
    token = client.post("/api/v1/links", json={}, headers=boss).get_json()["data"]["token"]
    r = client.post("/api/v1/links/redeem", json={"token": token}, headers=alice)
    assert r.status_code == 201
    return boss, alice, r.get_json()["data"]["id"]


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "ok"


def test_register_validates_and_login(client):
    r = client.post("/api/v1/auth/register", json={"email": "x", "password": "1", "role": "admin"})
    assert r.status_code == 422
    assert set(r.get_json()["error"]["errors"]) == {"email", "password", "full_name", "role"}

    _register(client, "boss@acme.test", "employer")
    r = client.post("/api/v1/auth/login", json={"email": "boss@acme.test", "password": "nope"})
    assert r.status_code == 401
    r = client.post("/api/v1/auth/login", json={"email": "BOSS@acme.test", "password": "secret123"})
    assert r.status_code == 200
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {r.get_json()['data']['access']}"})
    assert me.get_json()["data"]["role"] == "employer"


def test_roles_are_enforced(client):
    boss, alice, emp_id = _linked(client)
    assert client.post("/api/v1/links", json={}, headers=alice).status_code == 403
    assert client.post("/api/v1/transactions/redeem", json={"token": "x"}, headers=boss).status_code == 403
    assert client.get("/api/v1/statements").status_code == 401


def test_wage_payment_flow(client):
    boss, alice, emp_id = _linked(client)

    r = client.put(f"/api/v1/employments/{emp_id}/wage", json={"monthly_wage": 3000}, headers=boss)
    assert r.status_code == 200
    r = client.post(f"/api/v1/employments/{emp_id}/adjustments",
                    json={"category": "merit", "amount": 250, "reason": "great quarter"}, headers=boss)
    assert r.status_code == 201

    r = client.post("/api/v1/transactions", json={"kind": "pay_wages", "employment_id": emp_id}, headers=boss)
    assert r.status_code == 201
    tx = r.get_json()["data"]
    pending = client.get("/api/v1/transactions?status=pending", headers=boss).get_json()
    assert [t["id"] for t in pending["data"]] == [tx["id"]]

    r = client.post("/api/v1/transactions/redeem", json={"token": tx["token"]}, headers=alice)
    assert r.status_code == 200, r.get_json()
    body = r.get_json()["data"]
    assert body["transaction"]["status"] == "completed"
    assert body["statement"]["kind"] == "wage_payment"

    again = client.post("/api/v1/transactions/redeem", json={"token": tx["token"]}, headers=alice)
    assert again.status_code == 409
    assert again.get_json()["error"]["code"] == "ALREADY_REDEEMED"

    ack = client.post(f"/api/v1/transactions/{tx['id']}/ack", headers=boss)
    assert ack.status_code == 200
    assert ack.get_json()["data"]["issuer_notified_at"] is not None

    stmts = client.get("/api/v1/statements?unread=1", headers=alice).get_json()
    kinds = [s["kind"] for s in stmts["data"]]
    assert kinds.count("wage_payment") == 1
    assert "merit" in kinds and "wage_setup" in kinds

    read = client.post(f"/api/v1/statements/{stmts['data'][0]['id']}/read", headers=alice)
    assert read.get_json()["data"]["is_read"] is True

    summary = client.get(f"/api/v1/employments/{emp_id}/payroll", headers=alice).get_json()["data"]
    assert summary["merits"] == 250.0
    assert summary["base"] == 3000.0


def test_scan_routes_by_prefix(client):
    boss = _register(client, "boss@acme.test", "employer")
    alice = _register(client, "alice@acme.test", "employee")
    token = client.post("/api/v1/links", json={"employment_type": "contract"}, headers=boss).get_json()["data"]["token"]

    r = client.post("/api/v1/scan", json={"token": token}, headers=alice)
    assert r.get_json()["data"]["type"] == "link"
    emp_id = r.get_json()["data"]["employment"]["id"]

    tx = client.post("/api/v1/transactions", json={
        "kind": "pay_contract_wages", "employment_id": emp_id, "payload": {"amount": 400},
    }, headers=boss).get_json()["data"]
    r = client.post("/api/v1/scan", json={"token": tx["token"]}, headers=alice)
    assert r.get_json()["data"]["type"] == "transaction"
    assert r.get_json()["data"]["effect"]["paid"] == 400.0

    bad = client.post("/api/v1/scan", json={"token": "hello"}, headers=alice)
    assert bad.status_code == 400
    assert bad.get_json()["error"]["code"] == "MALFORMED_TOKEN"


def test_error_envelopes(client):
    boss, alice, emp_id = _linked(client)
    r = client.post("/api/v1/transactions", json={"kind": "grant_loan", "employment_id": emp_id,
                                                  "payload": {"amount": 100}}, headers=boss)
    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "INSUFFICIENT_DATA"

    r = client.post("/api/v1/transactions", json={"kind": "pay_wages", "employment_id": 999}, headers=boss)
    assert r.status_code == 404

    tx = client.post("/api/v1/transactions", json={"kind": "pay_wages", "employment_id": emp_id},
                     headers=boss).get_json()["data"]
    r = client.post("/api/v1/transactions/redeem", json={"token": tx["token"]}, headers=alice)
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "CONSISTENCY_VIOLATION"
    assert db.session.get(Transaction, tx["id"]).status == "pending"

    r = client.post(f"/api/v1/transactions/{tx['id']}/cancel", headers=boss)
    assert r.get_json()["data"]["status"] == "cancelled"
    r = client.post("/api/v1/transactions/redeem", json={"token": tx["token"]}, headers=alice)
    assert r.status_code == 410


def test_loan_quote_and_attendance_leave(client):
    boss, alice, emp_id = _linked(client)
    q = client.post("/api/v1/loans/quote", json={"amount": 1000, "interest_rate": 10, "monthly_deduction": 110},
                    headers=boss).get_json()["data"]
    assert q["total_amount"] == 1100.0
    assert q["tenure_months"] == 10

    r = client.post("/api/v1/attendance/leave",
                    json={"employment_id": emp_id, "date": "2026-02-10", "kind": "sick_leave"}, headers=alice)
    assert r.status_code == 200
    month = client.get(f"/api/v1/employments/{emp_id}/attendance?year=2026&month=2", headers=boss).get_json()["data"]
    by_day = {d["date"]: d["status"] for d in month["days"]}
    assert by_day["2026-02-10"] == "sick_leave"
    assert month["summary"]["sick_leave_days"] == 1
