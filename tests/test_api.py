from __future__ import annotations

from fastapi.testclient import TestClient

from expense_intimation.core.db import SessionLocal
from expense_intimation.main import create_app
from expense_intimation.modules.identity.models import UserRole
from expense_intimation.modules.identity.service import create_user


def _login(client: TestClient, email: str) -> dict[str, str]:
    resp = client.post("/api/auth/token", data={"username": email, "password": "pw"})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_expense_round_trip_over_http():
    with SessionLocal() as session:
        create_user(session, email="employee@example.com", password="pw", role=UserRole.EMPLOYEE)
        create_user(session, email="manager@example.com", password="pw", role=UserRole.MANAGER)

    client = TestClient(create_app())
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/api/auth/me").status_code == 401

    employee = _login(client, "employee@example.com")
    manager = _login(client, "manager@example.com")

    resp = client.post(
        "/api/expenses",
        headers=employee,
        json={
            "description": "Client dinner",
            "line_items": [
                {
                    "category": "client_entertainment",
                    "description": "Dinner",
                    "amount": "1800.00",
                    "from_date": "2026-06-01",
                    "to_date": "2026-06-01",
                }
            ],
        },
    )
    assert resp.status_code == 200, resp.text
    expense_id = resp.json()["id"]
    assert resp.json()["status"] == "draft"

    resp = client.post(f"/api/expenses/{expense_id}/submit", headers=employee)
    assert resp.json()["status"] == "submitted"
    assert resp.json()["current_approval_level"] == 1

    actions = client.get(f"/api/expenses/{expense_id}/available-actions", headers=manager).json()
    assert [a["action"] for a in actions] == ["approve", "reject", "return"]
    assert client.get(f"/api/expenses/{expense_id}/available-actions", headers=employee).json() == []

    inbox = client.get("/api/approvals/inbox", headers=manager).json()
    assert [e["id"] for e in inbox["expenses"]] == [expense_id]
    assert inbox["intimations"] == []

    resp = client.post(
        f"/api/expenses/{expense_id}/actions",
        headers=manager,
        json={"action": "approve", "level": 2},
    )
    assert resp.status_code == 409

    resp = client.post(
        f"/api/expenses/{expense_id}/actions",
        headers=manager,
        json={"action": "approve", "level": 1},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "level2_approved"
    assert resp.json()["current_approval_level"] == 3

    history = client.get(f"/api/expenses/{expense_id}/approvals", headers=employee).json()
    assert [(h["level"], h["is_automatic"]) for h in history] == [(1, False), (2, True)]

    notifications = client.get("/api/notifications", headers=employee).json()
    assert len(notifications) == 2

    levels = client.get("/api/workflow/levels", headers=employee).json()
    assert [lvl["level"] for lvl in levels] == [1, 2, 3]
    assert levels[2]["auto_approve_threshold"] is None
    assert client.get("/api/workflow/levels/4", headers=employee).status_code == 404


def test_approver_inbox_is_closed_to_non_approvers():
    with SessionLocal() as session:
        create_user(session, email="employee@example.com", password="pw", role=UserRole.EMPLOYEE)
        create_user(session, email="finance@example.com", password="pw", role=UserRole.FINANCE)

    client = TestClient(create_app())
    employee = _login(client, "employee@example.com")
    finance = _login(client, "finance@example.com")

    assert client.get("/api/approvals/inbox").status_code == 401
    resp = client.get("/api/approvals/inbox", headers=employee)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Not an approver"
    resp = client.get("/api/approvals/inbox", headers=finance)
    assert resp.status_code == 200
    assert resp.json() == {"expenses": [], "intimations": []}
