"""
Flask API tests – routes driven through the test client with real tokens
and the in-memory SQLite store.
"""

import pytest

from fieldservice_authz.api.app import create_app
from fieldservice_authz.api.auth import context_from_payload, generate_token, verify_token
from fieldservice_authz.models import AccessContext


@pytest.fixture
def client(engine, config):
    app = create_app(engine=engine, config=config)
    app.config["TESTING"] = True
    return app.test_client()


def _headers(role, user_id):
    token = generate_token(AccessContext(user_id=user_id, email=f"{role}@example.com", role=role))
    return {"Authorization": f"Bearer {token}"}


# ── Tests: auth helpers ──────────────────────────────────────────────

def test_token_roundtrip():
    token = generate_token(AccessContext(user_id=7, email="t@example.com", role="technician"))
    ctx = context_from_payload(verify_token(token))
    assert (ctx.user_id, ctx.role) == (7, "technician")


def test_tampered_token_is_rejected():
    assert verify_token("not.a.token") is None


def test_payload_without_subject():
    assert context_from_payload({"role": "admin"}) is None


# ── Tests: health / info ─────────────────────────────────────────────

def test_index(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.get_json()["permissionsVersion"] == "3.0.1"


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"] == {"database": True, "permissions": True}


def test_profile(client):
    resp = client.get("/api/user/profile", headers=_headers("technician", 7))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["user"]["id"] == 7
    assert body["role"]["priority"] == 2
    assert "work_orders:update" in body["role"]["permissions"]


def test_profile_reports_stored_role(client):
    resp = client.get("/api/user/profile", headers=_headers("admin", 99))
    body = resp.get_json()
    assert body["user"] == {"id": 99, "email": "pat@example.com", "role": "customer"}
    assert body["role"]["name"] == "customer"


def test_profile_rejects_inactive_user(client):
    resp = client.get("/api/user/profile", headers=_headers("customer", 5))
    assert resp.status_code == 401
    assert "inactive" in resp.get_json()["message"]


def test_profile_rejects_unknown_user(client):
    resp = client.get("/api/user/profile", headers=_headers("customer", 4242))
    assert resp.status_code == 401


# ── Tests: authentication ────────────────────────────────────────────

def test_missing_token(client):
    resp = client.get("/api/v2/work-orders")
    assert resp.status_code == 401


def test_bad_header_format(client):
    resp = client.get("/api/v2/work-orders", headers={"Authorization": "Token abc"})
    assert resp.status_code == 401


def test_token_without_role(client):
    resp = client.get("/api/v2/work-orders", headers=_headers("", 5))
    assert resp.status_code == 401
    assert resp.get_json()["message"] == "User has no assigned role"


# ── Tests: list / read ───────────────────────────────────────────────

def test_customer_lists_own_work_orders(client):
    resp = client.get("/api/v2/work-orders", headers=_headers("customer", 99))
    assert resp.status_code == 200
    body = resp.get_json()
    assert sorted(row["id"] for row in body["data"]) == [1, 3]
    assert body["rlsApplied"] is True


def test_query_string_filters(client):
    resp = client.get("/api/v2/work-orders?status=completed", headers=_headers("customer", 99))
    assert [row["id"] for row in resp.get_json()["data"]] == [3]


def test_in_filter_from_query_string(client):
    resp = client.get("/api/v2/work_orders?id[in]=1,2", headers=_headers("admin", 1))
    assert sorted(row["id"] for row in resp.get_json()["data"]) == [1, 2]


def test_customer_cannot_read_other_customers_work_order(client):
    resp = client.get("/api/v2/work-orders/2", headers=_headers("customer", 99))
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "workOrder not found"


def test_customer_reads_own_work_order(client):
    resp = client.get("/api/v2/work-orders/1", headers=_headers("customer", 99))
    assert resp.status_code == 200
    assert resp.get_json()["data"]["title"] == "Fix boiler"


def test_technician_invoice_list_is_empty(client):
    resp = client.get("/api/v2/invoices", headers=_headers("technician", 7))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["data"] == []
    assert body["rlsApplied"] is True


def test_customer_cannot_read_inventory(client):
    resp = client.get("/api/v2/inventory", headers=_headers("customer", 99))
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "Forbidden"


def test_unknown_entity(client):
    resp = client.get("/api/v2/widgets", headers=_headers("admin", 1))
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Unknown entity: widgets"


# ── Tests: writes ────────────────────────────────────────────────────

def test_manager_cannot_delete_invoice(client):
    resp = client.delete("/api/v2/invoices/1", headers=_headers("manager", 4))
    assert resp.status_code == 403
    assert "delete invoices" in resp.get_json()["message"]


def test_admin_deletes_invoice(client):
    resp = client.delete("/api/v2/invoices/1", headers=_headers("admin", 1))
    assert resp.status_code == 200
    assert resp.get_json()["data"]["invoice_number"] == "INV-1"


def test_create_missing_title(client):
    resp = client.post("/api/v2/work-orders", json={"customer_id": 99},
                       headers=_headers("customer", 99))
    assert resp.status_code == 400
    assert "title" in resp.get_json()["message"]


def test_create_work_order(client):
    resp = client.post("/api/v2/work-orders", json={"title": "Leak", "customer_id": 99},
                       headers=_headers("customer", 99))
    assert resp.status_code == 201
    assert resp.get_json()["data"]["title"] == "Leak"


def test_technician_updates_assigned_work_order(client):
    resp = client.patch("/api/v2/work-orders/2", json={"status": "in_progress"},
                        headers=_headers("technician", 7))
    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == "in_progress"


def test_technician_cannot_update_unassigned_work_order(client):
    resp = client.patch("/api/v2/work-orders/3", json={"status": "in_progress"},
                        headers=_headers("technician", 7))
    assert resp.status_code == 404


def test_update_without_updateable_fields(client):
    resp = client.put("/api/v2/work-orders/2", json={"customer_id": 1},
                      headers=_headers("technician", 7))
    assert resp.status_code == 400
