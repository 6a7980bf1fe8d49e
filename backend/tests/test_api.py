import pytest

from crm_billing.core.config import SESSION_COOKIE_NAME
from crm_billing.services.access import Role


@pytest.fixture
def admin_api(login, admin):
    return login(admin)


@pytest.fixture
def subscription_payload(make_client, quarterly_plan):
    return {
        "client_id": make_client().id,
        "plan_id": quarterly_plan.id,
        "num_users": 20,
        "start_date": "2026-01-01",
    }


def test_health(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] in ("ok", "degraded")


def test_requires_session(api):
    response = api.get("/api/subscriptions/")
    assert response.status_code == 401


def test_invalid_session_cookie(api):
    api.cookies.set(SESSION_COOKIE_NAME, "not-a-token")
    assert api.get("/api/subscriptions/").status_code == 401


def test_create_and_fetch_subscription(admin_api, subscription_payload):
    response = admin_api.post("/api/subscriptions/", json=subscription_payload)
    assert response.status_code == 201
    body = response.json()
    assert body["end_date"] == "2026-04-01"
    assert float(body["amount_paid"]) == 11940.0
    assert body["subscription_status"] == "active"
    assert body["payment_status"] == "pending"

    detail = admin_api.get(f"/api/subscriptions/{body['id']}")
    assert detail.status_code == 200
    assert detail.json()["id"] == body["id"]


def test_overlap_maps_to_409(admin_api, subscription_payload):
    first = admin_api.post("/api/subscriptions/", json=subscription_payload).json()
    response = admin_api.post("/api/subscriptions/", json={
        **subscription_payload,
        "start_date": "2026-02-01",
        "end_date": "2026-03-01",
    })
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "overlapping_subscription"
    assert body["conflicting_subscription_id"] == first["id"]


def test_user_bounds_map_to_422(admin_api, subscription_payload):
    response = admin_api.post("/api/subscriptions/", json={**subscription_payload, "num_users": 500})
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "out_of_range_users"
    assert body["bound"] == "max_users"
    assert body["max_users"] == 100


def test_missing_subscription_is_404(admin_api):
    response = admin_api.get("/api/subscriptions/9999")
    assert response.status_code == 404
    assert response.json()["error"] == "subscription_not_found"


def test_update_cancel_renew_flow(admin_api, subscription_payload):
    created = admin_api.post("/api/subscriptions/", json=subscription_payload).json()
    sub_url = f"/api/subscriptions/{created['id']}"

    updated = admin_api.put(sub_url, json={"num_users": 25})
    assert updated.status_code == 200
    assert float(updated.json()["amount_paid"]) == 14925.0

    renewed = admin_api.patch(f"{sub_url}/renew")
    assert renewed.status_code == 200
    assert renewed.json()["end_date"] == "2026-07-01"

    cancelled = admin_api.patch(f"{sub_url}/cancel", json={"reason": "moved to another vendor"})
    assert cancelled.status_code == 200
    assert cancelled.json()["subscription_status"] == "cancelled"

    again = admin_api.patch(f"{sub_url}/cancel")
    assert again.status_code == 409
    assert again.json()["error"] == "already_cancelled"

    assert admin_api.patch(f"{sub_url}/renew").json()["error"] == "cannot_renew_cancelled"

    history = admin_api.get(f"{sub_url}/history").json()
    assert [item["action"] for item in history] == ["cancelled", "renewed", "updated", "created"]


def test_list_and_stats(admin_api, subscription_payload):
    admin_api.post("/api/subscriptions/", json=subscription_payload)

    listing = admin_api.get("/api/subscriptions/", params={"subscription_status": "active", "limit": 5})
    assert listing.status_code == 200
    assert listing.json()["total"] == 1
    assert listing.json()["limit"] == 5

    assert admin_api.get("/api/subscriptions/", params={"limit": 0}).status_code == 422
    assert admin_api.get("/api/subscriptions/", params={"limit": 101}).status_code == 422

    stats = admin_api.get("/api/subscriptions/stats").json()
    assert stats["total"] == 1
    assert stats["active"] == 1
    assert stats["payments"]["pending"] == 1


def test_user_role_cannot_write_and_is_scoped(login, make_user, admin, subscription_payload):
    api = login(admin)
    created = api.post("/api/subscriptions/", json=subscription_payload).json()

    user = make_user(Role.USER)
    api = login(user)
    assert api.post("/api/subscriptions/", json=subscription_payload).status_code == 403
    assert api.get("/api/subscriptions/").json()["total"] == 0

    forbidden = api.get(f"/api/subscriptions/{created['id']}")
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "access_forbidden"


def test_payment_endpoint_settles_subscription(admin_api, subscription_payload):
    created = admin_api.post("/api/subscriptions/", json=subscription_payload).json()
    response = admin_api.post("/api/payments/", json={
        "subscription_id": created["id"],
        "payment_method": "razorpay",
        "payment_status": "paid",
        "transaction_id": "pay_001",
    })
    assert response.status_code == 201
    assert float(response.json()["amount"]) == 11940.0

    refreshed = admin_api.get(f"/api/subscriptions/{created['id']}").json()
    assert refreshed["payment_status"] == "paid"

    duplicate = admin_api.post("/api/payments/", json={
        "subscription_id": created["id"],
        "payment_method": "razorpay",
        "transaction_id": "pay_001",
    })
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "duplicate_payment_reference"

    assert admin_api.get("/api/payments/").json()["total"] == 1


def test_plans_and_clients(admin_api):
    plan = admin_api.post("/api/plans/", json={
        "name": "Gold",
        "price_per_user": "109",
        "billing_cycle": "half_yearly",
        "module_access": {"attendance": True, "recruitment": True},
    })
    assert plan.status_code == 201
    assert plan.json()["billing_months"] == 6

    bad_plan = admin_api.post("/api/plans/", json={
        "name": "Broken",
        "price_per_user": "10",
        "billing_cycle": "quarterly",
        "billing_months": 4,
    })
    assert bad_plan.status_code == 422
    assert bad_plan.json()["error"] == "invalid_plan_definition"

    client = admin_api.post("/api/clients/", json={"company_name": "Acme Pvt Ltd"})
    assert client.status_code == 201
    client_id = client.json()["id"]

    modules = admin_api.get(f"/api/clients/{client_id}/modules").json()
    assert modules["modules"] == {"attendance": False, "recruitment": False}

    admin_api.post("/api/subscriptions/", json={
        "client_id": client_id,
        "plan_id": plan.json()["id"],
        "num_users": 10,
    })
    modules = admin_api.get(f"/api/clients/{client_id}/modules").json()
    assert modules["modules"] == {"attendance": True, "recruitment": True}

    deleted = admin_api.delete(f"/api/plans/{plan.json()['id']}")
    assert deleted.status_code == 200
    assert deleted.json()["is_active"] is False
    assert admin_api.get("/api/plans/").json() == []
    assert len(admin_api.get("/api/plans/", params={"include_inactive": True}).json()) == 1


def test_client_status_and_email_are_validated(login, make_user):
    api = login(make_user(Role.USER))
    bad_status = api.post("/api/clients/", json={"company_name": "C", "status": "banana"})
    assert bad_status.status_code == 422
    assert bad_status.json()["error"] == "validation_error"
    assert bad_status.json()["allowed"] == ["active", "inactive", "suspended"]

    first = api.post("/api/clients/", json={"company_name": "C", "email": "ops@c.test"})
    assert first.status_code == 201
    second = api.post("/api/clients/", json={"company_name": "C2", "email": "ops@c.test"})
    assert second.status_code == 409
    assert second.json()["error"] == "duplicate_client_email"
    assert second.json()["field"] == "email"


def test_duplicate_plan_name_is_409(admin_api):
    payload = {"name": "Gold", "price_per_user": "109", "billing_cycle": "half_yearly"}
    assert admin_api.post("/api/plans/", json=payload).status_code == 201
    duplicate = admin_api.post("/api/plans/", json=payload)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "duplicate_plan_name"


def test_suspending_client_blocks_new_subscriptions(login, make_user, admin, subscription_payload):
    owner = make_user(Role.USER)
    api = login(owner)
    client_id = api.post("/api/clients/", json={"company_name": "Acme"}).json()["id"]

    edited = api.put(f"/api/clients/{client_id}", json={"contact_person": "R. Iyer"})
    assert edited.status_code == 200
    assert edited.json()["contact_person"] == "R. Iyer"
    assert api.put(f"/api/clients/{client_id}", json={"status": "suspended"}).status_code == 403

    api = login(admin)
    suspended = api.put(f"/api/clients/{client_id}", json={"status": "suspended"})
    assert suspended.status_code == 200
    assert suspended.json()["status"] == "suspended"

    blocked = api.post("/api/subscriptions/", json={**subscription_payload, "client_id": client_id})
    assert blocked.status_code == 409
    assert blocked.json()["error"] == "client_inactive"
    assert api.put("/api/clients/999", json={"notes": "x"}).status_code == 404


def test_plan_update_detail_and_activate(admin_api, subscription_payload):
    plan_id = subscription_payload["plan_id"]
    created = admin_api.post("/api/subscriptions/", json=subscription_payload).json()

    updated = admin_api.put(f"/api/plans/{plan_id}", json={"price_per_user": "299"})
    assert updated.status_code == 200
    assert float(admin_api.get(f"/api/plans/{plan_id}").json()["price_per_user"]) == 299.0

    renewed = admin_api.patch(f"/api/subscriptions/{created['id']}/renew").json()
    assert float(renewed["amount_paid"]) == 17940.0

    invalid = admin_api.put(f"/api/plans/{plan_id}", json={"billing_months": 5})
    assert invalid.status_code == 422
    assert admin_api.get("/api/plans/999").status_code == 404

    admin_api.delete(f"/api/plans/{plan_id}")
    activated = admin_api.post(f"/api/plans/{plan_id}/activate")
    assert activated.status_code == 200
    assert activated.json()["is_active"] is True
