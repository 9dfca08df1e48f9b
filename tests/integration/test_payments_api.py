"""Integration tests for subscription payment submission and admin verification"""

import pytest
import uuid
from datetime import datetime
from decimal import Decimal
from fastapi.testclient import TestClient
from finboard.infrastructure.database.models import Coupon, UserSubscription


@pytest.fixture
def payment_payload():
    return {
        "plan": "premium",
        "billing_cycle": "monthly",
        "payment_method": "bkash",
        "transaction_id": "TXN1000001",
        "sender_number": "017 1234 5678",
        "upgrade_reason": "Need reports",
    }


@pytest.fixture
def coupon(client: TestClient, admin_headers) -> dict:
    response = client.post(
        "/v1/admin/coupons",
        json={
            "code": "SAVE20",
            "description": "20% off premium",
            "type": "percentage",
            "value": "20",
            "max_uses_per_user": 1,
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    return response.json()


def _submit(client: TestClient, headers, payload, **overrides) -> dict:
    response = client.post("/v1/subscription/payments", json={**payload, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_submit_payment_without_coupon(client: TestClient, user_headers, premium_plan, payment_payload):
    data = _submit(client, user_headers, payment_payload)

    assert Decimal(data["base_amount"]) == Decimal("299.00")
    assert Decimal(data["discount_amount"]) == Decimal("0")
    assert Decimal(data["final_amount"]) == Decimal("299.00")
    assert data["status"] == "submitted"


def test_submit_yearly_payment(client: TestClient, user_headers, premium_plan, payment_payload):
    data = _submit(client, user_headers, payment_payload, billing_cycle="yearly")
    assert Decimal(data["base_amount"]) == Decimal("2990.00")


def test_submit_payment_with_coupon(client: TestClient, user_headers, premium_plan, payment_payload, coupon, db):
    data = _submit(client, user_headers, payment_payload, coupon_code="save20")

    assert Decimal(data["discount_amount"]) == Decimal("59.80")
    assert Decimal(data["final_amount"]) == Decimal("239.20")
    assert db.get(Coupon, uuid.UUID(coupon["coupon_id"])).used_count == 1


def test_coupon_per_user_limit_enforced_at_submission(
    client: TestClient, user_headers, other_user_headers, premium_plan, payment_payload, coupon
):
    _submit(client, user_headers, payment_payload, coupon_code="SAVE20")

    response = client.post(
        "/v1/subscription/payments",
        json={**payment_payload, "transaction_id": "TXN1000002", "coupon_code": "SAVE20"},
        headers=user_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "You have already used this coupon"

    # Limit is per user
    _submit(client, other_user_headers, payment_payload, transaction_id="TXN1000003", coupon_code="SAVE20")


def test_coupon_total_limit_enforced_at_submission(
    client: TestClient, admin_headers, user_headers, other_user_headers, premium_plan, payment_payload
):
    client.post(
        "/v1/admin/coupons",
        json={"code": "ONCE", "description": "Single use", "type": "fixed", "value": "100", "max_uses": 1},
        headers=admin_headers,
    )
    _submit(client, user_headers, payment_payload, coupon_code="ONCE")

    response = client.post(
        "/v1/subscription/payments",
        json={**payment_payload, "transaction_id": "TXN1000002", "coupon_code": "ONCE"},
        headers=other_user_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Coupon usage limit exceeded"


def test_unknown_coupon_rejected(client: TestClient, user_headers, premium_plan, payment_payload):
    response = client.post(
        "/v1/subscription/payments",
        json={**payment_payload, "coupon_code": "NOPE"},
        headers=user_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid or expired coupon code"


def test_duplicate_transaction_id_conflicts(client: TestClient, user_headers, other_user_headers, premium_plan, payment_payload):
    _submit(client, user_headers, payment_payload)

    response = client.post("/v1/subscription/payments", json=payment_payload, headers=other_user_headers)
    assert response.status_code == 409


def test_unknown_plan_rejected(client: TestClient, user_headers, premium_plan, payment_payload):
    response = client.post("/v1/subscription/payments", json={**payment_payload, "plan": "gold"}, headers=user_headers)
    assert response.status_code == 400


def test_invalid_sender_number_rejected(client: TestClient, user_headers, premium_plan, payment_payload):
    response = client.post(
        "/v1/subscription/payments",
        json={**payment_payload, "sender_number": "12345"},
        headers=user_headers,
    )
    assert response.status_code == 400


def test_admin_lists_and_filters_payments(client: TestClient, user_headers, admin_headers, premium_plan, payment_payload):
    first = _submit(client, user_headers, payment_payload)
    _submit(client, user_headers, payment_payload, transaction_id="TXN1000002")
    client.patch(
        f"/v1/admin/subscription/payments/{first['payment_id']}",
        json={"status": "approved"},
        headers=admin_headers,
    )

    everything = client.get("/v1/admin/subscription/payments", params={"status": "all"}, headers=admin_headers).json()
    assert everything["total"] == 2

    submitted = client.get("/v1/admin/subscription/payments", params={"status": "submitted"}, headers=admin_headers).json()
    assert submitted["total"] == 1
    assert submitted["payments"][0]["transaction_id"] == "TXN1000002"
    assert submitted["payments"][0]["plan_name"] == "premium"
    assert submitted["payments"][0]["sender_number"] == "01712345678"


def test_plain_user_cannot_manage_payments(client: TestClient, user_headers, premium_plan, payment_payload):
    payment = _submit(client, user_headers, payment_payload)

    assert client.get("/v1/admin/subscription/payments", headers=user_headers).status_code == 403
    response = client.patch(
        f"/v1/admin/subscription/payments/{payment['payment_id']}",
        json={"status": "approved"},
        headers=user_headers,
    )
    assert response.status_code == 403


def test_approval_activates_subscription(client: TestClient, user_headers, admin_headers, premium_plan, payment_payload, db):
    payment = _submit(client, user_headers, payment_payload)

    response = client.patch(
        f"/v1/admin/subscription/payments/{payment['payment_id']}",
        json={"status": "approved", "admin_notes": "Matched bKash statement"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "approved"
    assert data["admin_notes"] == "Matched bKash statement"
    assert data["verified_at"] is not None

    subscription = db.query(UserSubscription).filter(UserSubscription.user_id == "user-1").one()
    assert subscription.status == "active"
    assert subscription.billing_cycle == "monthly"
    assert subscription.end_date.replace(tzinfo=None) == datetime(2024, 4, 15, 10, 30)


def test_second_approval_extends_running_subscription(
    client: TestClient, user_headers, admin_headers, premium_plan, payment_payload, db
):
    for transaction_id in ("TXN1000001", "TXN1000002"):
        payment = _submit(client, user_headers, payment_payload, transaction_id=transaction_id)
        client.patch(
            f"/v1/admin/subscription/payments/{payment['payment_id']}",
            json={"status": "approved"},
            headers=admin_headers,
        )

    subscription = db.query(UserSubscription).filter(UserSubscription.user_id == "user-1").one()
    assert subscription.end_date.replace(tzinfo=None) == datetime(2024, 5, 15, 10, 30)


def test_rejection_releases_coupon(client: TestClient, user_headers, admin_headers, premium_plan, payment_payload, coupon, db):
    payment = _submit(client, user_headers, payment_payload, coupon_code="SAVE20")

    response = client.patch(
        f"/v1/admin/subscription/payments/{payment['payment_id']}",
        json={"status": "rejected", "rejection_reason": "Transaction not found"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["rejection_reason"] == "Transaction not found"
    assert db.get(Coupon, uuid.UUID(coupon["coupon_id"])).used_count == 0

    # The user may redeem the coupon again
    _submit(client, user_headers, payment_payload, transaction_id="TXN1000002", coupon_code="SAVE20")


def test_final_status_cannot_change(client: TestClient, user_headers, admin_headers, premium_plan, payment_payload):
    payment = _submit(client, user_headers, payment_payload)
    url = f"/v1/admin/subscription/payments/{payment['payment_id']}"

    assert client.patch(url, json={"status": "approved"}, headers=admin_headers).status_code == 200
    assert client.patch(url, json={"status": "rejected"}, headers=admin_headers).status_code == 409


def test_update_missing_payment(client: TestClient, admin_headers):
    response = client.patch(
        f"/v1/admin/subscription/payments/{uuid.uuid4()}",
        json={"status": "approved"},
        headers=admin_headers,
    )
    assert response.status_code == 404


def test_bulk_status_update(client: TestClient, user_headers, admin_headers, premium_plan, payment_payload):
    ids = [
        _submit(client, user_headers, payment_payload, transaction_id=f"TXN100000{n}")["payment_id"]
        for n in range(1, 4)
    ]

    response = client.post(
        "/v1/admin/subscription/payments/bulk-status",
        json={"payment_ids": ids, "status": "verified"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["updated"] == 3
    assert {p["status"] for p in data["payments"]} == {"verified"}


def test_bulk_status_update_is_all_or_nothing(client: TestClient, user_headers, admin_headers, premium_plan, payment_payload):
    payment = _submit(client, user_headers, payment_payload)

    response = client.post(
        "/v1/admin/subscription/payments/bulk-status",
        json={"payment_ids": [payment["payment_id"], str(uuid.uuid4())], "status": "approved"},
        headers=admin_headers,
    )
    assert response.status_code == 404

    listed = client.get("/v1/admin/subscription/payments", headers=admin_headers).json()
    assert listed["payments"][0]["status"] == "submitted"


def test_bulk_status_rejects_empty_list(client: TestClient, admin_headers):
    response = client.post(
        "/v1/admin/subscription/payments/bulk-status",
        json={"payment_ids": [], "status": "approved"},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_used_coupon_cannot_be_deleted(client: TestClient, user_headers, admin_headers, premium_plan, payment_payload, coupon):
    _submit(client, user_headers, payment_payload, coupon_code="SAVE20")

    response = client.delete(f"/v1/admin/coupons/{coupon['coupon_id']}", headers=admin_headers)
    assert response.status_code == 409


def test_subscription_overview(client: TestClient, user_headers, other_user_headers, admin_headers, premium_plan, payment_payload, coupon):
    approved = _submit(client, user_headers, payment_payload, coupon_code="SAVE20")
    _submit(client, other_user_headers, payment_payload, transaction_id="TXN1000002")
    client.patch(
        f"/v1/admin/subscription/payments/{approved['payment_id']}",
        json={"status": "approved"},
        headers=admin_headers,
    )

    response = client.get("/v1/admin/subscription/overview", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["active_subscriptions"] == 1
    assert data["pending_payments"] == 1
    assert Decimal(data["total_revenue"]) == Decimal("239.20")
    assert Decimal(data["monthly_revenue"]) == Decimal("239.20")
    assert data["coupon_usage"] == 1
    assert data["active_coupons"] == 1
    assert data["total_plans"] == 1


def test_plain_user_cannot_view_overview(client: TestClient, user_headers):
    assert client.get("/v1/admin/subscription/overview", headers=user_headers).status_code == 403
