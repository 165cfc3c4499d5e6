"""
Integration tests for admin reconciliation of orphaned payments.
"""

import pytest

from parcel_delivery.app.models.parcel_enums import PaymentStatus
from parcel_delivery.app.services.reconciliation import ReconciliationRecorder


@pytest.fixture
def orphaned_payment(db_session, parcel_factory):
    """A parcel marked paid whose payment record was never stored."""

    async def _create(transaction_id="tx-orphan"):
        parcel = await parcel_factory(payment_status=PaymentStatus.PAID)
        parcel_id = parcel.id
        payload = {
            "transaction_id": transaction_id,
            "parcel_id": parcel_id,
            "email": "sender@test.com",
            "amount": 500,
            "payment_method": "card",
            "paid_at": "2024-01-01T10:00:00+00:00"
        }
        marker_id = await ReconciliationRecorder(db_session).flag(
            parcel_id, transaction_id, payload, ConnectionError("store went away")
        )
        return parcel_id, marker_id

    return _create


@pytest.mark.asyncio
async def test_admin_lists_open_reconciliations(client, admin_headers, orphaned_payment):
    parcel_id, marker_id = await orphaned_payment()

    response = await client.get("/admin/reconciliations", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    item = data["items"][0]
    assert item["id"] == marker_id
    assert item["parcel_id"] == parcel_id
    assert item["status"] == "OPEN"
    assert "ConnectionError" in item["error_message"]


@pytest.mark.asyncio
async def test_admin_replays_reconciliation(client, admin_headers, user_headers, orphaned_payment):
    parcel_id, marker_id = await orphaned_payment()

    response = await client.post(f"/admin/reconciliations/{marker_id}/replay", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "RESOLVED"
    assert response.json()["resolved_by"] == "admin@test.com"

    history = await client.get("/payments", headers=user_headers)
    assert history.json()["total"] == 1
    assert history.json()["data"][0]["transactionId"] == "tx-orphan"

    remaining = await client.get("/admin/reconciliations", headers=admin_headers)
    assert remaining.json()["total"] == 0

    again = await client.post(f"/admin/reconciliations/{marker_id}/replay", headers=admin_headers)
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_replay_unknown_marker(client, admin_headers):
    response = await client.post("/admin/reconciliations/999/replay", headers=admin_headers)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_reconciliation_requires_admin(client, user_headers, orphaned_payment):
    _, marker_id = await orphaned_payment()

    listing = await client.get("/admin/reconciliations", headers=user_headers)
    assert listing.status_code == 403

    replay = await client.post(f"/admin/reconciliations/{marker_id}/replay", headers=user_headers)
    assert replay.status_code == 403


@pytest.mark.asyncio
async def test_replay_conflict_keeps_marker_open(client, admin_headers, user_headers, orphaned_payment):
    """A transaction already recorded against another parcel cannot settle the marker."""
    created = await client.post(
        "/parcels", json={"title": "First", "cost": 500}, headers=user_headers
    )
    first_id = created.json()["insertedId"]
    paid = await client.post(
        "/payments",
        json={
            "parcelId": first_id,
            "email": "sender@test.com",
            "amount": 500,
            "paymentMethod": "card",
            "transactionId": "tx-1"
        },
        headers=user_headers
    )
    assert paid.status_code == 201
    parcel_id, marker_id = await orphaned_payment(transaction_id="tx-1")

    response = await client.post(f"/admin/reconciliations/{marker_id}/replay", headers=admin_headers)

    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_PAY_004"
    assert body["details"]["parcel_id"] == parcel_id
    assert body["details"]["recorded_parcel_id"] == first_id

    remaining = await client.get("/admin/reconciliations", headers=admin_headers)
    assert [item["id"] for item in remaining.json()["items"]] == [marker_id]


@pytest.mark.asyncio
async def test_flag_keeps_loaded_objects_usable(db_session, parcel_factory):
    parcel = await parcel_factory(title="Still loaded")

    await ReconciliationRecorder(db_session).flag(
        parcel.id, "tx-9", {"transaction_id": "tx-9"}, ConnectionError("store went away")
    )

    assert parcel.title == "Still loaded"
