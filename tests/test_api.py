"""HTTP surface: status codes, error bodies and a full drop flow."""
import uuid
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from dropmarket.api.deps import get_gateway
from dropmarket.database import get_db
from dropmarket.main import app

API = "/api/v1"


@pytest.fixture
async def client(session_factory, gateway):
    async def override_get_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def as_user(user_id):
    return {"X-User-Id": str(user_id)}


async def open_tee_drop(client, consumer):
    """Supplier list with one S/M tee, interest from ``consumer`` and an ACTIVE drop."""
    response = await client.post(f"{API}/catalog/supplier-lists", json={
        "supplier_id": str(uuid.uuid4()),
        "name": "Summer Basics",
        "min_discount": "10",
        "max_discount": "50",
        "min_reservation_value": "100",
        "max_reservation_value": "1000",
    })
    assert response.status_code == 201
    list_id = response.json()["id"]

    response = await client.post(f"{API}/catalog/pickup-points", json={"name": "Edicola Duomo", "city": "Milano"})
    assert response.status_code == 201
    pickup_point_id = response.json()["id"]

    response = await client.post(f"{API}/catalog/supplier-lists/{list_id}/products", json={"rows": [{
        "name": "Tee",
        "price": "120",
        "sku": "TEE",
        "variants": [{"size": "S", "stock": 1}, {"size": "M", "stock": 1}],
    }]})
    assert response.status_code == 201
    assert response.json()["variants"] == 2

    catalog = (await client.get(f"{API}/catalog/supplier-lists/{list_id}/catalog")).json()
    product_id = catalog["units"][0]["product_ids"][0]

    response = await client.post(
        f"{API}/interests",
        json={"product_id": product_id, "pickup_point_id": pickup_point_id},
        headers=as_user(consumer),
    )
    assert response.status_code == 201
    registration = response.json()
    assert registration["drop_created"] is True
    drop_id = registration["drop_id"]

    admin = as_user(uuid.uuid4())
    response = await client.post(f"{API}/drops/{drop_id}/approve", json={}, headers=admin)
    assert response.status_code == 200
    assert response.json()["status"] == "APPROVED"

    response = await client.post(f"{API}/drops/lifecycle/run")
    assert response.json()["activated"] == 1
    return drop_id


async def test_root_and_health(client):
    assert (await client.get("/")).json()["docs"] == "/docs"
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["checks"]["database"] == "connected"


async def test_identity_header_is_required(client):
    assert (await client.get(f"{API}/bookings")).status_code == 401
    assert (await client.get(f"{API}/bookings", headers={"X-User-Id": "not-a-uuid"})).status_code == 401


async def test_invalid_supplier_list_configuration(client):
    response = await client.post(f"{API}/catalog/supplier-lists", json={
        "supplier_id": str(uuid.uuid4()),
        "name": "Broken",
        "min_discount": "40",
        "max_discount": "20",
        "min_reservation_value": "100",
        "max_reservation_value": "1000",
    })

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "INVALID_CONFIGURATION"


async def test_unknown_drop_and_bad_status_filter(client):
    assert (await client.get(f"{API}/drops/{uuid.uuid4()}")).status_code == 404
    assert (await client.get(f"{API}/drops", params={"status": "sleeping"})).status_code == 400
    listed = await client.get(f"{API}/drops", params={"status": "active"})
    assert listed.status_code == 200
    assert listed.json()["total"] == 0


async def test_booking_flow(client, gateway):
    consumer = uuid.uuid4()
    drop_id = await open_tee_drop(client, consumer)

    detail = (await client.get(f"{API}/drops/{drop_id}")).json()
    assert detail["status"] == "ACTIVE"
    assert [h["to_status"] for h in detail["status_history"]] == ["PENDING_APPROVAL", "APPROVED", "ACTIVE"]

    incomplete = await client.post(
        f"{API}/bookings", json={"drop_id": drop_id, "unit_key": "TEE"}, headers=as_user(consumer)
    )
    assert incomplete.status_code == 422
    assert incomplete.json()["detail"]["code"] == "SELECTION_INCOMPLETE"
    assert incomplete.json()["detail"]["action"] == "RESELECT"

    claimed = await client.post(
        f"{API}/bookings", json={"drop_id": drop_id, "unit_key": "TEE", "size": "M"}, headers=as_user(consumer)
    )
    assert claimed.status_code == 201
    booking = claimed.json()
    assert booking["payment_status"] == "AUTHORIZED"
    assert Decimal(booking["authorized_amount"]) == Decimal("108.00")

    sold_out = await client.post(
        f"{API}/bookings", json={"drop_id": drop_id, "unit_key": "TEE", "size": "M"}, headers=as_user(uuid.uuid4())
    )
    assert sold_out.status_code == 409
    assert sold_out.json()["detail"] == {
        "code": "OUT_OF_STOCK",
        "message": "This item is out of stock",
        "action": "REFRESH",
    }

    mine = (await client.get(f"{API}/bookings", headers=as_user(consumer))).json()
    assert [b["id"] for b in mine] == [booking["id"]]
    other = await client.get(f"{API}/bookings/{booking['id']}", headers=as_user(uuid.uuid4()))
    assert other.status_code == 404

    unit = (await client.get(f"{API}/catalog/supplier-lists/{detail['supplier_list_id']}/units/TEE")).json()
    assert unit["total_stock"] == 1
    assert [v["size"] for v in unit["variants"]] == ["S"]

    early = await client.post(f"{API}/bookings/{booking['id']}/capture", headers=as_user(consumer))
    assert early.status_code == 409
    assert early.json()["detail"]["code"] == "DROP_NOT_COMPLETED"

    released = await client.post(
        f"{API}/bookings/{booking['id']}/release", json={"reason": "duplicate"}, headers=as_user(consumer)
    )
    assert released.json()["payment_status"] == "CANCELLED"
    assert gateway.released == ["tok_1"]


async def test_activation_notification_can_be_marked_read(client):
    consumer = uuid.uuid4()
    await open_tee_drop(client, consumer)

    inbox = (await client.get(f"{API}/notifications", headers=as_user(consumer))).json()
    assert inbox["unread_count"] == 1
    assert inbox["items"][0]["notification_type"] == "DROP_ACTIVATED"

    marked = await client.post(f"{API}/notifications/mark-read", json={}, headers=as_user(consumer))
    assert marked.json()["updated"] == 1
    inbox = (await client.get(f"{API}/notifications", headers=as_user(consumer), params={"unread_only": True})).json()
    assert inbox == {"items": [], "unread_count": 0}


async def test_pause_needs_an_active_drop(client):
    drop_id = await open_tee_drop(client, uuid.uuid4())
    admin = as_user(uuid.uuid4())

    assert (await client.post(f"{API}/drops/{drop_id}/pause", json={}, headers=admin)).json()["status"] == "INACTIVE"
    again = await client.post(f"{API}/drops/{drop_id}/pause", json={}, headers=admin)
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "INVALID_TRANSITION"


async def test_only_the_owner_can_release_or_capture(client, gateway):
    consumer = uuid.uuid4()
    drop_id = await open_tee_drop(client, consumer)
    claimed = await client.post(
        f"{API}/bookings", json={"drop_id": drop_id, "unit_key": "TEE", "size": "S"}, headers=as_user(consumer)
    )
    booking_id = claimed.json()["id"]
    stranger = as_user(uuid.uuid4())

    assert (await client.post(f"{API}/bookings/{booking_id}/release", json={})).status_code == 401
    release = await client.post(f"{API}/bookings/{booking_id}/release", json={}, headers=stranger)
    assert release.status_code == 404
    capture = await client.post(f"{API}/bookings/{booking_id}/capture", headers=stranger)
    assert capture.status_code == 404

    assert gateway.released == []
    kept = (await client.get(f"{API}/bookings/{booking_id}", headers=as_user(consumer))).json()
    assert kept["payment_status"] == "AUTHORIZED"


async def test_supplier_list_can_be_deactivated_and_reactivated(client):
    response = await client.post(f"{API}/catalog/supplier-lists", json={
        "supplier_id": str(uuid.uuid4()),
        "name": "Winter Coats",
        "min_discount": "10",
        "max_discount": "40",
        "min_reservation_value": "100",
        "max_reservation_value": "1000",
    })
    list_id = response.json()["id"]

    paused = await client.post(f"{API}/catalog/supplier-lists/{list_id}/deactivate")
    assert paused.status_code == 200
    assert paused.json()["status"] == "INACTIVE"

    resumed = await client.post(f"{API}/catalog/supplier-lists/{list_id}/activate")
    assert resumed.json()["status"] == "ACTIVE"
    assert (await client.post(f"{API}/catalog/supplier-lists/{uuid.uuid4()}/activate")).status_code == 404
