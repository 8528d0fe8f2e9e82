"""
HTTP-level tests: status codes, error bodies and headers.
"""

import pytest

from conftest import at
from venue_ledger.api.middleware import route_context
from venue_ledger.api.routes import venues
from venue_ledger.core.exceptions import ConcurrencyError
from venue_ledger.services import transaction_service

API = "/api/v1"


def booking_payload(venue_id: int, start_hour: int, end_hour: int, **overrides) -> dict:
    payload = {
        "venue_id": venue_id,
        "client_name": "Asha Rao",
        "contact_no": "555-0101",
        "email": "asha@example.com",
        "occasion_type": "wedding",
        "number_of_guests": 100,
        "event_start": at(start_hour).isoformat(),
        "event_end": at(end_hour).isoformat(),
        "total_amount": "1000.00",
    }
    payload.update(overrides)
    return payload


def catered_payload(venue_id: int, start_hour: int, end_hour: int) -> dict:
    return booking_payload(
        venue_id,
        start_hour,
        end_hour,
        total_amount=None,
        food_package={"name": "Royal Thali", "total_price_per_person": "500"},
        catering_vendor={"name": "Spice Route Caterers"},
        services=[{"service": "DJ", "price": "8000", "vendor": {"name": "Beat Box Entertainment"}}],
    )


@pytest.mark.asyncio
async def test_health(client):
    """Health endpoint reports the cache as disabled in tests."""
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_metrics_exposed(client, venue):
    """Prometheus metrics include booking and slot counters."""
    await client.post(f"{API}/bookings/", json=booking_payload(venue.id, 10, 14))
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "booking_writes_total" in response.text
    assert "slot_checks_total" in response.text


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    """A caller-supplied request ID is returned unchanged."""
    response = await client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"
    assert response.headers["X-Response-Time"].endswith("ms")


@pytest.mark.asyncio
async def test_request_id_is_assigned(client):
    """Requests without an ID get one assigned."""
    response = await client.get("/health")
    assert response.headers["X-Request-ID"]


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/api/v1/bookings/12/transactions", {"booking_id": 12}),
        ("/api/v1/reconciliation/purchase-orders/3", {"purchase_order_id": 3}),
        ("/api/v1/venues/4/bookings", {"venue_id": 4}),
        ("/api/v1/transactions/", {}),
        ("/health", {}),
    ],
)
def test_route_ids_are_bound_for_logging(path, expected):
    assert route_context(path) == expected


@pytest.mark.asyncio
async def test_create_booking(client, venue):
    """Successful booking returns 201 with a pending, unpaid booking."""
    response = await client.post(f"{API}/bookings/", json=booking_payload(venue.id, 10, 14))
    assert response.status_code == 201
    body = response.json()
    assert body["booking_status"] == "pending"
    assert body["payment_status"] == "unpaid"
    assert body["version"] == 1


@pytest.mark.asyncio
async def test_overlapping_booking_is_409(client, venue):
    """Overlapping booking returns 409 naming the conflicting booking."""
    first = await client.post(f"{API}/bookings/", json=booking_payload(venue.id, 10, 14))
    response = await client.post(f"{API}/bookings/", json=booking_payload(venue.id, 12, 16))

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "ConflictError"
    assert body["detail"] == "Venue is already booked for this time range"
    assert body["context"]["conflicting_booking_ids"] == [first.json()["id"]]


@pytest.mark.asyncio
async def test_inverted_interval_is_400(client, venue):
    """End before start returns 400."""
    response = await client.post(f"{API}/bookings/", json=booking_payload(venue.id, 14, 10))
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_schema_violation_is_422(client, venue):
    """Zero guests fails schema validation."""
    response = await client.post(f"{API}/bookings/", json=booking_payload(venue.id, 10, 14, number_of_guests=0))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_booking_is_404(client):
    """Missing booking returns 404."""
    response = await client.get(f"{API}/bookings/9999")
    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundError"


@pytest.mark.asyncio
async def test_availability(client, venue, booking):
    """Taken, back-to-back and self-excluded slots."""
    params = {"start": at(12).isoformat(), "end": at(16).isoformat()}
    response = await client.get(f"{API}/venues/{venue.id}/availability", params=params)
    assert response.status_code == 200
    body = response.json()
    assert body["available"] is False
    assert body["conflicting_booking_ids"] == [booking.id]

    params = {"start": at(14).isoformat(), "end": at(16).isoformat()}
    response = await client.get(f"{API}/venues/{venue.id}/availability", params=params)
    assert response.json()["available"] is True

    params = {"start": at(12).isoformat(), "end": at(16).isoformat(), "exclude_booking_id": booking.id}
    response = await client.get(f"{API}/venues/{venue.id}/availability", params=params)
    assert response.json()["available"] is True


@pytest.mark.asyncio
async def test_availability_unknown_venue_is_404(client):
    """Availability on a missing venue returns 404."""
    params = {"start": at(12).isoformat(), "end": at(16).isoformat()}
    response = await client.get(f"{API}/venues/9999/availability", params=params)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_venue_calendar(client, venue, booking):
    """Cancelled bookings drop out of the default calendar."""
    response = await client.get(f"{API}/venues/{venue.id}/bookings")
    assert response.status_code == 200
    assert [b["id"] for b in response.json()] == [booking.id]

    await client.post(f"{API}/bookings/{booking.id}/cancel", json={"reason": "postponed"})

    assert (await client.get(f"{API}/venues/{venue.id}/bookings")).json() == []
    inactive = await client.get(f"{API}/venues/{venue.id}/bookings", params={"include_inactive": "true"})
    assert [b["booking_status"] for b in inactive.json()] == ["cancelled"]


@pytest.mark.asyncio
async def test_cached_calendar_carries_no_payment_state(client, venue, booking, monkeypatch):
    """A payment recorded after the calendar was cached leaves the cached copy correct."""
    venue_id, booking_id = venue.id, booking.id
    store = {}

    async def get_cached(key):
        return store.get(key)

    async def set_cached(key, data):
        store[key] = data

    monkeypatch.setattr(venues, "get_cached_calendar", get_cached)
    monkeypatch.setattr(venues, "set_cached_calendar", set_cached)

    first = await client.get(f"{API}/venues/{venue_id}/bookings")
    assert len(store) == 1
    entry = first.json()[0]
    assert entry["id"] == booking_id
    assert not {"advance_amount", "payment_status", "version"} & entry.keys()

    paid = await client.post(
        f"{API}/transactions/",
        json={"booking_id": booking_id, "amount": "1000", "mode": "upi"},
    )
    assert paid.status_code == 201

    assert (await client.get(f"{API}/venues/{venue_id}/bookings")).json() == first.json()
    direct = await client.get(f"{API}/bookings/{booking_id}")
    assert direct.json()["payment_status"] == "paid"


@pytest.mark.asyncio
async def test_booking_lifecycle_endpoints(client, booking):
    """Confirm, duplicate confirm, delete and restore."""
    confirmed = await client.post(f"{API}/bookings/{booking.id}/confirm", json={"user_id": "manager-1"})
    assert confirmed.status_code == 200
    assert confirmed.json()["booking_status"] == "confirmed"

    again = await client.post(f"{API}/bookings/{booking.id}/confirm")
    assert again.status_code == 400
    assert again.json()["error"] == "InvalidStateTransitionError"

    deleted = await client.delete(f"{API}/bookings/{booking.id}", params={"deleted_by": "manager-1"})
    assert deleted.json()["is_deleted"] is True
    assert (await client.get(f"{API}/bookings/{booking.id}")).status_code == 404

    restored = await client.post(f"{API}/bookings/{booking.id}/restore")
    assert restored.status_code == 200
    assert restored.json()["is_deleted"] is False


@pytest.mark.asyncio
async def test_payment_updates_booking(client, booking):
    """Recording a payment reconciles the booking before returning."""
    response = await client.post(
        f"{API}/transactions/",
        json={"booking_id": booking.id, "amount": "250", "mode": "upi"},
    )
    assert response.status_code == 201
    assert response.json()["type"] == "advance"
    assert response.json()["reconciliation_pending"] is False

    body = (await client.get(f"{API}/bookings/{booking.id}")).json()
    assert body["payment_status"] == "partially_paid"
    assert body["advance_amount"] == "250.00"

    listed = await client.get(f"{API}/bookings/{booking.id}/transactions")
    assert [t["amount"] for t in listed.json()] == ["250.00"]


@pytest.mark.asyncio
async def test_non_positive_payment_is_400(client, booking):
    """Zero amount returns 400."""
    response = await client.post(
        f"{API}/transactions/",
        json={"booking_id": booking.id, "amount": "0", "mode": "cash"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_refund_endpoint(client, booking):
    """Refund reverses the payment; refunded is final."""
    created = await client.post(
        f"{API}/transactions/",
        json={"booking_id": booking.id, "amount": "1000", "mode": "card"},
    )
    txn_id = created.json()["id"]

    response = await client.patch(f"{API}/transactions/{txn_id}/status", json={"status": "refunded"})
    assert response.status_code == 200
    assert response.json()["status"] == "refunded"
    assert (await client.get(f"{API}/bookings/{booking.id}")).json()["payment_status"] == "unpaid"

    response = await client.patch(f"{API}/transactions/{txn_id}/status", json={"status": "success"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_deferred_reconciliation_is_503(client, booking, monkeypatch):
    """Payment is stored and flagged when reconciliation fails; the sweep repairs it."""
    async def unavailable(db, txn):
        raise ConcurrencyError("Booking reconciliation lost to concurrent writes")

    monkeypatch.setattr(transaction_service, "reconcile_owner", unavailable)

    response = await client.post(
        f"{API}/transactions/",
        json={"booking_id": booking.id, "amount": "250", "mode": "upi"},
    )
    assert response.status_code == 503
    body = response.json()
    assert body["error"] == "ReconciliationPendingError"
    txn_id = body["context"]["transaction_id"]

    stored = await client.get(f"{API}/transactions/{txn_id}")
    assert stored.json()["reconciliation_pending"] is True

    sweep = await client.post(f"{API}/reconciliation/sweep")
    assert sweep.json() == {"bookings": 1, "purchase_orders": 0, "failed": 0}
    assert (await client.get(f"{API}/transactions/{txn_id}")).json()["reconciliation_pending"] is False


@pytest.mark.asyncio
async def test_reconcile_booking_endpoint(client, booking):
    """On-demand reconciliation of a booking without payments."""
    response = await client.post(f"{API}/reconciliation/bookings/{booking.id}")
    assert response.status_code == 200
    assert response.json()["payment_status"] == "unpaid"


@pytest.mark.asyncio
async def test_generate_purchase_orders(client, venue):
    """Generation creates catering and DJ POs once; the second call returns 409."""
    created = await client.post(f"{API}/bookings/", json=catered_payload(venue.id, 18, 23))
    booking_id = created.json()["id"]
    assert created.json()["total_amount"] == "58000.00"

    exists = await client.get(f"{API}/bookings/{booking_id}/purchase-orders/exists")
    assert exists.json() == {"has_existing_pos": False, "po_count": 0, "purchase_orders": []}

    generated = await client.post(f"{API}/bookings/{booking_id}/purchase-orders/generate", json={})
    assert generated.status_code == 201
    assert [po["total_amount"] for po in generated.json()] == ["50000.00", "8000.00"]

    again = await client.post(f"{API}/bookings/{booking_id}/purchase-orders/generate", json={})
    assert again.status_code == 409

    exists = await client.get(f"{API}/bookings/{booking_id}/purchase-orders/exists")
    assert exists.json()["po_count"] == 2


@pytest.mark.asyncio
async def test_generate_single_vendor_errors(client, venue):
    """Unknown service index returns 400."""
    created = await client.post(f"{API}/bookings/", json=catered_payload(venue.id, 18, 23))
    booking_id = created.json()["id"]

    response = await client.post(
        f"{API}/bookings/{booking_id}/purchase-orders/generate",
        json={"vendor_type": "service", "service_index": 3},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Service not found at the specified index"


@pytest.mark.asyncio
async def test_purchase_order_lifecycle_endpoints(client, booking):
    """Submit, approve, pay in full; a paid PO cannot be cancelled."""
    created = await client.post(
        f"{API}/purchase-orders/",
        json={
            "booking_id": booking.id,
            "vendor_type": "service",
            "vendor_details": {"name": "Bright Lights Co"},
            "vendor_reference": "lighting",
            "line_items": [{"description": "Stage lighting", "total_price": "400"}],
        },
    )
    assert created.status_code == 201
    po = created.json()
    assert po["status"] == "draft"
    assert po["balance_amount"] == "400.00"

    submitted = await client.post(f"{API}/purchase-orders/{po['id']}/submit", json={})
    assert submitted.json()["status"] == "pending"

    missing_approver = await client.post(f"{API}/purchase-orders/{po['id']}/approve", json={})
    assert missing_approver.status_code == 422

    approved = await client.post(f"{API}/purchase-orders/{po['id']}/approve", json={"approved_by": "finance-lead"})
    assert approved.json()["status"] == "approved"

    paid = await client.post(
        f"{API}/transactions/",
        json={
            "booking_id": booking.id,
            "amount": "400",
            "mode": "bank_transfer",
            "direction": "outbound",
            "vendor_type": "service",
            "purchase_order_id": po["id"],
        },
    )
    assert paid.json()["type"] == "vendor_payment"

    body = (await client.get(f"{API}/purchase-orders/{po['id']}")).json()
    assert body["status"] == "paid"
    assert body["balance_amount"] == "0.00"

    cancel = await client.post(f"{API}/purchase-orders/{po['id']}/cancel", json={"reason": "too late"})
    assert cancel.status_code == 400

    payments = await client.get(f"{API}/purchase-orders/{po['id']}/transactions")
    assert [t["amount"] for t in payments.json()] == ["400.00"]


@pytest.mark.asyncio
async def test_unknown_purchase_order_is_404(client):
    """Missing PO returns 404."""
    response = await client.get(f"{API}/purchase-orders/9999")
    assert response.status_code == 404
