"""
Locust Load Test Suite

Venues are managed outside this service; point the run at existing ones:
  LOAD_VENUE_IDS=1,2,3 locust -f locustfile.py

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double booking
  locust -f locustfile.py --tags payments     # Test reconciliation under load
  locust -f locustfile.py --tags throughput   # Test calendar cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag

VENUE_IDS = [int(v) for v in os.environ.get("LOAD_VENUE_IDS", "1").split(",")]

# One contested slot per run: every ConcurrencyUser asks for exactly this range
CONTESTED_START = (datetime.now(timezone.utc) + timedelta(days=365)).replace(
    hour=18, minute=0, second=0, microsecond=0
)
CONTESTED_END = CONTESTED_START + timedelta(hours=4)

BOOKING_IDS = []


def booking_payload(venue_id: int, start: datetime, end: datetime) -> dict:
    return {
        "venue_id": venue_id,
        "client_name": "Load Test",
        "contact_no": "555-0100",
        "email": f"load_{random.randint(10000, 99999)}@test.com",
        "occasion_type": "wedding",
        "number_of_guests": random.randint(50, 300),
        "event_start": start.isoformat(),
        "event_end": end.isoformat(),
        "total_amount": "10000.00",
    }


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - N users -> 1 slot

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM bookings
      WHERE venue_id = X AND event_start = '<contested start>' AND NOT is_deleted;
    Should be exactly 1
    """
    wait_time = between(0, 0.1)

    @tag("concurrency")
    @task
    def book_contested_slot(self):
        """Everyone fights for the same [start, end) on the first venue."""
        with self.client.post(
            "/api/v1/bookings/",
            json=booking_payload(VENUE_IDS[0], CONTESTED_START, CONTESTED_END),
            name="/api/v1/bookings/ [contested]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                BOOKING_IDS.append(resp.json()["id"])
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: slot taken
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class PaymentUser(HttpUser):
    """
    TEST 2: Payments - concurrent inbound payments on the same bookings

    Run: locust -f locustfile.py --tags payments -u 50 -r 10 --run-time 60s

    After test, verify for every booking:
      advance_amount = SUM(amount) of successful inbound transactions
    and no transaction is left with reconciliation_pending = true.
    """
    wait_time = between(0.05, 0.2)

    def on_start(self):
        start = datetime.now(timezone.utc) + timedelta(days=random.randint(30, 3000), hours=random.randint(0, 23))
        resp = self.client.post(
            "/api/v1/bookings/",
            json=booking_payload(random.choice(VENUE_IDS), start, start + timedelta(hours=2)),
            name="/api/v1/bookings/ [setup]",
        )
        if resp.status_code == 201:
            BOOKING_IDS.append(resp.json()["id"])

    @tag("payments")
    @task
    def pay(self):
        if not BOOKING_IDS:
            return
        with self.client.post(
            "/api/v1/transactions/",
            json={
                "booking_id": random.choice(BOOKING_IDS),
                "amount": str(random.randint(1, 500)),
                "mode": random.choice(["cash", "card", "upi"]),
            },
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 503):
                resp.success()  # 503: recorded, reconciliation pending
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - calendar cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec, P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def venue_calendar_cached(self):
        venue_id = random.choice(VENUE_IDS)
        self.client.get(f"/api/v1/venues/{venue_id}/bookings", name="/api/v1/venues/{id}/bookings [cached]")

    @tag("throughput", "read")
    @task(5)
    def availability(self):
        """Never cached: always hits the database."""
        venue_id = random.choice(VENUE_IDS)
        start = datetime.now(timezone.utc) + timedelta(days=random.randint(1, 365))
        self.client.get(
            f"/api/v1/venues/{venue_id}/availability",
            params={"start": start.isoformat(), "end": (start + timedelta(hours=3)).isoformat()},
            name="/api/v1/venues/{id}/availability",
        )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def inverted_interval(self):
        start = datetime.now(timezone.utc) + timedelta(days=10)
        with self.client.post(
            "/api/v1/bookings/",
            json=booking_payload(VENUE_IDS[0], start, start - timedelta(hours=1)),
            catch_response=True,
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_venue(self):
        start = datetime.now(timezone.utc) + timedelta(days=10)
        with self.client.post(
            "/api/v1/bookings/",
            json=booking_payload(999999, start, start + timedelta(hours=1)),
            catch_response=True,
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def negative_payment(self):
        with self.client.post(
            "/api/v1/transactions/",
            json={"booking_id": BOOKING_IDS[0] if BOOKING_IDS else 1, "amount": "-5", "mode": "cash"},
            catch_response=True,
        ) as resp:
            if resp.status_code in (400, 404):
                resp.success()
            else:
                resp.failure(f"Expected 400/404, got {resp.status_code}")
