"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overselling
  locust -f locustfile.py --tags throughput   # Test availability cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

The realistic flow pays through the MockPay hosted page, so run the API
with PAYMENT_PROVIDER=mockpay.
"""

import random
from datetime import datetime, timedelta, timezone

from locust import HttpUser, between, events, tag, task

# Shared state
EVENT_IDS = []
TICKET_TYPE_IDS = []
CONCURRENCY_TICKET_TYPE_ID = None
CONCURRENCY_CAPACITY = 10
PASSWORD = "loadtest123"


def random_email():
    return f"load_{random.randint(10000, 99999)}_{random.randint(0, 999)}@test.com"


def future(days=30):
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def register_and_login(client, role="attendee"):
    email = random_email()
    client.post("/api/v1/auth/register", json={
        "email": email,
        "full_name": "Load Tester",
        "password": PASSWORD,
        "role": role,
    })
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    if resp.status_code == 200:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


def create_event_with_ticket_type(client, headers, capacity, title="Load Test Event"):
    resp = client.post("/api/v1/events/", json={
        "title": title,
        "starts_at": future(random.randint(7, 90)),
        "location": "Test",
    }, headers=headers)
    if resp.status_code != 201:
        return None, None
    event_id = resp.json()["id"]

    resp = client.post(f"/api/v1/events/{event_id}/ticket-types", json={
        "name": "General",
        "price": "25.00",
        "capacity_total": capacity,
        "max_per_order": 4,
    }, headers=headers)
    if resp.status_code != 201:
        return event_id, None
    return event_id, resp.json()["id"]


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"SETUP: concurrency ticket type has {CONCURRENCY_CAPACITY} tickets")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 buyers -> 10 tickets

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT capacity_reserved, capacity_total FROM ticket_types WHERE id = X;
    capacity_reserved should be <= capacity_total
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        global CONCURRENCY_TICKET_TYPE_ID
        self.headers = register_and_login(self.client, role="organizer")
        if self.headers and not CONCURRENCY_TICKET_TYPE_ID:
            _, ticket_type_id = create_event_with_ticket_type(
                self.client, self.headers, CONCURRENCY_CAPACITY, title="Concurrency Test Event"
            )
            if ticket_type_id:
                CONCURRENCY_TICKET_TYPE_ID = ticket_type_id
                print(f"\nCreated ticket type {ticket_type_id} with {CONCURRENCY_CAPACITY} tickets\n")

    @tag("concurrency")
    @task
    def buy_limited_tickets(self):
        """All users fight for the same 10 tickets."""
        if not CONCURRENCY_TICKET_TYPE_ID or not self.headers:
            return

        with self.client.post(
            "/api/v1/checkout/",
            json={"ticket_type_id": CONCURRENCY_TICKET_TYPE_ID, "quantity": 1},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code in (400, 409):
                resp.success()  # Expected: sold out
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - availability cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events(self):
        page = random.randint(1, 5)
        resp = self.client.get(f"/api/v1/events/?page={page}&page_size=20", name="/api/v1/events/")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @tag("throughput", "read")
    @task(5)
    def list_ticket_types_cached(self):
        """Hammer the cached availability listing."""
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            self.client.get(
                f"/api/v1/events/{event_id}/ticket-types",
                name="/api/v1/events/{id}/ticket-types [cached]",
            )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = register_and_login(self.client)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_ticket_type(self):
        with self.client.post(
            "/api/v1/checkout/",
            json={"ticket_type_id": 999999, "quantity": 1},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 404))

    @tag("edge")
    @task
    def negative_quantity(self):
        with self.client.post(
            "/api/v1/checkout/",
            json={"ticket_type_id": 1, "quantity": -5},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 422))

    @tag("edge")
    @task
    def zero_quantity(self):
        with self.client.post(
            "/api/v1/checkout/",
            json={"ticket_type_id": 1, "quantity": 0},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 422))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/checkout/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 422))

    @tag("edge")
    @task
    def guest_without_details(self):
        with self.client.post(
            "/api/v1/checkout/",
            json={"ticket_type_id": 1, "quantity": 1},
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 404))

    @tag("edge")
    @task
    def forged_webhook(self):
        with self.client.post(
            "/api/v1/payments/webhook",
            data=b'{"id": "evt_forged", "status": "paid"}',
            catch_response=True,
        ) as resp:
            self._expect(resp, (403,))


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some checkouts paid on the MockPay page, some abandoned
      - Rare event creation
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = register_and_login(self.client, role="organizer")

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/?page=1&page_size=20")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_ticket_types(self):
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            self.client.get(f"/api/v1/events/{event_id}/ticket-types", name="/api/v1/events/{id}/ticket-types")

    @task(10)
    def buy_tickets(self):
        if not TICKET_TYPE_IDS or not self.headers:
            return
        resp = self.client.post(
            "/api/v1/checkout/",
            json={"ticket_type_id": random.choice(TICKET_TYPE_IDS), "quantity": random.randint(1, 3)},
            headers=self.headers,
        )
        if resp.status_code != 201:
            return
        session_id = resp.json()["session_id"]
        outcome = "paid" if random.random() < 0.8 else "expired"
        self.client.post(f"/api/v1/mockpay/{session_id}?outcome={outcome}", name="/api/v1/mockpay/{session_id}")
        self.client.get(f"/api/v1/checkout/verify/{session_id}", name="/api/v1/checkout/verify/{session_id}")

    @task(3)
    def create_event(self):
        if self.headers:
            event_id, ticket_type_id = create_event_with_ticket_type(
                self.client, self.headers, random.randint(10, 500), title=f"Event {random.randint(1, 10000)}"
            )
            if event_id:
                EVENT_IDS.append(event_id)
            if ticket_type_id:
                TICKET_TYPE_IDS.append(ticket_type_id)
