"""
Locust Load Test Suite

Seed the database first (python -m app.seed --reset) so the
"Limited Concert" event exists with 2 tickets.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overselling
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
import uuid

from locust import HttpUser, task, between, tag, events

PASSWORD = "Password123"
CONTENDED_EVENT_TITLE = "Limited Concert"

# Shared state
EVENT_IDS = []
CONTENDED_EVENT_ID = None


def random_email():
    return f"load_{uuid.uuid4().hex[:12]}@test.com"


def sign_up(client) -> dict:
    """Register a fresh user and return bearer headers, or {} on failure."""
    resp = client.post("/api/v1/auth/register", json={
        "email": random_email(),
        "password": PASSWORD,
        "name": "Load Tester",
    })
    if resp.status_code != 201:
        return {}
    return {"Authorization": f"Bearer {resp.json()['accessToken']}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Contended event: '{CONTENDED_EVENT_TITLE}' (run app.seed first)")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many users fight for 2 tickets

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT remaining_tickets FROM events WHERE title = 'Limited Concert';  -- 0
      SELECT COUNT(*) FROM bookings b JOIN events e ON e.id = b.event_id
       WHERE e.title = 'Limited Concert' AND b.status = 'CONFIRMED';      -- total_tickets
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        global CONTENDED_EVENT_ID
        self.headers = sign_up(self.client)

        if not CONTENDED_EVENT_ID:
            resp = self.client.get(
                f"/api/v1/events/?search={CONTENDED_EVENT_TITLE}",
                name="/api/v1/events/?search",
            )
            if resp.status_code == 200 and resp.json()["data"]:
                CONTENDED_EVENT_ID = resp.json()["data"][0]["id"]

    @tag("concurrency")
    @task
    def book_limited_event(self):
        """All users fight for the same tickets."""
        if not CONTENDED_EVENT_ID or not self.headers:
            return

        with self.client.post(
            "/api/v1/bookings/",
            json={"eventId": CONTENDED_EVENT_ID},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: sold out or already booked
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        """Hammer the cached endpoint."""
        resp = self.client.get(
            "/api/v1/events/?page=1&limit=10",
            name="/api/v1/events/ [cached]",
        )
        if resp.status_code == 200:
            for event in resp.json()["data"]:
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

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
        self.headers = sign_up(self.client)

    def _expect(self, resp, *codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"eventId": str(uuid.uuid4())},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 404)

    @tag("edge")
    @task
    def malformed_event_id(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"eventId": 999999},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 422)

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 400, 422)

    @tag("edge")
    @task
    def cancel_unknown_booking(self):
        with self.client.delete(
            f"/api/v1/bookings/{uuid.uuid4()}",
            headers=self.headers,
            name="/api/v1/bookings/{id}",
            catch_response=True,
        ) as resp:
            self._expect(resp, 404)

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"eventId": str(uuid.uuid4())},
            catch_response=True,
        ) as resp:
            self._expect(resp, 401)


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing, some bookings, occasional cancellations.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = sign_up(self.client)
        self.booking_ids = []

    @task(50)
    def browse_events(self):
        resp = self.client.get(
            f"/api/v1/events/?page=1&limit=10&sortBy={random.choice(['date', 'price', 'title'])}",
            name="/api/v1/events/",
        )
        if resp.status_code == 200:
            for event in resp.json()["data"]:
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @task(10)
    def book_ticket(self):
        if EVENT_IDS and self.headers:
            resp = self.client.post(
                "/api/v1/bookings/",
                json={"eventId": random.choice(EVENT_IDS)},
                headers=self.headers,
            )
            if resp.status_code == 201:
                self.booking_ids.append(resp.json()["booking"]["id"])

    @task(5)
    def my_bookings(self):
        if self.headers:
            self.client.get("/api/v1/bookings/", headers=self.headers)

    @task(3)
    def cancel_booking(self):
        if self.booking_ids:
            booking_id = self.booking_ids.pop(random.randrange(len(self.booking_ids)))
            self.client.delete(
                f"/api/v1/bookings/{booking_id}",
                headers=self.headers,
                name="/api/v1/bookings/{id}",
            )
