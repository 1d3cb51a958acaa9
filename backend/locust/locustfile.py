"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags slots       # Overlapping slot contention
  locust -f locustfile.py --tags accept      # Admins racing to accept
  locust -f locustfile.py --tags throughput  # Catalog cache
  locust -f locustfile.py                    # All tests

The accept scenario needs a seeded admin account:
  LOCUST_ADMIN_EMAIL / LOCUST_ADMIN_PASSWORD
"""

import os
import random
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag

PASSWORD = "loadtest-password"
ADMIN_EMAIL = os.getenv("LOCUST_ADMIN_EMAIL", "")
ADMIN_PASSWORD = os.getenv("LOCUST_ADMIN_PASSWORD", "")

# One contested hour, far enough out to never collide with real data
CONTESTED_START = (datetime.now(timezone.utc) + timedelta(days=365)).replace(minute=0, second=0, microsecond=0)

SERVICE_IDS = []
PENDING_BOOKINGS = []


def random_email():
    return f"load_{random.randint(100000, 999999)}@test.com"


def signup(client):
    resp = client.post("/api/v1/auth/register", json={
        "email": random_email(),
        "password": PASSWORD,
        "first_name": "Load",
        "last_name": "Test",
        "address": "1 Load Test Street",
    })
    if resp.status_code != 201:
        return {}
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def load_services(client):
    if SERVICE_IDS:
        return
    resp = client.get("/api/v1/services")
    if resp.status_code == 200:
        SERVICE_IDS.extend(s["public_id"] for s in resp.json()["services"])


class SlotContentionUser(HttpUser):
    """
    Many customers ask for overlapping windows inside the same hour.

    Run: locust -f locustfile.py --tags slots -u 100 -r 50 --run-time 30s

    After the test, verify no active overlap exists:
      SELECT count(*) FROM bookings a JOIN bookings b
        ON a.id < b.id AND tstzrange(a.starts_at, a.ends_at) && tstzrange(b.starts_at, b.ends_at)
       WHERE a.status IN ('pending','accepted','assigned') AND b.status IN ('pending','accepted','assigned');
    Should be 0.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = signup(self.client)
        load_services(self.client)

    @tag("slots")
    @task
    def book_contested_slot(self):
        if not SERVICE_IDS or not self.headers:
            return

        offset = timedelta(minutes=random.choice([0, 15, 30]))
        starts_at = CONTESTED_START + offset
        with self.client.post("/api/v1/bookings",
            json={
                "service_public_id": random.choice(SERVICE_IDS),
                "starts_at": starts_at.isoformat(),
                "ends_at": (starts_at + timedelta(minutes=30)).isoformat(),
                "address": "1 Load Test Street",
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                PENDING_BOOKINGS.append(resp.json()["public_id"])
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: slot taken
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class AcceptRaceUser(HttpUser):
    """
    Several admins accept the same pending bookings.

    Run: locust -f locustfile.py --tags slots,accept -u 20 -r 10 --run-time 30s

    Verify every booking has at most one 'accepted' event:
      SELECT booking_id FROM booking_events WHERE event_type = 'accepted'
       GROUP BY booking_id HAVING count(*) > 1;
    Should return no rows.
    """
    wait_time = between(0, 0.2)

    def on_start(self):
        self.headers = {}
        if not ADMIN_EMAIL:
            return
        resp = self.client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        if resp.status_code == 200:
            self.headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}

    @tag("accept")
    @task
    def accept_pending(self):
        if not PENDING_BOOKINGS or not self.headers:
            return

        public_id = random.choice(PENDING_BOOKINGS)
        with self.client.patch(f"/api/v1/admin/bookings/{public_id}/accept",
            headers=self.headers,
            name="/api/v1/admin/bookings/{id}/accept",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()  # 409: another admin won
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    Catalog reads with and without Redis.

    Run twice (Redis up, then Redis stopped) and compare P95 latency:
      locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_services(self):
        self.client.get("/api/v1/services", name="/api/v1/services [cached]")

    @tag("throughput", "read")
    @task(3)
    def availability(self):
        day = (CONTESTED_START + timedelta(days=random.randint(-3, 3))).date().isoformat()
        self.client.get(f"/api/v1/bookings/availability?date={day}", name="/api/v1/bookings/availability")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")
