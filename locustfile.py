import os
import random

from locust import HttpUser, between, task

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "adminpass")


class DashboardUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Log in as the seeded admin and give this simulated client its own card
        self.headers = None
        self.card_id = None
        r = self.client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        if r.status_code != 200:
            return
        self.headers = {"Authorization": f"Bearer {r.json()['access_token']}"}
        r = self.client.post("/cards", json={"name": f"card_{random.randint(1, 1_000_000)}"}, headers=self.headers)
        if r.status_code == 201:
            self.card_id = r.json()["id"]

    @task(3)
    def create_order(self):
        if not self.card_id:
            return
        price = round(random.uniform(5000, 90000), 2)
        order = {
            "model": random.choice(["iPhone 15", "Galaxy S24", "Pixel 8"]),
            "variant": "128GB",
            "order_date": f"2024-{random.randint(1, 12):02d}-{random.randint(1, 28):02d}",
            "ordered_price": str(price),
            "cashback": str(round(price * 0.05, 2)),
            "card_id": self.card_id,
            "dealer": random.choice(["Mobile Hub", "Phone Point"]),
        }
        if random.random() < 0.5:
            order["selling_price"] = str(round(price * 1.08, 2))
        self.client.post("/orders", json=order, headers=self.headers)

    @task(1)
    def record_payment(self):
        if not self.card_id:
            return
        self.client.post("/transactions", json={
            "date": "2024-12-31",
            "amount": str(round(random.uniform(100, 5000), 2)),
            "dealer": "Mobile Hub",
            "card_id": self.card_id,
        }, headers=self.headers)

    @task(2)
    def dashboard(self):
        if not self.headers:
            return
        self.client.get("/dashboard", params={"dealer": "Mobile Hub"}, headers=self.headers, name="/dashboard")
