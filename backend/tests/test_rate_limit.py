from fastapi import FastAPI
from fastapi.testclient import TestClient

from stockledger.core.rate_limit import RateLimiter, RateLimitMiddleware, RateLimitRule


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def limited_app(limiter):
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, rate_limiter=limiter)

    @app.post("/api/v1/batches")
    async def create():
        return {"ok": True}

    @app.get("/api/v1/batches")
    async def listing():
        return []

    return app


def test_writes_beyond_the_limit_are_rejected():
    clock = FakeClock()
    limiter = RateLimiter([RateLimitRule("ledger", ("/api/v1/batches",), 2, 60)], clock=clock)
    client = TestClient(limited_app(limiter))

    assert client.post("/api/v1/batches").headers["X-RateLimit-Remaining"] == "1"
    assert client.post("/api/v1/batches").status_code == 200

    response = client.post("/api/v1/batches")
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"

    clock.now += 61
    assert client.post("/api/v1/batches").status_code == 200


def test_reads_are_not_counted():
    limiter = RateLimiter([RateLimitRule("ledger", ("/api/v1/batches",), 1, 60)], clock=FakeClock())
    client = TestClient(limited_app(limiter))

    for _ in range(3):
        assert client.get("/api/v1/batches").status_code == 200
    assert client.post("/api/v1/batches").status_code == 200


def test_first_matching_rule_wins():
    limiter = RateLimiter([
        RateLimitRule("maintenance", ("/api/v1/inventory/reconcile",), 5, 60),
        RateLimitRule("default", ("/api/",), 100, 60),
    ])

    assert limiter.rule_for("/api/v1/inventory/reconcile").name == "maintenance"
    assert limiter.rule_for("/api/v1/items/3").name == "default"
    assert limiter.rule_for("/health") is None
