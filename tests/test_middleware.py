from fastapi.testclient import TestClient

from filegate.main import create_app
from filegate.middleware import SECURITY_HEADERS, FixedWindowRateLimiter
from filegate.services.s3_storage import S3Storage
from tests.conftest import make_settings


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_rate_limiter_blocks_after_max_requests_and_resets():
    clock = _Clock()
    limiter = FixedWindowRateLimiter(max_requests=2, window_seconds=60, clock=clock)

    assert limiter.hit("1.2.3.4").allowed
    assert limiter.hit("1.2.3.4").remaining == 0
    blocked = limiter.hit("1.2.3.4")
    assert not blocked.allowed
    assert limiter.hit("5.6.7.8").allowed

    clock.now = 61.0
    assert limiter.hit("1.2.3.4").allowed


def test_rate_limiter_evicts_expired_clients_once_per_window():
    clock = _Clock()
    limiter = FixedWindowRateLimiter(max_requests=5, window_seconds=60, clock=clock)
    limiter.hit("a")
    clock.now = 10.0
    limiter.hit("b")

    clock.now = 65.0
    limiter.hit("c")
    assert limiter.tracked_clients() == 2

    clock.now = 80.0
    limiter.hit("d")
    assert limiter.tracked_clients() == 3

    clock.now = 130.0
    limiter.hit("e")
    assert limiter.tracked_clients() == 2


def _limited_client(fake_s3, max_requests: int) -> TestClient:
    settings = make_settings(rate_limit_max_requests=max_requests)
    app = create_app(settings, storage=S3Storage(client=fake_s3, bucket="uploads"))
    return TestClient(app)


def test_api_requests_are_rate_limited(fake_s3):
    with _limited_client(fake_s3, 2) as client:
        first = client.get("/api/files/health")
        client.get("/api/files/health")
        blocked = client.get("/api/files/health")

    assert first.headers["RateLimit-Limit"] == "2"
    assert first.headers["RateLimit-Remaining"] == "1"
    assert blocked.status_code == 429
    assert blocked.json()["code"] == "RATE_LIMIT_EXCEEDED"
    assert "Retry-After" in blocked.headers


def test_paths_outside_api_are_not_rate_limited(fake_s3):
    with _limited_client(fake_s3, 1) as client:
        responses = [client.get("/") for _ in range(3)]

    assert all(response.status_code == 200 for response in responses)


def test_cors_allows_configured_origin(client):
    response = client.get("/api/files/health", headers={"Origin": "http://localhost:3000"})

    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_cors_ignores_unknown_origin(client):
    response = client.get("/api/files/health", headers={"Origin": "http://evil.example"})

    assert "access-control-allow-origin" not in response.headers


def test_responses_carry_security_headers(client):
    for response in (client.get("/"), client.get("/api/files/health"), client.get("/nope")):
        for name, value in SECURITY_HEADERS.items():
            assert response.headers[name] == value


def test_large_responses_are_gzip_compressed(client):
    for index in range(20):
        client.post("/api/files/upload", files={"file": (f"clip{index}.mp4", b"hello", "video/mp4")})

    compressed = client.get("/api/files/list", headers={"Accept-Encoding": "gzip"})
    plain = client.get("/api/files/list", headers={"Accept-Encoding": "identity"})

    assert compressed.headers["content-encoding"] == "gzip"
    assert compressed.json()["data"]["count"] == 20
    assert "content-encoding" not in plain.headers
