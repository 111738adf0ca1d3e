"""HTTP-level tests for ``meta_scraper.main``."""

import pytest
from fastapi.testclient import TestClient

import meta_scraper.main as main_module
from conftest import FakeBrowser, FakeSite
from meta_scraper.browser import BrowserLaunchError
from meta_scraper.config import Settings
from meta_scraper.coordinator import BatchScrapeError


def _client(fake_browser, **overrides):
    settings = Settings(**overrides)
    app = main_module.create_app(settings)
    coordinator = main_module.build_coordinator(settings, fake_browser)
    app.dependency_overrides[main_module.get_coordinator] = lambda: coordinator
    return TestClient(app)


def test_scrape_returns_results(fake_browser):
    fake_browser.sites["https://example.com/"] = FakeSite(
        html='<title>Example</title><meta property="og:title" content="OG">'
    )
    client = _client(fake_browser)

    response = client.post("/api/scrape", json={"urls": ["https://example.com", "not a url"]})

    assert response.status_code == 200
    assert response.json() == [
        {
            "url": "https://example.com/",
            "status": "success",
            "metaTags": [
                {"name": "title", "content": "Example"},
                {"name": "og:title", "content": "OG"},
            ],
        }
    ]


def test_scrape_reports_per_url_errors(fake_browser):
    fake_browser.sites["https://example.com/gone"] = FakeSite(status=404)
    client = _client(fake_browser)

    response = client.post("/api/scrape", json={"urls": ["https://example.com/gone"]})

    assert response.status_code == 200
    assert response.json() == [
        {
            "url": "https://example.com/gone",
            "status": "error",
            "error": "HTTP error! status: 404 for https://example.com/gone",
            "metaTags": [],
        }
    ]


def test_scrape_empty_list(fake_browser):
    response = _client(fake_browser).post("/api/scrape", json={"urls": []})

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.parametrize(
    "body",
    [{}, {"urls": "https://example.com"}, {"urls": None}, ["https://example.com"]],
)
def test_scrape_requires_url_array(fake_browser, body):
    response = _client(fake_browser).post("/api/scrape", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "URLs are required and must be an array."}


def test_scrape_rejects_invalid_json(fake_browser):
    response = _client(fake_browser).post(
        "/api/scrape", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400


def test_scrape_batch_failure_is_500():
    class BrokenCoordinator:
        async def scrape(self, urls):
            raise BatchScrapeError("wait failed")

    app = main_module.create_app(Settings())
    app.dependency_overrides[main_module.get_coordinator] = lambda: BrokenCoordinator()

    response = TestClient(app).post("/api/scrape", json={"urls": ["https://example.com"]})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "message": "wait failed"}


def test_scrape_before_startup_is_unavailable():
    app = main_module.create_app(Settings())

    response = TestClient(app).post("/api/scrape", json={"urls": []})

    assert response.status_code == 503


def test_liveness_and_security_headers(fake_browser):
    response = _client(fake_browser).get("/api/test")

    assert response.status_code == 200
    assert response.json() == {"status": "API is working"}
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "default-src 'self'" in response.headers["Content-Security-Policy"]
    assert response.headers["RateLimit-Limit"] == "100"


def test_frontend_is_served_for_root_and_unknown_paths(fake_browser):
    client = _client(fake_browser)

    for path in ("/", "/some/client/route"):
        response = client.get(path)
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "/api/scrape" in response.text


def test_rate_limit_applies_to_api_routes_only(fake_browser):
    client = _client(fake_browser, rate_limit_max=2)

    assert client.get("/api/test").status_code == 200
    assert client.get("/api/test").status_code == 200
    limited = client.get("/api/test")
    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) > 0
    assert client.get("/").status_code == 200


def test_oversized_body_is_rejected(fake_browser):
    client = _client(fake_browser, max_body_bytes=16)

    response = client.post("/api/scrape", json={"urls": ["https://example.com/long/path"]})

    assert response.status_code == 413


def test_streamed_body_without_length_is_capped(fake_browser):
    client = _client(fake_browser, max_body_bytes=16)
    body = b'{"urls": ["https://example.com/long/path"]}'

    def chunks():
        for start in range(0, len(body), 8):
            yield body[start : start + 8]

    response = client.post(
        "/api/scrape", content=chunks(), headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 413
    assert response.json() == {"error": "Payload too large"}
    assert fake_browser.navigations == []


def test_cors_allows_configured_origin(fake_browser):
    client = _client(fake_browser, cors_origins="http://localhost:3000")

    response = client.get("/api/test", headers={"Origin": "http://localhost:3000"})

    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_lifespan_starts_and_closes_browser(monkeypatch):
    sessions = []

    class FakeSession(FakeBrowser):
        def __init__(self, settings):
            super().__init__()
            self.initialized = False
            self.shutdown_calls = 0
            sessions.append(self)

        async def initialize(self):
            self.initialized = True

        async def shutdown(self):
            self.shutdown_calls += 1

    monkeypatch.setattr(main_module, "BrowserSession", FakeSession)
    app = main_module.create_app(Settings())

    with TestClient(app) as client:
        assert client.post("/api/scrape", json={"urls": ["https://example.com"]}).status_code == 200

    assert sessions[0].initialized is True
    assert sessions[0].shutdown_calls == 1
    assert sessions[0].navigations == ["https://example.com/"]


def test_browser_launch_failure_aborts_startup(monkeypatch):
    class FailingSession:
        def __init__(self, settings):
            pass

        async def initialize(self):
            raise BrowserLaunchError("no chromium")

    monkeypatch.setattr(main_module, "BrowserSession", FailingSession)
    app = main_module.create_app(Settings())

    with pytest.raises(BrowserLaunchError):
        with TestClient(app):
            pass


def test_unexpected_scrape_error_keeps_cors_and_security_headers():
    class CrashingCoordinator:
        async def scrape(self, urls):
            raise RuntimeError("cache exploded")

    app = main_module.create_app(Settings(cors_origins="http://localhost:3000"))
    app.dependency_overrides[main_module.get_coordinator] = lambda: CrashingCoordinator()

    response = TestClient(app).post(
        "/api/scrape",
        json={"urls": ["https://example.com"]},
        headers={"Origin": "http://localhost:3000"},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "message": "cache exploded"}
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
