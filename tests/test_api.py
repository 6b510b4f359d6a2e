import pytest
from httpx import ASGITransport, AsyncClient
from slowapi import Limiter

from linktrack.core.deps import get_store
from linktrack.core.errors import StorageError
from linktrack.core.rate_limit import rate_limit_key
from linktrack.main import app, create_app
from linktrack.storage import MemoryLinkStore


async def create(client, **body):
    response = await client.post("/links", json=body)
    assert response.status_code == 201, response.text
    return response.json()


# Links


async def test_create_link(client):
    response = await client.post(
        "/links",
        json={"destinationUrl": "https://example.com/page", "title": "Example", "source": "email"},
    )

    assert response.status_code == 201
    data = response.json()
    assert len(data["shortCode"]) == 6
    assert data["trackableUrl"] == f"http://test/r/{data['shortCode']}"
    assert data["destinationUrl"] == "https://example.com/page"
    assert data["title"] == "Example"
    assert data["source"] == "email"
    assert data["id"]


async def test_create_link_defaults(client):
    data = await create(client, destinationUrl="https://example.com")

    assert data["title"] == "Untitled Link"
    assert data["source"] is None


async def test_create_link_accepts_snake_case(client):
    data = await create(client, destination_url="https://example.com", custom_code="snake")

    assert data["shortCode"] == "snake"


async def test_create_link_with_custom_code(client):
    data = await create(client, destinationUrl="https://example.com", customCode="Launch-2024")

    assert data["shortCode"] == "Launch-2024"
    assert data["trackableUrl"] == "http://test/r/Launch-2024"


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"destinationUrl": ""},
        {"destinationUrl": "   "},
        {"destinationUrl": 123},
        {"destinationUrl": "https://example.com", "customCode": "bad code"},
        {"destinationUrl": "https://example.com", "customCode": "x" * 21},
    ],
)
async def test_create_link_invalid(client, body):
    response = await client.post("/links", json=body)

    assert response.status_code == 400
    assert "detail" in response.json()


async def test_create_link_malformed_json(client):
    response = await client.post(
        "/links",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400


async def test_create_link_code_conflict(client, memory_store):
    await create(client, destinationUrl="https://one.example", customCode="taken")

    response = await client.post(
        "/links",
        json={"destinationUrl": "https://two.example", "customCode": "taken"},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Short code 'taken' already exists"
    assert (await memory_store.stats())["links_count"] == 1


async def test_list_links_newest_first(client):
    first = await create(client, destinationUrl="https://one.example")
    second = await create(client, destinationUrl="https://two.example")

    response = await client.get("/links")

    assert response.status_code == 200
    links = response.json()
    assert [link["id"] for link in links] == [second["id"], first["id"]]
    assert set(links[0]) == {
        "id",
        "shortCode",
        "destinationUrl",
        "title",
        "source",
        "createdAt",
        "totalClicks",
    }
    assert links[0]["totalClicks"] == 0


async def test_list_links_empty(client):
    response = await client.get("/links")

    assert response.status_code == 200
    assert response.json() == []


async def test_delete_link(client):
    link = await create(client, destinationUrl="https://example.com", customCode="bye")
    await client.get("/r/bye")

    response = await client.delete(f"/links/{link['id']}")

    assert response.status_code == 200
    assert response.json() == {"message": "Link deleted successfully"}
    assert (await client.get("/r/bye")).status_code == 404
    assert (await client.get(f"/links/{link['id']}/analytics")).status_code == 404
    assert (await client.get("/links")).json() == []


async def test_delete_is_idempotent(client):
    link = await create(client, destinationUrl="https://example.com")

    first = await client.delete(f"/links/{link['id']}")
    second = await client.delete(f"/links/{link['id']}")
    malformed = await client.delete("/links/not-a-uuid")

    for response in (first, second, malformed):
        assert response.status_code == 200
        assert response.json() == {"message": "Link deleted successfully"}


# Redirects and analytics


async def test_redirect_records_click(client, geoip):
    link = await create(client, destinationUrl="https://example.com/landing")

    response = await client.get(f"/r/{link['shortCode']}")

    assert response.status_code == 302
    assert response.headers["location"] == "https://example.com/landing"

    analytics = (await client.get(f"/links/{link['id']}/analytics")).json()
    assert analytics["link"]["id"] == link["id"]
    assert analytics["link"]["totalClicks"] == 1
    assert analytics["analytics"]["totalClicks"] == 1
    assert analytics["analytics"]["uniqueVisitors"] == 1
    assert analytics["analytics"]["countries"] == {"US": 1}

    click = analytics["analytics"]["recentClicks"][0]
    assert click["linkId"] == link["id"]
    assert click["country"] == "US"
    assert click["city"] == "Austin"
    assert geoip.looked_up == [click["ipAddress"]]


async def test_redirect_captures_request_metadata(client):
    link = await create(client, destinationUrl="https://example.com")

    await client.get(
        f"/r/{link['shortCode']}",
        headers={
            "X-Forwarded-For": "203.0.113.7, 10.0.0.1",
            "Referer": "https://news.example.org/story?id=1",
            "User-Agent": "Mozilla/5.0 (test)",
        },
    )
    await client.get(
        f"/r/{link['shortCode']}",
        headers={"X-Forwarded-For": "198.51.100.2", "Referer": "https://news.example.org/other"},
    )

    analytics = (await client.get(f"/links/{link['id']}/analytics")).json()["analytics"]
    assert analytics["totalClicks"] == 2
    assert analytics["uniqueVisitors"] == 2
    assert analytics["referrers"] == {"news.example.org": 2}

    newest, oldest = analytics["recentClicks"]
    assert newest["ipAddress"] == "198.51.100.2"
    assert oldest["ipAddress"] == "203.0.113.7"
    assert oldest["userAgent"] == "Mozilla/5.0 (test)"
    assert oldest["referrer"] == "https://news.example.org/story?id=1"


async def test_redirect_unknown_code(client, memory_store):
    response = await client.get("/r/nope42")

    assert response.status_code == 404
    assert response.text == "Link not found"
    assert response.headers["content-type"].startswith("text/plain")
    assert (await memory_store.stats())["clicks_count"] == 0


async def test_analytics_unknown_link(client):
    for link_id in ("00000000-0000-0000-0000-000000000000", "not-a-uuid"):
        response = await client.get(f"/links/{link_id}/analytics")
        assert response.status_code == 404
        assert response.json() == {"detail": "Link not found"}


async def test_analytics_without_clicks(client):
    link = await create(client, destinationUrl="https://example.com")

    response = await client.get(f"/links/{link['id']}/analytics")

    assert response.status_code == 200
    assert response.json()["analytics"] == {
        "totalClicks": 0,
        "uniqueVisitors": 0,
        "referrers": {},
        "countries": {},
        "recentClicks": [],
    }


class FailingClickStore(MemoryLinkStore):
    def __init__(self, error: Exception):
        super().__init__()
        self.error = error

    async def record_click(self, *args, **kwargs):
        raise self.error


@pytest.mark.parametrize("error", [StorageError("disk full"), RuntimeError("boom")])
async def test_redirect_survives_click_failure(client, monkeypatch, error):
    store = FailingClickStore(error)
    app.dependency_overrides[get_store] = lambda: store
    reported = []
    monkeypatch.setattr(
        "linktrack.api.redirect.report_exception",
        lambda exc, **context: reported.append((exc, context)),
    )
    link = await store.create_link("https://example.com", custom_code="flaky")

    response = await client.get("/r/flaky")

    assert response.status_code == 302
    assert response.headers["location"] == "https://example.com"
    assert len(reported) == 1
    assert reported[0][0] is error
    assert reported[0][1]["short_code"] == "flaky"
    assert link.click_count == 0


async def test_redirect_survives_geoip_failure(client, memory_store, geoip):
    async def broken_lookup(ip_address):
        raise RuntimeError("geoip down")

    geoip.lookup = broken_lookup
    link = await create(client, destinationUrl="https://example.com")

    response = await client.get(f"/r/{link['shortCode']}")

    assert response.status_code == 302
    clicks = await memory_store.list_clicks(link["id"])
    assert len(clicks) == 1
    assert clicks[0].country is None


# Service endpoints


async def test_health(client):
    link = await create(client, destinationUrl="https://example.com")
    await client.get(f"/r/{link['shortCode']}")

    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["message"] == "Link Tracker API is running"
    assert data["links_count"] == 1
    assert data["clicks_count"] == 1


async def test_root(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["message"] == "Welcome to Link Tracker"


async def test_metrics(client):
    await client.get("/r/missing")

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "redirects_total" in response.text


async def test_security_and_request_id_headers(client):
    response = await client.get("/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert response.headers["Referrer-Policy"] == "no-referrer"
    assert "default-src 'none'" in response.headers["Content-Security-Policy"]
    assert response.headers["Strict-Transport-Security"].startswith("max-age=")
    assert response.headers["X-Request-ID"]


async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


async def test_default_rate_limit_covers_undecorated_routes():
    limited_app = create_app()
    limited_app.state.limiter = Limiter(
        key_func=rate_limit_key,
        default_limits=["2/minute"],
        storage_uri="memory://",
    )

    transport = ASGITransport(app=limited_app)
    async with AsyncClient(transport=transport, base_url="http://test") as limited:
        statuses = [(await limited.get("/health")).status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
