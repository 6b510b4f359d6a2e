import os

# Settings are read at import time, so configure the environment first
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["GEOIP_ENABLED"] = "false"
os.environ["SENTRY_DSN"] = ""
os.environ["OTLP_ENDPOINT"] = ""

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from linktrack.core.database import create_engine, create_session_factory, init_db  # noqa: E402
from linktrack.core.deps import get_store  # noqa: E402
from linktrack.main import app  # noqa: E402
from linktrack.services.geoip import GeoLocation, get_geoip_service  # noqa: E402
from linktrack.storage import MemoryLinkStore, SqlLinkStore  # noqa: E402


class FakeGeoIP:
    """Stand-in for GeoIPService returning a fixed location."""

    def __init__(self, location: GeoLocation | None = None):
        self.location = location or GeoLocation()
        self.looked_up: list[str | None] = []

    async def lookup(self, ip_address: str | None) -> GeoLocation:
        self.looked_up.append(ip_address)
        return self.location


@pytest.fixture
def memory_store():
    return MemoryLinkStore()


@pytest.fixture
async def sql_store(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'links.db'}")
    await init_db(engine)
    yield SqlLinkStore(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    """Each store test runs against both backends."""
    if request.param == "memory":
        yield MemoryLinkStore()
        return

    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'links.db'}")
    await init_db(engine)
    yield SqlLinkStore(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def geoip():
    return FakeGeoIP(GeoLocation(country="US", city="Austin"))


@pytest.fixture
async def client(memory_store, geoip):
    app.dependency_overrides[get_store] = lambda: memory_store
    app.dependency_overrides[get_geoip_service] = lambda: geoip

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
