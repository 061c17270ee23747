import json
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from pixelbridge.api.main import create_app
from pixelbridge.config import AppConfig
from pixelbridge.db.tables import metadata
from pixelbridge.ingest.webhooks import HMAC_HEADER, SHOP_HEADER, compute_hmac
from pixelbridge.store import EventStore, TenantStore

FIXTURES = Path(__file__).parent / "fixtures" / "webhooks"

SECRET = "shpss_test_secret"
SHOP = "demo.myshopify.com"
GRAPH = "https://graph.facebook.com/v24.0"
PIXEL_ID = "1234567890"


def load_fixture(name: str) -> bytes:
    return (FIXTURES / name).read_bytes()


def signed_headers(body: bytes, shop: str = SHOP, secret: str = SECRET) -> dict[str, str]:
    return {
        HMAC_HEADER: compute_hmac(body, secret),
        SHOP_HEADER: shop,
        "content-type": "application/json",
    }


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def config():
    return AppConfig(database_url="sqlite://", shopify_api_secret=SECRET, environment="production")


@pytest.fixture()
def tenants(engine):
    return TenantStore(engine)


@pytest.fixture()
def events(engine):
    return EventStore(engine)


@pytest.fixture()
def tenant(tenants):
    return tenants.create(
        app_id="app-demo",
        name="Demo Pixel",
        shop_domain=SHOP,
        meta_pixel_enabled=True,
        meta_access_token="EAAB-test-access-token",
        meta_pixel_id=PIXEL_ID,
    )


@pytest.fixture()
def disabled_tenant(tenants):
    return tenants.create(app_id="app-off", name="Disabled Pixel", shop_domain="off.myshopify.com")


@pytest_asyncio.fixture()
async def graph_session():
    async with httpx.AsyncClient() as session:
        yield session


@pytest_asyncio.fixture()
async def client(config, engine, graph_session):
    app = create_app(config, engine=engine, http_client=graph_session)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture()
def cart_body():
    return load_fixture("carts_create.json")


@pytest.fixture()
def cart_payload(cart_body):
    return json.loads(cart_body)
