import json
from datetime import datetime

import httpx
import pytest
import respx

from pixelbridge.config import AppConfig
from pixelbridge.forward import ConversionForwarder, Failed, MetaGraphClient, Sent, Skipped, build_payload, meta_event_name
from pixelbridge.forward.meta_capi import PLACEHOLDER_IP, PLACEHOLDER_USER_AGENT
from pixelbridge.ingest.models import StoredEvent, TenantSettings

from conftest import GRAPH, PIXEL_ID

EVENTS_URL = f"{GRAPH}/{PIXEL_ID}/events"


def stored(**overrides):
    values = dict(
        id=7,
        tenant_id=1,
        event_name="addToCart",
        source="webhook",
        product_id="632910392",
        product_name="IPod Nano - 8gb",
        value=19.99,
        quantity=2,
        currency="USD",
        url=None,
        session_id=None,
        ip_address=None,
        user_agent=None,
        custom_data={"variant_id": 39072856, "sku": "IPOD2008GREEN", "source": "webhook", "catalog_id": "CAT-1"},
        created_at=datetime(2026, 3, 1, 12, 0, 0),
    )
    values.update(overrides)
    return StoredEvent(**values)


def enabled_settings(**overrides):
    values = dict(
        tenant_id=1,
        meta_pixel_enabled=True,
        meta_access_token="EAAB-test-access-token",
        meta_pixel_id=PIXEL_ID,
    )
    values.update(overrides)
    return TenantSettings(**values)


def test_meta_event_name_mapping():
    assert meta_event_name("addToCart") == "AddToCart"
    assert meta_event_name("add_to_cart") == "AddToCart"
    assert meta_event_name("page_view") == "PageView"
    assert meta_event_name("Purchase") == "Purchase"
    assert meta_event_name("wishlist") == "wishlist"
    assert meta_event_name("signup", {"signup": "Lead"}) == "Lead"


def test_build_payload_for_webhook_event():
    payload = build_payload(
        stored(), enabled_settings(meta_test_event_code="TEST123"), event_name="AddToCart", now=datetime(2026, 3, 1)
    )
    assert payload["access_token"] == "EAAB-test-access-token"
    assert payload["test_event_code"] == "TEST123"
    (event,) = payload["data"]
    assert event["event_name"] == "AddToCart"
    assert event["event_id"] == "addToCart_7"
    assert event["event_time"] == 1772323200
    assert event["action_source"] == "website"
    assert event["user_data"] == {"client_ip_address": PLACEHOLDER_IP, "client_user_agent": PLACEHOLDER_USER_AGENT}
    custom = event["custom_data"]
    assert custom["content_ids"] == ["632910392"]
    assert custom["content_type"] == "product"
    assert custom["content_name"] == "IPod Nano - 8gb"
    assert custom["value"] == 19.99
    assert custom["num_items"] == 2
    assert custom["currency"] == "USD"
    assert custom["catalog_id"] == "CAT-1"
    assert "source" not in custom


def test_build_payload_for_pixel_event_uses_request_context():
    event = stored(
        source="pixel",
        event_name="pageview",
        product_id=None,
        product_name=None,
        value=0.0,
        quantity=0,
        currency=None,
        url="https://demo.myshopify.com/",
        session_id="sess-1",
        ip_address="203.0.113.9",
        user_agent="Mozilla/5.0",
        custom_data={"source": "pixel", "utm_source": "facebook", "page_type": "home"},
    )
    payload = build_payload(event, enabled_settings(currency="EUR"), event_name="PageView")
    (meta_event,) = payload["data"]
    assert "test_event_code" not in payload
    assert meta_event["event_source_url"] == "https://demo.myshopify.com/"
    assert meta_event["user_data"] == {
        "client_ip_address": "203.0.113.9",
        "client_user_agent": "Mozilla/5.0",
        "external_id": "sess-1",
    }
    assert meta_event["custom_data"] == {"page_type": "home", "value": 0.0, "currency": "EUR", "num_items": 0}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("settings", "reason"),
    [
        (TenantSettings(tenant_id=1), "meta pixel disabled"),
        (enabled_settings(meta_access_token=""), "no access token"),
        (enabled_settings(meta_pixel_id=None), "no pixel id"),
    ],
)
async def test_forward_skips_ineligible_tenants(settings, reason):
    async with respx.mock(assert_all_called=False) as router:
        route = router.post(url__startswith=GRAPH).mock(return_value=httpx.Response(200, json={}))
        async with httpx.AsyncClient() as session:
            forwarder = ConversionForwarder(MetaGraphClient(AppConfig(), session=session))
            result = await forwarder.forward(stored(), settings)
    assert result == Skipped(reason)
    assert route.call_count == 0


@pytest.mark.asyncio
async def test_forward_skips_test_events_without_test_code():
    event = stored(source="pixel", custom_data={"test_event": True})
    async with respx.mock(assert_all_called=False) as router:
        route = router.post(EVENTS_URL).mock(return_value=httpx.Response(200, json={}))
        async with httpx.AsyncClient() as session:
            forwarder = ConversionForwarder(MetaGraphClient(AppConfig(), session=session))
            assert isinstance(await forwarder.forward(event, enabled_settings()), Skipped)
            assert isinstance(await forwarder.forward(event, enabled_settings(meta_test_event_code="T1")), Sent)
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_forward_sends_one_request():
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(EVENTS_URL).mock(
            return_value=httpx.Response(200, json={"events_received": 1, "fbtrace_id": "AbCdEf"})
        )
        async with httpx.AsyncClient() as session:
            forwarder = ConversionForwarder(MetaGraphClient(AppConfig(), session=session))
            result = await forwarder.forward(stored(), enabled_settings())
    assert result == Sent(events_received=1, fbtrace_id="AbCdEf")
    assert route.call_count == 1
    body = json.loads(route.calls.last.request.content)
    assert body["data"][0]["event_name"] == "AddToCart"
    assert body["data"][0]["custom_data"]["num_items"] == 2


@pytest.mark.asyncio
async def test_forward_applies_overrides():
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(EVENTS_URL).mock(return_value=httpx.Response(200, json={"events_received": 1}))
        async with httpx.AsyncClient() as session:
            forwarder = ConversionForwarder(MetaGraphClient(AppConfig(), session=session))
            await forwarder.forward(stored(event_name="signup", source="pixel"), enabled_settings(), {"signup": "Lead"})
    assert json.loads(route.calls.last.request.content)["data"][0]["event_name"] == "Lead"


@pytest.mark.asyncio
async def test_forward_reports_http_error_as_failed():
    async with respx.mock(assert_all_called=True) as router:
        router.post(EVENTS_URL).mock(
            return_value=httpx.Response(400, json={"error": {"message": "Invalid OAuth access token."}})
        )
        async with httpx.AsyncClient() as session:
            forwarder = ConversionForwarder(MetaGraphClient(AppConfig(), session=session))
            result = await forwarder.forward(stored(), enabled_settings())
    assert isinstance(result, Failed)
    assert "Invalid OAuth access token." in result.error


@pytest.mark.asyncio
async def test_forward_reports_network_error_as_failed():
    async with respx.mock(assert_all_called=True) as router:
        router.post(EVENTS_URL).mock(side_effect=httpx.ConnectError("connection refused"))
        async with httpx.AsyncClient() as session:
            forwarder = ConversionForwarder(MetaGraphClient(AppConfig(), session=session))
            result = await forwarder.forward(stored(), enabled_settings())
    assert isinstance(result, Failed)
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_forward_tolerates_odd_success_body():
    async with respx.mock(assert_all_called=True) as router:
        router.post(EVENTS_URL).mock(return_value=httpx.Response(200, json={"events_received": "one", "fbtrace_id": 42}))
        async with httpx.AsyncClient() as session:
            forwarder = ConversionForwarder(MetaGraphClient(AppConfig(), session=session))
            result = await forwarder.forward(stored(), enabled_settings())
    assert result == Sent(events_received=0, fbtrace_id="42")
