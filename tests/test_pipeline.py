import json

import httpx
import pytest
import respx

from pixelbridge.config import AppConfig
from pixelbridge.forward import ConversionForwarder, Failed, MetaGraphClient, Sent, Skipped
from pixelbridge.pipeline import EventPipeline

from conftest import GRAPH, PIXEL_ID, load_fixture

EVENTS_URL = f"{GRAPH}/{PIXEL_ID}/events"


def make_pipeline(events, tenants, session):
    return EventPipeline(events, tenants, ConversionForwarder(MetaGraphClient(AppConfig(), session=session)))


@pytest.mark.asyncio
async def test_order_webhook_stores_and_forwards_each_line_item(events, tenants, tenant):
    tenants.add_catalog(tenant.id, catalog_id="CAT-1", name="Demo", pixel_id=PIXEL_ID)
    payload = json.loads(load_fixture("orders_create.json"))
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(EVENTS_URL).mock(return_value=httpx.Response(200, json={"events_received": 1}))
        async with httpx.AsyncClient() as session:
            pipeline = make_pipeline(events, tenants, session)
            outcomes = await pipeline.process_webhook("orders/create", payload, tenant, tenants.settings_for(tenant.id))
    assert len(outcomes) == 3
    assert all(isinstance(o.result, Sent) for o in outcomes)
    assert route.call_count == 3
    stored = events.query(tenant.id)
    assert {e.event_name for e in stored} == {"purchase"}
    assert all(e.custom_data["catalog_id"] == "CAT-1" for e in stored)
    sent = [json.loads(call.request.content)["data"][0] for call in route.calls]
    assert [body["event_id"] for body in sent] == [f"purchase_{o.event_id}" for o in outcomes]


@pytest.mark.asyncio
async def test_disabled_toggle_stores_nothing(events, tenants, tenant, cart_payload):
    settings = tenants.update_settings(tenant.id, {"track_add_to_cart": False})
    async with httpx.AsyncClient() as session:
        pipeline = make_pipeline(events, tenants, session)
        outcomes = await pipeline.process_webhook("carts/create", cart_payload, tenant, settings)
    assert outcomes == []
    assert events.count(tenant.id) == 0


@pytest.mark.asyncio
async def test_failed_forward_keeps_stored_event(events, tenants, tenant, cart_payload):
    async with respx.mock(assert_all_called=True) as router:
        router.post(EVENTS_URL).mock(return_value=httpx.Response(500, text="upstream down"))
        async with httpx.AsyncClient() as session:
            pipeline = make_pipeline(events, tenants, session)
            (outcome,) = await pipeline.process_webhook(
                "carts/create", cart_payload, tenant, tenants.settings_for(tenant.id)
            )
    assert isinstance(outcome.result, Failed)
    assert events.get(outcome.event_id).event_name == "addToCart"
    assert outcome.to_dict()["forward"]["status"] == "failed"


@pytest.mark.asyncio
async def test_pixel_event_uses_custom_name_and_ip_setting(events, tenants, tenant):
    tenants.set_custom_event(tenant.id, "signup", "Lead")
    settings = tenants.update_settings(tenant.id, {"record_ip": False})
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(EVENTS_URL).mock(return_value=httpx.Response(200, json={"events_received": 1}))
        async with httpx.AsyncClient() as session:
            pipeline = make_pipeline(events, tenants, session)
            outcome = await pipeline.process_pixel_event(
                {"eventName": "signup", "sessionId": "sess-9"},
                tenant,
                settings,
                ip_address="203.0.113.9",
                user_agent="Mozilla/5.0",
            )
    assert isinstance(outcome.result, Sent)
    assert events.get(outcome.event_id).ip_address is None
    body = json.loads(route.calls.last.request.content)
    assert body["data"][0]["event_name"] == "Lead"
    assert body["data"][0]["user_data"]["external_id"] == "sess-9"


@pytest.mark.asyncio
async def test_pageviews_respect_toggle(events, tenants, disabled_tenant):
    settings = tenants.update_settings(disabled_tenant.id, {"track_pageviews": False})
    async with httpx.AsyncClient() as session:
        pipeline = make_pipeline(events, tenants, session)
        assert await pipeline.process_pixel_event({"eventName": "page_view"}, disabled_tenant, settings) is None
        outcome = await pipeline.process_pixel_event({"eventName": "search"}, disabled_tenant, settings)
    assert isinstance(outcome.result, Skipped)
    assert events.count(disabled_tenant.id) == 1
