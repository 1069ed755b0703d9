"""Tests for the portal service wiring: list caching, create, dashboard and providers."""
import asyncio

import pytest

from portal.apps.orders.adapters import OrdersStub, PaymentsStub, make_order
from portal.apps.orders.http_adapters import HttpOrdersClient, HttpPaymentsClient
from portal.apps.orders.providers import get_portal_service
from portal.apps.orders.service import OrderPortalService

REQUEST = {
    "userId": "user_1",
    "userName": "Ann",
    "userEmail": "ann@example.com",
    "orderDescription": "Widget (x1) - $10.00",
    "totalAmount": "11.00",
    "shippingAddress": "1 Main St",
}


async def no_wait(_seconds):
    await asyncio.sleep(0)


def make_service(**kw):
    payments = PaymentsStub()
    orders = OrdersStub(payments=payments)
    return OrderPortalService(orders, payments, **kw), orders, payments


@pytest.mark.asyncio
async def test_order_list_is_cached():
    service, orders, _ = make_service()
    orders.add(make_order("1"))
    assert len(await service.list_orders()) == 1
    assert len(await service.list_orders()) == 1
    assert orders.calls["get_all_orders"] == 1


@pytest.mark.asyncio
async def test_create_order_invalidates_list():
    service, orders, payments = make_service()
    await service.list_orders()

    confirmation = await service.create_order(REQUEST)
    assert confirmation.saga_id == f"saga-{confirmation.order_id}"

    rows = await service.list_orders()
    assert [r.order_id for r in rows] == [f"ORD_{confirmation.order_id}"]
    assert orders.calls["get_all_orders"] == 2
    assert await payments.get_payment_by_order_id(confirmation.order_id) is not None


@pytest.mark.asyncio
async def test_dashboard_page_filters_and_paginates(settings):
    settings.ORDERS_PER_PAGE = 2
    service, orders, _ = make_service()
    for i in range(1, 6):
        orders.add(make_order(str(i), "DELIVERED" if i % 2 else "CREATED", userName=f"Customer {i}"))

    page = await service.dashboard_page(page=1, status="DELIVERED")
    assert page.count == 3
    assert page.total_pages == 2

    page = await service.dashboard_page(search="customer 4")
    assert [o.order_id for o in page.results] == ["ORD_4"]


@pytest.mark.asyncio
async def test_watch_orders_refreshes_list():
    service, orders, _ = make_service(sleep=no_wait)
    await service.list_orders()
    poller = service.watch_orders()
    assert poller.interval == 60.0
    for _ in range(20):
        await asyncio.sleep(0)
    poller.dispose()
    await poller.wait()
    assert orders.calls["get_all_orders"] > 1


@pytest.mark.asyncio
async def test_order_details_and_cancellation_share_the_cache():
    service, orders, _ = make_service()
    orders.add(make_order("1", "CREATED"))
    async with service.order_details("ORD_1") as session:
        assert session.cache is service.cache
        assert session.snapshot().can_cancel
    workflow = service.cancellation()
    assert workflow.cache is service.cache
    service.close()


def test_provider_uses_stubs_in_tests():
    service = get_portal_service()
    assert isinstance(service.orders, OrdersStub)
    assert isinstance(service.payments, PaymentsStub)
    assert service.orders.payments is service.payments


def test_provider_uses_http_clients(settings):
    settings.USE_HTTP_ADAPTERS = True
    service = get_portal_service(base_url="http://api:8080/")
    assert isinstance(service.orders, HttpOrdersClient)
    assert isinstance(service.payments, HttpPaymentsClient)
    assert service.orders.base_url == "http://api:8080"
