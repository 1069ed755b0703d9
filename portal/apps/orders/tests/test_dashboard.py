from datetime import datetime, timedelta, timezone

import pytest

from portal.apps.orders.dashboard import filter_orders, newest_first, paginate
from portal.apps.orders.schemas import OrderSummary

BASE = datetime(2025, 7, 18, tzinfo=timezone.utc)


def summary(oid, name="Ann", desc="Widget (x1) - $10.00", status="CREATED", minutes=0):
    return OrderSummary.model_validate({
        "orderId": oid,
        "orderDescription": desc,
        "userName": name,
        "totalAmount": "11.00",
        "createdAt": (BASE + timedelta(minutes=minutes)).isoformat(),
        "orderStatus": status,
    })


ORDERS = [
    summary(1, name="Ann Lee", desc="Widget (x2) - $20.00", status="CREATED", minutes=1),
    summary(2, name="Bob Stone", desc="Gadget (x1) - $5.00", status="DELIVERED", minutes=2),
    summary(13, name="Cara Diaz", desc="Gizmo (x3) - $9.00", status="CANCELLED", minutes=3),
]


def test_search_is_case_insensitive_across_fields():
    assert [o.order_id for o in filter_orders(ORDERS, "bob")] == ["ORD_2"]
    assert [o.order_id for o in filter_orders(ORDERS, "GIZMO")] == ["ORD_13"]
    assert [o.order_id for o in filter_orders(ORDERS, "ord_1")] == ["ORD_1", "ORD_13"]


def test_status_filter_and_all():
    assert [o.order_id for o in filter_orders(ORDERS, status="delivered")] == ["ORD_2"]
    assert len(filter_orders(ORDERS, status="all")) == 3
    assert filter_orders(ORDERS, status="NOT_A_STATUS") == []


def test_search_and_status_combine():
    assert filter_orders(ORDERS, "ann", "DELIVERED") == []
    assert [o.order_id for o in filter_orders(ORDERS, "ann", "CREATED")] == ["ORD_1"]


def test_newest_first():
    assert [o.order_id for o in newest_first(ORDERS)] == ["ORD_13", "ORD_2", "ORD_1"]


def test_paginate_defaults_to_ten_per_page():
    orders = [summary(i) for i in range(23)]
    page = paginate(orders, 3)
    assert page.count == 23
    assert page.total_pages == 3
    assert len(page.results) == 3
    assert page.has_previous and not page.has_next


@pytest.mark.parametrize("requested,served", [(0, 1), (-4, 1), (99, 3), ("2", 2), ("x", 1)])
def test_paginate_clamps_page(requested, served):
    orders = [summary(i) for i in range(25)]
    assert paginate(orders, requested, per_page=10).page == served


def test_paginate_empty():
    page = paginate([], 5)
    assert page.page == 1 and page.total_pages == 1 and page.results == []


def test_paginate_uses_setting(settings):
    settings.ORDERS_PER_PAGE = 2
    page = paginate([summary(i) for i in range(5)], 1)
    assert page.total_pages == 3
