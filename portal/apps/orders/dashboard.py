"""Dashboard helpers: search, status filter and pagination of order summaries."""

import math
from dataclasses import dataclass
from typing import Sequence

from portal import settings

from .domain import parse_order_status
from .schemas import OrderSummary

STATUS_ALL = "all"


@dataclass(frozen=True)
class Page:
    """One page of results.

    Attributes:
        count: Number of orders across all pages.
        page: 1-based page number actually served (clamped into range).
        total_pages: At least 1, even when there are no orders.
        results: Orders on this page.
    """

    count: int
    page: int
    total_pages: int
    results: list

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


def filter_orders(orders: Sequence[OrderSummary], search: str = "", status: str = STATUS_ALL) -> list[OrderSummary]:
    """Filter dashboard rows.

    ``search`` is matched case-insensitively against the display order id,
    the customer name and the description. ``status`` ``"all"`` (or empty)
    disables the status filter.
    """
    term = (search or "").strip().lower()
    wanted = None
    if status and status.lower() != STATUS_ALL:
        wanted = parse_order_status(status)
        if wanted is None:
            return []

    out = []
    for order in orders:
        if wanted is not None and order.status is not wanted:
            continue
        if term and not (
            term in order.order_id.lower()
            or term in order.user_name.lower()
            or term in order.order_description.lower()
        ):
            continue
        out.append(order)
    return out


def newest_first(orders: Sequence[OrderSummary]) -> list[OrderSummary]:
    return sorted(orders, key=lambda o: o.created_at, reverse=True)


def paginate(orders: Sequence, page: int = 1, per_page: int | None = None) -> Page:
    """Slice ``orders`` into pages of ``per_page`` (default ``settings.ORDERS_PER_PAGE``)."""
    per_page = per_page or getattr(settings, "ORDERS_PER_PAGE", 10)
    if per_page < 1:
        raise ValueError("per_page must be >= 1")
    count = len(orders)
    total_pages = max(1, math.ceil(count / per_page))
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    page = min(max(page, 1), total_pages)
    start = (page - 1) * per_page
    return Page(count=count, page=page, total_pages=total_pages, results=list(orders[start:start + per_page]))
