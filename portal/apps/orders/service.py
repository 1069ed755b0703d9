"""Application service tying the ports, the cache and the workflows together.

``OrderPortalService`` is what a UI layer talks to. It owns one
``QueryCache`` for the session and hands it to every view it opens, so the
dashboard, the detail pages and the cancel dialogs all share one set of
cached entries.
"""

import asyncio
import uuid
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence

from portal import settings
from portal.gateway.logging_filters import get_logger

from .cache import OrderKeys, QueryCache
from .cancellation import CancellationWorkflow
from .dashboard import Page, STATUS_ALL, filter_orders, newest_first, paginate
from .domain import OrderLine, OrdersPort, PaymentsPort, compute_totals, format_order_description
from .freshness import order_list_policy
from .polling import FocusState, Poller
from .reconciliation import OrderDetailsSession
from .schemas import CreateOrderDTO, OrderConfirmation, OrderSummary, validate_create_order

logger = get_logger("portal.orders.service")


def build_create_order_request(
    lines: Sequence[OrderLine],
    *,
    user_name: str,
    user_email: str,
    shipping_address: str,
    user_id: str | None = None,
    tax_rate: Decimal | None = None,
) -> CreateOrderDTO:
    """Compose a validated create-order request from form line items.

    The description is the flattened line list and the amount includes tax.
    A ``user_<random>`` id is generated when none is given.

    Raises:
        ValidationError: When the composed request is invalid.
    """
    rate = tax_rate if tax_rate is not None else getattr(settings, "TAX_RATE", Decimal("0.10"))
    totals = compute_totals(list(lines), rate)
    return validate_create_order({
        "userId": user_id or f"user_{uuid.uuid4().hex[:9]}",
        "userName": user_name,
        "userEmail": user_email,
        "orderDescription": format_order_description(list(lines)),
        "totalAmount": totals.total,
        "shippingAddress": shipping_address,
    })


class OrderPortalService:
    """Entry point for the order portal.

    Args:
        orders: Order service port.
        payments: Payment service port.
        cache: Session cache; a new one is created when omitted.
        focus: Focus state shared by the pollers of this session.
        sleep: Sleep coroutine handed to pollers (tests inject a fake).
    """

    def __init__(
        self,
        orders: OrdersPort,
        payments: PaymentsPort,
        cache: Optional[QueryCache] = None,
        *,
        focus: Optional[FocusState] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.orders = orders
        self.payments = payments
        self.cache = cache or QueryCache()
        self.focus = focus
        self._sleep = sleep

    async def create_order(self, request) -> OrderConfirmation:
        """Create an order and mark the cached order list stale."""
        confirmation = await self.orders.create_order(request)
        self.cache.invalidate(OrderKeys.list())
        logger.info("order created", extra={"order_id": confirmation.order_id})
        return confirmation

    async def list_orders(self) -> list[OrderSummary]:
        return await self.cache.get(OrderKeys.list(), self.orders.get_all_orders, order_list_policy)

    async def dashboard_page(self, page: int = 1, search: str = "", status: str = STATUS_ALL) -> Page:
        orders = await self.list_orders()
        return paginate(newest_first(filter_orders(orders, search, status)), page)

    def watch_orders(self) -> Poller:
        """Keep the cached order list refreshed while the dashboard is shown.

        Dispose the returned poller when the dashboard goes away.
        """
        return Poller(
            "order-list",
            lambda: self.cache.refetch(OrderKeys.list(), self.orders.get_all_orders, order_list_policy),
            order_list_policy,
            initial=self.cache.peek(OrderKeys.list()),
            focus=self.focus,
            sleep=self._sleep,
        ).start()

    def order_details(self, order_id: str) -> OrderDetailsSession:
        """Return a detail session; use it as ``async with``."""
        return OrderDetailsSession(
            order_id, self.orders, self.payments, self.cache, focus=self.focus, sleep=self._sleep
        )

    def cancellation(self) -> CancellationWorkflow:
        return CancellationWorkflow(self.orders, self.cache)

    def close(self) -> None:
        self.cache.close()
