"""Order detail reconciliation.

An ``OrderDetailsSession`` combines the full order and payment entities
with two lightweight status polls into one view model:

1. Load the order (failure is fatal) and its payment (optional).
2. Poll the order status while the order is not terminal.
3. While no payment exists, watch for its creation; poll the payment
   status only once a payment has been observed.
4. When a polled status differs from the one embedded in the cached
   entity, invalidate that entity and refetch it.

The status shown is always ``live polled status ?? entity status``, so the
result does not depend on which poll answers first.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from portal.gateway.logging_filters import get_logger

from .cache import OrderKeys, PaymentKeys, QueryCache
from .domain import PAYMENT_ABSENT, OrdersPort, PaymentsPort, can_cancel
from .errors import RemoteError, ServerError, describe_error
from .freshness import order_detail_policy, order_status_policy, payment_detail_policy, payment_status_policy
from .polling import FocusState, Poller
from .presentation import TimelineStep, build_timeline, payment_state_label
from .schemas import OrderDetail, PaymentDetail

logger = get_logger("portal.orders.reconciliation")


def reconcile_status(cached, live):
    """The live polled status wins whenever it is known."""
    return live if live is not None else cached


def _status_text(value) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value)).upper()


@dataclass
class OrderView:
    """Everything the order detail page renders."""

    order: OrderDetail
    payment: Optional[PaymentDetail]
    order_status: str
    payment_status: str
    payment_label: str
    can_cancel: bool
    timeline: list[TimelineStep] = field(default_factory=list)
    payment_error: Optional[str] = None


class OrderDetailsSession:
    """Live view of one order, active between ``open()`` and ``close()``.

    Usage::

        async with OrderDetailsSession("ORD_42", orders, payments, cache) as session:
            view = session.snapshot()

    Args:
        order_id: Order id, with or without the display prefix.
        orders: Order service port.
        payments: Payment service port.
        cache: Shared query cache.
        focus: Focus state of the page; pollers pause while unfocused.
        sleep: Sleep coroutine handed to the pollers.
    """

    def __init__(
        self,
        order_id: str,
        orders: OrdersPort,
        payments: PaymentsPort,
        cache: QueryCache,
        *,
        focus: Optional[FocusState] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.order_id = order_id
        self.orders = orders
        self.payments = payments
        self.cache = cache
        self.focus = focus
        self._sleep = sleep

        self.order: Optional[OrderDetail] = None
        self.payment: Optional[PaymentDetail] = None
        self.payment_error: Optional[str] = None
        self.live_order_status: Optional[str] = None
        self.live_payment_status: Optional[str] = None

        self.order_poll: Optional[Poller] = None
        self.payment_watch: Optional[Poller] = None
        self.payment_poll: Optional[Poller] = None
        self._closed = False

    async def __aenter__(self) -> "OrderDetailsSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---- loading ----
    async def open(self) -> OrderView:
        """Load order and payment, then start the pollers.

        No poller is started when ``close()`` runs while loading.

        Raises:
            RemoteError: When the order itself cannot be loaded.
        """
        self._dispose_pollers()
        self.order_poll = self.payment_watch = self.payment_poll = None
        self.order = await self._fetch_order()
        if self._closed:
            return self.snapshot()
        self.payment = await self._fetch_payment()
        if self._closed:
            return self.snapshot()

        self.order_poll = self._poller(
            "order-status", self._fetch_order_status, order_status_policy,
            initial=self.order.status.value, on_value=self._on_order_status,
        )
        if self.payment is None:
            self._start_payment_watch()
        else:
            self._start_payment_poll()
        return self.snapshot()

    async def refresh(self) -> OrderView:
        """Re-read order and payment through the cache (refetching invalidated entries)."""
        self.order = await self._fetch_order()
        payment = await self._fetch_payment()
        if payment is not None:
            self.payment = payment
            if self.payment_poll is None:
                self._start_payment_poll()
        return self.snapshot()

    def _fetch_order(self):
        oid = self.order_id
        return self.cache.get(OrderKeys.detail(oid), lambda: self.orders.get_order_by_id(oid), order_detail_policy)

    async def _fetch_payment(self) -> Optional[PaymentDetail]:
        oid = self.order_id
        try:
            payment = await self.cache.get(
                PaymentKeys.by_order(oid), lambda: self.payments.get_payment_by_order_id(oid), payment_detail_policy
            )
        except ServerError as e:
            self.payment_error = describe_error(e)
            logger.warning("payment lookup failed", extra={"order_id": oid, "status_code": e.status_code})
            return None
        except RemoteError as e:
            logger.info("payment lookup failed, treating as absent", extra={"order_id": oid, "error": e.__class__.__name__})
            return None
        self.payment_error = None
        return payment

    # ---- pollers ----
    def _poller(self, name, fetch, policy, *, initial: Any, on_value) -> Poller:
        if self._closed:
            raise RuntimeError("session is closed")
        return Poller(
            f"{name}:{self.order_id}", fetch, policy,
            initial=initial, on_value=on_value, focus=self.focus, sleep=self._sleep,
        ).start()

    def _start_payment_watch(self) -> None:
        self.payment_watch = self._poller(
            "payment-watch", self._refetch_payment, payment_detail_policy,
            initial=None, on_value=self._on_payment_detail,
        )

    def _start_payment_poll(self) -> None:
        if self._closed or self.payment_poll is not None or self.payment is None:
            return
        self.payment_poll = self._poller(
            "payment-status", self._fetch_payment_status, payment_status_policy,
            initial=self.payment.status.value, on_value=self._on_payment_status,
        )

    def _fetch_order_status(self):
        oid = self.order_id
        return self.cache.get(OrderKeys.status(oid), lambda: self.orders.get_order_status(oid), order_status_policy)

    def _fetch_payment_status(self):
        oid = self.order_id
        return self.cache.get(
            PaymentKeys.status(oid), lambda: self.payments.get_payment_status_by_order(oid), payment_status_policy
        )

    def _refetch_payment(self):
        oid = self.order_id
        return self.cache.refetch(
            PaymentKeys.by_order(oid), lambda: self.payments.get_payment_by_order_id(oid), payment_detail_policy
        )

    # ---- tick handlers ----
    async def _on_order_status(self, status) -> None:
        self.live_order_status = _status_text(status)
        cached = _status_text(self.order.status)
        if self.live_order_status is None or self.live_order_status == cached:
            return
        logger.info(
            "order status changed",
            extra={"order_id": self.order_id, "from_status": cached, "to_status": self.live_order_status},
        )
        self.cache.invalidate(OrderKeys.detail(self.order_id))
        self.order = await self._fetch_order()

    async def _on_payment_status(self, status) -> None:
        self.live_payment_status = _status_text(status)
        cached = _status_text(self.payment.status) if self.payment else None
        if self.live_payment_status is None or self.live_payment_status == cached:
            return
        logger.info(
            "payment status changed",
            extra={"order_id": self.order_id, "from_status": cached, "to_status": self.live_payment_status},
        )
        self.cache.invalidate(PaymentKeys.by_order(self.order_id))
        payment = await self._fetch_payment()
        if payment is not None:
            self.payment = payment

    def _on_payment_detail(self, payment: Optional[PaymentDetail]) -> None:
        if payment is None:
            return
        logger.info("payment created", extra={"order_id": self.order_id, "to_status": payment.status.value})
        self.payment = payment
        self._start_payment_poll()

    # ---- view ----
    def snapshot(self) -> OrderView:
        if self.order is None:
            raise RuntimeError("session is not open")
        order_status = reconcile_status(_status_text(self.order.status), self.live_order_status)
        cached_payment = _status_text(self.payment.status) if self.payment else None
        payment_status = reconcile_status(cached_payment, self.live_payment_status) or PAYMENT_ABSENT
        return OrderView(
            order=self.order,
            payment=self.payment,
            order_status=order_status,
            payment_status=payment_status,
            payment_label=payment_state_label(order_status, payment_status),
            can_cancel=can_cancel(order_status),
            timeline=build_timeline(order_status, None if payment_status == PAYMENT_ABSENT else payment_status),
            payment_error=self.payment_error,
        )

    def close(self) -> None:
        """Stop every poller started by this session."""
        self._closed = True
        self._dispose_pollers()

    def _dispose_pollers(self) -> None:
        for poller in (self.order_poll, self.payment_watch, self.payment_poll):
            if poller is not None:
                poller.dispose()
