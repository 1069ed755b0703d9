"""In-process stub adapters for the orders domain ports.

These stubs implement ``OrdersPort`` and ``PaymentsPort`` without any
network calls. They are intended for unit tests and local development
where deterministic behavior is useful and the backend is not running.

Both stubs count calls per operation (``calls["get_order_status"]``),
can replay a scripted sequence of statuses (to simulate the backend saga
moving an order forward) and can be told to fail the next call of an
operation with a given exception.
"""

import asyncio
import itertools
from collections import Counter, defaultdict, deque
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .domain import (
    CancelOutcome,
    CancelResult,
    OrdersPort,
    OrderStatus,
    PaymentsPort,
    PaymentStatus,
    can_cancel,
    strip_display_prefix,
)
from .errors import MSG_CANCEL_ACCEPTED, MSG_TERMINAL, NotFoundError
from .schemas import OrderConfirmation, OrderDetail, OrderSummary, PaymentDetail, validate_create_order


def make_order(order_id, status: str = "CREATED", **overrides) -> OrderDetail:
    """Build an ``OrderDetail`` with sensible defaults."""
    data = {
        "orderId": strip_display_prefix(order_id),
        "userId": "user_1",
        "userEmail": "jane@example.com",
        "userName": "Jane Doe",
        "orderDescription": "Widget (x1) - $10.00",
        "status": status,
        "totalAmount": Decimal("11.00"),
        "createdAt": datetime.now(timezone.utc).isoformat(),
        "shippingAddress": "1 Main St",
    }
    data.update(overrides)
    return OrderDetail.model_validate(data)


def make_payment(payment_id="1", status: str = "PENDING", **overrides) -> PaymentDetail:
    data = {
        "id": str(payment_id),
        "status": status,
        "paymentMethod": "CREDIT_CARD",
        "transactionReference": f"TXN-{payment_id}",
    }
    data.update(overrides)
    return PaymentDetail.model_validate(data)


class _Scripted:
    """Call counting, failure injection and status scripts shared by the stubs."""

    def __init__(self):
        self.calls: Counter = Counter()
        self._failures: dict[str, deque] = defaultdict(deque)
        self._scripts: dict[str, deque] = defaultdict(deque)

    def fail_next(self, op: str, exc: Exception, times: int = 1) -> None:
        """Make the next ``times`` calls of ``op`` raise ``exc``."""
        self._failures[op].extend([exc] * times)

    def script_status(self, order_id, *statuses: str) -> None:
        """Queue statuses the status endpoint reports on successive calls."""
        self._scripts[strip_display_prefix(order_id)].extend(statuses)

    def _enter(self, op: str) -> None:
        self.calls[op] += 1
        if self._failures[op]:
            raise self._failures[op].popleft()

    def _next_scripted(self, oid: str) -> Optional[str]:
        queue = self._scripts.get(oid)
        return queue.popleft() if queue else None


class OrdersStub(_Scripted, OrdersPort):
    """Stub implementation of ``OrdersPort`` backed by a dict.

    Args:
        payments: Optional ``PaymentsStub``; when given, creating an order
            also creates a PENDING payment for it.
    """

    def __init__(self, payments: Optional["PaymentsStub"] = None):
        super().__init__()
        self.orders: dict[str, OrderDetail] = {}
        self.payments = payments
        self.cancel_gate: Optional[asyncio.Event] = None
        self.cancel_results: deque = deque()
        self.cancel_requests: list[tuple[str, Optional[str]]] = []
        self._ids = itertools.count(1)

    def add(self, order: OrderDetail) -> OrderDetail:
        self.orders[order.order_id] = order
        return order

    def set_status(self, order_id, status: str) -> None:
        oid = strip_display_prefix(order_id)
        self.orders[oid] = self.orders[oid].model_copy(update={"status": OrderStatus(status)})

    def _get(self, order_id) -> OrderDetail:
        oid = strip_display_prefix(order_id)
        if oid not in self.orders:
            raise NotFoundError("Order not found", status_code=404)
        return self.orders[oid]

    async def create_order(self, request) -> OrderConfirmation:
        self._enter("create_order")
        dto = validate_create_order(request)
        oid = str(next(self._ids))
        while oid in self.orders:
            oid = str(next(self._ids))
        order = make_order(
            oid,
            userId=dto.user_id,
            userName=dto.user_name,
            userEmail=dto.user_email,
            orderDescription=dto.order_description,
            totalAmount=dto.total_amount,
            shippingAddress=dto.shipping_address,
        )
        self.add(order)
        if self.payments is not None:
            self.payments.add(oid, make_payment(oid))
        return OrderConfirmation.model_validate(
            {**order.model_dump(by_alias=True), "sagaId": f"saga-{oid}"}
        )

    async def get_all_orders(self) -> list[OrderSummary]:
        self._enter("get_all_orders")
        return [
            OrderSummary.model_validate({
                "orderId": o.order_id,
                "orderDescription": o.order_description,
                "userName": o.user_name,
                "totalAmount": o.total_amount,
                "createdAt": o.created_at,
                "orderStatus": o.status.value,
            })
            for o in self.orders.values()
        ]

    async def get_order_status(self, order_id: str) -> str:
        self._enter("get_order_status")
        order = self._get(order_id)
        scripted = self._next_scripted(order.order_id)
        if scripted is not None:
            self.set_status(order.order_id, scripted)
            return scripted
        return order.status.value

    async def get_order_by_id(self, order_id: str) -> OrderDetail:
        self._enter("get_order_by_id")
        return self._get(order_id)

    async def cancel_order(self, order_id: str, reason: str | None = None) -> CancelResult:
        """Accept cancellation of CREATED/CONFIRMED orders.

        ``cancel_gate`` (when set) holds the answer until the event fires,
        which keeps a request in flight. Queued ``cancel_results`` (results
        or exceptions) take precedence over the default rule.
        """
        self.calls["cancel_order"] += 1
        self.cancel_requests.append((order_id, reason))
        if self.cancel_gate is not None:
            await self.cancel_gate.wait()
        if self._failures["cancel_order"]:
            raise self._failures["cancel_order"].popleft()
        if self.cancel_results:
            result = self.cancel_results.popleft()
            if isinstance(result, Exception):
                raise result
            return result
        order = self._get(order_id)
        if not can_cancel(order.status):
            return CancelResult(CancelOutcome.REJECTED_TERMINAL, MSG_TERMINAL)
        self.set_status(order.order_id, OrderStatus.CANCELLATION_PENDING.value)
        return CancelResult(CancelOutcome.ACCEPTED, MSG_CANCEL_ACCEPTED)


class PaymentsStub(_Scripted, PaymentsPort):
    """Stub implementation of ``PaymentsPort``; orders without a payment return None."""

    def __init__(self):
        super().__init__()
        self.payments: dict[str, PaymentDetail] = {}

    def add(self, order_id, payment: PaymentDetail) -> PaymentDetail:
        self.payments[strip_display_prefix(order_id)] = payment
        return payment

    def set_status(self, order_id, status: str) -> None:
        oid = strip_display_prefix(order_id)
        self.payments[oid] = self.payments[oid].model_copy(update={"status": PaymentStatus(status)})

    async def get_payment_status_by_order(self, order_id: str) -> Optional[str]:
        self._enter("get_payment_status_by_order")
        oid = strip_display_prefix(order_id)
        scripted = self._next_scripted(oid)
        if scripted is not None and oid in self.payments:
            self.set_status(oid, scripted)
        payment = self.payments.get(oid)
        return payment.status.value if payment else None

    async def get_payment_by_order_id(self, order_id: str) -> Optional[PaymentDetail]:
        self._enter("get_payment_by_order_id")
        return self.payments.get(strip_display_prefix(order_id))
