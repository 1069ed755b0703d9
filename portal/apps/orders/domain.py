"""Domain enums, value objects and ports for the orders client.

This module holds the order and payment status vocabularies (with their
transition tables), the cancellation eligibility rule, the line-item
helpers used to compose a create-order request, and the protocol
definitions (ports) that the HTTP adapters and the in-process stubs
implement.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from .schemas import OrderConfirmation, OrderDetail, OrderSummary, PaymentDetail, CreateOrderDTO

CENTS = Decimal("0.01")
DISPLAY_PREFIX = "ORD_"


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle of an order as reported by the order service."""

    CREATED = "CREATED"
    CONFIRMED = "CONFIRMED"
    CANCELLATION_PENDING = "CANCELLATION_PENDING"
    CANCELLED = "CANCELLED"
    DELIVERED = "DELIVERED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class PaymentStatus(str, Enum):
    """Lifecycle of the payment attached to an order.

    ``REVERSED`` only follows ``CONFIRMED`` (refund-like). It is treated as
    terminal like the other post-processing values.
    """

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    DECLINED = "DECLINED"
    REVERSED = "REVERSED"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class CancelOutcome(str, Enum):
    """Classified answer of the cancel endpoint."""

    ACCEPTED = "accepted"
    REJECTED_RETRYABLE = "rejected_retryable"
    REJECTED_TERMINAL = "rejected_terminal"


@dataclass(frozen=True)
class CancelResult:
    """A classified cancel response plus the message to show for it."""

    outcome: CancelOutcome
    message: str


# "No payment record yet": a first-class state distinct from every PaymentStatus.
PAYMENT_ABSENT = "ABSENT"

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLATION_PENDING}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLATION_PENDING}),
    OrderStatus.CANCELLATION_PENDING: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.CONFIRMED, PaymentStatus.FAILED, PaymentStatus.DECLINED}),
    PaymentStatus.CONFIRMED: frozenset({PaymentStatus.REVERSED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.DECLINED: frozenset(),
    PaymentStatus.REVERSED: frozenset(),
}


def parse_order_status(value) -> Optional[OrderStatus]:
    """Return the OrderStatus for ``value`` or None when it is unknown."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).upper())
    except ValueError:
        return None


def parse_payment_status(value) -> Optional[PaymentStatus]:
    """Return the PaymentStatus for ``value`` or None when it is unknown."""
    if isinstance(value, PaymentStatus):
        return value
    try:
        return PaymentStatus(str(value).upper())
    except ValueError:
        return None


def can_transition(current, target) -> bool:
    """Whether the order service may move an order from ``current`` to ``target``."""
    cur, tgt = parse_order_status(current), parse_order_status(target)
    if cur is None or tgt is None:
        return False
    return tgt in ORDER_TRANSITIONS[cur]


def can_cancel(status) -> bool:
    """Cancellation is only offered for CREATED and CONFIRMED orders.

    CANCELLATION_PENDING is excluded so a second click cannot start a
    second cancellation.
    """
    return parse_order_status(status) in (OrderStatus.CREATED, OrderStatus.CONFIRMED)


def display_order_id(order_id) -> str:
    """``42`` -> ``"ORD_42"``; already prefixed ids are returned unchanged."""
    text = str(order_id)
    return text if text.startswith(DISPLAY_PREFIX) else f"{DISPLAY_PREFIX}{text}"


def strip_display_prefix(order_id) -> str:
    """``"ORD_42"`` -> ``"42"``, the id the remote API expects."""
    text = str(order_id)
    return text[len(DISPLAY_PREFIX):] if text.startswith(DISPLAY_PREFIX) else text


# ---- Value objects ----
@dataclass(frozen=True)
class OrderLine:
    """A line item entered on the create-order form.

    Attributes:
        name: Product name as typed by the user.
        price: Unit price.
        quantity: Number of units (>= 1).
    """

    name: str
    price: Decimal
    quantity: int = 1

    @property
    def line_total(self) -> Decimal:
        return (Decimal(self.price) * self.quantity).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def format_order_description(lines: list[OrderLine]) -> str:
    """Flatten line items into the text the order service stores.

    Each line is encoded as ``"<name> (x<qty>) - $<lineTotal>"`` and the
    lines are comma-joined.
    """
    return ", ".join(f"{line.name} (x{line.quantity}) - ${line.line_total}" for line in lines)


def compute_totals(lines: list[OrderLine], tax_rate: Decimal = Decimal("0.10")) -> OrderTotals:
    """Subtotal, tax and total for a set of lines, rounded to cents."""
    subtotal = sum((line.line_total for line in lines), Decimal("0")).quantize(CENTS)
    tax = (subtotal * Decimal(tax_rate)).quantize(CENTS, rounding=ROUND_HALF_UP)
    return OrderTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


# ---- Ports (DIP) ----
class OrdersPort(Protocol):
    """Operations the portal needs from the order service."""

    async def create_order(self, request: "CreateOrderDTO") -> "OrderConfirmation":
        raise NotImplementedError()

    async def get_all_orders(self) -> list["OrderSummary"]:
        raise NotImplementedError()

    async def get_order_status(self, order_id: str) -> str:
        raise NotImplementedError()

    async def get_order_by_id(self, order_id: str) -> "OrderDetail":
        raise NotImplementedError()

    async def cancel_order(self, order_id: str, reason: str | None = None) -> CancelResult:
        """Request cancellation.

        Returns:
            CancelResult: The classified backend answer.

        Raises:
            AmbiguousOutcomeError: When the answer cannot be classified.
            RemoteError: On transport or HTTP failures.
        """
        raise NotImplementedError()


class PaymentsPort(Protocol):
    """Operations the portal needs from the payment service."""

    async def get_payment_status_by_order(self, order_id: str) -> Optional[str]:
        raise NotImplementedError()

    async def get_payment_by_order_id(self, order_id: str) -> Optional["PaymentDetail"]:
        """Return the payment, or None while no payment record exists yet."""
        raise NotImplementedError()
