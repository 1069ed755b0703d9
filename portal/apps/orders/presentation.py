"""Display helpers for the order detail view."""

from dataclasses import dataclass
from typing import Optional

from .domain import PAYMENT_ABSENT, OrderStatus, PaymentStatus, parse_order_status, parse_payment_status

PAYMENT_LABELS = {
    PaymentStatus.CONFIRMED: "Successfully Processed",
    PaymentStatus.FAILED: "Transaction Failed",
    PaymentStatus.DECLINED: "Payment Declined",
    PaymentStatus.PENDING: "Processing...",
    PaymentStatus.REVERSED: "Payment Reversed",
}
LABEL_AWAITING_PAYMENT = "Processing - payment record not yet created"
LABEL_NO_PAYMENT = "No payment recorded"
LABEL_UNKNOWN = "Unknown Status"


def payment_state_label(order_status, payment_status) -> str:
    """Text shown for the payment of an order.

    ``payment_status`` of None (or ``PAYMENT_ABSENT``) means no payment
    record exists; for a CREATED order that is the normal "still
    processing" state.
    """
    if payment_status is None or payment_status == PAYMENT_ABSENT:
        if parse_order_status(order_status) is OrderStatus.CREATED:
            return LABEL_AWAITING_PAYMENT
        return LABEL_NO_PAYMENT
    parsed = parse_payment_status(payment_status)
    return PAYMENT_LABELS.get(parsed, LABEL_UNKNOWN)


@dataclass(frozen=True)
class TimelineStep:
    id: str
    label: str
    description: str
    state: str  # completed | current | pending | failed | cancelled


def build_timeline(order_status, payment_status) -> list[TimelineStep]:
    """Created / Confirmed / Delivered steps for the status timeline.

    Steps that can no longer be reached because the order is being (or
    was) cancelled are marked ``cancelled``.
    """
    order = parse_order_status(order_status)
    payment: Optional[PaymentStatus] = parse_payment_status(payment_status) if payment_status else None
    cancelled = order in (OrderStatus.CANCELLATION_PENDING, OrderStatus.CANCELLED)

    if payment is PaymentStatus.CONFIRMED or order in (OrderStatus.CONFIRMED, OrderStatus.DELIVERED):
        confirmed = "completed"
    elif payment in (PaymentStatus.FAILED, PaymentStatus.DECLINED):
        confirmed = "failed"
    elif cancelled:
        confirmed = "cancelled"
    elif payment is PaymentStatus.PENDING or order is OrderStatus.CREATED:
        confirmed = "current"
    else:
        confirmed = "pending"

    if order is OrderStatus.DELIVERED:
        delivered = "completed"
    elif cancelled:
        delivered = "cancelled"
    elif order is OrderStatus.CONFIRMED and confirmed == "completed":
        delivered = "current"
    else:
        delivered = "pending"

    return [
        TimelineStep("created", "Created", "Order has been created", "completed"),
        TimelineStep("confirmed", "Confirmed", "Payment confirmed", confirmed),
        TimelineStep("delivered", "Delivered", "Order delivered", delivered),
    ]
