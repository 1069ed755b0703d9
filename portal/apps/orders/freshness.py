"""Freshness policies: how long a cached value stays fresh and how often it is polled.

Each policy is a pure function of the value last seen for a cache key, so
the cadence adapts as the order or payment moves through its lifecycle.
They are defined once per entity kind and shared by the dashboard, the
detail view and the status pollers.

All durations are in seconds. ``FOREVER`` staleness means "never refetch
on a schedule"; ``poll_interval=None`` means "do not poll".
"""

import math
from dataclasses import dataclass
from typing import Optional

from .domain import OrderStatus, parse_order_status, parse_payment_status

FOREVER = math.inf
FAST_POLL_SECS = 5.0
SLOW_POLL_SECS = 30.0
DETAIL_STALE_SECS = 10 * 60.0
LIST_STALE_SECS = 60.0
LIST_POLL_SECS = 60.0
UNKNOWN_PAYMENT_POLL_SECS = 10 * 60.0


@dataclass(frozen=True)
class FreshnessPolicy:
    """Cache lifetime and polling cadence for one observed value."""

    stale_after: float
    poll_interval: Optional[float]

    @property
    def polls(self) -> bool:
        return self.poll_interval is not None


NEVER_STALE = FreshnessPolicy(stale_after=FOREVER, poll_interval=None)


def order_status_policy(status) -> FreshnessPolicy:
    """Policy for the bare order status.

    DELIVERED and CANCELLED never change again: cache forever, stop polling.
    CREATED is expected to move quickly (payment saga) so it is polled fast;
    every other status is polled slowly.
    """
    parsed = parse_order_status(status)
    if parsed is not None and parsed.is_terminal:
        return NEVER_STALE
    if parsed is OrderStatus.CREATED:
        return FreshnessPolicy(stale_after=0.0, poll_interval=FAST_POLL_SECS)
    return FreshnessPolicy(stale_after=0.0, poll_interval=SLOW_POLL_SECS)


def payment_status_policy(status) -> FreshnessPolicy:
    """Policy for the bare payment status; ``None`` means no payment yet."""
    if status is None:
        return FreshnessPolicy(stale_after=0.0, poll_interval=FAST_POLL_SECS)
    parsed = parse_payment_status(status)
    if parsed is None:
        return FreshnessPolicy(stale_after=0.0, poll_interval=UNKNOWN_PAYMENT_POLL_SECS)
    if parsed.is_terminal:
        return NEVER_STALE
    return FreshnessPolicy(stale_after=0.0, poll_interval=FAST_POLL_SECS)


def order_detail_policy(order) -> FreshnessPolicy:
    """Full order entity: long-lived, kept current by the status poll."""
    return FreshnessPolicy(stale_after=DETAIL_STALE_SECS, poll_interval=None)


def payment_detail_policy(payment) -> FreshnessPolicy:
    """Full payment entity.

    While no payment exists it is always stale and refetched every few
    seconds to notice its creation; once it exists the status poll takes over.
    """
    if payment is None:
        return FreshnessPolicy(stale_after=0.0, poll_interval=FAST_POLL_SECS)
    return FreshnessPolicy(stale_after=DETAIL_STALE_SECS, poll_interval=None)


def order_list_policy(orders) -> FreshnessPolicy:
    return FreshnessPolicy(stale_after=LIST_STALE_SECS, poll_interval=LIST_POLL_SECS)
