"""Order cancellation: response classification and the user-facing workflow.

``classify_cancel_response`` is the one place that decides what a cancel
response means. Deployments that send the ``outcome`` discriminator are
trusted as-is; for older ones the answer is inferred from ``status`` and
the free-text ``msg`` (legacy shim, see ``LEGACY_*`` below).

``CancellationWorkflow`` drives a single cancel button::

    IDLE -> SUBMITTING -> NOTIFIED_SUCCESS
                       -> NOTIFIED_FAILURE (allow_retry True/False)

A second submit while SUBMITTING is ignored. On success the order list,
detail and status cache entries are invalidated after a delay, since the
backend cancellation saga settles asynchronously.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from portal import settings
from portal.gateway.logging_filters import get_logger

from .cache import OrderKeys, QueryCache
from .domain import CancelOutcome, CancelResult, OrdersPort, can_cancel
from .errors import (
    MSG_CANCEL_ACCEPTED,
    MSG_CANCEL_FAILED,
    MSG_NOT_FOUND,
    MSG_PROCESSING,
    MSG_TERMINAL,
    AmbiguousOutcomeError,
    RemoteError,
    describe_error,
)
from .schemas import CancelResponse

logger = get_logger("portal.orders.cancellation")

# Legacy message fragments emitted by the order service
LEGACY_ACCEPTED = ("Order cancellation initiated",)
LEGACY_RETRYABLE = (
    "Order status changed while processing",
    "Payment is currently being processed",
)
LEGACY_TERMINAL = (
    "Cannot cancel order that has already been",
    "Cancellation not allowed",
)
LEGACY_NOT_FOUND = ("Order not found",)


def _contains_any(text: str, fragments) -> bool:
    return any(f in text for f in fragments)


def classify_cancel_response(body: CancelResponse) -> CancelResult:
    """Classify a cancel response into accepted / retryable / terminal.

    Args:
        body: Parsed cancel endpoint response.

    Returns:
        CancelResult: Outcome plus the message to display.

    Raises:
        AmbiguousOutcomeError: When a failure matches none of the known
            messages. Callers treat it as retryable and show the raw text.
    """
    msg = body.msg or ""
    if body.outcome is CancelOutcome.ACCEPTED:
        return CancelResult(CancelOutcome.ACCEPTED, MSG_CANCEL_ACCEPTED)
    if body.outcome is CancelOutcome.REJECTED_TERMINAL:
        return CancelResult(CancelOutcome.REJECTED_TERMINAL, MSG_TERMINAL)
    if body.outcome is CancelOutcome.REJECTED_RETRYABLE:
        return CancelResult(CancelOutcome.REJECTED_RETRYABLE, msg or MSG_CANCEL_FAILED)

    if body.status == 1 or _contains_any(msg, LEGACY_ACCEPTED):
        return CancelResult(CancelOutcome.ACCEPTED, MSG_CANCEL_ACCEPTED)
    if _contains_any(msg, LEGACY_RETRYABLE):
        return CancelResult(CancelOutcome.REJECTED_RETRYABLE, MSG_PROCESSING)
    if _contains_any(msg, LEGACY_TERMINAL):
        return CancelResult(CancelOutcome.REJECTED_TERMINAL, MSG_TERMINAL)
    if _contains_any(msg, LEGACY_NOT_FOUND):
        return CancelResult(CancelOutcome.REJECTED_RETRYABLE, MSG_NOT_FOUND)
    raise AmbiguousOutcomeError(msg)


class CancellationState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    NOTIFIED_SUCCESS = "notified_success"
    NOTIFIED_FAILURE = "notified_failure"


@dataclass
class Notification:
    """What the cancel dialog shows after a submission settles."""

    message: str
    is_success: bool
    order_id: str
    allow_retry: bool = False
    is_open: bool = True


class CancellationWorkflow:
    """State machine behind one order's cancel action.

    Args:
        orders: Order service port.
        cache: Shared query cache; invalidated after a successful cancel.
        invalidation_delay: Seconds to wait before invalidating. Defaults to
            ``settings.CANCEL_INVALIDATION_DELAY_SECS``.
    """

    def __init__(self, orders: OrdersPort, cache: QueryCache, invalidation_delay: float | None = None):
        self.orders = orders
        self.cache = cache
        if invalidation_delay is None:
            invalidation_delay = getattr(settings, "CANCEL_INVALIDATION_DELAY_SECS", 10.0)
        self.invalidation_delay = float(invalidation_delay)
        self.state = CancellationState.IDLE
        self.notification: Optional[Notification] = None
        self._last_args: Optional[tuple[str, Optional[str]]] = None

    @property
    def is_submitting(self) -> bool:
        return self.state is CancellationState.SUBMITTING

    async def submit(self, order_id: str, reason: str | None = None) -> Optional[Notification]:
        """Cancel ``order_id``.

        The order status is fetched again before sending, so an order that
        moved out of CREATED/CONFIRMED since it was rendered is rejected
        locally without a cancel request.

        Returns:
            Notification | None: The settled notification, or None when the
            call was ignored because a submission is already in flight.
        """
        if self.is_submitting:
            logger.info("cancel already in flight, ignoring", extra={"order_id": order_id})
            return None

        self.state = CancellationState.SUBMITTING
        self._last_args = (order_id, reason)
        try:
            status = await self.orders.get_order_status(order_id)
            if not can_cancel(status):
                logger.info("order no longer cancellable", extra={"order_id": order_id, "to_status": status})
                result = CancelResult(CancelOutcome.REJECTED_TERMINAL, MSG_TERMINAL)
            else:
                result = await self.orders.cancel_order(order_id, reason)
        except AmbiguousOutcomeError as e:
            logger.warning("unclassified cancel response", extra={"order_id": order_id, "raw_message": e.raw_message})
            result = CancelResult(CancelOutcome.REJECTED_RETRYABLE, describe_error(e))
        except RemoteError as e:
            logger.warning(
                "cancel request failed",
                extra={"order_id": order_id, "error": e.__class__.__name__, "status_code": e.status_code},
            )
            result = CancelResult(CancelOutcome.REJECTED_RETRYABLE, describe_error(e))
        except BaseException:
            self.state = CancellationState.IDLE
            raise

        return self._settle(order_id, result)

    async def retry(self) -> Optional[Notification]:
        """Re-submit with the arguments of the last attempt, if retry is offered."""
        if self.notification is None or not self.notification.allow_retry or self._last_args is None:
            return None
        order_id, reason = self._last_args
        return await self.submit(order_id, reason)

    def close_notification(self) -> None:
        if self.notification is not None:
            self.notification.is_open = False
        if not self.is_submitting:
            self.state = CancellationState.IDLE

    def _settle(self, order_id: str, result: CancelResult) -> Notification:
        accepted = result.outcome is CancelOutcome.ACCEPTED
        self.notification = Notification(
            message=result.message,
            is_success=accepted,
            order_id=order_id,
            allow_retry=result.outcome is CancelOutcome.REJECTED_RETRYABLE,
        )
        self.state = CancellationState.NOTIFIED_SUCCESS if accepted else CancellationState.NOTIFIED_FAILURE
        logger.info("cancel settled", extra={"order_id": order_id, "outcome": result.outcome.value})
        if accepted:
            self.cache.schedule_invalidation(
                [OrderKeys.list(), OrderKeys.detail(order_id), OrderKeys.status(order_id)],
                self.invalidation_delay,
            )
        return self.notification
