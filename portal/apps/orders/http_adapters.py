"""HTTP adapter clients for the order and payment services.

This module implements the ``OrdersPort`` and ``PaymentsPort`` protocols
on top of ``httpx.AsyncClient``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar
    set by the gateway middleware (or by ``request_id_scope``).
- Retry policy with exponential backoff (base delay doubling per attempt,
    capped) for transport errors and HTTP 5xx on read endpoints. 4xx
    responses and non-idempotent commands (create, cancel) are never retried.
- Error translation: transport failures become ``NetworkError``, 404
    becomes ``NotFoundError``, other 4xx ``ClientError``, 5xx
    ``ServerError`` and contract mismatches ``SchemaError``.
"""

import asyncio
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from portal import settings
from portal.gateway.logging_filters import get_logger
from portal.gateway.middleware import REQUEST_ID_CTX, REQUEST_ID_HEADER

from .cancellation import classify_cancel_response
from .domain import CancelResult, OrdersPort, PaymentsPort, strip_display_prefix
from .errors import ClientError, NetworkError, NotFoundError, RemoteError, SchemaError, ServerError
from .schemas import (
    CancelResponse,
    CreateOrderDTO,
    Envelope,
    OrderConfirmation,
    OrderDetail,
    OrderSummary,
    PaymentDetail,
    StatusData,
    validate_create_order,
)

logger = get_logger("portal.orders.http")


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {"Content-Type": "application/json"}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers[REQUEST_ID_HEADER] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy() -> tuple[int, float, float]:
    """Return retry configuration as (max_attempts, backoff_base, max_sleep)."""
    return (
        max(1, int(getattr(settings, "HTTP_RETRY_MAX", 3))),
        float(getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 1.0)),
        float(getattr(settings, "HTTP_RETRY_MAX_SLEEP", 30.0)),
    )


def _should_retry(resp, exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or 5xx."""
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def _error_for(resp) -> RemoteError:
    """Translate a non-2xx response into the matching RemoteError."""
    code = resp.status_code
    detail = _safe_message(resp)
    if code == 404:
        return NotFoundError(detail or "not found", status_code=code)
    if 400 <= code < 500:
        return ClientError(detail or f"HTTP {code}", status_code=code)
    return ServerError(detail or f"HTTP {code}", status_code=code)


def _safe_message(resp) -> str:
    try:
        body = resp.json()
    except Exception:
        return ""
    if isinstance(body, dict):
        return str(body.get("msg") or body.get("detail") or "")
    return ""


def _parse(model, payload: Any, what: str):
    """Validate ``payload`` against ``model`` or raise SchemaError."""
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        logger.error("response schema mismatch", extra={"endpoint": what, "errors": e.error_count()})
        raise SchemaError(f"unexpected {what} response") from e


class _HttpClient:
    """Shared transport for the order and payment clients."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or getattr(settings, "API_BASE_URL")).rstrip("/")
        self.timeout = timeout or getattr(settings, "HTTP_TIMEOUT_SECS", 10.0)
        self._sleep = asyncio.sleep

    async def _send(self, method: str, path: str, *, json=None, params=None, retry: bool = True):
        """Send one logical request, retrying transient failures.

        Args:
            method: ``"GET"`` or ``"POST"``.
            path: Path below the base URL.
            json: Optional JSON body.
            params: Optional query parameters.
            retry: Whether transport errors and 5xx may be retried.

        Returns:
            httpx.Response: The first 2xx response.

        Raises:
            NetworkError: Transport failure after the last attempt.
            ClientError: For 4xx (never retried).
            ServerError: For 5xx after the last attempt.
        """
        max_attempts, backoff, cap = _retry_policy()
        if not retry:
            max_attempts = 1
        url = f"{self.base_url}{path}"
        headers = _request_headers({"X-Retry-Count": "0"})
        tries = 0

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                resp = None
                exc = None
                try:
                    if method == "GET":
                        resp = await client.get(url, params=params, headers=headers)
                    else:
                        resp = await client.post(url, json=json, params=params, headers=headers)
                    if 200 <= resp.status_code < 300:
                        return resp
                    if not _should_retry(resp, None):
                        raise _error_for(resp)
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)

                if tries >= max_attempts:
                    logger.warning(
                        "request failed",
                        extra={"method": method, "path": path, "attempt": tries,
                               "status_code": getattr(resp, "status_code", None)},
                    )
                    if exc is not None:
                        raise NetworkError(str(exc) or exc.__class__.__name__) from exc
                    raise _error_for(resp)

                sleep_s = backoff * (2 ** (tries - 1))  # exponential backoff
                logger.info("retrying request", extra={"method": method, "path": path, "attempt": tries})
                await self._sleep(min(sleep_s, cap))

    @staticmethod
    def _json(resp) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise SchemaError("response body is not JSON") from e


# ---------------- Orders Adapter ---------------- #

class HttpOrdersClient(_HttpClient, OrdersPort):
    """HTTP client for the order service."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        super().__init__(base_url, timeout)
        self.path = getattr(settings, "ORDERS_PATH", "/api/orders")

    async def create_order(self, request) -> OrderConfirmation:
        """Validate locally, then create the order.

        Args:
            request: ``CreateOrderDTO`` or a camelCase mapping.

        Returns:
            OrderConfirmation: Echo of the created order.

        Raises:
            ValidationError: Before any network call when the input is invalid.
            ServerError: When the service reports a failed creation.
        """
        dto: CreateOrderDTO = validate_create_order(request)
        resp = await self._send("POST", f"{self.path}/create", json=dto.to_payload(), retry=False)
        env = _parse(Envelope[Any], self._json(resp), "create-order")
        if env.status != 1:
            raise ServerError(env.msg or "order was not created", status_code=resp.status_code)
        return _parse(OrderConfirmation, env.data, "create-order")

    async def get_all_orders(self) -> list[OrderSummary]:
        resp = await self._send("GET", f"{self.path}/all")
        env = _parse(Envelope[Any], self._json(resp), "list-orders")
        if env.status != 1:
            raise ServerError(env.msg or "orders unavailable", status_code=resp.status_code)
        return _parse(Envelope[list[OrderSummary]], self._json(resp), "list-orders").data

    async def get_order_status(self, order_id: str) -> str:
        oid = strip_display_prefix(order_id)
        resp = await self._send("GET", f"{self.path}/{oid}/status")
        env = _parse(Envelope[Any], self._json(resp), "order-status")
        if env.status != 1:
            raise ServerError(env.msg or "order status unavailable", status_code=resp.status_code)
        # the service answers "not found" with a 2xx and a string payload
        if isinstance(env.data, str):
            raise NotFoundError(env.data, status_code=404)
        return _parse(StatusData, env.data, "order-status").status

    async def get_order_by_id(self, order_id: str) -> OrderDetail:
        oid = strip_display_prefix(order_id)
        resp = await self._send("GET", f"{self.path}/{oid}")
        env = _parse(Envelope[Any], self._json(resp), "order-detail")
        if env.status != 1:
            raise ServerError(env.msg or "order unavailable", status_code=resp.status_code)
        if isinstance(env.data, str):
            raise NotFoundError(env.data, status_code=404)
        return _parse(OrderDetail, env.data, "order-detail")

    async def cancel_order(self, order_id: str, reason: str | None = None) -> CancelResult:
        """Ask the order service to start the cancellation saga.

        Returns:
            CancelResult: Classified outcome (see ``classify_cancel_response``).

        Raises:
            AmbiguousOutcomeError: When the answer cannot be classified.
            RemoteError: On transport or HTTP failures.
        """
        oid = strip_display_prefix(order_id)
        params = {"reason": reason} if reason else None
        resp = await self._send("POST", f"{self.path}/{oid}/cancel", params=params, retry=False)
        body = _parse(CancelResponse, self._json(resp), "cancel-order")
        return classify_cancel_response(body)


# ---------------- Payments Adapter ---------------- #

class HttpPaymentsClient(_HttpClient, PaymentsPort):
    """HTTP client for the payment service.

    Payment lookups tolerate "no payment yet": both a ``null`` payload and
    a 404 are reported as ``None``.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        super().__init__(base_url, timeout)
        self.path = getattr(settings, "PAYMENTS_PATH", "/api/payments")

    async def get_payment_status_by_order(self, order_id: str) -> Optional[str]:
        oid = strip_display_prefix(order_id)
        try:
            resp = await self._send("GET", f"{self.path}/order/{oid}/status")
        except NotFoundError:
            return None
        body = self._json(resp)
        _raise_on_payment_failure(body, resp)
        env = _parse(Envelope[Optional[StatusData]], body, "payment-status")
        return env.data.status if env.data else None

    async def get_payment_by_order_id(self, order_id: str) -> Optional[PaymentDetail]:
        oid = strip_display_prefix(order_id)
        try:
            resp = await self._send("GET", f"{self.path}/order/{oid}")
        except NotFoundError:
            return None
        body = self._json(resp)
        _raise_on_payment_failure(body, resp)
        env = _parse(Envelope[Optional[PaymentDetail]], body, "payment-detail")
        return env.data


def _raise_on_payment_failure(body: Any, resp) -> None:
    # failures come back as a 2xx envelope whose payload is an error name
    if isinstance(body, dict) and body.get("status") == 0 and isinstance(body.get("data"), str):
        raise ServerError(str(body.get("msg") or body["data"]), status_code=resp.status_code)
