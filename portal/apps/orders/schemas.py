"""Pydantic schemas for the orders and payments REST contract.

Requests are validated locally before any network call; responses are
validated before they reach callers. Every payload from the remote API is
wrapped in a ``{status, msg, data}`` envelope (see ``Envelope``).
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic import ValidationError as PydanticValidationError

from .domain import CancelOutcome, OrderStatus, PaymentStatus, display_order_id
from .errors import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_TEXT_LEN = 1000
MAX_TOTAL_AMOUNT = Decimal("9999999999.99")

T = TypeVar("T")


def normalize_timestamp(value: Any) -> Any:
    """Turn the backend's ``"2025-07-18 21:01:13.699945"`` into ISO-8601 UTC.

    Values that already carry a ``T`` separator or a zone are left alone.
    """
    if not isinstance(value, str):
        return value
    text = value.strip().replace(" ", "T", 1)
    if text.endswith("Z") or "+" in text or "-" in text[10:]:
        return text
    return f"{text}Z"


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---- Requests ----
class CreateOrderDTO(_Schema):
    """Schema for creating an order.

    Attributes:
        user_id: Customer id (required).
        user_name: Customer display name (required).
        user_email: Customer email, must look like an email address.
        order_description: Flattened line items, at most 1000 characters.
        total_amount: Positive amount, at most 9,999,999,999.99.
        shipping_address: Delivery address, at most 1000 characters.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    user_id: str = Field(alias="userId")
    user_name: str = Field(alias="userName")
    user_email: str = Field(alias="userEmail")
    order_description: str = Field(alias="orderDescription")
    total_amount: Decimal = Field(alias="totalAmount")
    shipping_address: str = Field(alias="shippingAddress")

    @field_validator("user_id", "user_name")
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v:
            raise ValueError("required")
        return v

    @field_validator("user_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Require a non-empty, syntactically plausible email address.

        Raises:
            ValueError: ``"required"`` when empty, ``"invalid email"`` otherwise.
        """
        if not v:
            raise ValueError("required")
        if not EMAIL_RE.match(v):
            raise ValueError("invalid email")
        return v

    @field_validator("order_description", "shipping_address")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v:
            raise ValueError("required")
        if len(v) > MAX_TEXT_LEN:
            raise ValueError(f"must be at most {MAX_TEXT_LEN} characters")
        return v

    @field_validator("total_amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v <= 0:
            raise ValueError("must be positive")
        if v > MAX_TOTAL_AMOUNT:
            raise ValueError("too large")
        return v

    @field_serializer("total_amount")
    def serialize_amount(self, v: Decimal) -> float:
        # the order service binds totalAmount to a JSON number
        return float(v)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def _field_errors(exc: PydanticValidationError) -> dict[str, str]:
    fields: dict[str, str] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err.get("loc") else "__root__"
        if err["type"] == "missing" or err.get("input") is None:
            msg = "required"
        elif err["type"] == "value_error":
            msg = str(err["ctx"]["error"])
        elif err["type"].startswith("decimal"):
            msg = "must be a number"
        else:
            msg = err["msg"]
        fields.setdefault(field, msg)
    return fields


def validate_create_order(data) -> CreateOrderDTO:
    """Validate a create-order payload without touching the network.

    Args:
        data: A ``CreateOrderDTO`` or a mapping using the camelCase keys of
            the REST contract (``userName``, ``userEmail``, ...).

    Returns:
        CreateOrderDTO: The validated request.

    Raises:
        ValidationError: With a field -> message mapping.
    """
    if isinstance(data, CreateOrderDTO):
        return data
    try:
        return CreateOrderDTO.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(_field_errors(e)) from None


# ---- Responses ----
class Envelope(_Schema, Generic[T]):
    """``{status, msg, data}`` wrapper used by every backend response."""

    status: int
    msg: str = ""
    data: T


class OrderConfirmation(_Schema):
    """Echo of a freshly created order."""

    order_id: str = Field(alias="orderId")
    user_id: str = Field(alias="userId")
    user_email: str = Field(alias="userEmail")
    user_name: str = Field(alias="userName")
    order_description: str = Field(alias="orderDescription")
    total_amount: Decimal = Field(alias="totalAmount")
    status: OrderStatus
    created_at: datetime = Field(alias="createdAt")
    saga_id: Optional[str] = Field(default=None, alias="sagaId")

    @field_validator("created_at", mode="before")
    @classmethod
    def normalize_created_at(cls, v):
        return normalize_timestamp(v)

    @field_validator("order_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if isinstance(v, int) else v


class OrderSummary(_Schema):
    """One dashboard row. ``order_id`` carries the ``ORD_`` display prefix."""

    order_id: str = Field(alias="orderId")
    order_description: str = Field(alias="orderDescription")
    user_name: str = Field(alias="userName")
    total_amount: Decimal = Field(alias="totalAmount")
    created_at: datetime = Field(alias="createdAt")
    status: OrderStatus = Field(alias="orderStatus")

    @field_validator("created_at", mode="before")
    @classmethod
    def normalize_created_at(cls, v):
        return normalize_timestamp(v)

    @field_validator("order_id", mode="before")
    @classmethod
    def prefix_id(cls, v):
        if isinstance(v, (int, str)):
            return display_order_id(v)
        return v


class OrderDetail(_Schema):
    """Full order entity as returned by ``GET /api/orders/{id}``."""

    order_id: str = Field(alias="orderId")
    user_id: str = Field(alias="userId")
    user_email: str = Field(alias="userEmail")
    user_name: str = Field(alias="userName")
    order_description: str = Field(alias="orderDescription")
    status: OrderStatus
    total_amount: Decimal = Field(alias="totalAmount")
    created_at: datetime = Field(alias="createdAt")
    shipping_address: Optional[str] = Field(default=None, alias="shippingAddress")

    @field_validator("created_at", mode="before")
    @classmethod
    def normalize_created_at(cls, v):
        return normalize_timestamp(v)

    @field_validator("order_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if isinstance(v, int) else v


class PaymentDetail(_Schema):
    """Payment attached to an order (``GET /api/payments/order/{id}``)."""

    id: str
    status: PaymentStatus
    payment_method: str = Field(alias="paymentMethod")
    transaction_reference: str = Field(alias="transactionReference")
    processed_at: Optional[datetime] = Field(default=None, alias="processedAt")
    failure_reason: Optional[str] = Field(default=None, alias="failureReason")

    @field_validator("processed_at", mode="before")
    @classmethod
    def normalize_processed_at(cls, v):
        return normalize_timestamp(v)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if isinstance(v, int) else v


class StatusData(_Schema):
    """``data`` of the lightweight status endpoints."""

    status: str


class CancelResponse(_Schema):
    """Cancel endpoint body.

    ``outcome`` is the stable discriminator; older deployments omit it and
    the answer has to be inferred from ``status``/``msg``.
    """

    status: int
    msg: str = ""
    data: Any = None
    outcome: Optional[CancelOutcome] = None
