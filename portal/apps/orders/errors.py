"""Error taxonomy for the orders client.

Views never see raw ``httpx`` exceptions: the HTTP adapters translate
transport failures and non-2xx responses into the classes below, and
``describe_error`` turns any of them into the message shown to the user.
"""

# User-facing messages
MSG_NOT_FOUND = "Order not found. Please refresh the page."
MSG_PROCESSING = "Payment is currently being processed. Please wait for payment completion before cancelling."
MSG_TERMINAL = "This order cannot be cancelled as it has already been processed or delivered."
MSG_NETWORK = "Network error occurred. Please check your connection and try again."
MSG_SERVER = "Server error occurred. Please try again later."
MSG_VALIDATION = "Please check your input and try again."
MSG_GENERIC = "Something went wrong. Please try again."
MSG_CANCEL_FAILED = "Failed to cancel order. Please try again."
MSG_CANCEL_ACCEPTED = (
    "Order cancellation has been initiated successfully. "
    "The order status will be updated shortly."
)


class PortalError(Exception):
    """Base class for every error raised by the portal client."""


class ValidationError(PortalError):
    """Local, pre-network validation failure.

    Attributes:
        fields: Mapping of field name to a short message (e.g. ``"required"``).
    """

    def __init__(self, fields: dict[str, str]):
        self.fields = dict(fields)
        super().__init__(", ".join(f"{k}: {v}" for k, v in self.fields.items()) or "invalid")


class RemoteError(PortalError):
    """A call to the remote API failed.

    Attributes:
        status_code: HTTP status when one was received, otherwise None.
        retryable: Whether retrying the same call may succeed.
    """

    retryable = False

    def __init__(self, message: str = "", status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message or self.__class__.__name__)


class ClientError(RemoteError):
    """4xx-equivalent response. Never retried."""


class NotFoundError(ClientError):
    """The requested order (or order status) does not exist."""


class ServerError(RemoteError):
    """5xx-equivalent response."""

    retryable = True


class NetworkError(RemoteError):
    """Transport failure: timeout, refused connection, DNS, reset."""

    retryable = True


class SchemaError(RemoteError):
    """Response body does not match the expected contract. Never retried."""


class AmbiguousOutcomeError(PortalError):
    """A cancellation response could not be classified.

    Attributes:
        raw_message: The backend's free-text message, kept for display.
    """

    def __init__(self, raw_message: str):
        self.raw_message = raw_message
        super().__init__(raw_message or "ambiguous cancellation outcome")


def describe_error(exc: BaseException) -> str:
    """Map an exception to the message shown to the user.

    Args:
        exc: Any exception raised while talking to the remote API.

    Returns:
        str: A human-readable message; never empty.
    """
    if isinstance(exc, ValidationError):
        return MSG_VALIDATION
    if isinstance(exc, NotFoundError) or (isinstance(exc, ClientError) and exc.status_code == 404):
        return MSG_NOT_FOUND
    if isinstance(exc, NetworkError):
        return MSG_NETWORK
    if isinstance(exc, ServerError):
        return MSG_SERVER
    if isinstance(exc, AmbiguousOutcomeError):
        return exc.raw_message or MSG_CANCEL_FAILED
    return MSG_GENERIC
