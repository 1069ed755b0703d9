"""Service provider helpers for wiring OrderPortalService with ports.

``get_portal_service`` returns a service backed by the HTTP clients, or by
the in-process stubs when ``settings.USE_HTTP_ADAPTERS`` is false (local
development without the backend).
"""

from portal import settings

from .adapters import OrdersStub, PaymentsStub
from .http_adapters import HttpOrdersClient, HttpPaymentsClient
from .service import OrderPortalService


def get_portal_service(base_url: str | None = None) -> OrderPortalService:
    """Return a configured OrderPortalService instance.

    Args:
        base_url: Overrides ``settings.API_BASE_URL`` for both clients.

    Returns:
        OrderPortalService: A service with a fresh session cache.
    """
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return OrderPortalService(
            orders=HttpOrdersClient(base_url=base_url),
            payments=HttpPaymentsClient(base_url=base_url),
        )

    payments = PaymentsStub()
    return OrderPortalService(orders=OrdersStub(payments=payments), payments=payments)
