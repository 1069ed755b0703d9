"""Request identifier context shared by the client and the liveness app.

Every incoming request to the liveness app receives a request identifier
(UUID). The identifier is read from the incoming ``X-Request-ID`` header
when the caller provides one, or generated otherwise. It is stored in the
``REQUEST_ID_CTX`` context variable so that code running downstream (log
filters, outgoing HTTP calls made by the orders client) can read it
without passing it around explicitly.

Behavior contract:
- If the incoming request carries ``X-Request-ID``, that value is reused.
- Otherwise a new UUIDv4 is generated.
- The response always carries the same id in ``X-Request-ID``.
"""

import uuid
import contextvars
from contextlib import contextmanager

from starlette.requests import Request

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
REQUEST_ID_HEADER = "X-Request-ID"


async def add_request_id(request: Request, call_next):
    """FastAPI ``http`` middleware that sets and echoes the request id."""
    rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = rid
    token = REQUEST_ID_CTX.set(rid)
    try:
        response = await call_next(request)
    finally:
        REQUEST_ID_CTX.reset(token)
    response.headers[REQUEST_ID_HEADER] = rid
    return response


@contextmanager
def request_id_scope(rid: str | None = None):
    """Bind a request id for the duration of a block.

    Useful outside an HTTP request, e.g. when a CLI or a background job
    drives the orders client and wants its outgoing calls correlated.

    Yields:
        str: The request id in effect inside the block.
    """
    rid = rid or str(uuid.uuid4())
    token = REQUEST_ID_CTX.set(rid)
    try:
        yield rid
    finally:
        REQUEST_ID_CTX.reset(token)
