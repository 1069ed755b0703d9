import httpx
import pytest

from portal.apps.orders.errors import ClientError, NetworkError, ServerError
from portal.apps.orders.http_adapters import HttpOrdersClient, HttpPaymentsClient


class R:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body if body is not None else {}

    def json(self):
        return self._body


OK_STATUS = R(200, {"status": 1, "msg": "ok", "data": {"status": "CREATED"}})


def _recording_sleep(client):
    slept = []

    async def fake_sleep(s):
        slept.append(s)

    client._sleep = fake_sleep
    return slept


@pytest.mark.asyncio
async def test_orders_retries_on_5xx(monkeypatch, settings):
    # one failure, then success
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    async def fake_get(self, url, params=None, headers=None, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return R(503)
        return OK_STATUS

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get, raising=True)

    client = HttpOrdersClient(base_url="http://x")
    _recording_sleep(client)
    assert await client.get_order_status("1") == "CREATED"
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_backoff_doubles_and_is_capped(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 4
    settings.HTTP_RETRY_BACKOFF_BASE = 1.0
    settings.HTTP_RETRY_MAX_SLEEP = 3.0
    seen_retry_counts = []

    async def fake_get(self, url, params=None, headers=None, **kwargs):
        seen_retry_counts.append(headers["X-Retry-Count"])
        raise httpx.ConnectError("boom")

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get, raising=True)

    client = HttpOrdersClient(base_url="http://x")
    slept = _recording_sleep(client)
    with pytest.raises(NetworkError):
        await client.get_order_by_id("1")
    assert slept == [1.0, 2.0, 3.0]
    assert seen_retry_counts == ["0", "1", "2", "3"]


@pytest.mark.asyncio
async def test_server_error_after_last_attempt(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    async def fake_get(self, url, params=None, headers=None, **kwargs):
        calls["n"] += 1
        return R(500)

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get, raising=True)

    client = HttpPaymentsClient(base_url="http://x")
    _recording_sleep(client)
    with pytest.raises(ServerError) as exc:
        await client.get_payment_status_by_order("1")
    assert exc.value.status_code == 500
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_no_retry_on_4xx(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    async def fake_get(self, url, params=None, headers=None, **kwargs):
        calls["n"] += 1
        return R(400, {"msg": "bad request"})

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get, raising=True)

    client = HttpOrdersClient(base_url="http://x")
    slept = _recording_sleep(client)
    with pytest.raises(ClientError) as exc:
        await client.get_all_orders()
    assert str(exc.value) == "bad request"
    assert calls["n"] == 1
    assert slept == []


@pytest.mark.asyncio
async def test_cancel_is_not_retried(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    async def fake_post(self, url, json=None, params=None, headers=None, **kwargs):
        calls["n"] += 1
        return R(502)

    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post, raising=True)

    client = HttpOrdersClient(base_url="http://x")
    _recording_sleep(client)
    with pytest.raises(ServerError):
        await client.cancel_order("1")
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_timeout_is_a_network_error(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 1

    async def fake_get(self, url, params=None, headers=None, **kwargs):
        raise httpx.ReadTimeout("slow")

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get, raising=True)

    with pytest.raises(NetworkError) as exc:
        await HttpOrdersClient(base_url="http://x").get_order_status("1")
    assert exc.value.retryable is True
