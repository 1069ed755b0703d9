import asyncio

import pytest

from portal.apps.orders.errors import NotFoundError, ServerError
from portal.apps.orders.freshness import order_status_policy, payment_status_policy
from portal.apps.orders.polling import FocusState, Poller


async def no_wait(_seconds):
    await asyncio.sleep(0)


def scripted(*values):
    """Fetch coroutine replaying ``values``; exceptions are raised."""
    queue = list(values)
    calls = {"n": 0}

    async def fetch():
        calls["n"] += 1
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return fetch, calls


@pytest.mark.asyncio
async def test_order_poll_stops_at_terminal_status():
    fetch, calls = scripted("CONFIRMED", "CONFIRMED", "DELIVERED")
    slept = []

    async def sleep(s):
        slept.append(s)
        await asyncio.sleep(0)

    poller = Poller("order", fetch, order_status_policy, initial="CREATED", sleep=sleep).start()
    await poller.wait()
    assert calls["n"] == 3
    assert slept == [5.0, 30.0, 30.0]
    assert poller.interval is None
    assert not poller.active


@pytest.mark.asyncio
async def test_cancelled_order_is_terminal_too():
    fetch, calls = scripted("CANCELLED")
    poller = Poller("order", fetch, order_status_policy, initial="CANCELLATION_PENDING", sleep=no_wait).start()
    await poller.wait()
    assert calls["n"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["CONFIRMED", "FAILED", "DECLINED", "REVERSED"])
async def test_terminal_payment_never_polls(status):
    fetch, calls = scripted()
    poller = Poller("payment", fetch, payment_status_policy, initial=status, sleep=no_wait).start()
    await poller.wait()
    assert calls["n"] == 0


@pytest.mark.asyncio
async def test_transient_errors_keep_polling():
    fetch, calls = scripted(ServerError("down", status_code=503), "CONFIRMED")
    seen = []
    poller = Poller(
        "payment", fetch, payment_status_policy, initial="PENDING", on_value=seen.append, sleep=no_wait
    ).start()
    await poller.wait()
    assert calls["n"] == 2
    assert seen == ["CONFIRMED"]


@pytest.mark.asyncio
async def test_client_error_stops_polling():
    fetch, calls = scripted(NotFoundError("gone", status_code=404), "CREATED")
    poller = Poller("order", fetch, order_status_policy, initial="CREATED", sleep=no_wait).start()
    await poller.wait()
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_async_callback_is_awaited():
    fetch, _ = scripted("DELIVERED")
    seen = []

    async def on_value(v):
        await asyncio.sleep(0)
        seen.append(v)

    poller = Poller("order", fetch, order_status_policy, initial="CREATED", on_value=on_value, sleep=no_wait)
    await poller.start().wait()
    assert seen == ["DELIVERED"]


@pytest.mark.asyncio
async def test_dispose_stops_the_loop():
    fetch, calls = scripted(*["CREATED"] * 100)
    poller = Poller("order", fetch, order_status_policy, initial="CREATED", sleep=no_wait).start()
    for _ in range(5):
        await asyncio.sleep(0)
    poller.dispose()
    await poller.wait()
    seen = calls["n"]
    for _ in range(5):
        await asyncio.sleep(0)
    assert calls["n"] == seen
    assert not poller.active
    poller.dispose()


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_the_loop_running():
    async def frozen(_seconds):
        await asyncio.Event().wait()

    fetch, _ = scripted()
    poller = Poller("order", fetch, order_status_policy, initial="CREATED", sleep=frozen).start()
    waiter = asyncio.ensure_future(poller.wait())
    for _ in range(5):
        await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert waiter.cancelled()
    assert poller.active

    poller.dispose()
    await poller.wait()
    assert not poller.active


@pytest.mark.asyncio
async def test_unfocused_view_does_not_poll():
    fetch, calls = scripted("DELIVERED")
    focus = FocusState(focused=False)
    poller = Poller("order", fetch, order_status_policy, initial="CREATED", focus=focus, sleep=no_wait).start()
    for _ in range(10):
        await asyncio.sleep(0)
    assert calls["n"] == 0

    focus.focus()
    await poller.wait()
    assert calls["n"] == 1
