"""Status pollers bound to an explicit subscription handle.

A ``Poller`` runs one sequential loop: sleep for the interval given by the
freshness policy of the last value seen, fetch, hand the value to a
callback, repeat. The loop ends on its own when the policy stops asking for
polls (terminal status) and is cancelled by ``dispose()`` when the view that
started it goes away.

While the owning view is not focused (``FocusState``) the next tick waits
until focus returns.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional

from portal.gateway.logging_filters import get_logger

from .errors import ClientError, RemoteError, SchemaError
from .freshness import FreshnessPolicy

logger = get_logger("portal.orders.polling")


class FocusState:
    """Whether the consuming view is the active one."""

    def __init__(self, focused: bool = True):
        self._event = asyncio.Event()
        if focused:
            self._event.set()

    @property
    def is_focused(self) -> bool:
        return self._event.is_set()

    def focus(self) -> None:
        self._event.set()

    def blur(self) -> None:
        self._event.clear()

    async def wait_focused(self) -> None:
        await self._event.wait()


class Poller:
    """One polling loop.

    Args:
        name: Label used in logs (e.g. ``"order-status"``).
        fetch: Coroutine function returning the current value.
        policy: Maps the last value to its ``FreshnessPolicy``.
        initial: Value already known when the loop starts; it decides the
            first interval.
        on_value: Called with every polled value (may be a coroutine function).
        focus: Optional shared focus state.
        sleep: Sleep coroutine (injectable for tests).
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[Any]],
        policy: Callable[[Any], FreshnessPolicy],
        *,
        initial: Any = None,
        on_value: Optional[Callable[[Any], Any]] = None,
        focus: Optional[FocusState] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name
        self._fetch = fetch
        self._policy = policy
        self._on_value = on_value
        self._focus = focus
        self._sleep = sleep
        self.last_value = initial
        self.interval: Optional[float] = policy(initial).poll_interval
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "Poller":
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        return self

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def wait(self) -> None:
        """Wait until the loop ends on its own (or was disposed).

        Cancelling the waiter does not stop the loop.
        """
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    def dispose(self) -> None:
        """Stop the loop. Safe to call more than once."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> None:
        while self.interval is not None:
            await self._sleep(self.interval)
            if self._focus is not None:
                await self._focus.wait_focused()
            try:
                value = await self._fetch()
                self.ticks += 1
                self.last_value = value
                if self._on_value is not None:
                    result = self._on_value(value)
                    if inspect.isawaitable(result):
                        await result
            except (ClientError, SchemaError) as e:
                logger.error("poll stopped", extra={"poller": self.name, "error": e.__class__.__name__})
                break
            except RemoteError as e:
                logger.warning("poll tick failed", extra={"poller": self.name, "error": e.__class__.__name__})
                continue
            self.interval = self._policy(value).poll_interval
        logger.info("poll finished", extra={"poller": self.name, "ticks": self.ticks})
