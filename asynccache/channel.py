"""
Result delivery.

A ResultChannel carries one (error, value) outcome to one waiter and
always hands it over on a later loop iteration, never inside the call
that produced it. dispatch() gives every public operation its two
calling conventions: return the future, or feed a trailing callback.
"""

import asyncio
import inspect
from typing import Any, Optional

from .types import Callback


async def maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class ResultChannel:
    __slots__ = ("_loop", "future")

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()
        self.future: asyncio.Future = self._loop.create_future()

    def deliver(self, error: Optional[BaseException], value: Any = None) -> None:
        self._loop.call_soon(self._complete, error, value)

    def _complete(self, error: Optional[BaseException], value: Any) -> None:
        # Cancelled by whoever was awaiting it.
        if self.future.done():
            return
        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(value)


def dispatch(future: asyncio.Future, callback: Optional[Callback] = None) -> Optional[asyncio.Future]:
    """
    Hand `future` back to the caller, or subscribe `callback` to it.

    With a callback, returns None and later calls callback(error, result)
    exactly once.
    """
    if callback is None:
        return future

    def _done(fut: asyncio.Future) -> None:
        if fut.cancelled():
            callback(asyncio.CancelledError(), None)
            return
        error = fut.exception()
        if error is not None:
            callback(error, None)
        else:
            callback(None, fut.result())

    future.add_done_callback(_done)
    return None
