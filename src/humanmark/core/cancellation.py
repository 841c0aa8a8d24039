"""
Cooperative cancellation.

A CancellationToken is passed down through every suspending call and is
observed at suspension points (network I/O, retry sleeps, the poll race).
Cancellation is one-shot: once raised it stays raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from humanmark.protocol.enums import CancelReason
from humanmark.protocol.errors import HumanmarkError, cancelled_error, timeout_error

logger = logging.getLogger("humanmark.cancellation")

T = TypeVar("T")


class CancellationToken:
    def __init__(self) -> None:
        self._reason: Optional[CancelReason] = None
        self._event: Optional[asyncio.Event] = None
        self._callbacks: List[Callable[[CancelReason], None]] = []
        self._parents: List["CancellationToken"] = []

    @classmethod
    def linked(cls, *parents: Optional["CancellationToken"]) -> "CancellationToken":
        """
        A token cancelled whenever any (non-None) parent is.

        Call detach() when the child is done so a long-lived parent does not
        keep accumulating callbacks.
        """
        child = cls()
        for parent in parents:
            if parent is not None:
                child._parents.append(parent)
                parent.add_callback(child.cancel)
        return child

    def detach(self) -> None:
        """Stop following the parents this token was linked to. Idempotent."""
        parents, self._parents = self._parents, []
        for parent in parents:
            parent.remove_callback(self.cancel)

    # ------------------------------------------------------------------
    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[CancelReason]:
        return self._reason

    def cancel(self, reason: CancelReason = CancelReason.USER) -> None:
        if self._reason is not None:
            return
        self._reason = reason
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            cb(reason)

    def add_callback(self, cb: Callable[[CancelReason], None]) -> None:
        if self._reason is not None:
            cb(self._reason)
            return
        self._callbacks.append(cb)

    def remove_callback(self, cb: Callable[[CancelReason], None]) -> None:
        if cb in self._callbacks:
            self._callbacks.remove(cb)

    async def wait(self) -> CancelReason:
        if self._event is None:
            # created lazily so tokens can be built outside a running loop
            self._event = asyncio.Event()
            if self._reason is not None:
                self._event.set()
        await self._event.wait()
        assert self._reason is not None
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise error_for(self._reason)


def error_for(reason: CancelReason) -> HumanmarkError:
    if reason == CancelReason.TIMEOUT:
        return timeout_error("Client request")
    return cancelled_error()


async def _discard(task: "asyncio.Future[Any]") -> None:
    if not task.done():
        task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        # the loser's outcome is intentionally unobserved
        logger.debug("Discarded task finished with an error", exc_info=True)


async def cancellable_sleep(delay: float, token: Optional[CancellationToken]) -> None:
    """Sleep for delay seconds, raising as soon as token is cancelled."""
    if token is None:
        await asyncio.sleep(delay)
        return
    token.raise_if_cancelled()
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({waiter}, timeout=delay)
    finally:
        await _discard(waiter)
    if done:
        token.raise_if_cancelled()


async def race(work: Awaitable[T], token: CancellationToken) -> T:
    """
    First-completed of `work` and `token`.

    The loser is cancelled and awaited, so an abandoned request is aborted
    rather than left running. A result that completed successfully wins over
    a cancellation that arrived in the same turn.
    """
    task = asyncio.ensure_future(work)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        await _discard(task)
        await _discard(waiter)
        raise

    if task in done and not task.cancelled() and task.exception() is None:
        await _discard(waiter)
        return task.result()

    await _discard(waiter)
    if token.cancelled:
        await _discard(task)
        raise error_for(token.reason)  # type: ignore[arg-type]
    return task.result()
