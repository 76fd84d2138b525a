"""Cancellation tokens with optional deadlines.

A session owns one root token. Waits and engine calls run under child tokens
derived from it, so cancelling the root reaches every child. A child may add a
deadline of its own; it never outlives its parent's deadline.
"""

from __future__ import annotations

import asyncio
import time
import weakref
from typing import Awaitable, TypeVar

from dockyard.errors import OperationCancelledError

T = TypeVar("T")


class CancelToken:
    """Cancellation signal propagated from parent to children."""

    def __init__(self, *, parent: "CancelToken | None" = None, timeout: float | None = None) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        if parent is not None and parent._deadline is not None:
            deadline = parent._deadline if deadline is None else min(deadline, parent._deadline)

        self._parent = parent
        self._deadline = deadline
        self._cancel_requested = False
        self._event: asyncio.Event | None = None
        self._children: weakref.WeakSet[CancelToken] = weakref.WeakSet()

        if parent is not None:
            parent._children.add(self)
            if parent.cancel_requested:
                self._cancel_requested = True

    def child(self, timeout: float | None = None) -> "CancelToken":
        """Derive a token that is cancelled with this one, or at its own deadline."""
        return CancelToken(parent=self, timeout=timeout)

    @property
    def deadline(self) -> float | None:
        """Deadline on the ``time.monotonic()`` clock, if any."""
        return self._deadline

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def cancel_requested(self) -> bool:
        """True once ``cancel()`` was called here or on an ancestor."""
        return self._cancel_requested

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested or self.expired

    def cancel(self) -> None:
        """Cancel this token and all tokens derived from it. Idempotent."""
        if self._cancel_requested:
            return
        self._cancel_requested = True
        if self._event is not None:
            self._event.set()
        for child in list(self._children):
            child.cancel()

    async def wait(self) -> None:
        """Block until the token is cancelled or its deadline passes."""
        if self.cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        remaining = self.remaining()
        if remaining is None:
            await self._event.wait()
            return
        try:
            await asyncio.wait_for(self._event.wait(), remaining)
        except asyncio.TimeoutError:
            pass

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        On cancellation the pending call is abandoned and
        ``OperationCancelledError`` is raised.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelledError(reason=self._reason())

        task = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            watcher.cancel()
            raise

        if task in done:
            watcher.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise OperationCancelledError(reason=self._reason())

    def _reason(self) -> str:
        return "cancelled" if self._cancel_requested else "deadline_exceeded"
