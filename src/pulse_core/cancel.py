"""Explicit cancellation tokens shared by the orchestrator, builder and runner."""

import asyncio


class CancelToken:
    """Single-use cancellation token.

    Tokens form a tree: cancelling a parent cancels every child derived from it
    with child(). A cancelled token is never reset; create a fresh one for each
    build attempt or process instance.

    Must be used from the event loop thread; `cancelled` may be read anywhere.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._children: list["CancelToken"] = []
        self._parent: "CancelToken | None" = None

    @property
    def cancelled(self) -> bool:
        """Whether cancel() has been called on this token or an ancestor."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Cancel this token and all of its children. Idempotent."""
        if self._event.is_set():
            return
        self._event.set()

        if self._parent is not None:
            try:
                self._parent._children.remove(self)
            except ValueError:
                pass
            self._parent = None

        children, self._children = self._children, []
        for child in children:
            child._parent = None
            child.cancel()

    def child(self) -> "CancelToken":
        """Derive a token that is cancelled together with this one."""
        token = CancelToken()
        if self.cancelled:
            token.cancel()
        else:
            token._parent = self
            self._children.append(token)
        return token

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        await self._event.wait()
