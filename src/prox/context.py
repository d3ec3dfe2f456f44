"""Cancellable run context.

A RunContext is a one-shot cancellation broadcast. Contexts form a tree:
cancelling a context cancels all of its children, while cancelling a child
never affects its parent. The executor derives one child per run so that a
failing process can stop its siblings without touching the caller's context.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

__all__ = ["RunContext"]

logger = logging.getLogger(__name__)


class RunContext:
    """Cancellation signal shared by every process of a run.

    Example:
        ```python
        root = RunContext()
        ctx = root.child()

        async def worker():
            await ctx.wait()  # returns once ctx (or root) is cancelled

        root.cancel("operator interrupt")
        assert ctx.cancelled
        ```
    """

    def __init__(self, parent: Optional["RunContext"] = None) -> None:
        self._event = asyncio.Event()
        self._children: list[RunContext] = []
        self._reason: str | None = None
        self.parent = parent

        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    def child(self) -> "RunContext":
        """Derive a context that is cancelled together with this one."""
        return RunContext(parent=self)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Reason passed to the first cancel() call."""
        return self._reason

    def cancel(self, reason: str | None = None) -> bool:
        """Cancel this context and all of its children.

        Calling cancel more than once is a no-op after the first call.

        Returns:
            True if this call performed the cancellation
        """
        if self._event.is_set():
            return False

        self._reason = reason
        self._event.set()
        logger.debug(f"Context cancelled (reason={reason})")

        for child in self._children:
            child.cancel(reason)
        return True

    async def wait(self) -> None:
        """Block until the context is cancelled."""
        await self._event.wait()

    def __repr__(self) -> str:
        state = f"cancelled, reason={self._reason}" if self.cancelled else "active"
        return f"RunContext({state}, children={len(self._children)})"
