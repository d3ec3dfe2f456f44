"""Signal handling.

Translates OS signals into run context operations:
- SIGINT / SIGTERM: cancel the root context so every process shuts down
  gracefully
- A second SIGINT within the double-tap window: force exit

Configuration:
- PROX_SIGINT_DOUBLE_TAP_WINDOW: double-tap window in seconds
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import Callable, Optional

from .config import get_config
from .context import RunContext

__all__ = ["SignalManager"]

logger = logging.getLogger(__name__)


class SignalManager:
    """Cancels a RunContext when the user interrupts prox.

    Example:
        ```python
        ctx = RunContext()
        signal_manager = SignalManager(ctx, on_force_exit=main_task.cancel)

        await signal_manager.start()
        try:
            await executor.run(ctx, processes)
        finally:
            await signal_manager.stop()
        ```

    Attributes:
        ctx: Root context cancelled on SIGINT/SIGTERM
        double_tap_window: Seconds in which a second SIGINT forces exit
    """

    def __init__(
        self,
        ctx: RunContext,
        double_tap_window: Optional[float] = None,
        on_force_exit: Optional[Callable[[], None]] = None,
    ) -> None:
        """Create a signal manager.

        Args:
            ctx: Root run context
            double_tap_window: Double-tap window (default from config)
            on_force_exit: Called when the user insists on exiting
        """
        self.ctx = ctx
        self.double_tap_window = (
            double_tap_window if double_tap_window is not None
            else get_config().sigint_double_tap_window
        )
        self._on_force_exit = on_force_exit

        self._last_sigint_time: float = 0.0
        self._force_exit: bool = False
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._original_sigint_handler = None

    @property
    def is_shutdown_requested(self) -> bool:
        return self.ctx.cancelled

    @property
    def is_force_exit(self) -> bool:
        """Whether a double SIGINT requested an immediate exit."""
        return self._force_exit

    async def start(self) -> None:
        """Install the signal handlers.

        Must be called from within the asyncio event loop.
        """
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._running = True

        if sys.platform != "win32":
            self._loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            self._loop.add_signal_handler(signal.SIGTERM, self._handle_sigterm)
            logger.debug(f"Signal handlers installed (double_tap_window={self.double_tap_window}s)")
        else:
            # Windows: no loop.add_signal_handler
            self._original_sigint_handler = signal.signal(
                signal.SIGINT,
                lambda sig, frame: self._loop.call_soon_threadsafe(self._handle_sigint),
            )
            logger.debug("SIGINT handler installed on Windows")

    async def stop(self) -> None:
        """Restore the default signal handling."""
        if not self._running:
            return

        self._running = False

        if sys.platform != "win32" and self._loop:
            self._loop.remove_signal_handler(signal.SIGINT)
            self._loop.remove_signal_handler(signal.SIGTERM)
        elif sys.platform == "win32" and self._original_sigint_handler is not None:
            signal.signal(signal.SIGINT, self._original_sigint_handler)

        logger.debug("Signal handlers removed")

    def _handle_sigint(self) -> None:
        """First SIGINT interrupts all processes, a quick second one forces exit."""
        current_time = time.time()
        time_since_last = current_time - self._last_sigint_time
        self._last_sigint_time = current_time

        if self.ctx.cancelled and time_since_last < self.double_tap_window:
            logger.warning("Double SIGINT detected, forcing shutdown")
            self._force_shutdown()
            return

        if self.ctx.cancel("received SIGINT"):
            logger.info(
                f"SIGINT received, interrupting all processes. "
                f"Press Ctrl+C again within {self.double_tap_window}s to exit immediately."
            )

    def _handle_sigterm(self) -> None:
        if self.ctx.cancel("received SIGTERM"):
            logger.info("SIGTERM received, interrupting all processes")

    def _force_shutdown(self) -> None:
        self._force_exit = True
        if self._on_force_exit:
            try:
                self._on_force_exit()
            except Exception as e:
                logger.warning(f"Error in force exit callback: {e}")
