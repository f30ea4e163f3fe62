import asyncio
import signal
from typing import Iterable, Optional

from .logging import jlog

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """
    Owns the cancellation token shared with the consumer.

    `await_signal()` blocks until SIGINT/SIGTERM and then cancels the token.
    It never waits for the consumer; main does that by awaiting `run`.
    """

    def __init__(self, signals: Iterable[signal.Signals] = DEFAULT_SIGNALS):
        self._signals = tuple(signals)
        self._received = asyncio.Event()
        self.token = asyncio.Event()
        self.signal: Optional[signal.Signals] = None

    @property
    def cancelled(self) -> bool:
        return self.token.is_set()

    def cancel(self) -> None:
        # Idempotent: a second call is a no-op
        self.token.set()

    def _on_signal(self, sig: signal.Signals) -> None:
        if self._received.is_set():
            return
        self.signal = sig
        self._received.set()

    def _install(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in self._signals:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                signal.signal(sig, lambda s, _f: loop.call_soon_threadsafe(self._on_signal, signal.Signals(s)))

    def _uninstall(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in self._signals:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)

    async def await_signal(self) -> None:
        loop = asyncio.get_running_loop()
        self._install(loop)
        try:
            await self._received.wait()
        finally:
            self._uninstall(loop)
        jlog(
            event="shutdown_signal",
            signal=self.signal.name if self.signal else None,
            detail="Shutdown signal received. Initiating graceful shutdown...",
        )
        self.cancel()
