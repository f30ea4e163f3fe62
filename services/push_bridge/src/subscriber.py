import asyncio
import functools
from concurrent import futures
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Optional

from anyio import to_thread
from google.api_core import exceptions as gax_exceptions
from google.cloud import pubsub_v1

from .config import Settings
from .exceptions import ReceiveError, SetupError
from .logging import jlog

# Upper bound on waiting for the pull stream to close after a hard cancel
CLOSE_TIMEOUT_S = 30.0


class Subscription:
    """Thin wrapper over a SubscriberClient bound to one subscription."""

    def __init__(self, client: pubsub_v1.SubscriberClient, settings: Settings):
        self._client = client
        self._settings = settings
        self.path = client.subscription_path(settings.project, settings.subscription)

    def exists(self) -> bool:
        try:
            self._client.get_subscription(request={"subscription": self.path})
        except gax_exceptions.NotFound:
            return False
        except gax_exceptions.GoogleAPICallError as e:
            raise SetupError(f"failed to verify subscription existence: {e}") from e
        return True

    async def receive(
        self,
        callback: Callable[[Any], None],
        cancel: asyncio.Event,
        on_stop: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        """
        Stream messages into `callback` until `cancel` is set.

        The callback runs on Pub/Sub worker threads. On cancellation
        `on_stop` is awaited while the stream is still open, so acks and
        nacks it issues reach Pub/Sub; only then is the stream closed.
        Returns normally on cancellation; any other end of the stream
        raises ReceiveError.
        """
        loop = asyncio.get_running_loop()
        stream_done = asyncio.Event()

        future = self._client.subscribe(
            self.path,
            callback=callback,
            flow_control=pubsub_v1.types.FlowControl(
                max_messages=self._settings.max_outstanding_messages
            ),
            await_callbacks_on_shutdown=True,
        )
        future.add_done_callback(lambda _: loop.call_soon_threadsafe(stream_done.set))

        cancel_wait = asyncio.create_task(cancel.wait())
        done_wait = asyncio.create_task(stream_done.wait())
        try:
            await asyncio.wait({cancel_wait, done_wait}, return_when=asyncio.FIRST_COMPLETED)
            cancelled = cancel.is_set()
            if cancelled and on_stop is not None and not future.done():
                await on_stop()
        except asyncio.CancelledError:
            future.cancel()
            await self._wait_closed(future)
            raise
        finally:
            cancel_wait.cancel()
            done_wait.cancel()

        if cancelled:
            future.cancel()
        try:
            # Blocks until the stream is closed and in-flight callbacks returned
            await to_thread.run_sync(future.result)
        except Exception as e:
            if cancelled and isinstance(e, (gax_exceptions.Cancelled, futures.CancelledError)):
                return
            raise ReceiveError(f"error receiving messages: {e}") from e
        if not cancelled:
            raise ReceiveError("error receiving messages: stream closed unexpectedly")

    async def _wait_closed(self, future) -> None:
        try:
            await to_thread.run_sync(functools.partial(future.result, timeout=CLOSE_TIMEOUT_S))
        except Exception as e:
            jlog(event="stream_close_incomplete", severity="WARNING", error=f"{type(e).__name__}: {e}")


@contextmanager
def open_subscription(settings: Settings) -> Iterator[Subscription]:
    """Build the Pub/Sub client; it is closed on every exit path."""
    try:
        client = pubsub_v1.SubscriberClient()
    except Exception as e:
        raise SetupError(f"failed to create Pub/Sub client: {e}") from e

    try:
        yield Subscription(client, settings)
    finally:
        try:
            client.close()
        except Exception as e:
            jlog(event="client_close_failed", severity="WARNING", error=str(e))
