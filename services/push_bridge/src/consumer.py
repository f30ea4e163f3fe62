import asyncio
import threading
from typing import Any, Set

import httpx
from opentelemetry import trace

from .config import Settings
from .delivery import deliver
from .exceptions import DeliveryError
from .logging import jlog
from .transform import transform_message

tracer = trace.get_tracer(__name__)


class MessageConsumer:
    """
    Drives receive -> transform -> deliver -> ack/nack.

    Pub/Sub callbacks only hand messages to an asyncio.Queue; a dispatcher
    task drains it and starts one processing task per message, bounded by
    `delivery_concurrency`. Each message resolves to exactly one ack or nack.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self._settings = settings
        self._client = client
        self._in_flight: Set[asyncio.Task] = set()
        self.running = False

    async def run(self, subscription, cancel: asyncio.Event) -> None:
        """
        Consume until `cancel` is set (clean return) or the subscription
        stream fails (ReceiveError propagates).
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        gate = threading.Lock()
        stopping = False

        def on_message(message: Any) -> None:
            # Pub/Sub worker thread
            with gate:
                if not stopping:
                    loop.call_soon_threadsafe(queue.put_nowait, message)
                    return
            # Arrived mid-shutdown; the stream is still open so the nack is sent
            message.nack()
            jlog(event="nacked_on_shutdown", message_id=message.message_id)

        async def stop() -> None:
            nonlocal stopping
            with gate:
                stopping = True
            # let puts already scheduled from worker threads land in the queue
            await asyncio.sleep(0)
            await self._drain(dispatcher, queue)

        semaphore = asyncio.Semaphore(self._settings.delivery_concurrency)
        dispatcher = asyncio.create_task(self._dispatch(queue, semaphore))
        self.running = True
        try:
            # Settle everything before the stream closes, or acks are dropped
            await subscription.receive(on_message, cancel, on_stop=stop)
        finally:
            await self._drain(dispatcher, queue)
            self.running = False

    async def _dispatch(self, queue: asyncio.Queue, semaphore: asyncio.Semaphore) -> None:
        while True:
            await semaphore.acquire()
            try:
                message = await queue.get()
            except asyncio.CancelledError:
                semaphore.release()
                raise
            task = asyncio.create_task(self.process(message))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            task.add_done_callback(lambda _: semaphore.release())

    async def _drain(self, dispatcher: asyncio.Task, queue: asyncio.Queue) -> None:
        dispatcher.cancel()
        try:
            await dispatcher
        except asyncio.CancelledError:
            pass

        # Never started: hand back to Pub/Sub for redelivery
        while not queue.empty():
            message = queue.get_nowait()
            message.nack()
            jlog(event="nacked_on_shutdown", message_id=message.message_id)

        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def process(self, message: Any) -> None:
        """Deliver one message and settle it with a single ack or nack."""
        with tracer.start_as_current_span(
            "deliver_message",
            attributes={"messaging.message.id": message.message_id},
        ):
            try:
                envelope = transform_message(message, self._settings)
                await deliver(self._client, self._settings.url, envelope)
            except DeliveryError as e:
                message.nack()
                jlog(
                    event="delivery_failed",
                    severity="ERROR",
                    message_id=message.message_id,
                    status_code=e.status_code,
                    error=str(e),
                )
                return
            except Exception as e:
                # Unknown error - prefer redelivery over losing the message
                message.nack()
                jlog(
                    event="message_failed_unexpected",
                    severity="ERROR",
                    message_id=message.message_id,
                    error=f"{type(e).__name__}: {e}",
                )
                return

            message.ack()
