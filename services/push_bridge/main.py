import asyncio
import sys
from typing import Optional, Sequence

import httpx
from anyio import to_thread

from .otel import init_tracing
from .src.config import Settings, load_settings
from .src.consumer import MessageConsumer
from .src.delivery import DELIVERY_TIMEOUT_S
from .src.exceptions import ConfigurationError, ReceiveError, SetupError
from .src.logging import configure_logging, jlog
from .src.shutdown import ShutdownCoordinator
from .src.subscriber import open_subscription

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


async def serve(settings: Settings, coordinator: Optional[ShutdownCoordinator] = None) -> None:
    """Connect, consume until a shutdown signal, then return once drained."""
    coordinator = coordinator or ShutdownCoordinator()
    watcher = asyncio.create_task(coordinator.await_signal())
    try:
        with open_subscription(settings) as subscription:
            if not await to_thread.run_sync(subscription.exists):
                raise SetupError(f"subscription {settings.subscription} does not exist")
            jlog(event="subscription_connected", subscription=subscription.path)

            async with httpx.AsyncClient(timeout=httpx.Timeout(DELIVERY_TIMEOUT_S)) as client:
                consumer = MessageConsumer(settings, client)
                await consumer.run(subscription, coordinator.token)
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        settings = load_settings(argv)
    except ConfigurationError as e:
        jlog(event="config_error", severity="CRITICAL", error=f"Argument parsing error: {e}")
        return EXIT_CONFIG

    configure_logging(settings.service_name, settings.log_level)
    init_tracing(settings.service_name, exporter=settings.trace_exporter)
    jlog(
        event="starting",
        project=settings.project,
        subscription=settings.subscription,
        url=settings.url,
    )

    try:
        asyncio.run(serve(settings))
    except SetupError as e:
        jlog(event="setup_error", severity="CRITICAL", error=f"Pub/Sub setup error: {e}")
        return EXIT_FATAL
    except ReceiveError as e:
        jlog(event="receive_error", severity="CRITICAL", error=f"Message consumption error: {e}")
        return EXIT_FATAL

    jlog(event="shutdown_complete", detail="Graceful shutdown complete. Exiting application.")
    return EXIT_OK


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
