"""
Ticker service entrypoint.
Runs the tick driver against the configured store so half-time and optional
full-time transitions fire without an operator watching the clock.
"""
from __future__ import annotations

import asyncio
import signal

from shared.config import SERVICE_VERSION, get_settings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import SERVICE_INFO, start_metrics_server
from matchday.state_machine import MatchStateMachine
from storage.factory import create_store
from ticker.driver import TickDriver

logger = get_logger(__name__)


async def main() -> None:
    settings = get_settings()
    setup_logging("ticker")
    start_metrics_server()

    store = create_store(settings)
    await store.connect()
    SERVICE_INFO.info(
        {
            "service": "ticker",
            "version": SERVICE_VERSION,
            "backend": store.backend_name,
            "environment": settings.environment.value,
        }
    )

    machine = MatchStateMachine(store, settings=settings)
    driver = TickDriver(machine, settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, driver.request_shutdown)

    logger.info(
        "ticker_service_started",
        backend=store.backend_name,
        interval_s=settings.tick_interval_s,
        auto_finish=settings.auto_finish_enabled,
    )

    try:
        await driver.run()
    finally:
        await store.close()
        logger.info("ticker_service_stopped")


def run() -> None:
    """Console-script entrypoint."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
