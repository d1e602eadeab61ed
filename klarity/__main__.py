import asyncio
import logging
import signal

import uvicorn

from klarity.bot import bot, dp
from klarity.config import settings
from klarity.graph.graph import build_orchestrator, set_orchestrator
from klarity.graph.nodes import NodeConfigurationError

logger = logging.getLogger(__name__)

_shutdown_event = asyncio.Event()


def _signal_handler() -> None:
    logger.info("Received shutdown signal")
    _shutdown_event.set()


def setup_orchestrator() -> None:
    """Build the booking orchestrator; on a wiring error leave it unset so /health reports 503."""
    try:
        set_orchestrator(build_orchestrator(bot))
        logger.info("Booking orchestrator ready")
    except NodeConfigurationError as exc:
        logger.error("Booking orchestrator not configured: %s", exc)
        set_orchestrator(None)


async def start_bot() -> None:
    logger.info("Starting Kambo Klarity bot polling...")
    await dp.start_polling(bot, handle_signals=False)


async def start_web() -> None:
    config = uvicorn.Config(
        "klarity.main:app",
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    logger.info("Starting FastAPI on %s:%s", settings.app_host, settings.app_port)
    await server.serve()


async def shutdown() -> None:
    """Graceful shutdown: close DB engine, Redis connections, bot session."""
    logger.info("Shutting down gracefully...")

    # Stop bot polling
    try:
        await dp.stop_polling()
    except RuntimeError:
        logger.debug("Polling was not running")

    # Close bot session
    await bot.session.close()

    # Close calendar HTTP client
    from klarity.graph.graph import get_orchestrator

    orchestrator = get_orchestrator()
    if orchestrator is not None:
        await orchestrator.nodes.google_calendar.close()

    # Close DB engine
    from klarity.database import engine
    await engine.dispose()

    # Close Redis connections
    from klarity.tools.agent_logger import close_agent_log_redis
    await close_agent_log_redis()
    await dp.storage.close()

    logger.info("Shutdown complete.")


async def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    logger.info("Starting Kambo Klarity...")

    setup_orchestrator()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    tasks = [
        asyncio.create_task(start_bot()),
        asyncio.create_task(start_web()),
        asyncio.create_task(_shutdown_event.wait()),
    ]
    try:
        # uvicorn handles the signal itself, so its task finishing also means shutdown
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await shutdown()


if __name__ == "__main__":
    asyncio.run(main())
