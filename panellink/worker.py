"""Stand-alone expiry sweeper worker.

Runs the CleanupScheduler outside the API process, or a single sweep with
``--once`` (for cron-style hosts)::

    python -m panellink.worker
    python -m panellink.worker --once
"""

import argparse
import asyncio
import logging
import signal
import sys

from panellink.config import get_settings
from panellink.dependencies import ServiceManager


async def main(once: bool = False) -> int:
    settings = get_settings()

    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    logger = logging.getLogger("panellink.worker")

    services = ServiceManager(settings)
    try:
        await services.initialize()
        if once:
            result = await services.scheduler.manual_cleanup()
            logger.info(f"Sweep finished: {result.model_dump()}")
            return 0

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        services.scheduler.start()
        logger.info("Expiry sweeper worker started")
        await stop_event.wait()
        logger.info("Expiry sweeper worker stopping")
        return 0
    except Exception as e:
        logger.error(f"Expiry sweeper worker failed: {e}")
        return 1
    finally:
        await services.cleanup()


def run() -> None:
    parser = argparse.ArgumentParser(description="Run the panel expiry sweeper")
    parser.add_argument("--once", action="store_true", help="run a single sweep and exit")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(once=args.once)))


if __name__ == "__main__":
    run()
