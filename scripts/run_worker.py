"""
Script to run the render worker until SIGINT/SIGTERM
"""

import asyncio
import signal
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import build_engine, build_session_factory
from core.logging import setup_logging
from worker.blob_store import create_blob_store
from worker.scheduler import JobScheduler

logger = logging.getLogger(__name__)


async def run_worker():
    """Poll for render jobs until the process is asked to stop"""

    engine = build_engine(settings.DATABASE_URL)
    AsyncSessionLocal = build_session_factory(engine)

    blob_store = create_blob_store(settings)
    scheduler = JobScheduler(AsyncSessionLocal, blob_store)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises
            pass

    try:
        await scheduler.run_forever(stop_event)
    finally:
        await blob_store.aclose()
        await engine.dispose()
        logger.info("Worker shut down cleanly")


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.critical(f"Fatal error in worker: {str(e)}")
        sys.exit(1)
