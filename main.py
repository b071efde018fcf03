"""
Booking engine process entry point.

Runs the notification sweep for the lifetime of the process, or the
offline walkthrough for development.

Usage:
    Sweep loop: python main.py sweep
    Demo:       python main.py demo [--scenario booking|retry|conflict|messages]
"""

import asyncio
import logging
import signal
import sys

from booking_engine.config import settings
from booking_engine.container import build_engine

logger = logging.getLogger(__name__)


async def _run_sweep() -> None:
    """Sweep due notifications until SIGINT or SIGTERM."""
    engine = build_engine(settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    logger.info(
        "%s sweeping every %.0fs (max retries %d)",
        settings.service_name,
        settings.notifications.sweep_interval_seconds,
        settings.notifications.max_retries,
    )
    await engine.scheduler.run(stop_event)


def _run_sweep_mode() -> None:
    asyncio.run(_run_sweep())


def _run_demo_mode() -> None:
    """Start the offline console demo (no external services required)."""
    from console_demo import main as demo_main

    sys.argv = [sys.argv[0], *sys.argv[2:]]
    demo_main()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "demo":
        _run_demo_mode()
    else:
        _run_sweep_mode()
