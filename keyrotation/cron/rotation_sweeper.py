from __future__ import annotations

"""Cron job: rotate every registry credential older than the stale threshold.

Run on a fixed schedule (the legacy deployment fired every 30 days). The
threshold comes from ``STALE_THRESHOLD_DAYS`` and is independent of the
schedule. Hook it up with a command similar to::

    python -m keyrotation.cron.rotation_sweeper

It exits with status-code 0 when the sweep completes, even if individual
entries failed; a failed scan exits non-zero so the scheduler records it.
SIGTERM/SIGINT stop dispatching new entries and let in-flight rotations
finish.
"""

import asyncio
import signal
from typing import Optional

from keyrotation.models.outcomes import SweepReport
from keyrotation.settings import Settings
from keyrotation.utils.dependencies import rotation_services
from keyrotation.utils.logger import configure_logging


def _install_stop_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):  # pragma: no cover – non-Unix loops
            pass


async def _run(settings: Optional[Settings] = None, *, stop: Optional[asyncio.Event] = None) -> SweepReport:
    configure_logging()
    async with rotation_services(settings) as services:
        return await services.sweeper.sweep(services.settings.stale_threshold, cancel_event=stop)


async def _main() -> None:
    stop = asyncio.Event()
    _install_stop_handlers(stop)
    await _run(stop=stop)


if __name__ == "__main__":
    asyncio.run(_main())
