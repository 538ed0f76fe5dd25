from __future__ import annotations

"""Cron job: revoke managed API keys that no registry record references.

Safe to run daily; keys younger than ``ORPHAN_GRACE_HOURS`` are left alone
so in-flight rotations are never disturbed::

    python -m keyrotation.cron.orphan_reconciler
"""

import asyncio
from typing import Optional

from keyrotation.models.outcomes import ReconcileReport
from keyrotation.settings import Settings
from keyrotation.utils.dependencies import rotation_services
from keyrotation.utils.logger import configure_logging


async def _run(settings: Optional[Settings] = None) -> ReconcileReport:
    configure_logging()
    async with rotation_services(settings) as services:
        return await services.reconciler.reconcile(services.settings.orphan_grace)


if __name__ == "__main__":
    asyncio.run(_run())
