# Lightweight shim for Vercel Cron

from keyrotation.cron.orphan_reconciler import _run  # noqa: WPS450


def handler(_req, _res):  # type: ignore[unused-argument]
    import asyncio
    report = asyncio.run(_run())
    return {"status": "ok", **report.to_dict()}
