# Lightweight shim for Vercel Cron

from keyrotation.cron.rotation_sweeper import _run  # noqa: WPS450

# Vercel invokes the default exportable object – we expose it as a handler
# that simply reuses the existing coroutine and reports the sweep counts.

def handler(_req, _res):  # type: ignore[unused-argument]
    import asyncio
    report = asyncio.run(_run())
    counts = {key: value for key, value in report.to_dict().items() if key != "outcomes"}
    return {"status": "ok", **counts}
