#!/usr/bin/env python3
"""Operator tool for the credential registry.

Sub-commands
------------
• ``sweep [--days N]``     run one sweep now (optionally with another threshold)
• ``rotate ITEM_ID``       rotate a single item immediately, whatever its age
• ``reconcile``            revoke unreferenced managed keys past the grace period
• ``lookup --key-id ID``   find the record holding an issuer key id
• ``lookup --usage-plan ID`` list every record bound to a usage plan

Uses the same environment as the cron jobs (``TABLE_NAME``,
``REGISTRY_BACKEND``, ``ISSUER_BACKEND`` …). Key values are never printed.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from keyrotation.models.records import CredentialRecord  # noqa: E402
from keyrotation.utils.dependencies import RotationServices, rotation_services  # noqa: E402
from keyrotation.utils.logger import configure_logging  # noqa: E402


def _describe(record: CredentialRecord) -> Dict[str, Any]:
    return {
        "item_id": record.item_id,
        "external_key_id": record.external_key_id,
        "usage_plan_id": record.usage_plan_id,
        "last_rotated_at": record.last_rotated_at.isoformat(),
    }


async def _sweep(services: RotationServices, args: argparse.Namespace) -> Dict[str, Any]:
    threshold = services.settings.stale_threshold if args.days is None else timedelta(days=args.days)
    report = await services.sweeper.sweep(threshold)
    return report.to_dict()


async def _rotate(services: RotationServices, args: argparse.Namespace) -> Dict[str, Any]:
    record = await services.registry.get(args.item_id)
    if record is None:
        raise SystemExit(f"No registry record with item_id={args.item_id!r}")
    outcome = await services.rotator.rotate(record.item_id, record.external_key_id, record.usage_plan_id)
    return outcome.to_dict()


async def _reconcile(services: RotationServices, _args: argparse.Namespace) -> Dict[str, Any]:
    report = await services.reconciler.reconcile(services.settings.orphan_grace)
    return report.to_dict()


async def _lookup(services: RotationServices, args: argparse.Namespace) -> List[Dict[str, Any]]:
    if args.key_id:
        record = await services.registry.find_by_external_key_id(args.key_id)
        return [_describe(record)] if record else []
    records = await services.registry.list_by_usage_plan(args.usage_plan)
    return [_describe(r) for r in records]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    sub = parser.add_subparsers(dest="command", required=True)

    sweep = sub.add_parser("sweep", help="Run one sweep now")
    sweep.add_argument("--days", type=float, default=None, help="Stale threshold in days")
    sweep.set_defaults(func=_sweep)

    rotate = sub.add_parser("rotate", help="Rotate a single item")
    rotate.add_argument("item_id")
    rotate.set_defaults(func=_rotate)

    reconcile = sub.add_parser("reconcile", help="Revoke orphaned managed keys")
    reconcile.set_defaults(func=_reconcile)

    lookup = sub.add_parser("lookup", help="Secondary-index lookups")
    group = lookup.add_mutually_exclusive_group(required=True)
    group.add_argument("--key-id", help="Issuer key id")
    group.add_argument("--usage-plan", help="Usage plan id")
    lookup.set_defaults(func=_lookup)

    return parser


async def main(argv: List[str] | None = None) -> None:  # noqa: D401
    args = build_parser().parse_args(argv)
    configure_logging()
    async with rotation_services() as services:
        result = await args.func(services, args)
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
