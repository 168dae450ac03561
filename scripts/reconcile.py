#!/usr/bin/env python3
"""CLI script to compare portal deals with CRM opportunities and sync differences.

Usage:
    python scripts/reconcile.py compare
    python scripts/reconcile.py compare --pipeline-id PIPELINE --only-differences
    python scripts/reconcile.py compare --json
    python scripts/reconcile.py sync
    python scripts/reconcile.py sync --record-id deal-1 --record-id deal-2

Reads PORTAL_* / CRM_* settings from environment or .env file. `sync` pushes
CRM values onto portal deals one record at a time, then re-fetches both
datasets to report whether they converged.

Exit code 1 when a dataset cannot be fetched or any record fails to sync.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Ensure project root is on sys.path so we can import src.reconciler
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


def _print_comparison(results, summary) -> None:
    print(
        f"Compared {summary.total} deals: {summary.id_matches} id matches, "
        f"{summary.contact_matches} contact matches, {summary.no_matches} unmatched"
    )
    print(f"  With differences: {summary.with_differences}")
    print(f"  In sync:          {summary.in_sync}")

    for result in results:
        if not result.has_differences:
            continue
        record = result.portal_record
        remote_id = result.remote_record.id if result.remote_record else "-"
        print(f"\n{record.display_label} [{result.match_type.value}] remote={remote_id}")
        for diff in result.differences:
            print(f'  {diff.field}: "{diff.portal_value}" -> "{diff.remote_value}" ({diff.kind.value})')


async def run_compare(pipeline_id: str | None, only_differences: bool, as_json: bool) -> int:
    from src.reconciler.sync import FetchError, ReconciliationEngine

    engine = ReconciliationEngine.from_settings()
    try:
        results = await engine.fetch_and_compare(pipeline_id)
    except FetchError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if only_differences:
        results = [r for r in results if r.has_differences]

    summary = engine.summarize(results)
    if as_json:
        print(
            json.dumps(
                {
                    "summary": summary.model_dump(mode="json"),
                    "comparisons": [r.model_dump(mode="json") for r in results],
                },
                indent=2,
            )
        )
    else:
        _print_comparison(results, summary)
    return 0


async def run_sync(pipeline_id: str | None, record_ids: list[str]) -> int:
    from src.reconciler.sync import FetchError, ReconciliationEngine

    engine = ReconciliationEngine.from_settings()
    try:
        results = await engine.fetch_and_compare(pipeline_id)
    except FetchError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if record_ids:
        wanted = set(record_ids)
        results = [r for r in results if r.portal_record.id in wanted]

    engine.subscribe_progress(
        lambda p: print(f"[{p.current}/{p.total}] {p.current_record_label}")
    )
    bulk = await engine.sync_all(results)
    summary = bulk.summary

    print(f"\nSync completed: {summary.succeeded} successful, {summary.failed} failed out of {summary.total}")
    for failure in summary.failures:
        print(f"  {failure.record_id}: {failure.error}")

    try:
        refreshed = await engine.fetch_and_compare(pipeline_id)
    except FetchError as exc:
        print(f"Error re-fetching after sync: {exc}", file=sys.stderr)
        return 1

    if record_ids:
        refreshed = [r for r in refreshed if r.portal_record.id in set(record_ids)]
    remaining = [r for r in refreshed if r.remote_record is not None and r.has_differences]
    print(f"Deals still differing after sync: {len(remaining)}")

    return 1 if summary.failed else 0


def main() -> None:
    from src.reconciler.core.logging import configure_structlog

    parser = argparse.ArgumentParser(description="Reconcile portal deals with CRM opportunities")
    parser.add_argument("--pipeline-id", default=None, help="CRM pipeline id (default: CRM_PIPELINE_ID)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compare_parser = subparsers.add_parser("compare", help="Show differences without changing anything")
    compare_parser.add_argument("--only-differences", action="store_true", help="Hide deals already in sync")
    compare_parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")

    sync_parser = subparsers.add_parser("sync", help="Overwrite portal deals with CRM values")
    sync_parser.add_argument(
        "--record-id",
        action="append",
        default=[],
        help="Portal record id to sync (repeatable; default: all deals with differences)",
    )

    args = parser.parse_args()
    configure_structlog()

    if args.command == "compare":
        code = asyncio.run(run_compare(args.pipeline_id, args.only_differences, args.json))
    else:
        code = asyncio.run(run_sync(args.pipeline_id, args.record_id))
    sys.exit(code)


if __name__ == "__main__":
    main()
