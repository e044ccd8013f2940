#!/usr/bin/env python3
"""Live watcher for a feedback collection.

This script uses feedsync to:
1) sign in with FEEDSYNC_* (or SUPABASE_*) environment settings,
2) load the collection newest first,
3) optionally submit one record and report how it was reconciled,
4) stay subscribed to the push channel and print every view change.

Use it to check that the enrichment workflow finishes inside the poll
budget and that push updates reach the client.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from feedsync import FeedSyncClient, FeedSyncConfig, FeedSyncError, Record, StoreChange  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Watch a feedback collection and its enrichment.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--submit",
        nargs=2,
        metavar=("TITLE", "DESCRIPTION"),
        help="Submit one record before watching.",
    )
    parser.add_argument(
        "--channel",
        choices=["realtime", "mqtt", "none"],
        help="Override the configured push channel.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="How many records to print per change.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _format_record(record: Record) -> str:
    created = record.created_at.strftime("%Y-%m-%d %H:%M:%S")
    return (
        f"{record.id:>8}  {created}  {record.enrichment_state.value:<8}  "
        f"status={record.status} category={record.category} priority={record.priority}  {record.title}"
    )


def _print_records(records: tuple[Record, ...], limit: int) -> None:
    for record in records[:limit]:
        print(f"[watch]   {_format_record(record)}")
    if len(records) > limit:
        print(f"[watch]   ... {len(records) - limit} more")


async def _watch(config: FeedSyncConfig, args: argparse.Namespace) -> None:
    async with FeedSyncClient(config) as client:
        session = await client.login()
        print(f"[watch] Signed in as {session.email or session.user_id}")

        await client.refresh()
        print(f"[watch] Loaded {len(client.records)} records")
        _print_records(client.records, args.limit)

        def _on_change(change: StoreChange) -> None:
            print(f"[watch] View changed reason={change.reason} revision={change.revision}")
            _print_records(change.records, args.limit)

        client.on_change(_on_change)

        if args.submit:
            title, description = args.submit
            started = time.monotonic()
            record = await client.submit(title, description)
            elapsed = time.monotonic() - started
            if record is None:
                print(f"[watch] Submission failed after {elapsed:.2f}s")
            else:
                outcome = "enriched" if record.is_enriched else "still pending"
                print(f"[watch] Submitted id={record.id} ({outcome}) in {elapsed:.2f}s")

        if config.channel == "none":
            return

        async with client.listen() as listener:
            if await listener.wait_connected(config.request_timeout):
                print(f"[watch] Subscribed via {config.channel}")
            else:
                print("[watch] Still connecting; updates will follow once subscribed")
            if args.duration > 0:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()
            print(f"[watch] Resyncs triggered: {listener.resync_count}")


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    overrides = {"channel": args.channel} if args.channel else {}
    config = FeedSyncConfig.from_env(**overrides)
    try:
        asyncio.run(_watch(config, args))
    except KeyboardInterrupt:
        print("[watch] Interrupted")
    except FeedSyncError as exc:
        print(f"[watch] Failed: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
