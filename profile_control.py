"""profile_control.py — inspect the shared profiler result store.

Usage::

    python profile_control.py list --max 20
    python profile_control.py list --since 2026-10-19T08:00:00+00:00 --asc
    python profile_control.py show 3f0c1d4e-...
    python profile_control.py unviewed ::1
    python profile_control.py sweep

``--redis`` and ``--cache-seconds`` override ``PROFILER_REDIS_URL`` and
``storage.cache_seconds`` from ``profiler.yaml``.
"""

from __future__ import annotations

import argparse
import json
import uuid
from datetime import datetime

from profile_store.models import ListResultsOrder
from profile_store.redis_storage import RedisProfileStorage
from profile_utils.config import StorageConfig
from profile_utils.logger import ConsoleLogger


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Shared profiler result store")
    parser.add_argument("--redis", type=str, default="", help="Redis URL (default: PROFILER_REDIS_URL)")
    parser.add_argument("--cache-seconds", type=float, default=None, help="How long results are kept")
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List the latest results")
    list_cmd.add_argument("--max", type=int, default=20, help="Maximum number of results (default: 20)")
    list_cmd.add_argument("--since", type=datetime.fromisoformat, default=None, help="Only results started after this ISO time")
    list_cmd.add_argument("--until", type=datetime.fromisoformat, default=None, help="Only results started before this ISO time")
    list_cmd.add_argument("--asc", action="store_true", help="Oldest first")

    show_cmd = sub.add_parser("show", help="Print one result as JSON")
    show_cmd.add_argument("id", type=uuid.UUID)

    unviewed_cmd = sub.add_parser("unviewed", help="Ids a user has not viewed")
    unviewed_cmd.add_argument("user")

    sub.add_parser("sweep", help="Remove expired results now")
    return parser


def main(argv: list[str] | None = None, storage: RedisProfileStorage | None = None) -> int:
    args = _build_parser().parse_args(argv)
    log = ConsoleLogger("Storage")

    if storage is None:
        config = StorageConfig()
        if args.redis:
            config.redis_url = args.redis
        if args.cache_seconds is not None:
            config.cache_seconds = args.cache_seconds
        storage = RedisProfileStorage.from_config(config)
    elif args.cache_seconds is not None:
        storage.cache_duration = args.cache_seconds

    if args.command == "list":
        order = ListResultsOrder.ASCENDING if args.asc else ListResultsOrder.DESCENDING
        records = storage.list_records(args.max, start=args.since, finish=args.until, order=order)
        for record in records:
            log.info(f"{record.id}  {record.started.isoformat()}  {record.duration_ms:.1f}ms  {record.name}")
        log.status(f"{len(records)} result(s)")
        return 0

    if args.command == "show":
        record = storage.load(args.id)
        if record is None:
            log.error(f"No result {args.id}")
            return 1
        log.info(json.dumps(record.to_dict(), indent=2))
        return 0

    if args.command == "unviewed":
        ids = storage.get_unviewed_ids(args.user)
        for profile_id in ids:
            log.info(str(profile_id))
        log.status(f"{len(ids)} unviewed result(s) for {args.user!r}")
        return 0

    removed = storage.sweep()
    if storage.last_error is not None:
        log.warn(f"Sweep failed: {storage.last_error}")
        return 1
    ConsoleLogger("Sweep").info(f"Removed {removed} expired result(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
