#!/usr/bin/env python3
"""Run the counter job type on a live engine.

Starts the engine with the counter synchronizer registered, triggers one
manual run and prints progress until it finishes. With --schedule the
engine keeps running and re-syncs on the chosen interval until Ctrl+C.
"""

from __future__ import annotations

import argparse
import time

from syncengine import CounterSynchronizer, SyncEngine, configure_logging


def run_counter_sync(
    db_path: str,
    count: int,
    delay: float,
    schedule: str | None = None,
) -> dict:
    """
    Trigger one counter sync and wait for it.

    Args:
        db_path: SQLite file for sync history
        count: Number of items to count
        delay: Seconds spent on each item
        schedule: Interval key to keep re-syncing on (e.g. every_2_minutes)

    Returns:
        Final status of the job type
    """
    engine = SyncEngine(db_path=db_path)
    counter = CounterSynchronizer(
        engine.sync_service, engine.settings, count=count, delay=delay
    )
    sync_type = engine.register(counter)

    if schedule:
        engine.settings.update(
            sync_type, {"schedule_enabled": True, "schedule_interval": schedule}
        )

    engine.start()
    try:
        engine.run_now(sync_type)

        status = engine.get_status(sync_type)
        while status["is_pending"] or status["is_running"]:
            sync = status["sync"]
            if sync:
                print(f"  {sync['synced']}/{sync['total']} ({sync['percent_complete']}%)")
            time.sleep(max(delay, 0.5))
            status = engine.get_status(sync_type)

        print(f"Finished: {status['status_label']}")

        if schedule:
            print(f"Next run: {status['schedule']['next_run_formatted']} (Ctrl+C to stop)")
            while True:
                time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        engine.shutdown()

    return engine.get_status(sync_type)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--db", default="./data/sync.db", help="Sync history database")
    parser.add_argument("--count", type=int, default=20, help="Items to count")
    parser.add_argument("--delay", type=float, default=1.0, help="Seconds per item")
    parser.add_argument("--schedule", help="Keep running on this interval key")
    parser.add_argument("--log-level", default=None, help="Log level name")
    args = parser.parse_args()

    configure_logging(args.log_level)
    run_counter_sync(args.db, args.count, args.delay, args.schedule)


if __name__ == "__main__":
    main()
