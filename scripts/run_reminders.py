#!/usr/bin/env python3
"""
Run the notification engine for one user.

Starts the reminder scheduler, prints every new in-app notification as it
lands, and keeps polling until interrupted.

Usage:
    RIDESHARE_MODE=demo python scripts/run_reminders.py demo-driver-0001
"""

import argparse
import asyncio

from engine import create_engine


def _print_latest(read_model, seen: set) -> None:
    for record in reversed(read_model.notifications):
        if record.id in seen:
            continue
        seen.add(record.id)
        print(f"[{record.timestamp}] {record.title}")
        for line in record.body.splitlines():
            print(f"    {line}")


async def run(user_id: str, minutes: float) -> None:
    engine = create_engine()
    seen: set = set()
    try:
        async with engine.read_model() as view:
            view.subscribe(lambda: _print_latest(view, seen))
            await view.set_identity(user_id)
            _print_latest(view, seen)
            print(f"Watching reminders for {user_id} ({view.unread_count} unread)")
            await asyncio.sleep(minutes * 60)
    finally:
        await engine.aclose()


def main():
    parser = argparse.ArgumentParser(description="Run ride reminders for one user")
    parser.add_argument("user_id", help="Identity to schedule reminders for")
    parser.add_argument(
        "--minutes",
        type=float,
        default=180,
        help="How long to keep running (default: 180)",
    )
    args = parser.parse_args()
    try:
        asyncio.run(run(args.user_id, args.minutes))
    except KeyboardInterrupt:
        print()
        print("Stopped.")


if __name__ == "__main__":
    main()
