#!/usr/bin/env python3
"""Inspect what Ringg AI currently returns for a call.

Usage:
    python scripts/inspect_ringg_call.py <call_id>
    python scripts/inspect_ringg_call.py --history --agent <agent_id>
    python scripts/inspect_ringg_call.py --check

Reads RINGG_API_KEY (and optionally RINGG_API_BASE) from .env.
"""

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Add parent directory to path so we can import from processor
sys.path.insert(0, str(Path(__file__).parent.parent))

from processor.integrations.ringg import RinggClient, RinggError, RinggNotFoundError
from processor.recording_poller import check_recording_status


def print_snapshot(snapshot) -> None:
    print(f"  Call ID:      {snapshot.call_id}")
    print(f"  Status:       {snapshot.status}")
    print(f"  Participant:  {snapshot.participant_name}")
    print(f"  Duration:     {snapshot.duration}s")
    print(f"  Cost:         {snapshot.cost}")
    print(f"  Recording:    {snapshot.recording_url or '(not yet)'}")
    if snapshot.has_transcript:
        preview = snapshot.transcript[:300]
        print(f"  Transcript:   {len(snapshot.transcript)} chars")
        print("    " + preview.replace("\n", "\n    "))
    else:
        print("  Transcript:   (not yet)")
    print(f"  Ready:        {snapshot.is_ready}")


async def main(call_id: str = None, history: bool = False, agent_id: str = None, check: bool = False):
    async with RinggClient() as client:
        if not client.api_key:
            print("RINGG_API_KEY is not set")
            return 1

        if check:
            ok = await client.test_connection()
            print("Connection OK" if ok else "Connection FAILED")
            return 0 if ok else 1

        if history:
            page = await client.fetch_call_history(agent_id=agent_id, page_size=10)
            print(f"{page.total_count} calls (page {page.page})")
            for snapshot in page.calls:
                print("-" * 60)
                print_snapshot(snapshot)
            return 0

        print(f"Fetching call {call_id}")
        try:
            snapshot = await check_recording_status(client, call_id)
        except RinggNotFoundError:
            print("  Call not found")
            return 1
        except RinggError as e:
            print(f"  Request failed: {e}")
            return 1

        print_snapshot(snapshot)
        return 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser()
    parser.add_argument("call_id", nargs="?", help="Ringg call ID to inspect")
    parser.add_argument("--history", action="store_true", help="List recent calls instead")
    parser.add_argument("--agent", help="Filter history by agent ID")
    parser.add_argument("--check", action="store_true", help="Only test the API key")
    args = parser.parse_args()

    if not (args.call_id or args.history or args.check):
        parser.error("call_id is required unless --history or --check is given")

    sys.exit(asyncio.run(main(args.call_id, args.history, args.agent, args.check)))
