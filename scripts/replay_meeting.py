"""Replay a recorded meeting (bot webhook payloads) through the live pipeline."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from meeting_copilot.config import get_settings
from meeting_copilot.meetings.models import MeetingStatus
from meeting_copilot.runtime import MeetingCopilot


async def replay(path: str, meeting_id: str, user_id: str, questions: list[str]) -> None:
    """Feed every payload in *path* to the pipeline, end the meeting, then ask questions.

    The file holds a JSON list of ``transcript.update`` payloads in arrival
    order. The meeting must already exist in the meetings table.
    """
    payloads = json.loads(Path(path).read_text(encoding="utf-8"))
    copilot = MeetingCopilot.build(get_settings())
    await copilot.start(warmup=True)

    try:
        meeting = await copilot.repository.get_meeting(meeting_id)
        if meeting is None:
            print(f"Meeting {meeting_id} not found.")
            return
        if meeting.status is MeetingStatus.SCHEDULED:
            await copilot.handle_bot_state(meeting_id, "joined_recording")

        accepted = 0
        for payload in payloads:
            _, buffered = await copilot.ingest(meeting_id, payload)
            accepted += int(buffered)
        print(f"Buffered {accepted}/{len(payloads)} fragments.")

        result = await copilot.handle_bot_state(meeting_id, "ended")
        print(f"Meeting status: {result.previous_status} -> {result.new_status}")
        await copilot.jobs.wait_until_idle()

        for question in questions:
            entry = await copilot.ask(meeting_id, user_id, question)
            print(f"\nQ: {question}\nA: {entry.answer}")
            for source in entry.sources:
                print(f"  - {source}")

        print(f"\nStats: {json.dumps(copilot.stats(), indent=2)}")
    finally:
        await copilot.shutdown()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Replay a recorded meeting")
    parser.add_argument("path", help="JSON file with a list of bot transcript payloads")
    parser.add_argument("--meeting-id", required=True)
    parser.add_argument("--user-id", default="replay")
    parser.add_argument("--question", action="append", default=[], dest="questions")
    args = parser.parse_args()

    asyncio.run(replay(args.path, args.meeting_id, args.user_id, args.questions))
