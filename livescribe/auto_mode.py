"""Auto mode: record for a fixed duration, then print the transcript."""

import asyncio
import logging
from datetime import datetime

from .models.session import SessionState
from .services.session_controller import SessionController

logger = logging.getLogger(__name__)


async def run_auto_mode(controller: SessionController, duration_seconds: int = 10) -> bool:
    """Record unattended and report the result.

    Returns True if the session ran for the whole duration without failing.
    """
    logger.info(f"🤖 Starting auto mode: {duration_seconds}s recording")
    print(f"🎙️  Recording for {duration_seconds} seconds...")
    print(f"   Started at: {datetime.now().strftime('%H:%M:%S')}")

    try:
        if not await controller.start():
            print(f"❌ Could not start recording: {controller.last_error}")
            return False

        for elapsed in range(1, duration_seconds + 1):
            await asyncio.sleep(1)
            if controller.state is SessionState.FAILED:
                break
            remaining = duration_seconds - elapsed
            progress_bar = "█" * elapsed + "░" * remaining
            status = controller.status()
            print(f"   [{progress_bar}] {elapsed:2d}/{duration_seconds}s - "
                  f"{status.state.value}, sent {status.blocks_sent}", end="\r")
        print()
    finally:
        failed = controller.state is SessionState.FAILED
        error = controller.last_error
        await controller.stop()

    if failed:
        print(f"❌ Session failed: {error}")
        return False

    _report_transcript(controller)
    return True


def _report_transcript(controller: SessionController) -> None:
    aggregator = controller.aggregator
    status = controller.status()
    print("✅ Recording completed")
    print(f"   Final segments: {aggregator.final_count}")
    print(f"   Blocks sent: {status.blocks_sent} (dropped: {status.blocks_dropped})")
    print()

    text = aggregator.full_text()
    if text:
        print("📄 TRANSCRIPT:")
        print("-" * 40)
        print(text)
        print("-" * 40)
    else:
        print("⚠️  No speech was transcribed")
        print("   This might be due to:")
        print("   - No speech during recording")
        print("   - Microphone input level too low")
        print("   - Transcription service issues")

