"""Test the command set, tracker context and bot reply formatting."""
import asyncio
import sys
import io
import shutil
import tempfile
from datetime import datetime
from pathlib import Path

import pytz

# Fix Windows console encoding (only if not already wrapped)
if sys.platform == 'win32':
    if not isinstance(sys.stdout, io.TextIOWrapper) or (hasattr(sys.stdout, 'encoding') and sys.stdout.encoding != 'utf-8'):
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    if not isinstance(sys.stderr, io.TextIOWrapper) or (hasattr(sys.stderr, 'encoding') and sys.stderr.encoding != 'utf-8'):
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

# Add src and test_utilities to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from boss_respawn.boss_log import JsonBossLog
from boss_respawn.bot import format_active_list, format_all_list, format_report_reply, format_status
from boss_respawn.commands import CommandHandler
from boss_respawn.context import build_context, build_context_from_settings
from boss_respawn.errors import InvalidDuration, InvalidTimeOfDay, JobBusy, NotFound
from boss_respawn.settings import DEFAULT_SETTINGS
from mock_discord import MockBossLog, MockSink


def utc(*args):
    return datetime(*args, tzinfo=pytz.utc)


AT_1500 = utc(2026, 3, 5, 7, 0)  # 05/03/2026 15:00 in the zone
LONG_AGO = utc(2020, 1, 10, 4, 0)  # 10/01/2020 12:00 in the zone


def test_command_handler():
    """Reports and operator commands."""
    print("Testing Command Handler...")
    print("=" * 60)

    async def run():
        ctx = build_context(boss_log=MockBossLog(), sink=MockSink())
        handler = CommandHandler(ctx)

        outcome = await handler.handle_message("14:30 - Dragon King - 24 hrs", "555", now=AT_1500)
        assert outcome.created is True
        assert outcome.record.source_message_id == "555"
        outcome = await handler.handle_message("14:45 - dragon king - 24 hrs", "556", now=AT_1500)
        assert outcome.created is False
        assert outcome.record.name == "dragon king"
        print("[OK] Death reports create then update")

        assert await handler.handle_message("anyone seen the dragon?", "557", now=AT_1500) is None
        try:
            await handler.handle_message("14:30 - Frost Giant - 0 hrs", "558", now=AT_1500)
            assert False, "Should raise InvalidDuration"
        except InvalidDuration:
            pass
        try:
            await handler.handle_message("24:30 - Frost Giant - 8 hrs", "559", now=AT_1500)
            assert False, "Should raise InvalidTimeOfDay"
        except InvalidTimeOfDay:
            pass
        print("[OK] Non-reports ignored, bad reports rejected")

        await handler.handle_message("08:00 - Orc Lord - 4 hrs", "560", now=LONG_AGO)
        active = handler.list_active(AT_1500)
        assert [item.record.name for item in active] == ["dragon king"]
        assert (active[0].countdown.hours, active[0].countdown.minutes) == (23, 45)
        assert active[0].status == 'Dead'
        every = handler.list_all(AT_1500)
        assert [item.record.name for item in every] == ["dragon king", "Orc Lord"]
        assert every[1].status == 'Alive' and every[1].countdown.is_expired
        print("[OK] Listings")

        status = handler.get_status("ORC LORD", AT_1500)
        assert status.record.name == "Orc Lord"
        try:
            handler.get_status("Nobody", AT_1500)
            assert False, "Should raise NotFound"
        except NotFound:
            pass
        print("[OK] Status lookup")

        removed = await handler.remove("Dragon King")
        assert removed.name == "dragon king"
        try:
            await handler.remove("Dragon King")
            assert False, "Should raise NotFound"
        except NotFound:
            pass
        print("[OK] Remove")

        # Forced jobs run against the real clock; Orc Lord respawned long ago
        report = await handler.force_scan()
        assert report.sent == ["Orc Lord"]
        assert ctx.notifier.sink.sent == ["Orc Lord"]
        assert await handler.force_cleanup() == 1
        assert len(ctx.registry) == 0
        assert await handler.force_reload() == []
        print("[OK] Forced scan, cleanup and reload")

    asyncio.run(run())

    print("\n" + "=" * 60)
    print("All command handler tests passed!")


def test_forced_jobs_are_single_flight():
    """Forced commands share the background jobs' guard."""
    print("Testing Forced Job Guard...")
    print("=" * 60)

    async def run():
        ctx = build_context(boss_log=MockBossLog(), sink=MockSink())
        handler = CommandHandler(ctx)
        await ctx.registry.upsert("Orc Lord", "08:00", "4 hrs", now=LONG_AGO)

        release = asyncio.Event()

        async def holder():
            await release.wait()

        held = asyncio.ensure_future(ctx.guard.run('cleanup', holder))
        await asyncio.sleep(0)
        for command in (handler.force_scan, handler.force_cleanup, handler.force_reload):
            try:
                await command()
                assert False, f"{command.__name__} should raise JobBusy"
            except JobBusy as e:
                assert e.running == 'cleanup'
        assert ctx.notifier.sink.sent == []
        release.set()
        await held

        report = await handler.force_scan()
        assert report.sent == ["Orc Lord"]
        print("[OK] JobBusy while another job runs")

        # Tick bodies never raise on storage errors
        ctx.registry.boss_log.fail = True
        await ctx.cleanup_tick()
        await ctx.startup_reload()
        assert "Orc Lord" in ctx.registry
        print("[OK] Background ticks survive storage errors")

    asyncio.run(run())


def test_context_from_settings():
    """Settings pick the JSON log location and policies."""
    temp_dir = Path(tempfile.mkdtemp())
    try:
        settings = dict(DEFAULT_SETTINGS, data_directory=str(temp_dir), notify_max_attempts=5,
                        replay_missed_notifications=True, utc_offset_minutes=540)
        ctx = build_context_from_settings(settings)
        assert isinstance(ctx.registry.boss_log, JsonBossLog)
        assert ctx.registry.boss_log.db_path == temp_dir / "bosses.json"
        assert ctx.notifier.max_attempts == 5
        assert ctx.loader.replay_missed is True
        assert ctx.converter.utc_offset_minutes == 540
        assert ctx.loader.boss_log is ctx.registry.boss_log
        print("[OK] Context built from settings")
    finally:
        shutil.rmtree(temp_dir)


def test_reply_formatting():
    """Bot replies."""

    async def run():
        ctx = build_context()
        handler = CommandHandler(ctx)
        outcome = await handler.handle_message("14:30 - Dragon King - 24 hrs", now=AT_1500)

        reply = format_report_reply(outcome, ctx.converter)
        assert "Dragon King" in reply
        assert "06/03/2026, 14:30" in reply
        assert "New boss added" in reply

        active = format_active_list(handler.list_active(AT_1500), ctx.converter)
        assert "1. Dragon King" in active and "23h 30m left" in active
        assert format_active_list([], ctx.converter) == "No active boss respawns at the moment."
        assert "Dragon King - Active" in format_all_list(handler.list_all(AT_1500))
        assert format_all_list([]) == "No bosses in the database."

        later = utc(2026, 3, 7, 0, 0)
        status = format_status(handler.get_status("dragon king", later), ctx.converter)
        assert "status: Alive" in status and "RESPAWNED!" in status

        for index in range(12):
            await handler.handle_message(f"14:{index:02d} - Boss {index} - 24 hrs", now=AT_1500)
        lines = format_active_list(handler.list_active(AT_1500), ctx.converter).splitlines()
        assert len(lines) == 11, "Header plus at most 10 entries"
        print("[OK] Reply formatting")

    asyncio.run(run())


if __name__ == "__main__":
    test_command_handler()
    test_forced_jobs_are_single_flight()
    test_context_from_settings()
    test_reply_formatting()
