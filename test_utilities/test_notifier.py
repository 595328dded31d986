"""Test spawn detection, alerts and cleanup."""
import asyncio
import sys
import io
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

from boss_respawn.discord_notifier import ChannelNotifier, SpawnMessageFormatter, WebhookNotifier, _mask_webhook
from boss_respawn.errors import SinkUnavailable
from boss_respawn.respawn_registry import RespawnRegistry
from boss_respawn.spawn_notifier import SpawnNotifier, spawn_key
from boss_respawn.time_converter import TimeConverter
from mock_discord import FakeChannel, FakeClient, MockBossLog, MockSink


def utc(*args):
    return datetime(*args, tzinfo=pytz.utc)


AT_1500 = utc(2026, 3, 5, 7, 0)  # 05/03/2026 15:00 in the zone


async def make_registry(log=None):
    registry = RespawnRegistry(log)
    await registry.upsert("Alpha", "08:00", "4 hrs", now=AT_1500)   # respawned at 12:00
    await registry.upsert("Bravo", "14:00", "8 hrs", now=AT_1500)   # respawns at 22:00
    return registry


def test_spawn_notifier():
    """Scan, mark notified, cleanup."""
    print("Testing Spawn Notifier...")
    print("=" * 60)

    async def run():
        log = MockBossLog()
        registry = await make_registry(log)
        notifier = SpawnNotifier(registry)

        due = notifier.scan(AT_1500)
        assert [record.name for record in due] == ["Alpha"]
        print("[OK] Respawned boss found by scan")

        # Not notified yet: cleanup must keep it
        assert await notifier.cleanup(AT_1500) == 0
        assert "Alpha" in registry

        assert await notifier.mark_notified(due[0]) is True
        alpha = registry.get("alpha")
        assert alpha.has_notified is True
        assert log.entries[alpha.external_ref]['has_notified'] is True, "Flag should be persisted"
        assert notifier.scan(AT_1500) == []
        print("[OK] Notified boss no longer scanned")

        assert await notifier.cleanup(AT_1500) == 1
        assert "Alpha" not in registry
        assert alpha.external_ref not in log.entries
        assert await notifier.cleanup(AT_1500) == 0, "Second cleanup is a no-op"
        assert [record.name for record in registry.list_all()] == ["Bravo"]
        print("[OK] Cleanup removes notified bosses and is idempotent")

    asyncio.run(run())

    print("\n" + "=" * 60)
    print("All spawn notifier tests passed!")


def test_notify_exactly_once():
    """One alert per respawn instance."""
    print("Testing Exactly-Once Alerts...")
    print("=" * 60)

    async def run():
        registry = await make_registry(MockBossLog())
        sink = MockSink()
        notifier = SpawnNotifier(registry, sink)

        report = await notifier.notify_due(AT_1500)
        assert report.sent == ["Alpha"]
        report = await notifier.notify_due(AT_1500)
        assert report.sent == []
        assert sink.sent == ["Alpha"]
        print("[OK] Repeated scans send one alert")

        # A new death for the same boss is a new respawn instance
        later = utc(2026, 3, 5, 12, 0)  # 20:00 in the zone
        await registry.upsert("Alpha", "15:00", "4 hrs", now=later)
        await notifier.notify_due(later)
        assert sink.sent == ["Alpha", "Alpha"]
        assert spawn_key(registry.get("alpha"))[1] == utc(2026, 3, 5, 11, 0)
        print("[OK] New death re-arms the alert")

        # Marking a record that was replaced after scanning does nothing
        scanned = notifier.scan(utc(2026, 3, 5, 14, 0))
        assert [record.name for record in scanned] == ["Bravo"]
        await registry.upsert("Bravo", "21:00", "8 hrs", now=utc(2026, 3, 5, 14, 0))
        assert await notifier.mark_notified(scanned[0]) is False
        assert registry.get("bravo").has_notified is False
        print("[OK] Stale scan result not marked")

    asyncio.run(run())


def test_sink_failure():
    """Failed sends are retried on later scans, then abandoned."""
    print("Testing Sink Failures...")
    print("=" * 60)

    async def run():
        registry = await make_registry(MockBossLog())
        sink = MockSink(fail=True)
        notifier = SpawnNotifier(registry, sink, max_attempts=3)

        first = await notifier.notify_due(AT_1500)
        second = await notifier.notify_due(AT_1500)
        third = await notifier.notify_due(AT_1500)
        assert first.failed == ["Alpha"] and second.failed == ["Alpha"]
        assert third.abandoned == ["Alpha"]
        assert notifier.scan(AT_1500) == [], "Abandoned respawn is not offered again"
        assert (await notifier.notify_due(AT_1500)).sent == []
        assert sink.attempts == 3
        assert registry.get("alpha").has_notified is False
        assert await notifier.cleanup(AT_1500) == 0, "Un-notified boss is never cleaned up"
        print("[OK] Failure budget enforced")

        notifier.reset_failures()
        sink.fail = False
        assert (await notifier.notify_due(AT_1500)).sent == ["Alpha"]
        assert notifier.pending_failures() == {}
        print("[OK] Reset re-offers abandoned respawn")

        # Errors other than SinkUnavailable count against the same budget
        registry = await make_registry(MockBossLog())
        sink = MockSink()
        sink.error = AttributeError("'NoneType' object has no attribute 'format'")
        notifier = SpawnNotifier(registry, sink, max_attempts=2)
        assert (await notifier.notify_due(AT_1500)).failed == ["Alpha"]
        assert (await notifier.notify_due(AT_1500)).abandoned == ["Alpha"]
        assert notifier.scan(AT_1500) == []
        await notifier.notify_due(AT_1500)
        assert sink.attempts == 2, "Broken sink is not retried forever"
        print("[OK] Unexpected sink errors are bounded")

    asyncio.run(run())


def test_log_failure_during_notify_and_cleanup():
    """Storage errors never lose or duplicate alerts."""
    print("Testing Log Failures...")
    print("=" * 60)

    async def run():
        log = MockBossLog()
        registry = await make_registry(log)
        sink = MockSink()
        notifier = SpawnNotifier(registry, sink)

        log.fail = True
        report = await notifier.notify_due(AT_1500)
        assert report.sent == ["Alpha"]
        assert registry.get("alpha").has_notified is True, "Flag set in memory even if the write fails"
        await notifier.notify_due(AT_1500)
        assert sink.sent == ["Alpha"]
        print("[OK] Failed flag write does not cause a second alert")

        assert await notifier.cleanup(AT_1500) == 0
        assert "Alpha" in registry, "Record kept while its log entry cannot be deleted"
        log.fail = False
        assert await notifier.cleanup(AT_1500) == 1
        assert "Alpha" not in registry
        print("[OK] Cleanup retried after log recovers")

    asyncio.run(run())


def test_report_during_cleanup():
    """A new death reported while cleanup deletes the old entry is stored afresh."""
    print("Testing Report During Cleanup...")
    print("=" * 60)

    async def run():
        log = MockBossLog()
        registry = await make_registry(log)
        notifier = SpawnNotifier(registry, MockSink())
        await notifier.notify_due(AT_1500)
        old_ref = registry.get("alpha").external_ref

        release = asyncio.Event()
        log.gates['delete'] = release
        cleanup = asyncio.ensure_future(notifier.cleanup(AT_1500))
        for _ in range(50):
            if ('delete', old_ref) in log.calls:
                break
            await asyncio.sleep(0)
        assert ('delete', old_ref) in log.calls

        report = asyncio.ensure_future(registry.upsert("Alpha", "14:45", "4 hrs", now=AT_1500))
        await asyncio.sleep(0)
        assert not report.done(), "Report waits for cleanup to finish"

        release.set()
        assert await cleanup == 1
        alpha = await report
        assert registry.get("alpha") is alpha
        assert alpha.has_notified is False
        assert alpha.external_ref != old_ref
        assert old_ref not in log.entries
        assert log.entries[alpha.external_ref]['death_time'] == "14:45"
        print("[OK] New death survives cleanup of the old one")

    asyncio.run(run())


def test_discord_notifiers():
    """Message formatting and the Discord sinks."""
    print("Testing Discord Notifiers...")
    print("=" * 60)

    async def run():
        registry = await make_registry()
        alpha = registry.get("alpha")
        converter = TimeConverter()

        message = SpawnMessageFormatter(converter).format_message(alpha)
        assert message.startswith("Alpha has respawned!"), message
        assert "05/03/2026, 08:00" in message
        assert f"<t:{int(alpha.next_respawn_instant.timestamp())}:R>" in message
        print(f"[OK] Default template: {message}")

        custom = SpawnMessageFormatter(converter, "{name} up at {next_respawn}")
        assert custom.format_message(alpha) == "Alpha up at 05/03/2026, 12:00"
        broken = SpawnMessageFormatter(converter, "{name} {nope}")
        assert broken.format_message(alpha) == "{name} {nope}"
        assert SpawnMessageFormatter(converter, None).format_message(alpha) == message, "Unset template uses the default"
        print("[OK] Custom, broken and unset templates")

        channel = FakeChannel(42, bot_id=7)
        notifier = ChannelNotifier(FakeClient(channel, bot_id=7), 42, SpawnMessageFormatter(converter))
        await notifier.send(alpha)
        assert len(channel.messages) == 1
        assert channel.messages[0].content.startswith("Alpha has respawned!")
        print("[OK] Channel notifier posts to the channel")

        webhook = WebhookNotifier("", attempts=1)
        try:
            await webhook.send(alpha)
            assert False, "Empty webhook URL should raise SinkUnavailable"
        except SinkUnavailable:
            pass
        print("[OK] Missing webhook reported as SinkUnavailable")

    asyncio.run(run())

    url = "https://discord.com/api/webhooks/123456789/abcdefghijklmnopqrstuvwxyz"
    masked = _mask_webhook(url)
    assert "abcdefghijklmnop" not in masked and masked.endswith("wxyz")
    assert _mask_webhook("") == "(empty)"
    print("[OK] Webhook URLs masked")


if __name__ == "__main__":
    test_spawn_notifier()
    test_notify_exactly_once()
    test_sink_failure()
    test_log_failure_during_notify_and_cleanup()
    test_report_during_cleanup()
    test_discord_notifiers()
