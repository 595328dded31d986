"""Tracker context: the registry plus its collaborators, passed to every handler."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .boss_log import JsonBossLog
from .errors import JobBusy, SourceUnavailable
from .logger import get_logger
from .recovery_loader import RecoveryLoader
from .respawn_registry import RespawnRegistry
from .scheduler import SingleFlight
from .spawn_notifier import NotifyReport, SpawnNotifier
from .time_converter import TimeConverter

logger = get_logger(__name__)


@dataclass
class TrackerContext:
    """Everything a handler or background job needs; no module-level state."""
    converter: TimeConverter
    registry: RespawnRegistry
    notifier: SpawnNotifier
    loader: RecoveryLoader
    guard: SingleFlight = field(default_factory=SingleFlight)

    async def _guarded(self, name: str, job):
        ran, result = await self.guard.run(name, job)
        if not ran:
            raise JobBusy(name, self.guard.running or 'another job')
        return result

    async def spawn_check(self) -> NotifyReport:
        """Detect respawns and send alerts. Raises JobBusy if another job is running."""
        return await self._guarded('spawn check', self.notifier.notify_due)

    async def cleanup(self) -> int:
        return await self._guarded('cleanup', self.notifier.cleanup)

    async def reload(self) -> List:
        return await self._guarded('reload', self.loader.reload)

    # Periodic job bodies: the scheduler's own guard already serializes them,
    # so these call straight through and only log storage failures.

    async def spawn_check_tick(self) -> None:
        report = await self.notifier.notify_due()
        if report.abandoned:
            logger.error(f"[SCAN] Spawn alerts abandoned for {report.abandoned}; a reload is required")

    async def cleanup_tick(self) -> None:
        try:
            await self.notifier.cleanup()
        except SourceUnavailable as e:
            logger.error(f"[CLEANUP] Durable log unavailable, keeping in-memory state: {e}")

    async def startup_reload(self) -> None:
        try:
            await self.loader.reload()
        except SourceUnavailable as e:
            logger.error(f"[RELOAD] Startup reload failed, starting with {len(self.registry)} in-memory boss(es): {e}")


def build_context(boss_log=None, sink=None, utc_offset_minutes: int = 480,
                  notify_max_attempts: int = 3, replay_missed: bool = False) -> TrackerContext:
    """Wire a registry, notifier and loader around the given log and sink."""
    converter = TimeConverter(utc_offset_minutes)
    registry = RespawnRegistry(boss_log, converter)
    notifier = SpawnNotifier(registry, sink, max_attempts=notify_max_attempts)
    loader = RecoveryLoader(registry, boss_log, notifier=notifier, replay_missed=replay_missed)
    return TrackerContext(converter=converter, registry=registry, notifier=notifier, loader=loader)


def build_context_from_settings(settings: Dict[str, Any], boss_log=None, sink=None) -> TrackerContext:
    """
    Build a context from settings. A JSON log under data_directory is used
    when no log is passed in.
    """
    if boss_log is None:
        data_dir = Path(settings.get('data_directory') or 'data')
        boss_log = JsonBossLog(str(data_dir / "bosses.json"))
    return build_context(
        boss_log=boss_log,
        sink=sink,
        utc_offset_minutes=int(settings.get('utc_offset_minutes', 480)),
        notify_max_attempts=int(settings.get('notify_max_attempts', 3)),
        replay_missed=bool(settings.get('replay_missed_notifications', False)),
    )
