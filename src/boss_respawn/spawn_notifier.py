"""Detect respawned bosses, send one alert per respawn, and clean up afterwards."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .boss_record import BossRecord
from .errors import SinkUnavailable, SourceUnavailable
from .logger import get_logger
from .respawn_registry import RespawnRegistry
from .time_converter import as_utc

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

SpawnKey = Tuple[str, datetime]


def spawn_key(record: BossRecord) -> SpawnKey:
    """One respawn instance: the same boss dying again is a different instance."""
    return (record.key, record.next_respawn_instant)


@dataclass
class NotifyReport:
    """Outcome of one notify_due() pass."""
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    abandoned: List[str] = field(default_factory=list)


class SpawnNotifier:
    """
    Periodic spawn detection on top of a RespawnRegistry.

    A record is offered by scan() while it has respawned and has not been
    notified. Failed sends are counted per respawn instance; once
    max_attempts is reached the instance is abandoned until reset_failures()
    (an operator resync) is called.
    """

    def __init__(self, registry: RespawnRegistry, sink=None, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        """
        Args:
            registry: Registry to scan
            sink: Notification sink with an async send(record) method
            max_attempts: Failed sends allowed per respawn instance before giving up
        """
        self.registry = registry
        self.sink = sink
        self.max_attempts = max_attempts
        self._failures: Dict[SpawnKey, int] = {}

    def scan(self, now: Optional[datetime] = None) -> List[BossRecord]:
        """Respawned, un-notified records that still have retry budget, soonest first."""
        now = as_utc(now)
        due = [
            record for record in self.registry.records()
            if record.next_respawn_instant <= now
            and not record.has_notified
            and self._failures.get(spawn_key(record), 0) < self.max_attempts
        ]
        due.sort(key=lambda record: record.next_respawn_instant)
        if due:
            logger.debug(f"[SCAN] {len(due)} boss(es) due: {[record.name for record in due]}")
        return due

    async def mark_notified(self, record: BossRecord) -> bool:
        """
        Flag a respawn as alerted and persist the flag.

        The in-memory flag is set before the write, so a failed write cannot
        make the same respawn come back from scan().

        Returns:
            False if the boss got a new death report in the meantime (nothing marked)
        """
        current = self.registry.get(record.name)
        if current is None or spawn_key(current) != spawn_key(record):
            logger.info(f"[SCAN] '{record.name}' changed since it was scanned, not marking")
            return False

        current.has_notified = True
        self._failures.pop(spawn_key(current), None)
        try:
            await self.registry.save(current)
        except SourceUnavailable as e:
            logger.error(f"[SCAN] Could not persist notified flag for '{current.name}': {e}")
        return True

    async def notify_due(self, now: Optional[datetime] = None) -> NotifyReport:
        """Send an alert for every due record and mark each one notified."""
        report = NotifyReport()
        if self.sink is None:
            logger.warning("[SCAN] No notification sink configured, skipping spawn check")
            return report

        for record in self.scan(now):
            try:
                await self.sink.send(record)
            except Exception as e:
                if not isinstance(e, SinkUnavailable):
                    logger.error(f"[SCAN] Unexpected error sending spawn alert for '{record.name}': {e}", exc_info=True)
                key = spawn_key(record)
                attempts = self._failures.get(key, 0) + 1
                self._failures[key] = attempts
                if attempts >= self.max_attempts:
                    logger.error(f"[SCAN] Giving up on spawn alert for '{record.name}' after {attempts} attempts: {e}. "
                                 f"Run a reload to retry.")
                    report.abandoned.append(record.name)
                else:
                    logger.warning(f"[SCAN] Spawn alert for '{record.name}' failed (attempt {attempts}/{self.max_attempts}): {e}")
                    report.failed.append(record.name)
                continue

            await self.mark_notified(record)
            report.sent.append(record.name)
            logger.info(f"[SCAN] Spawn alert sent for '{record.name}'")
        return report

    async def cleanup(self, now: Optional[datetime] = None) -> int:
        """
        Remove respawned bosses whose alert already went out.

        Un-notified records are never removed. A record whose log entry cannot
        be deleted stays tracked and is retried on the next pass.

        Returns:
            Number of records removed
        """
        now = as_utc(now)
        removed = 0
        boss_log = self.registry.boss_log
        async with self.registry.lock:
            expired = [
                record for record in self.registry.records()
                if record.next_respawn_instant <= now and record.has_notified
            ]
            for record in expired:
                if boss_log is not None and record.external_ref:
                    try:
                        await boss_log.delete(record.external_ref)
                    except SourceUnavailable as e:
                        logger.warning(f"[CLEANUP] Could not delete log entry for '{record.name}', keeping it: {e}")
                        continue
                if self.registry.discard(record):
                    removed += 1
                    logger.info(f"[CLEANUP] Removed respawned boss '{record.name}'")
        if removed:
            logger.info(f"[CLEANUP] Removed {removed} respawned boss(es)")
        return removed

    def pending_failures(self) -> Dict[SpawnKey, int]:
        return dict(self._failures)

    def reset_failures(self) -> None:
        """Forget failed-send counters so abandoned respawns are offered again."""
        if self._failures:
            logger.info(f"[SCAN] Cleared {len(self._failures)} failed spawn alert counter(s)")
        self._failures.clear()
