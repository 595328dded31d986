"""Rebuild the registry from the durable log."""
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .boss_record import BossRecord
from .errors import SourceUnavailable
from .logger import get_logger
from .respawn_registry import RespawnRegistry
from .time_converter import as_utc

logger = get_logger(__name__)


class RecoveryLoader:
    """
    Replays the durable log into a RespawnRegistry.

    Reload never re-fires historical notifications: unless replay_missed is
    set, every record that has already respawned is treated as notified,
    whatever the stored flag says.
    """

    def __init__(self, registry: RespawnRegistry, boss_log=None, notifier=None,
                 replay_missed: bool = False):
        """
        Args:
            registry: Registry whose contents get replaced
            boss_log: Log to read (defaults to the registry's own log)
            notifier: SpawnNotifier whose failure counters are reset on a successful reload
            replay_missed: Trust the stored has_notified flag so alerts missed while offline still go out
        """
        self.registry = registry
        self.boss_log = boss_log if boss_log is not None else registry.boss_log
        self.notifier = notifier
        self.replay_missed = replay_missed

    async def reload(self, now: Optional[datetime] = None) -> List[BossRecord]:
        """
        Replace the registry contents with what the log holds.

        Returns:
            The loaded records, soonest respawn first

        Raises:
            SourceUnavailable: the log could not be read; the registry is left untouched
        """
        if self.boss_log is None:
            raise SourceUnavailable("No durable log configured")

        now = as_utc(now)
        # Reports arriving during the read wait and are applied on top of the result
        async with self.registry.lock:
            try:
                entries = await self.boss_log.list_all()
            except SourceUnavailable:
                logger.error("[RELOAD] Durable log unavailable, keeping current state")
                raise
            except OSError as e:
                logger.error(f"[RELOAD] Durable log unavailable, keeping current state: {e}")
                raise SourceUnavailable(str(e)) from e

            records, skipped = self._decode(entries, now)
            self.registry.replace_all(records)
            if self.notifier is not None:
                self.notifier.reset_failures()

        logger.info(f"[RELOAD] Loaded {len(records)} boss(es) from the log"
                    + (f", skipped {skipped} unreadable" if skipped else ""))
        return records

    def _decode(self, entries, now: datetime) -> Tuple[List[BossRecord], int]:
        """Turn log entries into records, soonest respawn first, plus the count of unreadable ones."""
        converter = self.registry.converter
        by_key: Dict[str, BossRecord] = {}
        skipped = 0
        for ref, entry in entries:
            try:
                record = BossRecord.from_dict(entry, converter, external_ref=ref)
            except (KeyError, ValueError, TypeError) as e:
                skipped += 1
                logger.warning(f"[RELOAD] Skipping unreadable entry {ref}: {e}")
                continue

            expired = record.next_respawn_instant <= now
            if self.replay_missed:
                record.has_notified = record.has_notified and expired
            else:
                record.has_notified = expired

            previous = by_key.get(record.key)
            if previous is None or record.last_death_instant > previous.last_death_instant:
                if previous is not None:
                    logger.warning(f"[RELOAD] Duplicate entries for '{record.name}', keeping the latest death")
                by_key[record.key] = record

        records = sorted(by_key.values(), key=lambda record: record.next_respawn_instant)
        return records, skipped
