"""Authoritative in-memory map of tracked bosses and the respawn math."""
import asyncio
import dataclasses
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from .boss_record import BossRecord
from .duration_parser import DurationParser
from .errors import InvalidDuration, NotFound
from .logger import get_logger
from .time_converter import TimeConverter, as_utc

logger = get_logger(__name__)


@dataclass
class RespawnCountdown:
    """Whole hours and minutes left before a boss respawns."""
    hours: int
    minutes: int
    is_expired: bool


class RespawnRegistry:
    """
    Owns every BossRecord, keyed by lower-cased name.

    Mutations are written to the durable log first and only then applied in
    memory, so the log is never behind what the registry reports. Every
    mutation holds `lock`; reload and cleanup hold it as well, so a report
    never lands in the middle of either.
    """

    def __init__(self, boss_log=None, converter: Optional[TimeConverter] = None):
        """
        Args:
            boss_log: Durable log (see boss_log module for the interface); None keeps records in memory only
            converter: Zone converter (defaults to UTC+8)
        """
        self.boss_log = boss_log
        self.converter = converter or TimeConverter()
        self._bosses: Dict[str, BossRecord] = {}
        self.lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._bosses)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._bosses

    def records(self) -> List[BossRecord]:
        """Snapshot of the current records, in no particular order."""
        return list(self._bosses.values())

    async def _persist(self, record: BossRecord) -> BossRecord:
        """Write the record to the durable log and return it with its ref filled in."""
        if self.boss_log is None:
            return record
        entry = record.to_dict(self.converter)
        if record.external_ref:
            ref = await self.boss_log.update(record.external_ref, entry)
        else:
            ref = await self.boss_log.append(entry)
        return dataclasses.replace(record, external_ref=ref)

    async def upsert(self, name: str, death_time_text: str, duration_text: str,
                     now: Optional[datetime] = None,
                     source_message_id: Optional[str] = None) -> BossRecord:
        """
        Record a death report, creating or replacing the boss entry.

        Args:
            name: Boss name as typed (display case is kept)
            death_time_text: "HH:MM" in the zone
            duration_text: Respawn duration, e.g. "24 hrs"
            now: Submission instant (defaults to the current time)
            source_message_id: Chat message that carried the report

        Returns:
            The stored record

        Raises:
            InvalidDuration: duration text not understood or zero
            InvalidTimeOfDay: death time out of range
            SourceUnavailable: the durable log rejected the write (registry unchanged)
        """
        now = as_utc(now)
        name = name.strip()

        minutes = DurationParser.parse(duration_text)
        if not minutes:
            raise InvalidDuration(f"Invalid respawn duration '{duration_text}' (expected e.g. '24 hrs')")

        hour, minute = self.converter.parse_time_of_day(death_time_text)
        death_instant = self.converter.resolve_death_instant(hour, minute, now)

        async with self.lock:
            existing = self._bosses.get(name.lower())
            if existing:
                record = dataclasses.replace(
                    existing,
                    name=name,
                    death_time_of_day=f"{hour:02d}:{minute:02d}",
                    respawn_interval_minutes=minutes,
                    last_death_instant=death_instant,
                    has_notified=False,
                    updated_at=now,
                    duration_text=duration_text.strip(),
                    source_message_id=source_message_id or existing.source_message_id,
                )
            else:
                record = BossRecord(
                    name=name,
                    death_time_of_day=f"{hour:02d}:{minute:02d}",
                    respawn_interval_minutes=minutes,
                    last_death_instant=death_instant,
                    added_at=now,
                    duration_text=duration_text.strip(),
                    source_message_id=source_message_id,
                )

            record = await self._persist(record)
            self._bosses[record.key] = record
        logger.info(f"[UPSERT] {'Updated' if existing else 'Added'} '{record.name}': "
                    f"died {self.converter.format(record.last_death_instant)}, "
                    f"respawns {self.converter.format(record.next_respawn_instant)}")
        return record

    async def save(self, record: BossRecord) -> Optional[BossRecord]:
        """
        Persist the current state of a tracked record (e.g. after flagging it notified).

        Returns:
            The stored record, or None if a newer report replaced it first (nothing written)
        """
        async with self.lock:
            if not self.is_current(record):
                logger.info(f"[SAVE] '{record.name}' was replaced before it could be saved, skipping")
                return None
            stored = await self._persist(record)
            self._bosses[record.key] = stored
        return stored

    async def remove(self, name: str) -> BossRecord:
        """
        Stop tracking a boss.

        Raises:
            NotFound: no boss under that name
            SourceUnavailable: the durable log entry could not be deleted (registry unchanged)
        """
        key = name.strip().lower()
        async with self.lock:
            record = self._bosses.get(key)
            if record is None:
                logger.warning(f"Attempted to remove non-existent boss: {name}")
                raise NotFound(name)
            if self.boss_log is not None and record.external_ref:
                await self.boss_log.delete(record.external_ref)
            del self._bosses[key]
        logger.info(f"[REMOVE] Removed boss '{record.name}'")
        return record

    def discard(self, record: BossRecord) -> bool:
        """Drop a record from memory if it is still the tracked one for its name."""
        if self.is_current(record):
            del self._bosses[record.key]
            return True
        return False

    def get(self, name: str) -> Optional[BossRecord]:
        """Get a boss entry by name (case-insensitive)."""
        return self._bosses.get(name.strip().lower())

    def is_current(self, record: BossRecord) -> bool:
        """True if the record is still the tracked entry for its boss."""
        return self._bosses.get(record.key) is record

    def list_active(self, now: Optional[datetime] = None) -> List[BossRecord]:
        """Bosses still waiting to respawn, soonest first."""
        now = as_utc(now)
        active = [boss for boss in self._bosses.values() if boss.next_respawn_instant > now]
        return sorted(active, key=lambda boss: boss.next_respawn_instant)

    def list_all(self) -> List[BossRecord]:
        """Every tracked boss, most recent death first."""
        return sorted(self._bosses.values(), key=lambda boss: boss.last_death_instant, reverse=True)

    def time_until_respawn(self, record: BossRecord, now: Optional[datetime] = None) -> RespawnCountdown:
        """Remaining time in whole hours and minutes (floored)."""
        remaining = record.next_respawn_instant - as_utc(now)
        if remaining <= timedelta(0):
            return RespawnCountdown(hours=0, minutes=0, is_expired=True)
        total_minutes = remaining // timedelta(minutes=1)
        return RespawnCountdown(hours=total_minutes // 60, minutes=total_minutes % 60, is_expired=False)

    def status_label(self, record: BossRecord, now: Optional[datetime] = None) -> str:
        """'Dead' while the respawn timer runs, 'Alive' once it has elapsed."""
        return 'Alive' if record.is_respawned(as_utc(now)) else 'Dead'

    def replace_all(self, records: Iterable[BossRecord]) -> None:
        """Swap in a complete new set of records in one step. Callers hold `lock`."""
        rebuilt = {record.key: record for record in records}
        self._bosses = rebuilt
        logger.info(f"[RELOAD] Registry now holds {len(rebuilt)} bosses")
