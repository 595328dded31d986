"""The fixed command set, mapped onto registry and notifier operations.

Handlers return plain data; turning it into chat replies is the bot's job.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .boss_record import BossRecord
from .context import TrackerContext
from .errors import NotFound
from .logger import get_logger
from .message_parser import MessageParser
from .respawn_registry import RespawnCountdown
from .spawn_notifier import NotifyReport
from .time_converter import as_utc

logger = get_logger(__name__)


@dataclass
class BossStatus:
    """A record together with its countdown and Dead/Alive label at a given instant."""
    record: BossRecord
    countdown: RespawnCountdown
    status: str


@dataclass
class ReportOutcome:
    """Result of handling an inbound death report."""
    record: BossRecord
    created: bool


class CommandHandler:
    """Entry points for inbound text and the operator commands."""

    def __init__(self, ctx: TrackerContext):
        self.ctx = ctx

    def _status(self, record: BossRecord, now: datetime) -> BossStatus:
        registry = self.ctx.registry
        return BossStatus(
            record=record,
            countdown=registry.time_until_respawn(record, now),
            status=registry.status_label(record, now),
        )

    async def handle_message(self, text: str, message_id: Optional[str] = None,
                             now: Optional[datetime] = None) -> Optional[ReportOutcome]:
        """
        Feed one chat message through the parser into the registry.

        Returns:
            None when the text is not a death report

        Raises:
            InvalidDuration, InvalidTimeOfDay: the report was rejected
            SourceUnavailable: the report could not be stored
        """
        report = MessageParser.parse(text)
        if report is None:
            return None
        created = report.boss_name not in self.ctx.registry
        record = await self.ctx.registry.upsert(
            report.boss_name, report.death_time, report.duration_text,
            now=now, source_message_id=message_id,
        )
        return ReportOutcome(record=record, created=created)

    def list_active(self, now: Optional[datetime] = None) -> List[BossStatus]:
        now = as_utc(now)
        return [self._status(record, now) for record in self.ctx.registry.list_active(now)]

    def list_all(self, now: Optional[datetime] = None) -> List[BossStatus]:
        now = as_utc(now)
        return [self._status(record, now) for record in self.ctx.registry.list_all()]

    def get_status(self, name: str, now: Optional[datetime] = None) -> BossStatus:
        """
        Raises:
            NotFound: boss not tracked
        """
        record = self.ctx.registry.get(name)
        if record is None:
            raise NotFound(name)
        return self._status(record, as_utc(now))

    async def remove(self, name: str) -> BossRecord:
        return await self.ctx.registry.remove(name)

    async def force_reload(self) -> List[BossRecord]:
        logger.info("[COMMAND] Forced reload requested")
        return await self.ctx.reload()

    async def force_cleanup(self) -> int:
        logger.info("[COMMAND] Forced cleanup requested")
        return await self.ctx.cleanup()

    async def force_scan(self) -> NotifyReport:
        logger.info("[COMMAND] Forced spawn check requested")
        return await self.ctx.spawn_check()
