"""Boss record dataclass and its durable-log encoding."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from .time_converter import TimeConverter, as_utc


@dataclass
class BossRecord:
    """One tracked boss, keyed by lower-cased name."""
    name: str
    death_time_of_day: str
    respawn_interval_minutes: int
    last_death_instant: datetime
    added_at: datetime
    has_notified: bool = False
    updated_at: Optional[datetime] = None
    external_ref: Optional[str] = None
    duration_text: str = ''
    source_message_id: Optional[str] = None

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def next_respawn_instant(self) -> datetime:
        """Always derived from the death instant, never stored on its own."""
        return self.last_death_instant + timedelta(minutes=self.respawn_interval_minutes)

    def is_respawned(self, now: datetime) -> bool:
        return self.next_respawn_instant <= as_utc(now)

    def to_dict(self, converter: TimeConverter) -> Dict[str, Any]:
        """
        Encode for the durable log.

        Instants are stored as ISO-8601 UTC; the *_display copies are for
        humans reading the log and are only used on load when the ISO value
        is missing.
        """
        return {
            'name': self.name,
            'death_time': self.death_time_of_day,
            'respawn_duration': self.duration_text,
            'respawn_minutes': self.respawn_interval_minutes,
            'last_death': self.last_death_instant.isoformat(),
            'next_respawn': self.next_respawn_instant.isoformat(),
            'last_death_display': converter.format(self.last_death_instant),
            'next_respawn_display': converter.format(self.next_respawn_instant),
            'has_notified': self.has_notified,
            'added_at': self.added_at.isoformat(),
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'message_id': self.source_message_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], converter: TimeConverter,
                  external_ref: Optional[str] = None) -> 'BossRecord':
        """
        Decode a durable-log entry.

        Raises:
            KeyError: a required field is missing
            ValueError: a field cannot be parsed
        """
        minutes = int(data['respawn_minutes'])
        if minutes <= 0:
            raise ValueError(f"Non-positive respawn_minutes {minutes}")

        if data.get('last_death'):
            last_death = as_utc(datetime.fromisoformat(data['last_death']))
        else:
            last_death = converter.parse(data['last_death_display'])

        added_at = as_utc(datetime.fromisoformat(data['added_at'])) if data.get('added_at') else last_death
        updated_at = as_utc(datetime.fromisoformat(data['updated_at'])) if data.get('updated_at') else None
        message_id = data.get('message_id')

        return cls(
            name=data['name'],
            death_time_of_day=data.get('death_time') or converter.format(last_death)[-5:],
            respawn_interval_minutes=minutes,
            last_death_instant=last_death,
            added_at=added_at,
            has_notified=bool(data.get('has_notified', False)),
            updated_at=updated_at,
            external_ref=external_ref,
            duration_text=data.get('respawn_duration') or f"{minutes // 60} hrs",
            source_message_id=str(message_id) if message_id is not None else None,
        )
