"""Send spawn alerts to Discord, via webhook or through the bot's own channel."""
import asyncio
import re
from typing import Optional

import discord
import requests

from .boss_record import BossRecord
from .errors import SinkUnavailable
from .logger import get_logger
from .scheduler import call_with_retry
from .time_converter import TimeConverter

logger = get_logger(__name__)

DEFAULT_SPAWN_TEMPLATE = "{name} has respawned! (died {last_death}, respawn {duration}) {discord_timestamp_relative}"


def _mask_webhook(url: str) -> str:
    """Return a safe string for logging (avoid exposing full webhook URL)."""
    if not url or not isinstance(url, str):
        return "(empty)"
    s = url.strip()
    if len(s) <= 20:
        return "****"
    return f"{s[:30]}...{s[-4:]}" if len(s) > 40 else f"{s[:15]}...{s[-4:]}"


def discord_timestamp(instant, format_type: str = 'F') -> str:
    """
    Discord renders <t:unix:X> in each reader's own timezone.

    format_type: 'F' full, 'R' relative, 't' short time, 'f' short date/time, ...
    """
    return f"<t:{int(instant.timestamp())}:{format_type}>"


class SpawnMessageFormatter:
    """Fills a message template from a BossRecord."""

    def __init__(self, converter: Optional[TimeConverter] = None, template: str = DEFAULT_SPAWN_TEMPLATE):
        self.converter = converter or TimeConverter()
        self.template = template or DEFAULT_SPAWN_TEMPLATE

    def format_message(self, record: BossRecord) -> str:
        """
        Supported variables: {name}, {death_time}, {duration}, {last_death},
        {next_respawn}, {discord_timestamp}, {discord_timestamp_relative}.
        Unknown variables leave the template unformatted.
        """
        values = {
            'name': record.name,
            'death_time': record.death_time_of_day,
            'duration': record.duration_text or f"{record.respawn_interval_minutes // 60} hrs",
            'last_death': self.converter.format(record.last_death_instant),
            'next_respawn': self.converter.format(record.next_respawn_instant),
            'discord_timestamp': discord_timestamp(record.next_respawn_instant, 'F'),
            'discord_timestamp_relative': discord_timestamp(record.next_respawn_instant, 'R'),
        }
        try:
            result = self.template.format(**values)
        except (KeyError, IndexError) as e:
            logger.error(f"Missing template variable: {e}")
            result = self.template
        return re.sub(r'\s+', ' ', result).strip()


class WebhookNotifier:
    """Posts spawn alerts to a Discord webhook with requests."""

    def __init__(self, webhook_url: str, formatter: Optional[SpawnMessageFormatter] = None,
                 attempts: int = 3, timeout: float = 10.0):
        """
        Args:
            webhook_url: Discord webhook URL
            formatter: Message formatter (default template if None)
            attempts: Tries per send before raising SinkUnavailable
            timeout: Seconds allowed per HTTP request
        """
        self.webhook_url = (webhook_url or '').strip()
        self.formatter = formatter or SpawnMessageFormatter()
        self.attempts = attempts
        self.timeout = timeout

    def _send_message(self, message: str) -> None:
        """Blocking POST; runs in a worker thread."""
        if not self.webhook_url:
            raise SinkUnavailable("No webhook URL configured")
        try:
            logger.info(f"[DISCORD] Sending to webhook {_mask_webhook(self.webhook_url)}")
            logger.debug(f"[DISCORD] Message preview: {message[:80]}...")
            response = requests.post(
                self.webhook_url,
                json={'content': message},
                timeout=self.timeout
            )
            response.raise_for_status()
            logger.info(f"[DISCORD] Message sent successfully to webhook {_mask_webhook(self.webhook_url)}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Error sending Discord notification: {e}")
            raise SinkUnavailable(str(e)) from e

    async def send(self, record: BossRecord) -> None:
        """
        Raises:
            SinkUnavailable: every attempt failed
        """
        message = self.formatter.format_message(record)
        try:
            await call_with_retry(
                lambda: asyncio.to_thread(self._send_message, message),
                attempts=self.attempts,
                timeout=self.timeout + 1,
                retry_on=(SinkUnavailable, asyncio.TimeoutError),
                description=f"Webhook alert for '{record.name}'",
            )
        except asyncio.TimeoutError as e:
            raise SinkUnavailable("Timed out posting to webhook") from e


class ChannelNotifier:
    """Posts spawn alerts into a channel through the running discord.py client."""

    def __init__(self, client, channel_id: int, formatter: Optional[SpawnMessageFormatter] = None,
                 attempts: int = 3, timeout: float = 10.0):
        self.client = client
        self.channel_id = channel_id
        self.formatter = formatter or SpawnMessageFormatter()
        self.attempts = attempts
        self.timeout = timeout

    async def _get_channel(self):
        channel = self.client.get_channel(self.channel_id)
        if channel is None:
            channel = await self.client.fetch_channel(self.channel_id)
        return channel

    async def _send_once(self, message: str) -> None:
        try:
            channel = await self._get_channel()
            await channel.send(message)
        except (discord.HTTPException, discord.ClientException) as e:
            raise SinkUnavailable(f"Channel {self.channel_id}: {e}") from e

    async def send(self, record: BossRecord) -> None:
        message = self.formatter.format_message(record)
        logger.info(f"[DISCORD] Posting spawn alert for '{record.name}' to channel {self.channel_id}")
        try:
            await call_with_retry(
                lambda: self._send_once(message),
                attempts=self.attempts,
                timeout=self.timeout,
                retry_on=(SinkUnavailable, asyncio.TimeoutError),
                description=f"Channel alert for '{record.name}'",
            )
        except asyncio.TimeoutError as e:
            raise SinkUnavailable(f"Timed out posting to channel {self.channel_id}") from e
