"""Durable boss log kept as bot-authored messages in a Discord channel."""
import asyncio
import json
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import discord

from .errors import SourceUnavailable
from .logger import get_logger
from .scheduler import call_with_retry

logger = get_logger(__name__)

RECORD_KIND = "boss_record"

# ```json ... ``` block carrying the machine-readable entry
RECORD_BLOCK_RE = re.compile(r"```json\s*\n(.*?)\n```", re.DOTALL)


def encode_entry(entry: Dict[str, Any]) -> str:
    """One human-readable line, then the raw entry as JSON."""
    payload = dict(entry, kind=RECORD_KIND)
    headline = (f"**{entry.get('name')}** died {entry.get('last_death_display', '?')}, "
                f"respawns {entry.get('next_respawn_display', '?')}")
    return f"{headline}\n```json\n{json.dumps(payload, ensure_ascii=False)}\n```"


def decode_entry(content: str) -> Optional[Dict[str, Any]]:
    """Return the stored entry, or None if the message isn't a boss record."""
    match = RECORD_BLOCK_RE.search(content or "")
    if not match:
        return None
    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError as e:
        logger.debug(f"[LOG] Record block is not valid JSON: {e}")
        return None
    if not isinstance(payload, dict) or payload.pop('kind', None) != RECORD_KIND:
        return None
    return payload


class DiscordChannelLog:
    """
    Stores each boss record as one message in a storage channel.

    The message id is the record's ref. Only messages written by the bot
    itself are read back. Every Discord call gets a timeout and a few
    retries before SourceUnavailable is raised.
    """

    def __init__(self, client: discord.Client, channel_id: int, history_limit: Optional[int] = 1000,
                 attempts: int = 3, timeout: float = 10.0):
        """
        Args:
            client: Logged-in discord.py client
            channel_id: Storage channel ID
            history_limit: Max messages scanned by list_all (None = whole channel)
            attempts: Tries per operation
            timeout: Seconds allowed per try
        """
        self.client = client
        self.channel_id = channel_id
        self.history_limit = history_limit
        self.attempts = attempts
        self.timeout = timeout

    async def _call(self, func: Callable[[], Awaitable[Any]], description: str) -> Any:
        try:
            return await call_with_retry(func, attempts=self.attempts, timeout=self.timeout,
                                         retry_on=(SourceUnavailable, asyncio.TimeoutError),
                                         description=f"[LOG] {description}")
        except asyncio.TimeoutError as e:
            raise SourceUnavailable(f"{description} timed out") from e

    async def _get_channel(self):
        channel = self.client.get_channel(self.channel_id)
        if channel is not None:
            return channel
        try:
            return await self.client.fetch_channel(self.channel_id)
        except discord.HTTPException as e:
            logger.error(f"[LOG] Storage channel {self.channel_id} not reachable: {e}")
            raise SourceUnavailable(f"Storage channel {self.channel_id} not reachable: {e}") from e

    async def _append(self, entry: Dict[str, Any]) -> str:
        channel = await self._get_channel()
        try:
            message = await channel.send(encode_entry(entry))
        except discord.HTTPException as e:
            raise SourceUnavailable(f"Could not store '{entry.get('name')}': {e}") from e
        logger.info(f"[LOG] Stored '{entry.get('name')}' as message {message.id}")
        return str(message.id)

    async def _update(self, ref: str, entry: Dict[str, Any]) -> str:
        channel = await self._get_channel()
        try:
            message = await channel.fetch_message(int(ref))
            await message.edit(content=encode_entry(entry))
        except discord.NotFound:
            # Someone deleted the storage message; write a fresh one
            logger.warning(f"[LOG] Message {ref} for '{entry.get('name')}' is gone, storing a new one")
            return await self._append(entry)
        except discord.HTTPException as e:
            raise SourceUnavailable(f"Could not update '{entry.get('name')}': {e}") from e
        logger.info(f"[LOG] Updated '{entry.get('name')}' (message {ref})")
        return ref

    async def _delete(self, ref: str) -> None:
        channel = await self._get_channel()
        try:
            message = await channel.fetch_message(int(ref))
            await message.delete()
        except discord.NotFound:
            logger.debug(f"[LOG] Message {ref} already deleted")
            return
        except discord.HTTPException as e:
            raise SourceUnavailable(f"Could not delete message {ref}: {e}") from e
        logger.info(f"[LOG] Deleted message {ref}")

    async def _list_all(self) -> List[Tuple[str, Dict[str, Any]]]:
        channel = await self._get_channel()
        entries: List[Tuple[str, Dict[str, Any]]] = []
        scanned = 0
        try:
            async for message in channel.history(limit=self.history_limit, oldest_first=True):
                scanned += 1
                if message.author.id != self.client.user.id:
                    continue
                entry = decode_entry(message.content)
                if entry is not None:
                    entries.append((str(message.id), entry))
        except discord.HTTPException as e:
            logger.error(f"[LOG] Error reading storage channel {self.channel_id}: {e}")
            raise SourceUnavailable(f"Could not read storage channel {self.channel_id}: {e}") from e
        logger.info(f"[LOG] Scanned {scanned} messages, found {len(entries)} boss record(s)")
        return entries

    async def append(self, entry: Dict[str, Any]) -> str:
        return await self._call(lambda: self._append(entry), f"store '{entry.get('name')}'")

    async def update(self, ref: str, entry: Dict[str, Any]) -> str:
        return await self._call(lambda: self._update(ref, entry), f"update '{entry.get('name')}'")

    async def delete(self, ref: str) -> None:
        await self._call(lambda: self._delete(ref), f"delete message {ref}")

    async def list_all(self) -> List[Tuple[str, Dict[str, Any]]]:
        if self.client.user is None:
            raise SourceUnavailable("Discord client is not logged in")
        return await self._call(self._list_all, f"read storage channel {self.channel_id}")
