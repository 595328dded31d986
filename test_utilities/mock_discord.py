"""In-memory stand-ins for the durable log and the Discord alert sink."""
import asyncio
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import discord

from boss_respawn.errors import SinkUnavailable, SourceUnavailable
from boss_respawn.logger import get_logger

logger = get_logger(__name__)


class MockBossLog:
    """
    Durable log kept in a dict. Set `fail` to make every call raise
    SourceUnavailable. Put an asyncio.Event in `gates[op]` to hold that
    operation until the event is set.
    """

    def __init__(self, entries: Optional[Dict[str, Dict[str, Any]]] = None):
        self.entries: Dict[str, Dict[str, Any]] = dict(entries or {})
        self.fail = False
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[Tuple[str, Optional[str]]] = []
        logger.info("Mock boss log initialized (entries kept in memory)")

    async def _check(self, op: str, ref: Optional[str] = None) -> None:
        self.calls.append((op, ref))
        gate = self.gates.get(op)
        if gate is not None:
            await gate.wait()
        if self.fail:
            raise SourceUnavailable(f"mock log offline ({op})")

    async def append(self, entry: Dict[str, Any]) -> str:
        await self._check('append')
        ref = uuid.uuid4().hex
        self.entries[ref] = dict(entry)
        return ref

    async def update(self, ref: str, entry: Dict[str, Any]) -> str:
        await self._check('update', ref)
        self.entries[ref] = dict(entry)
        return ref

    async def delete(self, ref: str) -> None:
        await self._check('delete', ref)
        self.entries.pop(ref, None)

    async def list_all(self) -> List[Tuple[str, Dict[str, Any]]]:
        await self._check('list_all')
        return [(ref, dict(entry)) for ref, entry in self.entries.items()]


class MockSink:
    """Notification sink that records alerts instead of posting them. `error` is raised as-is when set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.error: Optional[Exception] = None
        self.sent: List[str] = []
        self.attempts = 0

    async def send(self, record) -> None:
        self.attempts += 1
        if self.error is not None:
            raise self.error
        if self.fail:
            raise SinkUnavailable("mock sink offline")
        self.sent.append(record.name)
        logger.info(f"[MOCK DISCORD] Spawn alert: {record.name}")


class FakeResponse:
    """Minimal aiohttp-style response for building discord.py HTTP errors."""

    def __init__(self, status: int, reason: str):
        self.status = status
        self.reason = reason


class FakeMessage:
    def __init__(self, message_id: int, content: str, author_id: int):
        self.id = message_id
        self.content = content
        self.author = FakeUser(author_id)
        self.deleted = False

    async def edit(self, content: str) -> None:
        self.content = content

    async def delete(self) -> None:
        self.deleted = True


class FakeUser:
    def __init__(self, user_id: int):
        self.id = user_id
        self.bot = True


class FakeChannel:
    """Just enough of a discord.py text channel for the channel-backed log and notifier."""

    def __init__(self, channel_id: int, bot_id: int):
        self.id = channel_id
        self.bot_id = bot_id
        self.messages: List[FakeMessage] = []
        self._next_id = 1000

    async def send(self, content: str) -> FakeMessage:
        self._next_id += 1
        message = FakeMessage(self._next_id, content, self.bot_id)
        self.messages.append(message)
        return message

    async def fetch_message(self, message_id: int) -> FakeMessage:
        for message in self.messages:
            if message.id == message_id and not message.deleted:
                return message
        raise discord.NotFound(FakeResponse(404, "Not Found"), "Unknown Message")

    async def history(self, limit=None, oldest_first=False):
        live = [message for message in self.messages if not message.deleted]
        if not oldest_first:
            live = list(reversed(live))
        for message in live[:limit]:
            yield message


class FakeClient:
    def __init__(self, channel: FakeChannel, bot_id: int):
        self.channel = channel
        self.user = FakeUser(bot_id)

    def get_channel(self, channel_id: int):
        return self.channel if channel_id == self.channel.id else None

    async def fetch_channel(self, channel_id: int):
        return self.get_channel(channel_id)
