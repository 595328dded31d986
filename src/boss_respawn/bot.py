"""Discord client: reads death reports, serves slash commands, runs the timers."""
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import discord
from discord import app_commands
from discord.ext import tasks

from .boss_log import JsonBossLog
from .commands import BossStatus, CommandHandler, ReportOutcome
from .context import TrackerContext, build_context_from_settings
from .discord_log import DiscordChannelLog
from .discord_notifier import DEFAULT_SPAWN_TEMPLATE, ChannelNotifier, SpawnMessageFormatter, WebhookNotifier
from .errors import BossTrackerError, InvalidDuration, InvalidTimeOfDay, JobBusy, NotFound, SourceUnavailable
from .logger import get_logger
from .scheduler import periodic_loop, stop_loop
from .time_converter import TimeConverter

logger = get_logger(__name__)

LIST_LIMIT = 10


def format_report_reply(outcome: ReportOutcome, converter: TimeConverter) -> str:
    record = outcome.record
    action = "New boss added to tracker" if outcome.created else "Boss respawn updated"
    return (f"Boss death recorded: {record.name}\n"
            f"Death time: {record.death_time_of_day} | Respawn: {record.duration_text}\n"
            f"Next respawn: {converter.format(record.next_respawn_instant)}\n"
            f"({action})")


def format_active_list(statuses: List[BossStatus], converter: TimeConverter) -> str:
    if not statuses:
        return "No active boss respawns at the moment."
    lines = ["Active boss respawns:"]
    for index, item in enumerate(statuses[:LIST_LIMIT], 1):
        lines.append(f"{index}. {item.record.name} - respawns {converter.format(item.record.next_respawn_instant)} "
                     f"({item.countdown.hours}h {item.countdown.minutes}m left)")
    return "\n".join(lines)


def format_all_list(statuses: List[BossStatus]) -> str:
    if not statuses:
        return "No bosses in the database."
    lines = ["All tracked bosses:"]
    for index, item in enumerate(statuses[:LIST_LIMIT], 1):
        state = "Respawned" if item.countdown.is_expired else "Active"
        lines.append(f"{index}. {item.record.name} - {state} | last death {item.record.death_time_of_day} "
                     f"| respawn {item.record.duration_text}")
    return "\n".join(lines)


def format_status(item: BossStatus, converter: TimeConverter) -> str:
    left = "RESPAWNED!" if item.countdown.is_expired else f"{item.countdown.hours}h {item.countdown.minutes}m"
    return (f"{item.record.name} status: {item.status}\n"
            f"Last death: {item.record.death_time_of_day} | Respawn: {item.record.duration_text}\n"
            f"Next respawn: {converter.format(item.record.next_respawn_instant)}\n"
            f"Time left: {left}")


class RespawnBot(discord.Client):
    """Discord front end around a TrackerContext."""

    def __init__(self, settings: Dict[str, Any]):
        intents = discord.Intents.default()
        intents.message_content = True  # Required to read death reports
        super().__init__(intents=intents)
        self.settings = settings
        self.tree = app_commands.CommandTree(self)
        self.ctx: Optional[TrackerContext] = None
        self.handler: Optional[CommandHandler] = None
        self.periodic_loops: List[Tuple[str, tasks.Loop]] = []
        self._started = False

    def _build_log(self):
        if self.settings.get('storage_backend') == 'discord':
            channel_id = int(self.settings.get('storage_channel_id') or 0)
            if not channel_id:
                raise ValueError("storage_backend 'discord' needs storage_channel_id")
            return DiscordChannelLog(self, channel_id,
                                     attempts=int(self.settings.get('external_call_attempts', 3)),
                                     timeout=float(self.settings.get('external_call_timeout_seconds', 10)))
        data_dir = Path(self.settings.get('data_directory') or 'data')
        return JsonBossLog(str(data_dir / "bosses.json"))

    def _build_sink(self, converter: TimeConverter):
        formatter = SpawnMessageFormatter(converter, self.settings.get('spawn_message_template') or DEFAULT_SPAWN_TEMPLATE)
        attempts = int(self.settings.get('external_call_attempts', 3))
        timeout = float(self.settings.get('external_call_timeout_seconds', 10))
        if self.settings.get('notification_backend') == 'webhook':
            return WebhookNotifier(self.settings.get('default_webhook_url', ''), formatter, attempts, timeout)
        return ChannelNotifier(self, int(self.settings.get('alert_channel_id') or 0), formatter, attempts, timeout)

    async def setup_hook(self) -> None:
        self.ctx = build_context_from_settings(self.settings, boss_log=self._build_log())
        self.ctx.notifier.sink = self._build_sink(self.ctx.converter)
        self.handler = CommandHandler(self.ctx)
        register_commands(self.tree, self)
        await self.tree.sync()
        logger.info("[DISCORD] Slash commands synced")

    async def on_ready(self) -> None:
        logger.info(f"[DISCORD] Logged in as {self.user} - monitoring channel {self.settings.get('report_channel_id')}")
        if self._started:
            return
        self._started = True
        await self.ctx.startup_reload()
        check_seconds = float(self.settings.get('spawn_check_interval_seconds', 60))
        self.periodic_loops = [
            ('spawn check', periodic_loop('spawn check', check_seconds, self.ctx.spawn_check_tick, self.ctx.guard)),
            ('cleanup', periodic_loop('cleanup', float(self.settings.get('cleanup_interval_seconds', 600)),
                                      self.ctx.cleanup_tick, self.ctx.guard, initial_delay=check_seconds / 2)),
        ]
        for name, loop in self.periodic_loops:
            if not loop.is_running():
                loop.start()
                logger.info(f"[DISCORD] Started periodic job '{name}'")

    async def on_message(self, message: discord.Message) -> None:
        # Ignore bot messages and messages outside the report channel
        if message.author.bot or message.channel.id != int(self.settings.get('report_channel_id') or 0):
            return
        if self.handler is None:
            return
        try:
            outcome = await self.handler.handle_message(message.content, str(message.id))
        except (InvalidDuration, InvalidTimeOfDay) as e:
            logger.info(f"[DISCORD] Rejected report {message.content!r}: {e}")
            await message.reply(f"Error: {e}")
            return
        except SourceUnavailable as e:
            logger.error(f"[DISCORD] Could not store report {message.content!r}: {e}")
            await message.reply("Error: the report could not be saved, please try again.")
            return
        if outcome is None:
            return
        await message.reply(format_report_reply(outcome, self.ctx.converter))

    async def close(self) -> None:
        for name, loop in self.periodic_loops:
            stop_loop(loop, name, self.ctx.guard)
        self.periodic_loops = []
        await super().close()


def register_commands(tree: app_commands.CommandTree, bot: RespawnBot) -> None:
    """Slash commands for the fixed command set."""

    @tree.command(name='list_boss', description='List all active boss respawns')
    async def list_boss(interaction: discord.Interaction):
        await interaction.response.send_message(format_active_list(bot.handler.list_active(), bot.ctx.converter))

    @tree.command(name='allbosses', description='List all tracked bosses (active and respawned)')
    async def allbosses(interaction: discord.Interaction):
        await interaction.response.send_message(format_all_list(bot.handler.list_all()))

    @tree.command(name='boss_status', description='Check specific boss status')
    @app_commands.describe(name='Boss name to check')
    async def boss_status(interaction: discord.Interaction, name: str):
        try:
            item = bot.handler.get_status(name)
        except NotFound:
            await interaction.response.send_message(f'Boss "{name}" not found in database.')
            return
        await interaction.response.send_message(format_status(item, bot.ctx.converter))

    @tree.command(name='remove_boss', description='Remove a boss from tracking')
    @app_commands.describe(name='Boss name to remove')
    async def remove_boss(interaction: discord.Interaction, name: str):
        try:
            removed = await bot.handler.remove(name)
        except NotFound as e:
            await interaction.response.send_message(f"Error: {e}")
            return
        except SourceUnavailable as e:
            await interaction.response.send_message(f"Error: could not remove \"{name}\": {e}")
            return
        await interaction.response.send_message(f'Boss "{removed.name}" has been removed from tracking.')

    @tree.command(name='force_reload', description='Rebuild the tracker from stored records')
    async def force_reload(interaction: discord.Interaction):
        await interaction.response.defer()
        try:
            records = await bot.handler.force_reload()
        except BossTrackerError as e:
            await interaction.followup.send(f"Error: {e}")
            return
        await interaction.followup.send(f"Reloaded {len(records)} boss(es).")

    @tree.command(name='force_cleanup', description='Remove respawned bosses that were already announced')
    async def force_cleanup(interaction: discord.Interaction):
        await interaction.response.defer()
        try:
            removed = await bot.handler.force_cleanup()
        except (JobBusy, SourceUnavailable) as e:
            await interaction.followup.send(f"Error: {e}")
            return
        await interaction.followup.send(f"Removed {removed} respawned boss(es).")

    @tree.command(name='force_scan', description='Check for respawned bosses now')
    async def force_scan(interaction: discord.Interaction):
        await interaction.response.defer()
        try:
            report = await bot.handler.force_scan()
        except JobBusy as e:
            await interaction.followup.send(f"Error: {e}")
            return
        summary = f"Alerts sent: {len(report.sent)}"
        if report.failed or report.abandoned:
            summary += f" | failed: {', '.join(report.failed + report.abandoned)}"
        await interaction.followup.send(summary)
