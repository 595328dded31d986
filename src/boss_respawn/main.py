"""Command-line entry point for the Boss Respawn Tracker bot."""
import argparse
import logging
import os
import sys
from pathlib import Path

from .bot import RespawnBot
from .logger import setup_logging
from .settings import load_settings


def parse_log_level(args: argparse.Namespace, environ=None) -> int:
    """Resolve the log level from the CLI flags, then the environment."""
    environ = os.environ if environ is None else environ
    if args.debug or environ.get('BOSS_RESPAWN_DEBUG', '').lower() in ('1', 'true', 'yes'):
        return logging.DEBUG
    if args.log_level:
        return getattr(logging, args.log_level)
    level_str = environ.get('BOSS_RESPAWN_LOG_LEVEL', '').upper()
    if level_str in ('DEBUG', 'INFO', 'WARNING', 'ERROR'):
        return getattr(logging, level_str)
    return logging.INFO


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Boss Respawn Tracker')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging (verbose)')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Set logging level (DEBUG, INFO, WARNING, ERROR)')
    parser.add_argument('--settings', type=Path, default=Path('settings.json'),
                        help='Path to the JSON settings file (default: settings.json)')
    return parser


def main(argv=None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)
    log_level = parse_log_level(args)

    settings = load_settings(args.settings)
    log_dir = Path(settings.get('data_directory') or 'data') / "logs"
    logger = setup_logging(log_dir, log_level=log_level)
    logger.info(f"Log level: {logging.getLevelName(log_level)}")
    if log_level == logging.DEBUG:
        logger.debug("Debug logging is active - all operations will be logged in detail")

    token = settings.get('discord_bot_token')
    if not token:
        logger.error("No Discord bot token configured (set discord_bot_token or $BOSS_RESPAWN_TOKEN)")
        return 1
    if not settings.get('report_channel_id'):
        logger.error("No report channel configured (set report_channel_id or $BOSS_RESPAWN_CHANNEL_ID)")
        return 1

    bot = RespawnBot(settings)
    try:
        # log_handler=None: our own handlers are already installed
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except Exception as e:
        logger.error(f"Bot stopped with an error: {e}", exc_info=True)
        return 1
    logger.info("Boss Respawn Tracker - Stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
