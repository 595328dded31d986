"""Load and save tracker settings (JSON file + environment overrides)."""
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .discord_notifier import DEFAULT_SPAWN_TEMPLATE
from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "discord_bot_token": "",
    "report_channel_id": 0,            # Channel where death reports are posted
    "storage_backend": "json",         # "json" or "discord"
    "storage_channel_id": 0,           # Used when storage_backend == "discord"
    "data_directory": "data",
    "notification_backend": "channel",  # "channel" or "webhook"
    "alert_channel_id": 0,             # 0 = same as report_channel_id
    "default_webhook_url": "",
    "spawn_message_template": DEFAULT_SPAWN_TEMPLATE,
    "utc_offset_minutes": 480,
    "spawn_check_interval_seconds": 60,
    "cleanup_interval_seconds": 600,
    "notify_max_attempts": 3,
    "external_call_attempts": 3,
    "external_call_timeout_seconds": 10,
    "replay_missed_notifications": False,
}

# Environment variable -> settings key
ENV_OVERRIDES = {
    "BOSS_RESPAWN_TOKEN": "discord_bot_token",
    "BOSS_RESPAWN_CHANNEL_ID": "report_channel_id",
    "BOSS_RESPAWN_STORAGE": "storage_backend",
    "BOSS_RESPAWN_STORAGE_CHANNEL_ID": "storage_channel_id",
    "BOSS_RESPAWN_DATA_DIR": "data_directory",
    "BOSS_RESPAWN_NOTIFY": "notification_backend",
    "BOSS_RESPAWN_ALERT_CHANNEL_ID": "alert_channel_id",
    "BOSS_RESPAWN_WEBHOOK_URL": "default_webhook_url",
}


def _coerce(key: str, value: Any) -> Any:
    """Cast a raw value to the type of its default."""
    default = DEFAULT_SETTINGS.get(key)
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ('1', 'true', 'yes', 'on')
        return bool(value)
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"[SETTINGS] Ignoring non-numeric value for '{key}': {value!r}")
            return default
    return value.strip() if isinstance(value, str) else value


def load_settings(settings_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Merge defaults, the settings file (if present) and environment overrides.

    Args:
        settings_path: JSON settings file; missing file means defaults
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Settings dictionary
    """
    settings = dict(DEFAULT_SETTINGS)
    environ = os.environ if environ is None else environ

    if settings_path is not None:
        settings_path = Path(settings_path)
        if settings_path.exists():
            try:
                with open(settings_path, 'r', encoding='utf-8') as f:
                    loaded = json.load(f)
                settings.update({key: _coerce(key, value) for key, value in loaded.items()})
                logger.info(f"[SETTINGS] Loaded from {settings_path!s}")
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"[SETTINGS] Error loading settings from {settings_path!s}: {e}", exc_info=True)
        else:
            logger.info(f"[SETTINGS] File not found: {settings_path!s}, using defaults")

    for env_name, key in ENV_OVERRIDES.items():
        if environ.get(env_name):
            settings[key] = _coerce(key, environ[env_name])
            logger.debug(f"[SETTINGS] '{key}' taken from ${env_name}")

    if not settings.get('alert_channel_id'):
        settings['alert_channel_id'] = settings.get('report_channel_id', 0)
    return settings


def save_settings(settings: Dict[str, Any], settings_path: Path) -> None:
    """Write settings as JSON and flush to disk."""
    path = Path(settings_path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(settings, f, indent=2, ensure_ascii=False)
        f.flush()
        os.fsync(f.fileno())
    logger.info(f"[SETTINGS] Saved to {path!s}")
