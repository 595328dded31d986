"""Durable boss log stored as a JSON file with rotating backups.

Every durable log used by the registry exposes the same coroutine interface:

    append(entry) -> ref
    update(ref, entry) -> ref
    delete(ref) -> None
    list_all() -> [(ref, entry), ...]

where ``entry`` is the dict produced by ``BossRecord.to_dict``. I/O failures
are raised as ``SourceUnavailable``.
"""
import asyncio
import json
import os
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Any

from .errors import SourceUnavailable
from .logger import get_logger

logger = get_logger(__name__)

MAX_BACKUPS = 20
BACKUP_GLOB = "bosses_backup_*.json"


class JsonBossLog:
    """Keeps boss entries in a single JSON file: {"bosses": {ref: entry}}."""

    def __init__(self, db_path: str, max_backups: int = MAX_BACKUPS):
        """
        Args:
            db_path: Path to the bosses JSON file (created on first write)
            max_backups: How many backup copies to keep in <db dir>/backups
        """
        self.db_path = Path(db_path)
        self.max_backups = max_backups
        self._entries: Optional[Dict[str, Dict[str, Any]]] = None
        logger.info(f"[LOG] JSON boss log at {self.db_path}")

    def _read(self) -> Dict[str, Dict[str, Any]]:
        """Read the file, or return an empty log if it doesn't exist yet."""
        if not self.db_path.exists():
            logger.debug(f"[LOG] {self.db_path} not found, starting with an empty log")
            return {}
        try:
            with open(self.db_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"[LOG] Invalid JSON in {self.db_path}: {e}. Check the backups folder for a previous version.")
            raise SourceUnavailable(f"Corrupt boss log {self.db_path}: {e}") from e
        except OSError as e:
            logger.error(f"[LOG] Could not read {self.db_path}: {e}", exc_info=True)
            raise SourceUnavailable(f"Cannot read boss log {self.db_path}: {e}") from e

        bosses = data.get('bosses', {})
        if not isinstance(bosses, dict):
            raise SourceUnavailable(f"Unexpected 'bosses' layout in {self.db_path}")
        return bosses

    def _entries_view(self) -> Dict[str, Dict[str, Any]]:
        if self._entries is None:
            self._entries = self._read()
        return self._entries

    def _get_backup_dir(self) -> Path:
        return self.db_path.parent / "backups"

    def _create_backup(self) -> Optional[Path]:
        """Copy the current file into the backups folder before it is overwritten."""
        if not self.db_path.exists():
            return None
        try:
            backup_dir = self._get_backup_dir()
            backup_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            backup_path = backup_dir / f"bosses_backup_{timestamp}.json"
            shutil.copy2(self.db_path, backup_path)

            backups = sorted(backup_dir.glob(BACKUP_GLOB), key=lambda p: p.name, reverse=True)
            for old_backup in backups[self.max_backups:]:
                try:
                    old_backup.unlink()
                    logger.debug(f"[BACKUP] Removed old backup: {old_backup.name}")
                except OSError as e:
                    logger.warning(f"[BACKUP] Could not remove old backup {old_backup.name}: {e}")
            return backup_path
        except OSError as e:
            logger.error(f"[BACKUP] ERROR creating backup: {e}", exc_info=True)
            return None

    def _write(self, entries: Dict[str, Dict[str, Any]]) -> None:
        """Write the whole log, keeping a backup of the previous version."""
        try:
            self._create_backup()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.db_path.with_suffix(self.db_path.suffix + '.tmp')
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump({'bosses': entries}, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.db_path)
        except OSError as e:
            logger.error(f"[LOG] ERROR saving boss log to {self.db_path}: {e}", exc_info=True)
            raise SourceUnavailable(f"Cannot write boss log {self.db_path}: {e}") from e
        self._entries = entries
        logger.debug(f"[LOG] Saved {len(entries)} entries to {self.db_path}")

    def _append(self, entry: Dict[str, Any]) -> str:
        entries = dict(self._entries_view())
        ref = uuid.uuid4().hex
        entries[ref] = entry
        self._write(entries)
        logger.info(f"[LOG] Appended '{entry.get('name')}' as {ref}")
        return ref

    def _update(self, ref: str, entry: Dict[str, Any]) -> str:
        entries = dict(self._entries_view())
        if ref not in entries:
            # Entry vanished (manual edit or restore); store it again under the same ref
            logger.warning(f"[LOG] Ref {ref} not in log, re-adding '{entry.get('name')}'")
        entries[ref] = entry
        self._write(entries)
        logger.info(f"[LOG] Updated '{entry.get('name')}' ({ref})")
        return ref

    def _delete(self, ref: str) -> None:
        entries = dict(self._entries_view())
        if entries.pop(ref, None) is None:
            logger.debug(f"[LOG] Ref {ref} already gone, nothing to delete")
            return
        self._write(entries)
        logger.info(f"[LOG] Deleted {ref}")

    def _list_all(self) -> List[Tuple[str, Dict[str, Any]]]:
        self._entries = self._read()
        return list(self._entries.items())

    # File I/O (including fsync) runs in a worker thread, off the event loop

    async def append(self, entry: Dict[str, Any]) -> str:
        return await asyncio.to_thread(self._append, entry)

    async def update(self, ref: str, entry: Dict[str, Any]) -> str:
        return await asyncio.to_thread(self._update, ref, entry)

    async def delete(self, ref: str) -> None:
        await asyncio.to_thread(self._delete, ref)

    async def list_all(self) -> List[Tuple[str, Dict[str, Any]]]:
        """Re-read the file (it may have been restored from a backup) and return every entry."""
        return await asyncio.to_thread(self._list_all)
