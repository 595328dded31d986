"""
Script to restore bosses.json from a backup file.

Usage:
    python restore_backup.py [--data-dir DIR] [backup_file_path]

If no backup file is provided, it will list available backups.
"""
import argparse
import json
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import List


def get_bosses_json_path(data_dir: Path) -> Path:
    return Path(data_dir) / "bosses.json"


def get_backup_dir(data_dir: Path) -> Path:
    # Same layout as JsonBossLog
    return Path(data_dir) / "backups"


def count_bosses(path: Path) -> int:
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return len(data.get('bosses', {}))


def list_backups(backup_dir: Path, verbose: bool = True) -> List[Path]:
    """List available backups, newest first."""
    backup_dir = Path(backup_dir)
    if not backup_dir.exists():
        if verbose:
            print(f"Backup directory not found: {backup_dir}")
        return []

    # Backup names embed their timestamp, so name order is creation order
    backups = sorted(backup_dir.glob("bosses_backup_*.json"), key=lambda p: p.name, reverse=True)

    if verbose:
        print(f"\nFound {len(backups)} backup(s) in: {backup_dir}\n")
        for i, backup in enumerate(backups, 1):
            mtime = datetime.fromtimestamp(backup.stat().st_mtime)
            print(f"{i}. {backup.name}")
            print(f"   Created: {mtime.strftime('%Y-%m-%d %H:%M:%S')}")
            print(f"   Size: {backup.stat().st_size:,} bytes")
            try:
                print(f"   Bosses: {count_bosses(backup)}")
            except (json.JSONDecodeError, OSError) as e:
                print(f"   Error reading backup: {e}")
            print()

    return backups


def restore_backup(backup_path: Path, log_path: Path) -> bool:
    """
    Restore the boss log from a backup file.

    The current log (if any) is copied aside first as
    bosses_before_restore_<timestamp>.json next to it.
    """
    backup_path = Path(backup_path)
    log_path = Path(log_path)

    if not backup_path.exists():
        print(f"Error: Backup file not found: {backup_path}")
        return False

    try:
        count = count_bosses(backup_path)
    except (json.JSONDecodeError, OSError) as e:
        print(f"Error: Backup file is not a valid boss log: {e}")
        return False

    log_path.parent.mkdir(parents=True, exist_ok=True)
    if log_path.exists():
        current_backup = log_path.parent / f"bosses_before_restore_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        shutil.copy2(log_path, current_backup)
        print(f"Created backup of current file: {current_backup.name}")

    shutil.copy2(backup_path, log_path)
    print(f"\nRestored from: {backup_path.name}")
    print(f"  Restored to: {log_path}")
    print(f"  Total bosses: {count}")
    print("Run /force_reload (or restart the bot) to pick up the restored records.")
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Restore bosses.json from a backup')
    parser.add_argument('backup', nargs='?', type=Path, help='Backup file to restore')
    parser.add_argument('--data-dir', type=Path, default=Path('data'),
                        help='Tracker data directory (default: data)')
    args = parser.parse_args(argv)

    if args.backup:
        return 0 if restore_backup(args.backup, get_bosses_json_path(args.data_dir)) else 1

    backups = list_backups(get_backup_dir(args.data_dir))
    if not backups:
        print("No backups found.")
        return 0
    print("To restore a backup, run:")
    print(f"  python restore_backup.py \"{backups[0]}\"")
    return 0


if __name__ == "__main__":
    sys.exit(main())
