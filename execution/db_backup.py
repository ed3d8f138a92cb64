"""Cache backup script — timestamped copy of the local SQLite cache.

The outbox lives in the same file, so a backup also preserves queued
offline work.
"""

import logging
import sqlite3
import sys
from datetime import datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from picking_sync.config import Config

logger = logging.getLogger(__name__)

KEEP_BACKUPS = 10


def backup_database(db_path: Path = None, backup_dir: Path = None) -> Path | None:
    """Copy the cache database into *backup_dir*; keep the newest ten."""
    db_path = Path(db_path or Config.DATABASE_PATH)
    backup_dir = Path(backup_dir or Config.BACKUP_PATH)
    backup_dir.mkdir(parents=True, exist_ok=True)

    if not db_path.exists():
        logger.warning(f"Database not found at {db_path}")
        return None

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_file = backup_dir / f"picking_cache_{timestamp}.db"
    # SQLite online backup: consistent even while a sync is writing
    source = sqlite3.connect(str(db_path))
    target = sqlite3.connect(str(backup_file))
    try:
        source.backup(target)
    finally:
        target.close()
        source.close()
    logger.info(f"Backup created: {backup_file}")

    backups = sorted(backup_dir.glob("picking_cache_*.db"), reverse=True)
    for old in backups[KEEP_BACKUPS:]:
        old.unlink()
        logger.info(f"Removed old backup: {old.name}")
    return backup_file


if __name__ == "__main__":
    logging.basicConfig(level=Config.LOG_LEVEL)
    backup_database()
