"""One sync cycle from the command line: replay the outbox, then refresh.

Run:
    python execution/sync_now.py            (replay + full refresh)
    python execution/sync_now.py --status   (print status only)

Credentials come from ODOO_LOGIN / ODOO_PASSWORD in .env.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from picking_sync.config import Config
from picking_sync.sync.session import SessionContext
from picking_sync.sync.sync_manager import SyncLockError

logger = logging.getLogger(__name__)


def run(status_only: bool = False) -> int:
    session = SessionContext(on_synced=Config.update_last_sync)
    session.init(Config.ODOO_LOGIN, Config.ODOO_PASSWORD)
    try:
        if not status_only:
            if not session.is_authenticated:
                logger.warning("Not logged in; nothing synced")
            else:
                try:
                    report = session.sync.replay_outbox()
                except SyncLockError as e:
                    logger.error(str(e))
                    return 1
                logger.info(
                    f"Replayed {len(report.applied)} operation(s), "
                    f"{report.remaining} still queued"
                )
                if report.failed is not None:
                    logger.error(
                        f"Replay stopped at {report.failed.kind.value} "
                        f"{report.failed.subject_id}: {report.error}"
                    )
                result = session.sync.sync_all()
                for kind, count in result.value["synced"].items():
                    logger.info(f"  {kind}: {count}")
                for kind, message in result.value["failed"].items():
                    logger.error(f"  {kind} failed: {message}")
        print(json.dumps(session.sync.get_sync_status(), indent=2, default=str))
    finally:
        session.teardown()
    return 0


def main():
    parser = argparse.ArgumentParser(description="Sync the local picking cache")
    parser.add_argument("--status", action="store_true",
                        help="print sync status and pending counts only")
    args = parser.parse_args()
    logging.basicConfig(level=Config.LOG_LEVEL)
    sys.exit(run(status_only=args.status))


if __name__ == "__main__":
    main()
