"""Pending-operation outbox — writes made offline, waiting for replay."""

import json
import logging
import time
from typing import Optional

from picking_sync.remote.payloads import parse_payload, payload_to_dict
from picking_sync.utils.constants import (
    LOCAL_ID_COUNTER,
    REPLAY_CLAIM_NAME,
    REPLAY_CLAIM_TIMEOUT,
)

from .connection import DatabaseConnection
from .models import OperationKind, PendingOperation, is_placeholder

logger = logging.getLogger(__name__)


class Outbox:
    """Five queues (one per operation kind) in a single table.

    At most one entry exists per (kind, subject_id); a new enqueue for the
    same pair replaces the old entry and moves it to the back of the replay
    order. Storage failures propagate as ``StorageError``: a dropped entry
    would be lost offline work.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    # ── Local-id counter ────────────────────────────────────────

    @staticmethod
    def _mint(conn) -> int:
        conn.execute(
            "INSERT INTO counters (name, value) VALUES (?, 1) "
            "ON CONFLICT(name) DO UPDATE SET value = value + 1",
            (LOCAL_ID_COUNTER,),
        )
        value = conn.execute(
            "SELECT value FROM counters WHERE name = ?", (LOCAL_ID_COUNTER,)
        ).fetchone()["value"]
        return -value

    def next_local_id(self) -> int:
        """Mint the next local placeholder id: -1, -2, ...

        Negative so a placeholder can never be mistaken for a server id.
        """
        with self.db.get_connection() as conn:
            return self._mint(conn)

    def peek_counter(self) -> int:
        rows = self.db.execute(
            "SELECT value FROM counters WHERE name = ?", (LOCAL_ID_COUNTER,)
        )
        return rows[0]["value"] if rows else 0

    # ── Queue operations ────────────────────────────────────────

    def enqueue(self, kind: OperationKind, subject_id: Optional[int] = None,
                payload=None, subject_name: str = "") -> int:
        """Queue an operation and return the subject id it was stored under.

        ``create`` always gets a freshly minted local id; so does
        ``add_product_line`` when the payload has no move id. A product
        line whose move id is the placeholder of a line still waiting to
        be created replaces that queued create.
        """
        kind = OperationKind(kind)
        parsed = parse_payload(kind, payload)
        mint = kind == OperationKind.CREATE or (
            kind == OperationKind.ADD_PRODUCT_LINE and parsed.move_id is None
        )
        if kind == OperationKind.ADD_PRODUCT_LINE and not mint:
            subject_id = parsed.move_id
            if is_placeholder(subject_id):
                remote_id = self.resolve_local_id(subject_id)
                if remote_id is None:
                    parsed.move_id = None
                else:
                    parsed.move_id = subject_id = remote_id
        if not mint:
            if subject_id is None or isinstance(subject_id, bool):
                raise ValueError(f"{kind.value} requires a subject id")
            subject_id = int(subject_id)
        data = json.dumps(payload_to_dict(parsed), default=str)

        with self.db.get_connection() as conn:
            if mint:
                subject_id = self._mint(conn)
            conn.execute(
                "DELETE FROM pending_operations "
                "WHERE kind = ? AND subject_id = ?",
                (kind.value, subject_id),
            )
            conn.execute(
                "INSERT INTO pending_operations "
                "(kind, subject_id, subject_name, payload) "
                "VALUES (?, ?, ?, ?)",
                (kind.value, subject_id, subject_name or "", data),
            )
        logger.info(f"Queued {kind.value} for {subject_id}")
        return subject_id

    def _to_operation(self, row) -> PendingOperation:
        try:
            payload = json.loads(row["payload"])
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Pending operation {row['seq']} has an unreadable payload")
            payload = {}
        return PendingOperation(
            kind=OperationKind(row["kind"]),
            subject_id=row["subject_id"],
            payload=payload,
            subject_name=row["subject_name"] or "",
            seq=row["seq"],
            queued_at=row["queued_at"],
            attempts=row["attempts"],
            last_error=row["last_error"],
        )

    def list_pending(self, kind: Optional[OperationKind] = None) -> list[PendingOperation]:
        """Queued operations in enqueue order, optionally for one kind."""
        if kind is None:
            rows = self.db.execute(
                "SELECT * FROM pending_operations ORDER BY seq"
            )
        else:
            rows = self.db.execute(
                "SELECT * FROM pending_operations WHERE kind = ? ORDER BY seq",
                (OperationKind(kind).value,),
            )
        return [self._to_operation(r) for r in rows]

    def get(self, kind: OperationKind, subject_id: int) -> Optional[PendingOperation]:
        rows = self.db.execute(
            "SELECT * FROM pending_operations WHERE kind = ? AND subject_id = ?",
            (OperationKind(kind).value, subject_id),
        )
        return self._to_operation(rows[0]) if rows else None

    def remove(self, kind: OperationKind, subject_id: int):
        """Delete one entry. Removing a missing entry is a no-op."""
        with self.db.get_connection() as conn:
            conn.execute(
                "DELETE FROM pending_operations "
                "WHERE kind = ? AND subject_id = ?",
                (OperationKind(kind).value, subject_id),
            )

    def discard(self, seq: int):
        """Delete the entry at queue position *seq*, if it is still there.

        Replay removes by position so that an entry re-queued while the
        old version was in flight is not lost.
        """
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM pending_operations WHERE seq = ?", (seq,))

    def clear(self, kind: OperationKind):
        with self.db.get_connection() as conn:
            conn.execute(
                "DELETE FROM pending_operations WHERE kind = ?",
                (OperationKind(kind).value,),
            )

    def clear_all(self):
        """Drop every queued operation. The local-id counter is kept."""
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM pending_operations")
        logger.info("Outbox cleared")

    def count(self) -> int:
        rows = self.db.execute("SELECT COUNT(*) AS cnt FROM pending_operations")
        return rows[0]["cnt"] if rows else 0

    def count_by_kind(self) -> dict[str, int]:
        counts = {k.value: 0 for k in OperationKind}
        for row in self.db.execute(
            "SELECT kind, COUNT(*) AS cnt FROM pending_operations GROUP BY kind"
        ):
            counts[row["kind"]] = row["cnt"]
        return counts

    def record_failure(self, seq: int, message: str):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE pending_operations "
                "SET attempts = attempts + 1, last_error = ? WHERE seq = ?",
                (message, seq),
            )

    # ── Placeholder reconciliation ──────────────────────────────

    def record_mapping(self, local_id: int, remote_id: int,
                       kind: OperationKind):
        with self.db.get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO id_mappings (local_id, remote_id, kind) "
                "VALUES (?, ?, ?)",
                (local_id, remote_id, OperationKind(kind).value),
            )

    def resolve_local_id(self, local_id: int) -> Optional[int]:
        rows = self.db.execute(
            "SELECT remote_id FROM id_mappings WHERE local_id = ?", (local_id,)
        )
        return rows[0]["remote_id"] if rows else None

    # ── Replay claim ────────────────────────────────────────────

    def claim_replay(self, owner: str,
                     timeout_seconds: float = REPLAY_CLAIM_TIMEOUT) -> bool:
        """Take the replay claim for *owner*. False while a claim is held.

        Every session on the same database file competes for one row, and
        a live claim is exclusive even against its own owner. A claim older
        than *timeout_seconds* is taken over, so a crashed session cannot
        block replay forever.
        """
        now = time.time()
        with self.db.get_connection() as conn:
            # Write lock before the read so two sessions cannot both see it free
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT owner, claimed_at FROM replay_claims WHERE name = ?",
                (REPLAY_CLAIM_NAME,),
            ).fetchone()
            if row is not None:
                if now - row["claimed_at"] < timeout_seconds:
                    return False
                logger.warning(f"Taking over stale replay claim from {row['owner']}")
            conn.execute(
                "INSERT OR REPLACE INTO replay_claims (name, owner, claimed_at) "
                "VALUES (?, ?, ?)",
                (REPLAY_CLAIM_NAME, owner, now),
            )
        return True

    def release_replay(self, owner: str):
        """Drop the replay claim, but only if *owner* holds it."""
        with self.db.get_connection() as conn:
            conn.execute(
                "DELETE FROM replay_claims WHERE name = ? AND owner = ?",
                (REPLAY_CLAIM_NAME, owner),
            )

    def replay_claim_owner(self) -> Optional[str]:
        rows = self.db.execute(
            "SELECT owner FROM replay_claims WHERE name = ?", (REPLAY_CLAIM_NAME,)
        )
        return rows[0]["owner"] if rows else None
