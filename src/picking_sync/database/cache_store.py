"""Entity cache store — typed partitions of mirrored remote records."""

import json
import logging
from typing import Optional

from .connection import DatabaseConnection
from .models import (
    ENTITY_TYPES,
    CachedEntity,
    EntityKind,
    StockMove,
    entity_from_record,
)

logger = logging.getLogger(__name__)


class EntityCacheStore:
    """Local key-value cache with one partition per entity kind.

    ``save_partition`` is a full replace. The new rows are serialized
    before the transaction opens and the delete + insert happen in a single
    transaction, so a reader on another connection sees either the previous
    snapshot or the new one.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    @staticmethod
    def cache_key(kind: EntityKind, entity_id: int) -> str:
        return f"{EntityKind(kind).value}_{entity_id}"

    # ── Writes ──────────────────────────────────────────────────

    def _serialize(self, kind: EntityKind, items: list) -> list[tuple]:
        kind = EntityKind(kind)
        expected = ENTITY_TYPES[kind]
        rows = []
        seen = set()
        for position, item in enumerate(items):
            if not isinstance(item, CachedEntity):
                try:
                    item = expected.from_record(item)
                except (AttributeError, ValueError) as e:
                    logger.warning(f"Skipping {kind.value} record: {e}")
                    continue
            key = self.cache_key(kind, item.id)
            if key in seen:
                # Later duplicates overwrite earlier ones in place
                rows = [r for r in rows if r[1] != key]
            seen.add(key)
            rows.append((
                kind.value,
                key,
                item.id,
                position,
                json.dumps(item.to_record(), default=str),
            ))
        return rows

    def save_partition(self, kind: EntityKind, items: list):
        """Replace the whole partition for *kind* with *items*."""
        rows = self._serialize(kind, items)
        kind = EntityKind(kind)
        with self.db.get_connection() as conn:
            conn.execute(
                "DELETE FROM cache_entries WHERE partition = ?", (kind.value,)
            )
            conn.executemany(
                "INSERT INTO cache_entries "
                "(partition, cache_key, entity_id, position, data) "
                "VALUES (?, ?, ?, ?, ?)",
                rows,
            )
            conn.execute(
                "INSERT OR REPLACE INTO partition_sync "
                "(partition, item_count, refreshed_at) "
                "VALUES (?, ?, CURRENT_TIMESTAMP)",
                (kind.value, len(rows)),
            )
        logger.debug(f"Saved {len(rows)} {kind.value} entries")

    def put_many(self, kind: EntityKind, items: list):
        """Insert or overwrite individual entries, keeping the rest."""
        rows = self._serialize(kind, items)
        if not rows:
            return
        with self.db.get_connection() as conn:
            self._upsert(conn, EntityKind(kind), rows)

    @staticmethod
    def _upsert(conn, kind: EntityKind, rows: list[tuple]):
        start = conn.execute(
            "SELECT COALESCE(MAX(position), -1) + 1 AS nxt "
            "FROM cache_entries WHERE partition = ?",
            (kind.value,),
        ).fetchone()["nxt"]
        for _, key, entity_id, offset, data in rows:
            existing = conn.execute(
                "SELECT position FROM cache_entries "
                "WHERE partition = ? AND cache_key = ?",
                (kind.value, key),
            ).fetchone()
            position = existing["position"] if existing else start + offset
            conn.execute(
                "INSERT OR REPLACE INTO cache_entries "
                "(partition, cache_key, entity_id, position, data) "
                "VALUES (?, ?, ?, ?, ?)",
                (kind.value, key, entity_id, position, data),
            )

    def apply_page(self, kind: EntityKind, scope: str, page_index: int,
                   items: list, page_ids: list[int], removed_ids=(),
                   total: int = 0):
        """Store one fetched page in a single transaction.

        Upserts *items*, deletes *removed_ids* (records the server no longer
        has), and records the page's total and member ids for *scope*.
        """
        kind = EntityKind(kind)
        rows = self._serialize(kind, items)
        with self.db.get_connection() as conn:
            if rows:
                self._upsert(conn, kind, rows)
            conn.executemany(
                "DELETE FROM cache_entries WHERE partition = ? AND cache_key = ?",
                [(kind.value, self.cache_key(kind, i)) for i in removed_ids],
            )
            conn.execute(
                "INSERT OR REPLACE INTO total_counts (scope, total, updated_at) "
                "VALUES (?, ?, CURRENT_TIMESTAMP)",
                (scope, max(int(total), 0)),
            )
            conn.execute(
                "INSERT OR REPLACE INTO page_members (scope, page, entity_ids) "
                "VALUES (?, ?, ?)",
                (scope, page_index, json.dumps(list(page_ids))),
            )
        if removed_ids:
            logger.info(f"Pruned {len(removed_ids)} {kind.value} entries "
                        f"no longer on the server")

    def get_page_ids(self, scope: str, page_index: int) -> list[int]:
        """Ids the cached page *page_index* of *scope* showed last time."""
        rows = self.db.execute(
            "SELECT entity_ids FROM page_members WHERE scope = ? AND page = ?",
            (scope, page_index),
        )
        if not rows:
            return []
        try:
            return [int(i) for i in json.loads(rows[0]["entity_ids"])]
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning(f"Unreadable page membership for {scope}")
            return []

    def put(self, kind: EntityKind, item):
        """Insert or overwrite a single entry."""
        self.put_many(kind, [item])

    def delete(self, kind: EntityKind, entity_id: int):
        with self.db.get_connection() as conn:
            conn.execute(
                "DELETE FROM cache_entries WHERE partition = ? AND cache_key = ?",
                (EntityKind(kind).value, self.cache_key(kind, entity_id)),
            )

    # ── Reads ───────────────────────────────────────────────────

    def _decode(self, kind: EntityKind, data: str) -> Optional[CachedEntity]:
        try:
            return entity_from_record(kind, json.loads(data))
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Unreadable {EntityKind(kind).value} cache entry: {e}")
            return None

    def get_partition(self, kind: EntityKind) -> list:
        rows = self.db.execute(
            "SELECT data FROM cache_entries WHERE partition = ? "
            "ORDER BY position, entity_id",
            (EntityKind(kind).value,),
        )
        items = []
        for row in rows:
            item = self._decode(kind, row["data"])
            if item is not None:
                items.append(item)
        return items

    def get_by_id(self, kind: EntityKind, entity_id: int) -> Optional[CachedEntity]:
        rows = self.db.execute(
            "SELECT data FROM cache_entries "
            "WHERE partition = ? AND cache_key = ?",
            (EntityKind(kind).value, self.cache_key(kind, entity_id)),
        )
        return self._decode(kind, rows[0]["data"]) if rows else None

    def get_stock_moves(self, picking_id: Optional[int] = None) -> list[StockMove]:
        moves = self.get_partition(EntityKind.STOCK_MOVE)
        if picking_id is None:
            return moves
        return [m for m in moves if m.picking_id_int == picking_id]

    def count(self, kind: EntityKind) -> int:
        rows = self.db.execute(
            "SELECT COUNT(*) AS cnt FROM cache_entries WHERE partition = ?",
            (EntityKind(kind).value,),
        )
        return rows[0]["cnt"] if rows else 0

    # ── Total counts ────────────────────────────────────────────

    def save_total_count(self, scope: str, total: int):
        with self.db.get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO total_counts (scope, total, updated_at) "
                "VALUES (?, ?, CURRENT_TIMESTAMP)",
                (scope, max(int(total), 0)),
            )

    def get_total_count(self, scope: str) -> int:
        rows = self.db.execute(
            "SELECT total FROM total_counts WHERE scope = ?", (scope,)
        )
        return rows[0]["total"] if rows else 0

    # ── Status / reset ──────────────────────────────────────────

    def partition_status(self) -> dict:
        """Item count and last refresh time for every entity kind."""
        rows = self.db.execute(
            "SELECT partition, refreshed_at FROM partition_sync"
        )
        refreshed = {r["partition"]: r["refreshed_at"] for r in rows}
        counts = {
            r["partition"]: r["cnt"]
            for r in self.db.execute(
                "SELECT partition, COUNT(*) AS cnt FROM cache_entries "
                "GROUP BY partition"
            )
        }
        return {
            kind.value: {
                "count": counts.get(kind.value, 0),
                "refreshed_at": refreshed.get(kind.value),
            }
            for kind in EntityKind
        }

    def clear_all(self):
        """Drop every cached entity, total count and page membership.

        The outbox, id mappings and the local-id counter are left alone.
        """
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM cache_entries")
            conn.execute("DELETE FROM total_counts")
            conn.execute("DELETE FROM page_members")
            conn.execute("DELETE FROM partition_sync")
        logger.info("Local cache cleared")
