"""SyncManager — keeps the local cache and the outbox in step with Odoo.

Reads:
1. Offline: answer from the cache, never touch the network
2. Online: fetch from the server, replace (or upsert) the cache partition
3. Remote failure: fall back to the last cached snapshot

Writes are gated on connectivity: online writes go straight to the server,
offline writes are queued in the outbox. ``replay_outbox`` drains the queue
in enqueue order once the server is reachable again.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from picking_sync.database.cache_store import EntityCacheStore
from picking_sync.database.connection import StorageError
from picking_sync.database.models import (
    ENTITY_TYPES,
    REMOTE_MODELS,
    EntityKind,
    OperationKind,
    PendingOperation,
    Picking,
    is_placeholder,
)
from picking_sync.database.outbox import Outbox
from picking_sync.query.filters import Query
from picking_sync.query.pagination import Page, has_next_page, paginate
from picking_sync.remote.client import ConnectivityError, OdooClient, RemoteError
from picking_sync.remote.connectivity import ConnectivityGate
from picking_sync.remote.payloads import (
    PayloadError,
    PickingActionPayload,
    build_call,
    parse_payload,
)
from picking_sync.sync.result import ErrorKind, Result, WriteOutcome, WriteResult
from picking_sync.utils.constants import PAGE_SIZE

logger = logging.getLogger(__name__)

# Order used by sync_all; stock moves last because they follow the pickings
SYNC_ORDER = [
    EntityKind.OPERATION_TYPE,
    EntityKind.PRODUCT,
    EntityKind.PARTNER,
    EntityKind.USER,
    EntityKind.PICKING,
    EntityKind.RETURN_PICKING,
    EntityKind.STOCK_MOVE,
]

# Operations whose server call returns the id of a new record
_CREATES = {OperationKind.CREATE, OperationKind.ADD_PRODUCT_LINE}


class SyncError(Exception):
    """Base exception for sync operations."""


class SyncLockError(SyncError):
    """An outbox replay is already running."""


class UnresolvedPlaceholderError(SyncError):
    """An operation points at a local record the server has not created yet."""


@dataclass
class ReplayReport:
    applied: list = field(default_factory=list)
    failed: Optional[PendingOperation] = None
    error: str = ""
    offline: bool = False
    remaining: int = 0

    @property
    def completed(self) -> bool:
        return not self.offline and self.failed is None


def _error_kind(error: Exception) -> ErrorKind:
    if isinstance(error, ConnectivityError):
        return ErrorKind.CONNECTIVITY
    return ErrorKind.REMOTE


class SyncManager:
    """Connectivity-gated reads, writes and outbox replay."""

    def __init__(self, cache: EntityCacheStore, outbox: Outbox,
                 client: OdooClient, gate: ConnectivityGate,
                 odoo_version: int = 17, page_size: int = PAGE_SIZE,
                 last_sync: str = "",
                 on_synced: Optional[Callable[[str], None]] = None):
        self.cache = cache
        self.outbox = outbox
        self.client = client
        self.gate = gate
        self.odoo_version = odoo_version
        self.page_size = page_size
        self._last_sync = last_sync
        self._on_synced = on_synced
        self._replay_owner = uuid.uuid4().hex

    @property
    def uid(self) -> int:
        return self.client.uid or 0

    def is_online(self) -> bool:
        return self.gate.is_online()

    # ── Fetch helpers ───────────────────────────────────────────

    def _fields(self, kind: EntityKind) -> list[str]:
        entity_type = ENTITY_TYPES[kind]
        if issubclass(entity_type, Picking):
            return entity_type.fields_for_version(self.odoo_version)
        return list(entity_type.remote_fields)

    def _base_domain(self, kind: EntityKind) -> list:
        if kind == EntityKind.RETURN_PICKING:
            return [["state", "=", "done"]]
        if kind == EntityKind.STOCK_MOVE:
            picking_ids = [p.id for p in self.cache.get_partition(EntityKind.PICKING)]
            return [["picking_id", "in", picking_ids]]
        return []

    def _fetch(self, kind: EntityKind, domain: list, limit: Optional[int] = None,
               offset: int = 0) -> list[dict]:
        return self.client.search_read(
            REMOTE_MODELS[kind], domain, self._fields(kind),
            limit=limit, offset=offset,
        )

    def _to_entities(self, kind: EntityKind, records: list) -> list:
        entity_type = ENTITY_TYPES[kind]
        items = []
        for record in records:
            try:
                items.append(entity_type.from_record(record))
            except (AttributeError, ValueError) as e:
                logger.warning(f"Skipping {kind.value} record: {e}")
        return items

    def _matching_cached(self, kind: EntityKind, query: Optional[Query]) -> list:
        items = self.cache.get_partition(kind)
        if query is None:
            return items
        predicate = query.predicate(self.uid)
        return [item for item in items if predicate(item)]

    # ── Reads ───────────────────────────────────────────────────

    def get_cached(self, kind: EntityKind) -> list:
        return self.cache.get_partition(EntityKind(kind))

    def refresh(self, kind: EntityKind, query: Optional[Query] = None) -> Result:
        """Fresh entities for *kind*, or the cached ones when that fails.

        Without a query the whole partition is re-fetched and replaced.
        With a query only the requested page is fetched and upserted; ids
        the cached page held that the server no longer returns there are
        re-checked, and the ones deleted on the server are pruned.
        """
        kind = EntityKind(kind)
        if not self.is_online():
            items = self._matching_cached(kind, query)
            if query is not None:
                items = paginate(items, query.page, query.page_size).items
            return Result.failure(ErrorKind.CONNECTIVITY, "Working offline",
                                  fallback=items, from_cache=True)

        scope = query.scope_key(kind, self.uid) if query is not None else ""
        previous_ids = (set(self.cache.get_page_ids(scope, query.page))
                        if query is not None else set())
        try:
            if query is None:
                records = self._fetch(kind, self._base_domain(kind))
            else:
                page = self._fetch_page(kind, query)
                records = page.items
        except RemoteError as e:
            logger.warning(f"Refreshing {kind.value} failed, using cache: {e}")
            items = self._matching_cached(kind, query)
            if query is not None:
                items = paginate(items, query.page, query.page_size).items
            return Result.failure(_error_kind(e), str(e),
                                  fallback=items, from_cache=True)

        items = self._to_entities(kind, records)
        try:
            if query is None:
                self.cache.save_partition(kind, items)
            else:
                page_ids = [item.id for item in items]
                moved, removed = self._recheck(kind, previous_ids - set(page_ids))
                self.cache.apply_page(kind, scope, query.page, items + moved,
                                      page_ids, removed, page.total)
        except StorageError as e:
            logger.error(f"Could not cache {kind.value}: {e}")
            return Result.failure(ErrorKind.STORAGE, str(e), fallback=items)
        return Result.success(items)

    def _fetch_page(self, kind: EntityKind, query: Query) -> Page:
        domain = self._base_domain(kind) + query.to_domain(self.uid)
        model = REMOTE_MODELS[kind]
        total = self.client.search_count(model, domain)
        records = self._fetch(kind, domain, limit=query.page_size,
                              offset=query.offset)
        return Page(
            items=records,
            page_index=query.page,
            page_size=query.page_size,
            total=total,
            has_next=has_next_page(query.page, query.page_size, total),
        )

    def _recheck(self, kind: EntityKind, dropped: set) -> tuple[list, list[int]]:
        """Look up ids that left a page: (still on the server, gone).

        When the lookup fails nothing is pruned.
        """
        if not dropped:
            return [], []
        domain = self._base_domain(kind) + [["id", "in", sorted(dropped)]]
        try:
            found = self._to_entities(kind, self._fetch(kind, domain))
        except RemoteError as e:
            logger.warning(f"Could not re-check {len(dropped)} {kind.value} "
                           f"records, keeping them: {e}")
            return [], []
        gone = sorted(dropped - {item.id for item in found})
        return found, gone

    def refresh_page(self, kind: EntityKind, query: Query) -> Result:
        """One page of *kind* plus its total, online or from the cache."""
        kind = EntityKind(kind)
        result = self.refresh(kind, query)
        if result.ok:
            total = self.cache.get_total_count(query.scope_key(kind, self.uid))
            page = Page(
                items=result.value,
                page_index=query.page,
                page_size=query.page_size,
                total=total,
                has_next=has_next_page(query.page, query.page_size, total),
            )
            return Result.success(page)

        matches = self._matching_cached(kind, query)
        total = self.cache.get_total_count(query.scope_key(kind, self.uid))
        if total < len(matches):
            total = len(matches)
        page = paginate(matches, query.page, query.page_size)
        page.total = total
        page.has_next = has_next_page(query.page, query.page_size, total)
        return Result.failure(result.error, result.message,
                              fallback=page, from_cache=True)

    def sync_all(self) -> Result:
        """Snapshot every partition from the server.

        One kind failing does not stop the others. The value is a summary
        ``{"synced": {kind: count}, "failed": {kind: message}}``.
        """
        summary = {"synced": {}, "failed": {}}
        if not self.is_online():
            return Result.failure(ErrorKind.CONNECTIVITY, "Working offline",
                                  fallback=summary)

        first_error = None
        for kind in SYNC_ORDER:
            try:
                records = self._fetch(kind, self._base_domain(kind))
            except RemoteError as e:
                logger.warning(f"Sync of {kind.value} failed: {e}")
                summary["failed"][kind.value] = str(e)
                first_error = first_error or e
                continue
            items = self._to_entities(kind, records)
            self.cache.save_partition(kind, items)
            summary["synced"][kind.value] = len(items)
            logger.info(f"Synced {len(items)} {kind.value} records")

        if first_error is not None:
            return Result.failure(_error_kind(first_error), str(first_error),
                                  fallback=summary)
        self._mark_synced()
        return Result.success(summary)

    def refresh_partner_details(self, partner_id: int) -> Result:
        kind = EntityKind.PARTNER_DETAILS
        cached = self.cache.get_by_id(kind, partner_id)
        if not self.is_online():
            return Result.failure(ErrorKind.CONNECTIVITY, "Working offline",
                                  fallback=cached, from_cache=True)
        try:
            records = self.client.read(REMOTE_MODELS[kind], [partner_id],
                                       self._fields(kind))
        except RemoteError as e:
            logger.warning(f"Partner {partner_id} details failed, using cache: {e}")
            return Result.failure(_error_kind(e), str(e),
                                  fallback=cached, from_cache=True)
        items = self._to_entities(kind, records)
        if not items:
            return Result.failure(ErrorKind.DATA_SHAPE,
                                  f"Partner {partner_id} not returned",
                                  fallback=cached, from_cache=True)
        self.cache.put(kind, items[0])
        return Result.success(items[0])

    # ── Outbox surface ──────────────────────────────────────────

    def queue_operation(self, kind: OperationKind, subject_id: Optional[int] = None,
                        payload=None, subject_name: str = "") -> int:
        return self.outbox.enqueue(kind, subject_id, payload, subject_name)

    def list_queued(self, kind: Optional[OperationKind] = None) -> list[PendingOperation]:
        return self.outbox.list_pending(kind)

    def clear_queued(self, kind: OperationKind, subject_id: int):
        self.outbox.remove(kind, subject_id)

    # ── Placeholder binding ─────────────────────────────────────

    def _resolve(self, record_id):
        """Server id for *record_id*; placeholders go through id_mappings."""
        if not is_placeholder(record_id):
            return record_id
        remote_id = self.outbox.resolve_local_id(record_id)
        if remote_id is None:
            raise UnresolvedPlaceholderError(
                f"Local record {record_id} has not been created on the server yet"
            )
        return remote_id

    def _bind(self, kind: OperationKind, subject_id, payload):
        """Swap placeholder ids in an operation for the server ids they map to.

        Returns ``(subject_id, payload)`` ready for :func:`build_call`.
        A create's own placeholder is left alone; the server mints its id.
        """
        if kind == OperationKind.CREATE:
            return subject_id, payload
        if kind == OperationKind.ADD_PRODUCT_LINE:
            payload.picking_id = self._resolve(payload.picking_id)
            if payload.move_id is not None:
                payload.move_id = self._resolve(payload.move_id)
            return payload.move_id, payload
        return self._resolve(subject_id), payload

    # ── Gated writes ────────────────────────────────────────────

    def _write(self, kind: OperationKind, subject_id: Optional[int], payload,
               subject_name: str = "") -> Result:
        try:
            parsed = parse_payload(kind, payload)
        except PayloadError as e:
            return Result.failure(ErrorKind.DATA_SHAPE, str(e))

        if not self.is_online():
            stored_id = self.outbox.enqueue(kind, subject_id, parsed, subject_name)
            return Result.success(WriteResult(WriteOutcome.QUEUED, stored_id))

        try:
            subject_id, parsed = self._bind(kind, subject_id, parsed)
        except UnresolvedPlaceholderError as e:
            # Depends on a create still in the outbox; replay sends it after that
            logger.info(f"{kind.value} queued behind a pending create: {e}")
            stored_id = self.outbox.enqueue(kind, subject_id, payload, subject_name)
            return Result.success(WriteResult(WriteOutcome.QUEUED, stored_id))
        try:
            response = self.client.call(build_call(kind, subject_id, parsed))
        except RemoteError as e:
            logger.warning(f"{kind.value} on {subject_id} failed: {e}")
            return Result.failure(_error_kind(e), str(e))

        if kind in _CREATES and subject_id is None:
            subject_id = response
        picking_id = (parsed.picking_id if kind == OperationKind.ADD_PRODUCT_LINE
                      else subject_id)
        self._refresh_picking(picking_id)
        return Result.success(
            WriteResult(WriteOutcome.APPLIED, subject_id, response)
        )

    def _refresh_picking(self, picking_id: Optional[int]):
        """Re-read one picking and its moves into the cache after a write."""
        if not isinstance(picking_id, int) or isinstance(picking_id, bool):
            return
        try:
            records = self.client.read("stock.picking", [picking_id],
                                       self._fields(EntityKind.PICKING))
            moves = self._fetch(EntityKind.STOCK_MOVE,
                                [["picking_id", "=", picking_id]])
        except RemoteError as e:
            logger.warning(f"Could not re-read picking {picking_id}: {e}")
            return
        pickings = self._to_entities(EntityKind.PICKING, records)
        if pickings:
            self.cache.put(EntityKind.PICKING, pickings[0])
        self.cache.put_many(EntityKind.STOCK_MOVE,
                            self._to_entities(EntityKind.STOCK_MOVE, moves))

    def validate_picking(self, picking_id: int, picking_name: str = "",
                         snapshot: Optional[dict] = None) -> Result:
        payload = PickingActionPayload(picking_name, dict(snapshot or {}))
        return self._write(OperationKind.VALIDATE, picking_id, payload, picking_name)

    def cancel_picking(self, picking_id: int, picking_name: str = "",
                       snapshot: Optional[dict] = None) -> Result:
        payload = PickingActionPayload(picking_name, dict(snapshot or {}))
        return self._write(OperationKind.CANCEL, picking_id, payload, picking_name)

    def update_picking(self, picking_id: int, values, picking_name: str = "") -> Result:
        return self._write(OperationKind.UPDATE, picking_id, values, picking_name)

    def create_picking(self, payload, subject_name: str = "") -> Result:
        return self._write(OperationKind.CREATE, None, payload, subject_name)

    def update_product_line(self, payload, subject_name: str = "") -> Result:
        return self._write(OperationKind.ADD_PRODUCT_LINE, None, payload,
                           subject_name)

    # ── Replay ──────────────────────────────────────────────────

    def replay_outbox(self) -> ReplayReport:
        """Send queued operations to the server in enqueue order.

        Each entry is removed only after the server confirms it. The first
        failure halts the drain; the entry stays queued with its attempt
        count and error so the next replay resumes there. Placeholder ids
        are swapped for the server ids their creates received.

        Only one session per database file may replay at a time; the claim
        lives in the database so separate processes respect it too.
        """
        if not self.outbox.claim_replay(self._replay_owner):
            raise SyncLockError(
                "Another session is replaying the outbox. Try again in a moment."
            )
        try:
            report = ReplayReport()
            if not self.is_online():
                report.offline = True
                report.remaining = self.outbox.count()
                return report

            for op in self.outbox.list_pending():
                try:
                    parsed = parse_payload(op.kind, op.payload)
                    subject_id, parsed = self._bind(op.kind, op.subject_id, parsed)
                    call = build_call(op.kind, subject_id, parsed)
                    response = self.client.call(call)
                except (UnresolvedPlaceholderError, PayloadError, RemoteError) as e:
                    logger.warning(
                        f"Replay halted at {op.kind.value} {op.subject_id}: {e}"
                    )
                    self.outbox.record_failure(op.seq, str(e))
                    report.failed = op
                    report.error = str(e)
                    break

                if op.is_local_subject and call.method == "create":
                    try:
                        subject_id = int(response)
                        self.outbox.record_mapping(op.subject_id, subject_id,
                                                   op.kind)
                    except (TypeError, ValueError):
                        logger.warning(
                            f"{op.kind.value} {op.subject_id} returned no id"
                        )
                        subject_id = None
                self.outbox.discard(op.seq)
                report.applied.append(op)
                logger.info(f"Replayed {op.kind.value} {op.subject_id}")

                if op.kind == OperationKind.ADD_PRODUCT_LINE:
                    self._refresh_picking(parsed.picking_id)
                else:
                    self._refresh_picking(subject_id)

            report.remaining = self.outbox.count()
            if report.applied and report.completed:
                self._mark_synced()
            return report
        finally:
            self.outbox.release_replay(self._replay_owner)

    # ── Status ──────────────────────────────────────────────────

    def _mark_synced(self):
        now = datetime.now(timezone.utc).isoformat()
        self._last_sync = now
        if self._on_synced is not None:
            self._on_synced(now)

    def get_sync_status(self) -> dict:
        pending = self.outbox.count_by_kind()
        return {
            "online": self.is_online(),
            "pending": pending,
            "pending_total": sum(pending.values()),
            "partitions": self.cache.partition_status(),
            "last_sync": self._last_sync,
        }
