"""Tests for draining the outbox once the server is reachable."""

import pytest

from picking_sync.database.cache_store import EntityCacheStore
from picking_sync.database.connection import DatabaseConnection
from picking_sync.database.models import OperationKind
from picking_sync.database.outbox import Outbox
from picking_sync.sync.result import WriteOutcome
from picking_sync.sync.sync_manager import SyncLockError, SyncManager

WRITES = {"button_validate", "action_cancel", "write", "create"}


def _writes(fake_odoo):
    return [(model, method) for model, method in fake_odoo.methods()
            if method in WRITES]


class InterleavingGate:
    """Always online; starts *other*'s replay from inside the first one."""

    def __init__(self, other=None):
        self.other = other
        self.errors = []

    def is_online(self) -> bool:
        if self.other is not None:
            other, self.other = self.other, None
            try:
                other.replay_outbox()
            except SyncLockError as e:
                self.errors.append(e)
        return True


@pytest.fixture
def queued(outbox):
    """Validate 5, update 6, create (local id -1), queued in that order."""
    outbox.enqueue(OperationKind.VALIDATE, 5, {"picking_name": "WH/OUT/00005"})
    outbox.enqueue(OperationKind.UPDATE, 6, {"origin": "Phone order"})
    local_id = outbox.enqueue(OperationKind.CREATE, payload={
        "operation_type_id": 2,
        "products": [{"product_id": 100, "product_uom_qty": 1}],
    })
    return local_id


class TestReplayOrder:
    def test_drains_in_enqueue_order(self, manager, outbox, fake_odoo, queued):
        report = manager.replay_outbox()
        assert report.completed
        assert len(report.applied) == 3
        assert report.remaining == 0
        assert _writes(fake_odoo) == [
            ("stock.picking", "button_validate"),
            ("stock.picking", "write"),
            ("stock.picking", "create"),
        ]
        assert outbox.count() == 0

    def test_create_mapping_recorded(self, manager, outbox, fake_odoo, queued):
        manager.replay_outbox()
        assert outbox.resolve_local_id(queued) == 9001

    def test_create_sends_move_commands(self, manager, fake_odoo, queued):
        manager.replay_outbox()
        create = [c for c in fake_odoo.calls if c[1] == "create"][0]
        assert create[2][0]["move_ids"][0][:2] == [0, 0]

    def test_overwritten_entry_replays_latest(self, manager, outbox, fake_odoo):
        outbox.enqueue(OperationKind.UPDATE, 6, {"origin": "A"})
        outbox.enqueue(OperationKind.UPDATE, 6, {"origin": "B"})
        manager.replay_outbox()
        writes = [c for c in fake_odoo.calls if c[1] == "write"]
        assert len(writes) == 1
        assert writes[0][2] == [[6], {"origin": "B"}]

    def test_product_line_create_and_write(self, manager, outbox, fake_odoo):
        outbox.enqueue(OperationKind.ADD_PRODUCT_LINE, payload={
            "picking_id": 5, "product_id": 100, "quantity": 2, "move_id": 77,
        })
        local_id = outbox.enqueue(OperationKind.ADD_PRODUCT_LINE, payload={
            "picking_id": 5, "product_id": 101, "quantity": 1,
        })
        manager.replay_outbox()
        assert _writes(fake_odoo) == [("stock.move", "write"),
                                      ("stock.move", "create")]
        assert outbox.resolve_local_id(local_id) == 9001
        assert outbox.resolve_local_id(77) is None

    def test_empty_outbox(self, manager, fake_odoo):
        report = manager.replay_outbox()
        assert report.completed
        assert report.applied == []
        assert fake_odoo.calls == []


class TestPlaceholderBinding:
    """Operations on a record created offline reach the server's id."""

    @pytest.fixture
    def offline_picking(self, manager, gate):
        gate.online = False
        local_id = manager.create_picking({"operation_type_id": 2}).value.subject_id
        gate.online = True
        return local_id

    def test_validate_uses_created_id(self, manager, gate, fake_odoo,
                                      offline_picking):
        gate.online = False
        manager.validate_picking(offline_picking, "New transfer")
        manager.update_picking(offline_picking, {"origin": "Phone order"})
        gate.online = True
        report = manager.replay_outbox()
        assert report.completed
        calls = {c[1]: c[2] for c in fake_odoo.calls if c[1] in WRITES}
        assert calls["button_validate"] == [[9001]]
        assert calls["write"][0] == [9001]

    def test_product_line_on_new_picking(self, manager, gate, fake_odoo,
                                         offline_picking):
        gate.online = False
        manager.update_product_line({
            "picking_id": offline_picking, "product_id": 100, "quantity": 2,
        })
        gate.online = True
        manager.replay_outbox()
        move_create = [c for c in fake_odoo.calls
                       if c[:2] == ("stock.move", "create")][0]
        assert move_create[2][0]["picking_id"] == 9001

    def test_unmapped_placeholder_halts(self, manager, outbox, fake_odoo,
                                        offline_picking):
        outbox.enqueue(OperationKind.VALIDATE, offline_picking)
        manager.clear_queued(OperationKind.CREATE, offline_picking)
        report = manager.replay_outbox()
        assert report.failed.kind == OperationKind.VALIDATE
        assert _writes(fake_odoo) == []
        assert outbox.get(OperationKind.VALIDATE, offline_picking).attempts == 1

    def test_online_write_waits_for_queued_create(self, manager, outbox,
                                                  fake_odoo, offline_picking):
        result = manager.validate_picking(offline_picking)
        assert result.value.outcome == WriteOutcome.QUEUED
        assert _writes(fake_odoo) == []
        assert outbox.get(OperationKind.VALIDATE, offline_picking) is not None

    def test_online_write_after_create_landed(self, manager, fake_odoo,
                                              offline_picking):
        manager.replay_outbox()
        result = manager.cancel_picking(offline_picking)
        assert result.value.outcome == WriteOutcome.APPLIED
        cancel = [c for c in fake_odoo.calls if c[1] == "action_cancel"][0]
        assert cancel[2] == [[9001]]


class TestReplayFailures:
    def test_halts_on_first_failure(self, manager, outbox, fake_odoo, queued):
        fake_odoo.fail[("stock.picking", "write")] = "Record is locked"
        report = manager.replay_outbox()
        assert not report.completed
        assert [op.kind for op in report.applied] == [OperationKind.VALIDATE]
        assert report.failed.kind == OperationKind.UPDATE
        assert report.error == "Record is locked"
        assert report.remaining == 2
        assert ("stock.picking", "create") not in _writes(fake_odoo)

    def test_failure_recorded_on_entry(self, manager, outbox, fake_odoo, queued):
        fake_odoo.fail[("stock.picking", "write")] = "Record is locked"
        manager.replay_outbox()
        manager.replay_outbox()
        op = outbox.get(OperationKind.UPDATE, 6)
        assert op.attempts == 2
        assert op.last_error == "Record is locked"

    def test_resumes_where_it_stopped(self, manager, outbox, fake_odoo, queued):
        fake_odoo.fail[("stock.picking", "write")] = "Record is locked"
        manager.replay_outbox()
        del fake_odoo.fail[("stock.picking", "write")]
        report = manager.replay_outbox()
        assert report.completed
        assert _writes(fake_odoo).count(("stock.picking", "button_validate")) == 1
        assert outbox.count() == 0

    def test_connection_drop_halts(self, manager, outbox, fake_odoo, queued):
        fake_odoo.down = True
        report = manager.replay_outbox()
        assert report.failed is not None
        assert report.applied == []
        assert outbox.count() == 3

    def test_offline_sends_nothing(self, manager, gate, outbox, fake_odoo, queued):
        gate.online = False
        report = manager.replay_outbox()
        assert report.offline
        assert not report.completed
        assert report.remaining == 3
        assert fake_odoo.calls == []

    def test_replay_rejected_while_another_session_holds_claim(
            self, manager, outbox, fake_odoo, queued):
        outbox.claim_replay("another-session")
        with pytest.raises(SyncLockError):
            manager.replay_outbox()
        assert _writes(fake_odoo) == []
        assert outbox.count() == 3

    def test_second_session_on_same_file_rejected(self, db_path, cache, outbox,
                                                  client, fake_odoo, queued):
        other_db = DatabaseConnection(db_path)
        other = SyncManager(EntityCacheStore(other_db), Outbox(other_db),
                            client, InterleavingGate())
        gate = InterleavingGate(other)
        report = SyncManager(cache, outbox, client, gate).replay_outbox()
        assert len(gate.errors) == 1
        assert report.completed
        assert _writes(fake_odoo).count(("stock.picking", "button_validate")) == 1

    def test_same_manager_cannot_reenter(self, cache, outbox, client, fake_odoo,
                                         queued):
        gate = InterleavingGate()
        mgr = SyncManager(cache, outbox, client, gate)
        gate.other = mgr
        report = mgr.replay_outbox()
        assert len(gate.errors) == 1
        assert report.completed
        assert _writes(fake_odoo).count(("stock.picking", "create")) == 1

    def test_claim_released_after_replay(self, manager, outbox, fake_odoo, queued):
        fake_odoo.fail[("stock.picking", "write")] = "Record is locked"
        manager.replay_outbox()
        assert outbox.replay_claim_owner() is None
        manager.replay_outbox()
