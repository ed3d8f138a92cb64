"""Tests for named filters and Query."""

from datetime import date, datetime

import pytest

from picking_sync.database.models import EntityKind, Picking
from picking_sync.query.filters import (
    Query,
    build_filter_domain,
    build_filter_predicate,
)

UID = 2
NOW = datetime(2030, 6, 1, 12, 0, 0)
PAST = "2030-05-01 09:00:00"
FUTURE = "2030-07-01 09:00:00"


@pytest.fixture
def pickings(make_picking):
    """Ten pickings across states, owners and operation types."""
    return [
        Picking.from_record(make_picking(1, state="assigned", user_id=[UID, "Admin"])),
        Picking.from_record(make_picking(2, state="assigned", user_id=[7, "Marc"])),
        Picking.from_record(make_picking(3, state="assigned", user_id=False)),
        Picking.from_record(make_picking(4, state="draft", user_id=[UID, "Admin"])),
        Picking.from_record(make_picking(5, state="done", user_id=[UID, "Admin"])),
        Picking.from_record(make_picking(6, state="confirmed", user_id=False,
                                         picking_type_code="incoming")),
        Picking.from_record(make_picking(7, state="waiting", user_id=[7, "Marc"],
                                         picking_type_code="internal")),
        Picking.from_record(make_picking(8, state="cancel", user_id=False)),
        Picking.from_record(make_picking(9, state="assigned", user_id=[UID, "Admin"],
                                         scheduled_date=PAST)),
        Picking.from_record(make_picking(10, state="assigned", user_id=[7, "Marc"],
                                         backorder_id=[3, "WH/OUT/00003"])),
    ]


def _ids(items, filters):
    predicate = build_filter_predicate(filters, UID, NOW)
    return [p.id for p in items if predicate(p)]


class TestFilterPredicates:
    def test_filters_compose_as_intersection(self, pickings):
        ready = set(_ids(pickings, ["ready"]))
        mine = set(_ids(pickings, ["my_transfer"]))
        assert _ids(pickings, ["ready", "my_transfer"]) == sorted(ready & mine)
        assert _ids(pickings, ["ready", "my_transfer"]) == [1, 9]

    def test_to_do_includes_unassigned_open(self, pickings):
        assert _ids(pickings, ["to_do"]) == [1, 3, 4, 6, 9]

    def test_state_filters(self, pickings):
        assert _ids(pickings, ["draft"]) == [4]
        assert _ids(pickings, ["waiting"]) == [6, 7]

    def test_type_filters(self, pickings):
        assert _ids(pickings, ["receipt"]) == [6]
        assert _ids(pickings, ["internal"]) == [7]
        assert 6 not in _ids(pickings, ["deliveries"])

    def test_backorder(self, pickings):
        assert _ids(pickings, ["backorder"]) == [10]

    def test_no_filters_match_everything(self, pickings):
        assert len(_ids(pickings, [])) == 10

    def test_unknown_filter_ignored(self, pickings):
        assert _ids(pickings, ["ready", "bogus"]) == _ids(pickings, ["ready"])

    def test_works_on_raw_records(self, make_picking):
        record = make_picking(1, state="assigned", user_id=[UID, "Admin"])
        assert build_filter_predicate(["ready", "my_transfer"], UID, NOW)(record)


class TestLateAndPlanning:
    @pytest.mark.parametrize("fields, expected", [
        ({"scheduled_date": PAST}, True),
        ({"date_deadline": PAST}, True),
        ({"has_deadline_issue": True}, True),
        ({}, False),
        ({"scheduled_date": PAST, "state": "done"}, False),
        ({"scheduled_date": PAST, "state": "draft"}, False),
    ])
    def test_late(self, make_picking, fields, expected):
        picking = Picking.from_record(
            make_picking(1, **{"scheduled_date": FUTURE, **fields}))
        assert build_filter_predicate(["late"], UID, NOW)(picking) is expected

    @pytest.mark.parametrize("fields, expected", [
        ({"delay_alert_date": PAST}, True),
        ({"delay_alert_date": PAST, "state": "done"}, True),
        ({"scheduled_date": PAST}, True),
        ({"scheduled_date": PAST, "state": "draft"}, False),
        ({}, False),
    ])
    def test_planning_issue(self, make_picking, fields, expected):
        picking = Picking.from_record(
            make_picking(1, **{"scheduled_date": FUTURE, **fields}))
        predicate = build_filter_predicate(["planning_issue"], UID, NOW)
        assert predicate(picking) is expected

    def test_warning(self, make_picking):
        flagged = make_picking(1, activity_exception_decoration="warning")
        assert build_filter_predicate(["warning"], UID, NOW)(flagged)
        assert not build_filter_predicate(["warning"], UID, NOW)(make_picking(2))


class TestFilterDomains:
    def test_conjunction_is_concatenation(self):
        domain = build_filter_domain(["ready", "my_transfer"], UID, NOW)
        assert domain == [["state", "=", "assigned"], ["user_id", "=", UID]]

    def test_late_is_prefix_disjunction(self):
        domain = build_filter_domain(["late"], UID, NOW)
        assert domain[0][0] == "state"
        assert domain[1:3] == ["|", "|"]
        assert ["scheduled_date", "<", "2030-06-01 12:00:00"] in domain

    def test_planning_issue_shape(self):
        domain = build_filter_domain(["planning_issue"], UID, NOW)
        assert domain[0] == "|"
        assert domain[2] == "&"

    def test_to_do_allows_unassigned(self):
        domain = build_filter_domain(["to_do"], UID, NOW)
        assert ["user_id", "in", [UID, False]] in domain

    def test_unknown_filter_ignored(self):
        assert build_filter_domain(["bogus"], UID, NOW) == []


class TestQuery:
    def test_offset(self):
        assert Query(page=2, page_size=40).offset == 80

    def test_to_domain(self):
        query = Query(search_term="OUT/0001", state="assigned",
                      picking_type_code="outgoing", filters=["my_transfer"],
                      scheduled_on=date(2030, 6, 1))
        domain = query.to_domain(UID, NOW)
        assert ["user_id", "=", UID] in domain
        assert ["name", "ilike", "OUT/0001"] in domain
        assert ["state", "=", "assigned"] in domain
        assert ["picking_type_code", "=", "outgoing"] in domain
        assert ["scheduled_date", ">=", "2030-06-01 00:00:00"] in domain
        assert ["scheduled_date", "<", "2030-06-02 00:00:00"] in domain

    def test_predicate_matches_domain_selection(self, pickings):
        query = Query(search_term="out/0000", filters=["ready"])
        predicate = query.predicate(UID, NOW)
        assert [p.id for p in pickings if predicate(p)] == [1, 2, 3, 9]

    def test_predicate_day(self, pickings):
        query = Query(scheduled_on=date(2030, 5, 1))
        predicate = query.predicate(UID, NOW)
        assert [p.id for p in pickings if predicate(p)] == [9]

    def test_scope_key_ignores_page(self):
        a = Query(filters=["ready", "late"], page=0)
        b = Query(filters=["late", "ready"], page=3)
        assert a.scope_key(EntityKind.PICKING, UID) == b.scope_key(EntityKind.PICKING, UID)

    def test_scope_key_differs_by_selection(self):
        a = Query(filters=["ready"]).scope_key(EntityKind.PICKING, UID)
        b = Query(filters=["draft"]).scope_key(EntityKind.PICKING, UID)
        c = Query(filters=["ready"]).scope_key(EntityKind.PICKING, 7)
        assert len({a, b, c}) == 3
        assert a.startswith("picking:")
