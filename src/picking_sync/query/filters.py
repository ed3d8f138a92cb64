"""Named picking filters, as Odoo domains and as local predicates.

The same filter names drive both paths: ``build_filter_domain`` pre-filters
on the server, ``build_filter_predicate`` post-filters cached entities when
offline. Filters compose conjunctively; ``late`` and ``planning_issue`` are
disjunctions internally.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from picking_sync.database.models import EntityKind, ref_id
from picking_sync.utils.constants import (
    ACTIVE_PICKING_STATES,
    CLOSED_PICKING_STATES,
    PAGE_SIZE,
)
from picking_sync.utils.formatters import format_odoo_datetime, parse_odoo_datetime

logger = logging.getLogger(__name__)

Predicate = Callable[[object], bool]


def _get(item, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _ref_id(item, name: str) -> Optional[int]:
    value = _get(item, name)
    if isinstance(value, (list, tuple)):
        return ref_id(value) if value else None
    if value is None or value is False:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _before(item, name: str, now: datetime) -> bool:
    parsed = parse_odoo_datetime(_get(item, name))
    return parsed is not None and parsed < now


def _is_set(item, name: str) -> bool:
    value = _get(item, name)
    return value not in (None, False, "", [], ())


# ── Remote domains ──────────────────────────────────────────────


def _filter_domain(name: str, uid: int, now: str) -> Optional[list]:
    if name == "to_do":
        return [
            ["user_id", "in", [uid, False]],
            ["state", "not in", list(CLOSED_PICKING_STATES)],
        ]
    if name == "my_transfer":
        return [["user_id", "=", uid]]
    if name == "draft":
        return [["state", "=", "draft"]]
    if name == "waiting":
        return [["state", "in", ["confirmed", "waiting"]]]
    if name == "ready":
        return [["state", "=", "assigned"]]
    if name == "receipt":
        return [["picking_type_code", "=", "incoming"]]
    if name == "deliveries":
        return [["picking_type_code", "=", "outgoing"]]
    if name == "internal":
        return [["picking_type_code", "=", "internal"]]
    if name == "late":
        return [
            ["state", "in", list(ACTIVE_PICKING_STATES)],
            "|", "|",
            ["has_deadline_issue", "=", True],
            ["date_deadline", "<", now],
            ["scheduled_date", "<", now],
        ]
    if name == "planning_issue":
        return [
            "|",
            ["delay_alert_date", "!=", False],
            "&",
            ["scheduled_date", "<", now],
            ["state", "in", list(ACTIVE_PICKING_STATES)],
        ]
    if name == "backorder":
        return [
            ["backorder_id", "!=", False],
            ["state", "in", list(ACTIVE_PICKING_STATES)],
        ]
    if name == "warning":
        return [["activity_exception_decoration", "!=", False]]
    return None


def build_filter_domain(filters, uid: int,
                        now: Optional[datetime] = None) -> list:
    """Odoo domain for the selected filter names (implicitly AND-ed)."""
    stamp = format_odoo_datetime(now or datetime.now())
    domain = []
    for name in filters or []:
        part = _filter_domain(name, uid, stamp)
        if part is None:
            logger.debug(f"Ignoring unknown filter {name!r}")
            continue
        domain.extend(part)
    return domain


# ── Local predicates ────────────────────────────────────────────


def _filter_predicate(name: str, uid: int, now: datetime) -> Optional[Predicate]:
    active = set(ACTIVE_PICKING_STATES)
    if name == "to_do":
        return lambda p: (_ref_id(p, "user_id") in (uid, None)
                          and _get(p, "state") not in CLOSED_PICKING_STATES)
    if name == "my_transfer":
        return lambda p: _ref_id(p, "user_id") == uid
    if name == "draft":
        return lambda p: _get(p, "state") == "draft"
    if name == "waiting":
        return lambda p: _get(p, "state") in ("confirmed", "waiting")
    if name == "ready":
        return lambda p: _get(p, "state") == "assigned"
    if name == "receipt":
        return lambda p: _get(p, "picking_type_code") == "incoming"
    if name == "deliveries":
        return lambda p: _get(p, "picking_type_code") == "outgoing"
    if name == "internal":
        return lambda p: _get(p, "picking_type_code") == "internal"
    if name == "late":
        return lambda p: _get(p, "state") in active and (
            bool(_get(p, "has_deadline_issue"))
            or _before(p, "date_deadline", now)
            or _before(p, "scheduled_date", now)
        )
    if name == "planning_issue":
        return lambda p: _is_set(p, "delay_alert_date") or (
            _before(p, "scheduled_date", now) and _get(p, "state") in active
        )
    if name == "backorder":
        return lambda p: _is_set(p, "backorder_id") and _get(p, "state") in active
    if name == "warning":
        return lambda p: _is_set(p, "activity_exception_decoration")
    return None


def build_filter_predicate(filters, uid: int,
                           now: Optional[datetime] = None) -> Predicate:
    """Local predicate matching what ``build_filter_domain`` asks the server."""
    now = now or datetime.now()
    predicates = []
    for name in filters or []:
        predicate = _filter_predicate(name, uid, now)
        if predicate is None:
            logger.debug(f"Ignoring unknown filter {name!r}")
            continue
        predicates.append(predicate)
    return lambda item: all(p(item) for p in predicates)


# ── Query ───────────────────────────────────────────────────────


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)


@dataclass
class Query:
    """Search, filter and page selection for a list screen."""

    search_term: str = ""
    state: Optional[str] = None
    picking_type_code: Optional[str] = None
    scheduled_on: Optional[date] = None
    deadline_on: Optional[date] = None
    filters: list = field(default_factory=list)
    page: int = 0
    page_size: int = PAGE_SIZE

    @property
    def offset(self) -> int:
        return self.page * self.page_size

    def to_domain(self, uid: int, now: Optional[datetime] = None) -> list:
        domain = build_filter_domain(self.filters, uid, now)
        if self.search_term:
            domain.append(["name", "ilike", self.search_term])
        if self.state:
            domain.append(["state", "=", self.state])
        if self.picking_type_code:
            domain.append(["picking_type_code", "=", self.picking_type_code])
        for field_name, day in (("scheduled_date", self.scheduled_on),
                                ("date_deadline", self.deadline_on)):
            if day is None:
                continue
            start, end = _day_bounds(day)
            domain.append([field_name, ">=", format_odoo_datetime(start)])
            domain.append([field_name, "<", format_odoo_datetime(end)])
        return domain

    def predicate(self, uid: int, now: Optional[datetime] = None) -> Predicate:
        base = build_filter_predicate(self.filters, uid, now)
        term = (self.search_term or "").lower()

        def on_day(item, field_name: str, day: Optional[date]) -> bool:
            if day is None:
                return True
            parsed = parse_odoo_datetime(_get(item, field_name))
            return parsed is not None and parsed.date() == day

        def matches(item) -> bool:
            if not base(item):
                return False
            if term and term not in str(_get(item, "name") or "").lower():
                return False
            if self.state and _get(item, "state") != self.state:
                return False
            if (self.picking_type_code
                    and _get(item, "picking_type_code") != self.picking_type_code):
                return False
            return (on_day(item, "scheduled_date", self.scheduled_on)
                    and on_day(item, "date_deadline", self.deadline_on))

        return matches

    def scope_key(self, kind: EntityKind, uid: Optional[int] = None) -> str:
        """Total-count cache key: same selection, same key, any page."""
        selection = {
            "uid": uid,
            "search": self.search_term or "",
            "state": self.state or "",
            "type": self.picking_type_code or "",
            "scheduled_on": self.scheduled_on.isoformat() if self.scheduled_on else "",
            "deadline_on": self.deadline_on.isoformat() if self.deadline_on else "",
            "filters": sorted(self.filters or []),
        }
        return f"{EntityKind(kind).value}:{json.dumps(selection, sort_keys=True)}"

