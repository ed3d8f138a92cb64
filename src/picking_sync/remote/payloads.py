"""Typed payloads for queued and direct picking writes.

The server protocol is untyped, so payloads are validated and normalized
here, once, before they are stored in the outbox or sent. Each payload
knows how to turn itself into the values Odoo expects.
"""

from dataclasses import asdict, dataclass, field
from typing import Optional

from picking_sync.database.models import OperationKind
from picking_sync.utils.constants import DEFAULT_LOCATION_ID
from picking_sync.utils.formatters import ensure_odoo_date_format


class PayloadError(ValueError):
    """A payload is missing required fields or has the wrong shape."""


def _opt_int(data: dict, key: str) -> Optional[int]:
    value = data.get(key)
    if value is None or value is False or value == "":
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
        if value is None:
            return None
    if isinstance(value, bool):
        raise PayloadError(f"{key} must be an integer id, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise PayloadError(f"{key} must be an integer id, got {value!r}") from None


def _req_int(data: dict, key: str) -> int:
    value = _opt_int(data, key)
    if value is None:
        raise PayloadError(f"{key} is required")
    return value


def _opt_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or value is False:
        return None
    return str(value)


def _quantity(data: dict, key: str) -> float:
    value = data.get(key, 0)
    try:
        qty = float(value)
    except (TypeError, ValueError):
        raise PayloadError(f"{key} must be a number, got {value!r}") from None
    if qty < 0:
        raise PayloadError(f"{key} cannot be negative")
    return qty


@dataclass
class RemoteCall:
    model: str
    method: str
    args: list = field(default_factory=list)
    kwargs: dict = field(default_factory=dict)


@dataclass
class PickingActionPayload:
    """Validate / cancel request. The snapshot is only kept for display."""

    picking_name: str = ""
    snapshot: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "PickingActionPayload":
        snapshot = data.get("snapshot") or {}
        if not isinstance(snapshot, dict):
            raise PayloadError("snapshot must be a mapping")
        return cls(
            picking_name=_opt_str(data, "picking_name") or "",
            snapshot=dict(snapshot),
        )


@dataclass
class PickingUpdatePayload:
    """Header changes on an existing picking. Unset fields are not written."""

    partner_id: Optional[int] = None
    scheduled_date: Optional[str] = None
    origin: Optional[str] = None
    date_done: Optional[str] = None
    move_type: Optional[str] = None
    user_id: Optional[int] = None
    note: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "PickingUpdatePayload":
        payload = cls(
            partner_id=_opt_int(data, "partner_id"),
            scheduled_date=_opt_str(data, "scheduled_date"),
            origin=_opt_str(data, "origin"),
            date_done=_opt_str(data, "date_done"),
            move_type=_opt_str(data, "move_type"),
            user_id=_opt_int(data, "user_id"),
            note=_opt_str(data, "note"),
        )
        if not payload.to_values():
            raise PayloadError("update has no fields to write")
        return payload

    def to_values(self) -> dict:
        values = {k: v for k, v in asdict(self).items() if v is not None}
        for key in ("scheduled_date", "date_done"):
            if key in values:
                values[key] = ensure_odoo_date_format(values[key])
        return values


@dataclass
class CreateLine:
    product_id: int
    product_uom_qty: float = 1.0
    product_name: str = ""
    location_src_id: Optional[int] = None
    location_dest_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "CreateLine":
        if not isinstance(data, dict):
            raise PayloadError("each product line must be a mapping")
        return cls(
            product_id=_req_int(data, "product_id"),
            product_uom_qty=_quantity(data, "product_uom_qty"),
            product_name=_opt_str(data, "product_name") or "",
            location_src_id=_opt_int(data, "location_src_id"),
            location_dest_id=_opt_int(data, "location_dest_id"),
        )

    def to_command(self) -> list:
        """One2many ``(0, 0, vals)`` create command for ``move_ids``."""
        return [0, 0, {
            "name": self.product_name,
            "product_id": self.product_id,
            "product_uom_qty": self.product_uom_qty,
            "location_id": self.location_src_id or DEFAULT_LOCATION_ID,
            "location_dest_id": self.location_dest_id or DEFAULT_LOCATION_ID,
        }]


@dataclass
class PickingCreatePayload:
    operation_type_id: int
    partner_id: Optional[int] = None
    scheduled_date: Optional[str] = None
    origin: str = ""
    move_type: str = "direct"
    user_id: Optional[int] = None
    note: str = ""
    products: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "PickingCreatePayload":
        products = data.get("products") or []
        if not isinstance(products, list):
            raise PayloadError("products must be a list")
        return cls(
            operation_type_id=_req_int(data, "operation_type_id"),
            partner_id=_opt_int(data, "partner_id"),
            scheduled_date=_opt_str(data, "scheduled_date"),
            origin=_opt_str(data, "origin") or "",
            move_type=_opt_str(data, "move_type") or "direct",
            user_id=_opt_int(data, "user_id"),
            note=_opt_str(data, "note") or "",
            products=[
                p if isinstance(p, CreateLine) else CreateLine.from_dict(p)
                for p in products
            ],
        )

    def to_values(self) -> dict:
        values = {
            "picking_type_id": self.operation_type_id,
            "partner_id": self.partner_id or False,
            "origin": self.origin,
            "move_type": self.move_type,
            "user_id": self.user_id or False,
            "note": self.note,
            "move_ids": [line.to_command() for line in self.products],
        }
        if self.scheduled_date:
            values["scheduled_date"] = ensure_odoo_date_format(
                self.scheduled_date
            )
        return values


@dataclass
class ProductLinePayload:
    """Quantity/product change on a move, or a new move when move_id is None."""

    picking_id: int
    product_id: int
    quantity: float = 0.0
    move_id: Optional[int] = None
    location_id: Optional[int] = None
    location_dest_id: Optional[int] = None
    picking_name: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ProductLinePayload":
        return cls(
            picking_id=_req_int(data, "picking_id"),
            product_id=_req_int(data, "product_id"),
            quantity=_quantity(data, "quantity"),
            move_id=_opt_int(data, "move_id"),
            location_id=_opt_int(data, "location_id"),
            location_dest_id=_opt_int(data, "location_dest_id"),
            picking_name=_opt_str(data, "picking_name") or "",
        )

    def to_values(self) -> dict:
        values = {
            "product_id": self.product_id,
            "quantity": self.quantity,
        }
        if self.location_id:
            values["location_id"] = self.location_id
        if self.location_dest_id:
            values["location_dest_id"] = self.location_dest_id
        if self.move_id is None:
            values["picking_id"] = self.picking_id
            values["product_uom_qty"] = self.quantity
            values.setdefault("location_id", DEFAULT_LOCATION_ID)
            values.setdefault("location_dest_id", DEFAULT_LOCATION_ID)
        return values


PAYLOAD_TYPES = {
    OperationKind.VALIDATE: PickingActionPayload,
    OperationKind.CANCEL: PickingActionPayload,
    OperationKind.UPDATE: PickingUpdatePayload,
    OperationKind.CREATE: PickingCreatePayload,
    OperationKind.ADD_PRODUCT_LINE: ProductLinePayload,
}


def parse_payload(kind: OperationKind, data):
    """Validate *data* (a dict or a payload object) for operation *kind*."""
    kind = OperationKind(kind)
    payload_type = PAYLOAD_TYPES[kind]
    if isinstance(data, payload_type):
        data = payload_to_dict(data)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PayloadError(f"{kind.value} payload must be a mapping")
    return payload_type.from_dict(data)


def payload_to_dict(payload) -> dict:
    return asdict(payload)


def build_call(kind: OperationKind, subject_id: int, payload) -> RemoteCall:
    """Translate an operation into the RPC that applies it on the server."""
    kind = OperationKind(kind)
    payload = parse_payload(kind, payload)
    if kind == OperationKind.VALIDATE:
        return RemoteCall("stock.picking", "button_validate", [[subject_id]])
    if kind == OperationKind.CANCEL:
        return RemoteCall("stock.picking", "action_cancel", [[subject_id]])
    if kind == OperationKind.UPDATE:
        return RemoteCall(
            "stock.picking", "write", [[subject_id], payload.to_values()]
        )
    if kind == OperationKind.CREATE:
        return RemoteCall("stock.picking", "create", [payload.to_values()])
    if payload.move_id is not None:
        return RemoteCall(
            "stock.move", "write", [[payload.move_id], payload.to_values()]
        )
    return RemoteCall("stock.move", "create", [payload.to_values()])
