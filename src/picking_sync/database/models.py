"""Data models for the local cache and the outbox.

Remote records arrive as loosely shaped dicts (Odoo sends ``False`` for
empty values and ``[id, label]`` pairs for references). ``from_record``
normalizes each field on its own, so one odd field never costs the whole
record; only a missing or non-integer ``id`` is fatal, since the cache key
is built from it.
"""

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import ClassVar, Optional


class EntityKind(str, Enum):
    PICKING = "picking"
    RETURN_PICKING = "return_picking"
    PRODUCT = "product"
    PARTNER = "partner"
    PARTNER_DETAILS = "partner_details"
    USER = "user"
    OPERATION_TYPE = "operation_type"
    STOCK_MOVE = "stock_move"


class OperationKind(str, Enum):
    VALIDATE = "validate"
    CANCEL = "cancel"
    UPDATE = "update"
    CREATE = "create"
    ADD_PRODUCT_LINE = "add_product_line"


# ── Field coercion helpers ───────────────────────────────────────


def _record_id(value) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid record id: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid record id: {value!r}") from None


def _text(value) -> str:
    if value is None or value is False:
        return ""
    return str(value)


def _int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (list, tuple)):
        return _int(value[0]) if value else None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _float(value) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _bool(value) -> bool:
    return bool(value) and value != "False"


def _many2one(value) -> Optional[tuple]:
    """Normalize an Odoo reference to ``(id, label)``.

    Accepts ``[id, label]``, ``(id, label)``, a bare id, or ``False``.
    """
    if value is None or value is False:
        return None
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        ref_id = _int(value[0])
        if ref_id is None:
            return None
        label = _text(value[1]) if len(value) > 1 else ""
        return (ref_id, label)
    ref_id = _int(value)
    return (ref_id, "") if ref_id is not None else None


def _id_list(value) -> list[int]:
    if not isinstance(value, (list, tuple)):
        return []
    ids = []
    for item in value:
        item_id = _int(item)
        if item_id is not None:
            ids.append(item_id)
    return ids


def ref_id(ref: Optional[tuple]) -> Optional[int]:
    """The id half of an ``(id, label)`` reference."""
    return ref[0] if ref else None


def ref_label(ref: Optional[tuple]) -> str:
    """The label half of an ``(id, label)`` reference."""
    return ref[1] if ref else ""


class CachedEntity:
    """Shared behavior for every mirrored remote record."""

    kind: ClassVar[EntityKind]
    remote_model: ClassVar[str]
    remote_fields: ClassVar[tuple] = ()

    def to_record(self) -> dict:
        return asdict(self)

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}


# ── Entities ─────────────────────────────────────────────────────


@dataclass
class Picking(CachedEntity):
    kind: ClassVar[EntityKind] = EntityKind.PICKING
    remote_model: ClassVar[str] = "stock.picking"
    remote_fields: ClassVar[tuple] = (
        "id", "name", "partner_id", "picking_type_id", "picking_type_code",
        "scheduled_date", "date_deadline", "date_done", "state", "origin",
        "note", "move_type", "user_id", "location_id", "location_dest_id",
        "company_id", "backorder_id", "has_deadline_issue",
        "delay_alert_date", "activity_exception_decoration",
        "products_availability", "show_check_availability", "return_ids",
        "return_count",
    )

    id: int = 0
    name: str = ""
    partner_id: Optional[tuple] = None
    picking_type_id: Optional[tuple] = None
    picking_type_code: str = ""
    scheduled_date: str = ""
    date_deadline: str = ""
    date_done: str = ""
    state: str = ""
    origin: str = ""
    note: str = ""
    move_type: str = ""
    user_id: Optional[tuple] = None
    location_id: Optional[tuple] = None
    location_dest_id: Optional[tuple] = None
    group_id: Optional[tuple] = None
    company_id: Optional[tuple] = None
    backorder_id: Optional[tuple] = None
    has_deadline_issue: bool = False
    delay_alert_date: str = ""
    activity_exception_decoration: str = ""
    products_availability: str = ""
    show_check_availability: bool = False
    return_ids: list = field(default_factory=list)
    return_count: int = 0
    warehouse_name: str = ""

    @classmethod
    def fields_for_version(cls, version: int) -> list[str]:
        """Remote fields to read; ``group_id`` was dropped in Odoo 19."""
        names = list(cls.remote_fields)
        if version < 19:
            names.append("group_id")
        return names

    @classmethod
    def from_record(cls, record: dict) -> "Picking":
        return cls(
            id=_record_id(record.get("id")),
            name=_text(record.get("name")),
            partner_id=_many2one(record.get("partner_id")),
            picking_type_id=_many2one(record.get("picking_type_id")),
            picking_type_code=_text(record.get("picking_type_code")),
            scheduled_date=_text(record.get("scheduled_date")),
            date_deadline=_text(record.get("date_deadline")),
            date_done=_text(record.get("date_done")),
            state=_text(record.get("state")),
            origin=_text(record.get("origin")),
            note=_text(record.get("note")),
            move_type=_text(record.get("move_type")),
            user_id=_many2one(record.get("user_id")),
            location_id=_many2one(record.get("location_id")),
            location_dest_id=_many2one(record.get("location_dest_id")),
            group_id=_many2one(record.get("group_id")),
            company_id=_many2one(record.get("company_id")),
            backorder_id=_many2one(record.get("backorder_id")),
            has_deadline_issue=_bool(record.get("has_deadline_issue")),
            delay_alert_date=_text(record.get("delay_alert_date")),
            activity_exception_decoration=_text(
                record.get("activity_exception_decoration")
            ),
            products_availability=_text(record.get("products_availability")),
            show_check_availability=_bool(
                record.get("show_check_availability")
            ),
            return_ids=_id_list(record.get("return_ids")),
            return_count=_int(record.get("return_count")) or 0,
            warehouse_name=_text(record.get("warehouse_name")),
        )

    @property
    def partner_name(self) -> str:
        return ref_label(self.partner_id)

    @property
    def user_id_int(self) -> Optional[int]:
        return ref_id(self.user_id)

    @property
    def is_closed(self) -> bool:
        return self.state in ("done", "cancel")


@dataclass
class ReturnPicking(Picking):
    """A done picking that can be returned (cached for the returns screen)."""

    kind: ClassVar[EntityKind] = EntityKind.RETURN_PICKING

    @classmethod
    def fields_for_version(cls, version: int) -> list[str]:
        return [f for f in super().fields_for_version(version)
                if f != "group_id"]


@dataclass
class Product(CachedEntity):
    kind: ClassVar[EntityKind] = EntityKind.PRODUCT
    remote_model: ClassVar[str] = "product.product"
    remote_fields: ClassVar[tuple] = (
        "id", "name", "default_code", "barcode", "uom_id",
    )

    id: int = 0
    name: str = ""
    default_code: str = ""
    barcode: str = ""
    uom_id: Optional[tuple] = None

    @classmethod
    def from_record(cls, record: dict) -> "Product":
        return cls(
            id=_record_id(record.get("id")),
            name=_text(record.get("name")),
            default_code=_text(record.get("default_code")),
            barcode=_text(record.get("barcode")),
            uom_id=_many2one(record.get("uom_id")),
        )


@dataclass
class Partner(CachedEntity):
    kind: ClassVar[EntityKind] = EntityKind.PARTNER
    remote_model: ClassVar[str] = "res.partner"
    remote_fields: ClassVar[tuple] = (
        "id", "name", "street", "city", "zip", "state_id", "country_id",
    )

    id: int = 0
    name: str = ""
    street: str = ""
    city: str = ""
    zip: str = ""
    state_id: Optional[tuple] = None
    country_id: Optional[tuple] = None

    @classmethod
    def from_record(cls, record: dict) -> "Partner":
        return cls(
            id=_record_id(record.get("id")),
            name=_text(record.get("name")),
            street=_text(record.get("street")),
            city=_text(record.get("city")),
            zip=_text(record.get("zip")),
            state_id=_many2one(record.get("state_id")),
            country_id=_many2one(record.get("country_id")),
        )


@dataclass
class PartnerDetails(CachedEntity):
    kind: ClassVar[EntityKind] = EntityKind.PARTNER_DETAILS
    remote_model: ClassVar[str] = "res.partner"
    remote_fields: ClassVar[tuple] = (
        "id", "name", "contact_address", "phone", "email", "image_128",
    )

    id: int = 0
    name: str = ""
    contact_address: str = ""
    phone: str = ""
    email: str = ""
    image_128: str = ""

    @classmethod
    def from_record(cls, record: dict) -> "PartnerDetails":
        return cls(
            id=_record_id(record.get("id")),
            name=_text(record.get("name")),
            contact_address=_text(record.get("contact_address")),
            phone=_text(record.get("phone")),
            email=_text(record.get("email")),
            image_128=_text(record.get("image_128")),
        )


@dataclass
class User(CachedEntity):
    kind: ClassVar[EntityKind] = EntityKind.USER
    remote_model: ClassVar[str] = "res.users"
    remote_fields: ClassVar[tuple] = (
        "id", "name", "login", "email", "phone", "company_id",
    )

    id: int = 0
    name: str = ""
    login: str = ""
    email: str = ""
    phone: str = ""
    company_id: Optional[tuple] = None

    @classmethod
    def from_record(cls, record: dict) -> "User":
        return cls(
            id=_record_id(record.get("id")),
            name=_text(record.get("name")),
            login=_text(record.get("login")),
            email=_text(record.get("email")),
            phone=_text(record.get("phone")),
            company_id=_many2one(record.get("company_id")),
        )


@dataclass
class OperationType(CachedEntity):
    kind: ClassVar[EntityKind] = EntityKind.OPERATION_TYPE
    remote_model: ClassVar[str] = "stock.picking.type"
    remote_fields: ClassVar[tuple] = (
        "id", "name", "code", "warehouse_id",
        "default_location_src_id", "default_location_dest_id",
    )

    id: int = 0
    name: str = ""
    code: str = ""
    warehouse_id: Optional[tuple] = None
    default_location_src_id: Optional[int] = None
    default_location_dest_id: Optional[int] = None

    @classmethod
    def from_record(cls, record: dict) -> "OperationType":
        return cls(
            id=_record_id(record.get("id")),
            name=_text(record.get("name")),
            code=_text(record.get("code")),
            warehouse_id=_many2one(record.get("warehouse_id")),
            default_location_src_id=_int(
                record.get("default_location_src_id")
            ),
            default_location_dest_id=_int(
                record.get("default_location_dest_id")
            ),
        )


@dataclass
class StockMove(CachedEntity):
    kind: ClassVar[EntityKind] = EntityKind.STOCK_MOVE
    remote_model: ClassVar[str] = "stock.move"
    remote_fields: ClassVar[tuple] = (
        "id", "product_id", "product_uom_qty", "quantity", "product_uom",
        "picking_id", "location_id", "location_dest_id", "state",
    )

    id: int = 0
    product_id: Optional[tuple] = None
    product_uom_qty: float = 0.0
    quantity: float = 0.0
    product_uom: Optional[int] = None
    picking_id: Optional[tuple] = None
    location_id: Optional[tuple] = None
    location_dest_id: Optional[tuple] = None
    state: str = ""

    @classmethod
    def from_record(cls, record: dict) -> "StockMove":
        return cls(
            id=_record_id(record.get("id")),
            product_id=_many2one(record.get("product_id")),
            product_uom_qty=_float(record.get("product_uom_qty")),
            quantity=_float(record.get("quantity")),
            product_uom=_int(record.get("product_uom")),
            picking_id=_many2one(record.get("picking_id")),
            location_id=_many2one(record.get("location_id")),
            location_dest_id=_many2one(record.get("location_dest_id")),
            state=_text(record.get("state")),
        )

    @property
    def picking_id_int(self) -> Optional[int]:
        return ref_id(self.picking_id)


ENTITY_TYPES = {
    EntityKind.PICKING: Picking,
    EntityKind.RETURN_PICKING: ReturnPicking,
    EntityKind.PRODUCT: Product,
    EntityKind.PARTNER: Partner,
    EntityKind.PARTNER_DETAILS: PartnerDetails,
    EntityKind.USER: User,
    EntityKind.OPERATION_TYPE: OperationType,
    EntityKind.STOCK_MOVE: StockMove,
}

REMOTE_MODELS = {kind: cls.remote_model for kind, cls in ENTITY_TYPES.items()}


def entity_from_record(kind: EntityKind, record: dict) -> CachedEntity:
    """Build the typed entity for *kind* from a raw record."""
    return ENTITY_TYPES[EntityKind(kind)].from_record(record)


# ── Outbox ───────────────────────────────────────────────────────


def is_placeholder(record_id) -> bool:
    """Locally minted ids are negative; server ids never are."""
    return (isinstance(record_id, int) and not isinstance(record_id, bool)
            and record_id < 0)


@dataclass
class PendingOperation:
    """A queued mutation not yet confirmed by the server."""

    kind: OperationKind = OperationKind.UPDATE
    subject_id: int = 0
    payload: dict = field(default_factory=dict)
    subject_name: str = ""
    seq: Optional[int] = None
    queued_at: Optional[str] = None
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def is_local_subject(self) -> bool:
        """True when subject_id is a locally minted placeholder."""
        return is_placeholder(self.subject_id)
