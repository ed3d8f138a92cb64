"""Application-wide constants."""

APP_NAME = "picking-sync"
APP_VERSION = "1.0.0"

# Default page size for picking lists (matches the mobile list screens)
PAGE_SIZE = 40

# Odoo datetime wire format
ODOO_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
ODOO_DATE_FORMAT = "%Y-%m-%d"

# ── Picking states ───────────────────────────────────────────────
PICKING_STATES = ["draft", "waiting", "confirmed", "assigned", "done", "cancel"]

# States that still need work (used by late / backorder / planning filters)
ACTIVE_PICKING_STATES = ["assigned", "waiting", "confirmed"]

# States that close a picking
CLOSED_PICKING_STATES = ["done", "cancel"]

# Picking type codes
PICKING_TYPE_CODES = ["incoming", "outgoing", "internal"]

# ── Filters (UI label -> technical name) ─────────────────────────
FILTER_NAMES = {
    "To Do": "to_do",
    "My Transfer": "my_transfer",
    "Draft": "draft",
    "Waiting": "waiting",
    "Ready": "ready",
    "Receipts": "receipt",
    "Deliveries": "deliveries",
    "Internal": "internal",
    "Late": "late",
    "Planning Issues": "planning_issue",
    "Backorders": "backorder",
    "Warning": "warning",
}

# ── Grouping (UI label -> field) ─────────────────────────────────
GROUP_BY_FIELDS = {
    "Status": "state",
    "Source Document": "origin",
    "Operation Type": "picking_type_id",
    "Partner": "partner_id",
}

# Reference fields whose group label is the display half of (id, label)
REFERENCE_GROUP_FIELDS = {
    "partner_id", "picking_type_id", "user_id", "location_id",
    "location_dest_id", "company_id", "group_id",
}

UNKNOWN_GROUP = "Unknown"
NO_SOURCE_GROUP = "No Source"

# Fallback location for new move lines when the operation type has none
DEFAULT_LOCATION_ID = 1

# Name of the persisted counter that mints local placeholder ids
LOCAL_ID_COUNTER = "pending_creates"

# Seconds after which another session's replay claim counts as abandoned
REPLAY_CLAIM_TIMEOUT = 300

# Name of the single replay claim row
REPLAY_CLAIM_NAME = "outbox"
