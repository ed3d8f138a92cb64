"""Group cached entities into labelled buckets for list screens."""

from picking_sync.utils.constants import (
    NO_SOURCE_GROUP,
    REFERENCE_GROUP_FIELDS,
    UNKNOWN_GROUP,
)
from picking_sync.utils.formatters import capitalize_first_letter


def _value(item, field_name: str):
    if isinstance(item, dict):
        return item.get(field_name)
    return getattr(item, field_name, None)


def group_key(item, field_name: str) -> str:
    """Display label of the bucket *item* belongs to when grouped by *field_name*."""
    value = _value(item, field_name)
    if value is None or value is False or value == "":
        return NO_SOURCE_GROUP if field_name == "origin" else UNKNOWN_GROUP

    if field_name == "state":
        return capitalize_first_letter(str(value))
    if field_name in REFERENCE_GROUP_FIELDS or isinstance(value, (list, tuple)):
        if isinstance(value, (list, tuple)) and len(value) > 1 and value[1]:
            return str(value[1])
        return UNKNOWN_GROUP
    return str(value)


def apply_grouping(items, field_name: str) -> dict[str, list]:
    """Bucket *items* by *field_name*, keeping first-seen group order.

    Every item lands in exactly one bucket.
    """
    groups: dict[str, list] = {}
    for item in items:
        groups.setdefault(group_key(item, field_name), []).append(item)
    return groups
