"""Formatting utilities for display values and Odoo wire values."""

import re
from datetime import date, datetime
from typing import Optional

from picking_sync.utils.constants import ODOO_DATE_FORMAT, ODOO_DATETIME_FORMAT

_ODOO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")


def capitalize_first_letter(text: str) -> str:
    """Upper-case the first letter and lower-case the rest ('assigned' -> 'Assigned')."""
    if not text:
        return text
    return text[0].upper() + text[1:].lower()


def parse_odoo_datetime(value) -> Optional[datetime]:
    """Parse an Odoo date or datetime string.

    Odoo sends ``False`` for empty values; that, ``None``, empty strings
    and anything unparseable all come back as ``None``.
    """
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    for fmt in (ODOO_DATETIME_FORMAT, ODOO_DATE_FORMAT):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def format_odoo_datetime(value: datetime) -> str:
    return value.strftime(ODOO_DATETIME_FORMAT)


def ensure_odoo_date_format(value):
    """Return *value* in ``YYYY-MM-DD HH:MM:SS`` form when possible.

    Strings already in server format pass through; ISO strings and
    datetime objects are reformatted. Anything that cannot be parsed is
    returned unchanged so the server can report the problem.
    """
    if value is None or value is False:
        return value
    if isinstance(value, (datetime, date)):
        return format_odoo_datetime(parse_odoo_datetime(value))
    if isinstance(value, str) and _ODOO_DATETIME_RE.match(value):
        return value
    parsed = parse_odoo_datetime(value)
    if parsed is None:
        return value
    return format_odoo_datetime(parsed)
