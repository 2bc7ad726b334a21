# coffee_inventory/utils/date_utils.py
from datetime import date, datetime
from typing import Optional, Union

def convert_to_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Convert a date-like value to a date.

    Args:
        value: ISO date or timestamp string, date or datetime

    Returns:
        Date object, or None if value is empty
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    # Timestamps from the hosted database carry a time part
    return date.fromisoformat(str(value)[:10])

def convert_to_datetime(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """Convert a timestamp-like value to a naive datetime.

    Args:
        value: ISO timestamp string, date or datetime

    Returns:
        Datetime object, or None if value is empty
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    return parsed

def to_iso(value: Union[date, datetime, None]) -> Optional[str]:
    """Serialize a date or datetime for the REST API."""
    if value is None:
        return None
    return value.isoformat()
