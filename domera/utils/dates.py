from datetime import date, datetime, timezone

from dateutil import parser as date_parser


def parse_date(value):
    """Wandelt date/datetime/String in ein ``date`` um, ``None`` wenn nicht lesbar."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(str(value)).date()
    except (ValueError, OverflowError, TypeError):
        return None


def parse_datetime(value):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        parsed = date_parser.isoparse(str(value))
    except (ValueError, OverflowError, TypeError):
        return None
    # Vergleiche laufen in naivem UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed