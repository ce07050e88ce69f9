from datetime import date, datetime, timezone

CLASS_DATE_FORMAT = "%d/%m/%Y"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).isoformat()


def parse_iso_utc(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC. Returns None if unparseable."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_class_date(value: str | None) -> date | None:
    """Class dates are stored as dd/MM/yyyy."""
    if not value:
        return None
    try:
        return datetime.strptime(value, CLASS_DATE_FORMAT).date()
    except ValueError:
        return None


def hour_of(value: str | None) -> int | None:
    """Hour component of an HH:MM time string."""
    if not value:
        return None
    head = value.split(":", 1)[0].strip()
    if not head.isdigit():
        return None
    return int(head)
