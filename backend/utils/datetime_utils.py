import re
from datetime import datetime, date, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo


_AMPM_RE = re.compile(r"(\d{1,2}):(\d{2})\s*(AM|PM)", re.IGNORECASE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_tz(tz_name: str | None) -> tzinfo | None:
    """Return the user's zone, or None to mean the server's local zone."""
    if tz_name:
        try:
            return ZoneInfo(tz_name)
        except Exception:
            pass
    return None


def to_local(moment: datetime, tz_name: str | None = None) -> datetime:
    """Convert an instant to local wall-clock time (naive input is taken as UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    tz = resolve_tz(tz_name)
    return moment.astimezone(tz) if tz else moment.astimezone()


def day_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def previous_day(d: date) -> date:
    return d - timedelta(days=1)


def parse_clock_time(value: str | None) -> tuple[int, int]:
    """Parse "HH:MM" or "H:MM AM/PM" into a 24-hour (hour, minute) pair.

    Missing or unparseable parts come back as 0, so ``None`` is midnight.
    """
    if not value:
        return 0, 0
    text = str(value).strip()
    match = _AMPM_RE.search(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2))
        period = match.group(3).upper()
        if period == "PM" and hour != 12:
            hour += 12
        if period == "AM" and hour == 12:
            hour = 0
        return hour, minute

    parts = text.split(":")
    return _to_int(parts[0]), _to_int(parts[1] if len(parts) > 1 else None)


def _to_int(value) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0
