"""Date representations found on learning logs and their normalization.

Logs arrive with one of three date shapes: an epoch-seconds timestamp (the
``{"_seconds": ...}`` form written by document-store exports), a real
``date``/``datetime`` value, or an ISO-like string typed by the client.
Everything is compared through :func:`normalize_day_key`, which maps all three
to the user's local calendar day.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Union

from utils.datetime_utils import day_key, resolve_tz, to_local


_DAY_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class EpochSeconds:
    seconds: float


@dataclass(frozen=True)
class CalendarInstant:
    value: date  # date or datetime


@dataclass(frozen=True)
class IsoString:
    value: str


DateValue = Union[EpochSeconds, CalendarInstant, IsoString]

DATE_KINDS = {EpochSeconds: "epoch", CalendarInstant: "calendar", IsoString: "iso"}


def normalize_day_key(value: DateValue, tz_name: str | None = None) -> str:
    """Return the ``YYYY-MM-DD`` local-calendar day for ``value``.

    ISO strings keep the date portion exactly as written; instants are
    converted into the user's zone (server local time when ``tz_name`` is
    None). Malformed strings fall back to their first 10 characters.
    """
    if isinstance(value, EpochSeconds):
        moment = datetime.fromtimestamp(float(value.seconds), tz=timezone.utc)
        return day_key(to_local(moment, tz_name).date())

    if isinstance(value, CalendarInstant):
        raw = value.value
        if isinstance(raw, datetime):
            if raw.tzinfo is None:
                return day_key(raw.date())
            return day_key(to_local(raw, tz_name).date())
        return day_key(raw)

    text = str(value.value).strip()
    head = re.split(r"[T ]", text, maxsplit=1)[0]
    if _DAY_KEY_RE.match(head):
        return head
    return text[:10]


def to_instant(value: DateValue, tz_name: str | None = None) -> datetime | None:
    """Return the raw timestamp behind ``value`` as an aware datetime.

    A bare ``YYYY-MM-DD`` string is read as UTC midnight, while a string with
    a time but no offset is read as local time. Unparseable strings give None.
    """
    if isinstance(value, EpochSeconds):
        return datetime.fromtimestamp(float(value.seconds), tz=timezone.utc)

    if isinstance(value, CalendarInstant):
        raw = value.value
        if isinstance(raw, datetime):
            return raw if raw.tzinfo else _as_local(raw, tz_name)
        return _as_local(datetime(raw.year, raw.month, raw.day), tz_name)

    text = str(value.value).strip()
    if _DAY_KEY_RE.match(text):
        try:
            return datetime.fromisoformat(text).replace(tzinfo=timezone.utc)
        except ValueError:
            return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else _as_local(parsed, tz_name)


def _as_local(naive: datetime, tz_name: str | None) -> datetime:
    tz = resolve_tz(tz_name)
    return naive.replace(tzinfo=tz) if tz else naive.astimezone()


def coerce_date_value(raw: Any) -> DateValue | None:
    """Build a DateValue from whatever a client or an import handed us."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (EpochSeconds, CalendarInstant, IsoString)):
        return raw
    if isinstance(raw, dict):
        seconds = raw.get("_seconds", raw.get("seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            return EpochSeconds(seconds)
        return None
    if isinstance(raw, (int, float)):
        return EpochSeconds(raw)
    if isinstance(raw, date):
        return CalendarInstant(raw)
    text = str(raw).strip()
    return IsoString(text) if text else None


def serialize_date_value(value: DateValue) -> tuple[str, str]:
    """Return ``(kind, raw)`` for storage in the logs table."""
    kind = DATE_KINDS[type(value)]
    if isinstance(value, EpochSeconds):
        return kind, repr(float(value.seconds))
    if isinstance(value, CalendarInstant):
        return kind, value.value.isoformat()
    return kind, value.value


def deserialize_date_value(kind: str | None, raw: str | None) -> DateValue | None:
    if raw is None:
        return None
    if kind == "epoch":
        try:
            return EpochSeconds(float(raw))
        except ValueError:
            return None
    if kind == "calendar":
        try:
            if "T" in raw or " " in raw:
                return CalendarInstant(datetime.fromisoformat(raw))
            return CalendarInstant(date.fromisoformat(raw))
        except ValueError:
            return None
    return IsoString(raw)


def date_value_to_json(value: DateValue | None) -> Any:
    """Render a DateValue the way clients sent it."""
    if value is None:
        return None
    if isinstance(value, EpochSeconds):
        return {"_seconds": value.seconds}
    if isinstance(value, CalendarInstant):
        return value.value.isoformat()
    return value.value
