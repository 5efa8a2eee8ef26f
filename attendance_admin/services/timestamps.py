"""Normalization of check-in / check-out values into epoch milliseconds.

Attendance documents carry timestamps in several shapes depending on which
client wrote them: native ``datetime`` objects, ``{"seconds", "nanoseconds"}``
structures and ISO-like strings (``2024-03-01T09:00:00`` or
``2024-03-01 09:00:00``). :func:`classify_instant` resolves a raw value into
one tagged :data:`Instant` variant once; everything downstream works on
integer milliseconds since the Unix epoch.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from numbers import Real
from typing import Any, Union

from attendance_admin.settings import get_attendance_timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)
_DATE_TIME_SEPARATOR = "T"
_DATE_ONLY = re.compile(r"\d{4}-\d{2}-\d{2}")


@dataclass(frozen=True)
class Native:
    ms: int


@dataclass(frozen=True)
class EpochSeconds:
    seconds: int
    nanoseconds: int = 0


@dataclass(frozen=True)
class IsoString:
    text: str
    ms: int


@dataclass(frozen=True)
class Unparseable:
    raw: Any


Instant = Union[Native, EpochSeconds, IsoString, Unparseable]


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def datetime_to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=get_attendance_timezone())
    return (value - _EPOCH) // _ONE_MS


def ms_to_datetime(ms: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=ms)


def _parse_iso(text: str) -> int | None:
    candidate = text.strip()
    if not candidate:
        return None
    if _DATE_TIME_SEPARATOR not in candidate:
        candidate = candidate.replace(" ", _DATE_TIME_SEPARATOR, 1)
    if candidate[-1] in "Zz":
        candidate = f"{candidate[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if _DATE_ONLY.fullmatch(candidate):
        # date-only strings are UTC midnight; naive date-times stay local
        parsed = parsed.replace(tzinfo=timezone.utc)
    return datetime_to_ms(parsed)


def _epoch_fields(value: Any) -> tuple[Any, Any] | None:
    if isinstance(value, Mapping):
        if "seconds" not in value:
            return None
        return value.get("seconds"), value.get("nanoseconds", value.get("nanos", 0))
    if isinstance(value, timedelta):
        return None
    if hasattr(value, "seconds"):
        nanoseconds = getattr(value, "nanoseconds", getattr(value, "nanos", 0))
        return getattr(value, "seconds"), nanoseconds
    return None


def classify_instant(value: Any) -> Instant:
    if value is None or isinstance(value, bool):
        return Unparseable(value)

    if isinstance(value, datetime):
        return Native(datetime_to_ms(value))

    to_timestamp = getattr(value, "timestamp", None)
    if callable(to_timestamp):
        try:
            return Native(int(math.floor(float(to_timestamp()) * 1000)))
        except (TypeError, ValueError, OverflowError):
            return Unparseable(value)

    epoch = _epoch_fields(value)
    if epoch is not None:
        seconds, nanoseconds = epoch
        if not _is_number(seconds) or not (nanoseconds is None or _is_number(nanoseconds)):
            return Unparseable(value)
        return EpochSeconds(int(seconds), int(nanoseconds or 0))

    if isinstance(value, str):
        ms = _parse_iso(value)
        if ms is None:
            return Unparseable(value)
        return IsoString(value, ms)

    return Unparseable(value)


def to_epoch_ms(instant: Instant) -> int | None:
    if isinstance(instant, Native):
        return instant.ms
    if isinstance(instant, EpochSeconds):
        return instant.seconds * 1000 + instant.nanoseconds // 1_000_000
    if isinstance(instant, IsoString):
        return instant.ms
    return None


def normalize_timestamp(value: Any) -> int | None:
    return to_epoch_ms(classify_instant(value))


def to_local_datetime(value: Any) -> datetime | None:
    ms = normalize_timestamp(value)
    if ms is None:
        return None
    return ms_to_datetime(ms).astimezone(get_attendance_timezone())


def format_time(value: Any) -> Any:
    """``09:05 AM`` in the attendance timezone; unparseable input is returned as-is."""
    local = to_local_datetime(value)
    if local is None:
        return value
    return local.strftime("%I:%M %p")


def format_date(value: Any) -> Any:
    local = to_local_datetime(value)
    if local is None:
        return value
    return f"{local.month}/{local.day}/{local.year}"
