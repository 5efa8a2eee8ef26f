from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from attendance_admin.services.timestamps import normalize_timestamp

ZERO_DURATION = "0:00"
_MS_PER_MINUTE = 60_000


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def render_minutes(total_minutes: int) -> str:
    # floor for hours, truncated remainder for minutes: -15 renders as "-1:-15"
    hours = total_minutes // 60
    minutes = int(math.fmod(total_minutes, 60))
    return f"{hours}:{minutes:02d}"


def calculate_total_hours(check_in: Any, check_out: Any) -> str:
    start_ms = normalize_timestamp(check_in)
    end_ms = normalize_timestamp(check_out)
    if start_ms is None or end_ms is None:
        return ZERO_DURATION

    diff_ms = end_ms - start_ms
    return render_minutes(round_half_up(diff_ms / _MS_PER_MINUTE))


def convert_decimal_to_time(decimal_hours: Any) -> str:
    try:
        hours = float(decimal_hours)
    except (TypeError, ValueError):
        return ZERO_DURATION
    if not math.isfinite(hours):
        return ZERO_DURATION
    return render_minutes(round_half_up(hours * 60))


def total_hours_display(record: Mapping[str, Any]) -> str:
    check_in = record.get("checkIn")
    check_out = record.get("checkOut")
    if check_in and check_out:
        return calculate_total_hours(check_in, check_out)

    total_hours = record.get("totalHours")
    if total_hours:
        return convert_decimal_to_time(total_hours)
    return ZERO_DURATION
