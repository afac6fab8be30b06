# specimen_core/services/analytics.py
from __future__ import annotations

import calendar
from bisect import bisect_right
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from django.utils import timezone

from specimen_core.exceptions import ValidationError
from specimen_core.lifecycle import STAGES_BY_PROGRAM, normalize_program, stage_for
from specimen_core.models import Specimen
from specimen_core.selectors import parse_program

"""
Dashboard analytics.

Counts are cumulative: each bucket reports every specimen created on or
before the bucket's end date, split by whether it has been collected.
"""

DAILY_MAX_DAYS = 90
WEEKLY_MAX_DAYS = 365
ALL_TIME_FALLBACK_DAYS = 30

RangeDays = Union[int, str]


# ===============================================================
# Range parsing
# ===============================================================

def parse_range(value: Any) -> RangeDays:
    if isinstance(value, str) and value.strip().lower() == "all":
        return "all"
    if isinstance(value, bool):
        raise ValidationError({"range": "Must be a positive number of days or 'all'."})
    try:
        days = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError({"range": "Must be a positive number of days or 'all'."})
    if days < 1:
        raise ValidationError({"range": "Must be a positive number of days or 'all'."})
    return days


# ===============================================================
# Bucket generation
# ===============================================================

def _month_end(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def _next_month(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)


def daily_buckets(start: date, today: date) -> List[Tuple[date, date]]:
    out = []
    day = start
    while day <= today:
        out.append((day, day))
        day += timedelta(days=1)
    return out


def weekly_buckets(start: date, today: date) -> List[Tuple[date, date]]:
    out = []
    week_start = start - timedelta(days=start.weekday())
    while week_start <= today:
        out.append((week_start, week_start + timedelta(days=6)))
        week_start += timedelta(days=7)
    return out


def monthly_buckets(start: date, today: date) -> List[Tuple[date, date]]:
    out = []
    month_start = start.replace(day=1)
    while month_start <= today:
        out.append((month_start, _month_end(month_start)))
        month_start = _next_month(month_start)
    return out


def buckets_for_range(range_days: RangeDays, *, today: date, earliest: Optional[date]) -> List[Tuple[date, date]]:
    """(label_date, end_date) pairs for the requested range."""
    if range_days == "all":
        start = earliest or today - timedelta(days=ALL_TIME_FALLBACK_DAYS)
        return monthly_buckets(min(start, today), today)

    start = today - timedelta(days=range_days - 1)
    if range_days <= DAILY_MAX_DAYS:
        return daily_buckets(start, today)
    if range_days <= WEEKLY_MAX_DAYS:
        return weekly_buckets(start, today)
    return monthly_buckets(start, today)


# ===============================================================
# Time series
# ===============================================================

def _local_date(value) -> date:
    if timezone.is_aware(value):
        return timezone.localtime(value).date()
    return value.date()


def build_time_series(
    *,
    facility_id: int,
    range_days: Any,
    program: Optional[str] = None,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    range_days = parse_range(range_days)
    program = parse_program(program)
    today = today or timezone.localdate()

    rows = (
        Specimen.objects.for_facility(facility_id)
        .for_program(program)
        .values_list("created_at", "collected_at")
    )

    pending_dates: List[date] = []
    collected_dates: List[date] = []
    for created_at, collected_at in rows:
        created = _local_date(created_at)
        (collected_dates if collected_at is not None else pending_dates).append(created)
    pending_dates.sort()
    collected_dates.sort()

    earliest = None
    if pending_dates or collected_dates:
        earliest = min(d[0] for d in (pending_dates, collected_dates) if d)

    series = []
    for label, end in buckets_for_range(range_days, today=today, earliest=earliest):
        series.append({
            "date": label.isoformat(),
            "pending_count": bisect_right(pending_dates, end),
            "collected_count": bisect_right(collected_dates, end),
        })
    return series


# ===============================================================
# Dashboard stats
# ===============================================================

def dashboard_stats(*, facility_id: int, program: Any) -> Dict[str, Any]:
    try:
        program = normalize_program(program)
    except ValueError as exc:
        raise ValidationError({"program": str(exc)})

    counts = {stage.value: 0 for stage in STAGES_BY_PROGRAM[program]}
    qs = (
        Specimen.objects.for_facility(facility_id)
        .for_program(program.value)
        .only("program", "collected_at", "received_at", "tested_at", "verified_at")
    )
    total = 0
    for specimen in qs:
        counts[stage_for(specimen).value] += 1
        total += 1

    return {"program": program.value, "total": total, "stages": counts}
