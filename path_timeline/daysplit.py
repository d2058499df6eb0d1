"""Projection of UTC segments onto local calendar days."""

from __future__ import annotations

from datetime import timedelta

from path_timeline.formatting import format_duration_compact, format_local_time
from path_timeline.models import DayLocalView, Segment
from path_timeline.timeutils import dt_from_epoch_ms, local_date, local_midnight_ms, validate_timezone


def continued_from_label(segment_start_ms: int, view_day_start_ms: int, tz_name: str) -> str:
    """Label for a continuation card.

    Elapsed whole days between the segment start and the card's midnight
    decide the wording: exactly one gives "Continued from yesterday, 23:00",
    anything else names the date, "Continued from Sep 20, 23:00" (with the
    year when it differs).
    """

    start = dt_from_epoch_ms(segment_start_ms, tz_name)
    day_start = dt_from_epoch_ms(view_day_start_ms, tz_name)
    days_diff = (view_day_start_ms - segment_start_ms) // 86_400_000
    hhmm = start.strftime("%H:%M")
    if days_diff == 1:
        return f"Continued from yesterday, {hhmm}"
    label = f"{start.strftime('%b')} {start.day}"
    if start.year != day_start.year:
        label += f", {start.year}"
    return f"Continued from {label}, {hhmm}"


def split_by_local_day(segment: Segment, timezone: str) -> list[DayLocalView]:
    """Split a segment into one view per local calendar date it touches.

    Days are half-open [00:00, next 00:00), so the view durations add up to the
    segment duration exactly. A segment ending exactly at local midnight does
    not produce an empty view for the following date.

    Args:
        segment: Stay, Trip or DataGap with UTC epoch-ms bounds.
        timezone: IANA zone of the user (never the machine's zone).

    Returns:
        Views ordered by date; the first one is never a continuation.

    Raises:
        InvalidTimezoneError: If ``timezone`` is unknown.
    """

    tz_name = validate_timezone(timezone)
    start_ms, end_ms = segment.start_ms, segment.end_ms
    first = local_date(start_ms, tz_name)
    last = local_date(end_ms - 1, tz_name) if end_ms > start_ms else first
    if last < first:
        last = first
    total_days = (last - first).days + 1

    views: list[DayLocalView] = []
    day = first
    for n in range(1, total_days + 1):
        next_midnight = local_midnight_ms(day + timedelta(days=1), tz_name)
        if n == 1:
            view_start = start_ms
            label = ""
        else:
            view_start = local_midnight_ms(day, tz_name)
            label = continued_from_label(start_ms, view_start, tz_name)
        view_end = end_ms if n == total_days else min(end_ms, next_midnight)
        views.append(
            DayLocalView(
                segment=segment,
                calendar_date=day,
                start_ms=view_start,
                end_ms=view_end,
                is_continuation=n > 1,
                continued_from_label=label,
                day_number=n,
                total_days=total_days,
                timezone=tz_name,
            )
        )
        day += timedelta(days=1)
    return views


def is_overnight(segment: Segment, timezone: str) -> bool:
    """True when the segment touches more than one local date."""

    return len(split_by_local_day(segment, timezone)) > 1


def on_this_day_label(view: DayLocalView) -> str:
    """E.g. "23:00 - 23:59 (59m)"; a view cut at midnight shows 23:59 and a floored duration."""

    start = format_local_time(view.start_ms, view.timezone)
    end = format_local_time(view.display_end_ms, view.timezone)
    display_seconds = (view.display_end_ms - view.start_ms) // 1000
    return f"{start} - {end} ({format_duration_compact(display_seconds)})"
