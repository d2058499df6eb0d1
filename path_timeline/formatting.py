"""Human-readable durations, distances, speeds and local times."""

from __future__ import annotations

from path_timeline.timeutils import dt_from_epoch_ms


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def format_duration(seconds: float) -> str:
    """Long form, e.g. "1 hour 30 minutes" or "2 days 3 hours".

    Minutes are omitted once the duration reaches a day.
    """

    total = int(max(0.0, seconds))
    if total < 60:
        return "less than a minute"
    days, rem = divmod(total, 86_400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60

    parts: list[str] = []
    if days:
        parts.append(_plural(days, "day"))
        if hours:
            parts.append(_plural(hours, "hour"))
        return " ".join(parts)
    if hours:
        parts.append(_plural(hours, "hour"))
    if minutes:
        parts.append(_plural(minutes, "minute"))
    return " ".join(parts)


def format_duration_compact(seconds: float) -> str:
    """Short form, e.g. "1d 1h 1m", "9h", "59m"; "0m" below a minute."""

    total = int(max(0.0, seconds))
    days, rem = divmod(total, 86_400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    parts = [f"{v}{u}" for v, u in ((days, "d"), (hours, "h"), (minutes, "m")) if v]
    return " ".join(parts) if parts else "0m"


def format_distance(meters: float) -> str:
    """Meters below a kilometer ("500 m"), otherwise km with up to two decimals ("1.5 km")."""

    if meters < 1000:
        return f"{round(max(0.0, meters))} m"
    km = f"{meters / 1000.0:.2f}".rstrip("0").rstrip(".")
    return f"{km} km"


def format_speed(kmh: float) -> str:
    return f"{kmh:.2f} km/h"


def format_local_time(epoch_ms: int, tz_name: str) -> str:
    """Local clock time as HH:mm."""

    return dt_from_epoch_ms(epoch_ms, tz_name).strftime("%H:%M")


def format_local_datetime(epoch_ms: int, tz_name: str) -> str:
    """Local date and time as YYYY-MM-DD HH:mm."""

    return dt_from_epoch_ms(epoch_ms, tz_name).strftime("%Y-%m-%d %H:%M")


def format_hour_label(hour: int) -> str:
    """Middle of an hour bucket in 12-hour clock, e.g. 14 -> "2:30 PM"."""

    suffix = "AM" if hour < 12 else "PM"
    h12 = hour % 12 or 12
    return f"{h12}:30 {suffix}"
